"""Router for the chat sessions API."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from models.chat import ChatSession, SendMessageRequest, SessionListResponse
from models.map import MapState, ViewportCommand
from routers.dependencies import get_controller
from services.conversation import ConversationController
from services.session_store import SessionNotFoundError

router = APIRouter(prefix="/chat")


class ActiveSessionResponse(BaseModel):
    """ Active session together with the map state derived from it. """
    session: ChatSession
    mapState: MapState


class SendMessageResponse(BaseModel):
    """ Send result and the viewport command it produced. """
    accepted: bool
    session: ChatSession
    mapState: MapState
    viewport: ViewportCommand


class DeleteSessionResponse(BaseModel):
    """ Deletion result and the session active afterwards. """
    deleted: bool
    activeSessionId: str


def _active(controller: ConversationController) -> ActiveSessionResponse:
    return ActiveSessionResponse(session=controller.active_session, mapState=controller.map_state)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(controller: ConversationController = Depends(get_controller)):
    """List sessions, most recently updated first."""
    return SessionListResponse(
        activeSessionId=controller.active_session_id,
        sessions=controller.store.sorted_sessions(),
    )


@router.post("/sessions", response_model=ActiveSessionResponse)
async def create_session(controller: ConversationController = Depends(get_controller)):
    """Start a new chat and make it active."""
    controller.create()
    return _active(controller)


@router.get("/sessions/active", response_model=ActiveSessionResponse)
async def get_active_session(controller: ConversationController = Depends(get_controller)):
    return _active(controller)


@router.post("/sessions/{session_id}/activate", response_model=ActiveSessionResponse)
async def activate_session(session_id: str, controller: ConversationController = Depends(get_controller)):
    """Switch to another session and restore its map target.

    Args:
        session_id (str): The session to activate.
    """
    try:
        controller.switch_to(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return _active(controller)


@router.delete("/sessions/{session_id}", response_model=DeleteSessionResponse)
async def delete_session(
    session_id: str,
    confirm: bool = False,
    controller: ConversationController = Depends(get_controller),
):
    """Delete a session. Nothing happens unless ``confirm`` is true.

    Args:
        session_id (str): The session to delete.
        confirm (bool): The caller's answer to "Delete this chat?".
    """
    try:
        deleted = controller.delete(session_id, lambda session: confirm)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return DeleteSessionResponse(deleted=deleted, activeSessionId=controller.active_session_id)


@router.post("/messages", response_model=SendMessageResponse)
async def send_message(request: SendMessageRequest, controller: ConversationController = Depends(get_controller)):
    """Send a message in the active session.

    Args:
        request (SendMessageRequest): The user's text.

    Returns:
        The updated session, map state and the next viewport command.
    """
    outcome = await controller.send(request.text)
    return SendMessageResponse(
        accepted=outcome.accepted,
        session=outcome.session,
        mapState=outcome.mapState,
        viewport=controller.viewport.sync(outcome.mapState),
    )
