"""Conversation flow: sessions, message sending and map state."""
import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from models.chat import AIReply, ChatSession, GeoLocation, HistoryTurn, Message, epoch_ms, new_id
from models.map import MapState
from services.session_store import SessionStore
from services.viewport import ViewportSynchronizer
from utils.constants import APOLOGY_TEXT, DEFAULT_TITLE, HISTORY_WINDOW, WELCOME_TEXT
from utils.geo import validate_location
from utils.grounding import parse_response
from utils.prompts import EXPLORE_CONTEXT_HERE, EXPLORE_CONTEXT_TARGET, EXPLORE_PROMPT

logger = logging.getLogger(__name__)


class NoActiveSessionError(RuntimeError):
    """An operation needed an active session and there was none."""


class SendState(str, Enum):
    """Per-session state of the send flow."""
    IDLE = "IDLE"
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class SendOutcome(BaseModel):
    """ Result of a send attempt. """
    accepted: bool
    session: ChatSession
    mapState: MapState


def restore_target(messages: List[Message]) -> Optional[GeoLocation]:
    """Newest valid suggested location in a conversation."""
    for message in reversed(messages):
        location = validate_location(message.suggestedLocation)
        if location is not None:
            return location
    return None


def latest_related(messages: List[Message]) -> List[GeoLocation]:
    """Related locations of the latest model message."""
    for message in reversed(messages):
        if message.role == "model":
            return [
                location
                for location in map(validate_location, message.relatedLocations or [])
                if location is not None
            ]
    return []


def latest_reply_id(messages: List[Message]) -> Optional[str]:
    for message in reversed(messages):
        if message.role == "model":
            return message.id
    return None


def history_window(messages: List[Message]) -> List[HistoryTurn]:
    return [HistoryTurn(role=message.role, text=message.text) for message in messages[-HISTORY_WINDOW:]]


class ConversationController:
    """Drives the active conversation and the map state derived from it.

    Args:
        store: Session collection shared with persistence.
        ai_service: Anything with ``async generate(history, context_location) -> AIReply``.
    """

    def __init__(self, store: SessionStore, ai_service):
        self.store = store
        self.ai_service = ai_service
        self.viewport = ViewportSynchronizer()
        self.active_session_id: Optional[str] = None
        self.map_state = MapState()
        self._send_states: Dict[str, SendState] = {}

    def initialize(self) -> ChatSession:
        """Load stored sessions and activate the most recent, or start a new one."""
        self.store.load()
        most_recent = self.store.most_recent()
        if most_recent is None:
            return self.create()
        return self.switch_to(most_recent.id)

    @property
    def active_session(self) -> ChatSession:
        if self.active_session_id is None or self.active_session_id not in self.store:
            raise NoActiveSessionError("No active chat session")
        return self.store.get(self.active_session_id)

    def send_state(self, session_id: str) -> SendState:
        return self._send_states.get(session_id, SendState.IDLE)

    def context_location(self) -> Optional[GeoLocation]:
        """Where "nearby" means: the map target, else the user."""
        return validate_location(self.map_state.targetLocation) or validate_location(
            self.map_state.userLocation
        )

    def _outcome(self, accepted: bool, session: Optional[ChatSession] = None) -> SendOutcome:
        return SendOutcome(
            accepted=accepted,
            session=session or self.active_session,
            mapState=self.map_state,
        )

    async def send(self, text: str) -> SendOutcome:
        """Send a user message and merge the reply into the session and the map.

        Blank text, or a send while the session already waits for a reply, is
        ignored. The user message is appended before the AI call. A failed call
        appends a fixed apology and leaves the map untouched.

        Args:
            text: What the user typed.

        Returns:
            Whether the message was accepted, the resulting session and map state.
        """
        session = self.active_session
        session_id = session.id
        text = (text or "").strip()

        if not text:
            return self._outcome(False, session)
        if self.send_state(session_id) is SendState.PENDING:
            logger.info("Ignoring send for session %s while a reply is pending", session_id)
            return self._outcome(False, session)

        self._send_states[session_id] = SendState.PENDING
        session = self.store.append_message(session_id, Message.create("user", text))

        try:
            reply: AIReply = await self.ai_service.generate(
                history_window(session.messages), self.context_location()
            )
        except asyncio.CancelledError:
            self._send_states[session_id] = SendState.IDLE
            raise
        except Exception:
            logger.exception("AI request failed for session %s", session_id)
            return self._finish(session_id, Message.create("model", APOLOGY_TEXT), SendState.FAILED)

        parsed = parse_response(reply.text, reply.citations)
        message = Message.create(
            "model",
            parsed.cleanText,
            groundingCitations=reply.citations or None,
            suggestedLocation=parsed.suggestedLocation,
            relatedLocations=parsed.relatedLocations,
        )
        return self._finish(session_id, message, SendState.SUCCEEDED)

    def _finish(self, session_id: str, message: Message, state: SendState) -> SendOutcome:
        if session_id not in self.store:
            logger.warning("Session %s was deleted while waiting for a reply, dropping it", session_id)
            self._send_states.pop(session_id, None)
            return self._outcome(True)

        self._send_states[session_id] = state
        session = self.store.append_message(session_id, message)

        if session_id != self.active_session_id:
            logger.info("Reply for inactive session %s stored without moving the map", session_id)
        elif state is SendState.SUCCEEDED:
            update: Dict[str, Any] = {
                "relatedLocations": latest_related(session.messages),
                "replyId": message.id,
            }
            target = validate_location(message.suggestedLocation)
            if target is not None:
                update["targetLocation"] = target
            self.map_state = self.map_state.model_copy(update=update)

        return self._outcome(True, session if session_id == self.active_session_id else None)

    async def explore(self, category: str) -> SendOutcome:
        """Ask for a category of places around the target or the user."""
        context = EXPLORE_CONTEXT_TARGET if self.map_state.targetLocation else EXPLORE_CONTEXT_HERE
        return await self.send(EXPLORE_PROMPT.format(category=category.strip(), context=context))

    def create(self) -> ChatSession:
        """Start a new conversation with the welcome message and make it active."""
        now = epoch_ms()
        session = ChatSession(
            id=new_id(),
            title=DEFAULT_TITLE,
            messages=[Message(id=new_id(), role="model", text=WELCOME_TEXT, timestamp=now)],
            updatedAt=now,
        )
        self.store.add(session)
        self.active_session_id = session.id
        self.map_state = self.map_state.model_copy(
            update={"targetLocation": None, "relatedLocations": [], "replyId": None}
        )
        logger.info("Created chat session %s", session.id)
        return session

    def switch_to(self, session_id: str) -> ChatSession:
        """Activate a session and restore its map target.

        Raises:
            SessionNotFoundError: If the id is unknown.
        """
        session = self.store.get(session_id)
        self.active_session_id = session.id
        self.map_state = self.map_state.model_copy(
            update={
                "targetLocation": restore_target(session.messages),
                "relatedLocations": latest_related(session.messages),
                "replyId": latest_reply_id(session.messages),
            }
        )
        return session

    def delete(self, session_id: str, confirm: Callable[[ChatSession], bool]) -> bool:
        """Delete a session once ``confirm`` agrees.

        Deleting the active session activates the next most recent one, or a
        new session when none remain.

        Returns:
            True if the session was deleted.
        """
        session = self.store.get(session_id)
        if not confirm(session):
            return False

        self.store.remove(session_id)
        self._send_states.pop(session_id, None)
        logger.info("Deleted chat session %s", session_id)

        if session_id == self.active_session_id:
            self.active_session_id = None
            next_session = self.store.most_recent()
            if next_session is None:
                self.create()
            else:
                self.switch_to(next_session.id)
        return True

    def set_user_location(self, raw: Any) -> Optional[GeoLocation]:
        location = validate_location(raw)
        if location is not None:
            self.map_state = self.map_state.model_copy(update={"userLocation": location})
        return location

    def select_location(self, raw: Any) -> Optional[GeoLocation]:
        """Map click: becomes the target only if it validates."""
        location = validate_location(raw)
        if location is not None:
            self.map_state = self.map_state.model_copy(update={"targetLocation": location})
        return location

    def clear_target(self) -> None:
        self.map_state = self.map_state.model_copy(update={"targetLocation": None})
