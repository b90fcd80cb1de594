"""Multi-session conversation history: load, migrate, sanitize, save."""
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from models.chat import ChatSession, Message, epoch_ms, new_id
from utils.constants import (
    DEFAULT_TITLE,
    LEGACY_HISTORY_KEY,
    RESTORED_TITLE,
    SESSIONS_KEY,
    TITLE_MAX_LENGTH,
)
from utils.geo import validate_location
from utils.grounding import citations_from_grounding

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised when a session id is not in the collection."""


def sanitize_message(raw: Any) -> Message:
    """Re-validate a stored message before it re-enters trusted state.

    An invalid ``suggestedLocation`` is dropped, ``relatedLocations`` is
    filtered element-wise and legacy ``groundingChunks`` become
    ``groundingCitations``. Other malformed fields raise ``ValidationError``.
    """
    if isinstance(raw, Message):
        raw = raw.model_dump(mode="json", exclude_none=True)
    if not isinstance(raw, dict):
        raise TypeError(f"Stored message must be an object, got {type(raw).__name__}")

    data = dict(raw)
    data["suggestedLocation"] = validate_location(data.get("suggestedLocation"))

    related = data.get("relatedLocations")
    if isinstance(related, list):
        data["relatedLocations"] = [
            location for location in map(validate_location, related) if location is not None
        ]
    else:
        data["relatedLocations"] = None

    chunks = data.pop("groundingChunks", None)
    if chunks and not data.get("groundingCitations"):
        data["groundingCitations"] = citations_from_grounding(chunks)

    return Message.model_validate(data)


def sanitize_messages(raw_messages: Iterable[Any]) -> List[Message]:
    return [sanitize_message(raw) for raw in raw_messages]


def sanitize_sessions(raw_sessions: Iterable[Any]) -> List[ChatSession]:
    """Sanitize every message of every session. Idempotent."""
    sessions = []
    for raw in raw_sessions:
        if isinstance(raw, ChatSession):
            raw = raw.model_dump(mode="json", exclude_none=True)
        if not isinstance(raw, dict):
            raise TypeError(f"Stored session must be an object, got {type(raw).__name__}")
        data = dict(raw)
        data["messages"] = sanitize_messages(data.get("messages") or [])
        sessions.append(ChatSession.model_validate(data))
    return sessions


def derive_title(session: ChatSession) -> str:
    """Title from the first user message, once the session has two messages.

    Only a session still carrying the default title gets a new one.
    """
    if session.title != DEFAULT_TITLE or len(session.messages) < 2:
        return session.title
    first_user = next((message for message in session.messages if message.role == "user"), None)
    if first_user is None:
        return session.title
    text = first_user.text
    return text[:TITLE_MAX_LENGTH] + ("..." if len(text) > TITLE_MAX_LENGTH else "")


class SessionStore:
    """Session collection with write-through persistence.

    The collection is only ever replaced as a whole snapshot, and every
    replacement is saved. Nothing is written while the collection is empty, so
    an empty startup state never overwrites history at rest.
    """

    def __init__(self, storage):
        self._storage = storage
        self._sessions: Dict[str, ChatSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def load(self) -> List[ChatSession]:
        """Load the stored collection, migrating the legacy history if needed.

        Returns:
            The sessions ordered by most recent update, possibly empty.
        """
        self._sessions = {session.id: session for session in self._read()}
        logger.info("Loaded %d chat session(s)", len(self._sessions))
        return self.sorted_sessions()

    def _read(self) -> List[ChatSession]:
        try:
            saved = self._storage.get_item(SESSIONS_KEY)
            if saved:
                parsed = json.loads(saved)
                if isinstance(parsed, list):
                    return sanitize_sessions(parsed)

            legacy = self._storage.get_item(LEGACY_HISTORY_KEY)
            if legacy:
                messages = json.loads(legacy)
                if isinstance(messages, list) and messages:
                    logger.info("Migrating %d legacy message(s) into a restored session", len(messages))
                    return [
                        ChatSession(
                            id=new_id(),
                            title=RESTORED_TITLE,
                            messages=sanitize_messages(messages),
                            updatedAt=epoch_ms(),
                        )
                    ]
        except (ValueError, TypeError, ValidationError, OSError):
            logger.exception("Failed to load sessions, starting with no saved history")
        return []

    def save(self, sessions: Optional[List[ChatSession]] = None) -> None:
        """Persist the full collection as a single record."""
        sessions = self.sorted_sessions() if sessions is None else sessions
        if not sessions:
            return
        payload = json.dumps([session.model_dump(mode="json", exclude_none=True) for session in sessions])
        self._storage.set_item(SESSIONS_KEY, payload)

    def _commit(self, sessions: Dict[str, ChatSession]) -> None:
        self._sessions = sessions
        self.save()

    def get(self, session_id: str) -> ChatSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def sorted_sessions(self) -> List[ChatSession]:
        return sorted(self._sessions.values(), key=lambda session: session.updatedAt, reverse=True)

    def most_recent(self) -> Optional[ChatSession]:
        ordered = self.sorted_sessions()
        return ordered[0] if ordered else None

    def add(self, session: ChatSession) -> ChatSession:
        self._commit({**self._sessions, session.id: session})
        return session

    def replace(self, session: ChatSession) -> ChatSession:
        self.get(session.id)
        return self.add(session)

    def remove(self, session_id: str) -> ChatSession:
        removed = self.get(session_id)
        self._commit({key: value for key, value in self._sessions.items() if key != session_id})
        return removed

    def append_message(self, session_id: str, message: Message) -> ChatSession:
        """Append a message, bump ``updatedAt`` and derive the title if still default."""
        session = self.get(session_id)
        updated = session.model_copy(
            update={"messages": [*session.messages, message], "updatedAt": epoch_ms()}
        )
        updated = updated.model_copy(update={"title": derive_title(updated)})
        return self.replace(updated)
