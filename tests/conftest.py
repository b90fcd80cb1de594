import asyncio
import pytest

from models.chat import AIReply, ChatSession, Message
from services.conversation import ConversationController
from services.session_store import SessionStore
from services.storage import InMemoryStorage


class FakeAIService:
    """Records calls and returns canned replies instead of calling Gemini."""

    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.calls = []
        self.gate = None

    def hold(self):
        """Make the next calls wait until ``release`` is called."""
        self.gate = asyncio.Event()

    def release(self):
        self.gate.set()

    async def generate(self, history, context_location):
        self.calls.append((history, context_location))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return AIReply(text="Sure.")


def make_message(role="user", text="hi", timestamp=1, **fields) -> Message:
    return Message(id=f"{role}-{text}-{timestamp}", role=role, text=text, timestamp=timestamp, **fields)


def make_session(session_id="s1", updated_at=1, title="New Chat", messages=None) -> ChatSession:
    return ChatSession(
        id=session_id,
        title=title,
        messages=messages if messages is not None else [make_message("model", "welcome")],
        updatedAt=updated_at,
    )


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def store(storage):
    return SessionStore(storage)


@pytest.fixture
def ai_service():
    return FakeAIService()


@pytest.fixture
def controller(store, ai_service):
    controller = ConversationController(store, ai_service)
    controller.initialize()
    return controller
