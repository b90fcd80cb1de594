""" Chat and session data structures. """
import time
import uuid
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


def epoch_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


class GeoLocation(BaseModel):
    """ Latitude/longitude pair in degrees. """
    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(ge=-180, le=180, allow_inf_nan=False)


class WebCitation(BaseModel):
    """ Grounding source pointing at a web page. """
    model_config = ConfigDict(frozen=True)

    kind: Literal["web"] = "web"
    uri: Optional[str] = None
    title: Optional[str] = None


class PlaceCitation(BaseModel):
    """ Grounding source pointing at a map place. """
    model_config = ConfigDict(frozen=True)

    kind: Literal["place"] = "place"
    uri: Optional[str] = None
    title: Optional[str] = None
    reviewSnippets: List[str] = []


Citation = Annotated[Union[WebCitation, PlaceCitation], Field(discriminator="kind")]


class Message(BaseModel):
    """ A single conversation entry. Never edited once appended. """
    model_config = ConfigDict(frozen=True)

    id: str
    role: Literal["user", "model"]
    text: str
    timestamp: int
    groundingCitations: Optional[List[Citation]] = None
    suggestedLocation: Optional[GeoLocation] = None
    relatedLocations: Optional[List[GeoLocation]] = None

    @classmethod
    def create(cls, role: str, text: str, **fields) -> "Message":
        return cls(id=new_id(), role=role, text=text, timestamp=epoch_ms(), **fields)


class ChatSession(BaseModel):
    """ A named conversation. """
    id: str
    title: str
    messages: List[Message] = []
    updatedAt: int


class HistoryTurn(BaseModel):
    """ One entry of the history window sent to the AI service. """
    role: Literal["user", "model"]
    text: str


class AIReply(BaseModel):
    """ Raw AI service response. """
    text: str
    citations: List[Citation] = []


class SendMessageRequest(BaseModel):
    """ Chat send request data structure. """
    text: str


class SessionListResponse(BaseModel):
    """ Session listing ordered by most recent update. """
    activeSessionId: Optional[str] = None
    sessions: List[ChatSession]
