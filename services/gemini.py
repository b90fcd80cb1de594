"""Gemini client with Google Search and Google Maps grounding."""
import logging
from typing import List, Optional

from google import genai
from google.genai import types

from models.chat import AIReply, GeoLocation, HistoryTurn
from utils.constants import EMPTY_REPLY_TEXT, GOOGLE_API_KEY, LITE_MODEL
from utils.geo import validate_location
from utils.grounding import citations_from_grounding
from utils.prompts import SYSTEM_INSTRUCTION

logger = logging.getLogger(__name__)


class AIServiceError(Exception):
    """The AI service could not produce a reply."""


class GeminiService:
    """Stateless request/response access to Gemini.

    The history window is sent in full on every call so the context location
    can change from turn to turn.
    """

    def __init__(self, api_key: Optional[str] = GOOGLE_API_KEY, model: str = LITE_MODEL):
        self._api_key = api_key
        self._model = model
        self._client: Optional[genai.Client] = None

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def build_config(self, context_location: Optional[GeoLocation]) -> types.GenerateContentConfig:
        """Generation config with grounding tools, biased to the context location if valid."""
        tool_config = None
        location = validate_location(context_location)
        if location is not None:
            tool_config = types.ToolConfig(
                retrieval_config=types.RetrievalConfig(
                    lat_lng=types.LatLng(latitude=location.lat, longitude=location.lng)
                )
            )
        return types.GenerateContentConfig(
            system_instruction=SYSTEM_INSTRUCTION,
            tools=[
                types.Tool(google_search=types.GoogleSearch()),
                types.Tool(google_maps=types.GoogleMaps()),
            ],
            tool_config=tool_config,
        )

    async def generate(
        self, history: List[HistoryTurn], context_location: Optional[GeoLocation]
    ) -> AIReply:
        """Send the history window and return the raw reply with its citations.

        Args:
            history: Recent conversation turns, oldest first.
            context_location: Point used to ground "nearby" questions.

        Returns:
            The reply text and its grounding citations.

        Raises:
            AIServiceError: If the request fails for any reason.
        """
        contents = [
            types.Content(role=turn.role, parts=[types.Part.from_text(text=turn.text)])
            for turn in history
        ]
        try:
            response = await self.client.aio.models.generate_content(
                model=self._model,
                contents=contents,
                config=self.build_config(context_location),
            )
        except Exception as exc:
            logger.error("Gemini API error: %s", exc)
            raise AIServiceError(str(exc) or "Failed to connect to GeoChat AI.") from exc

        chunks = None
        if response.candidates and response.candidates[0].grounding_metadata:
            chunks = response.candidates[0].grounding_metadata.grounding_chunks

        return AIReply(
            text=response.text or EMPTY_REPLY_TEXT,
            citations=citations_from_grounding(chunks),
        )
