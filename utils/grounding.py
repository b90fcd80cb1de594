"""Extraction of map coordinates from AI replies and their grounding sources."""
import logging
import re
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel

from models.chat import Citation, GeoLocation, PlaceCitation, WebCitation
from utils.geo import validate_location

logger = logging.getLogger(__name__)

# Hidden tag the model appends to its reply, e.g. {{LAT:48.8584, LNG:2.2945}}
COORDINATE_TAG = re.compile(r"\{\{LAT:(-?[0-9]+\.?[0-9]*),\s*LNG:(-?[0-9]+\.?[0-9]*)\}\}")

# Google Maps place URIs embed coordinates as !3d<lat>!4d<lng>
PLACE_URI_COORDINATES = re.compile(r"!3d(-?[0-9]+\.?[0-9]*)!4d(-?[0-9]+\.?[0-9]*)")


class ParsedReply(BaseModel):
    """ Result of parsing an AI reply. """
    cleanText: str
    suggestedLocation: Optional[GeoLocation] = None
    relatedLocations: Optional[List[GeoLocation]] = None


def _location_from_match(match: re.Match) -> Optional[GeoLocation]:
    try:
        lat, lng = float(match.group(1)), float(match.group(2))
    except ValueError:
        return None
    return validate_location({"lat": lat, "lng": lng})


def extract_suggested_location(text: str) -> tuple[str, Optional[GeoLocation]]:
    """Split a reply into display text and the location named by its first tag.

    Every tag is removed from the display text, only the first one is parsed.
    Text without a tag is returned unchanged.
    """
    match = COORDINATE_TAG.search(text)
    if match is None:
        return text, None
    return COORDINATE_TAG.sub("", text).strip(), _location_from_match(match)


def extract_related_locations(citations: Iterable[Citation]) -> Optional[List[GeoLocation]]:
    """Collect coordinates embedded in place citation URIs, in citation order.

    Returns None rather than an empty list when nothing was found.
    """
    locations = []
    for citation in citations or []:
        if isinstance(citation, WebCitation):
            continue
        if not isinstance(citation, PlaceCitation):
            raise TypeError(f"Unsupported citation type: {type(citation).__name__}")
        if not citation.uri:
            continue
        match = PLACE_URI_COORDINATES.search(citation.uri)
        if match is None:
            continue
        location = _location_from_match(match)
        if location is not None:
            locations.append(location)
    return locations or None


def parse_response(reply_text: str, citations: Iterable[Citation]) -> ParsedReply:
    """Turn a raw AI reply into display text plus map locations.

    Args:
        reply_text: The reply exactly as the AI service returned it.
        citations: Grounding citations attached to the reply.

    Returns:
        The parsed reply.
    """
    clean_text, suggested = extract_suggested_location(reply_text)
    return ParsedReply(
        cleanText=clean_text,
        suggestedLocation=suggested,
        relatedLocations=extract_related_locations(citations),
    )


def _field(source: Any, *names: str) -> Any:
    """Read the first present attribute or key, for SDK objects and plain dicts alike."""
    for name in names:
        if isinstance(source, dict):
            value = source.get(name)
        else:
            value = getattr(source, name, None)
        if value is not None:
            return value
    return None


def _review_snippets(maps_chunk: Any) -> List[str]:
    sources = _field(maps_chunk, "place_answer_sources", "placeAnswerSources")
    snippets = _field(sources, "review_snippets", "reviewSnippets") if sources else None
    reviews = []
    for snippet in snippets or []:
        review = _field(snippet, "review", "review_text", "reviewText")
        if isinstance(review, str):
            reviews.append(review)
    return reviews


def citations_from_grounding(chunks: Optional[Iterable[Any]]) -> List[Citation]:
    """Convert grounding chunks into citations.

    Accepts ``google.genai`` grounding chunk objects as well as the
    ``{"web": {...}}`` / ``{"maps": {...}}`` dicts found in older stored
    histories. Chunks that are neither are skipped.
    """
    citations: List[Citation] = []
    for chunk in chunks or []:
        maps_chunk = _field(chunk, "maps")
        web_chunk = _field(chunk, "web")
        if maps_chunk is not None:
            citations.append(
                PlaceCitation(
                    uri=_field(maps_chunk, "uri"),
                    title=_field(maps_chunk, "title"),
                    reviewSnippets=_review_snippets(maps_chunk),
                )
            )
        elif web_chunk is not None:
            citations.append(WebCitation(uri=_field(web_chunk, "uri"), title=_field(web_chunk, "title")))
        else:
            logger.debug("Skipping grounding chunk without web or maps source: %r", chunk)
    return citations
