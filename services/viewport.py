"""Viewport decisions: fly to a single target or fit a cluster of places."""
import logging
from typing import Any, Iterable, List, Optional, Tuple

from models.chat import GeoLocation
from models.map import Bounds, FitBounds, FlyTo, MapState, NoOp, ViewportCommand
from utils.constants import (
    FIT_BOUNDS_DURATION,
    FIT_BOUNDS_MAX_ZOOM,
    FIT_BOUNDS_PADDING,
    FLY_TO_DURATION,
    FLY_TO_ZOOM,
    RECENTER_DURATION,
    RECENTER_ZOOM,
)
from utils.geo import validate_location

logger = logging.getLogger(__name__)


def _valid_points(locations: Optional[Iterable[Any]]) -> List[GeoLocation]:
    return [location for location in map(validate_location, locations or []) if location is not None]


def decide(target: Any, related: Optional[Iterable[Any]]) -> ViewportCommand:
    """Pick the viewport command for a target and its related places.

    A non-empty related set always wins: the view fits the rectangle around
    the related places plus the target. A rectangle that collapses to a single
    point is not worth animating. Without related places the view flies to the
    target.

    Args:
        target: The focused location, possibly invalid or None.
        related: Secondary locations surfaced by the same reply.

    Returns:
        FitBounds, FlyTo or NoOp.
    """
    target = validate_location(target)
    points = _valid_points(related)

    if points:
        if target is not None:
            points.append(target)
        bounds = Bounds.enclosing(points)
        if bounds.is_degenerate:
            return NoOp()
        return FitBounds(
            points=points,
            bounds=bounds,
            padding=FIT_BOUNDS_PADDING,
            maxZoom=FIT_BOUNDS_MAX_ZOOM,
            duration=FIT_BOUNDS_DURATION,
        )

    if target is not None:
        return FlyTo(point=target, zoom=FLY_TO_ZOOM, duration=FLY_TO_DURATION)
    return NoOp()


class ViewportSynchronizer:
    """Emits a viewport command once per change of the focused locations."""

    def __init__(self):
        self._last_key: Optional[Tuple] = None
        self.recenter_trigger = 0

    def sync(self, map_state: MapState) -> ViewportCommand:
        """Command for the current map state, or NoOp if nothing relevant changed.

        Merging a new reply counts as a change, so a reply pointing at the same
        place as the previous one still moves the map back there.
        """
        target = map_state.activeTarget
        related = map_state.relatedLocations
        key = (target, tuple(related), map_state.replyId)
        if key == self._last_key:
            return NoOp()
        self._last_key = key
        command = decide(target, related)
        logger.debug("Viewport command: %s", command.kind)
        return command

    def recenter(self, user_location: Any) -> ViewportCommand:
        """Fly back to the user every time this is called.

        The trigger counter makes repeated requests for the same location
        distinct from each other.
        """
        self.recenter_trigger += 1
        location = validate_location(user_location)
        if location is None:
            return NoOp()
        return FlyTo(point=location, zoom=RECENTER_ZOOM, duration=RECENTER_DURATION)
