"""Pydantic models for map state and viewport commands."""
from typing import Annotated, Any, List, Literal, Optional, Union
from pydantic import BaseModel, Field, StringConstraints
from models.chat import GeoLocation


class MapState(BaseModel):
    """ Derived map state. Never persisted. """
    userLocation: Optional[GeoLocation] = None
    targetLocation: Optional[GeoLocation] = None
    relatedLocations: List[GeoLocation] = []
    # id of the model reply last merged into the map
    replyId: Optional[str] = None

    @property
    def activeTarget(self) -> Optional[GeoLocation]:
        """The point the map focuses on: the target, else the user."""
        return self.targetLocation or self.userLocation


class Bounds(BaseModel):
    """ Minimal rectangle enclosing a set of points. """
    south: float
    west: float
    north: float
    east: float

    @classmethod
    def enclosing(cls, points: List[GeoLocation]) -> "Bounds":
        lats = [point.lat for point in points]
        lngs = [point.lng for point in points]
        return cls(south=min(lats), west=min(lngs), north=max(lats), east=max(lngs))

    @property
    def is_degenerate(self) -> bool:
        return self.south == self.north and self.west == self.east


class FlyTo(BaseModel):
    """ Animate the viewport to a single point. """
    kind: Literal["fly_to"] = "fly_to"
    point: GeoLocation
    zoom: int
    duration: float


class FitBounds(BaseModel):
    """ Fit the viewport around a cluster of points. """
    kind: Literal["fit_bounds"] = "fit_bounds"
    points: List[GeoLocation]
    bounds: Bounds
    padding: int
    maxZoom: int
    duration: float


class NoOp(BaseModel):
    """ Leave the viewport where it is. """
    kind: Literal["noop"] = "noop"


ViewportCommand = Annotated[Union[FlyTo, FitBounds, NoOp], Field(discriminator="kind")]


class LocationInput(BaseModel):
    """ Raw coordinate pair coming from the map or the device. Validated downstream. """
    lat: Any = None
    lng: Any = None


class ExploreRequest(BaseModel):
    """ Quick explore request data structure. """
    category: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class RecenterResponse(BaseModel):
    """ Recenter command together with the trigger counter. """
    trigger: int
    command: ViewportCommand


class DistanceResponse(BaseModel):
    """ Distance between the user and the target. """
    kilometers: Optional[float] = None
    label: str


class LinkResponse(BaseModel):
    """ External map link. """
    url: str


class WeatherSnapshot(BaseModel):
    """ Current weather for a coordinate. """
    location: GeoLocation
    temperature: float
    weatherCode: int
    description: str
    windSpeed: float
    humidity: float
    pressure: Optional[float] = None
    precipitationChance: float = 0
