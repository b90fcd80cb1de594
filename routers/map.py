"""Router for the map API."""

from fastapi import APIRouter, Depends, HTTPException

from models.map import (
    DistanceResponse,
    ExploreRequest,
    LinkResponse,
    LocationInput,
    MapState,
    RecenterResponse,
    ViewportCommand,
    WeatherSnapshot,
)
from routers.chat import SendMessageResponse
from routers.dependencies import get_controller
from services.conversation import ConversationController
from services.weather import WeatherLookupError, lookup_weather
from utils.geo import describe_distance, directions_url, share_url, validate_location

router = APIRouter(prefix="/map")


@router.get("/state", response_model=MapState)
async def get_map_state(controller: ConversationController = Depends(get_controller)):
    return controller.map_state


@router.put("/user-location", response_model=MapState)
async def set_user_location(payload: LocationInput, controller: ConversationController = Depends(get_controller)):
    """Record the device position. Invalid coordinates are ignored."""
    controller.set_user_location(payload.model_dump())
    return controller.map_state


@router.put("/target", response_model=MapState)
async def select_target(payload: LocationInput, controller: ConversationController = Depends(get_controller)):
    """Pin a location picked on the map.

    Args:
        payload (LocationInput): Raw coordinates from the map click.
    """
    if controller.select_location(payload.model_dump()) is None:
        raise HTTPException(status_code=422, detail="Invalid coordinates")
    return controller.map_state


@router.delete("/target", response_model=MapState)
async def clear_target(controller: ConversationController = Depends(get_controller)):
    controller.clear_target()
    return controller.map_state


@router.get("/viewport", response_model=ViewportCommand)
async def get_viewport(controller: ConversationController = Depends(get_controller)):
    """Next viewport command, NoOp when the focus has not changed since the last one."""
    return controller.viewport.sync(controller.map_state)


@router.post("/recenter", response_model=RecenterResponse)
async def recenter(controller: ConversationController = Depends(get_controller)):
    """Fly back to the user, on every request."""
    if controller.map_state.userLocation is None:
        raise HTTPException(status_code=409, detail="User location not available yet.")
    command = controller.viewport.recenter(controller.map_state.userLocation)
    return RecenterResponse(trigger=controller.viewport.recenter_trigger, command=command)


@router.get("/distance", response_model=DistanceResponse)
async def get_distance(controller: ConversationController = Depends(get_controller)):
    kilometers, label = describe_distance(controller.map_state.userLocation, controller.map_state.targetLocation)
    return DistanceResponse(kilometers=kilometers, label=label)


@router.get("/directions", response_model=LinkResponse)
async def get_directions(controller: ConversationController = Depends(get_controller)):
    origin = validate_location(controller.map_state.userLocation)
    destination = validate_location(controller.map_state.targetLocation)
    if origin is None or destination is None:
        raise HTTPException(status_code=409, detail="Directions need both your location and a target")
    return LinkResponse(url=directions_url(origin, destination))


@router.get("/share", response_model=LinkResponse)
async def get_share_link(controller: ConversationController = Depends(get_controller)):
    location = validate_location(controller.map_state.userLocation)
    if location is None:
        raise HTTPException(status_code=409, detail="Waiting for your GPS location...")
    return LinkResponse(url=share_url(location))


@router.post("/explore", response_model=SendMessageResponse)
async def explore(request: ExploreRequest, controller: ConversationController = Depends(get_controller)):
    """Ask the assistant for a category of places near the current focus."""
    outcome = await controller.explore(request.category)
    return SendMessageResponse(
        accepted=outcome.accepted,
        session=outcome.session,
        mapState=outcome.mapState,
        viewport=controller.viewport.sync(outcome.mapState),
    )


@router.get("/weather", response_model=WeatherSnapshot)
def get_weather(controller: ConversationController = Depends(get_controller)):
    """Current weather at the target, or at the user when there is no target."""
    location = validate_location(controller.map_state.activeTarget)
    if location is None:
        raise HTTPException(status_code=409, detail="No location to report weather for")
    try:
        return lookup_weather(location)
    except WeatherLookupError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
