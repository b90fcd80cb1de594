""" Constants for the server. """
import os
from dotenv import load_dotenv

load_dotenv(override=True)

GOOGLE_API_KEY=os.getenv("GOOGLE_API_KEY")
LITE_MODEL=os.getenv("GEOCHAT_MODEL", "gemini-2.5-flash")
WEATHER_API_URL=os.getenv("WEATHER_API_URL", "https://api.open-meteo.com/v1/forecast")
DATA_DIR=os.getenv("GEOCHAT_DATA_DIR", "./data")

# Persistence keys
SESSIONS_KEY="geochat_sessions"
LEGACY_HISTORY_KEY="geochat_history"

# Conversation
HISTORY_WINDOW=10
DEFAULT_TITLE="New Chat"
RESTORED_TITLE="Restored Chat"
TITLE_MAX_LENGTH=30
WELCOME_TEXT=(
    "Hello! I'm GeoChat. I can help you find places, check detailed information, "
    "and navigate using Google Maps data. Where are we heading today?"
)
APOLOGY_TEXT="I'm having trouble connecting to my map data right now. Please try again."
EMPTY_REPLY_TEXT="I couldn't find an answer for that."

# Viewport
FLY_TO_ZOOM=15
FLY_TO_DURATION=2.0
FIT_BOUNDS_PADDING=50
FIT_BOUNDS_MAX_ZOOM=15
FIT_BOUNDS_DURATION=1.5
RECENTER_ZOOM=16
RECENTER_DURATION=1.5

EARTH_RADIUS_KM=6371.0
