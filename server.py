""" Server for the GeoChat API. """
import logging
import time
from typing import Optional
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from routers.chat import router as chat_router
from routers.map import router as map_router
from services.conversation import ConversationController
from services.gemini import GeminiService
from services.session_store import SessionStore
from services.storage import JsonFileStorage
from utils.constants import DATA_DIR

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler('app.log')
    ]
)
logger = logging.getLogger(__name__)


def build_controller() -> ConversationController:
    """Controller backed by file storage and Gemini."""
    store = SessionStore(JsonFileStorage(DATA_DIR))
    return ConversationController(store, GeminiService())


def create_app(controller: Optional[ConversationController] = None) -> FastAPI:
    """Build the application around a controller.

    Args:
        controller: Pre-built controller, e.g. with in-memory storage for tests.

    Returns:
        The FastAPI application.
    """
    app = FastAPI(title="GeoChat API")
    app.state.controller = controller or build_controller()
    app.state.controller.initialize()

    # Request/Response logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """General logging middleware for the server.

        Args:
            request (Request): The request object.
            call_next: The next middleware function to call.

        Returns:
            The response object.
        """
        start_time = time.time()
        logger.info("[LOG]: Request: %s (Path: %s, Query: %s)",
                    request.method,
                    request.url.path,
                    str(request.query_params))

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info("[LOG]: Response: %d - Processed in %.2fs (Path: %s)",
                    response.status_code,
                    process_time,
                    request.url.path)

        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)
    app.include_router(map_router)
    return app


if __name__ == "__main__":
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
