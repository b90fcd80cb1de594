"""Shared router dependencies."""
from fastapi import Request

from services.conversation import ConversationController


def get_controller(request: Request) -> ConversationController:
    """The controller wired into the application at startup."""
    return request.app.state.controller
