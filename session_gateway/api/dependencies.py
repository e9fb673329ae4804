"""
FastAPI dependencies.

Services live on ``app.state`` (set up by the lifespan handler), so each
application instance, including the ones built in tests, owns its own
registry.
"""

from fastapi import Request

from session_gateway.config import Settings
from session_gateway.core.messaging.dispatch import MessageDispatcher
from session_gateway.core.sessions.lifecycle import SessionLifecycleController
from session_gateway.core.sessions.registry import SessionRegistry


def get_app_settings(request: Request) -> Settings:
    """Settings the running application was built with."""
    return request.app.state.settings


def get_registry(request: Request) -> SessionRegistry:
    """Session registry of the running application."""
    return request.app.state.registry


def get_lifecycle(request: Request) -> SessionLifecycleController:
    """Session lifecycle controller of the running application."""
    return request.app.state.lifecycle


def get_dispatcher(request: Request) -> MessageDispatcher:
    """Message dispatcher of the running application."""
    return request.app.state.dispatcher
