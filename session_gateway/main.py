"""
Session Gateway API

FastAPI application entry point that ties all components together.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from session_gateway import __version__
from session_gateway.config import Settings, get_settings
from session_gateway.api.routes import health, messages, sessions
from session_gateway.core.errors import GatewayError
from session_gateway.core.messaging.dispatch import MessageDispatcher
from session_gateway.core.messaging.media import MediaDownloader
from session_gateway.core.sessions.lifecycle import SessionLifecycleController
from session_gateway.core.sessions.registry import SessionRegistry, load_aliases
from session_gateway.infra.bridge_client import BridgeClientFactory
from session_gateway.infra.messaging_client import ClientFactory

ENDPOINTS = [
    "POST /send-message (legacy)",
    "POST /send-unified-message",
    "POST /create-session",
    "DELETE /session/{sessionName}",
    "POST /session/{sessionName}/logout",
    "GET /session/{sessionName}/status",
    "GET /qr/{sessionName}",
    "GET /health",
]


def setup_logging(settings: Settings) -> None:
    """Configure logging based on environment."""
    log_level = logging.DEBUG if settings.debug else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    client_factory: Optional[ClientFactory] = None,
    media_downloader: Optional[MediaDownloader] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Application settings (defaults to cached settings)
        client_factory: Builds messaging client handles (defaults to the bridge)
        media_downloader: Fetches media for media messages

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application lifespan manager.

        Startup builds the session services; shutdown drains every session
        before the process exits. Startup errors propagate and abort the
        server.
        """
        # === STARTUP ===
        setup_logging(settings)
        logger.info(f"Starting {settings.app_name} in {settings.app_env} mode")
        logger.info(f"Browser service: {settings.browser_service}")

        health.set_start_time()

        settings.sessions_dir.mkdir(parents=True, exist_ok=True)
        aliases = load_aliases(settings.session_aliases, settings.session_aliases_file)

        factory = client_factory or BridgeClientFactory(settings)
        registry = SessionRegistry(aliases=aliases)
        lifecycle = SessionLifecycleController(registry, factory, settings)
        dispatcher = MessageDispatcher(registry, media_downloader, settings)

        app.state.settings = settings
        app.state.registry = registry
        app.state.lifecycle = lifecycle
        app.state.dispatcher = dispatcher

        logger.info(
            f"Multi-session gateway ready at http://{settings.host}:{settings.port}"
        )
        logger.info("Available endpoints:\n" + "\n".join(f"- {e}" for e in ENDPOINTS))

        yield

        # === SHUTDOWN ===
        logger.info("Shutting down gateway gracefully...")

        await lifecycle.shutdown()
        await dispatcher.close()
        await factory.aclose()

        logger.info("Shutdown complete")

    app = FastAPI(
        title="Session Gateway API",
        description="""
    Multi-session HTTP gateway over a messaging client.

    ## Features
    - Named sessions, each an independent authenticated connection
    - QR pairing with status polling
    - Text, image, document, audio, video and link-preview messages
    """,
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GatewayError)
    async def gateway_exception_handler(
        request: Request,
        exc: GatewayError,
    ) -> JSONResponse:
        """Render gateway errors as structured JSON."""
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")

        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Handle malformed request bodies."""
        logger.warning(f"Validation error: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "error": "Invalid request body",
                "detail": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.exception(f"Unhandled exception: {exc}")

        # Don't expose internal errors in production
        detail = str(exc) if settings.is_development else "Internal server error"

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": detail},
        )

    @app.middleware("http")
    async def request_timing_middleware(request: Request, call_next):
        """Log request duration in debug mode."""
        start_time = time.time()
        try:
            return await call_next(request)
        finally:
            if settings.debug:
                duration = time.time() - start_time
                logger.debug(
                    f"{request.method} {request.url.path} "
                    f"completed in {duration:.3f}s"
                )

    app.include_router(health.router)
    app.include_router(sessions.router)
    app.include_router(messages.router)

    @app.get("/", tags=["Root"])
    async def root() -> dict:
        """
        Root endpoint.

        Returns basic API information.
        """
        return {
            "name": settings.app_name,
            "version": __version__,
            "status": "running",
            "environment": settings.app_env,
            "endpoints": ENDPOINTS,
            "docs": "/docs" if settings.is_development else None,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "session_gateway.main:app",
        host=_settings.host,
        port=_settings.port,
        log_level="debug" if _settings.debug else "info",
    )
