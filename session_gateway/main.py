"""
FastAPI Session Gateway Application Factory
===========================================

Entry point for the OIDC relying-party session gateway.

Routers:
    - /api/auth/logout          : Start RP-initiated logout (POST)
    - /api/auth/logout/callback : Identity provider return leg (GET)
    - /api/session              : Current session view
    - /api/userinfo             : Identity provider UserInfo proxy
    - /logout/success|error     : Logout result pages
    - /health                   : Health check endpoint

Running the Service:
    Development:
        uvicorn session_gateway.main:create_app --factory --reload --host 0.0.0.0 --port 8080

    Production:
        ENVIRONMENT=production uvicorn session_gateway.main:create_app --factory --host 0.0.0.0 --port 8080 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .auth import api_router, auth_router, pages_router
from .auth.logout import LogoutCoordinator
from .auth.provider import OIDCProviderClient
from .auth.session import session_middleware
from .auth.tokens import RefreshSingleFlight, TokenLifecycleManager
from .config import Settings, get_settings, validate_configuration
from .models import ErrorResponse, HealthResponse

logger = logging.getLogger("session_gateway.main")


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup: configure logging and report configuration problems.
    Shutdown: drop cached provider metadata.
    """
    settings: Settings = app.state.settings
    setup_logging(settings.LOG_LEVEL)

    status_report = validate_configuration(settings)
    for error in status_report["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in status_report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    logger.info(
        "Starting session gateway",
        extra={
            "issuer": settings.OIDC_ISSUER_URL,
            "environment": settings.ENVIRONMENT,
            "session_max_age": settings.SESSION_MAX_AGE,
        }
    )

    yield

    logger.info("Shutting down session gateway")
    app.state.provider.clear_cache()


def create_app(
    settings: Optional[Settings] = None,
    provider: Optional[OIDCProviderClient] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Auth components (provider client, token manager, logout coordinator)
        - Session and CORS middleware
        - Route handlers
        - Exception handlers

    Args:
        settings: Settings to use instead of the environment
        provider: Provider client to use instead of the default httpx one

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    provider_config = settings.provider_config
    provider = provider or OIDCProviderClient(provider_config)

    app = FastAPI(
        title="OIDC Session Gateway",
        description="Relying-party session management with silent refresh and CSRF-protected logout",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.state.settings = settings
    app.state.provider = provider
    app.state.token_manager = TokenLifecycleManager(
        provider,
        single_flight=RefreshSingleFlight() if settings.REFRESH_SINGLE_FLIGHT else None,
    )
    app.state.logout_coordinator = LogoutCoordinator(provider, provider_config)

    # Registered first so CORS wraps it and sees the final response.
    app.middleware("http")(session_middleware)

    origins = settings.allowed_origins_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    app.include_router(auth_router)
    app.include_router(api_router)
    app.include_router(pages_router)

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        """Health check endpoint."""
        return HealthResponse(status="ok", service="session-gateway", version=__version__)

    @app.get("/", tags=["System"])
    async def root() -> Dict[str, object]:
        """Root endpoint with service information."""
        return {
            "service": "session-gateway",
            "version": __version__,
            "endpoints": {
                "health": "/health",
                "docs": "/docs",
                "logout": "/api/auth/logout",
                "session": "/api/session",
                "userinfo": "/api/userinfo",
            }
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="internal_server_error",
                message="An unexpected error occurred",
                detail=str(exc) if settings.LOG_LEVEL == "DEBUG" else None,
            ).model_dump()
        )

    return app


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "session_gateway.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8080,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
