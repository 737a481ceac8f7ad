"""
FastAPI Application Factory
===========================

Builds the RESTCONF proxy application: a local, stable HTTP endpoint in
front of a RESTCONF device or controller.

Architecture:
    RESTCONF client → RESTCONF proxy (this service) → Upstream device/controller

Routes:
    - /health              : Liveness check, never touches the upstream
    - <prefix>, <prefix>/* : Proxied to the upstream (default prefix /restconf)
    - anything else        : 404

Running the Service:
    python -m restconf_proxy --upstream http://device:8080/restconf

    or, configured from the environment:
        UPSTREAM_URL=http://device:8080/restconf \\
            uvicorn restconf_proxy.main:create_app --factory --port 9000
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import get_settings, log_configuration
from .models import ErrorResponse, ProxyConfig
from .proxy import ProxyHandler, UpstreamClient, build_proxy_router

logger = logging.getLogger("restconf_proxy.main")


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


def create_app(
    config: Optional[ProxyConfig] = None,
    upstream_client: Optional[UpstreamClient] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        config: Proxy configuration; loaded from the environment when omitted
        upstream_client: Upstream client to use instead of a new pooled one

    Returns:
        FastAPI: Configured application instance

    Raises:
        ConfigurationError: If the configuration is incomplete or invalid
    """
    if config is None:
        config = get_settings().to_proxy_config()

    if upstream_client is None:
        upstream_client = UpstreamClient(
            timeout=config.request_timeout,
            verify_tls=config.verify_tls,
        )

    # Validates the upstream URL before the app can serve anything
    handler = ProxyHandler(config, upstream_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Log the effective configuration on startup and release pooled
        upstream connections on shutdown.
        """
        log_configuration(config, logger)

        yield

        logger.info("Shutting down RESTCONF proxy")
        await upstream_client.aclose()

    app = FastAPI(
        title="RESTCONF Proxy",
        description="Reverse proxy for a RESTCONF device or controller",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        redirect_slashes=False,
    )

    app.state.config = config
    app.state.proxy_handler = handler

    # Health check endpoint
    @app.get("/health", tags=["System"], response_class=PlainTextResponse)
    async def health_check() -> str:
        """Liveness check; does not contact the upstream."""
        return "ok"

    app.include_router(build_proxy_router(config.mount_prefix))

    # Global exception handler
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
                "exception_type": type(exc).__name__,
            },
            exc_info=True,
        )

        body = ErrorResponse(
            error="internal_server_error",
            message="An unexpected error occurred",
            detail=str(exc) if config.log_level == "DEBUG" else None,
        )
        return JSONResponse(status_code=500, content=body.model_dump(mode="json"))

    return app
