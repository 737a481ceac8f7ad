"""
Proxy Routes - Upstream RESTCONF Forwarding
===========================================

This module implements the proxy endpoint that forwards every request under
the mount prefix to the upstream RESTCONF device.

Request Flow:
-------------
1. Map the inbound path and raw query onto the upstream base URL
2. Copy inbound headers without hop-by-hop headers and Host
3. Apply the credential policy (forward / bearer / basic / none)
4. Default Accept to application/yang-data+json
5. Send upstream with the inbound body streamed through
6. Relay status, filtered headers and streamed body; write the audit record

Error Mapping:
--------------
- MappingError         -> 500
- UpstreamUnavailable  -> 502 (not retried)

Endpoints:
----------
- ANY <prefix>
- ANY <prefix>/{path}
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response

from ..errors import MappingError, UpstreamUnavailable
from ..models import ProxyConfig
from .client import UpstreamClient
from .credentials import apply_credentials
from .headers import ensure_accept, filter_request_headers
from .mapper import RequestMapper
from .relay import RelayResponse, format_request_dump, log_audit

logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


# ============================================================================
# Request Helpers
# ============================================================================

def _raw_path(request: Request) -> str:
    """Request path as sent by the caller, percent-encoding intact"""
    raw_path = request.scope.get("raw_path")
    if isinstance(raw_path, (bytes, bytearray)) and raw_path:
        return raw_path.decode("latin-1")
    return request.url.path


def _has_body(request: Request) -> bool:
    content_length = request.headers.get("content-length")
    if content_length is not None:
        return content_length.strip() != "0"
    return "transfer-encoding" in request.headers


async def _stream_body(request: Request) -> AsyncIterator[bytes]:
    async for chunk in request.stream():
        if chunk:
            yield chunk


# ============================================================================
# Proxy Handler
# ============================================================================

class ProxyHandler:
    """
    Orchestrates one proxied request.

    Holds only read-only state (configuration, mapper) and the shared
    upstream client, so concurrent requests never interfere.
    """

    def __init__(self, config: ProxyConfig, upstream_client: UpstreamClient):
        self.config = config
        self.upstream_client = upstream_client
        self.mapper = RequestMapper(config.upstream_base_url, config.mount_prefix)

    async def handle(self, request: Request) -> Response:
        """
        Proxy a request to the upstream device.

        Returns:
            RelayResponse streaming the upstream response

        Raises:
            HTTPException: 500 on mapping failure, 502 when upstream is unavailable
        """
        started = time.perf_counter()
        method = request.method
        path = request.url.path

        try:
            target_url = self.mapper.build_url(_raw_path(request), request.url.query)
        except MappingError as e:
            logger.error(f"Cannot map {method} {path}: {e}")
            log_audit(method, path, status.HTTP_500_INTERNAL_SERVER_ERROR, 0, started, error=str(e))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"failed to create upstream request: {e}",
            )

        headers = filter_request_headers(request.headers.items())
        apply_credentials(headers, self.config)
        ensure_accept(headers)

        body: Optional[AsyncIterator[bytes]] = _stream_body(request) if _has_body(request) else None
        upstream_request = self.upstream_client.build_request(method, target_url, headers, body)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"--> {method} {target_url}\n{format_request_dump(upstream_request)}")

        deadline = asyncio.get_running_loop().time() + self.upstream_client.timeout
        try:
            upstream = await self.upstream_client.send(upstream_request)
        except UpstreamUnavailable as e:
            logger.error(
                f"Upstream error for {method} {path}: {e}",
                extra={"upstream": target_url},
            )
            log_audit(method, path, status.HTTP_502_BAD_GATEWAY, 0, started, error=str(e))
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"upstream error: {e}",
            )

        return RelayResponse(upstream, method, path, started, deadline)


# ============================================================================
# Dependencies
# ============================================================================

def get_proxy_handler(request: Request) -> ProxyHandler:
    """
    Dependency to get the proxy handler from app state.

    Raises:
        HTTPException: 503 if the application was built without a handler
    """
    handler = getattr(request.app.state, "proxy_handler", None)
    if handler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Proxy handler not initialized",
        )
    return handler


# ============================================================================
# Router
# ============================================================================

def build_proxy_router(mount_prefix: str) -> APIRouter:
    """
    Create the router serving every method at the mount prefix.

    Both "<prefix>" and "<prefix>/..." are routed; anything else falls
    through to the application's 404.
    """
    proxy_router = APIRouter(tags=["RESTCONF Proxy"])

    async def proxy_request(
        request: Request,
        handler: ProxyHandler = Depends(get_proxy_handler),
    ) -> Response:
        return await handler.handle(request)

    prefix = mount_prefix.rstrip("/")
    proxy_router.add_api_route(prefix, proxy_request, methods=PROXY_METHODS, include_in_schema=False)
    proxy_router.add_api_route(
        prefix + "/{path:path}", proxy_request, methods=PROXY_METHODS, include_in_schema=False
    )
    return proxy_router
