"""
Upstream Client
===============

Issues mapped requests to the upstream RESTCONF device over one shared
httpx.AsyncClient (connections are pooled across requests).

Every request runs under a single deadline of request_timeout seconds,
covering connect, response headers and body streaming. Transport failures
and an expired deadline surface as UpstreamUnavailable. Nothing is retried.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

import httpx

from ..errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class UpstreamClient:
    """
    Thin wrapper around httpx.AsyncClient for upstream calls.

    Args:
        timeout: Total deadline per request in seconds
        verify_tls: Verify the upstream TLS certificate
        client: Pre-built httpx client (tests inject one with a MockTransport)
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify_tls: bool = True,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            verify=verify_tls,
            follow_redirects=False,
        )

    def build_request(
        self,
        method: str,
        url: str,
        headers: httpx.Headers,
        body: Optional[AsyncIterator[bytes]] = None,
    ) -> httpx.Request:
        """
        Build the upstream request.

        The body is passed through as an async byte stream and is never
        buffered. With no body the request carries no content at all.
        """
        return self._client.build_request(method, url, headers=headers, content=body)

    async def send(self, request: httpx.Request) -> httpx.Response:
        """
        Send a request and return the response with its body still unread.

        The caller must close the returned response (response.aclose()).

        Raises:
            UpstreamUnavailable: On any transport error or when the deadline
                                 expires before response headers arrive
        """
        try:
            return await asyncio.wait_for(
                self._client.send(request, stream=True),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise UpstreamUnavailable(
                f"no response from {request.url.host} within {self.timeout:g}s"
            )
        except httpx.TransportError as e:
            raise UpstreamUnavailable(_describe(e))

    async def aclose(self) -> None:
        await self._client.aclose()


def _describe(exc: httpx.TransportError) -> str:
    message = str(exc)
    if not message:
        message = type(exc).__name__
    return message
