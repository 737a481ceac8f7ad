"""
Relay
=====

Writes the upstream response back to the caller and records the exchange.

- Status code copied verbatim
- Hop-by-hop headers removed, repeated headers kept in order
- Body streamed chunk by chunk (raw bytes, no decoding or buffering)
- Exactly one audit record per proxied request
- Credential headers redacted in diagnostic dumps

Failures after the status line has been sent (caller disconnect, upstream
dying mid-body) cannot change the response any more; they are logged as
ClientStreamError and the upstream response is closed.
"""

import asyncio
import logging
import time
from typing import Iterable, List, Optional, Tuple

import httpx
from fastapi.responses import StreamingResponse
from starlette.requests import ClientDisconnect
from starlette.types import Receive, Scope, Send

from ..errors import ClientStreamError
from .headers import filter_response_headers

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("restconf_proxy.audit")

REDACTED = "REDACTED"

SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-auth-token",
        "x-api-key",
    }
)


# ============================================================================
# Redaction
# ============================================================================

def redact_headers(items: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Replace credential-bearing header values with REDACTED"""
    return [
        (name, REDACTED if name.lower() in SENSITIVE_HEADERS else value)
        for name, value in items
    ]


def format_request_dump(request: httpx.Request) -> str:
    """
    Render an outbound request head for debug logging.

    The body is never included and sensitive header values are redacted.
    """
    target = request.url.raw_path.decode("ascii", errors="replace")
    lines = [f"{request.method} {target} HTTP/1.1"]
    for name, value in redact_headers(request.headers.multi_items()):
        lines.append(f"{name}: {value}")
    return "\n".join(lines)


# ============================================================================
# Audit Logging
# ============================================================================

def log_audit(
    method: str,
    path: str,
    status_code: int,
    bytes_sent: int,
    started: float,
    error: Optional[str] = None,
) -> None:
    """
    Emit the audit record for one proxied request.

    Args:
        method: Inbound HTTP method
        path: Inbound request path
        status_code: Status code returned to the caller
        bytes_sent: Response body bytes relayed
        started: time.perf_counter() value taken when the request arrived
        error: Failure description, if the exchange failed
    """
    elapsed = time.perf_counter() - started
    extra = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "bytes": bytes_sent,
        "elapsed_ms": round(elapsed * 1000, 2),
    }
    if error:
        extra["error"] = error

    audit_logger.info(
        f"<-- {method} {path} {status_code} {bytes_sent}B in {elapsed:.3f}s",
        extra=extra,
    )


# ============================================================================
# Streaming Response
# ============================================================================

class RelayResponse(StreamingResponse):
    """
    StreamingResponse that relays an open upstream httpx response.

    The remaining request deadline bounds body streaming. The upstream
    response is always closed and the audit record always written, however
    the relay ends.
    """

    def __init__(
        self,
        upstream: httpx.Response,
        method: str,
        path: str,
        started: float,
        deadline: float,
    ):
        self.upstream = upstream
        self.method = method
        self.path = path
        self.started = started
        self.deadline = deadline
        self.bytes_sent = 0
        self._completed = False

        super().__init__(self._relay_body(), status_code=upstream.status_code)

        for name, value in filter_response_headers(upstream.headers.multi_items()).multi_items():
            self.headers.append(name, value)

    async def _relay_body(self):
        loop = asyncio.get_running_loop()
        chunks = self.upstream.aiter_raw()
        try:
            while True:
                remaining = self.deadline - loop.time()
                if remaining <= 0:
                    raise ClientStreamError("upstream deadline expired while streaming body", self.bytes_sent)
                try:
                    chunk = await asyncio.wait_for(chunks.__anext__(), timeout=remaining)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError:
                    raise ClientStreamError("upstream deadline expired while streaming body", self.bytes_sent)
                except (httpx.HTTPError, httpx.StreamError) as e:
                    raise ClientStreamError(f"upstream body stream failed: {e}", self.bytes_sent)

                yield chunk
                self.bytes_sent += len(chunk)

            self._completed = True
        finally:
            await self.upstream.aclose()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        error: Optional[ClientStreamError] = None
        try:
            await super().__call__(scope, receive, send)
        except ClientStreamError as e:
            error = e
        except (OSError, ClientDisconnect):
            error = ClientStreamError("caller disconnected", self.bytes_sent)
        except Exception as e:
            error = ClientStreamError(f"relay failed: {e}", self.bytes_sent)
            raise
        finally:
            await self.upstream.aclose()
            if error is None and not self._completed:
                error = ClientStreamError("caller disconnected", self.bytes_sent)
            self._record(error)

    def _record(self, error: Optional[ClientStreamError]) -> None:
        if error is not None:
            logger.warning(
                f"Relay aborted for {self.method} {self.path}: {error}",
                extra={"bytes": self.bytes_sent, "status_code": self.status_code},
            )

        log_audit(
            self.method,
            self.path,
            self.status_code,
            self.bytes_sent,
            self.started,
            error=str(error) if error else None,
        )
