"""
Relay and Upstream Client Tests

Tests for restconf_proxy/proxy/relay.py and restconf_proxy/proxy/client.py.

RelayResponse is driven directly as an ASGI application so that caller
disconnects and broken upstream streams can be simulated precisely.
"""

import asyncio
import logging
import time

import httpx
import pytest

from restconf_proxy.errors import UpstreamUnavailable
from restconf_proxy.proxy.client import UpstreamClient
from restconf_proxy.proxy.relay import (
    REDACTED,
    RelayResponse,
    format_request_dump,
    log_audit,
    redact_headers,
)


UPSTREAM_URL = "http://dev:8080/restconf/data/ietf-interfaces:interfaces"
ASGI_SCOPE = {"type": "http", "asgi": {"version": "3.0", "spec_version": "2.4"}}


# ============================================================================
# Helpers
# ============================================================================

async def open_upstream(handler) -> httpx.Response:
    """Open a streamed response from a mock upstream"""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return await client.send(client.build_request("GET", UPSTREAM_URL), stream=True)


async def run_relay(response: RelayResponse, send=None) -> list:
    """Run a RelayResponse as an ASGI app and collect sent messages"""
    messages = []

    async def receive():
        await asyncio.sleep(60)
        return {"type": "http.disconnect"}

    async def collect(message):
        messages.append(message)

    await response(ASGI_SCOPE, receive, send or collect)
    return messages


def relay_for(upstream: httpx.Response, deadline_in: float = 30.0) -> RelayResponse:
    loop = asyncio.get_running_loop()
    return RelayResponse(
        upstream,
        "GET",
        "/restconf/data/ietf-interfaces:interfaces",
        time.perf_counter(),
        loop.time() + deadline_in,
    )


def audit_records(caplog):
    return [r for r in caplog.records if r.name == "restconf_proxy.audit"]


# ============================================================================
# Redaction Tests
# ============================================================================

def test_redact_headers_masks_credentials():
    """Test credential headers are masked and others untouched"""
    redacted = redact_headers(
        [
            ("Authorization", "Bearer abc"),
            ("Cookie", "session=1"),
            ("X-Auth-Token", "tok"),
            ("Accept", "application/yang-data+json"),
        ]
    )

    assert redacted == [
        ("Authorization", REDACTED),
        ("Cookie", REDACTED),
        ("X-Auth-Token", REDACTED),
        ("Accept", "application/yang-data+json"),
    ]


def test_format_request_dump_redacts_authorization():
    """Test the debug dump shows the request line but never the credential"""
    request = httpx.Request(
        "PATCH",
        UPSTREAM_URL + "?depth=2",
        headers={"Authorization": "Basic YWRtaW46YWRtaW4=", "Content-Type": "application/yang-data+json"},
    )

    dump = format_request_dump(request)

    assert dump.splitlines()[0] == "PATCH /restconf/data/ietf-interfaces:interfaces?depth=2 HTTP/1.1"
    assert "YWRtaW46YWRtaW4=" not in dump
    assert "authorization: REDACTED" in dump
    assert "content-type: application/yang-data+json" in dump


# ============================================================================
# Audit Record Tests
# ============================================================================

def test_log_audit_fields(caplog):
    """Test the audit record carries method, path, status, bytes and elapsed time"""
    caplog.set_level(logging.INFO, logger="restconf_proxy.audit")

    log_audit("GET", "/restconf/data", 200, 7, time.perf_counter())

    [record] = audit_records(caplog)
    assert record.getMessage().startswith("<-- GET /restconf/data 200 7B in ")
    assert record.method == "GET"
    assert record.status_code == 200
    assert record.bytes == 7
    assert not hasattr(record, "error")


def test_log_audit_includes_error(caplog):
    caplog.set_level(logging.INFO, logger="restconf_proxy.audit")

    log_audit("GET", "/restconf/data", 502, 0, time.perf_counter(), error="connection refused")

    [record] = audit_records(caplog)
    assert record.error == "connection refused"


# ============================================================================
# RelayResponse Tests
# ============================================================================

@pytest.mark.asyncio
async def test_relay_streams_body_and_filters_headers(caplog):
    """Test status, headers and body are relayed and the upstream closed"""
    caplog.set_level(logging.INFO, logger="restconf_proxy.audit")

    async def body():
        yield b'{"ietf-interfaces:interfaces":'
        yield b'{"interface":[]}}'

    upstream = await open_upstream(
        lambda request: httpx.Response(
            201,
            headers=[("Content-Type", "application/yang-data+json"), ("Keep-Alive", "timeout=5")],
            content=body(),
        )
    )
    relay = relay_for(upstream)

    messages = await run_relay(relay)

    start = messages[0]
    assert start["status"] == 201
    header_names = [name for name, _ in start["headers"]]
    assert b"content-type" in header_names
    assert b"keep-alive" not in header_names
    assert b"transfer-encoding" not in header_names

    payload = b"".join(m.get("body", b"") for m in messages[1:])
    assert payload == b'{"ietf-interfaces:interfaces":{"interface":[]}}'
    assert messages[-1]["more_body"] is False

    assert upstream.is_closed
    [record] = audit_records(caplog)
    assert record.status_code == 201
    assert record.bytes == len(payload)


@pytest.mark.asyncio
async def test_relay_upstream_failure_mid_body_is_logged(caplog):
    """Test a broken upstream stream is logged, not raised"""
    caplog.set_level(logging.INFO)

    async def body():
        yield b"{"
        raise httpx.ReadError("connection reset by peer")

    upstream = await open_upstream(lambda request: httpx.Response(200, content=body()))
    relay = relay_for(upstream)

    await run_relay(relay)

    assert upstream.is_closed
    assert relay.bytes_sent == 1
    [record] = audit_records(caplog)
    assert "upstream body stream failed" in record.error
    assert any(r.levelno == logging.WARNING and "Relay aborted" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_relay_caller_disconnect_releases_upstream(caplog):
    """Test a caller disconnect closes the upstream response"""
    caplog.set_level(logging.INFO, logger="restconf_proxy.audit")

    async def body():
        yield b"chunk-1"
        yield b"chunk-2"

    upstream = await open_upstream(lambda request: httpx.Response(200, content=body()))
    relay = relay_for(upstream)

    async def broken_send(message):
        if message["type"] == "http.response.body":
            raise OSError("broken pipe")

    await run_relay(relay, send=broken_send)

    assert upstream.is_closed
    [record] = audit_records(caplog)
    assert record.error == "caller disconnected"
    assert record.bytes == 0


@pytest.mark.asyncio
async def test_relay_deadline_expired(caplog):
    """Test body streaming stops once the request deadline has passed"""
    caplog.set_level(logging.INFO, logger="restconf_proxy.audit")

    async def body():
        yield b"{}"

    upstream = await open_upstream(lambda request: httpx.Response(200, content=body()))
    relay = relay_for(upstream, deadline_in=-1)

    await run_relay(relay)

    assert upstream.is_closed
    [record] = audit_records(caplog)
    assert "deadline" in record.error


@pytest.mark.asyncio
async def test_relay_already_read_upstream_is_audited(caplog):
    """Test an upstream body that can no longer be streamed still gets one audit record"""
    caplog.set_level(logging.INFO, logger="restconf_proxy.audit")

    upstream = httpx.Response(200, content=b"{}")
    relay = relay_for(upstream)

    await run_relay(relay)

    assert upstream.is_closed
    [record] = audit_records(caplog)
    assert record.status_code == 200
    assert "upstream body stream failed" in record.error


@pytest.mark.asyncio
async def test_relay_unexpected_send_failure_is_audited(caplog):
    """Test an unexpected error while sending is raised after the audit record is written"""
    caplog.set_level(logging.INFO, logger="restconf_proxy.audit")

    async def body():
        yield b"{}"

    upstream = await open_upstream(lambda request: httpx.Response(200, content=body()))
    relay = relay_for(upstream)

    async def failing_send(message):
        if message["type"] == "http.response.body":
            raise RuntimeError("send channel broken")

    with pytest.raises(RuntimeError, match="send channel broken"):
        await run_relay(relay, send=failing_send)

    assert upstream.is_closed
    [record] = audit_records(caplog)
    assert record.error == "relay failed: send channel broken"


# ============================================================================
# Upstream Client Tests
# ============================================================================

@pytest.mark.asyncio
async def test_client_wraps_connect_error():
    """Test transport failures surface as UpstreamUnavailable"""

    def handler(request):
        raise httpx.ConnectError("[Errno 111] Connection refused")

    upstream = UpstreamClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    request = upstream.build_request("GET", UPSTREAM_URL, httpx.Headers())

    with pytest.raises(UpstreamUnavailable, match="Connection refused"):
        await upstream.send(request)

    await upstream.aclose()


@pytest.mark.asyncio
async def test_client_deadline():
    """Test a slow upstream is cut off at the configured deadline"""

    async def handler(request):
        await asyncio.sleep(5)
        return httpx.Response(200)

    upstream = UpstreamClient(
        timeout=0.05,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    request = upstream.build_request("GET", UPSTREAM_URL, httpx.Headers())

    with pytest.raises(UpstreamUnavailable, match="within"):
        await upstream.send(request)

    await upstream.aclose()


@pytest.mark.asyncio
async def test_client_returns_unread_stream():
    """Test the response body is left open for the relay"""

    async def body():
        yield b'{"a":1}'

    upstream = UpstreamClient(
        client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, content=body()))
        )
    )
    request = upstream.build_request("GET", UPSTREAM_URL, httpx.Headers({"Accept": "application/yang-data+json"}))

    response = await upstream.send(request)

    assert response.status_code == 200
    assert not response.is_stream_consumed
    assert await response.aread() == b'{"a":1}'
    await response.aclose()
    await upstream.aclose()


@pytest.mark.asyncio
async def test_client_streams_request_body():
    """Test an async body iterator is sent without buffering by the proxy"""
    received = {}

    def handler(request):
        received["body"] = request.content
        received["headers"] = request.headers
        return httpx.Response(204)

    async def body():
        yield b'{"ietf-system:system":'
        yield b'{"hostname":"r1"}}'

    upstream = UpstreamClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    request = upstream.build_request("PUT", UPSTREAM_URL, httpx.Headers(), body())

    response = await upstream.send(request)
    await response.aclose()

    assert response.status_code == 204
    assert received["body"] == b'{"ietf-system:system":{"hostname":"r1"}}'
    assert received["headers"]["transfer-encoding"] == "chunked"
    await upstream.aclose()
