"""
Proxy Package
=============

This package implements the RESTCONF forwarding path: every request under
the mount prefix is mapped onto the upstream base URL, its headers and
credentials normalized, and the upstream response streamed back.

Main Components:
----------------
- headers.py: hop-by-hop filtering and Accept defaulting
- credentials.py: Authorization policy (forward / bearer / basic / none)
- mapper.py: inbound path to upstream URL mapping
- client.py: shared httpx client with a per-request deadline
- relay.py: streamed response relay, audit records, log redaction
- routes.py: ProxyHandler orchestrator and router factory

Usage:
------
    from restconf_proxy.proxy import ProxyHandler, build_proxy_router
    app.include_router(build_proxy_router(config.mount_prefix))
"""

from .client import UpstreamClient
from .routes import ProxyHandler, build_proxy_router, get_proxy_handler

__all__ = [
    "ProxyHandler",
    "UpstreamClient",
    "build_proxy_router",
    "get_proxy_handler",
]
