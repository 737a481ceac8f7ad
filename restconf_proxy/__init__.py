"""
RESTCONF Proxy
==============

A reverse proxy giving a RESTCONF device or controller a stable, locally
reachable HTTP endpoint.

Features:
    - Mount-prefix path mapping with the raw query passed through unchanged
    - Credential normalization: forward, bearer token, basic auth or none
    - Hop-by-hop header stripping in both directions
    - Streamed request and response bodies with a per-request deadline
    - One audit log record per proxied request, credentials redacted

Usage:
    from restconf_proxy import create_app
    from restconf_proxy.models import ProxyConfig

    app = create_app(ProxyConfig(upstream_base_url="http://device:8080/restconf"))
"""

from .main import create_app

__version__ = "1.0.0"

__all__ = ["create_app"]
