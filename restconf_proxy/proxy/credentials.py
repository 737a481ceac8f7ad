"""
Credential Injector
===================

Decides which Authorization value, if any, reaches the upstream device.

Precedence (first match wins):
    1. forward   - keep the inbound Authorization header as received
    2. bearer    - Authorization: Bearer <token>, inbound value discarded
    3. basic     - HTTP Basic auth from configured username/password
    4. none      - Authorization removed entirely

Forwarding inbound credentials is opt-in; without configuration an inbound
credential never leaks upstream.
"""

import base64

import httpx

from ..models import CredentialMode, ProxyConfig


def basic_auth_value(username: str, password: str) -> str:
    """Build an HTTP Basic Authorization value"""
    userpass = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(userpass).decode("ascii")


def apply_credentials(headers: httpx.Headers, config: ProxyConfig) -> httpx.Headers:
    """
    Set or remove the Authorization header according to the credential mode.

    Args:
        headers: Filtered upstream request headers (modified in place)
        config: Proxy configuration

    Returns:
        The same header multimap
    """
    mode = config.credential_mode

    if mode == CredentialMode.FORWARD:
        return headers

    # Assigning replaces every existing value, so a repeated inbound
    # Authorization header cannot survive alongside the injected one.
    if mode == CredentialMode.BEARER:
        headers["Authorization"] = f"Bearer {config.bearer_token}"
    elif mode == CredentialMode.BASIC:
        headers["Authorization"] = basic_auth_value(
            config.upstream_username, config.upstream_password or ""
        )
    elif "authorization" in headers:
        del headers["authorization"]

    return headers
