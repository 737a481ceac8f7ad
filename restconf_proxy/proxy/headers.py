"""
Header Policy
=============

Header filtering for both directions of the proxy.

Hop-by-hop headers (RFC 7230 section 6.1) are meaningful only between
directly connected peers and are removed from the upstream request and from
the relayed response. Host is never copied upstream; httpx derives it from
the target URL.

Headers are handled as httpx.Headers, an ordered case-insensitive multimap:
a repeated header name keeps all of its values in their original order.
"""

from typing import Iterable, Tuple

import httpx

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
    }
)

DEFAULT_ACCEPT = "application/yang-data+json, application/json"


def _copy_headers(
    items: Iterable[Tuple[str, str]],
    skip: frozenset,
) -> httpx.Headers:
    return httpx.Headers(
        [(name, value) for name, value in items if name.lower() not in skip]
    )


def filter_request_headers(items: Iterable[Tuple[str, str]]) -> httpx.Headers:
    """
    Copy inbound request headers for the upstream request.

    Drops hop-by-hop headers and Host; every other header is copied
    unmodified, including repeated values.

    Args:
        items: (name, value) pairs, e.g. request.headers.items()

    Returns:
        Header multimap for the upstream request
    """
    return _copy_headers(items, HOP_BY_HOP_HEADERS | {"host"})


def filter_response_headers(items: Iterable[Tuple[str, str]]) -> httpx.Headers:
    """
    Copy upstream response headers for the caller, dropping hop-by-hop headers.

    Args:
        items: (name, value) pairs, e.g. response.headers.multi_items()

    Returns:
        Header multimap for the relayed response
    """
    return _copy_headers(items, HOP_BY_HOP_HEADERS)


def ensure_accept(headers: httpx.Headers) -> httpx.Headers:
    """Default Accept to the YANG JSON encoding when the caller sent none"""
    if not headers.get("accept"):
        headers["Accept"] = DEFAULT_ACCEPT
    return headers
