"""
Request Mapper
==============

Maps an inbound path under the mount prefix onto the upstream RESTCONF
base URL.

Example:
    upstream base   http://dev:8080/restconf
    mount prefix    /restconf
    inbound         /restconf/data/ietf-interfaces:interfaces?depth=2
    upstream target http://dev:8080/restconf/data/ietf-interfaces:interfaces?depth=2

The raw query string is appended unchanged; no parameter is decoded or
re-encoded.
"""

from typing import Optional
from urllib.parse import urlsplit

from ..errors import ConfigurationError, MappingError


class RequestMapper:
    """
    Builds upstream target URLs.

    The upstream base URL is validated once, at construction; mapping a
    request afterwards only fails for paths outside the mount prefix.
    """

    def __init__(self, upstream_base_url: str, mount_prefix: str = "/restconf"):
        try:
            parts = urlsplit(upstream_base_url.strip())
            hostname = parts.hostname
        except ValueError as e:
            raise ConfigurationError(f"invalid upstream URL '{upstream_base_url}': {e}")

        if parts.scheme not in ("http", "https") or not hostname:
            raise ConfigurationError(
                f"invalid upstream URL '{upstream_base_url}': expected http(s)://host[:port]/path"
            )
        if parts.query or parts.fragment:
            raise ConfigurationError(
                f"invalid upstream URL '{upstream_base_url}': query and fragment are not allowed"
            )

        # Kept as written so the base path is never re-encoded
        self._origin = f"{parts.scheme}://{parts.netloc}"
        self._base_path = parts.path.rstrip("/")
        self._prefix = mount_prefix.rstrip("/")

    @property
    def base_path(self) -> str:
        return self._base_path

    def matches(self, path: str) -> bool:
        """True if path is the mount prefix or lies beneath it"""
        return path == self._prefix or path.startswith(self._prefix + "/")

    def map_path(self, path: str) -> str:
        """
        Strip the mount prefix and join the rest onto the upstream base path.

        Exactly one slash separates the two parts regardless of how either
        one is terminated. A path equal to the prefix maps to the base path.

        Raises:
            MappingError: If path is not under the mount prefix
        """
        if not self.matches(path):
            raise MappingError(
                f"path '{path}' is not under mount prefix '{self._prefix}'"
            )

        suffix = path[len(self._prefix):]
        if not suffix:
            return self._base_path
        return self._base_path + "/" + suffix.lstrip("/")

    def build_url(self, path: str, raw_query: Optional[str] = None) -> str:
        """
        Build the full upstream URL for an inbound path and raw query.

        Args:
            path: Inbound request path, percent-encoding preserved
            raw_query: Inbound query string without the leading '?'

        Returns:
            Absolute upstream URL
        """
        target = self._origin + self.map_path(path)
        if raw_query:
            target += "?" + raw_query
        return target
