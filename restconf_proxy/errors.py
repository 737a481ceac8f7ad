"""
Proxy Error Types
=================

Domain exceptions raised by the proxy components. Route handlers translate
them into HTTP responses; only ConfigurationError is fatal to the process.

    ProxyError
    ├── ConfigurationError   startup only, terminates the process
    ├── MappingError         inbound path cannot be resolved (500)
    ├── UpstreamUnavailable  transport failure reaching upstream (502)
    └── ClientStreamError    relay failed after headers were sent (logged)
"""


class ProxyError(Exception):
    """Base class for all proxy errors"""


class ConfigurationError(ProxyError):
    """Invalid or incomplete configuration detected at startup."""


class MappingError(ProxyError):
    """Inbound path could not be resolved against the upstream base URL."""


class UpstreamUnavailable(ProxyError):
    """
    Upstream could not be reached.

    Covers connection refused, DNS and TLS failures, and the request
    deadline expiring. The message is the underlying transport error.
    """


class ClientStreamError(ProxyError):
    """Response body could not be fully relayed to the caller."""

    def __init__(self, message: str, bytes_sent: int = 0):
        super().__init__(message)
        self.bytes_sent = bytes_sent
