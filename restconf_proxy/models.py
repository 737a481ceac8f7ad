"""
Data Models Module

Pydantic models shared across the proxy:
- ProxyConfig: immutable runtime configuration handed to the proxy handler
- CredentialMode / AuthMode: which credential source reaches the upstream
- ErrorResponse: body returned by the global exception handler
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


# ============================================================================
# Credential Modes
# ============================================================================

class CredentialMode(str, Enum):
    """Effective credential policy applied to every upstream request."""

    FORWARD = "forward"
    BEARER = "bearer"
    BASIC = "basic"
    NONE = "none"


class AuthMode(str, Enum):
    """Configured auth mode; AUTO resolves by precedence."""

    AUTO = "auto"
    FORWARD = "forward"
    BEARER = "bearer"
    BASIC = "basic"
    NONE = "none"


# ============================================================================
# Proxy Configuration
# ============================================================================

class ProxyConfig(BaseModel):
    """
    Immutable proxy configuration, built once at startup.

    Instances are produced by Settings.to_proxy_config(), which performs
    all validation. The proxy handler only ever reads from it.
    """

    model_config = ConfigDict(frozen=True)

    listen_host: str = Field(default="0.0.0.0", description="Interface to bind")
    listen_port: int = Field(default=9000, ge=1, le=65535, description="Port to bind")
    upstream_base_url: str = Field(..., description="Upstream RESTCONF base URL, no trailing slash")
    mount_prefix: str = Field(default="/restconf", description="Inbound path prefix stripped before forwarding")
    upstream_username: Optional[str] = Field(None, description="Upstream basic auth username")
    upstream_password: Optional[str] = Field(None, description="Upstream basic auth password")
    bearer_token: Optional[str] = Field(None, description="Upstream bearer token")
    forward_incoming_auth: bool = Field(default=False, description="Forward inbound Authorization header")
    auth_mode: AuthMode = Field(default=AuthMode.AUTO, description="Pinned credential mode or auto")
    request_timeout: float = Field(default=30.0, gt=0, description="Total upstream deadline in seconds")
    verify_tls: bool = Field(default=True, description="Verify upstream TLS certificates")
    log_level: str = Field(default="INFO", description="Logging level")

    @model_validator(mode="after")
    def check_credential_material(self) -> "ProxyConfig":
        """A pinned credential mode must have the credential it sends."""
        if self.auth_mode == AuthMode.BEARER and not self.bearer_token:
            raise ValueError("auth_mode 'bearer' requires bearer_token")
        if self.auth_mode == AuthMode.BASIC and not self.upstream_username:
            raise ValueError("auth_mode 'basic' requires upstream_username")
        if self.upstream_password and not self.upstream_username:
            raise ValueError("upstream_password is set without upstream_username")
        return self

    @computed_field
    @property
    def credential_mode(self) -> CredentialMode:
        """
        Resolve the single credential policy for this configuration.

        An explicit auth_mode wins. In auto mode the first matching rule
        applies: forward inbound auth, bearer token, basic credentials,
        otherwise strip Authorization.
        """
        if self.auth_mode != AuthMode.AUTO:
            return CredentialMode(self.auth_mode.value)
        if self.forward_incoming_auth:
            return CredentialMode.FORWARD
        if self.bearer_token:
            return CredentialMode.BEARER
        if self.upstream_username:
            return CredentialMode.BASIC
        return CredentialMode.NONE

    @property
    def listen_address(self) -> str:
        return f"{self.listen_host}:{self.listen_port}"


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Error timestamp")
