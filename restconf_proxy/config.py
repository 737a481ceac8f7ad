"""
Configuration module for the RESTCONF proxy.

This module uses Pydantic Settings to load and validate environment variables
for the listen address, the upstream RESTCONF device, upstream credentials
and timeouts.

Environment variables are loaded from .env file or system environment.
Command-line flags (see __main__.py) are applied on top as overrides.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

import httpx
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .models import AuthMode, CredentialMode, ProxyConfig


class Settings(BaseSettings):
    """
    Proxy settings loaded from environment variables.

    Only UPSTREAM_URL is required. Credential variables are optional and
    resolved into a single credential policy by ProxyConfig.
    """

    # =========================================================================
    # Listener Configuration
    # =========================================================================

    LISTEN_ADDRESS: str = Field(
        default=":9000",
        description="Listen address for the proxy (host:port, ':port' binds all interfaces)",
    )

    MOUNT_PREFIX: str = Field(
        default="/restconf",
        description="Inbound path prefix under which the upstream API is exposed",
    )

    # =========================================================================
    # Upstream Configuration
    # =========================================================================

    UPSTREAM_URL: str = Field(
        ...,
        description="Upstream RESTCONF base URL (e.g. http://host:port/restconf)",
        min_length=1,
    )

    REQUEST_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Total deadline for one upstream request in seconds",
        gt=0,
        le=3600,
    )

    UPSTREAM_VERIFY_TLS: bool = Field(
        default=True,
        description="Verify the upstream TLS certificate",
    )

    # =========================================================================
    # Upstream Credentials
    # =========================================================================

    UPSTREAM_USERNAME: Optional[str] = Field(
        None,
        description="Upstream basic auth username (optional)",
    )

    UPSTREAM_PASSWORD: Optional[str] = Field(
        None,
        description="Upstream basic auth password (optional)",
    )

    UPSTREAM_BEARER_TOKEN: Optional[str] = Field(
        None,
        description="Bearer token injected into every upstream request (optional)",
    )

    FORWARD_AUTH: bool = Field(
        default=False,
        description="Forward the incoming Authorization header to upstream",
    )

    AUTH_MODE: AuthMode = Field(
        default=AuthMode.AUTO,
        description="Credential policy: auto, forward, bearer, basic or none",
    )

    # =========================================================================
    # Logging
    # =========================================================================

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("UPSTREAM_USERNAME", "UPSTREAM_PASSWORD", "UPSTREAM_BEARER_TOKEN", mode="before")
    @classmethod
    def empty_to_none(cls, v: Any) -> Any:
        """Treat empty environment values as unset"""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("UPSTREAM_URL")
    @classmethod
    def validate_upstream_url(cls, v: str) -> str:
        """
        Validate the upstream base URL and strip trailing slashes.

        Raises:
            ValueError: If the URL is not an absolute http(s) URL
        """
        v = v.strip().rstrip("/")
        try:
            url = httpx.URL(v)
        except httpx.InvalidURL as e:
            raise ValueError(f"Invalid upstream URL '{v}': {e}")

        if url.scheme not in ("http", "https"):
            raise ValueError(
                f"Invalid upstream URL '{v}'. Expected an http:// or https:// URL"
            )
        if not url.host:
            raise ValueError(f"Invalid upstream URL '{v}': missing host")
        if url.query or url.fragment:
            raise ValueError(
                f"Invalid upstream URL '{v}': query strings and fragments are not supported"
            )
        return v

    @field_validator("MOUNT_PREFIX")
    @classmethod
    def validate_mount_prefix(cls, v: str) -> str:
        """Normalize the mount prefix to '/segment' form"""
        v = v.strip()
        if not v.startswith("/"):
            raise ValueError(f"MOUNT_PREFIX must start with '/', got: '{v}'")
        v = v.rstrip("/")
        if not v:
            raise ValueError("MOUNT_PREFIX cannot be '/'")
        if v == "/health":
            raise ValueError("MOUNT_PREFIX cannot shadow the /health endpoint")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of {allowed_levels}, got: {v}")
        return v

    # =========================================================================
    # Conversion
    # =========================================================================

    def to_proxy_config(self) -> ProxyConfig:
        """
        Build the immutable ProxyConfig used by the proxy handler.

        Returns:
            Validated ProxyConfig

        Raises:
            ConfigurationError: If credential material is missing for the
                                selected auth mode, or the listen address
                                cannot be parsed
        """
        if self.AUTH_MODE == AuthMode.BEARER and not self.UPSTREAM_BEARER_TOKEN:
            raise ConfigurationError("AUTH_MODE=bearer requires UPSTREAM_BEARER_TOKEN")

        if self.AUTH_MODE == AuthMode.BASIC and not self.UPSTREAM_USERNAME:
            raise ConfigurationError("AUTH_MODE=basic requires UPSTREAM_USERNAME")

        if self.UPSTREAM_PASSWORD and not self.UPSTREAM_USERNAME:
            raise ConfigurationError("UPSTREAM_PASSWORD is set without UPSTREAM_USERNAME")

        host, port = parse_listen_address(self.LISTEN_ADDRESS)

        return ProxyConfig(
            listen_host=host,
            listen_port=port,
            upstream_base_url=self.UPSTREAM_URL,
            mount_prefix=self.MOUNT_PREFIX,
            upstream_username=self.UPSTREAM_USERNAME,
            upstream_password=self.UPSTREAM_PASSWORD,
            bearer_token=self.UPSTREAM_BEARER_TOKEN,
            forward_incoming_auth=self.FORWARD_AUTH or self.AUTH_MODE == AuthMode.FORWARD,
            auth_mode=self.AUTH_MODE,
            request_timeout=self.REQUEST_TIMEOUT_SECONDS,
            verify_tls=self.UPSTREAM_VERIFY_TLS,
            log_level=self.LOG_LEVEL,
        )


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If UPSTREAM_URL is missing or a value is invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def parse_listen_address(address: str) -> Tuple[str, int]:
    """
    Split a listen address into host and port.

    Accepts "host:port", ":port" (all interfaces) and "[::1]:port".

    Example:
        >>> parse_listen_address(":9000")
        ('0.0.0.0', 9000)
        >>> parse_listen_address("127.0.0.1:8443")
        ('127.0.0.1', 8443)

    Raises:
        ConfigurationError: If the address has no valid port
    """
    host, sep, port_str = address.strip().rpartition(":")
    if not sep:
        raise ConfigurationError(f"Invalid listen address '{address}': expected host:port")

    host = host.strip("[]") or "0.0.0.0"
    try:
        port = int(port_str)
    except ValueError:
        raise ConfigurationError(f"Invalid listen address '{address}': port must be a number")

    if not 1 <= port <= 65535:
        raise ConfigurationError(f"Invalid listen address '{address}': port out of range")

    return host, port


def validate_configuration(config: ProxyConfig) -> Dict[str, Any]:
    """
    Inspect a ProxyConfig and report non-fatal configuration problems.

    Called during startup so that ambiguous credential setups are visible
    in the logs.

    Returns:
        Dictionary with the effective credential mode and any warnings.
    """
    warnings = []
    mode = config.credential_mode

    if mode == CredentialMode.FORWARD and (config.bearer_token or config.upstream_username):
        warnings.append(
            "FORWARD_AUTH is enabled; configured upstream credentials are ignored"
        )

    if mode == CredentialMode.BEARER and config.upstream_username:
        warnings.append(
            "Both a bearer token and basic credentials are configured; bearer token is used"
        )

    if mode in (CredentialMode.BEARER, CredentialMode.BASIC) and config.upstream_base_url.startswith("http://"):
        warnings.append("Upstream credentials are sent over plain HTTP")

    if not config.verify_tls:
        warnings.append("Upstream TLS certificate verification is disabled")

    return {
        "credential_mode": mode.value,
        "warnings": warnings,
    }


def log_configuration(config: ProxyConfig, logger: logging.Logger) -> None:
    """Log the effective configuration without credential values"""
    report = validate_configuration(config)
    logger.info(
        f"RESTCONF proxy listening on {config.listen_address} -> upstream {config.upstream_base_url}",
        extra={
            "listen_address": config.listen_address,
            "upstream": config.upstream_base_url,
            "mount_prefix": config.mount_prefix,
            "credential_mode": report["credential_mode"],
            "request_timeout": config.request_timeout,
        },
    )
    for warning in report["warnings"]:
        logger.warning(warning)
