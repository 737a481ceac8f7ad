"""
Command-line entry point.

    python -m restconf_proxy --listen :9000 --upstream http://device:8080/restconf

Flags override the corresponding environment variables (see config.py).
Configuration errors are reported and the process exits before listening.
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

import uvicorn
from pydantic import ValidationError

from .config import Settings
from .errors import ConfigurationError
from .main import create_app, setup_logging

logger = logging.getLogger("restconf_proxy")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="restconf-proxy",
        description="Reverse proxy for a RESTCONF device or controller",
    )
    parser.add_argument("--listen", help="listen address for proxy (default :9000)")
    parser.add_argument("--upstream", help="upstream RESTCONF base URL (e.g. http://host:port/restconf)")
    parser.add_argument("--prefix", help="inbound mount prefix (default /restconf)")
    parser.add_argument("--upuser", help="upstream basic auth username")
    parser.add_argument("--uppass", help="upstream basic auth password")
    parser.add_argument("--token", help="upstream bearer token")
    parser.add_argument(
        "--auth-mode",
        choices=["auto", "forward", "bearer", "basic", "none"],
        help="pin the credential policy (default auto)",
    )
    parser.add_argument(
        "--forward-auth",
        action="store_true",
        default=None,
        help="forward the incoming Authorization header to upstream",
    )
    parser.add_argument("--timeout", type=float, help="upstream request timeout in seconds (default 30)")
    parser.add_argument(
        "--insecure",
        action="store_true",
        default=None,
        help="skip upstream TLS certificate verification",
    )
    parser.add_argument("--log-level", help="logging level (default INFO)")
    return parser


def settings_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Map parsed flags onto Settings field names, skipping unset flags"""
    overrides = {
        "LISTEN_ADDRESS": args.listen,
        "UPSTREAM_URL": args.upstream,
        "MOUNT_PREFIX": args.prefix,
        "UPSTREAM_USERNAME": args.upuser,
        "UPSTREAM_PASSWORD": args.uppass,
        "UPSTREAM_BEARER_TOKEN": args.token,
        "AUTH_MODE": args.auth_mode,
        "FORWARD_AUTH": args.forward_auth,
        "REQUEST_TIMEOUT_SECONDS": args.timeout,
        "UPSTREAM_VERIFY_TLS": False if args.insecure else None,
        "LOG_LEVEL": args.log_level,
    }
    return {key: value for key, value in overrides.items() if value is not None}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = Settings(**settings_overrides(args))
        config = settings.to_proxy_config()
    except (ValidationError, ConfigurationError) as e:
        setup_logging("INFO")
        logger.critical(f"Invalid configuration: {e}")
        return 1

    setup_logging(config.log_level)

    try:
        app = create_app(config)
    except ConfigurationError as e:
        logger.critical(f"Invalid configuration: {e}")
        return 1

    uvicorn.run(
        app,
        host=config.listen_host,
        port=config.listen_port,
        log_level=config.log_level.lower(),
        server_header=False,
        date_header=False,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
