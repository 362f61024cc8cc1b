"""Server configuration and CLI argument parsing."""

import argparse
import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value is not None else default


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    return value if value else default


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


DEFAULT_MAX_CONNECTIONS = _env_int("USERDIR_MAX_CONNECTIONS", 200)
DEFAULT_MAX_CONNECTIONS_PER_IP = _env_int("USERDIR_MAX_CONNECTIONS_PER_IP", 20)
DEFAULT_SOCKET_TIMEOUT = _env_int("USERDIR_SOCKET_TIMEOUT", 60)
DEFAULT_SHUTDOWN_GRACE_SECONDS = _env_int("USERDIR_SHUTDOWN_GRACE_SECONDS", 30)
DEFAULT_LDAP_DOMAIN = _env_str("USERDIR_LDAP_DOMAIN", "csh.rit.edu")
DEFAULT_LDAP_SEARCH_BASE = _env_str(
    "USERDIR_LDAP_SEARCH_BASE", "cn=users,cn=accounts,dc=csh,dc=rit,dc=edu"
)
DEFAULT_LDAP_TIMEOUT = _env_float("USERDIR_LDAP_TIMEOUT", 5.0)

MAX_HEADER_BYTES = 16 * 1024
HEADER_DELIMITER = b"\r\n\r\n"
ALLOWED_METHODS = {"GET", "HEAD"}

PUBLIC_PREFIX = "/~"
PRIVATE_PREFIX = "/priv/~"
PUBLIC_SUB_ROOT = "public_html"
PRIVATE_SUB_ROOT = ".html_pages"
INDEX_DOCUMENT = "index.html"

SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
    "Content-Security-Policy": "default-src 'self'",
    "X-Content-Type-Options": "nosniff",
}


class ConfigurationError(Exception):
    """Raised when required startup configuration is missing or invalid."""


@dataclass
class ServerConfig:
    """Server configuration including timeouts and shutdown settings."""

    socket_timeout: int
    shutdown_grace_seconds: int


@dataclass(frozen=True)
class DirectorySettings:
    """Connection and query settings for the LDAP directory."""

    # pylint: disable=too-many-instance-attributes

    bind_dn: str
    bind_password: str
    search_base: str
    domain: str
    uri: Optional[str] = None
    identity_attribute: str = "uid"
    home_attribute: str = "homeDirectory"
    timeout: float = 5.0
    initial_backoff: float = 1.0
    max_backoff: float = 60.0


def load_api_keys() -> list[str]:
    """Return the API keys accepted by the authorization gate."""
    return _env_list("USERDIR_API_KEYS", [])


def directory_settings_from(args: argparse.Namespace) -> DirectorySettings:
    """Build directory settings from CLI arguments and secret env vars."""
    bind_dn = os.getenv("USERDIR_BIND_DN")
    bind_password = os.getenv("USERDIR_BIND_PW")
    if not bind_dn or not bind_password:
        raise ConfigurationError("USERDIR_BIND_DN and USERDIR_BIND_PW must be set")
    if not args.ldap_uri and not args.ldap_domain:
        raise ConfigurationError("Either --ldap-uri or --ldap-domain is required")
    return DirectorySettings(
        bind_dn=bind_dn,
        bind_password=bind_password,
        search_base=args.ldap_search_base,
        domain=args.ldap_domain,
        uri=args.ldap_uri,
        timeout=args.ldap_timeout,
    )


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(description="Per-user home directory web server")
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--cert", help="Path to TLS certificate file")
    parser.add_argument("--key", help="Path to TLS private key file")
    default_log_level = os.getenv("USERDIR_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("USERDIR_LOG_DESTINATION", "stdout")
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--max-connections",
        type=int,
        default=DEFAULT_MAX_CONNECTIONS,
        help="Maximum concurrent connections (0 for unlimited)",
    )
    parser.add_argument(
        "--max-connections-per-ip",
        type=int,
        default=DEFAULT_MAX_CONNECTIONS_PER_IP,
        help="Maximum concurrent connections per client IP (0 for unlimited)",
    )
    parser.add_argument(
        "--socket-timeout",
        type=int,
        default=DEFAULT_SOCKET_TIMEOUT,
        help="Socket timeout in seconds for request processing",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        type=int,
        default=DEFAULT_SHUTDOWN_GRACE_SECONDS,
        help="Grace period in seconds for graceful shutdown",
    )
    parser.add_argument(
        "--ldap-uri",
        default=_env_str("USERDIR_LDAP_URI", None),
        help="LDAP server URI; skips SRV discovery when set",
    )
    parser.add_argument(
        "--ldap-domain",
        default=DEFAULT_LDAP_DOMAIN,
        help="DNS domain queried for _ldap._tcp SRV records",
    )
    parser.add_argument(
        "--ldap-search-base",
        default=DEFAULT_LDAP_SEARCH_BASE,
        help="Base DN searched for user entries",
    )
    parser.add_argument(
        "--ldap-timeout",
        type=float,
        default=DEFAULT_LDAP_TIMEOUT,
        help="Timeout in seconds for directory operations",
    )
    return parser.parse_args(argv)
