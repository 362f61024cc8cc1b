"""Ownership of the single authenticated directory service session."""

import logging
import threading
import time
from typing import Callable, Optional, TypeVar

from ldap3 import NONE, Connection, Server
from ldap3.core.exceptions import LDAPException

from userdir.bootstrap.config import DirectorySettings
from userdir.directory.discovery import choose_server, discover_ldap_servers
from userdir.domain.correlation_id import CorrelationLoggerAdapter
from userdir.domain.errors import DirectoryUnavailable

SESSION_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("userdir.directory.session"), {}
)

T = TypeVar("T")
ConnectionFactory = Callable[[str, DirectorySettings], Connection]


def open_connection(uri: str, settings: DirectorySettings) -> Connection:
    """Create an unbound ldap3 connection for the given endpoint."""
    server = Server(
        uri,
        use_ssl=uri.lower().startswith("ldaps://"),
        get_info=NONE,
        connect_timeout=settings.timeout,
    )
    return Connection(
        server,
        user=settings.bind_dn,
        password=settings.bind_password,
        read_only=True,
        receive_timeout=settings.timeout,
        raise_exceptions=False,
    )


def _release(connection: Optional[Connection]) -> None:
    """Close a connection that will not be used again, ignoring LDAP errors."""
    if connection is None:
        return
    try:
        connection.unbind()
    except LDAPException:
        pass


class DirectorySessionManager:
    """Owns one shared ldap3 connection and serializes access to it.

    The connection is opened and bound lazily (or eagerly through
    :meth:`start`). A transport failure discards it; reconnect attempts are
    then spaced out with exponential backoff, and callers arriving inside the
    backoff window get :class:`DirectoryUnavailable` without touching the
    network.
    """

    # pylint: disable=too-many-instance-attributes

    def __init__(
        self,
        settings: DirectorySettings,
        connection_factory: ConnectionFactory = open_connection,
        discover: Callable[[str], list[str]] = discover_ldap_servers,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._connection_factory = connection_factory
        self._discover = discover
        self._clock = clock
        self._lock = threading.Lock()
        self._connection: Optional[Connection] = None
        self._server_uri: Optional[str] = None
        self._failures = 0
        self._retry_at = 0.0

    @property
    def connected(self) -> bool:
        """Return True while a bound session is held."""
        with self._lock:
            return self._connection is not None

    @property
    def server_uri(self) -> Optional[str]:
        """Return the endpoint of the current session, if any."""
        return self._server_uri

    def start(self) -> None:
        """Open and bind the session at process startup."""
        with self._lock:
            self._ensure_connection()

    def execute(self, operation: Callable[[Connection], T]) -> T:
        """Run ``operation`` with exclusive access to the bound connection."""
        with self._lock:
            connection = self._ensure_connection()
            try:
                return operation(connection)
            except DirectoryUnavailable as exc:
                if connection.closed:
                    self._discard(exc)
                raise
            except LDAPException as exc:
                self._discard(exc)
                raise DirectoryUnavailable("Directory operation failed") from exc

    def close(self) -> None:
        """Unbind the current session."""
        with self._lock:
            connection, self._connection = self._connection, None
            if connection is None:
                return
            try:
                connection.unbind()
            except LDAPException as exc:
                SESSION_LOGGER.warning(
                    "Directory unbind failed",
                    extra={"event": "ldap_unbind_failed", "error_type": type(exc).__name__},
                )

    def _select_uri(self) -> str:
        if self._settings.uri:
            return self._settings.uri
        return choose_server(self._discover(self._settings.domain))

    def _ensure_connection(self) -> Connection:
        if self._connection is not None:
            return self._connection

        now = self._clock()
        if now < self._retry_at:
            raise DirectoryUnavailable(
                "Directory reconnect deferred", retry_after=self._retry_at - now
            )

        connection = None
        try:
            uri = self._select_uri()
            connection = self._connection_factory(uri, self._settings)
            bound = connection.bind()
        except DirectoryUnavailable:
            self._schedule_retry("discovery")
            raise
        except LDAPException as exc:
            _release(connection)
            self._schedule_retry(type(exc).__name__)
            raise DirectoryUnavailable("Directory connection failed") from exc

        if not bound:
            result = connection.result or {}
            _release(connection)
            self._schedule_retry(str(result.get("description", "bind_rejected")))
            raise DirectoryUnavailable("Directory bind rejected")

        self._connection = connection
        self._server_uri = uri
        self._failures = 0
        self._retry_at = 0.0
        SESSION_LOGGER.info(
            "Directory session bound",
            extra={"event": "ldap_bound", "ldap_server": uri},
        )
        return connection

    def _schedule_retry(self, reason: str) -> None:
        delay = min(
            self._settings.max_backoff,
            self._settings.initial_backoff * (2**self._failures),
        )
        self._failures += 1
        self._retry_at = self._clock() + delay
        SESSION_LOGGER.error(
            "Directory connection attempt failed",
            extra={
                "event": "ldap_connect_failed",
                "reason": reason,
                "attempt": self._failures,
                "backoff_seconds": delay,
            },
        )

    def _discard(self, error: Exception) -> None:
        connection, self._connection = self._connection, None
        SESSION_LOGGER.error(
            "Directory session lost",
            extra={
                "event": "ldap_session_lost",
                "ldap_server": self._server_uri,
                "error_type": type(error).__name__,
            },
        )
        self._server_uri = None
        _release(connection)
