"""Username to home directory resolution against LDAP."""

import logging
import math
from typing import Any, Optional

from ldap3 import SUBTREE, Connection
from ldap3.utils.conv import escape_filter_chars

from userdir.bootstrap.config import DirectorySettings
from userdir.directory.session import DirectorySessionManager
from userdir.domain.correlation_id import CorrelationLoggerAdapter
from userdir.domain.errors import DirectoryUnavailable

RESOLVER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("userdir.directory.resolver"), {}
)

RESULT_SUCCESS = 0
RESULT_SIZE_LIMIT_EXCEEDED = 4
RESULT_NO_SUCH_OBJECT = 32


def build_identity_filter(attribute: str, username: str) -> str:
    """Return an RFC 4515 equality filter with the username escaped."""
    return f"({attribute}={escape_filter_chars(username)})"


def first_value(value: Any) -> Optional[str]:
    """Return the first value of an ldap3 attribute as text."""
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    if isinstance(value, bytes):
        return value.decode("utf-8")
    if value is None:
        return None
    return str(value) or None


class DirectoryResolver:
    """Resolve usernames to home directories through the shared session."""

    def __init__(
        self, sessions: DirectorySessionManager, settings: DirectorySettings
    ) -> None:
        self._sessions = sessions
        self._settings = settings

    def resolve(self, username: str) -> Optional[str]:
        """Return the home directory for ``username``, or None.

        None covers both "no such user" and "more than one match"; the caller
        cannot tell them apart. Transport failures raise
        :class:`DirectoryUnavailable`.
        """
        if not username:
            return None
        search_filter = build_identity_filter(
            self._settings.identity_attribute, username
        )
        result_code, entries = self._sessions.execute(
            lambda connection: self._search(connection, search_filter)
        )

        if result_code == RESULT_SIZE_LIMIT_EXCEEDED or len(entries) > 1:
            RESOLVER_LOGGER.warning(
                "Ambiguous identity match",
                extra={"event": "identity_ambiguous", "username": username},
            )
            return None
        if not entries:
            RESOLVER_LOGGER.info(
                "Identity not found",
                extra={"event": "identity_not_found", "username": username},
            )
            return None

        attributes = entries[0].get("attributes") or {}
        home_directory = first_value(attributes.get(self._settings.home_attribute))
        if home_directory is None:
            RESOLVER_LOGGER.warning(
                "Identity has no home directory",
                extra={"event": "home_directory_missing", "username": username},
            )
            return None

        if RESOLVER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            RESOLVER_LOGGER.debug(
                "Identity resolved",
                extra={
                    "event": "identity_resolved",
                    "username": username,
                    "directory": home_directory,
                },
            )
        return home_directory

    def _search(
        self, connection: Connection, search_filter: str
    ) -> tuple[int, list[dict]]:
        connection.search(
            search_base=self._settings.search_base,
            search_filter=search_filter,
            search_scope=SUBTREE,
            attributes=[self._settings.home_attribute],
            size_limit=2,
            time_limit=max(1, math.ceil(self._settings.timeout)),
        )
        result = connection.result or {}
        result_code = result.get("result")
        if result_code not in (
            RESULT_SUCCESS,
            RESULT_SIZE_LIMIT_EXCEEDED,
            RESULT_NO_SUCH_OBJECT,
        ):
            RESOLVER_LOGGER.error(
                "Directory search failed",
                extra={
                    "event": "ldap_search_failed",
                    "result_code": result_code,
                    "reason": result.get("description"),
                },
            )
            raise DirectoryUnavailable("Directory search failed")
        entries = [
            entry
            for entry in connection.response or []
            if entry.get("type") == "searchResEntry"
        ]
        return result_code, entries
