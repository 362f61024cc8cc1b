"""Request authorization gate invoked before the user directory handler."""

import hmac
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Union

from userdir.bootstrap.config import PRIVATE_PREFIX
from userdir.domain.correlation_id import CorrelationLoggerAdapter
from userdir.domain.http_types import HttpRequest

AUTH_LOGGER = CorrelationLoggerAdapter(logging.getLogger("userdir.security.auth"), {})

API_KEY_HEADER = "x-api-key"
BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class Allow:
    """The request may proceed to the handler."""


@dataclass(frozen=True)
class Deny:
    """The request is rejected; ``reason`` is for logs only."""

    reason: str


Decision = Union[Allow, Deny]


class AuthorizationGate(Protocol):  # pylint: disable=too-few-public-methods
    """Capability check run strictly before request handling."""

    def check(self, request: HttpRequest) -> Decision:
        """Return Allow or Deny for the request."""


class PublicOnlyGate:  # pylint: disable=too-few-public-methods
    """Gate used when no API keys are configured.

    Public trees are open; private trees stay closed since there is no
    credential that could unlock them.
    """

    def check(self, request: HttpRequest) -> Decision:
        """Allow public routes and deny private ones."""
        if request.path.startswith(PRIVATE_PREFIX):
            return Deny("no api keys configured")
        return Allow()


def presented_key(request: HttpRequest) -> Optional[str]:
    """Extract the API key from ``X-API-Key`` or a bearer Authorization header."""
    key = request.headers.get(API_KEY_HEADER)
    if key:
        return key.strip()
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX) :].strip() or None
    return None


class ApiKeyGate:  # pylint: disable=too-few-public-methods
    """Gate that requires one of a fixed set of API keys."""

    def __init__(self, keys: Iterable[str]) -> None:
        self._keys = [key.encode() for key in keys if key]
        if not self._keys:
            raise ValueError("ApiKeyGate requires at least one key")

    def check(self, request: HttpRequest) -> Decision:
        """Compare the presented key against every configured key."""
        key = presented_key(request)
        if key is None:
            return Deny("missing api key")
        candidate = key.encode()
        matched = False
        for expected in self._keys:
            matched |= hmac.compare_digest(candidate, expected)
        if not matched:
            return Deny("invalid api key")
        return Allow()


def build_gate(keys: Iterable[str]) -> AuthorizationGate:
    """Return an ApiKeyGate, or an PublicOnlyGate when no keys are configured."""
    configured = [key for key in keys if key]
    if not configured:
        AUTH_LOGGER.warning(
            "No API keys configured; public routes are open, private routes are closed",
            extra={"event": "auth_gate_open"},
        )
        return PublicOnlyGate()
    return ApiKeyGate(configured)
