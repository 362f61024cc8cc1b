"""Request routing logic."""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from userdir.bootstrap.config import (
    PRIVATE_PREFIX,
    PRIVATE_SUB_ROOT,
    PUBLIC_PREFIX,
    PUBLIC_SUB_ROOT,
    SECURITY_HEADERS,
)
from userdir.domain.correlation_id import CorrelationLoggerAdapter
from userdir.domain.http_types import HttpRequest, HttpResponse
from userdir.domain.response_builders import (
    not_found_response,
    redirect_response,
    unauthorized_response,
)
from userdir.handlers.system_handlers import handle_healthz
from userdir.handlers.userdir_handler import UserdirHandler
from userdir.lifecycle.state import ServerLifecycle
from userdir.security.authorization import AuthorizationGate, Deny

ROUTER_LOGGER = CorrelationLoggerAdapter(logging.getLogger("userdir.pipeline.router"), {})

# Longest prefix first: "/priv/~" must win over "/~".
USER_ROUTES = (
    (PRIVATE_PREFIX, PRIVATE_SUB_ROOT),
    (PUBLIC_PREFIX, PUBLIC_SUB_ROOT),
)


@dataclass(frozen=True)
class UserRoute:
    """A request path split into its user directory components."""

    prefix: str
    sub_root: str
    username: str
    relative_path: Optional[str]


def match_user_route(path: str) -> Optional[UserRoute]:
    """Split ``/~user/rest`` or ``/priv/~user/rest`` into its parts.

    ``relative_path`` is None when the path stops right after the username
    (no slash), which the caller answers with a redirect.
    """
    for prefix, sub_root in USER_ROUTES:
        if not path.startswith(prefix):
            continue
        username, separator, relative_path = path[len(prefix) :].partition("/")
        return UserRoute(
            prefix, sub_root, username, relative_path if separator else None
        )
    return None


def route_request(
    request: HttpRequest,
    handler: UserdirHandler,
    gate: AuthorizationGate,
    lifecycle: Optional[ServerLifecycle] = None,
) -> HttpResponse:
    """Route the request to the appropriate handler and return a response."""
    if request.path == "/healthz":
        return handle_healthz(lifecycle)

    route = match_user_route(request.path)
    if route is None or not route.username:
        ROUTER_LOGGER.info(
            "No matching route found",
            extra={
                "event": "route_not_found",
                "route": request.path,
                "method": request.method,
            },
        )
        return not_found_response(request, SECURITY_HEADERS)

    decision = gate.check(request)
    if isinstance(decision, Deny):
        ROUTER_LOGGER.warning(
            "Request denied by authorization gate",
            extra={
                "event": "auth_denied",
                "route": request.path,
                "reason": decision.reason,
            },
        )
        return unauthorized_response(request, SECURITY_HEADERS)

    if route.relative_path is None:
        location = quote(f"{route.prefix}{route.username}/", safe="/~")
        return redirect_response(location, request, SECURITY_HEADERS)

    if ROUTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ROUTER_LOGGER.debug(
            "Route matched",
            extra={
                "event": "route_matched",
                "route": route.prefix,
                "username": route.username,
            },
        )
    return handler.serve(
        request, route.prefix, route.username, route.sub_root, route.relative_path
    )
