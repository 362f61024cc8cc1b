"""Unit tests for request routing and the authorization gate ordering."""

from unittest.mock import MagicMock

import pytest

from userdir.domain.http_types import HttpRequest, HttpResponse
from userdir.handlers.userdir_handler import UserdirHandler
from userdir.lifecycle.state import ServerLifecycle
from userdir.pipeline.router import UserRoute, match_user_route, route_request
from userdir.security.authorization import Allow, Deny, build_gate


def make_request(path: str, headers: dict | None = None) -> HttpRequest:
    """Construct a GET request."""
    return HttpRequest("GET", path, headers or {}, b"")


@pytest.fixture(name="handler")
def fixture_handler():
    """Handler double returning a canned response."""
    handler = MagicMock(spec=UserdirHandler)
    handler.serve.return_value = HttpResponse(200, {}, b"served", False)
    return handler


@pytest.fixture(name="gate")
def fixture_gate():
    """Gate double that allows by default."""
    gate = MagicMock()
    gate.check.return_value = Allow()
    return gate


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/~jdoe/", UserRoute("/~", "public_html", "jdoe", "")),
        ("/~jdoe/a/b.txt", UserRoute("/~", "public_html", "jdoe", "a/b.txt")),
        ("/~jdoe//", UserRoute("/~", "public_html", "jdoe", "/")),
        ("/~jdoe", UserRoute("/~", "public_html", "jdoe", None)),
        ("/priv/~jdoe/x", UserRoute("/priv/~", ".html_pages", "jdoe", "x")),
        ("/priv/~jdoe", UserRoute("/priv/~", ".html_pages", "jdoe", None)),
        ("/jdoe/x", None),
        ("/priv/jdoe/x", None),
    ],
)
def test_match_user_route(path: str, expected) -> None:
    """Public and private prefixes are told apart."""
    assert match_user_route(path) == expected


def test_public_route_dispatches_to_handler(handler, gate) -> None:
    """Public requests reach the handler with the public sub-root."""
    request = make_request("/~jdoe/notes.txt")
    response = route_request(request, handler, gate)
    assert response.body == b"served"
    handler.serve.assert_called_once_with(
        request, "/~", "jdoe", "public_html", "notes.txt"
    )


def test_private_route_dispatches_with_private_sub_root(handler, gate) -> None:
    """Private requests use .html_pages."""
    request = make_request("/priv/~jdoe/")
    route_request(request, handler, gate)
    handler.serve.assert_called_once_with(request, "/priv/~", "jdoe", ".html_pages", "")


@pytest.mark.parametrize("path", ["/~jdoe/notes.txt", "/priv/~jdoe/secret.txt"])
def test_denied_requests_never_reach_handler(handler, gate, path: str) -> None:
    """The gate runs strictly before the handler."""
    gate.check.return_value = Deny("missing api key")
    response = route_request(make_request(path), handler, gate)
    assert response.status == 401
    assert "WWW-Authenticate" in response.headers
    assert b"missing api key" not in response.body
    handler.serve.assert_not_called()


def test_private_route_is_closed_without_configured_keys(handler) -> None:
    """With no API keys configured, private trees answer 401 and stay unread."""
    gate = build_gate([])
    response = route_request(make_request("/priv/~jdoe/secret.txt"), handler, gate)
    assert response.status == 401
    handler.serve.assert_not_called()

    public = route_request(make_request("/~jdoe/notes.txt"), handler, gate)
    assert public.body == b"served"


def test_username_without_slash_redirects(handler, gate) -> None:
    """/~jdoe becomes /~jdoe/."""
    response = route_request(make_request("/priv/~jdoe"), handler, gate)
    assert response.status == 301
    assert response.headers["Location"] == "/priv/~jdoe/"
    handler.serve.assert_not_called()


@pytest.mark.parametrize("path", ["/", "/index.html", "/~", "/~/x"])
def test_unrouted_paths_are_not_found(handler, gate, path: str) -> None:
    """Anything outside the user routes is 404 without consulting the gate."""
    response = route_request(make_request(path), handler, gate)
    assert response.status == 404
    gate.check.assert_not_called()


def test_healthz_reports_draining(handler, gate) -> None:
    """Health checks bypass the gate and reflect lifecycle state."""
    lifecycle = ServerLifecycle()
    assert route_request(make_request("/healthz"), handler, gate, lifecycle).status == 200
    lifecycle.begin_draining()
    assert route_request(make_request("/healthz"), handler, gate, lifecycle).status == 503
    gate.check.assert_not_called()
