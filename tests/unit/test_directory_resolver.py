"""Unit tests for LDAP home directory resolution."""

from unittest.mock import MagicMock

import pytest

from tests.utils.ldap import make_settings, mock_connection_factory
from userdir.directory.resolver import (
    DirectoryResolver,
    build_identity_filter,
    first_value,
)
from userdir.directory.session import DirectorySessionManager
from userdir.domain.errors import DirectoryUnavailable


def make_resolver(users) -> DirectoryResolver:
    """Build a resolver backed by a mock directory holding ``users``."""
    settings = make_settings()
    sessions = DirectorySessionManager(
        settings, connection_factory=mock_connection_factory(users)
    )
    return DirectoryResolver(sessions, settings)


def test_resolve_returns_home_for_single_match() -> None:
    """Exactly one identity record yields its homeDirectory."""
    resolver = make_resolver({"jdoe": "/home/jdoe", "asmith": "/home/asmith"})
    assert resolver.resolve("jdoe") == "/home/jdoe"
    assert resolver.resolve("asmith") == "/home/asmith"


def test_resolve_returns_none_for_unknown_user() -> None:
    """Zero matches fail closed."""
    resolver = make_resolver({"jdoe": "/home/jdoe"})
    assert resolver.resolve("ghost") is None


def test_resolve_returns_none_for_ambiguous_match() -> None:
    """Multiple matches fail closed just like zero matches."""
    resolver = make_resolver({"twin": ["/home/twin-a", "/home/twin-b"]})
    assert resolver.resolve("twin") is None


def test_resolve_returns_none_when_attribute_missing() -> None:
    """An entry without homeDirectory resolves to None."""
    resolver = make_resolver({"nohome": None})
    assert resolver.resolve("nohome") is None


def test_resolve_empty_username_skips_directory() -> None:
    """Empty usernames never reach the directory."""
    sessions = MagicMock(spec=DirectorySessionManager)
    resolver = DirectoryResolver(sessions, make_settings())
    assert resolver.resolve("") is None
    sessions.execute.assert_not_called()


def test_resolve_is_not_cached() -> None:
    """Every call queries the directory again."""
    settings = make_settings()
    sessions = MagicMock(spec=DirectorySessionManager)
    sessions.execute.return_value = (0, [{"attributes": {"homeDirectory": ["/h"]}}])
    resolver = DirectoryResolver(sessions, settings)
    assert resolver.resolve("jdoe") == "/h"
    assert resolver.resolve("jdoe") == "/h"
    assert sessions.execute.call_count == 2


def test_size_limit_exceeded_is_ambiguous() -> None:
    """A sizeLimitExceeded result is treated as more than one match."""
    sessions = MagicMock(spec=DirectorySessionManager)
    sessions.execute.return_value = (4, [{"attributes": {"homeDirectory": ["/h"]}}])
    resolver = DirectoryResolver(sessions, make_settings())
    assert resolver.resolve("jdoe") is None


def test_search_failure_raises_directory_unavailable() -> None:
    """Unexpected result codes surface as DirectoryUnavailable."""
    settings = make_settings()
    connection = MagicMock()
    connection.result = {"result": 51, "description": "busy"}
    connection.response = []
    connection.closed = False
    sessions = DirectorySessionManager(
        settings, connection_factory=lambda uri, _settings: connection
    )
    resolver = DirectoryResolver(sessions, settings)
    with pytest.raises(DirectoryUnavailable):
        resolver.resolve("jdoe")
    assert sessions.connected


def test_search_uses_subtree_scope_and_single_attribute() -> None:
    """The query targets the configured base and requests one attribute."""
    settings = make_settings(timeout=5.0)
    connection = MagicMock()
    connection.result = {"result": 0}
    connection.response = []
    sessions = DirectorySessionManager(
        settings, connection_factory=lambda uri, _settings: connection
    )
    DirectoryResolver(sessions, settings).resolve("jdoe")

    kwargs = connection.search.call_args.kwargs
    assert kwargs["search_base"] == settings.search_base
    assert kwargs["search_filter"] == "(uid=jdoe)"
    assert kwargs["search_scope"] == "SUBTREE"
    assert kwargs["attributes"] == ["homeDirectory"]
    assert kwargs["time_limit"] == 5


def test_identity_filter_escapes_special_characters() -> None:
    """Filter metacharacters in usernames cannot widen the search."""
    assert build_identity_filter("uid", "jdoe") == "(uid=jdoe)"
    assert build_identity_filter("uid", "*") == "(uid=\\2a)"
    assert build_identity_filter("uid", "a)(uid=*") == "(uid=a\\29\\28uid=\\2a)"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (["/home/jdoe", "/home/other"], "/home/jdoe"),
        ("/home/jdoe", "/home/jdoe"),
        ([b"/home/jdoe"], "/home/jdoe"),
        ([], None),
        (None, None),
    ],
)
def test_first_value(value, expected) -> None:
    """Attribute values are normalized to their first text value."""
    assert first_value(value) == expected
