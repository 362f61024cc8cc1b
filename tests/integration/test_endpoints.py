"""Integration tests for serving user directories over a real socket."""

from __future__ import annotations

import pytest
import requests

from tests.utils.http import API_KEY

pytestmark = pytest.mark.integration

AUTH = {"X-API-Key": API_KEY}


def test_public_file_is_streamed(base_url: str) -> None:
    """Files under public_html are returned byte for byte."""
    response = requests.get(f"{base_url}/~jdoe/notes.txt", headers=AUTH, timeout=5)
    assert response.status_code == 200
    assert response.content == b"jdoe's notes\n"
    assert response.headers["Content-Type"].startswith("text/plain")
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_private_file_is_served_from_html_pages(base_url: str) -> None:
    """The /priv/~ prefix maps to the private sub-root."""
    response = requests.get(
        f"{base_url}/priv/~jdoe/secret.txt", headers=AUTH, timeout=5
    )
    assert response.status_code == 200
    assert response.text == "private bytes"


def test_private_file_is_not_visible_publicly(base_url: str) -> None:
    """Private pages are not reachable under the public prefix."""
    response = requests.get(f"{base_url}/~jdoe/secret.txt", headers=AUTH, timeout=5)
    assert response.status_code == 404


@pytest.mark.parametrize(
    "path",
    ["/~jdoe/missing.txt", "/~ghost/", "/~twin/", "/nobody/here"],
)
def test_not_found_cases(base_url: str, path: str) -> None:
    """Unknown users, ambiguous users and missing files are all 404."""
    response = requests.get(f"{base_url}{path}", headers=AUTH, timeout=5)
    assert response.status_code == 404
    assert response.text == "Not Found"


def test_missing_api_key_is_rejected(base_url: str) -> None:
    """Requests without a key never reach the directory."""
    response = requests.get(f"{base_url}/~jdoe/notes.txt", timeout=5)
    assert response.status_code == 401
    assert "WWW-Authenticate" in response.headers


def test_bearer_token_is_accepted(base_url: str) -> None:
    """The key may also be presented as a bearer token."""
    response = requests.get(
        f"{base_url}/~jdoe/notes.txt",
        headers={"Authorization": f"Bearer {API_KEY}"},
        timeout=5,
    )
    assert response.status_code == 200


def test_directory_without_slash_redirects(base_url: str) -> None:
    """Directories are canonicalised with a trailing slash."""
    response = requests.get(
        f"{base_url}/~jdoe/docs", headers=AUTH, timeout=5, allow_redirects=False
    )
    assert response.status_code == 301
    assert response.headers["Location"] == "/~jdoe/docs/"


def test_bare_user_redirects_to_root(base_url: str) -> None:
    """A bare /~user gets a slash appended."""
    response = requests.get(
        f"{base_url}/~jdoe", headers=AUTH, timeout=5, allow_redirects=False
    )
    assert response.status_code == 301
    assert response.headers["Location"] == "/~jdoe/"


def test_index_document_is_preferred(base_url: str) -> None:
    """A directory with index.html serves that file."""
    response = requests.get(f"{base_url}/~jdoe/site/", headers=AUTH, timeout=5)
    assert response.status_code == 200
    assert response.text == "<h1>site</h1>"


def test_directory_listing(base_url: str) -> None:
    """Directories without an index get a sorted HTML listing."""
    response = requests.get(f"{base_url}/~jdoe/docs/", headers=AUTH, timeout=5)
    assert response.status_code == 200
    assert response.headers["Content-Type"].startswith("text/html")
    body = response.text
    assert '<a href="a.txt">a.txt</a>' in body
    assert '<a href="b/">b/</a>' in body
    assert body.index("a.txt") < body.index("b/")


def test_head_returns_headers_only(base_url: str) -> None:
    """HEAD answers like GET without a body."""
    response = requests.head(f"{base_url}/~jdoe/notes.txt", headers=AUTH, timeout=5)
    assert response.status_code == 200
    assert response.content == b""


def test_unsupported_method(base_url: str) -> None:
    """Write methods are refused."""
    response = requests.delete(f"{base_url}/~jdoe/notes.txt", headers=AUTH, timeout=5)
    assert response.status_code == 405
    assert "GET" in response.headers["Allow"]


def test_healthz_needs_no_key(base_url: str) -> None:
    """Health checks bypass the authorization gate."""
    response = requests.get(f"{base_url}/healthz", timeout=5)
    assert response.status_code == 200
