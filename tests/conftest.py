"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import argparse
import threading
from pathlib import Path
from typing import Generator, TypedDict

import pytest

from tests.utils.http import API_KEY, reserve_port, wait_for_port
from tests.utils.ldap import make_settings, mock_connection_factory
from userdir.bootstrap.config import ServerConfig
from userdir.directory.resolver import DirectoryResolver
from userdir.directory.session import DirectorySessionManager
from userdir.handlers.userdir_handler import UserdirHandler
from userdir.lifecycle.state import ServerLifecycle
from userdir.security.authorization import ApiKeyGate
from userdir.transport.accept_loop import run_server


class ServerProcessInfo(TypedDict):
    """Metadata describing a running in-process server."""

    base_url: str
    host: str
    port: int
    homes: Path
    lifecycle: ServerLifecycle


@pytest.fixture(name="homes")
def _homes(tmp_path: Path) -> Path:
    """Create home directories for jdoe with public and private trees."""

    jdoe = tmp_path / "home" / "jdoe"
    public = jdoe / "public_html"
    private = jdoe / ".html_pages"
    (public / "docs").mkdir(parents=True)
    (public / "site").mkdir()
    private.mkdir()
    (public / "notes.txt").write_bytes(b"jdoe's notes\n")
    (public / "docs" / "a.txt").write_text("alpha")
    (public / "docs" / "b").mkdir()
    (public / "site" / "index.html").write_text("<h1>site</h1>")
    (public / "site" / "other.txt").write_text("other")
    (private / "secret.txt").write_text("private bytes")
    (jdoe / "outside.txt").write_text("not served")
    return tmp_path / "home"


@pytest.fixture(name="server_process")
def _server_process(homes: Path) -> Generator[ServerProcessInfo, None, None]:
    """Run the accept loop in a background thread against a mock directory."""

    host = "127.0.0.1"
    port = reserve_port(host)
    settings = make_settings()
    sessions = DirectorySessionManager(
        settings,
        connection_factory=mock_connection_factory(
            {"jdoe": str(homes / "jdoe"), "twin": ["/home/a", "/home/b"]}
        ),
    )
    handler = UserdirHandler(DirectoryResolver(sessions, settings))
    args = argparse.Namespace(
        host=host,
        port=port,
        cert=None,
        key=None,
        max_connections=50,
        max_connections_per_ip=50,
    )
    lifecycle = ServerLifecycle()
    thread = threading.Thread(
        target=run_server,
        args=(
            args,
            ServerConfig(socket_timeout=2, shutdown_grace_seconds=2),
            lifecycle,
            handler,
            ApiKeyGate([API_KEY]),
        ),
        daemon=True,
    )
    thread.start()
    wait_for_port(host, port)

    yield {
        "base_url": f"http://{host}:{port}",
        "host": host,
        "port": port,
        "homes": homes,
        "lifecycle": lifecycle,
    }

    lifecycle.begin_draining()
    thread.join(timeout=10)
    sessions.close()


@pytest.fixture()
def base_url(server_process: ServerProcessInfo) -> str:
    """Expose the running server base URL to integration tests."""

    return server_process["base_url"]

