"""Listening socket ownership and hand-off of accepted clients."""

import argparse
import logging
import socket
import threading
from typing import Optional

from userdir.bootstrap.config import SECURITY_HEADERS, ServerConfig
from userdir.bootstrap.socket_factory import create_server_socket
from userdir.domain.correlation_id import CorrelationLoggerAdapter
from userdir.domain.http_types import HttpResponse
from userdir.domain.response_builders import (
    connection_limited_response,
    draining_response,
)
from userdir.handlers.userdir_handler import UserdirHandler
from userdir.lifecycle.state import ServerLifecycle
from userdir.pipeline.io import send_response
from userdir.security.authorization import AuthorizationGate
from userdir.transport.connection_limiter import ConnectionLimiter
from userdir.transport.context import WorkerContext
from userdir.transport.worker import handle_client

ACCEPT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("userdir.transport.accept"), {}
)

Accepted = tuple[socket.socket, tuple[str, int]]


def _refuse(client_socket: socket.socket, response: HttpResponse) -> None:
    """Answer once and hang up without spawning a worker."""
    try:
        send_response(client_socket, response)
    except OSError:
        pass
    finally:
        client_socket.close()


def _accept(server_socket: socket.socket, lifecycle: ServerLifecycle) -> Optional[Accepted]:
    """Return the next client, or None on a poll timeout or transient error."""
    try:
        return server_socket.accept()
    except socket.timeout:
        return None
    except OSError as error:
        if not lifecycle.is_draining():
            ACCEPT_LOGGER.error(
                "Socket accept failed",
                extra={"event": "accept_error", "error_type": type(error).__name__},
            )
        return None


def _dispatch(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> None:
    """Reserve a connection slot and start a worker for the client."""
    client_ip = client_address[0]
    limiter = context.connection_limiter
    exceeded = limiter.acquire(client_ip) if limiter is not None else None
    if exceeded is not None:
        ACCEPT_LOGGER.warning(
            "Connection refused by quota",
            extra={
                "event": "connection_limit_reached",
                "client": f"{client_ip}:{client_address[1]}",
                "limit_type": exceeded,
            },
        )
        _refuse(client_socket, connection_limited_response(exceeded, SECURITY_HEADERS))
        return

    threading.Thread(
        target=handle_client,
        args=(client_socket, client_address, context),
        name=f"userdir-worker-{client_ip}:{client_address[1]}",
    ).start()


def run_server(
    args: argparse.Namespace,
    config: ServerConfig,
    lifecycle: ServerLifecycle,
    handler: UserdirHandler,
    gate: AuthorizationGate,
) -> None:
    """Serve on ``args.host:args.port`` until the lifecycle starts draining.

    Returns after the listening socket is closed and in-flight workers have
    finished or the shutdown grace period has run out.
    """
    # pylint: disable=too-many-arguments, too-many-positional-arguments
    server_socket = create_server_socket(args.host, args.port, args.cert, args.key)
    context = WorkerContext(
        handler=handler,
        gate=gate,
        connection_limiter=ConnectionLimiter(
            args.max_connections, args.max_connections_per_ip
        ),
        lifecycle=lifecycle,
        config=config,
    )
    ACCEPT_LOGGER.info(
        "Accepting connections",
        extra={
            "event": "server_listening",
            "host": args.host,
            "port": args.port,
            "tls": bool(args.cert and args.key),
        },
    )

    try:
        while not lifecycle.is_draining():
            accepted = _accept(server_socket, lifecycle)
            if accepted is None:
                continue
            client_socket, client_address = accepted
            if lifecycle.is_draining():
                _refuse(client_socket, draining_response(SECURITY_HEADERS))
                break
            _dispatch(client_socket, client_address, context)
    finally:
        server_socket.close()
        ACCEPT_LOGGER.info(
            "Listening socket closed; waiting for workers",
            extra={
                "event": "shutdown_waiting",
                "shutdown_grace_seconds": config.shutdown_grace_seconds,
            },
        )
        drained = lifecycle.wait_for_workers(config.shutdown_grace_seconds)
        ACCEPT_LOGGER.info(
            "Server stopped",
            extra={"event": "server_stopped", "reason": "drained" if drained else "grace_expired"},
        )
