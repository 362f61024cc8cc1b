"""One thread per client: read requests, answer them, repeat until close."""

import logging
import socket
import threading
import time

from userdir.bootstrap.config import ALLOWED_METHODS, SECURITY_HEADERS
from userdir.domain.correlation_id import (
    CorrelationLoggerAdapter,
    clear_correlation_id,
    generate_correlation_id,
    set_correlation_id,
)
from userdir.domain.http_types import HttpRequest, HttpResponse
from userdir.domain.response_builders import (
    bad_request_response,
    draining_response,
    internal_error_response,
)
from userdir.pipeline.io import receive_request, send_response
from userdir.pipeline.router import route_request
from userdir.pipeline.validation import validate_request
from userdir.transport.context import WorkerContext

WORKER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("userdir.transport.worker"), {}
)


class _ConnectionDone(Exception):
    """Raised inside the keep-alive loop when the connection should end."""


def _next_request(
    client_socket: socket.socket, buffer: bytes, client: str
) -> tuple[HttpRequest, bytes]:
    try:
        request, buffer = receive_request(client_socket, buffer)
    except (ValueError, UnicodeDecodeError) as error:
        WORKER_LOGGER.warning(
            "Malformed request",
            extra={
                "event": "malformed_request",
                "client": client,
                "error_type": type(error).__name__,
            },
        )
        send_response(client_socket, bad_request_response(None, SECURITY_HEADERS))
        raise _ConnectionDone() from error

    if request is None:
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Peer closed connection",
                extra={"event": "client_disconnected", "client": client},
            )
        raise _ConnectionDone()
    return request, buffer


def _respond(request: HttpRequest, context: WorkerContext) -> HttpResponse:
    rejected = validate_request(request, ALLOWED_METHODS, SECURITY_HEADERS)
    if rejected is not None:
        return rejected
    try:
        return route_request(request, context.handler, context.gate, context.lifecycle)
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unhandled error while routing request",
            extra={"event": "route_error", "error_type": type(error).__name__},
            exc_info=True,
        )
        return internal_error_response(request, SECURITY_HEADERS)


def _serve_one(
    request: HttpRequest, context: WorkerContext, client_socket: socket.socket
) -> bool:
    """Answer ``request``; True means keep the connection open."""
    started = time.monotonic()
    response = _respond(request, context)
    send_response(client_socket, response, head_only=request.method == "HEAD")
    WORKER_LOGGER.info(
        "Request complete",
        extra={
            "event": "request_complete",
            "method": request.method,
            "route": request.path,
            "status_code": response.status,
            "duration_ms": round((time.monotonic() - started) * 1000, 3),
        },
    )
    return not response.close_connection


def _close_quietly(client_socket: socket.socket) -> None:
    try:
        client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    client_socket.close()


def handle_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> None:
    """Serve keep-alive requests on ``client_socket`` until either side closes.

    Always releases the connection-limiter slot taken by the accept loop and
    deregisters from the lifecycle, whatever ends the connection.
    """
    client_ip = client_address[0]
    client = f"{client_ip}:{client_address[1]}"
    lifecycle = context.lifecycle
    this_thread = threading.current_thread()
    if lifecycle is not None:
        lifecycle.register_worker(this_thread)
    if context.config is not None:
        client_socket.settimeout(context.config.socket_timeout)

    buffer = b""
    keep_alive = True
    try:
        while keep_alive:
            set_correlation_id(generate_correlation_id())
            if lifecycle is not None and lifecycle.is_draining():
                send_response(client_socket, draining_response(SECURITY_HEADERS))
                break
            request, buffer = _next_request(client_socket, buffer, client)
            keep_alive = _serve_one(request, context, client_socket)
            clear_correlation_id()
    except _ConnectionDone:
        pass
    except OSError as error:
        WORKER_LOGGER.info(
            "Client connection ended",
            extra={
                "event": "connection_error",
                "client": client,
                "error_type": type(error).__name__,
            },
        )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": client,
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
    finally:
        if context.connection_limiter is not None:
            context.connection_limiter.release(client_ip)
        if lifecycle is not None:
            lifecycle.cleanup_worker(this_thread)
        _close_quietly(client_socket)
        clear_correlation_id()
