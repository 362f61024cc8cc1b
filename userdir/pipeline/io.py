"""Reading HTTP/1.1 requests from, and writing responses to, a client socket."""

import logging
import re
import socket
import urllib.parse
from typing import Iterable, Optional, Tuple

from userdir.bootstrap.config import HEADER_DELIMITER, MAX_HEADER_BYTES
from userdir.domain.correlation_id import (
    CorrelationLoggerAdapter,
    get_correlation_id,
    set_correlation_id,
)
from userdir.domain.http_types import HttpRequest, HttpResponse

IO_LOGGER = CorrelationLoggerAdapter(logging.getLogger("userdir.io"), {})

RECV_SIZE = 4096
MAX_BODY_BYTES = 64 * 1024
CRLF = "\r\n"
LAST_CHUNK = b"0\r\n\r\n"
# Incoming X-Request-ID values are echoed back, so only plain tokens are kept.
REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]{1,128}")


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Map lowercased header names to stripped values.

    Lines without a colon are ignored. A CR or LF inside a line means the
    client tried to smuggle an extra header and is rejected.
    """
    parsed: dict[str, str] = {}
    for line in lines:
        if "\r" in line or "\n" in line:
            raise ValueError("Bare line break in header")
        name, separator, value = line.partition(":")
        if separator and name.strip():
            parsed[name.strip().lower()] = value.strip()
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str]:
    """Return ``(method, path)`` with the path percent-decoded and query dropped."""
    parts = request_line.split(" ", 2)
    if len(parts) != 3:
        raise ValueError("Invalid request line")
    method, target, version = parts
    if not version.startswith("HTTP/"):
        raise ValueError("Invalid protocol version")
    return method, urllib.parse.unquote(urllib.parse.urlsplit(target).path)


def determine_content_length(headers: dict[str, str]) -> int:
    """Return the declared body size; chunked or oversized bodies are refused."""
    if "transfer-encoding" in headers:
        raise ValueError("Request bodies with Transfer-Encoding are not supported")
    declared = headers.get("content-length", "0")
    try:
        length = int(declared)
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if not 0 <= length <= MAX_BODY_BYTES:
        raise ValueError("Unacceptable Content-Length")
    return length


def _adopt_request_id(headers: dict[str, str]) -> None:
    incoming = headers.get("x-request-id")
    if incoming and REQUEST_ID_PATTERN.fullmatch(incoming):
        set_correlation_id(incoming)


def receive_request(
    client_socket: socket.socket, buffer: bytes
) -> Tuple[Optional[HttpRequest], bytes]:
    """Read one request, returning it with any pipelined bytes that follow.

    ``(None, b"")`` means the peer closed the connection mid-request.
    Malformed input raises :class:`ValueError`.
    """
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise ValueError("Header block too large")
        chunk = client_socket.recv(RECV_SIZE)
        if not chunk:
            return None, b""
        buffer += chunk

    head, rest = buffer.split(HEADER_DELIMITER, 1)
    request_line, *header_lines = head.decode("latin-1").split(CRLF)
    method, path = parse_request_line(request_line)
    headers = parse_headers(header_lines)
    _adopt_request_id(headers)

    length = determine_content_length(headers)
    while len(rest) < length:
        chunk = client_socket.recv(RECV_SIZE)
        if not chunk:
            return None, b""
        rest += chunk

    if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
        IO_LOGGER.debug(
            "Parsed request",
            extra={"event": "request_parsed", "method": method, "route": path},
        )
    return HttpRequest(method, path, headers, rest[:length]), rest[length:]


def _header_block(response: HttpResponse) -> bytes:
    headers = dict(response.headers)
    correlation_id = get_correlation_id()
    if correlation_id:
        headers["X-Request-ID"] = correlation_id
    if response.use_chunked:
        headers["Transfer-Encoding"] = "chunked"
    else:
        headers["Content-Length"] = str(len(response.body))
    if response.close_connection:
        headers["Connection"] = "close"
    lines = [response.status_line, *(f"{name}: {value}" for name, value in headers.items())]
    return (CRLF.join(lines) + CRLF + CRLF).encode("latin-1")


def _write_chunks(client_socket: socket.socket, chunks: Iterable[bytes]) -> None:
    for chunk in chunks:
        if chunk:
            client_socket.sendall(b"%X\r\n%s\r\n" % (len(chunk), chunk))
    client_socket.sendall(LAST_CHUNK)


def send_response(
    client_socket: socket.socket, response: HttpResponse, head_only: bool = False
) -> None:
    """Write ``response``; with ``head_only`` only the header block is sent."""
    head = _header_block(response)
    if head_only:
        client_socket.sendall(head)
    elif response.use_chunked and response.body_iter is not None:
        client_socket.sendall(head)
        _write_chunks(client_socket, response.body_iter)
    else:
        client_socket.sendall(head + response.body)
    if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
        IO_LOGGER.debug(
            "Sent response",
            extra={"event": "response_sent", "status_code": response.status},
        )
