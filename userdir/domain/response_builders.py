"""Pure HTTP response builders."""

import math
from typing import BinaryIO, Iterable, Iterator, Optional

from userdir.domain.http_types import HttpRequest, HttpResponse, should_close

STREAM_CHUNK_SIZE = 65536


def _close_requested(request: Optional[HttpRequest]) -> bool:
    return should_close(request.headers) if request is not None else True


def _plain_error(
    status: int,
    message: str,
    request: Optional[HttpRequest],
    security_headers: dict[str, str],
    extra_headers: Optional[dict[str, str]] = None,
) -> HttpResponse:
    headers = {
        "Content-Type": "text/plain; charset=utf-8",
        **(extra_headers or {}),
        **security_headers,
    }
    return HttpResponse(status, headers, message.encode(), _close_requested(request))


def iter_file_chunks(
    file_handle: BinaryIO, chunk_size: int = STREAM_CHUNK_SIZE
) -> Iterator[bytes]:
    """Yield chunks from an open file handle and close it when exhausted."""
    with file_handle:
        while True:
            chunk = file_handle.read(chunk_size)
            if not chunk:
                break
            yield chunk


def stream_response(
    request: HttpRequest,
    body_iter: Iterable[bytes],
    content_type: str,
    security_headers: dict[str, str],
) -> HttpResponse:
    """Return a 200 response whose body is sent with chunked encoding."""
    headers = {"Content-Type": content_type, **security_headers}
    return HttpResponse(
        200,
        headers,
        b"",
        should_close(request.headers),
        body_iter=body_iter,
        use_chunked=True,
    )


def html_response(
    document: str, request: HttpRequest, security_headers: dict[str, str]
) -> HttpResponse:
    """Return a 200 text/html response with a fixed-length body."""
    headers = {"Content-Type": "text/html; charset=utf-8", **security_headers}
    return HttpResponse(200, headers, document.encode("utf-8"), should_close(request.headers))


def redirect_response(
    location: str, request: HttpRequest, security_headers: dict[str, str]
) -> HttpResponse:
    """Return a 301 pointing the client at the canonical location."""
    headers = {"Location": location, **security_headers}
    return HttpResponse(301, headers, b"", should_close(request.headers))


def not_found_response(
    request: Optional[HttpRequest], security_headers: dict[str, str]
) -> HttpResponse:
    """Return a 404 response reusing the connection preference."""
    return _plain_error(404, "Not Found", request, security_headers)


def internal_error_response(
    request: Optional[HttpRequest], security_headers: dict[str, str]
) -> HttpResponse:
    """Return a 500 response with a generic body."""
    return _plain_error(500, "Internal Server Error", request, security_headers)


def directory_unavailable_response(
    request: Optional[HttpRequest],
    security_headers: dict[str, str],
    retry_after: Optional[float] = None,
) -> HttpResponse:
    """Return a 503 response for directory service outages."""
    seconds = max(1, math.ceil(retry_after)) if retry_after else 1
    return _plain_error(
        503,
        "Service Unavailable",
        request,
        security_headers,
        {"Retry-After": str(seconds)},
    )


def unauthorized_response(
    request: HttpRequest, security_headers: dict[str, str]
) -> HttpResponse:
    """Return a 401 response challenging the client for an API key."""
    return _plain_error(
        401,
        "Unauthorized",
        request,
        security_headers,
        {"WWW-Authenticate": 'Bearer realm="userdir"'},
    )


def bad_request_response(
    request: Optional[HttpRequest], security_headers: dict[str, str]
) -> HttpResponse:
    """Produce a 400 response honoring the caller's connection preference."""
    return _plain_error(400, "Bad Request", request, security_headers)


def method_not_allowed_response(
    request: HttpRequest, security_headers: dict[str, str], allowed_methods
) -> HttpResponse:
    """Produce a 405 response enumerating the supported HTTP methods."""
    allow_header = ", ".join(sorted(allowed_methods))
    return _plain_error(
        405,
        "Method Not Allowed",
        request,
        security_headers,
        {"Allow": allow_header},
    )


def connection_limited_response(
    limit_type: Optional[str], security_headers: dict[str, str]
) -> HttpResponse:
    """Produce a 503 response describing which connection quota was exceeded."""
    reason = "Connection limit exceeded"
    if limit_type:
        reason = f"{limit_type} connection limit exceeded"
    headers = {"Retry-After": "1", **security_headers}
    return HttpResponse(503, headers, reason.encode(), True)


def draining_response(security_headers: dict[str, str]) -> HttpResponse:
    """Produce a 503 response indicating the server is draining."""
    headers = {"Connection": "close", **security_headers}
    return HttpResponse(503, headers, b"draining", True)


def healthz_response(
    is_draining: bool, security_headers: dict[str, str]
) -> HttpResponse:
    """Produce a health check response based on server state."""
    if is_draining:
        return draining_response(security_headers)
    return HttpResponse(200, security_headers.copy(), b"", False)
