"""Serving files and listings out of users' home directories."""

import logging
import mimetypes
import os
import posixpath
import stat
from pathlib import Path
from urllib.parse import quote

from userdir.bootstrap.config import INDEX_DOCUMENT, SECURITY_HEADERS
from userdir.directory.resolver import DirectoryResolver
from userdir.domain.correlation_id import CorrelationLoggerAdapter
from userdir.domain.errors import (
    DirectoryUnavailable,
    ForbiddenPath,
    IdentityNotFound,
    PathAccessError,
    PathNotFound,
    RenderError,
)
from userdir.domain.http_types import HttpRequest, HttpResponse
from userdir.domain.listing import render_listing
from userdir.domain.response_builders import (
    directory_unavailable_response,
    html_response,
    internal_error_response,
    iter_file_chunks,
    not_found_response,
    redirect_response,
    stream_response,
)
from userdir.domain.sandbox import (
    normalize_relative_path,
    resolve_served_path,
    validate_relative_path,
)

HANDLER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("userdir.handlers.userdir"), {}
)

MISSING_ERRNO_TYPES = (FileNotFoundError, NotADirectoryError)


def _content_type_for_path(filepath: Path) -> str:
    mime_type, _ = mimetypes.guess_type(filepath.as_posix())
    return mime_type or "application/octet-stream"


def _path_error(error: OSError, path: Path) -> Exception:
    if isinstance(error, MISSING_ERRNO_TYPES):
        return PathNotFound(path.as_posix())
    return PathAccessError(path.as_posix(), errno=error.errno)


def _locate(home_directory: str, sub_root: str, relative_path: str) -> Path:
    try:
        return resolve_served_path(home_directory, sub_root, relative_path)
    except (OSError, RuntimeError) as error:
        raise PathAccessError(relative_path) from error


def redirect_location(route_prefix: str, username: str, relative_path: str) -> str:
    """Return the canonical URL of a directory, with a trailing slash."""
    return quote(f"{route_prefix}{username}/{relative_path}/", safe="/~")


class UserdirHandler:
    """Turn (username, sub-root, relative path) into an HTTP response."""

    def __init__(
        self,
        resolver: DirectoryResolver,
        security_headers: dict[str, str] | None = None,
        index_document: str = INDEX_DOCUMENT,
    ) -> None:
        self._resolver = resolver
        self._security_headers = (
            SECURITY_HEADERS if security_headers is None else security_headers
        )
        self._index_document = index_document

    def serve(
        self,
        request: HttpRequest,
        route_prefix: str,
        username: str,
        sub_root: str,
        relative_path: str,
    ) -> HttpResponse:
        """Serve one request, mapping every failure to an HTTP status."""
        # pylint: disable=too-many-arguments, too-many-positional-arguments
        relative_path = normalize_relative_path(relative_path)
        log_extra = {"username": username, "sub_root": sub_root, "path": relative_path}
        try:
            return self._serve(request, route_prefix, username, sub_root, relative_path)
        except ForbiddenPath:
            HANDLER_LOGGER.warning(
                "Path escapes sandbox",
                extra={"event": "forbidden_path", **log_extra},
            )
            return not_found_response(request, self._security_headers)
        except IdentityNotFound:
            return not_found_response(request, self._security_headers)
        except PathNotFound:
            HANDLER_LOGGER.info(
                "Path not found", extra={"event": "path_not_found", **log_extra}
            )
            return not_found_response(request, self._security_headers)
        except PathAccessError as error:
            HANDLER_LOGGER.error(
                "Filesystem access failed",
                extra={"event": "path_access_error", "errno": error.errno, **log_extra},
            )
            return internal_error_response(request, self._security_headers)
        except RenderError:
            HANDLER_LOGGER.error(
                "Directory listing failed",
                extra={"event": "render_error", **log_extra},
                exc_info=True,
            )
            return internal_error_response(request, self._security_headers)
        except DirectoryUnavailable as error:
            HANDLER_LOGGER.error(
                "Directory service unavailable",
                extra={"event": "directory_unavailable", **log_extra},
            )
            return directory_unavailable_response(
                request, self._security_headers, error.retry_after
            )

    def _serve(
        self,
        request: HttpRequest,
        route_prefix: str,
        username: str,
        sub_root: str,
        relative_path: str,
    ) -> HttpResponse:
        # pylint: disable=too-many-arguments, too-many-positional-arguments
        validate_relative_path(relative_path)

        home_directory = self._resolver.resolve(username)
        if home_directory is None:
            raise IdentityNotFound(username)

        target = _locate(home_directory, sub_root, relative_path)

        try:
            mode = os.stat(target).st_mode
        except OSError as error:
            raise _path_error(error, target) from error

        if stat.S_ISDIR(mode):
            if relative_path and not relative_path.endswith("/"):
                location = redirect_location(route_prefix, username, relative_path)
                if HANDLER_LOGGER.logger.isEnabledFor(logging.DEBUG):
                    HANDLER_LOGGER.debug(
                        "Directory redirect",
                        extra={"event": "directory_redirect", "route": location},
                    )
                return redirect_response(location, request, self._security_headers)
            index_path = _locate(
                home_directory,
                sub_root,
                posixpath.join(relative_path, self._index_document),
            )
            if index_path.is_file():
                return self._file_response(request, index_path)
            return self._listing_response(request, target, relative_path)

        if stat.S_ISREG(mode):
            return self._file_response(request, target)

        # Sockets, FIFOs and device nodes are never opened.
        raise PathNotFound(target.as_posix())

    def _file_response(self, request: HttpRequest, filepath: Path) -> HttpResponse:
        try:
            file_handle = open(filepath, "rb")  # pylint: disable=consider-using-with
        except OSError as error:
            raise _path_error(error, filepath) from error

        if request.method == "HEAD":
            file_handle.close()
            body_iter = ()
        else:
            body_iter = iter_file_chunks(file_handle)

        HANDLER_LOGGER.info(
            "File served",
            extra={"event": "file_served", "path": filepath.as_posix()},
        )
        return stream_response(
            request,
            body_iter,
            _content_type_for_path(filepath),
            self._security_headers,
        )

    def _listing_response(
        self, request: HttpRequest, directory: Path, relative_path: str
    ) -> HttpResponse:
        try:
            with os.scandir(directory) as iterator:
                entries = [(entry.name, entry.is_dir()) for entry in iterator]
        except OSError as error:
            raise _path_error(error, directory) from error

        document = render_listing(entries, relative_path)
        HANDLER_LOGGER.info(
            "Directory listed",
            extra={
                "event": "directory_listed",
                "path": directory.as_posix(),
                "count": len(entries),
            },
        )
        return html_response(document, request, self._security_headers)
