"""Error taxonomy for directory lookups and served paths."""

from typing import Optional


class UserdirError(Exception):
    """Base class for failures that terminate in an HTTP error response."""


class DirectoryUnavailable(UserdirError):
    """Raised when the directory service cannot be reached or queried."""

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class IdentityNotFound(UserdirError):
    """Raised when a username does not map to exactly one identity record."""


class ForbiddenPath(UserdirError):
    """Raised when a requested path escapes the configured sub-root."""


class PathNotFound(UserdirError):
    """Raised when the requested filesystem entry does not exist."""


class PathAccessError(UserdirError):
    """Raised for any other filesystem failure while serving a path."""

    def __init__(self, message: str, errno: Optional[int] = None) -> None:
        super().__init__(message)
        self.errno = errno


class RenderError(UserdirError):
    """Raised when a directory listing cannot be rendered."""
