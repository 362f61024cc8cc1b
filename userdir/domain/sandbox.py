"""Filesystem sandbox utilities for safe path resolution.

Requests name a path relative to ``<home>/<sub_root>``. Validation happens in
two stages: a purely lexical check that runs before anything touches the
filesystem or the directory service, and a containment check on the
canonicalized path once the home directory is known.
"""

from pathlib import Path, PurePosixPath

from userdir.domain.errors import ForbiddenPath

ROOT_MARKER = "/"


def normalize_relative_path(relative_path: str) -> str:
    """Treat the route's root marker as an empty relative path."""
    return "" if relative_path == ROOT_MARKER else relative_path


def validate_relative_path(relative_path: str) -> PurePosixPath:
    """Reject traversal segments and absolute overrides without filesystem access."""
    if "\x00" in relative_path or "\\" in relative_path:
        raise ForbiddenPath(relative_path)
    if relative_path.startswith("/"):
        raise ForbiddenPath(relative_path)

    candidate = PurePosixPath(relative_path)
    if ".." in candidate.parts:
        raise ForbiddenPath(relative_path)
    return candidate


def is_contained(root: Path, target: Path) -> bool:
    """Return True when target equals root or is one of its descendants."""
    return target == root or root in target.parents


def resolve_served_path(home_directory: str, sub_root: str, relative_path: str) -> Path:
    """Compose ``home / sub_root / relative`` and enforce containment.

    The result is canonical: symlinks are resolved, so a link pointing outside
    the sub-root is rejected just like a literal ``..`` segment.
    """
    relative = validate_relative_path(relative_path)
    if not sub_root or "/" in sub_root.strip("/") or sub_root.strip("/") in {".", ".."}:
        raise ForbiddenPath(sub_root)

    home = Path(home_directory)
    if not home.is_absolute():
        raise ForbiddenPath(home_directory)

    sandbox_root = (home / sub_root.strip("/")).resolve()
    target = (sandbox_root / relative).resolve()
    if not is_contained(sandbox_root, target):
        raise ForbiddenPath(relative_path)
    return target
