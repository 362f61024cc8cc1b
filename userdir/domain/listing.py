"""HTML directory index rendering."""

import html
from typing import Iterable
from urllib.parse import quote

from userdir.domain.errors import RenderError


def listing_names(entries: Iterable[tuple[str, bool]]) -> list[str]:
    """Return display names sorted lexically, directories suffixed with '/'."""
    return sorted(name + "/" if is_directory else name for name, is_directory in entries)


def _list_item(name: str) -> str:
    try:
        href = quote(name, errors="strict")
    except UnicodeEncodeError as exc:
        raise RenderError(f"Entry name is not encodable: {name!r}") from exc
    return f'<li><a href="{href}">{html.escape(name)}</a></li>'


def render_listing(entries: Iterable[tuple[str, bool]], label: str) -> str:
    """Render an HTML index for one directory.

    ``entries`` holds ``(name, is_directory)`` pairs in any order; the output
    is sorted by display name so repeated renders are byte-identical.
    """
    title = html.escape(f"Index of /{label}")
    items = [_list_item(name) for name in listing_names(entries)]
    lines = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '<meta charset="utf-8">',
        f"<title>{title}</title>",
        "</head>",
        "<body>",
        f"<h1>{title}</h1>",
        "<hr>",
        "<ul>",
        *items,
        "</ul>",
        "</body>",
        "</html>",
    ]
    return "\n".join(lines) + "\n"
