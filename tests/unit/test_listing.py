"""Unit tests for HTML directory listings."""

import re

import pytest

from userdir.domain.errors import RenderError
from userdir.domain.listing import listing_names, render_listing

LINK_PATTERN = re.compile(r'<li><a href="([^"]*)">([^<]*)</a></li>')


def test_listing_contains_one_link_per_entry() -> None:
    """Files and directories each get a link; directories end in '/'."""
    document = render_listing([("b", True), ("a.txt", False)], "docs/")
    links = LINK_PATTERN.findall(document)
    assert links == [("a.txt", "a.txt"), ("b/", "b/")]


def test_listing_is_deterministic_regardless_of_input_order() -> None:
    """Output depends only on the set of entries."""
    first = render_listing([("b", True), ("a.txt", False), ("C", False)], "")
    second = render_listing([("C", False), ("a.txt", False), ("b", True)], "")
    assert first == second
    assert listing_names([("b", True), ("a.txt", False), ("C", False)]) == [
        "C",
        "a.txt",
        "b/",
    ]


def test_listing_title_and_heading_use_label() -> None:
    """Title and h1 read 'Index of /<label>'."""
    document = render_listing([], "docs/")
    assert "<title>Index of /docs/</title>" in document
    assert "<h1>Index of /docs/</h1>" in document
    assert LINK_PATTERN.findall(document) == []


def test_listing_escapes_names() -> None:
    """Markup in names is escaped in text and percent-encoded in href."""
    document = render_listing([('<b>"x".txt', False)], "")
    assert '<a href="%3Cb%3E%22x%22.txt">&lt;b&gt;&quot;x&quot;.txt</a>' in document
    assert "<b>" not in document.split("<body>")[1]


def test_listing_rejects_unencodable_names() -> None:
    """Names carrying undecodable bytes raise RenderError."""
    with pytest.raises(RenderError):
        render_listing([("bad\udcff.txt", False)], "")
