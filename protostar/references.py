"""Gather dependency references from compiled pages."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Iterable, List, Tuple

_WRAPPER_TAGS = re.compile(r"<!doctype[^>]*>|</?(?:html|head|body)(?:\s[^>]*)?>", re.IGNORECASE)


@dataclass(slots=True)
class GatheredReferences:
    """Ordered, de-duplicated reference URLs found across all pages."""

    scripts: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)

    def all(self) -> list[str]:
        ordered: dict[str, None] = {}
        for url in (*self.scripts, *self.links, *self.images):
            ordered.setdefault(url, None)
        return list(ordered)

    @property
    def total(self) -> int:
        return len(self.scripts) + len(self.links) + len(self.images)


class _ReferenceCollector(HTMLParser):
    """Collect script/link/img references from HTML content."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.scripts: dict[str, None] = {}
        self.links: dict[str, None] = {}
        self.images: dict[str, None] = {}

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, str | None]]) -> None:
        attr_map = {name: value for name, value in attrs if value is not None}

        if tag == "script" and attr_map.get("src"):
            self.scripts.setdefault(attr_map["src"], None)
        elif tag == "link" and attr_map.get("href"):
            self.links.setdefault(attr_map["href"], None)
        elif tag == "img" and attr_map.get("src"):
            self.images.setdefault(attr_map["src"], None)


def strip_wrapper_tags(html: str) -> str:
    """Drop doctype, html, head and body tags so pages can be scanned as one document."""
    return _WRAPPER_TAGS.sub("", html)


def concatenate_for_scan(pages: Iterable[str]) -> str:
    return "\n".join(strip_wrapper_tags(page) for page in pages)


def gather_references(pages: Iterable[str]) -> GatheredReferences:
    parser = _ReferenceCollector()
    parser.feed(concatenate_for_scan(pages))
    parser.close()
    return GatheredReferences(
        scripts=list(parser.scripts),
        links=list(parser.links),
        images=list(parser.images),
    )
