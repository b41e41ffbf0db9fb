"""DOM post-processing passes applied to composed pages."""

from __future__ import annotations

import logging
import posixpath
from enum import Enum
from pathlib import Path

from bs4 import BeautifulSoup, Comment

from .paths import ALIAS_SCHEME, PathResolver

logger = logging.getLogger(__name__)

EDITABLE_ATTR = "data-editable"
EXCLUDE_ATTR = "data-exclude-from-build"
BUILD_ATTR_PREFIX = "data-ps-"
EDITABLE_ID_PREFIX = "psedit"

REFERENCE_ATTRIBUTES: dict[str, tuple[str, ...]] = {
    "script": ("src",),
    "img": ("src",),
    "iframe": ("src",),
    "source": ("src",),
    "link": ("href",),
    "a": ("href",),
    "form": ("action",),
}


class PostProcessMode(Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"


class MarkupPostProcessor:
    """Rewrite composed markup for a standalone target directory."""

    def __init__(
        self,
        resolver: PathResolver,
        *,
        ignore_exclude_from_build: bool = False,
        cleanup: bool = False,
    ) -> None:
        self.resolver = resolver
        self.ignore_exclude_from_build = ignore_exclude_from_build
        self.cleanup = cleanup

    def process(self, html: str, mode: PostProcessMode, page_target_path: Path | None = None) -> str:
        """Run the editable, exclusion, build-attribute and reference rewrites.

        ``RELATIVE`` mode also needs ``page_target_path`` so every target-absolute
        reference can be expressed relative to the page's own directory.
        """
        if len(html.strip()) <= 1:
            return html
        if mode is PostProcessMode.RELATIVE and page_target_path is None:
            raise ValueError("The relative pass needs the page's target path.")

        soup = BeautifulSoup(html, "html.parser")
        self._mark_editables(soup)
        if not self.ignore_exclude_from_build:
            for element in soup.select(f"[{EXCLUDE_ATTR}]"):
                element.decompose()
        self._apply_build_attributes(soup)

        page_dir = Path(page_target_path).parent.as_posix() if page_target_path is not None else None
        for tag_name, attributes in REFERENCE_ATTRIBUTES.items():
            for element in soup.find_all(tag_name):
                for attribute in attributes:
                    value = element.get(attribute)
                    if not isinstance(value, str) or not value.strip():
                        continue
                    rewritten = self._rewrite(value, tag_name, mode, page_dir)
                    if rewritten != value:
                        element[attribute] = rewritten

        if mode is PostProcessMode.RELATIVE and self.cleanup:
            for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
                comment.extract()
            return soup.prettify()
        return str(soup)

    def _mark_editables(self, soup: BeautifulSoup) -> None:
        for index, element in enumerate(soup.select(f"[{EDITABLE_ATTR}]")):
            if not element.get("id"):
                element["id"] = f"{EDITABLE_ID_PREFIX}{index}"
            element["contenteditable"] = "false"

    def _apply_build_attributes(self, soup: BeautifulSoup) -> None:
        for element in soup.find_all(True):
            for name in [attr for attr in element.attrs if attr.startswith(BUILD_ATTR_PREFIX)]:
                value = element[name]
                del element[name]
                element[name[len(BUILD_ATTR_PREFIX):]] = self.resolver.resolve_attribute_value(value)

    def _rewrite(self, value: str, tag_name: str, mode: PostProcessMode, page_dir: str | None) -> str:
        text = value.strip()
        if not (text.startswith(ALIAS_SCHEME) or (text.startswith("/") and not text.startswith("//"))):
            return value
        absolute = self.resolver.to_target_reference(text)
        if mode is PostProcessMode.ABSOLUTE:
            return absolute
        assert page_dir is not None
        return _relativize(absolute, page_dir, self.resolver.target_root, link=tag_name == "a")


def _relativize(absolute: str, page_dir: str, target_root: str, *, link: bool) -> str:
    path, suffix = _split_suffix(absolute)
    if not (path == target_root or path.startswith(target_root + "/")):
        return absolute
    directory_ref = path.endswith("/") or path == target_root
    relative = posixpath.relpath(path.rstrip("/") or "/", page_dir)
    if directory_ref:
        if link:
            relative = "index.html" if relative == "." else f"{relative}/index.html"
        else:
            relative = "./" if relative == "." else f"{relative}/"
    return relative + suffix


def _split_suffix(value: str) -> tuple[str, str]:
    cut = len(value)
    for marker in ("?", "#"):
        position = value.find(marker)
        if position != -1:
            cut = min(cut, position)
    return value[:cut], value[cut:]
