"""Discover, select and compile page templates."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Sequence

from .composer import Composer
from .errors import BuildError, CompositionError
from .markup import MarkupPostProcessor, PostProcessMode
from .paths import PathResolver, path_has_prefix

logger = logging.getLogger(__name__)

PAGE_SUFFIXES = (".html",)
FOREIGN_OPEN = "{%"
FOREIGN_CLOSE = "%}"
SKIPPED_DIR_NAMES = frozenset({"node_modules", "bower_components", "__pycache__"})


@dataclass(frozen=True, slots=True)
class CompiledPage:
    """One composed and post-processed page; keyed by ``path`` in build results."""

    path: Path
    source: str
    composed: str
    compiled: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class PageSelection:
    eligible: list[Path] = field(default_factory=list)
    passthrough: list[Path] = field(default_factory=list)
    excluded: list[Path] = field(default_factory=list)


def has_foreign_delimiters(text: str) -> bool:
    """True for templates written for another engine (both ``{%`` and ``%}`` present)."""
    return FOREIGN_OPEN in text and FOREIGN_CLOSE in text


def read_template(path: Path) -> str:
    """Read a template as UTF-8, attaching its path to read and decode failures."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CompositionError(f"Failed to read {path}: {exc}", path=path) from exc


def discover_templates(
    roots: Iterable[Path],
    *,
    skip: Sequence[Path] = (),
) -> list[Path]:
    """Return every page template below ``roots``, sorted, ignoring hidden and package dirs."""
    skipped = [Path(path).resolve() for path in skip]
    found: dict[Path, None] = {}
    for root in roots:
        root = Path(root)
        if not root.is_dir():
            continue
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath).resolve()
            dirnames[:] = sorted(
                name
                for name in dirnames
                if not name.startswith(".")
                and name not in SKIPPED_DIR_NAMES
                and not path_has_prefix(current / name, skipped)
            )
            for filename in sorted(filenames):
                if Path(filename).suffix.lower() in PAGE_SUFFIXES:
                    found.setdefault(current / filename, None)
    return list(found)


class TemplateCompiler:
    """Run the composer and the markup passes for each page."""

    def __init__(
        self,
        resolver: PathResolver,
        composer: Composer,
        postprocessor: MarkupPostProcessor,
    ) -> None:
        self.resolver = resolver
        self.composer = composer
        self.postprocessor = postprocessor

    def list_eligible_pages(
        self,
        template_paths: Iterable[Path],
        excluded_prefixes: Sequence[Path],
        include_named_paths: bool,
    ) -> list[Path]:
        return self.select_pages(template_paths, excluded_prefixes, include_named_paths).eligible

    def select_pages(
        self,
        template_paths: Iterable[Path],
        excluded_prefixes: Sequence[Path],
        include_named_paths: bool,
    ) -> PageSelection:
        """Split templates into compile candidates, passthrough pages and excluded paths."""
        selection = PageSelection()
        for path in template_paths:
            if path_has_prefix(path, excluded_prefixes):
                selection.excluded.append(path)
                continue
            if not include_named_paths and self.resolver.is_named_path_child(path):
                selection.excluded.append(path)
                continue
            text = read_template(path)
            if has_foreign_delimiters(text):
                selection.passthrough.append(path)
            else:
                selection.eligible.append(path)
        logger.debug(
            "Selected %d pages (%d passthrough, %d excluded)",
            len(selection.eligible),
            len(selection.passthrough),
            len(selection.excluded),
        )
        return selection

    async def compile(self, path: Path, text: str) -> CompiledPage:
        try:
            return await asyncio.to_thread(self._compile_sync, path, text)
        except BuildError as exc:
            if exc.path is None:
                exc.path = Path(path)
            raise
        except Exception as exc:
            raise CompositionError(f"Failed to compose {path}: {exc}", path=path) from exc

    def relativize(self, page: CompiledPage) -> str:
        """Second pass: rewrite the composed page relative to its own target location."""
        target_path = self.target_path(page)
        try:
            return self.postprocessor.process(page.composed, PostProcessMode.RELATIVE, target_path)
        except BuildError as exc:
            if exc.path is None:
                exc.path = page.path
            raise
        except ValueError as exc:
            raise CompositionError(f"Failed to relativize {page.path}: {exc}", path=page.path) from exc

    def target_path(self, page: CompiledPage) -> Path:
        return Path(page.metadata["target_path"])

    def _compile_sync(self, path: Path, text: str) -> CompiledPage:
        composed = self.composer.compose(path, text)
        compiled = self.postprocessor.process(composed.content, PostProcessMode.ABSOLUTE)
        metadata = dict(composed.metadata)
        metadata.setdefault("template_path", str(path))
        metadata["target_path"] = str(self.resolver.target_path_for_template(path))
        return CompiledPage(
            path=Path(path),
            source=text,
            composed=composed.content,
            compiled=compiled,
            metadata=metadata,
        )
