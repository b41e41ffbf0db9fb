"""Materialize referenced dependencies into the build target exactly once."""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Iterable, TypeVar

from .css.engines import LESS_SUFFIXES, SASS_SUFFIXES
from .css.gateway import CssPreprocessorGateway, write_compiled_css
from .errors import DependencyCopyError, MissingSourceError, UnsupportedReferenceError
from .paths import PathResolver, UrlKind, path_has_prefix

logger = logging.getLogger(__name__)

COMPILABLE_SUFFIXES = LESS_SUFFIXES + SASS_SUFFIXES

T = TypeVar("T")


@dataclass
class DependencyLedger:
    """Per-build record of copied sources and deferred stylesheet compilations.

    Every check-then-set method here is synchronous; callers on the event loop must not
    await between deciding to copy and recording the claim.
    """

    copied: dict[Path, Path] = field(default_factory=dict)
    queued_less: dict[Path, Path] = field(default_factory=dict)
    queued_sass: dict[Path, Path] = field(default_factory=dict)
    compiled: dict[Path, Path] = field(default_factory=dict)

    def claim(self, source: Path, target: Path) -> bool:
        if source in self.copied:
            return False
        self.copied[source] = target
        return True

    def claim_compilation(self, source: Path, target: Path) -> bool:
        if source in self.compiled:
            return False
        self.compiled[source] = target
        return True

    def queue_compilation(self, source: Path, target: Path) -> bool:
        queue = self.queued_less if source.suffix.lower() in LESS_SUFFIXES else self.queued_sass
        if source in queue:
            return False
        queue[source] = target
        logger.debug("Queued %s for compilation into %s", source, target)
        return True

    @property
    def queued_total(self) -> int:
        return len(self.queued_less) + len(self.queued_sass)


class DependencyCopier:
    """Resolve references found in compiled pages and copy or compile what they need."""

    def __init__(self, resolver: PathResolver, gateway: CssPreprocessorGateway) -> None:
        self.resolver = resolver
        self.gateway = gateway

    async def ensure(self, url: str, ledger: DependencyLedger) -> None:
        classified = self.resolver.classify_url(url)
        if classified.kind is UrlKind.EXTERNAL:
            return
        if classified.kind is UrlKind.RELATIVE_UNSUPPORTED:
            raise UnsupportedReferenceError(
                f"Relative reference '{url}' is not supported; use an absolute or named-path URL"
            )

        assert classified.pathname is not None and classified.target_url is not None

        if classified.kind in (UrlKind.PROJECT_FILE, UrlKind.NAMED_PATH):
            equivalent = self.resolver.find_file_for_url_pathname(classified.pathname)
            target = self.resolver.target_dir / classified.pathname.lstrip("/")

            if classified.compile_request and equivalent.suffix.lower() in COMPILABLE_SUFFIXES:
                if ledger.claim_compilation(equivalent, target):
                    await self.compile_to(equivalent, target)
                return

            if equivalent.suffix.lower() == ".css" and not equivalent.exists():
                sibling = compilable_sibling(equivalent)
                if sibling is not None:
                    ledger.queue_compilation(sibling, target)
                    return

        source, target = self.resolver.resolve_source_and_target(classified.target_url)
        if source.resolve() == self.resolver.project_dir:
            return
        if not ledger.claim(source, target):
            logger.debug("Already satisfied: %s", url)
            return
        await self.copy(source, target, ledger)

    async def copy(self, source: Path, target: Path, ledger: DependencyLedger | None = None) -> None:
        resolved = Path(source).resolve()
        if resolved == self.resolver.project_dir:
            raise DependencyCopyError("Refusing to copy the project root into the build", path=source)
        if path_has_prefix(resolved, [self.resolver.target_dir]):
            raise DependencyCopyError("Refusing to copy build output back into the build", path=source)
        if not resolved.exists():
            sibling = compilable_sibling(resolved)
            if sibling is not None and ledger is not None:
                ledger.queue_compilation(sibling, Path(target))
                return
            raise MissingSourceError(f"Dependency source does not exist: {source}", path=source)

        logger.debug("Copying %s -> %s", resolved, target)
        await _copy_path(resolved, Path(target))

    async def copy_project_resources(self, directories: Iterable[str], ledger: DependencyLedger) -> None:
        operations = []
        for name in directories:
            relative = name.strip("/")
            source = self.resolver.project_dir / relative
            target = self.resolver.target_dir / relative
            if ledger.claim(source, target):
                operations.append(self.copy(source, target, ledger))
        await settle(operations)

    async def flush_queued(self, ledger: DependencyLedger) -> list[Path]:
        """Compile every queued LESS/Sass source into its target stylesheet."""
        pending = {**ledger.queued_less, **ledger.queued_sass}
        operations = []
        for source, target in pending.items():
            if ledger.claim_compilation(source, target):
                operations.append(self.compile_to(source, target))
        await settle(operations)
        return list(pending.values())

    async def compile_to(self, source: Path, target: Path) -> None:
        compiled = await self.gateway.compile(source, self.resolver.project_dir)
        written = await asyncio.to_thread(write_compiled_css, target, compiled)
        logger.info("Compiled %s -> %s", source, written[0])


def compilable_sibling(css_path: Path) -> Path | None:
    """Return the ``.less``/``.scss``/``.sass`` file standing in for a missing stylesheet."""
    for suffix in COMPILABLE_SUFFIXES:
        candidate = css_path.with_suffix(suffix)
        if candidate.is_file():
            return candidate
    return None


async def settle(operations: Iterable[Awaitable[T]]) -> list[T]:
    """Await every operation, then raise the first failure.

    Operations still in flight when one fails are allowed to finish; their results
    are discarded.
    """
    results = await asyncio.gather(*operations, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


async def _copy_path(source: Path, target: Path) -> None:
    await asyncio.to_thread(_copy_sync, source, target)


def _copy_sync(source: Path, target: Path) -> None:
    if source.is_dir():
        shutil.copytree(source, target, dirs_exist_ok=True)
    else:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
