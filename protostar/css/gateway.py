"""Cached, coalescing front for the CSS preprocessor engines."""

from __future__ import annotations

import asyncio
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping

from ..errors import CssCompilationError
from .engines import CompiledCss, CssEngine, default_engines

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _CacheEntry:
    result: CompiledCss
    latest_mod_ns: int
    files: tuple[Path, ...]


class CssPreprocessorGateway:
    """Compile LESS/Sass sources with per-entry caching and request coalescing.

    Cache entries remember the newest modification time among the source and its
    dependencies at compile time. A lookup reuses the entry only while none of those
    files has a newer modification time. Deleting a dependency, or editing a source so
    that its import list changes without touching an old dependency, is not detected;
    the check compares modification times only.

    Engines run on a private single-worker executor. Construct one gateway per process
    (or per server) and call :meth:`close` when finished with it.
    """

    def __init__(self, engines: Iterable[CssEngine] | None = None) -> None:
        self._engines: dict[str, CssEngine] = {}
        for engine in engines if engines is not None else default_engines():
            for suffix in engine.suffixes:
                self._engines[suffix] = engine
        self._cache: dict[str, _CacheEntry] = {}
        self._in_flight: dict[str, asyncio.Future[CompiledCss]] = {}
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="protostar-css")

    @staticmethod
    def cache_key(source: Path, base_path: Path | None, options: Mapping[str, Any] | None) -> str:
        source = Path(source)
        key = f"{source}_{source.parent}_{base_path or source.parent}"
        for name, value in _flatten_options(options or {}):
            key += f"_{name}_{value}"
        return key

    def cached(self, source: Path, base_path: Path | None = None, options: Mapping[str, Any] | None = None) -> bool:
        return self.cache_key(source, base_path, options) in self._cache

    async def compile(
        self,
        source: Path,
        base_path: Path | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> CompiledCss:
        """Compile ``source``; concurrent calls with the same key share one engine run."""
        source = Path(source)
        base = Path(base_path) if base_path is not None else source.parent
        opts = dict(options or {})
        key = self.cache_key(source, base, opts)

        future = self._in_flight.get(key)
        if future is None:
            future = asyncio.ensure_future(self._compile_or_reuse(key, source, base, opts))
            self._in_flight[key] = future
            future.add_done_callback(lambda done, k=key: self._forget(k, done))
        else:
            logger.debug("Joining in-flight compilation of %s", source)
        return await asyncio.shield(future)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def _forget(self, key: str, done: asyncio.Future[CompiledCss]) -> None:
        if self._in_flight.get(key) is done:
            del self._in_flight[key]
        if not done.cancelled():
            # Mark the exception retrieved; callers observe it through shield().
            done.exception()

    async def _compile_or_reuse(
        self,
        key: str,
        source: Path,
        base: Path,
        options: Mapping[str, Any],
    ) -> CompiledCss:
        loop = asyncio.get_running_loop()
        entry = self._cache.get(key)
        if entry is not None:
            current = await loop.run_in_executor(None, _latest_mtime_ns, entry.files)
            if current <= entry.latest_mod_ns:
                logger.debug("CSS cache hit for %s", source)
                return entry.result
            logger.debug("CSS cache stale for %s", source)

        engine = self._engines.get(source.suffix.lower())
        if engine is None:
            raise CssCompilationError(f"No CSS preprocessor handles {source.suffix or source.name}", path=source)
        if not source.exists():
            raise CssCompilationError(f"CSS source does not exist: {source}", path=source)

        logger.info("Compiling %s", source)
        result = await loop.run_in_executor(self._executor, engine.compile, source, base, options)
        files = (source, *(Path(dep) for dep in result.dependencies))
        latest = await loop.run_in_executor(None, _latest_mtime_ns, files)
        self._cache[key] = _CacheEntry(result=result, latest_mod_ns=latest, files=files)
        return result


def _flatten_options(options: Mapping[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    flattened: list[tuple[str, Any]] = []
    for name in sorted(options):
        value = options[name]
        label = f"{prefix}{name}"
        if isinstance(value, Mapping):
            flattened.extend(_flatten_options(value, f"{label}."))
        else:
            flattened.append((label, value))
    return flattened


def _latest_mtime_ns(files: Iterable[Path]) -> int:
    latest = 0
    for path in files:
        try:
            latest = max(latest, path.stat().st_mtime_ns)
        except FileNotFoundError:
            continue
    return latest


def write_compiled_css(target: Path, compiled: CompiledCss) -> list[Path]:
    """Write compiled output beside ``target`` and return the files written.

    A ``.less``/``.scss``/``.sass`` target receives the compiled CSS as primary content
    plus ``<stem>.css``, ``<stem>.css.map`` and ``<stem>.deps.json`` siblings. A ``.css``
    target receives ``<name>.map`` and ``<stem>.deps.json``.
    """
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    deps_payload = json.dumps(compiled.dependencies, indent=2)

    target.write_text(compiled.css, encoding="utf-8")
    written = [target]
    if target.suffix.lower() == ".css":
        siblings = [
            (target.with_name(f"{target.name}.map"), compiled.source_map),
            (target.with_name(f"{target.stem}.deps.json"), deps_payload),
        ]
    else:
        siblings = [
            (target.with_name(f"{target.stem}.css"), compiled.css),
            (target.with_name(f"{target.stem}.css.map"), compiled.source_map),
            (target.with_name(f"{target.stem}.deps.json"), deps_payload),
        ]
    for path, content in siblings:
        path.write_text(content, encoding="utf-8")
        written.append(path)
    return written
