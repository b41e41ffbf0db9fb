"""Build orchestration: an explicit state machine over the pipeline phases."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Mapping, TypeVar

from .archive import zip_directory
from .composer import Composer, JinjaComposer
from .config import ProjectConfig, load_config
from .copier import DependencyCopier, DependencyLedger, settle
from .css.gateway import CssPreprocessorGateway, write_compiled_css
from .errors import BuildError, ConfigurationError
from .markup import MarkupPostProcessor
from .pages import CompiledPage, PageSelection, TemplateCompiler, discover_templates, read_template
from .paths import PathResolver
from .references import GatheredReferences, gather_references
from .reporting import BuildReport, DependencyStats, PageStats
from .target import ensure_layout, prepare_target_directory

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BuildPhase(Enum):
    INIT = "init"
    TARGET_PREPARED = "target-prepared"
    PAGES_COMPILED = "pages-compiled"
    DEPENDENCIES_GATHERED = "dependencies-gathered"
    DEPENDENCIES_RESOLVED = "dependencies-resolved"
    RELATIVIZED = "relativized"
    THEMES_COMPILED = "themes-compiled"
    DONE = "done"
    FAILED = "failed"


# Step names reported when the transition into a phase fails.
_STEP_NAMES: dict[BuildPhase, str] = {
    BuildPhase.TARGET_PREPARED: "prepare-target",
    BuildPhase.PAGES_COMPILED: "compile-pages",
    BuildPhase.DEPENDENCIES_GATHERED: "gather-dependencies",
    BuildPhase.DEPENDENCIES_RESOLVED: "resolve-dependencies",
    BuildPhase.RELATIVIZED: "write-pages",
    BuildPhase.THEMES_COMPILED: "compile-themes",
    BuildPhase.DONE: "archive",
}


@dataclass(frozen=True, slots=True)
class CompiledPages:
    pages: Mapping[Path, CompiledPage]
    selection: PageSelection


@dataclass(frozen=True, slots=True)
class ResolvedDependencies:
    copied: Mapping[Path, Path]
    compiled: Mapping[Path, Path]


@dataclass(frozen=True, slots=True)
class BuildResult:
    """Everything a finished build produced."""

    target_dir: Path
    pages: Mapping[Path, CompiledPage]
    references: GatheredReferences
    dependencies: ResolvedDependencies
    written: list[Path] = field(default_factory=list)
    themes: list[Path] = field(default_factory=list)
    archive: Path | None = None
    report: BuildReport | None = None


class BuildOrchestrator:
    """Drive one build run from an empty target to written pages (and optional zip).

    ``phase`` and ``history`` expose the state machine; any failure moves it to
    ``FAILED`` and re-raises a :class:`BuildError` carrying the failing step.
    """

    def __init__(
        self,
        config: ProjectConfig,
        *,
        target_dir: Path | None = None,
        composer: Composer | None = None,
        gateway: CssPreprocessorGateway | None = None,
    ) -> None:
        self.config = config
        self.target_dir = Path(target_dir or config.target_dir).resolve()
        self.resolver = PathResolver.from_config(config, target_dir=self.target_dir)
        self.composer = composer or JinjaComposer.from_config(config)
        self._owns_gateway = gateway is None
        self.gateway = gateway or CssPreprocessorGateway()
        self.postprocessor = MarkupPostProcessor(
            self.resolver,
            ignore_exclude_from_build=config.build.ignore_exclude_from_build,
            cleanup=config.build.cleanup_compiled_html,
        )
        self.compiler = TemplateCompiler(self.resolver, self.composer, self.postprocessor)
        self.copier = DependencyCopier(self.resolver, self.gateway)
        self.phase = BuildPhase.INIT
        self.history: list[BuildPhase] = [BuildPhase.INIT]

    async def build(self, *, zip_archive: bool = False, archive_dir: Path | None = None) -> BuildResult:
        started = time.perf_counter()
        try:
            await self._advance(BuildPhase.TARGET_PREPARED, self._prepare_target)
            compiled = await self._advance(BuildPhase.PAGES_COMPILED, self._compile_pages)
            references = await self._advance(
                BuildPhase.DEPENDENCIES_GATHERED, lambda: self._gather_dependencies(compiled)
            )
            resolved = await self._advance(
                BuildPhase.DEPENDENCIES_RESOLVED, lambda: self._resolve_dependencies(references)
            )
            written = await self._advance(BuildPhase.RELATIVIZED, lambda: self._write_pages(compiled))
            themes = await self._advance(BuildPhase.THEMES_COMPILED, self._compile_themes)
            archive = await self._advance(
                BuildPhase.DONE, lambda: self._finish(zip_archive, archive_dir)
            )
        finally:
            if self._owns_gateway:
                self.gateway.close()

        report = BuildReport(
            project=str(self.config.project_dir),
            target=str(self.target_dir),
            generated_at=datetime.now(timezone.utc),
            duration_seconds=round(time.perf_counter() - started, 3),
            pages=PageStats(
                compiled=len(compiled.pages),
                passthrough=len(compiled.selection.passthrough),
                excluded=len(compiled.selection.excluded),
            ),
            dependencies=DependencyStats(
                scripts=len(references.scripts),
                links=len(references.links),
                images=len(references.images),
                copied=len(resolved.copied),
                compiled_stylesheets=len(resolved.compiled),
            ),
            themes=[path.name for path in themes],
            archive=str(archive) if archive else None,
            copied_sources=sorted(str(path) for path in resolved.copied),
        )
        logger.info(
            "Built %d pages into %s in %.2fs", len(compiled.pages), self.target_dir, report.duration_seconds
        )
        return BuildResult(
            target_dir=self.target_dir,
            pages=compiled.pages,
            references=references,
            dependencies=resolved,
            written=written,
            themes=themes,
            archive=archive,
            report=report,
        )

    async def _advance(self, phase: BuildPhase, step: Callable[[], Awaitable[T]]) -> T:
        step_name = _STEP_NAMES[phase]
        logger.debug("Running %s", step_name)
        try:
            result = await step()
        except BuildError as exc:
            if exc.phase is None:
                exc.phase = step_name
            self._transition(BuildPhase.FAILED)
            raise
        except Exception as exc:
            self._transition(BuildPhase.FAILED)
            raise BuildError(f"{type(exc).__name__}: {exc}", phase=step_name) from exc
        self._transition(phase)
        return result

    def _transition(self, phase: BuildPhase) -> None:
        logger.info("Build phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase
        self.history.append(phase)

    async def _prepare_target(self) -> Path:
        return await asyncio.to_thread(
            prepare_target_directory, self.target_dir, project_dir=self.config.project_dir
        )

    async def _compile_pages(self) -> CompiledPages:
        build_cfg = self.config.build
        roots = [self.config.project_dir]
        if build_cfg.include_named_paths:
            roots.extend(named.path for named in self.resolver.named_paths)
        skip = [
            self.target_dir,
            self.resolver.bower_dir,
            self.resolver.node_modules_dir,
            self.resolver.core_dir,
        ]
        templates = await asyncio.to_thread(discover_templates, roots, skip=skip)
        selection = await asyncio.to_thread(
            self.compiler.select_pages,
            templates,
            self.config.excluded_path_prefixes,
            build_cfg.include_named_paths,
        )

        async def compile_one(path: Path) -> CompiledPage:
            text = await asyncio.to_thread(read_template, path)
            return await self.compiler.compile(path, text)

        results = await settle([compile_one(path) for path in selection.eligible])
        pages = {page.path: page for page in sorted(results, key=lambda page: str(page.path))}
        return CompiledPages(pages=pages, selection=selection)

    async def _gather_dependencies(self, compiled: CompiledPages) -> GatheredReferences:
        markup = [page.compiled for page in compiled.pages.values()]
        references = await asyncio.to_thread(gather_references, markup)
        logger.info(
            "Gathered %d script, %d link and %d image references",
            len(references.scripts),
            len(references.links),
            len(references.images),
        )
        return references

    async def _resolve_dependencies(self, references: GatheredReferences) -> ResolvedDependencies:
        await asyncio.to_thread(ensure_layout, self.target_dir)
        ledger = DependencyLedger()
        operations = [self.copier.copy_project_resources(self.config.build.resource_dirs.project, ledger)]
        operations.extend(self.copier.ensure(url, ledger) for url in references.all())
        await settle(operations)
        if ledger.queued_total:
            logger.info("Compiling %d queued stylesheets", ledger.queued_total)
        await self.copier.flush_queued(ledger)
        return ResolvedDependencies(copied=dict(ledger.copied), compiled=dict(ledger.compiled))

    async def _write_pages(self, compiled: CompiledPages) -> list[Path]:
        async def write_compiled(page: CompiledPage) -> Path:
            html = await asyncio.to_thread(self.compiler.relativize, page)
            return await asyncio.to_thread(_write_text, self.compiler.target_path(page), html)

        async def write_passthrough(path: Path) -> Path:
            text = await asyncio.to_thread(read_template, path)
            target = self.resolver.target_path_for_template(path)
            return await asyncio.to_thread(_write_text, target, text)

        operations = [write_compiled(page) for page in compiled.pages.values()]
        operations.extend(write_passthrough(path) for path in compiled.selection.passthrough)
        return await settle(operations)

    async def _compile_themes(self) -> list[Path]:
        theming = self.config.theming
        if not theming.enabled:
            return []
        if not theming.entry_point:
            raise ConfigurationError("theming.entryPoint is required when theming is enabled")
        if not theming.theme_names:
            raise ConfigurationError("theming.themeNames is empty while theming is enabled")
        entry = self.config.project_dir / theming.entry_point
        if not entry.is_file():
            raise ConfigurationError("Theme entry point does not exist", path=entry)

        async def compile_theme(name: str) -> Path:
            variables = {theming.theme_name_var: name}
            options = {"global_vars": variables, "modify_vars": variables}
            result = await self.gateway.compile(entry, self.config.project_dir, options)
            target = self.target_dir / f"{theming.entry_point}-{name}.css"
            written = await asyncio.to_thread(write_compiled_css, target, result)
            return written[0]

        return await settle([compile_theme(name) for name in theming.theme_names])

    async def _finish(self, zip_archive: bool, archive_dir: Path | None) -> Path | None:
        if not zip_archive:
            return None
        return await asyncio.to_thread(zip_directory, self.target_dir, archive_dir)


def _write_text(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def build_project(
    config: ProjectConfig | str | Path,
    *,
    target_dir: Path | None = None,
    zip_archive: bool = False,
    archive_dir: Path | None = None,
    composer: Composer | None = None,
    gateway: CssPreprocessorGateway | None = None,
) -> BuildResult:
    """Run a complete build synchronously and return its result."""
    if not isinstance(config, ProjectConfig):
        config = load_config(config)
    orchestrator = BuildOrchestrator(config, target_dir=target_dir, composer=composer, gateway=gateway)
    return asyncio.run(orchestrator.build(zip_archive=zip_archive, archive_dir=archive_dir))


def create_zip_build(
    config: ProjectConfig | str | Path,
    *,
    target_dir: Path | None = None,
    archive_dir: Path | None = None,
    gateway: CssPreprocessorGateway | None = None,
) -> Path:
    """Build the project and return the path of the zipped target directory."""
    result = build_project(
        config,
        target_dir=target_dir,
        zip_archive=True,
        archive_dir=archive_dir,
        gateway=gateway,
    )
    assert result.archive is not None
    return result.archive
