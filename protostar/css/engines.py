"""LESS and Sass engine adapters sharing one ``compile`` contract."""

from __future__ import annotations

import io
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Protocol, Sequence

import lesscpy
import sass
from lesscpy.exceptions import CompilationError

from ..errors import CssCompilationError

logger = logging.getLogger(__name__)

LESS_SUFFIXES = (".less",)
SASS_SUFFIXES = (".scss", ".sass")

_LESS_IMPORT = re.compile(
    r"""@import\s*(?:\([^)]*\)\s*)?(?:url\(\s*)?["']([^"']+)["']""",
    re.IGNORECASE,
)
_SASS_IMPORT = re.compile(r"""@(?:import|use|forward)\s+([^;\n]+)""", re.IGNORECASE)
_QUOTED = re.compile(r"""["']([^"']+)["']""")
_REMOTE = re.compile(r"^(?:[a-zA-Z][a-zA-Z0-9+.\-]*:|//)")


@dataclass(slots=True)
class CompiledCss:
    """Output of one preprocessor run."""

    css: str
    source_map: str
    dependencies: list[str] = field(default_factory=list)


class CssEngine(Protocol):
    suffixes: Sequence[str]

    def compile(self, source: Path, base_path: Path, options: Mapping[str, Any]) -> CompiledCss:
        ...


def minimal_source_map(source: Path, output_name: str) -> str:
    """Return a version 3 source map naming ``source`` without segment mappings."""
    payload = {
        "version": 3,
        "file": output_name,
        "sources": [source.as_posix()],
        "names": [],
        "mappings": "",
    }
    return json.dumps(payload)


def inject_variables(
    text: str,
    *,
    sigil: str,
    global_vars: Mapping[str, Any] | None = None,
    modify_vars: Mapping[str, Any] | None = None,
    terminator: str = ";",
) -> str:
    """Apply global (prepended) and modify (overriding) variables to stylesheet source."""
    prologue: list[str] = []
    for name, value in (global_vars or {}).items():
        prologue.append(f"{sigil}{name}: {value}{terminator}")

    for name, value in (modify_vars or {}).items():
        declaration = f"{sigil}{name}: {value}{terminator}"
        if terminator:
            pattern = re.compile(
                rf"^([ \t]*){re.escape(sigil + str(name))}\s*:[^;]*;",
                re.MULTILINE,
            )
        else:
            pattern = re.compile(
                rf"^([ \t]*){re.escape(sigil + str(name))}\s*:.*$",
                re.MULTILINE,
            )
        text, replaced = pattern.subn(lambda match: match.group(1) + declaration, text)
        if not replaced:
            prologue.append(declaration)

    if not prologue:
        return text
    return "\n".join(prologue) + "\n" + text


def collect_imports(
    source: Path,
    *,
    pattern: re.Pattern[str],
    candidates: Callable[[str], list[str]],
    search_paths: Sequence[Path] = (),
) -> list[str]:
    """Walk local ``@import`` statements recursively and return existing files, first seen first."""
    seen: dict[str, None] = {}
    pending = [source.resolve()]
    visited: set[Path] = set()
    while pending:
        current = pending.pop(0)
        if current in visited:
            continue
        visited.add(current)
        try:
            text = current.read_text(encoding="utf-8")
        except OSError:
            continue
        for reference in _references(text, pattern):
            if _REMOTE.match(reference) or reference.startswith("sass:"):
                continue
            roots = [current.parent, *search_paths]
            found = _first_existing(candidates(reference), roots)
            if found is None:
                continue
            key = str(found)
            if key not in seen and found != source.resolve():
                seen[key] = None
                pending.append(found)
    return list(seen)


def _references(text: str, pattern: re.Pattern[str]) -> Iterable[str]:
    for match in pattern.finditer(text):
        groups = match.group(1)
        quoted = _QUOTED.findall(groups)
        if quoted:
            yield from quoted
        else:
            yield groups.strip()


def _first_existing(names: Iterable[str], roots: Sequence[Path]) -> Path | None:
    for root in roots:
        for name in names:
            candidate = (root / name).resolve()
            if candidate.is_file():
                return candidate
    return None


def _less_candidates(reference: str) -> list[str]:
    if Path(reference).suffix:
        return [reference]
    return [f"{reference}.less", reference]


def _sass_candidates(reference: str) -> list[str]:
    path = Path(reference)
    if path.suffix in {".scss", ".sass", ".css"}:
        return [reference, str(path.with_name(f"_{path.name}"))]
    names: list[str] = []
    for suffix in (".scss", ".sass", ".css"):
        names.append(str(path.with_name(f"{path.name}{suffix}")))
        names.append(str(path.with_name(f"_{path.name}{suffix}")))
    for suffix in (".scss", ".sass"):
        names.append(str(path / f"_index{suffix}"))
    return names


class _NamedStream(io.StringIO):
    """In-memory source carrying a file name so relative imports resolve next to it."""

    def __init__(self, text: str, name: str) -> None:
        super().__init__(text)
        self.name = name


class LessEngine:
    """Compile ``.less`` sources with lesscpy."""

    suffixes: Sequence[str] = LESS_SUFFIXES

    def compile(self, source: Path, base_path: Path, options: Mapping[str, Any]) -> CompiledCss:
        text = source.read_text(encoding="utf-8")
        text = inject_variables(
            text,
            sigil="@",
            global_vars=options.get("global_vars"),
            modify_vars=options.get("modify_vars"),
        )
        stream = _NamedStream(text, str(source))
        try:
            css = lesscpy.compile(stream, minify=bool(options.get("compress", False)))
        except CompilationError as exc:
            raise CssCompilationError.from_diagnostic(source, str(exc)) from exc
        except (SyntaxError, ValueError) as exc:
            # lesscpy surfaces some parse failures as plain exceptions.
            raise CssCompilationError.from_diagnostic(source, str(exc)) from exc

        dependencies = collect_imports(
            source,
            pattern=_LESS_IMPORT,
            candidates=_less_candidates,
            search_paths=[base_path],
        )
        logger.debug("Compiled LESS %s (%d dependencies)", source, len(dependencies))
        return CompiledCss(
            css=css,
            source_map=minimal_source_map(source, f"{source.stem}.css"),
            dependencies=dependencies,
        )


class SassEngine:
    """Compile ``.scss`` and indented ``.sass`` sources with libsass."""

    suffixes: Sequence[str] = SASS_SUFFIXES

    def compile(self, source: Path, base_path: Path, options: Mapping[str, Any]) -> CompiledCss:
        include_paths = [str(source.parent), str(base_path)]
        output_style = "compressed" if options.get("compress") else "expanded"
        indented = source.suffix == ".sass"
        global_vars = options.get("global_vars")
        modify_vars = options.get("modify_vars")
        map_name = f"{source.stem}.css.map"

        try:
            if global_vars or modify_vars:
                text = inject_variables(
                    source.read_text(encoding="utf-8"),
                    sigil="$",
                    global_vars=global_vars,
                    modify_vars=modify_vars,
                    terminator="" if indented else ";",
                )
                css = sass.compile(
                    string=text,
                    include_paths=include_paths,
                    output_style=output_style,
                    indented=indented,
                )
                source_map = minimal_source_map(source, f"{source.stem}.css")
            else:
                css, source_map = sass.compile(
                    filename=str(source),
                    include_paths=include_paths,
                    output_style=output_style,
                    source_map_filename=map_name,
                    output_filename_hint=f"{source.stem}.css",
                    omit_source_map_url=True,
                )
        except sass.CompileError as exc:
            raise CssCompilationError.from_diagnostic(source, str(exc)) from exc

        dependencies = collect_imports(
            source,
            pattern=_SASS_IMPORT,
            candidates=_sass_candidates,
            search_paths=[base_path],
        )
        logger.debug("Compiled Sass %s (%d dependencies)", source, len(dependencies))
        return CompiledCss(css=css, source_map=source_map, dependencies=dependencies)


def default_engines() -> list[CssEngine]:
    return [LessEngine(), SassEngine()]
