"""Translation between project paths, named-path aliases and build target URLs."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Sequence

from .config import NamedPath, ProjectConfig
from .errors import UnsupportedReferenceError

BOWER_PREFIX = "/ps/ext/"
NODE_PREFIX = "/ps/nm/"
INTERNAL_PREFIX = "/ps/"
DYNAMIC_PREFIX = "/ps/dynamic/"
ALIAS_SCHEME = "ps:"
COMPILE_QUERY = "compile"

_SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*:")


class UrlKind(Enum):
    EXTERNAL = "external"
    NAMED_PATH = "named-path"
    PROJECT_FILE = "project-file"
    INTERNAL_ASSET = "internal-asset"
    RELATIVE_UNSUPPORTED = "relative-unsupported"


class AssetRoot(Enum):
    """Which installation root backs an internal asset URL."""

    BOWER = "ext"
    NODE = "nm"
    CORE = "core"


@dataclass(frozen=True, slots=True)
class ClassifiedUrl:
    """Result of classifying a reference found in compiled markup."""

    kind: UrlKind
    url: str
    pathname: str | None = None
    target_url: str | None = None
    named_path: NamedPath | None = None
    asset_root: AssetRoot | None = None
    compile_request: bool = False


class PathResolver:
    """Resolve references against one project, its named paths and one target directory.

    Bindings are fixed at construction so every lookup is deterministic for the
    lifetime of a build run.
    """

    def __init__(
        self,
        *,
        project_dir: Path,
        target_dir: Path,
        named_paths: Sequence[NamedPath] = (),
        bower_dir: Path | None = None,
        node_modules_dir: Path | None = None,
        core_dir: Path | None = None,
    ) -> None:
        self.project_dir = Path(project_dir).resolve()
        self.target_dir = Path(target_dir).resolve()
        self.named_paths: tuple[NamedPath, ...] = tuple(named_paths)
        self.bower_dir = Path(bower_dir) if bower_dir else self.project_dir / "bower_components"
        self.node_modules_dir = Path(node_modules_dir) if node_modules_dir else self.project_dir / "node_modules"
        self.core_dir = Path(core_dir) if core_dir else self.project_dir / "core"
        self._target_root = self.target_dir.as_posix()
        self._by_name = {named.name: named for named in self.named_paths}
        # Longest URL prefix wins when named paths nest.
        self._by_url = sorted(self.named_paths, key=lambda named: len(named.url), reverse=True)

    @classmethod
    def from_config(cls, config: ProjectConfig, *, target_dir: Path | None = None) -> "PathResolver":
        return cls(
            project_dir=config.project_dir,
            target_dir=target_dir or config.target_dir,
            named_paths=config.named_path_list,
            bower_dir=config.resolved_bower_dir,
            node_modules_dir=config.node_modules_dir,
            core_dir=config.core_dir,
        )

    @property
    def target_root(self) -> str:
        """Target directory as a posix string, the prefix of every target URL."""
        return self._target_root

    def is_named_path_name(self, name: str) -> bool:
        return name in self._by_name

    def named_path_for_url(self, pathname: str) -> NamedPath | None:
        for named in self._by_url:
            if pathname == named.url or pathname.startswith(named.url + "/"):
                return named
        return None

    def is_named_path_child(self, path: Path) -> bool:
        return self._named_path_containing(path) is not None

    def classify_url(self, url: str) -> ClassifiedUrl:
        """Classify a reference URL into exactly one :class:`UrlKind`."""
        raw = url.strip()
        if not raw:
            # Nothing to materialize.
            return ClassifiedUrl(kind=UrlKind.EXTERNAL, url=url)

        if raw.startswith(ALIAS_SCHEME):
            raw = self._expand_alias(raw)
        elif raw.startswith("//") or _SCHEME_PATTERN.match(raw):
            return ClassifiedUrl(kind=UrlKind.EXTERNAL, url=url)

        path_part, compile_request = _split_url(raw)

        if path_part.startswith(("./", "../")) or path_part in {".", ".."}:
            return ClassifiedUrl(kind=UrlKind.RELATIVE_UNSUPPORTED, url=url)
        if not path_part.startswith("/"):
            first_segment = path_part.split("/", 1)[0]
            if not self.is_named_path_name(first_segment):
                return ClassifiedUrl(kind=UrlKind.RELATIVE_UNSUPPORTED, url=url)
            path_part = f"/{path_part}"

        pathname = self._strip_target_root(path_part)
        return self._classify_pathname(url, pathname, compile_request)

    def resolve_source_and_target(self, target_url: str) -> tuple[Path, Path]:
        """Map a target URL onto the (copy source, copy target) pair that satisfies it.

        Internal assets copy their whole package directory, named paths copy the whole
        alias root and project files copy their parent directory (or the file itself
        when it sits at the project root).
        """
        path_part, _ = _split_url(target_url)
        pathname = self._strip_target_root(path_part if path_part.startswith("/") else f"/{path_part}")
        classified = self._classify_pathname(target_url, pathname, False)
        target_root = self.target_dir

        if classified.kind is UrlKind.INTERNAL_ASSET:
            root = classified.asset_root
            if root is AssetRoot.BOWER:
                name = _first_segment(pathname[len(BOWER_PREFIX):])
                return self.bower_dir / name, target_root / "ps" / "ext" / name
            if root is AssetRoot.NODE:
                name = _first_segment(pathname[len(NODE_PREFIX):])
                return self.node_modules_dir / name, target_root / "ps" / "nm" / name
            name = _first_segment(pathname[len(INTERNAL_PREFIX):])
            return self.core_dir / name, target_root / "ps" / name

        if classified.kind is UrlKind.NAMED_PATH:
            named = classified.named_path
            assert named is not None
            return Path(named.path), target_root / named.url.lstrip("/")

        # PROJECT_FILE
        relative = pathname.lstrip("/")
        if "/" in relative:
            relative = posixpath.dirname(relative)
        return self.project_dir / relative, target_root / relative

    def find_file_for_url_pathname(self, pathname: str) -> Path:
        """Locate the source file served at ``pathname`` (named path or project)."""
        named = self.named_path_for_url(pathname)
        if named is not None:
            return Path(named.path) / pathname[len(named.url):].lstrip("/")
        return self.project_dir / pathname.lstrip("/")

    def url_path_for_file(self, path: Path) -> str:
        """Return the URL pathname a project or named-path file is served under."""
        resolved = Path(path).resolve()
        named = self._named_path_containing(resolved)
        if named is not None:
            relative = resolved.relative_to(Path(named.path).resolve()).as_posix()
            return f"{named.url.rstrip('/')}/{relative}"
        try:
            relative = resolved.relative_to(self.project_dir).as_posix()
        except ValueError:
            raise UnsupportedReferenceError(
                "Template lies outside the project and every named path", path=resolved
            ) from None
        return f"/{relative}"

    def target_path_for_template(self, path: Path) -> Path:
        return self.target_dir / self.url_path_for_file(path).lstrip("/")

    def to_target_reference(self, value: str) -> str:
        """Rewrite an absolute or ``ps:`` reference to a target-directory-qualified path."""
        text = value.strip()
        if text.startswith(ALIAS_SCHEME):
            text = self._expand_alias(text)
        if not text.startswith("/") or text.startswith("//"):
            return value
        if text == self._target_root or text.startswith(self._target_root + "/"):
            return text
        return self._target_root + text

    def resolve_attribute_value(self, value: str) -> str:
        """Resolve the value of a ``data-ps-*`` build attribute to a concrete URL."""
        text = value.strip()
        if text.startswith(ALIAS_SCHEME):
            return self._expand_alias(text)
        return value

    def _classify_pathname(self, url: str, pathname: str, compile_request: bool) -> ClassifiedUrl:
        normalized = _normalize_pathname(pathname)
        if normalized is None:
            raise UnsupportedReferenceError(f"Reference escapes the project root: {url}")
        target_url = self._target_root + normalized

        if normalized.startswith(DYNAMIC_PREFIX):
            raise UnsupportedReferenceError(f"Dynamic resources cannot be built: {url}")
        if normalized.startswith(BOWER_PREFIX):
            return ClassifiedUrl(
                kind=UrlKind.INTERNAL_ASSET,
                url=url,
                pathname=normalized,
                target_url=target_url,
                asset_root=AssetRoot.BOWER,
            )
        if normalized.startswith(NODE_PREFIX):
            return ClassifiedUrl(
                kind=UrlKind.INTERNAL_ASSET,
                url=url,
                pathname=normalized,
                target_url=target_url,
                asset_root=AssetRoot.NODE,
            )
        if normalized.startswith(INTERNAL_PREFIX) and "/" in normalized[len(INTERNAL_PREFIX):]:
            return ClassifiedUrl(
                kind=UrlKind.INTERNAL_ASSET,
                url=url,
                pathname=normalized,
                target_url=target_url,
                asset_root=AssetRoot.CORE,
            )

        named = self.named_path_for_url(normalized)
        if named is not None:
            return ClassifiedUrl(
                kind=UrlKind.NAMED_PATH,
                url=url,
                pathname=normalized,
                target_url=target_url,
                named_path=named,
                compile_request=compile_request,
            )

        candidate = (self.project_dir / normalized.lstrip("/")).resolve()
        if not _is_within(candidate, self.project_dir):
            raise UnsupportedReferenceError(f"Uncategorized reference outside the project: {url}")
        return ClassifiedUrl(
            kind=UrlKind.PROJECT_FILE,
            url=url,
            pathname=normalized,
            target_url=target_url,
            compile_request=compile_request,
        )

    def _expand_alias(self, value: str) -> str:
        rest = value[len(ALIAS_SCHEME):]
        if rest.startswith("/"):
            return rest
        name, slash, remainder = rest.partition("/")
        if not self.is_named_path_name(name):
            raise UnsupportedReferenceError(f"Unhandled ps: reference (not a named path): {value}")
        named = self._by_name[name]
        return named.url.rstrip("/") + (slash + remainder if slash else "")

    def _strip_target_root(self, path_part: str) -> str:
        if path_part == self._target_root:
            return "/"
        if path_part.startswith(self._target_root + "/"):
            return path_part[len(self._target_root):]
        return path_part

    def _named_path_containing(self, path: Path) -> NamedPath | None:
        resolved = Path(path).resolve()
        for named in self.named_paths:
            if _is_within(resolved, Path(named.path).resolve()):
                return named
        return None


def _split_url(value: str) -> tuple[str, bool]:
    """Drop query and fragment, reporting whether ``?compile`` was requested."""
    path_part, _, fragment_free = value.partition("#")[0].partition("?")
    compile_request = COMPILE_QUERY in fragment_free.split("&")
    return path_part, compile_request


def _normalize_pathname(pathname: str) -> str | None:
    """Collapse ``.``/``..`` segments; ``None`` when the path climbs above the root."""
    segments: list[str] = []
    for segment in pathname.split("/"):
        if segment in {"", "."}:
            continue
        if segment == "..":
            if not segments:
                return None
            segments.pop()
            continue
        segments.append(segment)
    normalized = "/" + "/".join(segments)
    if pathname.endswith("/") and segments:
        normalized += "/"
    return normalized


def _first_segment(value: str) -> str:
    return value.split("/", 1)[0]


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def path_has_prefix(path: Path, prefixes: Iterable[Path]) -> bool:
    """True when ``path`` lies at or below any of ``prefixes``."""
    resolved = Path(path).resolve()
    return any(_is_within(resolved, Path(prefix)) for prefix in prefixes)
