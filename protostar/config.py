from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

CONFIG_FILENAME = "prototype.json"


class NamedPath(BaseModel):
    """Alias mapping a short name to a filesystem location and a URL prefix."""

    name: str
    path: Path
    url: str

    @field_validator("path", mode="before")
    def _ensure_path(cls, value: Any) -> Path:
        return Path(value)

    @field_validator("url")
    def _normalize_url(cls, value: str) -> str:
        text = value.strip()
        if not text.startswith("/"):
            text = f"/{text}"
        if len(text) > 1:
            text = text.rstrip("/")
        return text


class NamedPathEntry(BaseModel):
    """Configuration value stored under ``namedPaths.<name>``."""

    path: Path
    url: str | None = Field(default=None)

    @field_validator("path", mode="before")
    def _ensure_path(cls, value: Any) -> Path:
        return Path(value)


class ResourceDirs(BaseModel):
    """Directories copied verbatim into the build target."""

    project: list[str] = Field(default_factory=list)


class BuildConfig(BaseModel):
    """Options under the ``build`` key of ``prototype.json``."""

    model_config = ConfigDict(populate_by_name=True)

    excluded_paths: list[str] = Field(
        default_factory=list,
        alias="excludedPaths",
        description="Path prefixes never compiled; absolute when starting with '/', else project-relative.",
    )
    include_named_paths: bool = Field(
        default=False,
        alias="includeNamedPaths",
        description="Compile pages living below named paths as well.",
    )
    resource_dirs: ResourceDirs = Field(default_factory=ResourceDirs, alias="resourceDirs")
    cleanup_compiled_html: bool = Field(
        default=False,
        alias="cleanupCompiledHtml",
        description="Strip comments and pretty-print pages before writing them.",
    )
    ignore_exclude_from_build: bool = Field(
        default=False,
        alias="ignoreExcludeFromBuild",
        description="Keep markup flagged with data-exclude-from-build in the written pages.",
    )


class ThemingConfig(BaseModel):
    """Options under the ``theming`` key of ``prototype.json``."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = Field(default=False)
    entry_point: str | None = Field(default=None, alias="entryPoint")
    theme_names: list[str] = Field(default_factory=list, alias="themeNames")
    theme_name_var: str = Field(default="themeName", alias="themeNameVar")

    @field_validator("theme_name_var")
    def _strip_sigil(cls, value: str) -> str:
        text = value.strip().lstrip("@$")
        if not text:
            raise ValueError("theming.themeNameVar must not be empty.")
        return text


class ProjectConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_dir: Path = Field(default=Path("."), alias="projectDir")
    target_dir: Path = Field(default=Path("build"), alias="targetDir")
    bower_dir: Path | None = Field(
        default=None,
        alias="bowerDir",
        description="Browser package root; defaults to the .bowerrc directory or bower_components.",
    )
    node_modules_dir: Path = Field(default=Path("node_modules"), alias="nodeModulesDir")
    core_dir: Path = Field(
        default=Path("core"),
        alias="coreDir",
        description="Root of the built-in assets served below /ps/<internal>/.",
    )
    named_paths: dict[str, NamedPathEntry] = Field(default_factory=dict, alias="namedPaths")
    build: BuildConfig = Field(default_factory=BuildConfig)
    theming: ThemingConfig = Field(default_factory=ThemingConfig)

    @field_validator("project_dir", "target_dir", "node_modules_dir", "core_dir", mode="before")
    def _ensure_path(cls, value: Any) -> Path:
        return Path(value)

    @field_validator("bower_dir", mode="before")
    def _ensure_optional_path(cls, value: Any) -> Path | None:
        if value is None or value == "":
            return None
        return Path(value)

    @property
    def resolved_bower_dir(self) -> Path:
        if self.bower_dir is not None:
            return self.bower_dir
        return self.project_dir / read_bowerrc_directory(self.project_dir)

    @property
    def named_path_list(self) -> list[NamedPath]:
        return [
            NamedPath(name=name, path=entry.path, url=entry.url or f"/{name}")
            for name, entry in self.named_paths.items()
        ]

    @property
    def excluded_path_prefixes(self) -> list[Path]:
        prefixes: list[Path] = []
        for entry in self.build.excluded_paths:
            if entry.startswith("/"):
                prefixes.append(Path(entry))
            else:
                prefixes.append((self.project_dir / entry).resolve())
        return prefixes


def read_bowerrc_directory(project_dir: Path) -> str:
    """Return the bower install directory declared in ``.bowerrc`` (or the default)."""
    bowerrc = project_dir / ".bowerrc"
    if not bowerrc.exists():
        return "bower_components"
    try:
        data = json.loads(bowerrc.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid .bowerrc at {bowerrc}: {exc}") from exc
    directory = data.get("directory") if isinstance(data, dict) else None
    return str(directory) if directory else "bower_components"


def load_config(path: str | Path) -> ProjectConfig:
    """Load project configuration and resolve relative paths based on its location.

    ``path`` may point to a configuration file (``/proj/prototype.json``) or to a
    project directory. A directory without ``prototype.json`` yields the defaults.
    Relative paths are interpreted relative to the directory holding the config.
    """
    candidate = Path(path)
    data: dict[str, Any] = {}
    if candidate.is_dir():
        config_file = candidate / CONFIG_FILENAME
        if config_file.exists():
            data = _read_mapping(config_file)
        base_dir = candidate.resolve()
    elif candidate.exists():
        data = _read_mapping(candidate)
        base_dir = candidate.parent.resolve()
    else:
        raise FileNotFoundError(candidate)

    cfg = ProjectConfig(**data)

    def _abs(value: Path) -> Path:
        return value if value.is_absolute() else (base_dir / value).resolve()

    cfg.project_dir = _abs(cfg.project_dir)
    cfg.target_dir = _abs(cfg.target_dir)
    cfg.node_modules_dir = _abs(cfg.node_modules_dir)
    cfg.core_dir = _abs(cfg.core_dir)
    if cfg.bower_dir is not None:
        cfg.bower_dir = _abs(cfg.bower_dir)
    for entry in cfg.named_paths.values():
        entry.path = _abs(entry.path)

    return cfg


def _read_mapping(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        # Tab-indented JSON is common in prototype.json but invalid YAML.
        if path.suffix.lower() == ".json":
            data = json.load(handle)
        else:
            data = yaml.safe_load(handle)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration {path} does not define an object root.")
    return data
