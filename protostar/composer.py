"""Page composition backed by Jinja2 with HTML-comment delimiters."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Protocol

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from .config import ProjectConfig

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ComposedPage:
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


class Composer(Protocol):
    """Anything that turns a template's raw text into a full page."""

    def compose(self, path: Path, text: str) -> ComposedPage:
        ...


class JinjaComposer:
    """Compose pages with Jinja2, using delimiters that keep raw templates valid HTML.

    ``<!--% ... %-->`` holds statements (``include``, ``extends``, ``block``),
    ``<!--= ... =-->`` expressions and ``<!--# ... #-->`` comments. ``{% %}`` is left
    alone so foreign templates pass through untouched.
    """

    def __init__(self, search_paths: Iterable[Path], *, context: dict[str, Any] | None = None) -> None:
        existing = [str(path) for path in search_paths if Path(path).exists()]
        self._environment = Environment(
            loader=FileSystemLoader(existing),
            autoescape=select_autoescape(["xml"], default_for_string=False),
            block_start_string="<!--%",
            block_end_string="%-->",
            variable_start_string="<!--=",
            variable_end_string="=-->",
            comment_start_string="<!--#",
            comment_end_string="#-->",
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )
        if context:
            self._environment.globals.update(context)

    @classmethod
    def from_config(cls, config: ProjectConfig) -> "JinjaComposer":
        roots = [config.project_dir, *(named.path for named in config.named_path_list)]
        return cls(roots)

    def compose(self, path: Path, text: str) -> ComposedPage:
        template = self._environment.from_string(text)
        content = template.render(page={"path": str(path), "name": Path(path).name})
        logger.debug("Composed %s", path)
        return ComposedPage(content=content, metadata={"template_path": str(path)})
