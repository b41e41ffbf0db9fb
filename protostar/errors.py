"""Exception hierarchy raised by the build pipeline."""

from __future__ import annotations

import re
from pathlib import Path

_LINE_PATTERN = re.compile(r"\bline[:\s]+(\d+)(?::(\d+))?", re.IGNORECASE)
_COLUMN_PATTERN = re.compile(r"\bcol(?:umn)?[:\s]+(\d+)", re.IGNORECASE)


class BuildError(RuntimeError):
    """Base class for build failures; carries the failing phase and path when known."""

    def __init__(self, message: str, *, path: Path | str | None = None, phase: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = Path(path) if path is not None else None
        self.phase = phase

    def __str__(self) -> str:
        parts: list[str] = []
        if self.phase:
            parts.append(f"[{self.phase}]")
        parts.append(self.message)
        if self.path is not None and str(self.path) not in self.message:
            parts.append(f"({self.path})")
        return " ".join(parts)


class ConfigurationError(BuildError):
    """Raised for illegal target directories, a missing build sentinel or bad theming setup."""


class CompositionError(BuildError):
    """Raised when composing or post-processing a page fails."""


class UnsupportedReferenceError(BuildError):
    """Raised for references the build refuses to guess a resolution for."""


class MissingSourceError(BuildError):
    """Raised when a dependency source is absent and no compilable sibling exists."""


class DependencyCopyError(BuildError):
    """Raised when a copy would read from the project root or the build target itself."""


class CssCompilationError(BuildError):
    """Raised when a CSS preprocessor rejects a source file."""

    def __init__(
        self,
        message: str,
        *,
        path: Path | str | None = None,
        line: int | None = None,
        column: int | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, path=path, phase=phase)
        self.line = line
        self.column = column

    @classmethod
    def from_diagnostic(cls, source: Path, diagnostic: str) -> "CssCompilationError":
        """Build an error from an engine message, extracting line/column when present."""
        line = column = None
        line_match = _LINE_PATTERN.search(diagnostic)
        if line_match:
            line = int(line_match.group(1))
            if line_match.group(2):
                column = int(line_match.group(2))
        if column is None:
            column_match = _COLUMN_PATTERN.search(diagnostic)
            if column_match:
                column = int(column_match.group(1))
        text = diagnostic.strip() or "CSS compilation failed"
        return cls(f"Failed to compile {source}: {text}", path=source, line=line, column=column)

    def location(self) -> str:
        if self.line is None:
            return ""
        if self.column is None:
            return str(self.line)
        return f"{self.line}:{self.column}"
