"""CSS preprocessing (LESS via lesscpy, Sass/SCSS via libsass)."""

from .engines import CompiledCss, CssEngine, LessEngine, SassEngine
from .gateway import CssPreprocessorGateway, write_compiled_css

__all__ = [
    "CompiledCss",
    "CssEngine",
    "CssPreprocessorGateway",
    "LessEngine",
    "SassEngine",
    "write_compiled_css",
]
