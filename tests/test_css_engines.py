from __future__ import annotations

import json
from pathlib import Path

import pytest

from protostar.css.engines import (
    _LESS_IMPORT,
    _SASS_IMPORT,
    LessEngine,
    SassEngine,
    _less_candidates,
    _sass_candidates,
    collect_imports,
    inject_variables,
)
from protostar.errors import CssCompilationError


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_inject_variables_prepends_globals_and_overrides_declarations() -> None:
    source = "@themeName: default;\n.a { color: @themeName; }\n"

    result = inject_variables(
        source,
        sigil="@",
        global_vars={"base": "10px"},
        modify_vars={"themeName": "red", "extra": "1"},
    )

    assert result.splitlines()[0] == "@base: 10px;"
    assert "@extra: 1;" in result
    assert "@themeName: red;" in result
    assert "default" not in result


def test_inject_variables_for_indented_sass() -> None:
    result = inject_variables("$tone: blue\n.a\n  color: $tone\n", sigil="$", modify_vars={"tone": "red"}, terminator="")

    assert result.startswith("$tone: red\n")


def test_collect_imports_follows_nested_less_imports(tmp_path: Path) -> None:
    source = _write(tmp_path / "site.less", '@import "mixins";\n@import (reference) "lib/base.less";\n')
    mixins = _write(tmp_path / "mixins.less", '@import "colors";\n')
    colors = _write(tmp_path / "colors.less", "@c: red;\n")
    base = _write(tmp_path / "lib" / "base.less", '@import url("http://example.com/x.less");\n')

    deps = collect_imports(source, pattern=_LESS_IMPORT, candidates=_less_candidates)

    assert deps == [str(mixins.resolve()), str(base.resolve()), str(colors.resolve())]


def test_collect_imports_resolves_sass_partials(tmp_path: Path) -> None:
    source = _write(tmp_path / "site.scss", '@use "sass:math";\n@import "partials/buttons", "grid";\n')
    buttons = _write(tmp_path / "partials" / "_buttons.scss", ".btn { color: red; }\n")
    grid = _write(tmp_path / "grid.scss", ".row { display: flex; }\n")

    deps = collect_imports(source, pattern=_SASS_IMPORT, candidates=_sass_candidates)

    assert deps == [str(buttons.resolve()), str(grid.resolve())]


def test_less_engine_compiles_variables_and_imports(tmp_path: Path) -> None:
    _write(tmp_path / "colors.less", "@brand: #ff0000;\n")
    source = _write(tmp_path / "site.less", '@import "colors.less";\n.a { color: @brand; }\n')

    result = LessEngine().compile(source, tmp_path, {})

    assert ".a" in result.css
    assert any(color in result.css.lower() for color in ("#ff0000", "#f00", "red"))
    assert result.dependencies == [str((tmp_path / "colors.less").resolve())]
    assert json.loads(result.source_map)["version"] == 3


def test_less_engine_applies_theme_variables(tmp_path: Path) -> None:
    source = _write(tmp_path / "theme.less", "@themeName: black;\n.theme { color: @themeName; }\n")
    engine = LessEngine()
    variables = {"themeName": "red"}

    red = engine.compile(source, tmp_path, {"global_vars": variables, "modify_vars": variables})
    blue_vars = {"themeName": "blue"}
    blue = engine.compile(source, tmp_path, {"global_vars": blue_vars, "modify_vars": blue_vars})

    assert "red" in red.css
    assert "blue" in blue.css


def test_sass_engine_compiles_scss_with_partials(tmp_path: Path) -> None:
    partial = _write(tmp_path / "_vars.scss", "$brand: #00ff00;\n")
    source = _write(tmp_path / "site.scss", '@import "vars";\n.a { color: $brand; }\n')

    result = SassEngine().compile(source, tmp_path, {})

    assert ".a" in result.css
    assert "#00ff00" in result.css.lower() or "lime" in result.css.lower()
    assert result.dependencies == [str(partial.resolve())]
    assert json.loads(result.source_map)["version"] == 3


def test_sass_engine_reports_compile_errors(tmp_path: Path) -> None:
    source = _write(tmp_path / "broken.scss", ".a { color: $missing; }\n")

    with pytest.raises(CssCompilationError) as excinfo:
        SassEngine().compile(source, tmp_path, {})

    assert excinfo.value.path == source
    assert excinfo.value.line == 1
