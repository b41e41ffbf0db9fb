from __future__ import annotations

from pathlib import Path

import pytest
from bs4 import BeautifulSoup

from protostar.config import NamedPath
from protostar.errors import UnsupportedReferenceError
from protostar.markup import MarkupPostProcessor, PostProcessMode
from protostar.paths import PathResolver


def _resolver(tmp_path: Path) -> PathResolver:
    project = tmp_path / "proj"
    project.mkdir()
    return PathResolver(
        project_dir=project,
        target_dir=tmp_path / "out",
        named_paths=[NamedPath(name="shared", path=tmp_path / "shared", url="/shared")],
    )


PAGE = """<!DOCTYPE html>
<html>
<head>
<link rel="stylesheet" href="/css/site.css">
<script src="ps:shared/lib.js"></script>
</head>
<body>
<div data-editable="true"><p>Hello</p></div>
<div data-editable="true" id="keep"></div>
<div data-exclude-from-build><script src="/dev/reload.js"></script></div>
<img data-ps-src="ps:shared/logo.png" alt="logo">
<a href="/docs/">Docs</a>
<a href="https://example.com/">External</a>
<script src="/ps/ext/foo/foo.js"></script>
</body>
</html>
"""


def test_absolute_pass_rewrites_for_target_directory(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)
    root = resolver.target_root

    html = MarkupPostProcessor(resolver).process(PAGE, PostProcessMode.ABSOLUTE)
    soup = BeautifulSoup(html, "html.parser")

    editables = soup.select("[data-editable]")
    assert [element["id"] for element in editables] == ["psedit0", "keep"]
    assert all(element["contenteditable"] == "false" for element in editables)
    assert soup.select("[data-exclude-from-build]") == []
    assert "/dev/reload.js" not in html

    image = soup.find("img")
    assert image["src"] == f"{root}/shared/logo.png"
    assert not image.has_attr("data-ps-src")

    assert soup.find("link")["href"] == f"{root}/css/site.css"
    assert [script["src"] for script in soup.find_all("script")] == [
        f"{root}/shared/lib.js",
        f"{root}/ps/ext/foo/foo.js",
    ]
    assert [a["href"] for a in soup.find_all("a")] == [f"{root}/docs/", "https://example.com/"]
    assert html.startswith("<!DOCTYPE html>")


def test_relative_pass_uses_page_depth(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)
    page_target = resolver.target_dir / "a" / "b" / "index.html"

    html = MarkupPostProcessor(resolver).process(PAGE, PostProcessMode.RELATIVE, page_target)
    soup = BeautifulSoup(html, "html.parser")

    scripts = [script["src"] for script in soup.find_all("script")]
    assert "../../ps/ext/foo/foo.js" in scripts
    assert "../../shared/lib.js" in scripts
    assert soup.find("link")["href"] == "../../css/site.css"
    assert soup.find("img")["src"] == "../../shared/logo.png"
    assert [a["href"] for a in soup.find_all("a")] == ["../../docs/index.html", "https://example.com/"]


def test_relative_pass_keeps_query_and_links_to_root_index(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)
    page_target = resolver.target_dir / "index.html"
    markup = '<a href="/">Home</a><link href="/css/site.css?v=3#x" rel="stylesheet">'

    html = MarkupPostProcessor(resolver).process(markup, PostProcessMode.RELATIVE, page_target)
    soup = BeautifulSoup(html, "html.parser")

    assert soup.find("a")["href"] == "index.html"
    assert soup.find("link")["href"] == "css/site.css?v=3#x"


def test_ignore_exclude_from_build_keeps_markup(tmp_path: Path) -> None:
    processor = MarkupPostProcessor(_resolver(tmp_path), ignore_exclude_from_build=True)

    html = processor.process(PAGE, PostProcessMode.ABSOLUTE)

    assert "data-exclude-from-build" in html


def test_cleanup_strips_comments_in_written_pages(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)
    processor = MarkupPostProcessor(resolver, cleanup=True)
    markup = "<div><!-- note --><p>x</p></div>"

    html = processor.process(markup, PostProcessMode.RELATIVE, resolver.target_dir / "index.html")

    assert "note" not in html
    assert "<p>" in html


def test_trivial_input_is_returned_unchanged(tmp_path: Path) -> None:
    processor = MarkupPostProcessor(_resolver(tmp_path))

    assert processor.process(" ", PostProcessMode.ABSOLUTE) == " "
    assert processor.process("x", PostProcessMode.ABSOLUTE) == "x"


def test_unknown_alias_is_reported(tmp_path: Path) -> None:
    processor = MarkupPostProcessor(_resolver(tmp_path))

    with pytest.raises(UnsupportedReferenceError):
        processor.process('<script src="ps:nowhere/x.js"></script>', PostProcessMode.ABSOLUTE)


def test_relative_pass_requires_target_path(tmp_path: Path) -> None:
    processor = MarkupPostProcessor(_resolver(tmp_path))

    with pytest.raises(ValueError):
        processor.process("<p>page</p>", PostProcessMode.RELATIVE)
