from protostar.references import concatenate_for_scan, gather_references, strip_wrapper_tags


def test_strip_wrapper_tags_removes_document_structure() -> None:
    page = '<!DOCTYPE html>\n<HTML lang="en"><Head><title>x</title></Head><body class="a"><p>y</p></BODY></html>'

    stripped = strip_wrapper_tags(page)

    assert stripped == "\n<title>x</title><p>y</p>"


def test_gather_references_across_pages_is_ordered_and_unique() -> None:
    first = """<!doctype html><html><head>
    <link rel="stylesheet" href="/css/site.css">
    <script src="/ps/nm/jquery/jquery.js"></script>
    </head><body><img src="/images/a.png"></body></html>"""
    second = """<html><head>
    <script src="/js/app.js"></script>
    <script src="/ps/nm/jquery/jquery.js"></script>
    <script>inline()</script>
    </head><body><img src="/images/b.png"><img src="/images/a.png"><a href="/other.html">x</a></body></html>"""

    refs = gather_references([first, second])

    assert refs.scripts == ["/ps/nm/jquery/jquery.js", "/js/app.js"]
    assert refs.links == ["/css/site.css"]
    assert refs.images == ["/images/a.png", "/images/b.png"]
    assert refs.total == 5
    assert refs.all() == ["/ps/nm/jquery/jquery.js", "/js/app.js", "/css/site.css", "/images/a.png", "/images/b.png"]


def test_concatenation_contains_no_wrapper_tags() -> None:
    combined = concatenate_for_scan(["<html><body>a</body></html>", "<html><body>b</body></html>"])

    assert "<html" not in combined
    assert "<body" not in combined
    assert combined == "a\nb"
