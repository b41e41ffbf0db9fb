"""Verification of portable (relative-path) builds."""

from __future__ import annotations

from dataclasses import dataclass, field
from html.parser import HTMLParser
from pathlib import Path
from typing import Iterator, List, Tuple
from urllib.parse import unquote, urlsplit


@dataclass(slots=True)
class VerificationIssue:
    """Represents a problem discovered while checking a build."""

    kind: str
    source: Path
    target: str
    message: str


@dataclass(slots=True)
class VerificationReport:
    """Aggregate verification results."""

    scanned_files: int
    issues: list[VerificationIssue] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.kind != "warning")

    @property
    def warning_count(self) -> int:
        return sum(1 for issue in self.issues if issue.kind == "warning")


class _ReferenceCollector(HTMLParser):
    """Collect href/src references from HTML content."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.references: list[tuple[str, str, str]] = []

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, str | None]]) -> None:
        attr_map = {name: value for name, value in attrs if value is not None}

        if tag in {"a", "link"} and "href" in attr_map:
            self.references.append((tag, "href", attr_map["href"]))
        if tag in {"img", "script", "iframe", "source"}:
            src = attr_map.get("src")
            if src:
                self.references.append((tag, "src", src))
        if tag == "form" and attr_map.get("action"):
            self.references.append((tag, "action", attr_map["action"]))
        if tag in {"img", "source"} and "srcset" in attr_map:
            for candidate in _parse_srcset(attr_map["srcset"]):
                self.references.append((tag, "srcset", candidate))


def verify_build(target_dir: Path) -> VerificationReport:
    """Check that every page in ``target_dir`` opens without a web server.

    Root-absolute references are flagged because they only resolve when served;
    relative references must point at files inside the build.
    """
    target_dir = target_dir.resolve()
    html_files = sorted(target_dir.rglob("*.html"))
    issues: list[VerificationIssue] = []

    for html_file in html_files:
        try:
            html = html_file.read_text(encoding="utf-8")
        except OSError as exc:
            issues.append(
                VerificationIssue(
                    kind="error",
                    source=html_file,
                    target=str(html_file),
                    message=f"Unable to read HTML file: {exc}",
                )
            )
            continue

        parser = _ReferenceCollector()
        parser.feed(html)

        for tag, attr, reference in parser.references:
            if _is_ignorable(reference):
                continue

            path = unquote(urlsplit(reference).path or "")
            if not path:
                continue
            if path.startswith("/"):
                issues.append(
                    VerificationIssue(
                        kind="absolute-reference",
                        source=html_file,
                        target=reference,
                        message=f"Absolute {tag} {attr} '{reference}' needs a web server to resolve",
                    )
                )
                continue

            candidate = (html_file.parent / path).resolve()
            try:
                candidate.relative_to(target_dir)
            except ValueError:
                issues.append(
                    VerificationIssue(
                        kind="out-of-bounds",
                        source=html_file,
                        target=reference,
                        message=f"Reference points outside the build: '{reference}'",
                    )
                )
                continue

            if candidate.is_file() or (candidate.is_dir() and (candidate / "index.html").exists()):
                continue

            issues.append(
                VerificationIssue(
                    kind=_classify_issue(tag),
                    source=html_file,
                    target=reference,
                    message=f"Missing target for {tag} {attr} '{reference}'",
                )
            )

    return VerificationReport(scanned_files=len(html_files), issues=issues)


def _parse_srcset(srcset: str) -> Iterator[str]:
    for part in srcset.split(","):
        candidate = part.strip().split(" ", 1)[0]
        if candidate:
            yield candidate


def _is_ignorable(reference: str) -> bool:
    stripped = reference.strip()
    if not stripped:
        return True
    # Foreign template placeholders in passthrough pages are not concrete paths.
    if "{{" in stripped or "{%" in stripped:
        return True

    parsed = urlsplit(stripped)
    if parsed.scheme:
        return True
    if parsed.netloc:
        # Protocol-relative URL (e.g., //cdn.example.com)
        return True
    if not parsed.path and (parsed.fragment or parsed.query):
        return True
    return False


def _classify_issue(tag: str) -> str:
    if tag == "form":
        return "warning"
    if tag == "a":
        return "missing-page"
    if tag in {"img", "source"}:
        return "missing-asset"
    if tag in {"script", "link"}:
        return "missing-dependency"
    return "error"
