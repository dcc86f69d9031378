# Vaultsearch – Hybrid search and reranking for knowledge bases
# Copyright (c) 2026 4rce.com Digital Technologies GmbH.
# Use of this software is governed by the Business Source License 1.1. See LICENSE.md.

"""
Multi-format file readers: turn corpus files into markdown-like text and
pull tags out of them.

Supported: .md, .txt, .pdf, .html/.htm, .json, .yaml/.yml, .csv
Tags come from YAML frontmatter (`tags:` list or comma string) and inline
`#tag` tokens in markdown.
Only the file body is returned (no synthetic title line), so keyword
counts and word counts never include the file name.
"""
import csv
import io
import json
import logging
import re
from collections.abc import Callable
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)
_INLINE_TAG_RE = re.compile(r"(?:(?<=\s)|^)#([A-Za-z][\w/-]*)", re.MULTILINE)

_HANDLERS: dict[str, Callable[[Path], str | None]] = {}


def _handles(*suffixes: str):
    def register(fn):
        for suffix in suffixes:
            _HANDLERS[suffix] = fn
        return fn
    return register


def supported_extensions() -> set[str]:
    return set(_HANDLERS)


def extract_text(filepath: Path) -> str | None:
    """Read *filepath* and return markdown-like text, or None if unsupported.

    Read errors propagate; callers decide whether one bad file is fatal.
    """
    handler = _HANDLERS.get(filepath.suffix.lower())
    if handler is None:
        return None
    return handler(filepath)


def extract_tags(text: str) -> tuple[str, ...]:
    """Frontmatter tags first, then inline #tags, de-duplicated in order."""
    tags: list[str] = []
    match = _FRONTMATTER_RE.match(text)
    if match:
        try:
            front = yaml.safe_load(match.group(1)) or {}
        except yaml.YAMLError as e:
            logger.debug("Ignoring malformed frontmatter: %s", e)
            front = {}
        raw = front.get("tags") if isinstance(front, dict) else None
        if isinstance(raw, str):
            tags.extend(t.strip() for t in raw.split(","))
        elif isinstance(raw, list):
            tags.extend(str(t).strip() for t in raw)
        body = text[match.end():]
    else:
        body = text
    tags.extend(_INLINE_TAG_RE.findall(body))
    seen: set[str] = set()
    out: list[str] = []
    for tag in tags:
        tag = tag.lstrip("#")
        if tag and tag not in seen:
            seen.add(tag)
            out.append(tag)
    return tuple(out)


# ── Per-format handlers ──────────────────────────────


@_handles(".md")
def _read_md(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="ignore")


@_handles(".txt")
def _read_txt(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="ignore")


@_handles(".pdf")
def _read_pdf(path: Path) -> str | None:
    try:
        from pypdf import PdfReader  # type: ignore[import-untyped]
    except ImportError:
        logger.warning("pypdf not installed, skipping %s", path.name)
        return None

    reader = PdfReader(path)
    pages = [
        f"## Page {i}\n\n{text.strip()}"
        for i, text in enumerate((p.extract_text() or "" for p in reader.pages), 1)
        if text.strip()
    ]
    if not pages:
        return None
    return "\n\n---\n\n".join(pages)


@_handles(".html", ".htm")
def _read_html(path: Path) -> str | None:
    try:
        from bs4 import BeautifulSoup  # type: ignore[import-untyped]
    except ImportError:
        logger.warning("beautifulsoup4 not installed, skipping %s", path.name)
        return None

    soup = BeautifulSoup(path.read_text(encoding="utf-8", errors="ignore"), "html.parser")
    for tag in soup(["script", "style", "nav", "footer"]):
        tag.decompose()

    lines: list[str] = []
    for el in soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6", "p", "li", "pre"]):
        if el.name.startswith("h"):
            lines.append(f"\n{'#' * int(el.name[1])} {el.get_text(strip=True)}\n")
        elif el.name == "pre":
            lines.append(f"\n```\n{el.get_text()}\n```\n")
        elif el.name == "li":
            lines.append(f"- {el.get_text(strip=True)}")
        elif text := el.get_text(strip=True):
            lines.append(text)

    body = "\n".join(lines).strip()
    return body or None


@_handles(".json")
def _read_json(path: Path) -> str:
    content = path.read_text(encoding="utf-8", errors="ignore")
    try:
        content = json.dumps(json.loads(content), indent=2, ensure_ascii=False)
    except json.JSONDecodeError:
        pass
    return f"```json\n{content}\n```"


@_handles(".yaml", ".yml")
def _read_yaml(path: Path) -> str:
    content = path.read_text(encoding="utf-8", errors="ignore")
    return f"```yaml\n{content}\n```"


@_handles(".csv")
def _read_csv(path: Path) -> str:
    rows = list(csv.reader(io.StringIO(path.read_text(encoding="utf-8", errors="ignore"))))
    if not rows:
        return ""

    header = rows[0]
    lines = [
        "| " + " | ".join(header) + " |",
        "| " + " | ".join("---" for _ in header) + " |",
    ]
    for row in rows[1:]:
        padded = (row + [""] * len(header))[: len(header)]
        lines.append("| " + " | ".join(padded) + " |")
    return "\n".join(lines)
