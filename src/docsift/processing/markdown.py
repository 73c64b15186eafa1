"""Heuristic Markdown segmentation.

Splits Markdown (raw files or extractor output) into titled sections.
Headers are recognised by precedence:

1. ATX headers (``#`` .. ``######``), level = number of hashes.
2. Short lines carrying zero-width marker characters, level 2.
3. Short capitalised plain-text lines standing alone between a blank
   line and content, level 2.

Fenced code is swapped for placeholders before detection, so nothing
inside a code block is ever taken for a header, and is restored
verbatim afterwards.
"""

import re

from docsift.models import ArticleComponent
from docsift.processing.text import clean_text, protect_code, restore_code

_FRONT_MATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)", re.DOTALL)
_ATX_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_ZERO_WIDTH_RE = re.compile("[\u200b-\u200d\ufeff\u2060]")
_PLAIN_HEADING_RE = re.compile(r"^[A-Z][A-Za-z0-9\s\-_()]+$")

MARKER_HEADING_MAX = 80
PLAIN_HEADING_MAX = 50


def parse_front_matter(text: str) -> tuple[dict[str, str], str]:
    """Split a leading ``---`` block of flat ``key: value`` pairs off *text*."""
    match = _FRONT_MATTER_RE.match(text)
    if not match:
        return {}, text

    meta: dict[str, str] = {}
    for line in match.group(1).splitlines():
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        key = key.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        if key:
            meta[key] = value
    return meta, text[match.end() :]


def detect_header(lines: list[str], index: int) -> tuple[int, str] | None:
    """Return ``(level, title)`` if ``lines[index]`` is a header."""
    line = lines[index].strip()
    if not line:
        return None

    atx = _ATX_RE.match(line)
    if atx:
        title = _ZERO_WIDTH_RE.sub("", atx.group(2)).strip()
        return (len(atx.group(1)), title) if title else None

    cleaned = _ZERO_WIDTH_RE.sub("", line).strip()
    if not cleaned:
        return None

    if cleaned != line and len(cleaned) < MARKER_HEADING_MAX:
        return 2, cleaned

    if 2 < len(cleaned) < PLAIN_HEADING_MAX and _PLAIN_HEADING_RE.match(cleaned):
        prev_blank = index == 0 or not lines[index - 1].strip()
        next_filled = index + 1 < len(lines) and bool(lines[index + 1].strip())
        if prev_blank and next_filled:
            return 2, cleaned

    return None


def segment_markdown(
    text: str, page_title: str = "", extracted: bool = False
) -> tuple[str, list[ArticleComponent]]:
    """Split Markdown *text* into components.

    Args:
        text: Raw Markdown.
        page_title: Title reported by the fetcher, used when the document
            does not name itself.
        extracted: True for site-extractor output, whose first level-1
            header is the page title.

    Returns:
        ``(title, components)``; components never have an empty body.
    """
    meta, body = parse_front_matter(text)
    protected, blocks = protect_code(body)
    lines = protected.replace("\r\n", "\n").split("\n")

    sections: list[tuple[str, int, list[str]]] = []
    current_title, current_level, current_lines = "Content", 0, []

    for i in range(len(lines)):
        header = detect_header(lines, i)
        if header is None:
            current_lines.append(lines[i])
            continue
        sections.append((current_title, current_level, current_lines))
        current_level, current_title = header
        current_lines = []
    sections.append((current_title, current_level, current_lines))

    components: list[ArticleComponent] = []
    first_h1 = ""
    for title, level, section_lines in sections:
        if level == 1 and not first_h1:
            first_h1 = title
        section_body = restore_code(clean_text("\n".join(section_lines)), blocks)
        if section_body.strip():
            components.append(ArticleComponent(title=title, body=section_body))

    resolved = (
        meta.get("title")
        or (first_h1 if extracted else "")
        or page_title
        or (components[0].title if components else "")
        or "Untitled"
    )
    return resolved, components
