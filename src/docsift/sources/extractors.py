"""Site-specific content extractors used by the browser engine.

Each extractor takes a rendered page handle and returns an
:class:`ExtractedContent`.  The HTML work is done on a snapshot of the
page markup with BeautifulSoup, so ``extract_html`` can be exercised
without a browser.
"""

import re
from typing import Any

from bs4 import BeautifulSoup, Tag
from loguru import logger

from docsift.models import ExtractedContent

_STORYBOOK_ROOTS = (".sbdocs-content", "#docs-root", ".sbdocs-wrapper")
_STORYBOOK_IFRAME = "#storybook-preview-iframe"
_LANGUAGE_RE = re.compile(r"(?:language|lang)-([\w+#-]+)")
_BLOCKS = ("h2", "h3", "h4", "p", "ul", "ol", "table", "pre")


def _text(el: Tag) -> str:
    return " ".join(el.get_text(" ", strip=True).split())


def _markdown_table(rows: list[list[str]]) -> list[str]:
    rows = [r for r in rows if any(cell for cell in r)]
    if not rows:
        return []
    width = max(len(r) for r in rows)
    rows = [r + [""] * (width - len(r)) for r in rows]
    lines = ["| " + " | ".join(rows[0]) + " |", "| " + " | ".join(["---"] * width) + " |"]
    lines.extend("| " + " | ".join(r) + " |" for r in rows[1:])
    return lines


def _table_rows(table: Tag) -> list[list[str]]:
    rows = []
    for tr in table.find_all("tr"):
        cells = [_text(c).replace("|", "\\|") for c in tr.find_all(["th", "td"])]
        rows.append(cells)
    return rows


def _adjacent_paragraph(h1: Tag | None) -> Tag | None:
    """The element right after *h1*, when it is a paragraph."""
    if h1 is None:
        return None
    sibling = h1.find_next_sibling()
    return sibling if sibling is not None and sibling.name == "p" else None


def _code_language(pre: Tag, default: str) -> str:
    candidates = [pre, *pre.find_all("code", limit=1)]
    for el in candidates:
        for cls in el.get("class") or []:
            match = _LANGUAGE_RE.match(cls)
            if match:
                return match.group(1)
    return default


class StorybookExtractor:
    """Renders a Storybook docs page as Markdown."""

    id = "storybook"
    produces_markdown = True

    async def extract_content(self, page: Any) -> ExtractedContent:
        html = None
        try:
            handle = await page.query_selector(_STORYBOOK_IFRAME)
            if handle is not None:
                frame = await handle.content_frame()
                if frame is not None:
                    html = await frame.content()
        except Exception as e:
            logger.debug(f"Could not read Storybook preview frame: {e}")
        if html is None:
            html = await page.content()
        return self.extract_html(html)

    def extract_html(self, html: str) -> ExtractedContent:
        soup = BeautifulSoup(html, "html.parser")
        root = None
        for selector in _STORYBOOK_ROOTS:
            root = soup.select_one(selector)
            if root is not None:
                break
        if root is None:
            root = soup.body or soup

        for junk in root.find_all(["script", "style"]):
            junk.decompose()

        h1 = root.find("h1")
        title = _text(h1) if h1 else ""
        description_el = _adjacent_paragraph(h1)
        description = _text(description_el) if description_el else ""

        lines: list[str] = []
        if title:
            lines += [f"# {title}", ""]
        if description:
            lines += [description, ""]

        props_rows: list[list[str]] = []
        for el in root.find_all(_BLOCKS):
            if el is description_el:
                continue
            if el.find_parent(["ul", "ol", "table", "pre"]) is not None:
                continue
            if el.name in ("ul", "ol") and el.find_parent(["ul", "ol"]) is not None:
                continue

            if el.name == "table" and "docblock-argstable" in (el.get("class") or []):
                props_rows = _table_rows(el)
                continue

            block = self._render(el)
            if block:
                lines += block + [""]

        if props_rows:
            lines += ["## Props", ""] + _markdown_table(props_rows) + [""]

        content = "\n".join(lines).strip()
        return ExtractedContent(
            content=content,
            metadata={"type": self.id, "name": title, "description": description},
        )

    def _render(self, el: Tag) -> list[str]:
        if el.name in ("h2", "h3", "h4"):
            text = _text(el)
            return [f"{'#' * int(el.name[1])} {text}"] if text else []
        if el.name == "p":
            text = _text(el)
            return [text] if text else []
        if el.name == "ul":
            return [f"- {_text(li)}" for li in el.find_all("li", recursive=False) if _text(li)]
        if el.name == "ol":
            items = [_text(li) for li in el.find_all("li", recursive=False)]
            return [f"{i}. {item}" for i, item in enumerate((x for x in items if x), 1)]
        if el.name == "table":
            return _markdown_table(_table_rows(el))
        if el.name == "pre":
            code = el.get_text().strip("\n")
            if not code.strip():
                return []
            return [f"```{_code_language(el, 'typescript')}", code, "```"]
        return []


class GitHubPagesExtractor:
    """Pulls the article body out of a GitHub Pages (Jekyll) site."""

    id = "github-pages"
    produces_markdown = True

    async def extract_content(self, page: Any) -> ExtractedContent:
        return self.extract_html(await page.content())

    def extract_html(self, html: str) -> ExtractedContent:
        soup = BeautifulSoup(html, "html.parser")
        for tag in soup(["nav", "header", "footer"]):
            tag.decompose()

        main = (
            soup.select_one("main")
            or soup.select_one("article")
            or soup.select_one(".markdown-body")
            or soup.body
            or soup
        )
        for tag in main(["script", "style"]):
            tag.decompose()

        h1 = main.find("h1")
        name = _text(h1) if h1 else ""
        description_el = _adjacent_paragraph(h1)
        description = _text(description_el) if description_el else ""

        content = main.get_text("\n", strip=True)
        return ExtractedContent(
            content=content,
            metadata={"type": self.id, "name": name, "description": description},
        )


class DefaultExtractor:
    """Returns the rendered HTML untouched; segmentation handles it."""

    id = "default"
    produces_markdown = False

    async def extract_content(self, page: Any) -> ExtractedContent:
        html = await page.content()
        title = ""
        try:
            title = await page.title()
        except Exception as e:
            logger.debug(f"Could not read page title: {e}")
        return ExtractedContent(
            content=html, metadata={"type": self.id, "name": title, "description": ""}
        )
