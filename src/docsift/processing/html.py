"""DOM-based HTML segmentation.

Finds the main content element of a page, then splits it into one
section per heading.  Each section's body is rendered from the elements
between its heading and the next one, in document order.
"""

import trafilatura
from bs4 import BeautifulSoup, NavigableString, Tag
from loguru import logger

from docsift.models import ArticleComponent
from docsift.processing.text import clean_preserving_code

MAIN_CONTENT_SELECTORS = [
    # Framework / docs-generator specific
    '[class*="story-content"]',
    '[class*="storybook-"]',
    '[class*="docs-content"]',
    '[class*="sbdocs-"]',
    '[class*="docblock-"]',
    '[class*="docs-"]',
    '[class*="documentation"]',
    # Semantic and app roots
    "main",
    '[role="main"]',
    "#root",
    "#app",
    "#__next",
    "#storybook-root",
    # Common content containers
    ".documentation",
    ".markdown-body",
    "article",
    ".article",
    ".content",
    ".page-content",
    ".docusaurus-content",
    ".vuepress-content",
    ".gatsby-content",
    ".mdx-content",
    ".nextra-content",
    ".nuxt-content",
    '[class*="content"]',
    '[class*="main"]',
]

HEADING_SELECTOR = ", ".join(
    [
        "h1",
        "h2",
        "h3",
        "h4",
        '[class*="heading"]',
        '[class*="title"]',
        '[class*="sbdocs-h"]',
        '[class*="story-title"]',
        '[class*="docblock-title"]',
        '[class*="docs-title"]',
    ]
)

_SKIP_TAGS = frozenset({"script", "style", "nav", "header", "footer", "noscript", "template"})
_BLOCK_TAGS = frozenset(
    {
        "p", "div", "section", "article", "aside", "main", "blockquote", "li",
        "dd", "dt", "dl", "h1", "h2", "h3", "h4", "h5", "h6", "figure",
        "figcaption", "details", "summary", "form", "fieldset",
    }
)
_STRUCTURED_TAGS = frozenset({"pre", "ul", "ol", "table"})
_HEADING_MAX_LEN = 200


def _text(el: Tag) -> str:
    return " ".join(el.get_text(" ", strip=True).split())


def find_main_content(soup: BeautifulSoup) -> Tag | None:
    """Return the element most likely to hold the page's documentation.

    Selectors are tried in order and the first one that matches anything
    decides; among its matches the one with the longest text wins.
    Without any match, the child of ``<body>`` with the longest text is used.
    """
    for selector in MAIN_CONTENT_SELECTORS:
        try:
            matches = soup.select(selector)
        except Exception as e:
            logger.debug(f"Selector {selector} failed: {e}")
            continue
        if matches:
            return max(matches, key=lambda el: len(el.get_text(strip=True)))

    body = soup.body
    if body is None:
        return None
    best: Tag | None = None
    best_len = 0
    for child in body.find_all(recursive=False):
        if child.name in _SKIP_TAGS:
            continue
        length = len(child.get_text(strip=True))
        if length > best_len:
            best, best_len = child, length
    return best


def find_headings(root: Tag) -> list[Tag]:
    """Heading-like elements under *root*, innermost only, in document order."""
    candidates = [
        el
        for el in root.select(HEADING_SELECTOR)
        if el.get_text(strip=True) and len(_text(el)) <= _HEADING_MAX_LEN
        and el.find_parent(list(_SKIP_TAGS)) is None
    ]
    candidate_ids = {id(el) for el in candidates}
    containing: set[int] = set()
    for el in candidates:
        for parent in el.parents:
            if id(parent) in candidate_ids:
                containing.add(id(parent))
    return [el for el in candidates if id(el) not in containing]


def _render_list(el: Tag) -> str:
    items = []
    for li in el.find_all("li"):
        text = " ".join(
            s.strip() for s in li.find_all(string=True, recursive=False) if s.strip()
        )
        if not text:
            nested = [c for c in li.children if isinstance(c, Tag) and c.name not in ("ul", "ol")]
            text = " ".join(_text(c) for c in nested if _text(c))
        else:
            extra = [
                _text(c)
                for c in li.children
                if isinstance(c, Tag) and c.name not in ("ul", "ol") and _text(c)
            ]
            text = " ".join([text, *extra])
        if text:
            items.append(f"- {text}")
    return "\n".join(items)


def _render_table(el: Tag) -> str:
    rows = []
    for tr in el.find_all("tr"):
        cells = [_text(c) for c in tr.find_all(["th", "td"])]
        if any(cells):
            rows.append(" | ".join(cells))
    return "\n".join(rows)


def _render_pre(el: Tag) -> str:
    code = el.get_text().strip("\n")
    return f"```\n{code}\n```" if code.strip() else ""


class _Sections:
    def __init__(self) -> None:
        self.intro: list[str] = []
        self.sections: list[tuple[str, list[str]]] = []

    def start(self, title: str) -> None:
        self.sections.append((title, []))

    def emit(self, text: str) -> None:
        if not text:
            return
        target = self.sections[-1][1] if self.sections else self.intro
        target.append(text)


def _walk(node: Tag, heading_ids: set[int], ancestor_ids: set[int], out: _Sections) -> None:
    for child in node.children:
        if isinstance(child, NavigableString):
            # Comments, CDATA and doctypes are NavigableString subclasses.
            if type(child) is NavigableString:
                out.emit(" ".join(child.split()))
            continue
        if not isinstance(child, Tag):
            continue
        if id(child) in heading_ids:
            out.start(_text(child))
            continue
        if child.name in _SKIP_TAGS:
            continue

        holds_heading = id(child) in ancestor_ids
        if child.name == "pre":
            out.emit(_render_pre(child))
        elif child.name in ("ul", "ol") and not holds_heading:
            out.emit(_render_list(child))
        elif child.name == "table" and not holds_heading:
            out.emit(_render_table(child))
        elif (
            child.name in _BLOCK_TAGS
            and not holds_heading
            and child.find(list(_BLOCK_TAGS | _STRUCTURED_TAGS)) is None
        ):
            out.emit(_text(child))
        else:
            _walk(child, heading_ids, ancestor_ids, out)


def _fallback_title(root: Tag) -> str:
    h1 = root.find("h1")
    if h1 and _text(h1):
        return _text(h1)
    titled = root.select_one('[class*="title"]')
    if titled and _text(titled):
        return _text(titled)
    return "Content"


def _readability(html: str, title: str) -> list[ArticleComponent]:
    text = trafilatura.extract(
        html,
        include_comments=False,
        include_tables=True,
        include_links=False,
        include_images=False,
    )
    if not text:
        text = BeautifulSoup(html, "html.parser").get_text("\n", strip=True)
    body = clean_preserving_code(text or "")
    return [ArticleComponent(title=title or "Content", body=body)] if body else []


def segment_html(html: str, page_title: str = "") -> tuple[str, list[ArticleComponent]]:
    """Split an HTML document into titled components.

    Returns ``(title, components)``.  Malformed markup only makes the
    result coarser; it never raises.
    """
    soup = BeautifulSoup(html, "html.parser")
    root = find_main_content(soup)
    if root is None:
        logger.debug("No main content element found, using readability extraction")
        components = _readability(html, page_title)
        return page_title or "Untitled", components

    headings = find_headings(root)
    heading_ids = {id(h) for h in headings}
    ancestor_ids = {id(p) for h in headings for p in h.parents}

    out = _Sections()
    _walk(root, heading_ids, ancestor_ids, out)

    components: list[ArticleComponent] = []
    if not headings:
        body = clean_preserving_code("\n\n".join(out.intro))
        if body:
            components.append(ArticleComponent(title=_fallback_title(root), body=body))
    else:
        intro = clean_preserving_code("\n\n".join(out.intro))
        if intro:
            components.append(ArticleComponent(title="Introduction", body=intro))
        for title, parts in out.sections:
            body = clean_preserving_code("\n\n".join(parts))
            if body:
                components.append(ArticleComponent(title=title or "Untitled", body=body))

    title = page_title or (_text(headings[0]) if headings else "") or "Untitled"
    return title, components
