"""Site detection rules for the browser engine.

Rules are evaluated in order against a rendered page; the first whose
``detect`` returns True supplies the page preparation, the link
selectors used for discovery and the content extractor.  The registry
always ends with an unconditional default rule.
"""

import asyncio
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from loguru import logger

from docsift.sources.extractors import (
    DefaultExtractor,
    GitHubPagesExtractor,
    StorybookExtractor,
)

Page = Any  # playwright.async_api.Page, or anything shaped like it


@dataclass
class PreparationStep:
    """A named, independently time-bounded page interaction."""

    name: str
    run: Callable[[Page], Awaitable[None]]
    timeout: float = 10.0


@dataclass
class SiteDetectionRule:
    type: str
    detect: Callable[[Page], Awaitable[bool]]
    extractor: Any
    steps: list[PreparationStep] = field(default_factory=list)
    link_selectors: list[str] | None = None

    async def prepare(self, page: Page) -> list[str]:
        """Run every preparation step; return the names of those that failed.

        A failing or timed-out step is logged and skipped; later steps
        still run.
        """
        failed = []
        for step in self.steps:
            try:
                await asyncio.wait_for(step.run(page), timeout=step.timeout)
            except asyncio.TimeoutError:
                logger.debug(f"{self.type}: step {step.name} timed out after {step.timeout}s")
                failed.append(step.name)
            except Exception as e:
                logger.debug(f"{self.type}: step {step.name} failed: {e}")
                failed.append(step.name)
        return failed


async def _quietly(awaitable: Awaitable[Any]) -> None:
    try:
        await awaitable
    except Exception as e:
        logger.debug(f"Ignored wait failure: {e}")


async def _click_all(page: Page, selector: str, limit: int | None = None) -> int:
    clicked = 0
    for element in await page.query_selector_all(selector):
        if limit is not None and clicked >= limit:
            break
        try:
            await element.click()
            clicked += 1
        except Exception as e:
            logger.debug(f"Click on {selector} failed: {e}")
    return clicked


# ---------------------------------------------------------------------------
# Storybook
# ---------------------------------------------------------------------------

_STORYBOOK_DETECT_JS = """() => {
    const hasDom = !!document.querySelector('#storybook-root, .sbdocs, [data-nodetype="root"]');
    const hasMeta = !!document.querySelector('meta[name="storybook-version"]');
    const uri = document.baseURI || '';
    const hasPath = uri.includes('path=/docs/') || uri.includes('path=/story/');
    const hasGlobal = !!(window.__STORYBOOK_CLIENT_API__ || window.__STORYBOOK_ADDONS_CHANNEL__ || window.__STORYBOOK_PREVIEW__);
    return hasDom || hasMeta || hasPath || hasGlobal;
}"""

_STORYBOOK_CONTENT = '.sbdocs-content, #docs-root, .docs-story, [class*="story-"]'
_STORYBOOK_SIDEBAR = '[class*="sidebar"]'
_WAIT_MS = 5000

_SCROLL_JS = """async () => {
    const el = document.querySelector('.sbdocs-wrapper, .sbdocs-content, #docs-root') || document.scrollingElement;
    if (!el) return;
    el.scrollTop = el.scrollHeight;
    window.scrollTo(0, document.body.scrollHeight);
    await new Promise(r => setTimeout(r, 300));
    el.scrollTop = 0;
    window.scrollTo(0, 0);
}"""

_SHOW_CODE = '.docblock-code-toggle, button[class*="show-code"], button:has-text("Show code")'
_ARGTABLE_TOGGLES = (
    '.docblock-argstable [aria-expanded="false"], '
    '.docblock-argstable button:has-text("Show"), '
    '.docblock-argstable-expandable button'
)
_SHOW_MORE_RE = re.compile(r"show\s+(\d+\s+)?more", re.IGNORECASE)
MAX_CODE_REVEALS = 3


async def detect_storybook(page: Page) -> bool:
    query = urlsplit(page.url or "").query
    if "path=/docs/" in query or "path=/story/" in query:
        return True
    return bool(await page.evaluate(_STORYBOOK_DETECT_JS))


async def _wait_for_content(page: Page) -> None:
    await _quietly(page.wait_for_load_state("networkidle", timeout=_WAIT_MS))
    await _quietly(page.wait_for_selector(_STORYBOOK_CONTENT, timeout=_WAIT_MS))
    await _quietly(page.wait_for_selector(_STORYBOOK_SIDEBAR, timeout=_WAIT_MS))


async def _expand_sections(page: Page) -> None:
    for _ in range(2):
        await _click_all(page, "button.sidebar-subheading-action")
        await page.wait_for_timeout(500)
        await _click_all(page, '[aria-expanded="false"]')
        await page.wait_for_timeout(1000)


async def _scroll_lazy_load(page: Page) -> None:
    await page.evaluate(_SCROLL_JS)
    await page.wait_for_timeout(500)


async def _reveal_code(page: Page) -> None:
    clicked = await _click_all(page, _SHOW_CODE, limit=MAX_CODE_REVEALS)
    if clicked:
        await page.wait_for_timeout(300)


async def _expand_argtables(page: Page) -> None:
    for element in await page.query_selector_all(_ARGTABLE_TOGGLES):
        try:
            label = (await element.inner_text()) or ""
            expanded = await element.get_attribute("aria-expanded")
            if expanded == "false" or _SHOW_MORE_RE.search(label):
                await element.click()
                await page.wait_for_timeout(200)
        except Exception as e:
            logger.debug(f"Arg table toggle failed: {e}")


STORYBOOK_STEPS = [
    PreparationStep("wait_for_content", _wait_for_content, timeout=16.0),
    PreparationStep("expand_sections", _expand_sections, timeout=15.0),
    PreparationStep("scroll_lazy_load", _scroll_lazy_load, timeout=5.0),
    PreparationStep("reveal_code", _reveal_code, timeout=5.0),
    PreparationStep("expand_argtables", _expand_argtables, timeout=10.0),
]

STORYBOOK_LINK_SELECTORS = [
    ".sidebar-item a",
    '[data-nodetype="root"] a',
    '[data-nodetype="group"] a',
    '[data-nodetype="component"] a',
    '[data-nodetype="document"] a',
    '[data-nodetype="story"] a',
    "[data-item-id] a",
    "a[data-item-id]",
]


# ---------------------------------------------------------------------------
# GitHub Pages
# ---------------------------------------------------------------------------

_GITHUB_PAGES_MARKERS = ".markdown-body, .site-footer, .page-header"


async def detect_github_pages(page: Page) -> bool:
    host = (urlsplit(page.url or "").hostname or "").lower()
    if not host.endswith(".github.io"):
        return False
    return await page.query_selector(_GITHUB_PAGES_MARKERS) is not None


async def _always(page: Page) -> bool:
    return True


def default_rules() -> list[SiteDetectionRule]:
    """Build a fresh rule registry; the last rule always matches."""
    return [
        SiteDetectionRule(
            type="storybook",
            detect=detect_storybook,
            extractor=StorybookExtractor(),
            steps=list(STORYBOOK_STEPS),
            link_selectors=list(STORYBOOK_LINK_SELECTORS),
        ),
        SiteDetectionRule(
            type="github-pages",
            detect=detect_github_pages,
            extractor=GitHubPagesExtractor(),
        ),
        SiteDetectionRule(type="default", detect=_always, extractor=DefaultExtractor()),
    ]


async def select_rule(page: Page, rules: list[SiteDetectionRule]) -> SiteDetectionRule:
    """Return the first rule whose detector accepts *page*."""
    for rule in rules:
        try:
            if await rule.detect(page):
                logger.debug(f"Detected {rule.type} site at {page.url}")
                return rule
        except Exception as e:
            logger.debug(f"{rule.type} detection failed on {page.url}: {e}")
    return rules[-1]
