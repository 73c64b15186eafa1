"""Lightweight fallback crawl engine.

Same frontier/batch shape as the static engine but parses pages with
plain regular expressions, so it still makes progress on markup that
trips up a real HTML parser.
"""

import re

from docsift import urls
from docsift.models import ENGINE_FALLBACK
from docsift.sources.static import StaticEngine

_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
_HREF_RE = re.compile(r'<a[^>]+href=["\']([^"\'#][^"\']*)["\']', re.IGNORECASE)


class FallbackEngine(StaticEngine):
    """Last-resort crawler with a regex link parser."""

    id = ENGINE_FALLBACK

    def extract_title(self, html: str) -> str:
        match = _TITLE_RE.search(html)
        if match and match.group(1).strip():
            return match.group(1).strip()
        return "Untitled"

    def extract_links(self, html: str, base_url: str) -> list[str]:
        seen: set[str] = set()
        links: list[str] = []
        for m in _HREF_RE.finditer(html):
            resolved = urls.resolve(m.group(1), base_url)
            if resolved and resolved not in seen:
                seen.add(resolved)
                links.append(resolved)
        return links
