"""URL normalization, scoping and classification helpers.

All helpers are pure and never raise: unparsable input is returned
unchanged (``normalize``, ``path``) or rejected (``should_crawl``).
"""

import re
from collections.abc import Container
from urllib.parse import urljoin, urlsplit, urlunsplit

# Extensions the static engines are willing to fetch.  Extensionless
# routes are excluded as well; SPA-style sites go through the browser.
_CRAWLABLE_EXTENSIONS = frozenset({"html", "htm"})

# Well-known non-documentation paths.  Entries ending in "/" match as a
# path-segment prefix anywhere in the path; others match a whole path.
_IGNORED_PATHS = (
    "favicon.ico",
    "robots.txt",
    ".rst.txt",
    "genindex",
    "genindex.html",
    "py-modindex",
    "py-modindex.html",
    "search",
    "search.html",
    "changelog",
    "changelog.html",
    "assets/",
    "static/",
    "_static/",
    "images/",
    "img/",
    "css/",
    "js/",
    "fonts/",
    "node_modules/",
    "vendor/",
    "test/",
    "tests/",
    "example/",
    "examples/",
    "build/",
    "dist/",
    ".git/",
)

_MARKDOWN_EXTENSIONS = (".md", ".mdx", ".markdown")

_GH_REPO_RE = re.compile(r"^/([^/]+)/([^/]+?)(?:\.git)?(?:/|$)")


def _split(url: str):
    """Split *url*, returning None when it is not an absolute http(s)-style URL."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return parts


def normalize(url: str) -> str:
    """Drop the fragment and the trailing slash of *url*; keep the query.

    Idempotent.  Unparsable input is returned unchanged.
    """
    parts = _split(url)
    if parts is None:
        return url
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, ""))


def path(url: str) -> str:
    """Return path plus query of *url* (``/`` for an empty path)."""
    parts = _split(url)
    if parts is None:
        return url
    result = parts.path or "/"
    if parts.query:
        result += f"?{parts.query}"
    return result


def hostname(url: str) -> str:
    """Return the lower-cased hostname of *url*, or an empty string."""
    parts = _split(url)
    if parts is None:
        return ""
    return (parts.hostname or "").lower()


def resolve(href: str, base: str) -> str | None:
    """Resolve a (possibly relative) link against *base*.

    Returns None for links that cannot be followed by a crawler
    (javascript:, mailto:, tel:, data: and unparsable hrefs).
    """
    href = href.strip()
    if not href or href.startswith(("javascript:", "mailto:", "tel:", "data:")):
        return None
    try:
        absolute = urljoin(base, href)
    except ValueError:
        return None
    parts = _split(absolute)
    if parts is None or parts.scheme not in ("http", "https"):
        return None
    return absolute


def _is_ignored(url_path: str) -> bool:
    segments = [s for s in url_path.lower().split("/") if s]
    if not segments:
        return False
    last = segments[-1]
    for entry in _IGNORED_PATHS:
        if entry.endswith("/"):
            if entry[:-1] in segments[:-1]:
                return True
        elif entry.startswith("."):
            if last.endswith(entry):
                return True
        elif last == entry:
            return True
    return False


def should_crawl(url: str, seen: Container[str]) -> bool:
    """Decide whether a static engine should fetch *url*.

    False when the URL was already seen, carries a fragment, is
    unparsable, does not end in an ``.html``/``.htm`` segment, or points
    at a well-known non-documentation path.
    """
    if url in seen:
        return False
    parts = _split(url)
    if parts is None or parts.fragment or "#" in url:
        return False
    last_segment = parts.path.rsplit("/", 1)[-1]
    if "." not in last_segment:
        return False
    extension = last_segment.rsplit(".", 1)[1].lower()
    if extension not in _CRAWLABLE_EXTENSIONS:
        return False
    return not _is_ignored(parts.path)


def hostname_allowed(host: str, allowed: str) -> bool:
    """True when *host* equals *allowed* or is one of its subdomains."""
    host = host.lower()
    allowed = allowed.lower()
    return host == allowed or host.endswith(f".{allowed}")


def path_allowed(url_path: str, prefix: str) -> bool:
    """True when *url_path* is *prefix* itself or lies beneath it.

    Matching is on segment boundaries: ``/docs`` admits ``/docs/x`` but
    not ``/docs2``.  An empty prefix admits everything.
    """
    if not prefix:
        return True
    prefix = prefix.rstrip("/")
    if not prefix:
        return True
    return url_path == prefix or url_path.startswith(f"{prefix}/")


def is_markdown_path(url_or_path: str) -> bool:
    """True when the path of *url_or_path* names a Markdown file."""
    candidate = url_or_path.split("?", 1)[0].split("#", 1)[0].lower()
    return candidate.endswith(_MARKDOWN_EXTENSIONS)


def github_repo(url: str) -> tuple[str, str] | None:
    """Return ``(owner, repo)`` for a github.com URL, else None."""
    parts = _split(url)
    if parts is None or (parts.hostname or "").lower() not in (
        "github.com",
        "www.github.com",
    ):
        return None
    match = _GH_REPO_RE.match(parts.path)
    if not match:
        return None
    return match.group(1), match.group(2)


def is_github_url(url: str) -> bool:
    """True when *url* is hosted on github.com."""
    return hostname(url) in ("github.com", "www.github.com")


def website_id(url: str) -> str:
    """Derive a stable identifier for the site rooted at *url*.

    ``https://org.github.io/repo/...`` -> ``org-repo``;
    ``https://www.example.com/guide`` -> ``example-guide``;
    a leading ``docs`` path part is not appended.
    """
    parts = _split(url)
    if parts is None:
        return re.sub(r"[^a-z0-9]+", "-", url.lower()).strip("-") or "site"
    host = (parts.hostname or "").lower()
    path_parts = [p for p in parts.path.split("/") if p]
    host_parts = host.split(".")

    if host.endswith(".github.io"):
        org = host_parts[0]
        return f"{org}-{path_parts[0]}" if path_parts else org

    main = host_parts[1] if host_parts[0] == "www" and len(host_parts) > 1 else host_parts[0]
    if path_parts and path_parts[0] != "docs":
        return f"{main}-{path_parts[0]}"
    return main
