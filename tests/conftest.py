"""Pytest configuration and fixtures."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from docsift.sources.base import CrawlPolicy


@pytest.fixture
def policy():
    """Crawl policy with no rate limiting and instant retries."""
    return CrawlPolicy(max_pages=100, max_depth=4, retry_attempts=3, retry_base_delay=0)


@pytest.fixture
def mock_client():
    """Create a mock httpx.AsyncClient usable as an async context manager.

    Tests patch ``<module>.httpx.AsyncClient`` to return this mock and set
    ``mock_client.get`` to an ``AsyncMock`` with a side effect.
    """
    client = AsyncMock()
    client.__aenter__.return_value = client
    client.__aexit__.return_value = None
    return client


@pytest.fixture
def make_response():
    """Factory for fake httpx responses."""

    def _make(status=200, json_data=None, text="", content_type="text/html"):
        resp = MagicMock()
        resp.status_code = status
        resp.json.return_value = json_data
        resp.text = text
        resp.headers = {"content-type": content_type}
        if status >= 400:
            resp.raise_for_status.side_effect = httpx.HTTPStatusError(
                f"HTTP {status}", request=MagicMock(), response=resp
            )
        return resp

    return _make


class FakeElement:
    """Minimal stand-in for a Playwright ElementHandle."""

    def __init__(self, page=None, name="", text="", attrs=None, fail=False, frame=None):
        self.page = page
        self.name = name
        self.text = text
        self.attrs = attrs or {}
        self.fail = fail
        self.frame = frame
        self.clicks = 0

    async def click(self):
        if self.fail:
            raise RuntimeError("element detached")
        self.clicks += 1
        if self.page is not None:
            self.page.clicks.append(self.name)

    async def inner_text(self):
        return self.text

    async def get_attribute(self, name):
        return self.attrs.get(name)

    async def content_frame(self):
        return self.frame


class FakeFrame:
    def __init__(self, html):
        self.html = html

    async def content(self):
        return self.html


class FakePage:
    """Minimal stand-in for a Playwright Page."""

    def __init__(
        self,
        url="https://docs.example.com/",
        html="<html><body></body></html>",
        title="Page",
        elements=None,
        links=None,
        evaluate_result=False,
        present=(),
    ):
        self.url = url
        self.html = html
        self.title_text = title
        self.elements = elements or {}
        self.links = links or {}
        self.evaluate_result = evaluate_result
        self.present = set(present)
        self.clicks = []
        self.waits = []
        self.evaluated = []

    async def query_selector_all(self, selector):
        return list(self.elements.get(selector, []))

    async def query_selector(self, selector):
        found = self.elements.get(selector) or []
        return found[0] if found else None

    async def wait_for_timeout(self, ms):
        self.waits.append(ms)

    async def wait_for_load_state(self, state="load", timeout=None):
        return None

    async def wait_for_selector(self, selector, timeout=None):
        if selector not in self.present:
            raise TimeoutError(f"Timeout waiting for {selector}")
        return None

    async def evaluate(self, script):
        self.evaluated.append(script)
        return self.evaluate_result

    async def eval_on_selector_all(self, selector, script):
        return list(self.links.get(selector, []))

    async def content(self):
        return self.html

    async def title(self):
        return self.title_text


@pytest.fixture
def fake_page():
    """The FakePage class, for building page handles in tests."""
    return FakePage


@pytest.fixture
def fake_element():
    return FakeElement


@pytest.fixture
def fake_frame():
    return FakeFrame
