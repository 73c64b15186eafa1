"""Tests for site detection rules, preparation steps and extractors."""

import asyncio

import pytest

from docsift.sources import site_rules
from docsift.sources.extractors import (
    DefaultExtractor,
    GitHubPagesExtractor,
    StorybookExtractor,
)
from docsift.sources.site_rules import (
    MAX_CODE_REVEALS,
    PreparationStep,
    SiteDetectionRule,
    default_rules,
    detect_github_pages,
    detect_storybook,
    select_rule,
)

STORYBOOK_HTML = """
<html><body>
<div class="sbdocs-content">
  <h1>Button</h1>
  <p>Buttons trigger actions.</p>
  <h2>Usage</h2>
  <p>Use primary buttons sparingly.</p>
  <ul><li>Small</li><li>Large</li></ul>
  <ol><li>First</li><li>Second</li></ol>
  <pre class="prismjs language-jsx"><code>&lt;Button primary /&gt;</code></pre>
  <table><tr><th>Size</th><th>Height</th></tr><tr><td>small</td><td>24px</td></tr></table>
  <table class="docblock-argstable">
    <tr><th>Name</th><th>Description</th></tr>
    <tr><td>primary</td><td>Is primary</td></tr>
  </table>
  <script>window.x = 1</script>
</div>
</body></html>
"""


class TestDetection:
    @pytest.mark.asyncio
    async def test_storybook_by_url(self, fake_page):
        page = fake_page(url="https://sb.ex.com/?path=/docs/button--docs")
        assert await detect_storybook(page)
        assert page.evaluated == []

    @pytest.mark.asyncio
    async def test_storybook_by_dom(self, fake_page):
        assert await detect_storybook(fake_page(url="https://ex.com/", evaluate_result=True))
        assert not await detect_storybook(fake_page(url="https://ex.com/", evaluate_result=False))

    @pytest.mark.asyncio
    async def test_github_pages(self, fake_page, fake_element):
        markers = {site_rules._GITHUB_PAGES_MARKERS: [fake_element()]}
        assert await detect_github_pages(fake_page(url="https://org.github.io/proj/", elements=markers))
        assert not await detect_github_pages(fake_page(url="https://org.github.io/proj/"))
        assert not await detect_github_pages(fake_page(url="https://ex.com/", elements=markers))

    @pytest.mark.asyncio
    async def test_select_rule_order_and_default(self, fake_page):
        rules = default_rules()
        assert rules[-1].type == "default"

        sb = await select_rule(fake_page(url="https://ex.com/?path=/story/button"), rules)
        assert sb.type == "storybook"

        plain = await select_rule(fake_page(url="https://ex.com/guide"), rules)
        assert plain.type == "default"

    @pytest.mark.asyncio
    async def test_failing_detector_skipped(self, fake_page):
        async def boom(page):
            raise RuntimeError("detached")

        fallback = SiteDetectionRule(type="last", detect=site_rules._always, extractor=DefaultExtractor())
        rules = [SiteDetectionRule(type="broken", detect=boom, extractor=DefaultExtractor()), fallback]
        assert (await select_rule(fake_page(), rules)) is fallback


class TestPreparation:
    @pytest.mark.asyncio
    async def test_expand_sections_two_passes(self, fake_page, fake_element):
        page = fake_page()
        page.elements = {
            "button.sidebar-subheading-action": [fake_element(page, "sub")],
            '[aria-expanded="false"]': [fake_element(page, "node1"), fake_element(page, "node2")],
        }

        await site_rules._expand_sections(page)

        assert page.clicks.count("sub") == 2
        assert page.clicks.count("node1") == 2
        assert page.clicks.count("node2") == 2
        assert page.waits == [500, 1000, 500, 1000]

    @pytest.mark.asyncio
    async def test_reveal_code_capped(self, fake_page, fake_element):
        page = fake_page()
        page.elements = {site_rules._SHOW_CODE: [fake_element(page, f"code{i}") for i in range(5)]}

        await site_rules._reveal_code(page)

        assert len(page.clicks) == MAX_CODE_REVEALS

    @pytest.mark.asyncio
    async def test_click_failure_does_not_stop_others(self, fake_page, fake_element):
        page = fake_page()
        page.elements = {
            site_rules._SHOW_CODE: [fake_element(page, "bad", fail=True), fake_element(page, "good")]
        }

        await site_rules._reveal_code(page)

        assert page.clicks == ["good"]

    @pytest.mark.asyncio
    async def test_expand_argtables(self, fake_page, fake_element):
        page = fake_page()
        more = fake_element(page, "more", text="Show 12 more")
        collapsed = fake_element(page, "collapsed", attrs={"aria-expanded": "false"})
        open_row = fake_element(page, "open", text="Hide", attrs={"aria-expanded": "true"})
        page.elements = {site_rules._ARGTABLE_TOGGLES: [more, collapsed, open_row]}

        await site_rules._expand_argtables(page)

        assert page.clicks == ["more", "collapsed"]

    @pytest.mark.asyncio
    async def test_wait_for_content_tolerates_missing_selectors(self, fake_page):
        page = fake_page(present={site_rules._STORYBOOK_SIDEBAR})
        await site_rules._wait_for_content(page)

    @pytest.mark.asyncio
    async def test_failed_and_timed_out_steps_do_not_stop_later_steps(self, fake_page):
        ran = []

        async def fails(page):
            raise RuntimeError("boom")

        async def hangs(page):
            await asyncio.sleep(10)

        async def works(page):
            ran.append("works")

        rule = SiteDetectionRule(
            type="test",
            detect=site_rules._always,
            extractor=DefaultExtractor(),
            steps=[
                PreparationStep("fails", fails),
                PreparationStep("hangs", hangs, timeout=0.01),
                PreparationStep("works", works),
            ],
        )

        failed = await rule.prepare(fake_page())

        assert failed == ["fails", "hangs"]
        assert ran == ["works"]

    @pytest.mark.asyncio
    async def test_storybook_rule_prepares_fake_page(self, fake_page, fake_element):
        page = fake_page(url="https://sb.ex.com/?path=/docs/button--docs")
        page.elements = {"button.sidebar-subheading-action": [fake_element(page, "sub")]}
        storybook = default_rules()[0]

        failed = await storybook.prepare(page)

        assert failed == []
        assert page.clicks.count("sub") == 2
        assert [s.name for s in storybook.steps] == [
            "wait_for_content",
            "expand_sections",
            "scroll_lazy_load",
            "reveal_code",
            "expand_argtables",
        ]


class TestStorybookExtractor:
    def test_markdown_rendering(self):
        result = StorybookExtractor().extract_html(STORYBOOK_HTML)
        content = result.content

        assert content.startswith("# Button\n\nButtons trigger actions.")
        assert content.count("Buttons trigger actions.") == 1
        assert "## Usage" in content
        assert "- Small\n- Large" in content
        assert "1. First\n2. Second" in content
        assert "```jsx\n<Button primary />\n```" in content
        assert "| Size | Height |\n| --- | --- |\n| small | 24px |" in content
        assert "## Props\n\n| Name | Description |\n| --- | --- |\n| primary | Is primary |" in content
        assert "window.x" not in content
        assert result.metadata == {
            "type": "storybook",
            "name": "Button",
            "description": "Buttons trigger actions.",
        }

    def test_code_language_defaults_to_typescript(self):
        html = '<div class="sbdocs-content"><pre><code>const a = 1;</code></pre></div>'
        assert "```typescript\nconst a = 1;\n```" in StorybookExtractor().extract_html(html).content

    @pytest.mark.asyncio
    async def test_reads_preview_iframe(self, fake_page, fake_element, fake_frame):
        frame = fake_frame(STORYBOOK_HTML)
        page = fake_page(html="<html><body>shell</body></html>")
        page.elements = {"#storybook-preview-iframe": [fake_element(frame=frame)]}

        result = await StorybookExtractor().extract_content(page)

        assert result.metadata["name"] == "Button"

    @pytest.mark.asyncio
    async def test_falls_back_to_page_content(self, fake_page):
        result = await StorybookExtractor().extract_content(fake_page(html=STORYBOOK_HTML))
        assert result.content.startswith("# Button")


class TestGitHubPagesExtractor:
    def test_extracts_main_text(self):
        html = """
        <html><body>
        <header class="page-header">Site header</header>
        <nav>Menu</nav>
        <main>
          <h1>Project</h1>
          <p>A tool for things.</p>
          <h2>Install</h2>
          <p>Run the installer.</p>
          <script>track()</script>
        </main>
        <footer class="site-footer">Footer</footer>
        </body></html>
        """
        result = GitHubPagesExtractor().extract_html(html)

        assert result.metadata["name"] == "Project"
        assert result.metadata["description"] == "A tool for things."
        assert "Run the installer." in result.content
        for unwanted in ("Site header", "Menu", "Footer", "track()"):
            assert unwanted not in result.content


class TestDefaultExtractor:
    @pytest.mark.asyncio
    async def test_returns_rendered_html(self, fake_page):
        page = fake_page(html="<html><body><p>Hi</p></body></html>", title="Hello")
        result = await DefaultExtractor().extract_content(page)

        assert result.content == page.html
        assert result.metadata["name"] == "Hello"
        assert DefaultExtractor.produces_markdown is False
