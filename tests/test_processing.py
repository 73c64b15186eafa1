"""Tests for src/docsift/processing/__init__.py: segmenter dispatch."""

from docsift.models import CrawledPage
from docsift.processing import clean_text, process_page


def _page(**kwargs):
    defaults = {"url": "https://ex.com/guide.html", "path": "/guide.html", "raw_content": "", "title": ""}
    defaults.update(kwargs)
    return CrawledPage(**defaults)


def test_empty_content_yields_none():
    assert process_page(_page(raw_content="   \n")) is None


def test_html_page_uses_html_segmenter():
    article = process_page(
        _page(raw_content="<main><h2>Setup</h2><p>Run it.</p></main>", title="Guide")
    )
    assert article.title == "Guide"
    assert [(c.title, c.body) for c in article.components] == [("Setup", "Run it.")]
    assert article.url == "https://ex.com/guide.html"


def test_markdown_file_uses_markdown_segmenter():
    article = process_page(
        _page(
            url="https://github.com/o/r/blob/main/docs/intro.md",
            path="/docs/intro.md",
            raw_content="# Intro\n\nHello <b>world</b>.",
            title="Intro File",
        )
    )
    assert article.title == "Intro File"
    assert article.components[0].title == "Intro"
    assert article.components[0].body == "Hello <b>world</b>."


def test_extractor_output_uses_extracted_mode():
    article = process_page(
        _page(
            url="https://sb.ex.com/?path=/docs/button--docs",
            path="/?path=/docs/button--docs",
            raw_content="# Button\n\nA button.\n\n## Usage\n\nClick.",
            title="Storybook",
            extractor_id="storybook",
        )
    )
    assert article.title == "Button"
    assert [c.title for c in article.components] == ["Button", "Usage"]


def test_article_to_dict():
    article = process_page(_page(raw_content="<main><p>Body</p></main>", title="T"))
    assert article.to_dict() == {
        "url": "https://ex.com/guide.html",
        "path": "/guide.html",
        "title": "T",
        "components": [{"title": "Content", "body": "Body"}],
    }


def test_clean_text():
    assert clean_text("a\r\n\tb  c   \n\n\n\nd  ") == "a\n b c\n\nd"
