"""Turn crawled pages into Articles of titled components."""

from loguru import logger

from docsift import urls
from docsift.models import Article, CrawledPage
from docsift.processing.html import segment_html
from docsift.processing.markdown import segment_markdown
from docsift.processing.text import clean_text

__all__ = ["clean_text", "process_page", "segment_html", "segment_markdown"]


def process_page(page: CrawledPage) -> Article | None:
    """Segment *page* with the segmenter matching its content.

    Extractor output and Markdown files go through the Markdown
    segmenter; everything else is treated as HTML.  Returns None only
    when nothing survives segmentation.
    """
    if not page.raw_content or not page.raw_content.strip():
        return None

    if page.extractor_id:
        title, components = segment_markdown(
            page.raw_content, page_title=page.title, extracted=True
        )
    elif urls.is_markdown_path(page.path) or urls.is_markdown_path(page.url):
        title, components = segment_markdown(page.raw_content, page_title=page.title)
    else:
        title, components = segment_html(page.raw_content, page_title=page.title)

    if not components:
        logger.debug(f"No content survived segmentation of {page.url}")
        return None

    return Article(url=page.url, path=page.path, title=title, components=components)
