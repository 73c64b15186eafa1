"""Data types shared by the crawl engines, extractors and segmenters."""

from dataclasses import dataclass, field

# Engine identifiers, in tier order.
ENGINE_GITHUB = "github"
ENGINE_BROWSER = "browser"
ENGINE_STATIC = "static"
ENGINE_FALLBACK = "fallback"


@dataclass
class CrawledPage:
    """One fetched unit: an HTML page or a raw Markdown file.

    ``extractor_id`` is set when a site-specific extractor already turned
    the page into Markdown; segmentation then treats ``raw_content`` as
    Markdown regardless of the URL.
    """

    url: str
    path: str
    raw_content: str
    title: str = ""
    extractor_id: str | None = None


@dataclass
class ExtractedContent:
    """Output of a site extractor."""

    content: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ArticleComponent:
    title: str
    body: str


@dataclass
class Article:
    """A page split into titled sections, ready for downstream indexing."""

    url: str
    path: str
    title: str
    components: list[ArticleComponent] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "path": self.path,
            "title": self.title,
            "components": [
                {"title": c.title, "body": c.body} for c in self.components
            ],
        }
