"""docsift - documentation discovery, extraction and segmentation."""

from importlib.metadata import version

from docsift.__main__ import _cli as main
from docsift.indexer import DocsIndexer
from docsift.orchestrator import DocsCrawler
from docsift.processing import process_page

__version__ = version("docsift")
__all__ = ["DocsCrawler", "DocsIndexer", "main", "process_page", "__version__"]
