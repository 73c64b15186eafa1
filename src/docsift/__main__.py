"""docsift command line entry point."""

import asyncio
import json
import sys

from loguru import logger

_USAGE = """usage: docsift crawl <url>

Crawl the documentation at <url> and print one JSON line per page with
its segmented sections.  Behaviour is configured through environment
variables (BROWSER_ENABLED, MAX_PAGES, MAX_DEPTH, GITHUB_TOKEN, ...).
"""


def _setup_logging() -> None:
    from docsift.config import settings

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level.upper())


async def _crawl(url: str) -> int:
    from docsift.orchestrator import DocsCrawler
    from docsift.processing import process_page

    crawler = DocsCrawler()
    count = 0
    async for page in crawler.crawl(url):
        article = process_page(page)
        if article is None:
            continue
        print(json.dumps(article.to_dict(), ensure_ascii=False), flush=True)
        count += 1
    logger.info(f"Done: {count} articles via the {crawler.result} engine")
    return count


def _cli() -> None:
    """CLI dispatcher: crawl subcommand, usage otherwise."""
    if len(sys.argv) >= 3 and sys.argv[1] == "crawl":
        _setup_logging()
        try:
            asyncio.run(_crawl(sys.argv[2]))
        except KeyboardInterrupt:
            logger.warning("Interrupted")
            sys.exit(130)
        except Exception as e:
            logger.error(f"Crawl failed: {e}")
            sys.exit(1)
    else:
        print(_USAGE, end="")
        sys.exit(0 if len(sys.argv) < 2 else 2)


if __name__ == "__main__":
    _cli()
