"""Fashion product scraper: resilient acquisition and evidence merging for product pages."""
from fashion_scraper.layers.orchestrator import scrape_url, scrape_url_sync
from fashion_scraper.models import ProductRecord, ScrapeResult, OrchestrationOutcome

__version__ = "1.0.0"

__all__ = [
    "scrape_url",
    "scrape_url_sync",
    "ProductRecord",
    "ScrapeResult",
    "OrchestrationOutcome",
]
