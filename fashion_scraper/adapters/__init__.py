"""Adapters package initialization."""
from fashion_scraper.adapters.base import AcquisitionStrategy, FetchResult
from fashion_scraper.adapters.redirects import RedirectResolver
from fashion_scraper.adapters.emulating_client import EmulatingClient
from fashion_scraper.adapters.delegating_client import DelegatingClient
from fashion_scraper.adapters.browser_worker import BrowserWorkerClient

__all__ = [
    "AcquisitionStrategy",
    "FetchResult",
    "RedirectResolver",
    "EmulatingClient",
    "DelegatingClient",
    "BrowserWorkerClient",
]
