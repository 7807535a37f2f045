"""Layers package initialization."""
from fashion_scraper.layers.extraction import ExtractionEngine, PageDocument
from fashion_scraper.layers.evidence import EvidenceLedger
from fashion_scraper.layers.orchestrator import (
    Orchestrator,
    OrchestratorState,
    build_strategies,
    scrape_url,
    scrape_url_sync,
)

__all__ = [
    "ExtractionEngine",
    "PageDocument",
    "EvidenceLedger",
    "Orchestrator",
    "OrchestratorState",
    "build_strategies",
    "scrape_url",
    "scrape_url_sync",
]
