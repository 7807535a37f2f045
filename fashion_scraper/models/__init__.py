"""Models package initialization."""
from fashion_scraper.models.product import ProductRecord, Price, GarmentType, Availability
from fashion_scraper.models.evidence import (
    FieldName,
    Confidence,
    FieldCandidate,
    StrategyId,
    AttemptStatus,
    StrategyAttempt,
    OrchestrationOutcome,
    ScrapeResult,
)

__all__ = [
    "ProductRecord",
    "Price",
    "GarmentType",
    "Availability",
    "FieldName",
    "Confidence",
    "FieldCandidate",
    "StrategyId",
    "AttemptStatus",
    "StrategyAttempt",
    "OrchestrationOutcome",
    "ScrapeResult",
]
