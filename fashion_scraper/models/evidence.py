"""
Evidence models for the fashion product scraper.

A FieldCandidate is one extractor's proposal for one output field. The
ledger accepts or rejects candidates by (confidence, strategy priority);
StrategyAttempt records what happened to each acquisition strategy.
"""
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from fashion_scraper.models.product import ProductRecord


class FieldName(str, Enum):
    """Output fields that candidates can target."""
    PRODUCT_NAME = "product_name"
    BRAND = "brand"
    PRICE = "price"
    IMAGE_URLS = "image_urls"
    GARMENT_TYPE = "garment_type"
    AVAILABILITY = "availability"


class Confidence(IntEnum):
    """Ordinal confidence of a heuristic tier."""
    TEXT_PATTERN = 1
    HEURISTIC = 2
    STRUCTURED = 3  # exact selector / structured markup match


class StrategyId(str, Enum):
    """Acquisition strategies, declared from highest to lowest priority."""
    EMULATING = "emulating"
    EMULATING_PROXY = "emulating_proxy"
    BROWSER_WORKER = "browser_worker"
    DELEGATING = "delegating"


STRATEGY_PRIORITY: List[str] = [s.value for s in StrategyId]


def strategy_rank(strategy_id: Optional[str], order: Sequence[str] = STRATEGY_PRIORITY) -> int:
    """Higher is better; strategies missing from `order` rank below all listed ones."""
    if strategy_id in order:
        return len(order) - list(order).index(strategy_id)
    return 0


@dataclass(frozen=True)
class FieldCandidate:
    """One proposed value for one field, with provenance."""
    field: FieldName
    value: Any
    confidence: Confidence
    rule: str = ""
    strategy_id: Optional[str] = None


class AttemptStatus(str, Enum):
    """Lifecycle of one strategy attempt."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class StrategyAttempt:
    """What happened to one acquisition strategy during a scrape."""
    strategy_id: str
    status: AttemptStatus = AttemptStatus.PENDING
    error_kind: Optional[str] = None
    detail: Optional[str] = None
    final_url: Optional[str] = None
    http_status: Optional[int] = None
    elapsed_ms: int = 0
    candidates: int = 0
    fields_accepted: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy_id,
            "status": self.status.value,
            "error_kind": self.error_kind,
            "detail": self.detail,
            "final_url": self.final_url,
            "http_status": self.http_status,
            "elapsed_ms": self.elapsed_ms,
            "candidates": self.candidates,
            "fields_accepted": list(self.fields_accepted),
        }


class OrchestrationOutcome(str, Enum):
    """Caller-facing result class of one scrape."""
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILURE = "failure"


class ScrapeResult(BaseModel):
    """
    Result envelope of one scrape_url call.

    `record` is None exactly when the outcome is FAILURE.
    """
    url: str
    outcome: OrchestrationOutcome
    record: Optional[ProductRecord] = None
    source_url: Optional[str] = None
    field_sources: Dict[str, str] = Field(default_factory=dict)
    missing_fields: List[str] = Field(default_factory=list)
    attempts: List[Dict[str, Any]] = Field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome != OrchestrationOutcome.FAILURE
