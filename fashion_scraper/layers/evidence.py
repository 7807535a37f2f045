"""
Evidence Ledger for the fashion product scraper.
Per-call orchestration state: the accepted candidate for each field, the
accumulated image set, every strategy attempt and the overall deadline.

The ledger is built fresh for each scrape and never shared between calls.
"""
import time
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from fashion_scraper.models.evidence import (
    FieldCandidate,
    FieldName,
    StrategyAttempt,
    STRATEGY_PRIORITY,
    strategy_rank,
)
from fashion_scraper.models.product import Availability, GarmentType, ProductRecord
from fashion_scraper.utils.logger import LayerLogger
from fashion_scraper.utils.urls import image_key


class EvidenceLedger:
    """
    Accepts or rejects field candidates by (confidence, strategy priority).

    A scalar field's accepted candidate is replaced only when the newcomer
    ranks strictly higher: better confidence, or equal confidence from a
    higher-priority strategy. Images are a union keyed by normalized URL
    where the first arrival keeps its slot.
    """

    def __init__(
        self,
        strategy_order: Optional[Sequence[str]] = None,
        deadline_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.strategy_order = list(strategy_order or STRATEGY_PRIORITY)
        self.clock = clock
        self.started_at = clock()
        self.deadline_seconds = deadline_seconds
        self.accepted: Dict[FieldName, FieldCandidate] = {}
        self.images: List[FieldCandidate] = []
        self._image_keys: set = set()
        self.attempts: List[StrategyAttempt] = []
        self.logger = LayerLogger("evidence_ledger")

    def rank(self, strategy_id: Optional[str]) -> int:
        """Priority of a strategy in this call's order; higher is better."""
        return strategy_rank(strategy_id, self.strategy_order)

    def _key(self, candidate: FieldCandidate):
        return (int(candidate.confidence), self.rank(candidate.strategy_id))

    def ingest(self, candidates: Iterable[FieldCandidate], strategy_id: str) -> List[FieldName]:
        """
        Merge one strategy's candidates into the ledger.

        Args:
            candidates: Candidates from one extraction pass
            strategy_id: Strategy that acquired the page they came from

        Returns:
            Fields whose accepted value changed (images: when new URLs joined)
        """
        changed: List[FieldName] = []

        for candidate in candidates:
            if candidate.strategy_id != strategy_id:
                candidate = FieldCandidate(
                    field=candidate.field,
                    value=candidate.value,
                    confidence=candidate.confidence,
                    rule=candidate.rule,
                    strategy_id=strategy_id,
                )

            if candidate.field == FieldName.IMAGE_URLS:
                if self._add_image(candidate) and FieldName.IMAGE_URLS not in changed:
                    changed.append(FieldName.IMAGE_URLS)
                continue

            if candidate.value is None:
                continue

            current = self.accepted.get(candidate.field)
            if current is None or self._key(candidate) > self._key(current):
                self.accepted[candidate.field] = candidate
                if candidate.field not in changed:
                    changed.append(candidate.field)

        fields = [f.value for f in changed]
        self.logger.log_merge(
            strategy=strategy_id,
            fields_accepted=fields,
            elapsed_ms=self.elapsed_ms(),
        )
        return changed

    def _add_image(self, candidate: FieldCandidate) -> bool:
        if not isinstance(candidate.value, str) or not candidate.value:
            return False
        key = image_key(candidate.value)
        if key in self._image_keys:
            return False
        self._image_keys.add(key)
        self.images.append(candidate)
        return True

    def record_attempt(self, attempt: StrategyAttempt) -> None:
        self.attempts.append(attempt)

    def is_sufficient(self) -> bool:
        """Stop predicate: name and price accepted and at least one image."""
        return (
            FieldName.PRODUCT_NAME in self.accepted
            and FieldName.PRICE in self.accepted
            and bool(self.images)
        )

    def has_evidence(self) -> bool:
        return bool(self.accepted) or bool(self.images)

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def elapsed_ms(self) -> int:
        return int(self.elapsed() * 1000)

    def remaining(self) -> float:
        """Seconds left of the overall deadline, never negative."""
        if self.deadline_seconds is None:
            return float("inf")
        return max(0.0, self.deadline_seconds - self.elapsed())

    def value(self, field_name: FieldName):
        candidate = self.accepted.get(field_name)
        return candidate.value if candidate else None

    def to_record(self) -> ProductRecord:
        """Build the output record; unfilled enums fall back to their sentinel."""
        return ProductRecord(
            product_name=self.value(FieldName.PRODUCT_NAME),
            brand=self.value(FieldName.BRAND),
            price=self.value(FieldName.PRICE),
            image_urls=[c.value for c in self.images],
            garment_type=self.value(FieldName.GARMENT_TYPE) or GarmentType.UNSUPPORTED,
            availability=self.value(FieldName.AVAILABILITY) or Availability.UNKNOWN,
        )

    def field_sources(self) -> Dict[str, str]:
        """Field -> strategy id that supplied the accepted value."""
        sources = {
            field_name.value: candidate.strategy_id
            for field_name, candidate in self.accepted.items()
            if candidate.strategy_id
        }
        if self.images and self.images[0].strategy_id:
            sources[FieldName.IMAGE_URLS.value] = self.images[0].strategy_id
        return {f.value: sources[f.value] for f in FieldName if f.value in sources}
