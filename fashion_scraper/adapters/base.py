"""
Acquisition strategy interface.

Every strategy offers the same capability: fetch raw page bytes, the final
URL and the final status for one URL within a time budget. The set of
strategies is closed (see StrategyId) and ranked explicitly by the
orchestrator; nothing here inspects types at runtime.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

from fashion_scraper.utils.logger import LayerLogger

# Browser navigation headers; the User-Agent comes from the emulation profile
NAVIGATION_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass
class FetchResult:
    """Raw response of one acquisition attempt."""
    body: bytes
    final_url: str
    status: int
    redirects: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class AcquisitionStrategy(ABC):
    """Base class for acquisition strategies."""

    strategy_id: str

    def __init__(self, strategy_id: str):
        self.strategy_id = strategy_id
        self.logger = LayerLogger(f"strategy.{strategy_id}")

    @abstractmethod
    async def fetch(self, url: str, timeout: float) -> FetchResult:
        """
        Fetch a URL within `timeout` seconds.

        The timeout is a hard upper bound: implementations raise
        AcquisitionError(TIMEOUT) instead of blocking past it, and release
        their sockets/processes when cancelled.

        Raises:
            AcquisitionError: on any acquisition failure
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.strategy_id}>"
