"""
Redirect resolution for a single acquisition attempt.

One resolver instance covers one logical fetch: the hop counter and the
visited set are shared across the whole chain and discarded with it.
"""
from typing import List, Optional
from urllib.parse import urldefrag, urljoin

from fashion_scraper.errors import RedirectLimitExceeded, RedirectLoopDetected
from fashion_scraper.utils.logger import LayerLogger

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


def is_redirect(status_code: int, location: Optional[str]) -> bool:
    """A response is followed only if it is a redirect AND names a target."""
    return status_code in REDIRECT_STATUSES and bool(location and location.strip())


def _visit_key(url: str) -> str:
    return urldefrag(url)[0]


class RedirectResolver:
    """Follows one redirect chain under a fixed hop cap."""

    def __init__(self, max_hops: int = 5, strategy: str = ""):
        self.max_hops = max_hops
        self.strategy = strategy
        self.hops = 0
        self.chain: List[str] = []
        self._visited = set()
        self.logger = LayerLogger("redirect_resolver")

    def start(self, url: str) -> str:
        """Register the origin URL of the chain."""
        self.chain = [url]
        self._visited = {_visit_key(url)}
        self.hops = 0
        return url

    def resolve(self, current_url: str, location: str, status_code: int = 302) -> str:
        """
        Produce the next URL to fetch for a redirect response.

        Absolute Locations are used as-is, protocol-relative ones inherit
        the current scheme and relative ones resolve against the current
        URL (urljoin implements all three).

        Raises:
            RedirectLimitExceeded: the chain would exceed max_hops
            RedirectLoopDetected: the target was already visited
        """
        if not self.chain:
            self.start(current_url)

        next_url = urljoin(current_url, location.strip())

        if self.hops + 1 > self.max_hops:
            raise RedirectLimitExceeded(self.chain[0], self.max_hops)

        key = _visit_key(next_url)
        if key in self._visited:
            raise RedirectLoopDetected(self.chain[0], next_url)

        self.hops += 1
        self._visited.add(key)
        self.chain.append(next_url)

        self.logger.log_redirect(
            from_url=current_url,
            to_url=next_url,
            hop=self.hops,
            status_code=status_code,
            strategy=self.strategy,
        )
        return next_url
