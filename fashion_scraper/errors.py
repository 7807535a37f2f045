"""
Error taxonomy for the fashion product scraper.

Acquisition errors are raised by strategies and caught per strategy by the
orchestrator; they never abort a scrape. Extraction has no error type at
all: a missing signal is simply a missing candidate.
"""
from enum import Enum
from typing import Optional


class ScraperError(Exception):
    """Base class for all scraper errors."""


class InvalidInputError(ScraperError, ValueError):
    """Caller input rejected before any strategy is attempted."""


class AcquisitionErrorKind(str, Enum):
    """Why a single acquisition attempt failed."""
    TIMEOUT = "timeout"
    CONNECTION_FAILED = "connection_failed"
    HANDSHAKE_FAILED = "handshake_failed"
    REDIRECT_LIMIT_EXCEEDED = "redirect_limit_exceeded"
    REDIRECT_LOOP = "redirect_loop"
    SUBPROCESS_UNAVAILABLE = "subprocess_unavailable"
    SUBPROCESS_FAILED = "subprocess_failed"
    MALFORMED_SUBPROCESS_OUTPUT = "malformed_subprocess_output"
    HTTP_STATUS = "http_status"  # site answered, but with a non-2xx final status


class AcquisitionError(ScraperError):
    """A single strategy failed to acquire the page."""

    def __init__(self, kind: AcquisitionErrorKind, url: str, detail: Optional[str] = None):
        self.kind = kind
        self.url = url
        self.detail = detail
        message = f"{kind.value} fetching {url}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RedirectLimitExceeded(AcquisitionError):
    """Redirect chain longer than the configured hop cap."""

    def __init__(self, url: str, max_hops: int):
        self.max_hops = max_hops
        super().__init__(
            AcquisitionErrorKind.REDIRECT_LIMIT_EXCEEDED,
            url,
            f"more than {max_hops} redirects",
        )


class RedirectLoopDetected(AcquisitionError):
    """Redirect target already visited in this chain."""

    def __init__(self, url: str, target: str):
        self.target = target
        super().__init__(
            AcquisitionErrorKind.REDIRECT_LOOP,
            url,
            f"redirect back to already visited {target}",
        )
