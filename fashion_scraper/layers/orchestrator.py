"""
Orchestrator for the fashion product scraper.
Races every configured acquisition strategy against one URL, runs each
page through the Extraction Engine as it arrives and merges the evidence
into a per-call ledger until the record is good enough or time runs out.

State flow: idle -> racing -> merging -> done.
"""
import asyncio
import math
import time
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from fashion_scraper.adapters.base import AcquisitionStrategy, FetchResult
from fashion_scraper.adapters.browser_worker import BrowserWorkerClient
from fashion_scraper.adapters.delegating_client import DelegatingClient
from fashion_scraper.adapters.emulating_client import EmulatingClient
from fashion_scraper.config import Config, config
from fashion_scraper.errors import AcquisitionError, AcquisitionErrorKind, InvalidInputError
from fashion_scraper.layers.evidence import EvidenceLedger
from fashion_scraper.layers.extraction import ExtractionEngine
from fashion_scraper.models.evidence import (
    AttemptStatus,
    OrchestrationOutcome,
    ScrapeResult,
    StrategyAttempt,
    StrategyId,
)
from fashion_scraper.utils.logger import LayerLogger, set_trace_id
from fashion_scraper.utils.urls import is_http_url


class OrchestratorState(str, Enum):
    IDLE = "idle"
    RACING = "racing"
    MERGING = "merging"
    DONE = "done"


def validate_input(url: str, timeout_seconds: float) -> Tuple[str, float]:
    """
    Reject bad caller input before any strategy runs.

    Raises:
        InvalidInputError: non-positive or non-finite timeout, or a URL
            that is not absolute http(s) with a host
    """
    if isinstance(timeout_seconds, bool) or not isinstance(timeout_seconds, (int, float)):
        raise InvalidInputError(f"timeout_seconds must be a number, got {timeout_seconds!r}")
    if not math.isfinite(timeout_seconds) or timeout_seconds <= 0:
        raise InvalidInputError(f"timeout_seconds must be positive, got {timeout_seconds!r}")
    if not isinstance(url, str) or not url.strip():
        raise InvalidInputError("url must be a non-empty string")
    url = url.strip()
    if not is_http_url(url):
        raise InvalidInputError(f"url must be an absolute http(s) URL, got {url!r}")
    return url, float(timeout_seconds)


def build_strategies(cfg: Config = config) -> List[AcquisitionStrategy]:
    """Configured strategies in priority order; optional ones only when set up."""
    strategies: List[AcquisitionStrategy] = [
        EmulatingClient(
            strategy_id=StrategyId.EMULATING.value,
            impersonate=cfg.IMPERSONATE_PROFILE,
            max_redirects=cfg.MAX_REDIRECTS,
        )
    ]
    if cfg.is_proxy_configured():
        strategies.append(EmulatingClient(
            strategy_id=StrategyId.EMULATING_PROXY.value,
            impersonate=cfg.IMPERSONATE_PROFILE,
            proxy=cfg.PROXY_URL,
            max_redirects=cfg.MAX_REDIRECTS,
        ))
    if cfg.is_browser_worker_configured():
        strategies.append(BrowserWorkerClient(cfg.BROWSER_WORKER_URL))
    if not cfg.is_fingerprint_binary_available():
        # Still raced: its attempt fails fast and is recorded as subprocess_unavailable
        LayerLogger("orchestrator").log_decision(
            decision="keep_delegating_strategy",
            reason="fingerprint_binary_missing",
            binary_path=cfg.FINGERPRINT_BINARY_PATH,
        )
    strategies.append(DelegatingClient(
        binary_path=cfg.FINGERPRINT_BINARY_PATH,
        max_redirects=cfg.MAX_REDIRECTS,
    ))
    return strategies


class Orchestrator:
    """
    Runs one scrape: race, extract, merge, stop.

    Strategies share nothing but the ledger, and the ledger is only
    touched from this coroutine, one finished attempt at a time.
    """

    def __init__(
        self,
        strategies: Sequence[AcquisitionStrategy],
        engine: Optional[ExtractionEngine] = None,
        strategy_timeout: Optional[float] = None,
    ):
        if not strategies:
            raise ValueError("at least one acquisition strategy is required")
        self.strategies = list(strategies)
        self.engine = engine or ExtractionEngine()
        self.strategy_timeout = (
            config.STRATEGY_TIMEOUT_SECONDS if strategy_timeout is None else strategy_timeout
        )
        self.state = OrchestratorState.IDLE
        self.logger = LayerLogger("orchestrator")

    @property
    def strategy_order(self) -> List[str]:
        return [s.strategy_id for s in self.strategies]

    async def run(self, url: str, timeout_seconds: Optional[float] = None) -> ScrapeResult:
        """
        Scrape one product URL under an overall deadline.

        Args:
            url: Product page URL (short links and redirects are followed)
            timeout_seconds: Overall deadline; defaults to DEFAULT_TIMEOUT_SECONDS

        Returns:
            ScrapeResult with outcome success, partial_success or failure
        """
        if timeout_seconds is None:
            timeout_seconds = config.DEFAULT_TIMEOUT_SECONDS
        url, timeout_seconds = validate_input(url, timeout_seconds)

        ledger = EvidenceLedger(self.strategy_order, deadline_seconds=timeout_seconds)
        self.logger.log_action(
            "scrape",
            "started",
            url=url,
            timeout_seconds=timeout_seconds,
            strategies=self.strategy_order,
        )

        self.state = OrchestratorState.RACING
        inflight: Dict[asyncio.Task, AcquisitionStrategy] = {
            asyncio.create_task(self._attempt(strategy, url, ledger)): strategy
            for strategy in self.strategies
        }

        stopped_early = False
        try:
            stopped_early = await self._race(inflight, ledger, url)
        finally:
            await self._teardown(inflight, ledger, stopped_early, url)

        self.state = OrchestratorState.MERGING
        result = self._build_result(url, ledger)
        self.state = OrchestratorState.DONE

        self.logger.log_action(
            "scrape",
            "completed",
            url=url,
            outcome=result.outcome.value,
            source_url=result.source_url,
            missing_fields=result.missing_fields,
            elapsed_ms=result.elapsed_ms,
        )
        return result

    async def _race(
        self,
        inflight: Dict[asyncio.Task, AcquisitionStrategy],
        ledger: EvidenceLedger,
        url: str,
    ) -> bool:
        """Merge attempts as they finish; True when stopped on sufficient evidence."""
        while inflight:
            remaining = ledger.remaining()
            if remaining <= 0:
                self.logger.log_decision(
                    decision="stop",
                    reason="deadline_elapsed",
                    url=url,
                    pending=[s.strategy_id for s in inflight.values()],
                )
                return False

            done, _ = await asyncio.wait(
                set(inflight), timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            finished = sorted(
                done, key=lambda t: ledger.rank(inflight[t].strategy_id), reverse=True
            )

            for task in finished:
                inflight.pop(task)
                attempt, fetched = task.result()
                ledger.record_attempt(attempt)

                if fetched is None or attempt.status != AttemptStatus.SUCCEEDED:
                    continue
                if ledger.is_sufficient():
                    attempt.detail = "not merged: evidence already sufficient"
                    continue
                await self._merge(attempt, fetched, ledger)

            if ledger.is_sufficient():
                self.logger.log_decision(
                    decision="stop",
                    reason="evidence_sufficient",
                    url=url,
                    pending=[s.strategy_id for s in inflight.values()],
                    elapsed_ms=ledger.elapsed_ms(),
                )
                return True

        return False

    async def _merge(self, attempt: StrategyAttempt, fetched: FetchResult, ledger: EvidenceLedger):
        # Parsing is CPU-bound; keep the event loop free for the other strategies
        try:
            candidates = await asyncio.wait_for(
                asyncio.to_thread(self.engine.extract, fetched.body, fetched.final_url),
                timeout=ledger.remaining(),
            )
        except asyncio.TimeoutError:
            self.logger.log_decision(
                decision="discard_page",
                reason="extraction_past_deadline",
                url=fetched.final_url,
                strategy=attempt.strategy_id,
                body_bytes=len(fetched.body),
            )
            attempt.detail = "not merged: extraction ran past the overall deadline"
            return
        attempt.candidates = len(candidates)
        changed = ledger.ingest(candidates, attempt.strategy_id)
        attempt.fields_accepted = [f.value for f in changed]

    async def _teardown(
        self,
        inflight: Dict[asyncio.Task, AcquisitionStrategy],
        ledger: EvidenceLedger,
        stopped_early: bool,
        url: str,
    ):
        """Cancel unfinished strategies and wait until their sockets/processes are released."""
        if not inflight:
            return

        for task in inflight:
            task.cancel()
        await asyncio.gather(*inflight, return_exceptions=True)

        for strategy in inflight.values():
            if stopped_early:
                attempt = StrategyAttempt(
                    strategy_id=strategy.strategy_id,
                    status=AttemptStatus.CANCELLED,
                    detail="cancelled after sufficient evidence",
                    elapsed_ms=ledger.elapsed_ms(),
                )
            else:
                attempt = StrategyAttempt(
                    strategy_id=strategy.strategy_id,
                    status=AttemptStatus.TIMED_OUT,
                    error_kind=AcquisitionErrorKind.TIMEOUT.value,
                    detail="overall deadline elapsed",
                    elapsed_ms=ledger.elapsed_ms(),
                )
            ledger.record_attempt(attempt)
            self.logger.log_attempt(
                strategy=attempt.strategy_id,
                status=attempt.status.value,
                elapsed_ms=attempt.elapsed_ms,
                error_kind=attempt.error_kind,
                url=url,
            )
        inflight.clear()

    async def _attempt(
        self,
        strategy: AcquisitionStrategy,
        url: str,
        ledger: EvidenceLedger,
    ) -> Tuple[StrategyAttempt, Optional[FetchResult]]:
        """Run one strategy; acquisition errors become a recorded attempt, never an exception."""
        attempt = StrategyAttempt(strategy_id=strategy.strategy_id)
        timeout = min(self.strategy_timeout, ledger.remaining())
        started = time.monotonic()
        fetched: Optional[FetchResult] = None

        try:
            fetched = await asyncio.wait_for(strategy.fetch(url, timeout), timeout=timeout)
        except asyncio.TimeoutError:
            attempt.status = AttemptStatus.TIMED_OUT
            attempt.error_kind = AcquisitionErrorKind.TIMEOUT.value
            attempt.detail = f"no response within {timeout:.1f}s"
        except AcquisitionError as e:
            timed_out = e.kind == AcquisitionErrorKind.TIMEOUT
            attempt.status = AttemptStatus.TIMED_OUT if timed_out else AttemptStatus.FAILED
            attempt.error_kind = e.kind.value
            attempt.detail = e.detail
        except Exception as e:
            self.logger.log_error(
                f"Strategy {strategy.strategy_id} crashed: {str(e)}",
                error_type="strategy_error",
                strategy=strategy.strategy_id,
                url=url,
            )
            attempt.status = AttemptStatus.FAILED
            attempt.error_kind = AcquisitionErrorKind.CONNECTION_FAILED.value
            attempt.detail = f"{type(e).__name__}: {e}"
        else:
            attempt.final_url = fetched.final_url
            attempt.http_status = fetched.status
            if fetched.ok:
                attempt.status = AttemptStatus.SUCCEEDED
            else:
                attempt.status = AttemptStatus.FAILED
                attempt.error_kind = AcquisitionErrorKind.HTTP_STATUS.value
                attempt.detail = f"HTTP {fetched.status}"

        attempt.elapsed_ms = int((time.monotonic() - started) * 1000)
        self.logger.log_attempt(
            strategy=attempt.strategy_id,
            status=attempt.status.value,
            elapsed_ms=attempt.elapsed_ms,
            error_kind=attempt.error_kind,
            http_status=attempt.http_status,
            final_url=attempt.final_url,
            url=url,
        )
        return attempt, fetched

    def _build_result(self, url: str, ledger: EvidenceLedger) -> ScrapeResult:
        order = self.strategy_order
        attempts = sorted(
            ledger.attempts,
            key=lambda a: order.index(a.strategy_id) if a.strategy_id in order else len(order),
        )

        if ledger.is_sufficient():
            outcome = OrchestrationOutcome.SUCCESS
        elif ledger.has_evidence():
            outcome = OrchestrationOutcome.PARTIAL_SUCCESS
        else:
            outcome = OrchestrationOutcome.FAILURE

        record = ledger.to_record() if outcome != OrchestrationOutcome.FAILURE else None

        source_url = None
        for attempt in attempts:
            if attempt.status == AttemptStatus.SUCCEEDED and attempt.candidates:
                source_url = attempt.final_url
                break

        return ScrapeResult(
            url=url,
            outcome=outcome,
            record=record,
            source_url=source_url,
            field_sources=ledger.field_sources() if record else {},
            missing_fields=record.missing_fields() if record else [],
            attempts=[a.to_dict() for a in attempts],
            elapsed_ms=ledger.elapsed_ms(),
        )


async def scrape_url(url: str, timeout_seconds: Optional[float] = None) -> ScrapeResult:
    """
    Scrape one fashion product page.

    Args:
        url: Product page URL
        timeout_seconds: Overall deadline in seconds (> 0); defaults to config

    Returns:
        ScrapeResult; `record` is None when no strategy produced any evidence

    Raises:
        InvalidInputError: before any network activity, for bad input
    """
    if timeout_seconds is None:
        timeout_seconds = config.DEFAULT_TIMEOUT_SECONDS
    url, timeout_seconds = validate_input(url, timeout_seconds)

    set_trace_id()
    orchestrator = Orchestrator(build_strategies(config))
    return await orchestrator.run(url, timeout_seconds)


def scrape_url_sync(url: str, timeout_seconds: Optional[float] = None) -> ScrapeResult:
    """Blocking wrapper around scrape_url for synchronous hosts."""
    return asyncio.run(scrape_url(url, timeout_seconds))
