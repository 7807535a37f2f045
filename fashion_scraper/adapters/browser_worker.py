"""
Headless-browser worker acquisition client.

Optional strategy, enabled only when BROWSER_WORKER_URL is configured.
The worker renders the page in a real browser and answers JSON:

    {"html": "<html>...", "url": "<final url>", "status": 200}
    {"error": "<reason>"}
"""
import time
from typing import Optional

import httpx

from fashion_scraper.adapters.base import AcquisitionStrategy, FetchResult
from fashion_scraper.errors import AcquisitionError, AcquisitionErrorKind
from fashion_scraper.models.evidence import StrategyId


class BrowserWorkerClient(AcquisitionStrategy):
    """Fetches rendered HTML from a remote headless-browser worker."""

    def __init__(
        self,
        worker_url: str,
        strategy_id: str = StrategyId.BROWSER_WORKER.value,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(strategy_id)
        self.worker_url = worker_url
        self._transport = transport

    async def fetch(self, url: str, timeout: float) -> FetchResult:
        """Ask the worker to render `url` within `timeout` seconds."""
        self.logger.log_action("fetch", "started", url=url, worker=self.worker_url)
        started = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.get(self.worker_url, params={"url": url})
        except httpx.TimeoutException as e:
            raise AcquisitionError(AcquisitionErrorKind.TIMEOUT, url, str(e) or "worker timed out") from e
        except httpx.HTTPError as e:
            raise AcquisitionError(AcquisitionErrorKind.CONNECTION_FAILED, url, str(e)) from e

        if response.status_code >= 400:
            raise AcquisitionError(
                AcquisitionErrorKind.CONNECTION_FAILED,
                url,
                f"worker answered HTTP {response.status_code}",
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AcquisitionError(
                AcquisitionErrorKind.CONNECTION_FAILED, url, "worker answered non-JSON payload"
            ) from e

        if not isinstance(payload, dict) or payload.get("error"):
            reason = payload.get("error") if isinstance(payload, dict) else "unexpected payload"
            raise AcquisitionError(AcquisitionErrorKind.CONNECTION_FAILED, url, f"worker error: {reason}")

        html = payload.get("html")
        if not isinstance(html, str) or not html:
            raise AcquisitionError(AcquisitionErrorKind.CONNECTION_FAILED, url, "worker returned no html")

        status = payload.get("status")
        result = FetchResult(
            body=html.encode("utf-8"),
            final_url=payload.get("url") or url,
            status=status if isinstance(status, int) else 200,
        )

        self.logger.log_action(
            "fetch",
            "completed",
            url=url,
            final_url=result.final_url,
            status_code=result.status,
            content_length=len(result.body),
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        return result
