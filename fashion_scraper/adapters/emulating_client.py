"""
Emulating acquisition client.

Primary strategy: requests go out through curl_cffi impersonating a real
browser, so the TLS ClientHello (cipher order, extensions, ALPN) and the
HTTP/2 SETTINGS/HPACK ordering match that browser. Redirects are driven
here, hop by hop, through RedirectResolver rather than by libcurl.
"""
import asyncio
import time
from typing import Any, Callable, Optional

from curl_cffi import CurlError
from curl_cffi.requests import AsyncSession

from fashion_scraper.adapters.base import AcquisitionStrategy, FetchResult, NAVIGATION_HEADERS
from fashion_scraper.adapters.redirects import RedirectResolver, is_redirect
from fashion_scraper.config import config
from fashion_scraper.errors import AcquisitionError, AcquisitionErrorKind
from fashion_scraper.models.evidence import StrategyId

# libcurl CURLE_OPERATION_TIMEDOUT
CURL_TIMEOUT_CODE = 28

# libcurl error codes raised during the TLS handshake / certificate checks
CURL_TLS_CODES = frozenset({35, 51, 53, 54, 58, 59, 60, 64, 66, 77, 80, 82, 83, 90, 91})


def classify_curl_error(exc: Exception) -> AcquisitionErrorKind:
    """Map a curl_cffi error to an acquisition error kind."""
    code = getattr(exc, "code", None)
    try:
        code = int(code) if code is not None else None
    except (TypeError, ValueError):
        code = None

    if code == CURL_TIMEOUT_CODE:
        return AcquisitionErrorKind.TIMEOUT
    if code in CURL_TLS_CODES:
        return AcquisitionErrorKind.HANDSHAKE_FAILED
    return AcquisitionErrorKind.CONNECTION_FAILED


class EmulatingClient(AcquisitionStrategy):
    """
    Browser-fingerprint-emulating HTTP client.

    The same class backs the proxied variant: only strategy_id and proxy
    differ. A fresh session is opened per fetch and closed on every exit
    path, cancellation included, so no connection outlives the call.
    """

    def __init__(
        self,
        strategy_id: str = StrategyId.EMULATING.value,
        impersonate: Optional[str] = None,
        proxy: Optional[str] = None,
        max_redirects: Optional[int] = None,
        session_factory: Optional[Callable[[], Any]] = None,
    ):
        super().__init__(strategy_id)
        self.impersonate = impersonate or config.IMPERSONATE_PROFILE
        self.proxy = proxy
        self.max_redirects = config.MAX_REDIRECTS if max_redirects is None else max_redirects
        self._session_factory = session_factory

    def _new_session(self):
        if self._session_factory is not None:
            return self._session_factory()
        kwargs = {"impersonate": self.impersonate}
        if self.proxy:
            kwargs["proxy"] = self.proxy
        return AsyncSession(**kwargs)

    async def fetch(self, url: str, timeout: float) -> FetchResult:
        """
        Fetch a URL, following redirects, within `timeout` seconds.

        Args:
            url: The product URL to fetch
            timeout: Hard upper bound for the whole redirect chain

        Returns:
            FetchResult for the first non-redirect response
        """
        self.logger.log_action(
            "fetch", "started", url=url, impersonate=self.impersonate, proxied=bool(self.proxy)
        )
        started = time.monotonic()

        try:
            result = await asyncio.wait_for(self._fetch_chain(url, timeout), timeout=timeout)
        except asyncio.TimeoutError:
            raise AcquisitionError(
                AcquisitionErrorKind.TIMEOUT, url, f"no final response within {timeout:.1f}s"
            ) from None

        self.logger.log_action(
            "fetch",
            "completed",
            url=url,
            final_url=result.final_url,
            status_code=result.status,
            content_length=len(result.body),
            redirects=len(result.redirects),
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        return result

    async def _fetch_chain(self, url: str, timeout: float) -> FetchResult:
        resolver = RedirectResolver(self.max_redirects, strategy=self.strategy_id)
        current_url = resolver.start(url)

        async with self._new_session() as session:
            while True:
                response = await self._request(session, current_url, timeout)
                location = response.headers.get("location")

                if is_redirect(response.status_code, location):
                    current_url = resolver.resolve(current_url, location, response.status_code)
                    continue

                return FetchResult(
                    body=response.content or b"",
                    final_url=current_url,
                    status=response.status_code,
                    redirects=resolver.chain[1:],
                )

    async def _request(self, session, url: str, timeout: float):
        try:
            return await session.get(
                url,
                headers=NAVIGATION_HEADERS,
                timeout=timeout,
                allow_redirects=False,
            )
        except CurlError as e:
            kind = classify_curl_error(e)
            self.logger.log_error(
                f"Request failed: {str(e)}",
                error_type=kind.value,
                url=url,
            )
            raise AcquisitionError(kind, url, str(e)) from e
