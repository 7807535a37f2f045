"""
Delegating acquisition client.

Fallback strategy: shells out to a pre-built curl-impersonate executable
that reproduces a specific browser engine's fingerprint. The tool writes
the body to stdout followed by a trailer line carrying the final status
and effective URL, e.g.

    <html>...</html>
    __FETCH_META__ 200 https://shop.example/p/123
"""
import asyncio
import os
import time
from typing import List, Optional, Tuple

from fashion_scraper.adapters.base import AcquisitionStrategy, FetchResult
from fashion_scraper.config import config
from fashion_scraper.errors import AcquisitionError, AcquisitionErrorKind
from fashion_scraper.models.evidence import StrategyId

TRAILER_MARKER = b"__FETCH_META__ "
WRITE_OUT_FORMAT = "\n__FETCH_META__ %{http_code} %{url_effective}"

# curl exit codes with a dedicated meaning
CURL_EXIT_TIMEOUT = 28
CURL_EXIT_TOO_MANY_REDIRECTS = 47


def parse_tool_output(stdout: bytes) -> Tuple[bytes, int, str]:
    """
    Split captured stdout into (body, status, final_url).

    Raises:
        ValueError: the trailer is missing or unparsable
    """
    marker_at = stdout.rfind(TRAILER_MARKER)
    if marker_at < 0:
        raise ValueError("missing fetch trailer")

    body = stdout[:marker_at]
    if body.endswith(b"\n"):
        body = body[:-1]

    trailer = stdout[marker_at + len(TRAILER_MARKER):].strip().decode("utf-8", errors="replace")
    parts = trailer.split(" ", 1)
    if len(parts) != 2 or not parts[1].strip():
        raise ValueError(f"unparsable fetch trailer: {trailer[:200]!r}")

    status_text, final_url = parts[0], parts[1].strip()
    if not status_text.isdigit():
        raise ValueError(f"non-numeric status in trailer: {status_text!r}")
    status = int(status_text)
    if status == 0:
        # curl reports 000 when no response was received at all
        raise ValueError("tool reported no HTTP response")
    return body, status, final_url


class DelegatingClient(AcquisitionStrategy):
    """Runs the external fingerprint-matching executable for one URL."""

    def __init__(
        self,
        binary_path: Optional[str] = None,
        max_redirects: Optional[int] = None,
        strategy_id: str = StrategyId.DELEGATING.value,
    ):
        super().__init__(strategy_id)
        self.binary_path = binary_path or config.FINGERPRINT_BINARY_PATH
        self.max_redirects = config.MAX_REDIRECTS if max_redirects is None else max_redirects

    def build_command(self, url: str, timeout: float) -> List[str]:
        """Process arguments for one invocation."""
        return [
            self.binary_path,
            "-sS",
            "-L",
            "--max-redirs", str(self.max_redirects),
            "--max-time", f"{max(timeout, 0.001):.3f}",
            "-w", WRITE_OUT_FORMAT,
            url,
        ]

    async def fetch(self, url: str, timeout: float) -> FetchResult:
        """
        Fetch a URL through the external tool within `timeout` seconds.

        The process is killed and reaped on timeout and on cancellation.
        """
        if not (os.path.isfile(self.binary_path) and os.access(self.binary_path, os.X_OK)):
            raise AcquisitionError(
                AcquisitionErrorKind.SUBPROCESS_UNAVAILABLE,
                url,
                f"{self.binary_path} not found or not executable",
            )

        self.logger.log_action("fetch", "started", url=url, binary=self.binary_path)
        started = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                *self.build_command(url, timeout),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AcquisitionError(
                AcquisitionErrorKind.SUBPROCESS_UNAVAILABLE, url, str(e)
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            raise AcquisitionError(
                AcquisitionErrorKind.TIMEOUT, url, f"tool still running after {timeout:.1f}s"
            ) from None
        except asyncio.CancelledError:
            await self._kill(process)
            raise

        elapsed_ms = int((time.monotonic() - started) * 1000)
        result = self._interpret(url, process.returncode, stdout, stderr)

        self.logger.log_action(
            "fetch",
            "completed",
            url=url,
            final_url=result.final_url,
            status_code=result.status,
            content_length=len(result.body),
            elapsed_ms=elapsed_ms,
        )
        return result

    def _interpret(self, url: str, returncode: int, stdout: bytes, stderr: bytes) -> FetchResult:
        if returncode != 0:
            detail = f"exit code {returncode}: {stderr.decode('utf-8', errors='replace').strip()[:300]}"
            if returncode == CURL_EXIT_TIMEOUT:
                raise AcquisitionError(AcquisitionErrorKind.TIMEOUT, url, detail)
            if returncode == CURL_EXIT_TOO_MANY_REDIRECTS:
                raise AcquisitionError(AcquisitionErrorKind.REDIRECT_LIMIT_EXCEEDED, url, detail)
            raise AcquisitionError(AcquisitionErrorKind.SUBPROCESS_FAILED, url, detail)

        try:
            body, status, final_url = parse_tool_output(stdout or b"")
        except ValueError as e:
            raise AcquisitionError(
                AcquisitionErrorKind.MALFORMED_SUBPROCESS_OUTPUT, url, str(e)
            ) from e

        return FetchResult(body=body, final_url=final_url, status=status)

    async def _kill(self, process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()
        self.logger.log_action("subprocess_killed", "completed", pid=process.pid)
