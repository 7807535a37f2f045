import asyncio
from types import SimpleNamespace

import pytest
from curl_cffi import CurlError

from fashion_scraper.adapters.emulating_client import EmulatingClient, classify_curl_error
from fashion_scraper.errors import AcquisitionError, AcquisitionErrorKind


class FakeSession:
    """Stands in for curl_cffi's AsyncSession: serves scripted responses by URL."""

    def __init__(self, routes, delay=0.0):
        self.routes = routes
        self.delay = delay
        self.requests = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True
        return False

    async def get(self, url, headers=None, timeout=None, allow_redirects=True):
        self.requests.append({"url": url, "headers": headers, "allow_redirects": allow_redirects})
        if self.delay:
            await asyncio.sleep(self.delay)
        route = self.routes[url]
        if isinstance(route, Exception):
            raise route
        status, headers_out, body = route
        return SimpleNamespace(status_code=status, headers=headers_out, content=body)


def client_for(session, max_redirects=5):
    return EmulatingClient(max_redirects=max_redirects, session_factory=lambda: session)


async def test_returns_body_status_and_final_url():
    session = FakeSession({"https://shop.example/p/1": (200, {}, b"<html>ok</html>")})
    result = await client_for(session).fetch("https://shop.example/p/1", timeout=5)

    assert result.body == b"<html>ok</html>"
    assert result.status == 200
    assert result.final_url == "https://shop.example/p/1"
    assert result.redirects == []
    assert session.closed
    assert session.requests[0]["allow_redirects"] is False
    assert "Accept" in session.requests[0]["headers"]


async def test_follows_three_hop_redirect_chain():
    session = FakeSession({
        "https://sho.rt/x": (301, {"location": "https://shop.example/go"}, b""),
        "https://shop.example/go": (302, {"location": "//shop.example/en/p"}, b""),
        "https://shop.example/en/p": (307, {"location": "/en/products/bomber"}, b""),
        "https://shop.example/en/products/bomber": (200, {}, b"<html>bomber</html>"),
    })
    result = await client_for(session).fetch("https://sho.rt/x", timeout=5)

    assert result.final_url == "https://shop.example/en/products/bomber"
    assert result.body == b"<html>bomber</html>"
    assert len(result.redirects) == 3


async def test_redirect_without_location_is_final_response():
    session = FakeSession({"https://shop.example/p": (302, {}, b"moved")})
    result = await client_for(session).fetch("https://shop.example/p", timeout=5)
    assert result.status == 302
    assert result.final_url == "https://shop.example/p"


async def test_redirect_cap_is_a_hard_failure():
    session = FakeSession({
        "https://a.example/0": (302, {"location": "/1"}, b""),
        "https://a.example/1": (302, {"location": "/2"}, b""),
        "https://a.example/2": (302, {"location": "/3"}, b""),
    })
    with pytest.raises(AcquisitionError) as exc_info:
        await client_for(session, max_redirects=2).fetch("https://a.example/0", timeout=5)
    assert exc_info.value.kind == AcquisitionErrorKind.REDIRECT_LIMIT_EXCEEDED
    assert session.closed


async def test_redirect_loop_fails_fast():
    session = FakeSession({
        "https://a.example/a": (302, {"location": "/b"}, b""),
        "https://a.example/b": (302, {"location": "/a"}, b""),
    })
    with pytest.raises(AcquisitionError) as exc_info:
        await client_for(session).fetch("https://a.example/a", timeout=5)
    assert exc_info.value.kind == AcquisitionErrorKind.REDIRECT_LOOP


async def test_slow_response_raises_typed_timeout():
    session = FakeSession({"https://slow.example/": (200, {}, b"late")}, delay=5)
    with pytest.raises(AcquisitionError) as exc_info:
        await client_for(session).fetch("https://slow.example/", timeout=0.05)
    assert exc_info.value.kind == AcquisitionErrorKind.TIMEOUT
    assert session.closed


@pytest.mark.parametrize("code,kind", [
    (28, AcquisitionErrorKind.TIMEOUT),
    (35, AcquisitionErrorKind.HANDSHAKE_FAILED),
    (60, AcquisitionErrorKind.HANDSHAKE_FAILED),
    (7, AcquisitionErrorKind.CONNECTION_FAILED),
    (6, AcquisitionErrorKind.CONNECTION_FAILED),
])
async def test_curl_errors_are_classified(code, kind):
    session = FakeSession({"https://shop.example/": CurlError("curl failed", code)})
    with pytest.raises(AcquisitionError) as exc_info:
        await client_for(session).fetch("https://shop.example/", timeout=5)
    assert exc_info.value.kind == kind
    assert session.closed


def test_classify_error_without_code():
    assert classify_curl_error(RuntimeError("boom")) == AcquisitionErrorKind.CONNECTION_FAILED


async def test_cancellation_closes_session():
    session = FakeSession({"https://slow.example/": (200, {}, b"late")}, delay=5)
    task = asyncio.create_task(client_for(session).fetch("https://slow.example/", timeout=10))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert session.closed


def test_proxy_variant_keeps_its_own_identity():
    client = EmulatingClient(strategy_id="emulating_proxy", proxy="http://proxy.example:8080")
    assert client.strategy_id == "emulating_proxy"
    assert client.proxy == "http://proxy.example:8080"
