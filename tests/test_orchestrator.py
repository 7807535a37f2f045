import asyncio
import math
import time
from types import SimpleNamespace

import pytest

from fashion_scraper.adapters.emulating_client import EmulatingClient
from fashion_scraper.config import Config
from fashion_scraper.errors import AcquisitionErrorKind, InvalidInputError
from fashion_scraper.layers.extraction import ExtractionEngine
from fashion_scraper.layers import orchestrator as orchestrator_module
from fashion_scraper.layers.orchestrator import (
    Orchestrator,
    OrchestratorState,
    build_strategies,
    scrape_url,
)
from fashion_scraper.models.evidence import OrchestrationOutcome

URL = "https://shop.example/p/bomber"


def attempts_by_strategy(result):
    return {a["strategy"]: a for a in result.attempts}


async def test_scenario_a_primary_page_is_enough(page, fake_strategy):
    primary = fake_strategy("emulating", body=page())
    fallback = fake_strategy("delegating", body=page(name="Other"), delay=5)

    orchestrator = Orchestrator([primary, fallback], strategy_timeout=10)
    result = await orchestrator.run(URL, timeout_seconds=10)

    assert result.outcome == OrchestrationOutcome.SUCCESS
    record = result.record.to_dict()
    assert record["product_name"] == "Leather-Effect Bomber Jacket"
    assert record["price"] == {"amount": 250, "currency": "USD"}
    assert record["garment_type"] == "upper"
    assert record["availability"] == "in_stock"
    assert record["image_urls"] == [
        "https://cdn.example.com/p/bomber-front.jpg",
        "https://cdn.example.com/p/bomber-back.jpg",
    ]
    assert set(result.field_sources.values()) == {"emulating"}
    assert result.source_url == URL
    assert result.missing_fields == []
    assert orchestrator.state == OrchestratorState.DONE


async def test_scenario_b_primary_times_out_fallback_partial(page, fake_strategy):
    primary = fake_strategy("emulating", body=page(), delay=5)
    fallback = fake_strategy(
        "delegating",
        body=page(
            name="Leather-Effect Bomber Jacket",
            brand=None,
            price=None,
            currency=None,
            images=["https://cdn.example.com/p/bomber-front.jpg"],
            category=None,
            availability=None,
        ),
    )

    result = await Orchestrator([primary, fallback], strategy_timeout=0.1).run(URL, timeout_seconds=5)

    assert result.outcome == OrchestrationOutcome.PARTIAL_SUCCESS
    record = result.record.to_dict()
    assert record["product_name"] == "Leather-Effect Bomber Jacket"
    assert record["price"] is None
    assert record["image_urls"] == ["https://cdn.example.com/p/bomber-front.jpg"]
    assert "price" in result.missing_fields

    attempts = attempts_by_strategy(result)
    assert attempts["emulating"]["status"] == "timed_out"
    assert attempts["emulating"]["error_kind"] == "timeout"
    assert attempts["delegating"]["status"] == "succeeded"


async def test_scenario_c_all_strategies_fail(fake_strategy):
    primary = fake_strategy("emulating", error=AcquisitionErrorKind.CONNECTION_FAILED)
    fallback = fake_strategy("delegating", error=AcquisitionErrorKind.CONNECTION_FAILED)

    result = await Orchestrator([primary, fallback], strategy_timeout=5).run(URL, timeout_seconds=5)

    assert result.outcome == OrchestrationOutcome.FAILURE
    assert result.record is None
    assert result.source_url is None
    assert result.field_sources == {}
    assert not result.ok
    assert [a["status"] for a in result.attempts] == ["failed", "failed"]
    assert {a["error_kind"] for a in result.attempts} == {"connection_failed"}


class RedirectingSession:
    def __init__(self, routes):
        self.routes = routes

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def get(self, url, headers=None, timeout=None, allow_redirects=True):
        status, headers_out, body = self.routes[url]
        return SimpleNamespace(status_code=status, headers=headers_out, content=body)


async def test_scenario_d_short_link_resolves_before_extraction(page, fake_strategy):
    canonical = "https://shop.example/en/products/leather-effect-bomber-jacket"
    session = RedirectingSession({
        "https://sho.rt/b": (301, {"location": "https://shop.example/r/b"}, b""),
        "https://shop.example/r/b": (302, {"location": "/en/p/123"}, b""),
        "https://shop.example/en/p/123": (308, {"location": canonical}, b""),
        canonical: (200, {}, page()),
    })
    primary = EmulatingClient(max_redirects=5, session_factory=lambda: session)
    fallback = fake_strategy("delegating", error=AcquisitionErrorKind.SUBPROCESS_UNAVAILABLE)

    result = await Orchestrator([primary, fallback], strategy_timeout=5).run(
        "https://sho.rt/b", timeout_seconds=5
    )

    assert result.outcome == OrchestrationOutcome.SUCCESS
    assert result.url == "https://sho.rt/b"
    assert result.source_url == canonical
    assert attempts_by_strategy(result)["emulating"]["final_url"] == canonical


async def test_early_stop_cancels_and_ignores_remaining_strategies(page, fake_strategy):
    primary = fake_strategy("emulating", body=page())
    fallback = fake_strategy("delegating", body=page(name="Should Never Appear"), delay=0.5)

    result = await Orchestrator([primary, fallback], strategy_timeout=5).run(URL, timeout_seconds=5)

    assert fallback.cancelled
    assert result.record.product_name == "Leather-Effect Bomber Jacket"
    delegating = attempts_by_strategy(result)["delegating"]
    assert delegating["status"] == "cancelled"
    assert delegating["candidates"] == 0

    # nothing keeps running after the call returns
    await asyncio.sleep(0.6)
    assert result.record.product_name == "Leather-Effect Bomber Jacket"


async def test_overall_deadline_cancels_everything(fake_strategy):
    slow_a = fake_strategy("emulating", body=b"<html></html>", delay=5)
    slow_b = fake_strategy("delegating", body=b"<html></html>", delay=5)

    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await Orchestrator([slow_a, slow_b], strategy_timeout=30).run(URL, timeout_seconds=0.2)

    assert loop.time() - started < 2
    assert result.outcome == OrchestrationOutcome.FAILURE
    assert slow_a.cancelled and slow_b.cancelled
    assert {a["status"] for a in result.attempts} == {"timed_out"}


async def test_deadline_keeps_partial_evidence(page, fake_strategy):
    primary = fake_strategy("emulating", body=page(price=None, currency=None))
    slow = fake_strategy("delegating", body=page(), delay=5)

    result = await Orchestrator([primary, slow], strategy_timeout=30).run(URL, timeout_seconds=0.3)

    assert result.outcome == OrchestrationOutcome.PARTIAL_SUCCESS
    assert result.record.product_name == "Leather-Effect Bomber Jacket"
    assert result.record.price is None
    assert attempts_by_strategy(result)["delegating"]["status"] == "timed_out"


async def test_per_attempt_timeout_is_bounded_by_overall_budget(page, fake_strategy):
    primary = fake_strategy("emulating", body=page())
    await Orchestrator([primary], strategy_timeout=15).run(URL, timeout_seconds=2)
    assert 0 < primary.timeouts[0] <= 2


async def test_higher_priority_strategy_wins_confidence_tie(page, fake_strategy):
    # fallback arrives first, without a price, so the race goes on
    fallback = fake_strategy("delegating", body=page(name="Fallback Name", price=None, currency=None))
    primary = fake_strategy("emulating", body=page(name="Primary Name"), delay=0.05)

    result = await Orchestrator([primary, fallback], strategy_timeout=5).run(URL, timeout_seconds=5)

    assert result.record.product_name == "Primary Name"
    assert result.field_sources["product_name"] == "emulating"


async def test_non_success_status_is_not_extracted(page, fake_strategy):
    blocked = fake_strategy("emulating", body=page(name="Access Denied Page"), status=403)
    fallback = fake_strategy("delegating", body=page())

    result = await Orchestrator([blocked, fallback], strategy_timeout=5).run(URL, timeout_seconds=5)

    assert result.record.product_name == "Leather-Effect Bomber Jacket"
    emulating = attempts_by_strategy(result)["emulating"]
    assert emulating["status"] == "failed"
    assert emulating["error_kind"] == "http_status"
    assert emulating["http_status"] == 403
    assert set(result.field_sources.values()) == {"delegating"}


async def test_crashing_strategy_does_not_abort_the_scrape(page, fake_strategy):
    class Crashing(fake_strategy):
        async def fetch(self, url, timeout):
            raise RuntimeError("unexpected")

    result = await Orchestrator(
        [Crashing("emulating"), fake_strategy("delegating", body=page())], strategy_timeout=5
    ).run(URL, timeout_seconds=5)

    assert result.outcome == OrchestrationOutcome.SUCCESS
    crashed = attempts_by_strategy(result)["emulating"]
    assert crashed["status"] == "failed"
    assert crashed["error_kind"] == "connection_failed"


async def test_price_is_never_half_resolved(page, fake_strategy):
    result = await Orchestrator(
        [fake_strategy("emulating", body=page(currency=None))], strategy_timeout=5
    ).run(URL, timeout_seconds=5)
    assert result.record.to_dict()["price"] is None


async def test_enum_fields_always_hold_a_variant(fake_strategy):
    body = b"<html><body><h1>Gift Card</h1></body></html>"
    result = await Orchestrator([fake_strategy("emulating", body=body)], strategy_timeout=5).run(
        URL, timeout_seconds=5
    )
    record = result.record.to_dict()
    assert record["garment_type"] == "unsupported"
    assert record["availability"] == "unknown"
    assert record["brand"] is None
    assert set(record) == {
        "product_name", "brand", "price", "image_urls", "garment_type", "availability",
    }


@pytest.mark.parametrize("url,timeout", [
    (URL, 0),
    (URL, -1),
    (URL, math.nan),
    (URL, math.inf),
    (URL, True),
    ("", 5),
    ("ftp://shop.example/p", 5),
    ("shop.example/p", 5),
    ("https://", 5),
])
async def test_invalid_input_fails_before_any_strategy_runs(url, timeout, fake_strategy):
    strategy = fake_strategy("emulating", body=b"<html></html>")
    with pytest.raises(InvalidInputError):
        await Orchestrator([strategy]).run(url, timeout_seconds=timeout)
    assert strategy.calls == 0


async def test_scrape_url_uses_configured_strategies(monkeypatch, page, fake_strategy):
    built = []

    def fake_build(cfg):
        strategies = [fake_strategy("emulating", body=page())]
        built.append(strategies)
        return strategies

    monkeypatch.setattr(orchestrator_module, "build_strategies", fake_build)
    result = await scrape_url(URL, timeout_seconds=5)

    assert result.outcome == OrchestrationOutcome.SUCCESS
    assert built[0][0].calls == 1


async def test_scrape_url_rejects_bad_timeout_before_building_strategies(monkeypatch):
    def fail_build(cfg):
        raise AssertionError("strategies must not be built for invalid input")

    monkeypatch.setattr(orchestrator_module, "build_strategies", fail_build)
    with pytest.raises(InvalidInputError):
        await scrape_url(URL, timeout_seconds=0)


def test_build_strategies_follows_configuration():
    class Bare(Config):
        PROXY_URL = None
        BROWSER_WORKER_URL = None

    class Full(Config):
        PROXY_URL = "http://proxy.example:8080"
        BROWSER_WORKER_URL = "https://worker.example/render"

    assert [s.strategy_id for s in build_strategies(Bare)] == ["emulating", "delegating"]
    assert [s.strategy_id for s in build_strategies(Full)] == [
        "emulating", "emulating_proxy", "browser_worker", "delegating",
    ]


def test_orchestrator_requires_a_strategy():
    with pytest.raises(ValueError):
        Orchestrator([])


async def test_product_images_with_decorative_words_still_complete_the_record(page, fake_strategy):
    body = page(
        name="Breton Striped Cotton Shirt",
        category="Shirts",
        images=[
            "https://cdn.example.com/p/breton-striped-shirt-front.jpg",
            "https://cdn.example.com/p/iconic-breton-shirt-back.jpg",
        ],
    )
    result = await Orchestrator([fake_strategy("emulating", body=body)], strategy_timeout=5).run(
        URL, timeout_seconds=5
    )

    assert result.outcome == OrchestrationOutcome.SUCCESS
    assert result.record.image_urls == [
        "https://cdn.example.com/p/breton-striped-shirt-front.jpg",
        "https://cdn.example.com/p/iconic-breton-shirt-back.jpg",
    ]


def test_build_strategies_notes_a_missing_fingerprint_binary(monkeypatch, tmp_path):
    decisions = []
    monkeypatch.setattr(
        orchestrator_module.LayerLogger,
        "log_decision",
        lambda self, decision, reason, url=None, **extra: decisions.append(reason),
    )

    class Missing(Config):
        PROXY_URL = None
        BROWSER_WORKER_URL = None
        FINGERPRINT_BINARY_PATH = str(tmp_path / "absent")

    binary = tmp_path / "curl_chrome"
    binary.write_text("#!/bin/sh\n")
    binary.chmod(0o755)

    class Present(Missing):
        FINGERPRINT_BINARY_PATH = str(binary)

    assert [s.strategy_id for s in build_strategies(Missing)] == ["emulating", "delegating"]
    assert decisions == ["fingerprint_binary_missing"]

    decisions.clear()
    build_strategies(Present)
    assert decisions == []


async def test_slow_extraction_does_not_outlive_the_deadline(page, fake_strategy):
    class SlowEngine(ExtractionEngine):
        def extract(self, body, base_url=None):
            time.sleep(0.8)
            return super().extract(body, base_url)

    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await Orchestrator(
        [fake_strategy("emulating", body=page())], engine=SlowEngine(), strategy_timeout=5
    ).run(URL, timeout_seconds=0.2)

    assert loop.time() - started < 0.6
    assert result.outcome == OrchestrationOutcome.FAILURE
    emulating = attempts_by_strategy(result)["emulating"]
    assert emulating["status"] == "succeeded"
    assert emulating["candidates"] == 0
    assert "deadline" in emulating["detail"]
