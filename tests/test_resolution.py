from datetime import timedelta

import httpx
import pytest
from structlog.testing import capture_logs

from conftest import make_market, make_record, utc
from pmtracker.errors import DataSourceError, MalformedPayloadError
from pmtracker.ingestion.polymarket.source import PolymarketDataSource
from pmtracker.models import Outcome, Snapshot
from pmtracker.tracking.resolution import ResolutionEngine, determine_outcome

START = utc(2024, 5, 20, 14)
AFTER = START + timedelta(hours=1, minutes=10)


def ended_market(repo, slug="btc-10am"):
    market = make_market(slug, START)
    repo.upsert_market(market)
    return market


@pytest.mark.parametrize(
    "prices, expected",
    [
        ('["0.95", "0.05"]', Outcome.UP),
        ('["0.02", "0.98"]', Outcome.DOWN),
        (["1", "0"], Outcome.UP),
        ('["0.5", "0.5"]', None),
        ('["0.9", "0.1"]', None),
    ],
)
def test_determine_outcome(prices, expected):
    record = make_record("btc-10am", START, closed=True, outcome_prices=prices)
    assert determine_outcome(record) is expected


@pytest.mark.asyncio
@pytest.mark.parametrize("prices, expected", [('["0.95", "0.05"]', Outcome.UP), ('["0.05", "0.95"]', Outcome.DOWN)])
async def test_closed_market_is_resolved(repo, config, source, prices, expected):
    market = ended_market(repo)
    source.records[market.slug] = make_record(market.slug, START, closed=True, outcome_prices=prices)

    updated = await ResolutionEngine(source, repo, config).check_resolutions(now=AFTER)

    assert updated == 1
    stored = repo.get_market_by_id(market.id)
    assert stored.outcome is expected
    assert stored.updated_at == AFTER


@pytest.mark.asyncio
async def test_even_prices_leave_market_pending(repo, config, source):
    market = ended_market(repo)
    source.records[market.slug] = make_record(market.slug, START, closed=True, outcome_prices='["0.5", "0.5"]')

    assert await ResolutionEngine(source, repo, config).check_resolutions(now=AFTER) == 0
    assert repo.get_market_by_id(market.id).outcome is None


@pytest.mark.asyncio
async def test_open_market_stays_pending(repo, config, source):
    market = ended_market(repo)
    source.records[market.slug] = make_record(market.slug, START, closed=False, outcome_prices='["0.99", "0.01"]')

    with capture_logs() as logs:
        assert await ResolutionEngine(source, repo, config).check_resolutions(now=AFTER) == 0

    assert repo.get_market_by_id(market.id).outcome is None
    pending = [e for e in logs if e["event"] == "resolution_pending"]
    assert pending[0]["minutes_since_end"] == 10.0


@pytest.mark.asyncio
async def test_unparseable_prices_warn_and_skip(repo, config, source):
    bad = ended_market(repo, "btc-bad")
    good = ended_market(repo, "btc-good")
    source.records[bad.slug] = make_record(bad.slug, START, closed=True, outcome_prices="garbage")
    source.records[good.slug] = make_record(good.slug, START, closed=True, outcome_prices='["0.97", "0.03"]')

    with capture_logs() as logs:
        updated = await ResolutionEngine(source, repo, config).check_resolutions(now=AFTER)

    assert updated == 1
    assert repo.get_market_by_id(bad.id).outcome is None
    assert repo.get_market_by_id(good.id).outcome is Outcome.UP
    warnings = [e for e in logs if e["log_level"] == "warning"]
    assert [e["event"] for e in warnings] == ["resolution_unparseable"]


@pytest.mark.asyncio
async def test_fetch_failure_is_retried_next_run(repo, config, source):
    market = ended_market(repo)
    source.records[market.slug] = DataSourceError("gamma down")
    engine = ResolutionEngine(source, repo, config)

    assert await engine.check_resolutions(now=AFTER) == 0

    source.records[market.slug] = make_record(market.slug, START, closed=True, outcome_prices='["0.01", "0.99"]')
    assert await engine.check_resolutions(now=AFTER) == 1
    assert repo.get_market_by_id(market.id).outcome is Outcome.DOWN


@pytest.mark.asyncio
async def test_resolved_markets_are_not_polled_again(repo, config, source):
    market = ended_market(repo)
    source.records[market.slug] = make_record(market.slug, START, closed=True, outcome_prices='["0.95", "0.05"]')
    engine = ResolutionEngine(source, repo, config)

    assert await engine.check_resolutions(now=AFTER) == 1
    source.records[market.slug] = make_record(market.slug, START, closed=True, outcome_prices='["0.05", "0.95"]')
    source.calls.clear()

    assert await engine.check_resolutions(now=AFTER + timedelta(minutes=5)) == 0
    assert source.calls == []
    assert repo.get_market_by_id(market.id).outcome is Outcome.UP


@pytest.mark.asyncio
async def test_running_market_is_not_checked(repo, config, source):
    ended_market(repo)

    assert await ResolutionEngine(source, repo, config).check_resolutions(now=START + timedelta(minutes=30)) == 0
    assert source.calls == []


@pytest.mark.asyncio
async def test_resolves_market_with_snapshots(repo, config, source):
    market = ended_market(repo)
    for minute in (10, 50):
        repo.insert_snapshot(
            Snapshot(market_id=market.id, fetched_at=START + timedelta(minutes=minute), minute_of_hour=minute)
        )
    source.records[market.slug] = make_record(market.slug, START, closed=True, outcome_prices='["0.96", "0.04"]')

    assert await ResolutionEngine(source, repo, config).check_resolutions(now=AFTER) == 1
    assert repo.get_market_by_id(market.id).outcome is Outcome.UP
    assert len(repo.get_snapshots_by_market(market.id)) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [MalformedPayloadError("bad record"), RuntimeError("unexpected")])
async def test_one_market_error_does_not_stop_the_rest(repo, config, source, error):
    first = make_market("btc-9am", START - timedelta(hours=1))
    second = ended_market(repo, "btc-10am")
    repo.upsert_market(first)
    source.records[first.slug] = error
    source.records[second.slug] = make_record(second.slug, START, closed=True, outcome_prices='["0.03", "0.97"]')

    updated = await ResolutionEngine(source, repo, config).check_resolutions(now=AFTER)

    assert updated == 1
    assert repo.get_market_by_id(first.id).outcome is None
    assert repo.get_market_by_id(second.id).outcome is Outcome.DOWN


@pytest.mark.asyncio
async def test_malformed_venue_payload_is_skipped(repo, config):
    first = make_market("btc-9am", START - timedelta(hours=1))
    second = ended_market(repo, "btc-10am")
    repo.upsert_market(first)
    good = {
        "conditionId": "0xdef",
        "slug": second.slug,
        "closed": True,
        "outcomePrices": '["0.97", "0.03"]',
        "clobTokenIds": '["1", "2"]',
        "eventStartTime": "2024-05-20T14:00:00Z",
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith(first.slug):
            return httpx.Response(200, json={"slug": first.slug, "eventStartTime": 1716213600, "closed": True, "question": 7})
        return httpx.Response(200, json=good)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    async with PolymarketDataSource("https://gamma.test", "https://clob.test", retry_delay_sec=0.0, client=client) as src:
        with capture_logs() as logs:
            updated = await ResolutionEngine(src, repo, config).check_resolutions(now=AFTER)

    assert updated == 1
    assert repo.get_market_by_id(first.id).outcome is None
    assert repo.get_market_by_id(second.id).outcome is Outcome.UP
    assert any(e["event"] == "resolution_unparseable" and e["slug"] == first.slug for e in logs)
