"""PolymarketDataSource over httpx.MockTransport."""

import json

import httpx
import pytest

from pmtracker.errors import DataSourceError, MalformedPayloadError
from pmtracker.ingestion.polymarket.clob import parse_order_book
from pmtracker.ingestion.polymarket.gamma import parse_gamma_market, parse_outcome_prices, parse_token_ids
from pmtracker.ingestion.polymarket.source import PolymarketDataSource
from pmtracker.ingestion.retry import call_with_retry

GAMMA = "https://gamma.test"
CLOB = "https://clob.test"

RAW_MARKET = {
    "id": "512345",
    "question": "Bitcoin Up or Down - May 20, 10AM ET",
    "conditionId": "0xabc",
    "slug": "bitcoin-up-or-down-may-20-10am-et",
    "outcomes": '["Up", "Down"]',
    "outcomePrices": '["0.535", "0.465"]',
    "clobTokenIds": '["7001", "7002"]',
    "startDate": "2024-05-19T14:00:00Z",
    "endDate": "2024-05-20T15:00:00Z",
    "eventStartTime": "2024-05-20T14:00:00Z",
    "active": True,
    "closed": False,
    "lastTradePrice": 0.53,
    "volume24hr": "2500.5",
    "events": [{"seriesSlug": "bitcoin-up-or-down-hourly"}],
}


def make_source(handler, **kwargs) -> PolymarketDataSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PolymarketDataSource(GAMMA, CLOB, retry_delay_sec=0.0, client=client, **kwargs)


def test_parse_gamma_market():
    market = parse_gamma_market(RAW_MARKET)
    assert market.condition_id == "0xabc"
    assert market.event_start_time.isoformat() == "2024-05-20T14:00:00+00:00"
    assert market.end_date.hour == 15
    assert market.series_slug == "bitcoin-up-or-down-hourly"
    assert market.volume_24hr == 2500.5
    assert parse_token_ids(market) == ("7001", "7002")
    assert parse_outcome_prices(market) == (0.535, 0.465)


def test_event_start_falls_back_to_start_date():
    raw = dict(RAW_MARKET)
    del raw["eventStartTime"]
    assert parse_gamma_market(raw).event_start_time.day == 19


def test_parse_outcome_prices_rejects_non_numbers():
    market = parse_gamma_market({**RAW_MARKET, "outcomePrices": '["up", "down"]'})
    with pytest.raises(MalformedPayloadError):
        parse_outcome_prices(market)


def test_parse_order_book_sorts_best_first():
    summary = parse_order_book(
        {
            "bids": [{"price": "0.40", "size": "10"}, {"price": "0.42", "size": "5"}],
            "asks": [{"price": "0.47", "size": "3"}, {"price": "0.45", "size": "8"}],
        },
        "7001",
    )
    assert summary.asset_id == "7001"
    assert summary.best_bid == 0.42
    assert summary.best_ask == 0.45
    assert summary.spread == pytest.approx(0.03)


@pytest.mark.asyncio
async def test_market_by_slug():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/markets/slug/bitcoin-up-or-down-may-20-10am-et"
        return httpx.Response(200, json=RAW_MARKET)

    async with make_source(handler) as source:
        market = await source.get_market_by_slug("bitcoin-up-or-down-may-20-10am-et")
    assert market.slug == "bitcoin-up-or-down-may-20-10am-et"


@pytest.mark.asyncio
async def test_not_listed_returns_none_without_retry():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(404, json={"error": "not found"})

    async with make_source(handler) as source:
        assert await source.get_market_by_slug("nope") is None
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"mid": "0.505"})

    async with make_source(handler) as source:
        assert await source.get_midpoint("7001") == 0.505
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retry_exhaustion_raises_data_source_error():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("refused", request=request)

    async with make_source(handler, max_retries=2) as source:
        with pytest.raises(DataSourceError):
            await source.get_order_book("7001")
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_invalid_json_is_retried():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    async with make_source(handler) as source:
        with pytest.raises(DataSourceError):
            await source.get_midpoint("7001")


@pytest.mark.asyncio
async def test_prices_post_body_and_missing_tokens():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"7001": {"BUY": "0.52"}, "7002": {}})

    async with make_source(handler) as source:
        prices = await source.get_prices(["7001", "7002"])

    assert seen["method"] == "POST"
    assert seen["body"] == [{"token_id": "7001", "side": "BUY"}, {"token_id": "7002", "side": "BUY"}]
    assert prices == {"7001": 0.52}


@pytest.mark.asyncio
async def test_order_book_and_empty_midpoint():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/book":
            assert request.url.params["token_id"] == "7001"
            return httpx.Response(200, json={"asset_id": "7001", "bids": [], "asks": [{"price": "0.6", "size": "1"}]})
        return httpx.Response(200, json={"mid": ""})

    async with make_source(handler) as source:
        summary = await source.get_order_book("7001")
        midpoint = await source.get_midpoint("7001")

    assert summary.best_bid is None
    assert summary.best_ask == 0.6
    assert summary.spread is None
    assert midpoint is None


@pytest.mark.asyncio
async def test_price_history_and_series_search():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/prices-history":
            assert request.url.params["fidelity"] == "15"
            return httpx.Response(200, json={"history": [{"t": 1716213600, "p": 0.5}, {"t": 1716214500, "p": 0.55}]})
        assert request.url.params["series_slug"] == "bitcoin-up-or-down-hourly"
        return httpx.Response(200, json=[RAW_MARKET])

    async with make_source(handler) as source:
        history = await source.get_price_history("7001", fidelity=15)
        found = await source.search_markets("bitcoin-up-or-down-hourly")

    assert [(p.t, p.p) for p in history] == [(1716213600, 0.5), (1716214500, 0.55)]
    assert [m.slug for m in found] == ["bitcoin-up-or-down-may-20-10am-et"]


@pytest.mark.asyncio
async def test_call_with_retry_sleeps_between_attempts():
    sleeps = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    async def always_fails():
        raise httpx.ReadTimeout("slow")

    with pytest.raises(DataSourceError):
        await call_with_retry(always_fails, "ping", max_retries=3, delay_sec=1.5, sleep=fake_sleep)
    assert sleeps == [1.5, 1.5]


@pytest.mark.parametrize(
    "raw",
    [
        {**RAW_MARKET, "question": ["not", "text"]},
        {**RAW_MARKET, "slug": 5},
        "bitcoin-up-or-down",
        None,
    ],
)
def test_parse_gamma_market_rejects_malformed(raw):
    with pytest.raises(MalformedPayloadError):
        parse_gamma_market(raw)


def test_numeric_event_start_is_ignored():
    market = parse_gamma_market({**RAW_MARKET, "eventStartTime": 1716213600})
    assert market.event_start_time.day == 19


@pytest.mark.asyncio
async def test_malformed_record_raises_without_retry():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=[42])

    async with make_source(handler) as source:
        with pytest.raises(MalformedPayloadError):
            await source.get_market_by_slug("bitcoin-up-or-down-may-20-10am-et")
    assert len(requests) == 1
