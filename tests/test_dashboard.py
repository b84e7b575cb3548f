"""Tests for the dashboard API."""

import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from v4v_analytics import __version__
from v4v_analytics.attribution import GENERAL_SLUG
from v4v_analytics.cache import TitlesCache
from v4v_analytics.config import V4VConfig
from v4v_analytics.dashboard import create_app
from v4v_analytics.exceptions import WalletError
from v4v_analytics.titles import TitleSource
from v4v_analytics.wallets import WalletBase

FEED = "<rss><channel><item><title>Post One</title><link>https://site.com/p1</link></item></channel></rss>"


class StaticWallet(WalletBase):
    def __init__(self, transactions):
        self.transactions = transactions
        self.closed = False

    async def list_transactions(self, type="incoming", limit=10, offset=0):
        return {"transactions": self.transactions[offset:offset + limit]}

    async def close(self):
        self.closed = True


class BrokenWallet(WalletBase):
    def __init__(self):
        self.closed = False

    async def list_transactions(self, type="incoming", limit=10, offset=0):
        raise WalletError("bad auth", code="UNAUTHORIZED")

    async def close(self):
        self.closed = True


class SlowWallet(StaticWallet):
    """Counts how many list calls overlap."""

    def __init__(self, transactions):
        super().__init__(transactions)
        self.active = 0
        self.max_active = 0
        self.calls = 0

    async def list_transactions(self, type="incoming", limit=10, offset=0):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0.05)
            return await super().list_transactions(type, limit, offset)
        finally:
            self.active -= 1


async def fixed_price():
    return 50_000.0


def make_app(tmp_path, wallet, **kwargs):
    config = V4VConfig(site_url="site.com", cache_dir=tmp_path, batch_delay=0)
    titles = TitleSource(
        "https://site.com/feed.xml",
        TitlesCache(tmp_path / "titles.json"),
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text=FEED)),
    )
    return create_app(
        config,
        wallet_factory=lambda cfg: wallet,
        price_fetcher=fixed_price,
        title_source=titles,
        **kwargs,
    )


def make_client(tmp_path, wallet, **kwargs) -> TestClient:
    return TestClient(make_app(tmp_path, wallet, **kwargs))


class TestDashboard:
    def test_health(self, tmp_path):
        response = make_client(tmp_path, StaticWallet([])).get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__}

    def test_api_data(self, tmp_path):
        wallet = StaticWallet(
            [
                {"payment_hash": "a", "amount": 200_000, "description": "site.com/p1", "settled_at": 1_700_000_000},
                {"payment_hash": "b", "amount": 100_000, "description": "site.com", "settled_at": 1_690_000_000},
                {"payment_hash": "c", "amount": 999_000, "description": "other.com/x", "settled_at": 1_680_000_000},
            ]
        )
        response = make_client(tmp_path, wallet).get("/api/data")
        assert response.status_code == 200
        data = response.json()

        assert data["summary"]["total_sats"] == 300
        assert data["summary"]["total_payments"] == 2
        assert data["btc_price"] == 50_000.0
        assert [e["slug"] for e in data["by_essay"]] == ["p1", GENERAL_SLUG]
        assert data["by_month"][0] == {"month": "2023-11", "sats": 200, "count": 1}
        assert data["transactions"][0]["essay"] == "p1"
        assert data["essay_titles"] == {"p1": "Post One"}
        assert wallet.closed

    def test_wallet_error_is_500(self, tmp_path):
        wallet = BrokenWallet()
        response = make_client(tmp_path, wallet).get("/api/data")
        assert response.status_code == 500
        assert "UNAUTHORIZED" in response.json()["error"]
        assert wallet.closed

    @pytest.mark.asyncio
    async def test_concurrent_requests_sync_one_at_a_time(self, tmp_path):
        wallet = SlowWallet(
            [{"payment_hash": "a", "amount": 21_000, "description": "site.com/p1", "settled_at": 1_700_000_000}]
        )
        transport = httpx.ASGITransport(app=make_app(tmp_path, wallet))
        async with httpx.AsyncClient(transport=transport, base_url="http://dashboard") as client:
            responses = await asyncio.gather(*(client.get("/api/data") for _ in range(3)))

        assert [r.status_code for r in responses] == [200, 200, 200]
        assert all(r.json()["summary"]["total_sats"] == 21 for r in responses)
        assert wallet.calls >= 3
        assert wallet.max_active == 1

    def test_mock_data(self, tmp_path):
        mock = tmp_path / "mock-data.json"
        mock.write_text(json.dumps({"summary": {"total_sats": 42}}))
        response = make_client(tmp_path, BrokenWallet(), mock_path=mock).get("/api/data")
        assert response.status_code == 200
        assert response.json() == {"summary": {"total_sats": 42}}

    def test_missing_mock_is_500(self, tmp_path):
        response = make_client(tmp_path, BrokenWallet(), mock_path=tmp_path / "nope.json").get(
            "/api/data"
        )
        assert response.status_code == 500
        assert "error" in response.json()

    def test_static_files(self, tmp_path):
        static = tmp_path / "static"
        static.mkdir()
        (static / "index.html").write_text("<h1>V4V</h1>")
        client = make_client(tmp_path, StaticWallet([]), static_dir=static)
        assert "V4V" in client.get("/").text
        assert client.get("/health").status_code == 200
