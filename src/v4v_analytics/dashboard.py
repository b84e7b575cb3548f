"""Web dashboard: a JSON data endpoint plus the static front end."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from v4v_analytics import __version__
from v4v_analytics.aggregation import aggregate_by_essay, aggregate_by_period, simplify_transaction
from v4v_analytics.cache import TitlesCache
from v4v_analytics.config import V4VConfig
from v4v_analytics.data import PriceFetcher, fetch_v4v_data
from v4v_analytics.price import fetch_btc_price
from v4v_analytics.titles import TitleSource
from v4v_analytics.units import MONTHLY
from v4v_analytics.wallets import WalletBase, create_wallet

logger = logging.getLogger(__name__)


def create_app(
    config: V4VConfig,
    *,
    wallet_factory: Callable[[V4VConfig], WalletBase] = create_wallet,
    price_fetcher: PriceFetcher = fetch_btc_price,
    title_source: TitleSource | None = None,
    mock_path: str | Path | None = None,
    static_dir: str | Path | None = None,
) -> FastAPI:
    """Build the dashboard app.

    Args:
        config: Runtime settings.
        wallet_factory: Builds a fresh wallet per request.
        price_fetcher: BTC/USD price source.
        title_source: Essay title lookup (defaults to the site's RSS feed).
        mock_path: Serve this JSON file from /api/data instead of live data.
        static_dir: Directory of front-end files mounted at "/".
    """
    app = FastAPI(title="V4V Dashboard", version=__version__)
    titles = title_source or TitleSource(
        config.feed_url, TitlesCache(config.titles_cache_path, config.titles_cache_ttl)
    )
    # Serializes wallet syncs so the cache files have a single writer.
    fetch_lock = asyncio.Lock()

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    @app.get("/api/data")
    async def api_data():
        if mock_path:
            try:
                return JSONResponse(json.loads(Path(mock_path).read_text(encoding="utf-8")))
            except (OSError, ValueError) as e:
                logger.error("Could not read mock data %s: %s", mock_path, e)
                return JSONResponse(status_code=500, content={"error": str(e)})

        try:
            async with fetch_lock:
                essay_titles = await titles.fetch_titles()
                data = await fetch_v4v_data(
                    config,
                    wallet=wallet_factory(config),
                    usd=True,
                    price_fetcher=price_fetcher,
                )
        except Exception as e:
            logger.error("Error fetching data: %s", e)
            return JSONResponse(status_code=500, content={"error": str(e)})

        by_essay = aggregate_by_essay(data.transactions, config.site_url, "sats")
        by_month = aggregate_by_period(data.transactions, MONTHLY)
        return {
            "summary": data.summary.to_dict(),
            "by_essay": [
                {
                    "slug": b.slug,
                    "sats": b.sats,
                    "count": b.count,
                    "last_payment": b.last_payment,
                }
                for b in by_essay.values()
            ],
            "by_month": [
                {"month": b.period, "sats": b.sats, "count": b.count} for b in by_month.values()
            ],
            "transactions": [
                simplify_transaction(tx, config.site_url) for tx in data.transactions
            ],
            "btc_price": data.btc_price,
            "essay_titles": essay_titles,
        }

    if static_dir and Path(static_dir).is_dir():
        app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="static")
    elif static_dir:
        logger.warning("Static directory %s not found; serving API only", static_dir)

    return app
