"""Market feed client: pulls a master's recent trades from the Data API.

    GET {data_api}/trades?user=<wallet>&limit=<n>

A non-2xx status, a transport error or a timeout is a recoverable,
per-master failure: it is logged and the caller gets no rows. No retry
here; the next scheduled cycle is the retry.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from .config import DATA_API
from .errors import UpstreamUnavailable
from .models import RawTrade

log = logging.getLogger(__name__)

_HEADERS = {"Accept": "application/json", "User-Agent": "guild-copy-ingest/1.0"}


class MarketFeedClient:
    """Stateless fetcher; owns an ``aiohttp`` session only while open.

    Usage:
        async with MarketFeedClient() as feed:
            trades = await feed.fetch_trades(wallet, 30)
    """

    def __init__(self, base_url: str = DATA_API, timeout_s: float = 15.0,
                 session: Optional[aiohttp.ClientSession] = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "MarketFeedClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(headers=_HEADERS, timeout=self._timeout)
            self._owns_session = True
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def fetch_trades(self, wallet: str, limit: int = 30) -> list[RawTrade]:
        """Most recent trades for ``wallet`` in feed order; [] on any failure."""
        try:
            rows = await self._get_trades(wallet, limit)
        except UpstreamUnavailable as exc:
            log.warning("%s", exc)
            return []

        trades: list[RawTrade] = []
        for row in rows:
            trade = RawTrade.from_api(row)
            if trade is None:
                log.debug("skipping malformed trade row for %s: %r", wallet, row)
                continue
            trades.append(trade)
        return trades

    async def _get_trades(self, wallet: str, limit: int) -> list[Any]:
        url = f"{self._base_url}/trades"
        params = {"user": wallet, "limit": str(int(limit))}
        if self._session is None:
            raise RuntimeError("MarketFeedClient used outside 'async with'")
        try:
            async with self._session.get(url, params=params, timeout=self._timeout) as resp:
                if not 200 <= resp.status < 300:
                    body = await resp.text()
                    raise UpstreamUnavailable(url, body[:200], status=resp.status)
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise UpstreamUnavailable(url, repr(exc)) from exc

        if not isinstance(data, list):
            raise UpstreamUnavailable(url, f"expected JSON list, got {type(data).__name__}")
        return data
