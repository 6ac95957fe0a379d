"""Ingestion pipeline: turns masters' raw trades into copyable signals.

Per master with a wallet, each cycle:
    1. fetch the most recent ``trade_limit`` trades
    2. load the external ids already recorded for that master
    3. in feed order, skip seen tx hashes, non-BUY trades and trades
       below ``min_signal_value``; insert the rest as OPEN signals

Failures are isolated per master. A duplicate insert (same tx hash raced
in by another run, or repeated within one feed page) counts as handled.
Re-running on an unchanged feed inserts nothing.
Store calls run in worker threads so the event loop stays free for the
feed and the runner's stop signal.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from .classifier import classify
from .config import Config
from .errors import DuplicateSignal
from .feed_client import MarketFeedClient
from .models import Bet, Master, RawTrade, Side, Status, TradeSide
from .store import Store, new_id

log = logging.getLogger(__name__)


class TradeFeed(Protocol):
    async def fetch_trades(self, wallet: str, limit: int = 30) -> list[RawTrade]: ...


def derive_side(trade: RawTrade) -> Side:
    """YES when buy-ness and outcome-0-ness agree.

    Assumes outcome index 0 is the YES-coded outcome of the market.
    """
    is_buy = trade.side is TradeSide.BUY
    return Side.YES if is_buy == (trade.outcome_index == 0) else Side.NO


def skip_reason(trade: RawTrade, seen: set[str], min_value: float) -> Optional[str]:
    """Why a trade is not a signal, or None if it should be inserted."""
    if trade.tx_hash in seen:
        return "seen"
    if trade.side is not TradeSide.BUY:
        return "not_buy"
    if trade.value < min_value:
        return "below_min_value"
    return None


def signal_from_trade(master: Master, trade: RawTrade) -> Bet:
    return Bet(
        id=new_id(),
        master_id=master.id,
        market_question=trade.title,
        market_category=classify(trade.title),
        side=derive_side(trade),
        entry_odds=trade.price,
        entry_amount=trade.value,
        entry_date=trade.entry_date,
        status=Status.OPEN,
        rationale=None,
        external_id=trade.tx_hash,
    )


@dataclass(slots=True)
class MasterReport:
    master_id: str
    fetched: int = 0
    inserted: int = 0
    skipped: dict[str, int] = field(default_factory=dict)

    def skip(self, reason: str) -> None:
        self.skipped[reason] = self.skipped.get(reason, 0) + 1


class IngestionPipeline:
    """One ``run()`` is one ingestion cycle over every eligible master."""

    def __init__(self, store: Store, feed: TradeFeed, cfg: Optional[Config] = None) -> None:
        self._store = store
        self._feed = feed
        self._cfg = cfg or Config()
        self.reports: list[MasterReport] = []

    async def run(self) -> int:
        """Ingest all masters; returns the number of newly inserted signals."""
        masters = await asyncio.to_thread(self._store.masters_with_wallets)
        log.info("ingestion cycle: %d masters with wallets", len(masters))
        self.reports = []
        total = 0
        for master in masters:
            try:
                report = await self.ingest_master(master)
            except Exception:
                log.exception("ingestion failed for master %s", master.username)
                continue
            self.reports.append(report)
            total += report.inserted
        log.info("ingestion cycle done: %d new signals", total)
        return total

    async def ingest_master(self, master: Master) -> MasterReport:
        report = MasterReport(master_id=master.id)
        if not master.wallet:
            return report

        trades = await self._feed.fetch_trades(master.wallet, self._cfg.trade_limit)
        report.fetched = len(trades)
        log.info("%s (%s): %d recent trades", master.display_name, master.wallet, len(trades))
        if not trades:
            return report

        seen = await asyncio.to_thread(self._store.existing_external_ids, master.id)
        for trade in trades:
            reason = skip_reason(trade, seen, self._cfg.min_signal_value)
            if reason is not None:
                report.skip(reason)
                continue
            if await asyncio.to_thread(self._insert, master, trade):
                report.inserted += 1
            seen.add(trade.tx_hash)
        return report

    def _insert(self, master: Master, trade: RawTrade) -> bool:
        try:
            self._store.insert_bet(signal_from_trade(master, trade))
        except DuplicateSignal:
            log.debug("signal %s already recorded for %s", trade.tx_hash, master.username)
            return False
        except Exception:
            log.exception("failed to insert signal %s for %s", trade.tx_hash, master.username)
            return False
        log.info("  + %s: %r (%.0f)", master.username, trade.title, trade.value)
        return True


async def ingest_once(store: Store, cfg: Config) -> int:
    """Open a feed client, run one cycle, close the client."""
    async with MarketFeedClient(cfg.data_api_base, cfg.http_timeout_s) as feed:
        return await IngestionPipeline(store, feed, cfg).run()
