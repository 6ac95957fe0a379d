"""Entry point: runs signal ingestion on a fixed cadence.

    Data API ──/trades──→ MarketFeedClient ──→ IngestionPipeline ──→ Store (bets)

Usage:
    python -m guild_copy --once
    python -m guild_copy --poll-interval 600 --database-url sqlite:///guild.db
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys

from .config import Config, parse_args
from .ingestion import ingest_once
from .store import Store

log = logging.getLogger(__name__)


class IngestionRunner:
    """Runs ingestion cycles until stopped; a failed cycle never stops the loop."""

    def __init__(self, cfg: Config, store: Store | None = None) -> None:
        self.cfg = cfg
        self.store = store or Store(cfg.database_url)
        self.cycles = 0
        self.total_inserted = 0
        self._stop = asyncio.Event()

    def stop(self) -> None:
        self._stop.set()

    async def run(self) -> None:
        self.store.create_all()
        log.info("starting ingestion (db=%s, interval=%.0fs, once=%s)",
                 self.cfg.database_url, self.cfg.poll_interval_s, self.cfg.once)
        while not self._stop.is_set():
            try:
                self.total_inserted += await ingest_once(self.store, self.cfg)
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("ingestion cycle failed")
            self.cycles += 1
            if self.cfg.once:
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.cfg.poll_interval_s)
            except asyncio.TimeoutError:
                pass
        log.info("ingestion stopped after %d cycles, %d signals inserted",
                 self.cycles, self.total_inserted)


def main() -> None:
    cfg = parse_args()

    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    runner = IngestionRunner(cfg)

    # Graceful shutdown on SIGINT/SIGTERM
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.stop)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        loop.run_until_complete(runner.run())
    except KeyboardInterrupt:
        log.info("interrupted")
    finally:
        runner.store.dispose()
        loop.close()


if __name__ == "__main__":
    main()
