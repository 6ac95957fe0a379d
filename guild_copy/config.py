"""Configuration for ingestion and the copy ledger."""
from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from typing import Sequence

from .env import DEFAULT_ENV_FILE, env_float, env_int, env_str, load_env_file


# ──────────────────────────────────────────────────────────────
# Endpoints
# ──────────────────────────────────────────────────────────────

DATA_API = "https://data-api.polymarket.com"


# ──────────────────────────────────────────────────────────────
# Config dataclass
# ──────────────────────────────────────────────────────────────

@dataclass(slots=True)
class Config:
    """Runtime configuration, populated from CLI + env."""

    env_file: str = DEFAULT_ENV_FILE

    # ── Upstream feed ──
    data_api_base: str = DATA_API
    # Most recent trades pulled per master per cycle
    trade_limit: int = 30
    http_timeout_s: float = 15.0

    # ── Signal filter ──
    # Minimum size × price for a trade to become a signal
    min_signal_value: float = 100.0

    # ── Store ──
    database_url: str = "sqlite:///guild.db"

    # ── Ledger ──
    starting_bankroll: float = 10000.0

    # ── Scheduling ──
    poll_interval_s: float = 900.0
    once: bool = False

    # ── Logging ──
    log_level: str = "INFO"


def parse_args(argv: Sequence[str] | None = None) -> Config:
    """Build Config from CLI args + environment variables."""
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--env-file", default=os.environ.get("ENV_FILE", DEFAULT_ENV_FILE))
    pre_args, _ = pre.parse_known_args(argv)
    env_file = str(pre_args.env_file).strip() or DEFAULT_ENV_FILE
    load_env_file(env_file)

    p = argparse.ArgumentParser(description="guild signal ingestion")
    p.add_argument("--env-file", default=env_file)
    p.add_argument("--data-api", default=None, help=f"Data API base (default: {DATA_API})")
    p.add_argument("--database-url", default=None)
    p.add_argument("--trade-limit", type=int, default=None)
    p.add_argument("--min-signal-value", type=float, default=None)
    p.add_argument("--http-timeout", type=float, default=None)
    p.add_argument("--poll-interval", type=float, default=None)
    p.add_argument("--starting-bankroll", type=float, default=None)
    p.add_argument("--once", action="store_true", help="run one ingestion cycle and exit")
    p.add_argument("--log-level", default=None)
    args = p.parse_args(argv)

    cli_env_file = str(args.env_file).strip() or DEFAULT_ENV_FILE
    if cli_env_file != env_file:
        load_env_file(cli_env_file)
        env_file = cli_env_file

    # Env (lowest priority after defaults)
    cfg = Config(
        env_file=env_file,
        data_api_base=env_str("GUILD_DATA_API", DATA_API),
        trade_limit=env_int("GUILD_TRADE_LIMIT", 30),
        http_timeout_s=env_float("GUILD_HTTP_TIMEOUT", 15.0),
        min_signal_value=env_float("GUILD_MIN_SIGNAL_VALUE", 100.0),
        database_url=env_str("GUILD_DATABASE_URL", "sqlite:///guild.db"),
        starting_bankroll=env_float("GUILD_STARTING_BANKROLL", 10000.0),
        poll_interval_s=env_float("GUILD_POLL_INTERVAL", 900.0),
        log_level=env_str("GUILD_LOG_LEVEL", "INFO").upper(),
    )

    # CLI overrides
    if args.data_api is not None:
        cfg.data_api_base = args.data_api
    if args.database_url is not None:
        cfg.database_url = args.database_url
    if args.trade_limit is not None:
        cfg.trade_limit = args.trade_limit
    if args.min_signal_value is not None:
        cfg.min_signal_value = args.min_signal_value
    if args.http_timeout is not None:
        cfg.http_timeout_s = args.http_timeout
    if args.poll_interval is not None:
        cfg.poll_interval_s = args.poll_interval
    if args.starting_bankroll is not None:
        cfg.starting_bankroll = args.starting_bankroll
    if args.log_level is not None:
        cfg.log_level = args.log_level.upper()
    cfg.once = bool(args.once)

    cfg.data_api_base = cfg.data_api_base.rstrip("/")
    cfg.trade_limit = max(1, min(500, cfg.trade_limit))
    cfg.http_timeout_s = max(0.25, cfg.http_timeout_s)
    cfg.poll_interval_s = max(1.0, cfg.poll_interval_s)
    cfg.starting_bankroll = max(0.0, cfg.starting_bankroll)
    return cfg
