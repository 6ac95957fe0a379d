"""Tests for classification, progression, trade parsing and config."""
from __future__ import annotations

import datetime as dt
import os
import tempfile
from unittest.mock import patch

import pytest

from guild_copy.classifier import classify
from guild_copy.config import Config, parse_args
from guild_copy.env import parse_env_file
from guild_copy.errors import InsufficientFunds, NotFound, UpstreamUnavailable
from guild_copy.ingestion import derive_side, skip_reason
from guild_copy.models import Category, RawTrade, Side, TradeSide
from guild_copy.progression import LEVELS, Level, level_for, next_level, progress
from guild_copy.utils import as_float, as_int


def _trade(**overrides) -> RawTrade:
    base = dict(
        wallet="0xabc",
        side=TradeSide.BUY,
        title="Will Bitcoin hit $100k?",
        slug="btc-100k",
        outcome_index=0,
        size=500.0,
        price=0.40,
        timestamp=1_700_000_000,
        tx_hash="0xhash1",
    )
    base.update(overrides)
    return RawTrade(**base)


# ──────────────────────────────────────────────────────────────
# Classifier
# ──────────────────────────────────────────────────────────────


class TestClassifier:
    def test_examples(self) -> None:
        assert classify("2024 Presidential Election winner") is Category.POLITICS
        assert classify("Bitcoin to $100k?") is Category.CRYPTO
        assert classify("Super Bowl MVP") is Category.SPORTS
        assert classify("Random viral TikTok trend") is Category.CULTURE
        assert classify("Will it rain tomorrow") is Category.SOCIAL

    def test_case_insensitive(self) -> None:
        assert classify("ETHEREUM ETF APPROVED") is Category.CRYPTO
        assert classify("spacex launch") is Category.SCIENCE

    def test_first_rule_wins(self) -> None:
        """Politics is checked before crypto, even with more crypto keywords."""
        assert classify("Will Trump launch a bitcoin token?") is Category.POLITICS
        assert classify("Bitcoin price after the NBA finals") is Category.CRYPTO

    def test_short_keyword_needs_word_start(self) -> None:
        assert classify("Something happens in Spain") is Category.SOCIAL
        assert classify("Will AI pass the bar exam?") is Category.SCIENCE

    def test_long_keyword_matches_inside_words(self) -> None:
        assert classify("Reelection odds") is Category.POLITICS
        assert classify("Cryptocurrency market cap") is Category.CRYPTO

    def test_multi_word_keyword(self) -> None:
        assert classify("Taylor Swift album of the year") is Category.CULTURE
        assert classify("Who wins the World Series") is Category.SPORTS

    def test_empty_title(self) -> None:
        assert classify("") is Category.SOCIAL


# ──────────────────────────────────────────────────────────────
# Progression
# ──────────────────────────────────────────────────────────────


class TestProgression:
    def test_mid_level(self) -> None:
        p = progress(450)
        assert p.level.level == 2
        assert p.level.threshold == 100
        assert p.next_level is not None and p.next_level.threshold == 500
        assert p.progress_percent == 87
        assert p.xp_to_next == 50

    def test_exact_threshold(self) -> None:
        p = progress(500)
        assert p.level.title == "Student"
        assert p.progress_percent == 0
        assert p.xp_to_next == 1000

    def test_zero_xp(self) -> None:
        p = progress(0)
        assert p.level.level == 1
        assert p.xp_to_next == 100

    def test_top_level(self) -> None:
        p = progress(99_999)
        assert p.level.level == 4
        assert p.next_level is None
        assert p.progress_percent == 100
        assert p.xp_to_next == 0

    def test_next_level_of_last_is_none(self) -> None:
        assert next_level(LEVELS[-1]) is None
        assert next_level(LEVELS[0]) == LEVELS[1]

    def test_custom_ladder(self) -> None:
        ladder = (Level(1, "a", 0), Level(2, "b", 10))
        assert level_for(9, ladder).level == 1
        assert level_for(10, ladder).level == 2

    def test_negative_xp_clamped(self) -> None:
        p = progress(-20)
        assert p.level.level == 1
        assert p.progress_percent == 0


# ──────────────────────────────────────────────────────────────
# Raw trades
# ──────────────────────────────────────────────────────────────


class TestRawTrade:
    def test_from_api(self) -> None:
        t = RawTrade.from_api({
            "proxyWallet": "0xABC",
            "side": "buy",
            "title": "Super Bowl MVP",
            "slug": "sb-mvp",
            "conditionId": "0xcond",
            "outcomeIndex": 1,
            "size": "250",
            "price": 0.6,
            "timestamp": 1_700_000_000,
            "transactionHash": "0xtx",
        })
        assert t is not None
        assert t.wallet == "0xabc"
        assert t.side is TradeSide.BUY
        assert t.outcome_index == 1
        assert t.value == pytest.approx(150.0)
        assert t.entry_date == dt.datetime(2023, 11, 14, 22, 13, 20, tzinfo=dt.timezone.utc)

    def test_from_api_slug_falls_back_to_condition(self) -> None:
        t = RawTrade.from_api({
            "side": "SELL", "conditionId": "0xcond", "outcomeIndex": 0,
            "size": 1, "price": 0.5, "timestamp": 1, "transactionHash": "0x1",
        })
        assert t is not None and t.slug == "0xcond"

    def test_millisecond_timestamp(self) -> None:
        t = RawTrade.from_api({
            "side": "BUY", "outcomeIndex": 0, "size": 1, "price": 0.5,
            "timestamp": 1_700_000_000_000, "transactionHash": "0x1",
        })
        assert t is not None and t.timestamp == 1_700_000_000

    @pytest.mark.parametrize("row", [
        {},
        {"side": "HOLD", "outcomeIndex": 0, "size": 1, "price": 1, "timestamp": 1, "transactionHash": "x"},
        {"side": "BUY", "outcomeIndex": 0, "size": 1, "price": 1, "timestamp": 1},
        {"side": "BUY", "size": 1, "price": 1, "timestamp": 1, "transactionHash": "x"},
        {"side": "BUY", "outcomeIndex": 0, "size": "n/a", "price": 1, "timestamp": 1, "transactionHash": "x"},
    ])
    def test_malformed_rows(self, row: dict) -> None:
        assert RawTrade.from_api(row) is None

    def test_non_dict_row(self) -> None:
        assert RawTrade.from_api(["not", "a", "row"]) is None  # type: ignore[arg-type]

    def test_non_finite_size_rejected(self) -> None:
        row = {"side": "BUY", "outcomeIndex": 0, "size": "nan", "price": 0.5,
               "timestamp": 1, "transactionHash": "0x1"}
        assert RawTrade.from_api(row) is None


class TestCoercion:
    @pytest.mark.parametrize("raw, expected", [
        (" 2.5 ", 2.5), (3, 3.0), ("inf", None), ("", None), (None, None), (True, None), ("abc", None),
    ])
    def test_as_float(self, raw: object, expected: object) -> None:
        assert as_float(raw) == expected

    def test_as_int_truncates(self) -> None:
        assert as_int("1700000000") == 1_700_000_000
        assert as_int(1.9) == 1
        assert as_int(False) is None


class TestSideDerivation:
    def test_buy_outcome_zero_is_yes(self) -> None:
        assert derive_side(_trade(outcome_index=0)) is Side.YES

    def test_buy_outcome_one_is_no(self) -> None:
        assert derive_side(_trade(outcome_index=1)) is Side.NO

    def test_sell_flips_parity(self) -> None:
        assert derive_side(_trade(side=TradeSide.SELL, outcome_index=0)) is Side.NO
        assert derive_side(_trade(side=TradeSide.SELL, outcome_index=1)) is Side.YES


class TestSkipReason:
    def test_small_trade_skipped(self) -> None:
        assert skip_reason(_trade(size=10, price=5), set(), 100.0) == "below_min_value"

    def test_sell_skipped_regardless_of_value(self) -> None:
        big_sell = _trade(side=TradeSide.SELL, size=100_000, price=0.9)
        assert skip_reason(big_sell, set(), 100.0) == "not_buy"

    def test_seen_hash_skipped_first(self) -> None:
        assert skip_reason(_trade(tx_hash="0xseen"), {"0xseen"}, 100.0) == "seen"

    def test_threshold_is_inclusive(self) -> None:
        assert skip_reason(_trade(size=200, price=0.5), set(), 100.0) is None


# ──────────────────────────────────────────────────────────────
# Errors
# ──────────────────────────────────────────────────────────────


class TestErrors:
    def test_structured_payload(self) -> None:
        err = InsufficientFunds("u1", 100.0, 50.0)
        payload = err.to_dict()
        assert payload["error"] == "insufficient_funds"
        assert "balance=50.00" in payload["message"]

    def test_codes_are_distinct(self) -> None:
        assert NotFound("bet", "b1").code != UpstreamUnavailable("u", "x").code

    def test_upstream_status_in_message(self) -> None:
        err = UpstreamUnavailable("https://x/trades", "boom", status=503)
        assert err.status == 503
        assert "status=503" in str(err)


# ──────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────


class TestConfig:
    def test_defaults(self) -> None:
        cfg = Config()
        assert cfg.trade_limit == 30
        assert cfg.min_signal_value == 100.0
        assert cfg.starting_bankroll == 10000.0
        assert cfg.data_api_base == "https://data-api.polymarket.com"

    def test_parse_args_cli(self) -> None:
        cfg = parse_args([
            "--env-file", "/nonexistent/.env",
            "--trade-limit", "10", "--min-signal-value", "50",
            "--database-url", "sqlite://", "--once", "--log-level", "debug",
        ])
        assert cfg.trade_limit == 10
        assert cfg.min_signal_value == 50.0
        assert cfg.database_url == "sqlite://"
        assert cfg.once is True
        assert cfg.log_level == "DEBUG"

    @patch.dict(os.environ, {"GUILD_TRADE_LIMIT": "12", "GUILD_DATA_API": "http://localhost:9/"}, clear=False)
    def test_env_overrides(self) -> None:
        cfg = parse_args(["--env-file", "/nonexistent/.env"])
        assert cfg.trade_limit == 12
        assert cfg.data_api_base == "http://localhost:9"

    @patch.dict(os.environ, {"GUILD_TRADE_LIMIT": "12"}, clear=False)
    def test_cli_beats_env(self) -> None:
        cfg = parse_args(["--env-file", "/nonexistent/.env", "--trade-limit", "5"])
        assert cfg.trade_limit == 5

    def test_trade_limit_clamped(self) -> None:
        cfg = parse_args(["--env-file", "/nonexistent/.env", "--trade-limit", "0"])
        assert cfg.trade_limit == 1

    @patch.dict(os.environ, {"GUILD_STARTING_BANKROLL": "750"}, clear=False)
    def test_starting_bankroll(self) -> None:
        assert parse_args(["--env-file", "/nonexistent/.env"]).starting_bankroll == 750.0
        cfg = parse_args(["--env-file", "/nonexistent/.env", "--starting-bankroll", "-5"])
        assert cfg.starting_bankroll == 0.0

    def test_env_file(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, ".env")
            with open(path, "w", encoding="utf-8") as f:
                f.write("# comment\nexport GUILD_MIN_SIGNAL_VALUE='250'\nBROKEN LINE\n\nEMPTY=\n")
            assert parse_env_file(path) == {"GUILD_MIN_SIGNAL_VALUE": "250", "EMPTY": ""}
            with patch.dict(os.environ, {}, clear=False):
                os.environ.pop("GUILD_MIN_SIGNAL_VALUE", None)
                cfg = parse_args(["--env-file", path])
                assert cfg.min_signal_value == 250.0
