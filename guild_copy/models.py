"""Domain records for masters, signals, positions and accounts.

These are plain dataclasses; the SQLAlchemy tables in ``store`` map onto
them at the persistence boundary so engines never touch ORM rows.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .progression import level_for
from .utils import as_float, as_int


# ──────────────────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────────────────

class TradeSide(str, Enum):
    """Side of a raw trade as reported by the Data API."""
    BUY = "BUY"
    SELL = "SELL"


class Side(str, Enum):
    """Which outcome a signal or position backs."""
    YES = "YES"
    NO = "NO"


class Status(str, Enum):
    """Lifecycle of a signal or position.

    OPEN is the only non-terminal state; WON and LOST are final.
    """
    OPEN = "OPEN"
    WON = "WON"
    LOST = "LOST"


class Source(str, Enum):
    COPY = "COPY"
    OWN = "OWN"


class Category(str, Enum):
    POLITICS = "politics"
    CRYPTO = "crypto"
    SPORTS = "sports"
    SCIENCE = "science"
    CULTURE = "culture"
    SOCIAL = "social"


# ──────────────────────────────────────────────────────────────
# Upstream feed
# ──────────────────────────────────────────────────────────────

@dataclass(slots=True, frozen=True)
class RawTrade:
    """One row of ``GET /trades?user=<wallet>``."""
    wallet: str
    side: TradeSide
    title: str
    slug: str                # market slug, falls back to condition id
    outcome_index: int
    size: float
    price: float
    timestamp: int           # unix seconds
    tx_hash: str

    @property
    def value(self) -> float:
        """Notional of the trade in collateral units."""
        return self.size * self.price

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> Optional["RawTrade"]:
        """Parse one Data API row; ``None`` if a required field is missing."""
        if not isinstance(row, dict):
            return None
        side_raw = str(row.get("side") or "").strip().upper()
        try:
            side = TradeSide(side_raw)
        except ValueError:
            return None
        tx_hash = str(row.get("transactionHash") or "").strip()
        size = as_float(row.get("size"))
        price = as_float(row.get("price"))
        outcome_index = as_int(row.get("outcomeIndex"))
        timestamp = as_int(row.get("timestamp"))
        if not tx_hash or size is None or price is None or outcome_index is None or timestamp is None:
            return None
        if timestamp > 10_000_000_000:
            timestamp = timestamp // 1000
        return cls(
            wallet=str(row.get("proxyWallet") or "").strip().lower(),
            side=side,
            title=str(row.get("title") or "").strip(),
            slug=str(row.get("slug") or row.get("conditionId") or "").strip(),
            outcome_index=outcome_index,
            size=size,
            price=price,
            timestamp=timestamp,
            tx_hash=tx_hash,
        )

    @property
    def entry_date(self) -> dt.datetime:
        return dt.datetime.fromtimestamp(self.timestamp, tz=dt.timezone.utc)


# ──────────────────────────────────────────────────────────────
# Persisted records
# ──────────────────────────────────────────────────────────────

@dataclass(slots=True)
class Master:
    """A tracked trader. Only masters with a wallet are ingested."""
    id: str
    username: str
    display_name: str
    wallet: Optional[str] = None
    primary_markets: tuple[str, ...] = ()


@dataclass(slots=True)
class Bet:
    """A copyable signal attributed to a master."""
    id: str
    master_id: str
    market_question: str
    market_category: Category
    side: Side
    entry_odds: float
    entry_amount: float
    entry_date: dt.datetime
    status: Status = Status.OPEN
    current_odds: Optional[float] = None
    rationale: Optional[str] = None
    external_id: Optional[str] = None    # upstream tx hash, dedup key
    market_url: Optional[str] = None

    @property
    def copy_odds(self) -> float:
        """Odds a copy is opened at: the latest mark, else the master's entry."""
        return self.current_odds if self.current_odds is not None else self.entry_odds


@dataclass(slots=True)
class Position:
    """A user's stake mirroring a signal (or a standalone bet)."""
    id: str
    user_id: str
    market_question: str
    side: Side
    entry_odds: float
    entry_amount: float
    entry_date: dt.datetime
    source: Source = Source.COPY
    status: Status = Status.OPEN
    bet_id: Optional[str] = None
    master_id: Optional[str] = None
    current_odds: Optional[float] = None
    return_amount: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.status is Status.OPEN

    @property
    def current_value(self) -> Optional[float]:
        """Mark-to-market payout of an open position, if odds are known."""
        if not self.is_open or not self.current_odds:
            return None
        return self.entry_amount / self.current_odds

    @property
    def unrealized_pnl(self) -> Optional[float]:
        value = self.current_value
        return None if value is None else value - self.entry_amount

    @property
    def realized_pnl(self) -> Optional[float]:
        if self.is_open or self.return_amount is None:
            return None
        return self.return_amount - self.entry_amount

    @property
    def pnl(self) -> Optional[float]:
        return self.unrealized_pnl if self.is_open else self.realized_pnl


@dataclass(slots=True)
class Account:
    """Ledger state of one user."""
    user_id: str
    bankroll: float
    xp: int = 0
    first_follow_awarded: bool = False

    @property
    def level(self) -> int:
        return level_for(self.xp).level


@dataclass(slots=True)
class PortfolioSummary:
    """Aggregate view over one user's positions."""
    user_id: str
    bankroll: float
    xp: int
    open_positions: int = 0
    committed: float = 0.0
    unrealized_pnl: float = 0.0
    realized_pnl: float = 0.0
    wins: int = 0
    losses: int = 0

    @property
    def win_rate(self) -> Optional[float]:
        settled = self.wins + self.losses
        if settled == 0:
            return None
        return self.wins / settled
