"""SQLAlchemy persistence for masters, signals, positions, accounts and follows.

The schema enforces the invariants the engines rely on:
  - one signal per (master, external id)   -> uq_bets_master_external
  - one follow edge per (user, master)      -> uq_follows_user_master

Engines get a ``Session`` from :meth:`Store.transaction` so a whole
user-facing operation commits or rolls back as one unit.
"""
from __future__ import annotations

import datetime as dt
import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import DuplicateSignal, InvalidOdds, NotFound
from .models import Account, Bet, Category, Master, Position, Side, Source, Status
from .utils import utcnow

log = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


def _aware(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    # SQLite hands back naive datetimes; everything stored is UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


# ──────────────────────────────────────────────────────────────
# Schema
# ──────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    """Base class for all tables."""

    pass


class MasterRow(Base):
    __tablename__ = "masters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    wallet: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    primary_markets: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class BetRow(Base):
    __tablename__ = "bets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    master_id: Mapped[str] = mapped_column(ForeignKey("masters.id"), nullable=False)
    market_question: Mapped[str] = mapped_column(Text, nullable=False)
    market_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    market_category: Mapped[str] = mapped_column(String(16), nullable=False)
    side: Mapped[str] = mapped_column(String(3), nullable=False)
    entry_odds: Mapped[float] = mapped_column(Float, nullable=False)
    entry_amount: Mapped[float] = mapped_column(Float, nullable=False)
    entry_date: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    current_odds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(4), nullable=False, default=Status.OPEN.value)
    rationale: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("master_id", "external_id", name="uq_bets_master_external"),
        Index("idx_bets_master_entry", "master_id", "entry_date"),
    )


class AccountRow(Base):
    __tablename__ = "accounts"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    bankroll: Mapped[float] = mapped_column(Float, nullable=False)
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_follow_awarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class PositionRow(Base):
    __tablename__ = "positions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("accounts.user_id"), nullable=False)
    bet_id: Mapped[Optional[str]] = mapped_column(ForeignKey("bets.id"), nullable=True)
    master_id: Mapped[Optional[str]] = mapped_column(ForeignKey("masters.id"), nullable=True)
    market_question: Mapped[str] = mapped_column(Text, nullable=False)
    side: Mapped[str] = mapped_column(String(3), nullable=False)
    entry_odds: Mapped[float] = mapped_column(Float, nullable=False)
    entry_amount: Mapped[float] = mapped_column(Float, nullable=False)
    entry_date: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    current_odds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(4), nullable=False, default=Status.OPEN.value)
    return_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    source: Mapped[str] = mapped_column(String(4), nullable=False, default=Source.COPY.value)

    __table_args__ = (
        Index("idx_positions_user_status", "user_id", "status"),
    )


class FollowRow(Base):
    __tablename__ = "follows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("accounts.user_id"), nullable=False)
    master_id: Mapped[str] = mapped_column(ForeignKey("masters.id"), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "master_id", name="uq_follows_user_master"),
        Index("idx_follows_master", "master_id"),
    )


# ──────────────────────────────────────────────────────────────
# Row -> record
# ──────────────────────────────────────────────────────────────

def master_from_row(row: MasterRow) -> Master:
    return Master(
        id=row.id,
        username=row.username,
        display_name=row.display_name,
        wallet=row.wallet,
        primary_markets=tuple(row.primary_markets or ()),
    )


def bet_from_row(row: BetRow) -> Bet:
    return Bet(
        id=row.id,
        master_id=row.master_id,
        market_question=row.market_question,
        market_category=Category(row.market_category),
        side=Side(row.side),
        entry_odds=row.entry_odds,
        entry_amount=row.entry_amount,
        entry_date=_aware(row.entry_date),
        status=Status(row.status),
        current_odds=row.current_odds,
        rationale=row.rationale,
        external_id=row.external_id,
        market_url=row.market_url,
    )


def position_from_row(row: PositionRow) -> Position:
    return Position(
        id=row.id,
        user_id=row.user_id,
        market_question=row.market_question,
        side=Side(row.side),
        entry_odds=row.entry_odds,
        entry_amount=row.entry_amount,
        entry_date=_aware(row.entry_date),
        source=Source(row.source),
        status=Status(row.status),
        bet_id=row.bet_id,
        master_id=row.master_id,
        current_odds=row.current_odds,
        return_amount=row.return_amount,
    )


def account_from_row(row: AccountRow) -> Account:
    return Account(
        user_id=row.user_id,
        bankroll=row.bankroll,
        xp=row.xp,
        first_follow_awarded=row.first_follow_awarded,
    )


# ──────────────────────────────────────────────────────────────
# Store
# ──────────────────────────────────────────────────────────────

class Store:
    """Engine + session factory, plus the master/signal queries.

    Usage:
        store = Store("sqlite:///guild.db")
        store.create_all()
        with store.transaction() as session:
            ...
    """

    def __init__(self, url: str = "sqlite://", *, echo: bool = False) -> None:
        kwargs: dict[str, Any] = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise each session sees an empty db.
                kwargs["poolclass"] = StaticPool
        self.url = url
        self.engine = create_engine(url, **kwargs)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _sqlite_foreign_keys)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Session whose work commits on exit and rolls back on any error."""
        with self._sessions.begin() as session:
            yield session

    @contextmanager
    def scope(self, session: Optional[Session] = None) -> Iterator[Session]:
        """Join the caller's transaction, or open one."""
        if session is not None:
            yield session
            return
        with self.transaction() as own:
            yield own

    # ── Masters ──

    def add_master(
        self,
        username: str,
        display_name: str,
        wallet: Optional[str] = None,
        primary_markets: Sequence[str] = (),
        *,
        master_id: Optional[str] = None,
    ) -> Master:
        row = MasterRow(
            id=master_id or new_id(),
            username=username,
            display_name=display_name,
            wallet=wallet.strip().lower() if wallet and wallet.strip() else None,
            primary_markets=list(primary_markets),
        )
        with self.transaction() as session:
            session.add(row)
        return master_from_row(row)

    def get_master(self, master_id: str, session: Optional[Session] = None) -> Master:
        with self.scope(session) as s:
            row = s.get(MasterRow, master_id)
            if row is None:
                raise NotFound("master", master_id)
            return master_from_row(row)

    def masters_with_wallets(self) -> list[Master]:
        """Masters eligible for ingestion."""
        with self.transaction() as session:
            rows = session.scalars(
                select(MasterRow).where(MasterRow.wallet.is_not(None)).order_by(MasterRow.username)
            ).all()
            return [master_from_row(r) for r in rows]

    # ── Signals ──

    def existing_external_ids(self, master_id: str) -> set[str]:
        with self.transaction() as session:
            ids = session.scalars(
                select(BetRow.external_id).where(
                    BetRow.master_id == master_id,
                    BetRow.external_id.is_not(None),
                )
            ).all()
            return set(ids)

    def insert_bet(self, bet: Bet) -> Bet:
        """Persist a signal; a repeated (master, external id) raises DuplicateSignal."""
        row = BetRow(
            id=bet.id or new_id(),
            master_id=bet.master_id,
            market_question=bet.market_question,
            market_url=bet.market_url,
            external_id=bet.external_id,
            market_category=Category(bet.market_category).value,
            side=Side(bet.side).value,
            entry_odds=bet.entry_odds,
            entry_amount=bet.entry_amount,
            entry_date=bet.entry_date,
            current_odds=bet.current_odds,
            status=Status(bet.status).value,
            rationale=bet.rationale,
        )
        try:
            with self.transaction() as session:
                session.add(row)
        except IntegrityError as exc:
            if bet.external_id is not None and self._has_external_id(bet.master_id, bet.external_id):
                raise DuplicateSignal(bet.master_id, bet.external_id) from exc
            raise
        return bet_from_row(row)

    def _has_external_id(self, master_id: str, external_id: str) -> bool:
        with self.transaction() as session:
            found = session.scalar(
                select(BetRow.id).where(
                    BetRow.master_id == master_id,
                    BetRow.external_id == external_id,
                )
            )
            return found is not None

    def get_bet(self, bet_id: str, session: Optional[Session] = None) -> Bet:
        with self.scope(session) as s:
            row = s.get(BetRow, bet_id)
            if row is None:
                raise NotFound("bet", bet_id)
            return bet_from_row(row)

    def master_bets(self, master_id: str, status: Optional[Status] = None, limit: int = 20) -> list[Bet]:
        """Newest signals first."""
        stmt = select(BetRow).where(BetRow.master_id == master_id)
        if status is not None:
            stmt = stmt.where(BetRow.status == Status(status).value)
        stmt = stmt.order_by(BetRow.entry_date.desc()).limit(max(1, int(limit)))
        with self.transaction() as session:
            return [bet_from_row(r) for r in session.scalars(stmt).all()]

    def update_bet_odds(self, bet_id: str, odds: float) -> None:
        """External mark of a signal's current odds."""
        if not 0 < odds <= 1:
            raise InvalidOdds(odds)
        with self.transaction() as session:
            result = session.execute(
                update(BetRow).where(BetRow.id == bet_id).values(current_odds=odds)
            )
            if result.rowcount == 0:
                raise NotFound("bet", bet_id)


def _sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
