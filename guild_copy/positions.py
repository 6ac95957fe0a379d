"""Position lifecycle: copy a signal into a position, settle it once.

State machine::

    copy() ──> OPEN ──resolve(won=True)──> WON
                    └─resolve(won=False)─> LOST

WON and LOST are final. Each transition runs in one transaction together
with its ledger side effects, and the settlement UPDATE is conditioned on
``status = 'OPEN'`` so a position pays out at most once.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .errors import AlreadyResolved, InvalidAmount, InvalidOdds, NotFound, Unauthenticated
from .ledger import Ledger, XPEvent
from .models import PortfolioSummary, Position, Source, Status
from .store import PositionRow, Store, new_id, position_from_row
from .utils import utcnow

log = logging.getLogger(__name__)


def _require_user(user_id: Optional[str]) -> str:
    if not user_id or not str(user_id).strip():
        raise Unauthenticated()
    return str(user_id)


def _valid_odds(odds: Optional[float]) -> bool:
    return odds is not None and 0 < odds <= 1


class PositionEngine:
    """Opens and settles positions, calling the ledger for every balance change."""

    def __init__(self, store: Store, ledger: Ledger) -> None:
        self._store = store
        self._ledger = ledger

    # ── Transitions ──

    def copy(self, user_id: Optional[str], bet_id: str, amount: float) -> Position:
        """Stake ``amount`` on a signal. Nothing changes unless every step succeeds."""
        user_id = _require_user(user_id)
        if not amount > 0:
            raise InvalidAmount(amount)

        with self._store.transaction() as s:
            bet = self._store.get_bet(bet_id, s)
            odds = bet.copy_odds
            if not _valid_odds(odds):
                raise InvalidOdds(odds)

            self._ledger.debit(user_id, amount, s)
            row = PositionRow(
                id=new_id(),
                user_id=user_id,
                bet_id=bet.id,
                master_id=bet.master_id,
                market_question=bet.market_question,
                side=bet.side.value,
                entry_odds=odds,
                entry_amount=float(amount),
                entry_date=utcnow(),
                current_odds=odds,
                status=Status.OPEN.value,
                source=Source.COPY.value,
            )
            s.add(row)
            s.flush()
            self._ledger.award(user_id, XPEvent.COPY_BET, s)
            position = position_from_row(row)

        log.info("copied bet %s for %s amount=%.2f odds=%.4f", bet_id, user_id, amount, odds)
        return position

    def resolve(self, user_id: Optional[str], position_id: str, won: bool) -> Position:
        """Settle an OPEN position as WON (pays entry/odds) or LOST (pays 0)."""
        user_id = _require_user(user_id)

        with self._store.transaction() as s:
            current = self._load(s, position_id)
            if current is None or current.user_id != user_id:
                raise NotFound("position", position_id)

            return_amount = current.entry_amount / current.entry_odds if won else 0.0
            status = Status.WON if won else Status.LOST
            result = s.execute(
                update(PositionRow)
                .where(
                    PositionRow.id == position_id,
                    PositionRow.user_id == user_id,
                    PositionRow.status == Status.OPEN.value,
                )
                .values(status=status.value, return_amount=return_amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                latest = self._load(s, position_id)
                raise AlreadyResolved(position_id, latest.status if latest else current.status)

            self._ledger.credit(user_id, return_amount, s)
            self._ledger.award(user_id, XPEvent.BET_WON if won else XPEvent.BET_LOST, s)
            settled = position_from_row(self._load(s, position_id))

        log.info("resolved position %s %s return=%.2f", position_id, status.value, return_amount)
        return settled

    def update_odds(self, position_id: str, odds: float) -> Position:
        """External mark of an open position's current odds."""
        if not _valid_odds(odds):
            raise InvalidOdds(odds)
        with self._store.transaction() as s:
            result = s.execute(
                update(PositionRow)
                .where(PositionRow.id == position_id, PositionRow.status == Status.OPEN.value)
                .values(current_odds=odds)
                .execution_options(synchronize_session=False)
            )
            row = self._load(s, position_id)
            if row is None:
                raise NotFound("position", position_id)
            if result.rowcount == 0:
                raise AlreadyResolved(position_id, row.status)
            return position_from_row(row)

    # ── Queries ──

    def get(self, user_id: Optional[str], position_id: str) -> Position:
        user_id = _require_user(user_id)
        with self._store.transaction() as s:
            row = self._load(s, position_id)
            if row is None or row.user_id != user_id:
                raise NotFound("position", position_id)
            return position_from_row(row)

    def positions(self, user_id: Optional[str], status: Optional[Status] = None) -> list[Position]:
        """A user's positions, newest first."""
        user_id = _require_user(user_id)
        stmt = select(PositionRow).where(PositionRow.user_id == user_id)
        if status is not None:
            stmt = stmt.where(PositionRow.status == Status(status).value)
        stmt = stmt.order_by(PositionRow.entry_date.desc())
        with self._store.transaction() as s:
            return [position_from_row(r) for r in s.scalars(stmt).all()]

    def portfolio(self, user_id: Optional[str]) -> PortfolioSummary:
        user_id = _require_user(user_id)
        account = self._ledger.get_account(user_id)
        summary = PortfolioSummary(user_id=user_id, bankroll=account.bankroll, xp=account.xp)
        for pos in self.positions(user_id):
            if pos.is_open:
                summary.open_positions += 1
                summary.committed += pos.entry_amount
                summary.unrealized_pnl += pos.unrealized_pnl or 0.0
            else:
                summary.realized_pnl += pos.realized_pnl or 0.0
                if pos.status is Status.WON:
                    summary.wins += 1
                else:
                    summary.losses += 1
        return summary

    @staticmethod
    def _load(s: Session, position_id: str) -> Optional[PositionRow]:
        return s.scalar(
            select(PositionRow)
            .where(PositionRow.id == position_id)
            .execution_options(populate_existing=True)
        )
