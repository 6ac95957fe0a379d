"""Bankroll and experience ledger. The only code that mutates accounts.

Every balance change is a single conditional UPDATE, so a debit can never
drive a bankroll negative even when two requests race for the same account:

    UPDATE accounts SET bankroll = bankroll - :amount
     WHERE user_id = :id AND bankroll >= :amount

A zero rows-affected result means the account is missing or short of funds.
Methods accept an optional ``session`` so callers can fold several ledger
steps and their own writes into one transaction.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .config import Config
from .errors import InsufficientFunds, InvalidAmount, NotFound
from .models import Account
from .store import AccountRow, Store, account_from_row

log = logging.getLogger(__name__)

DEFAULT_STARTING_BANKROLL = 10000.0


class XPEvent(str, Enum):
    COPY_BET = "copy_bet"
    BET_WON = "bet_won"
    BET_LOST = "bet_lost"
    FIRST_FOLLOW = "first_follow"
    DAILY_LOGIN = "daily_login"


# Single source of truth for award sizes. DAILY_LOGIN has no trigger inside
# this package; a login surface grants it through Ledger.award.
XP_AWARDS: dict[XPEvent, int] = {
    XPEvent.COPY_BET: 10,
    XPEvent.BET_WON: 25,
    XPEvent.BET_LOST: 5,
    XPEvent.FIRST_FOLLOW: 50,
    XPEvent.DAILY_LOGIN: 5,
}


class Ledger:
    """Debit / credit / xp operations scoped to one account each."""

    def __init__(self, store: Store, starting_bankroll: float = DEFAULT_STARTING_BANKROLL) -> None:
        self._store = store
        self.starting_bankroll = float(starting_bankroll)

    @classmethod
    def from_config(cls, store: Store, cfg: Config) -> "Ledger":
        return cls(store, starting_bankroll=cfg.starting_bankroll)

    # ── Accounts ──

    def open_account(self, account_id: str, session: Optional[Session] = None) -> Account:
        """Create the account with the starting bankroll; existing accounts are returned as-is."""
        with self._store.scope(session) as s:
            row = s.get(AccountRow, account_id)
            if row is None:
                row = AccountRow(user_id=account_id, bankroll=self.starting_bankroll, xp=0)
                s.add(row)
                s.flush()
                log.info("opened account %s bankroll=%.2f", account_id, self.starting_bankroll)
            return account_from_row(row)

    def get_account(self, account_id: str, session: Optional[Session] = None) -> Account:
        with self._store.scope(session) as s:
            row = s.scalar(
                select(AccountRow).where(AccountRow.user_id == account_id).execution_options(populate_existing=True)
            )
            if row is None:
                raise NotFound("account", account_id)
            return account_from_row(row)

    # ── Balance ──

    def debit(self, account_id: str, amount: float, session: Optional[Session] = None) -> Account:
        """Take ``amount`` out of the bankroll; rejected before any change if it would go negative."""
        if amount <= 0:
            raise InvalidAmount(amount)
        with self._store.scope(session) as s:
            result = s.execute(
                update(AccountRow)
                .where(AccountRow.user_id == account_id, AccountRow.bankroll >= amount)
                .values(bankroll=AccountRow.bankroll - amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                current = self.get_account(account_id, s)
                raise InsufficientFunds(account_id, amount, current.bankroll)
            account = self.get_account(account_id, s)
        log.debug("debit %s amount=%.2f bankroll=%.2f", account_id, amount, account.bankroll)
        return account

    def credit(self, account_id: str, amount: float, session: Optional[Session] = None) -> Account:
        if amount < 0:
            raise InvalidAmount(amount)
        with self._store.scope(session) as s:
            if amount > 0:
                result = s.execute(
                    update(AccountRow)
                    .where(AccountRow.user_id == account_id)
                    .values(bankroll=AccountRow.bankroll + amount)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise NotFound("account", account_id)
            account = self.get_account(account_id, s)
        log.debug("credit %s amount=%.2f bankroll=%.2f", account_id, amount, account.bankroll)
        return account

    # ── Experience ──

    def award_xp(self, account_id: str, amount: int, session: Optional[Session] = None) -> Account:
        if amount < 0:
            raise InvalidAmount(amount)
        with self._store.scope(session) as s:
            result = s.execute(
                update(AccountRow)
                .where(AccountRow.user_id == account_id)
                .values(xp=AccountRow.xp + int(amount))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFound("account", account_id)
            return self.get_account(account_id, s)

    def award(self, account_id: str, event: XPEvent, session: Optional[Session] = None) -> Account:
        """Award the policy amount for ``event``."""
        event = XPEvent(event)
        amount = XP_AWARDS[event]
        account = self.award_xp(account_id, amount, session)
        log.debug("xp %s +%d (%s) total=%d", account_id, amount, event.value, account.xp)
        return account

    def award_first_follow(self, account_id: str, session: Optional[Session] = None) -> bool:
        """One-time bonus; False if this account already received it."""
        with self._store.scope(session) as s:
            result = s.execute(
                update(AccountRow)
                .where(AccountRow.user_id == account_id, AccountRow.first_follow_awarded.is_(False))
                .values(first_follow_awarded=True)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return False
            self.award(account_id, XPEvent.FIRST_FOLLOW, s)
            return True
