"""Error kinds raised by the ledger, position engine and ingestion pipeline.

Every error carries a stable ``code`` so callers can return a structured
payload without matching on message text.
"""
from __future__ import annotations

from typing import Any, Dict


class GuildError(RuntimeError):
    """Base class for all operation-level failures."""

    code = "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class Unauthenticated(GuildError):
    code = "unauthenticated"

    def __init__(self, message: str = "not authenticated") -> None:
        super().__init__(message)


class InvalidAmount(GuildError):
    code = "invalid_amount"

    def __init__(self, amount: float) -> None:
        super().__init__(f"amount must be positive, got {amount}")
        self.amount = amount


class InvalidOdds(GuildError):
    code = "invalid_odds"

    def __init__(self, odds: Any) -> None:
        super().__init__(f"odds must be in (0, 1], got {odds}")
        self.odds = odds


class InsufficientFunds(GuildError):
    code = "insufficient_funds"

    def __init__(self, account_id: str, amount: float, balance: float) -> None:
        super().__init__(
            f"insufficient bankroll account={account_id} amount={amount:.2f} balance={balance:.2f}"
        )
        self.account_id = account_id
        self.amount = amount
        self.balance = balance


class NotFound(GuildError):
    code = "not_found"

    def __init__(self, kind: str, ident: Any) -> None:
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident


class AlreadyResolved(GuildError):
    code = "already_resolved"

    def __init__(self, position_id: str, status: str) -> None:
        super().__init__(f"position {position_id} already closed (status={status})")
        self.position_id = position_id
        self.status = status


class DuplicateSignal(GuildError):
    """Raised when a signal with the same external id already exists for a master.

    Ingestion treats this as "already handled"; it never reaches a user.
    """

    code = "duplicate_signal"

    def __init__(self, master_id: str, external_id: str) -> None:
        super().__init__(f"signal already recorded master={master_id} external_id={external_id}")
        self.master_id = master_id
        self.external_id = external_id


class UpstreamUnavailable(GuildError):
    code = "upstream_unavailable"

    def __init__(self, url: str, reason: str, status: int = 0) -> None:
        detail = f"status={status} " if status else ""
        super().__init__(f"upstream fetch failed {detail}url={url} error={reason}")
        self.url = url
        self.reason = reason
        self.status = int(status)
