"""Follow edges between users and masters.

The only ledger effect is the one-time first-follow bonus, guarded by an
account flag so unfollow/refollow cycles never pay it twice.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError

from .errors import Unauthenticated
from .ledger import Ledger
from .store import FollowRow, Store

log = logging.getLogger(__name__)


class FollowService:
    def __init__(self, store: Store, ledger: Ledger) -> None:
        self._store = store
        self._ledger = ledger

    def follow(self, user_id: Optional[str], master_id: str) -> bool:
        """Create the edge. False if it already existed."""
        if not user_id:
            raise Unauthenticated()
        try:
            with self._store.transaction() as s:
                self._store.get_master(master_id, s)
                self._ledger.get_account(user_id, s)
                exists = s.scalar(
                    select(FollowRow.id).where(FollowRow.user_id == user_id, FollowRow.master_id == master_id)
                )
                if exists is not None:
                    return False
                s.add(FollowRow(user_id=user_id, master_id=master_id))
                s.flush()
                if self._ledger.award_first_follow(user_id, s):
                    log.info("first follow bonus for %s", user_id)
        except IntegrityError:
            # Raced with a concurrent follow of the same master.
            log.debug("follow %s -> %s already recorded", user_id, master_id)
            return False
        log.info("%s followed master %s", user_id, master_id)
        return True

    def unfollow(self, user_id: Optional[str], master_id: str) -> bool:
        if not user_id:
            raise Unauthenticated()
        with self._store.transaction() as s:
            result = s.execute(
                delete(FollowRow).where(FollowRow.user_id == user_id, FollowRow.master_id == master_id)
            )
            return result.rowcount > 0

    def followed_master_ids(self, user_id: Optional[str]) -> list[str]:
        if not user_id:
            raise Unauthenticated()
        with self._store.transaction() as s:
            return list(s.scalars(
                select(FollowRow.master_id).where(FollowRow.user_id == user_id).order_by(FollowRow.created_at)
            ).all())

    def follower_count(self, master_id: str) -> int:
        with self._store.transaction() as s:
            self._store.get_master(master_id, s)
            return int(s.scalar(
                select(func.count()).select_from(FollowRow).where(FollowRow.master_id == master_id)
            ) or 0)
