"""Background persistence of reconstructed snapshots."""

from __future__ import annotations

import asyncio
import itertools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from cryptopilot.core.logging import with_rid
from cryptopilot.repositories import SnapshotRepository, SnapshotRow

logger = logging.getLogger(__name__)


class SnapshotGuard:
    """Per-user write lock plus a version that ledger reconciliation bumps.

    A history replay reserves the current version before reading anything and
    its snapshot write only lands if the version is unchanged, so values
    computed while a reconcile was rewriting prices are never cached. State
    for a user is dropped once nobody holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._versions: dict[str, int] = {}
        self._users: dict[str, int] = {}
        self._counter = itertools.count(1)

    @property
    def tracked_users(self) -> set[str]:
        return set(self._users) | set(self._locks) | set(self._versions)

    def _enter(self, user_id: str) -> None:
        self._users[user_id] = self._users.get(user_id, 0) + 1

    def _leave(self, user_id: str) -> None:
        remaining = self._users.get(user_id, 0) - 1
        if remaining > 0:
            self._users[user_id] = remaining
            return
        self._users.pop(user_id, None)
        self._locks.pop(user_id, None)
        self._versions.pop(user_id, None)

    def reserve(self, user_id: str) -> int:
        """Register a pending write; returns the version it is computed under."""

        self._enter(user_id)
        return self._versions.get(user_id, 0)

    def release(self, user_id: str) -> None:
        self._leave(user_id)

    def invalidate(self, user_id: str) -> None:
        # Versions come from one counter, so a dropped entry is never reused.
        self._versions[user_id] = next(self._counter)

    def is_current(self, user_id: str, version: int) -> bool:
        return self._versions.get(user_id, 0) == version

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        self._enter(user_id)
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        try:
            async with lock:
                yield
        finally:
            self._leave(user_id)


@dataclass
class SnapshotWriteJob:
    """Upsert a batch of per-day snapshots computed by a history replay.

    The job owns the reservation taken on ``guard`` and releases it when done.
    """

    snapshots: SnapshotRepository
    guard: SnapshotGuard
    user_id: str
    version: int
    rows: list[SnapshotRow] = field(default_factory=list)
    rid: str = "-"
    name: str = "snapshot-write"

    async def run(self) -> int:
        log = with_rid(logger, self.rid)
        try:
            async with self.guard.hold(self.user_id):
                if not self.guard.is_current(self.user_id, self.version):
                    log.info(
                        "Dropped %d snapshots for %s computed before a ledger change",
                        len(self.rows),
                        self.user_id,
                    )
                    return 0
                written = await self.snapshots.upsert_many(self.user_id, self.rows)
        finally:
            self.guard.release(self.user_id)
        log.info("Persisted %d snapshots for %s", written, self.user_id)
        return written


__all__ = ["SnapshotGuard", "SnapshotWriteJob"]
