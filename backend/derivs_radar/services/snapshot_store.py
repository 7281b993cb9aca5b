from __future__ import annotations

import logging
from typing import Optional

from ..models import InstrumentUniverse, MarketSnapshot


logger = logging.getLogger("drr.store")


class SnapshotStore:
    """Process-wide holder of the latest published snapshot.

    Readers take ``store.snapshot`` once and work on that reference; a refresh
    swaps in a whole new frozen ``MarketSnapshot`` with a single assignment.
    """

    def __init__(self) -> None:
        self.snapshot: Optional[MarketSnapshot] = None
        self.universe: InstrumentUniverse = InstrumentUniverse()
        self.is_refreshing: bool = False
        self.last_error: Optional[str] = None

    def begin_refresh(self) -> bool:
        if self.is_refreshing:
            logger.info("refresh already in progress, skipping")
            return False
        self.is_refreshing = True
        return True

    def end_refresh(self) -> None:
        self.is_refreshing = False

    def publish(self, snapshot: MarketSnapshot) -> None:
        self.snapshot = snapshot
        self.last_error = None

    @property
    def last_update_ms(self) -> Optional[int]:
        snap = self.snapshot
        return snap.updated_at_ms if snap is not None else None


_store: Optional[SnapshotStore] = None


def get_store() -> SnapshotStore:
    global _store
    if _store is None:
        _store = SnapshotStore()
    return _store
