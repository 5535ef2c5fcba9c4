"""Retention sweeper: one-shot cleanup of expired events and stale chat messages"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from tinydb import Query

from .document_store import DocumentStore, StoreError
from .timeutil import parse_timestamp, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    collection: str
    matched: int = 0
    deleted: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def older_than(field_name: str, cutoff: datetime):
    """Query matching documents whose timestamp field is strictly before cutoff.

    Documents with a missing or unparseable timestamp never match.
    """
    def is_before(value) -> bool:
        parsed = parse_timestamp(value)
        return parsed is not None and parsed < cutoff

    return Query()[field_name].test(is_before)


class RetentionSweeper:
    """Deletes documents past their retention, one batch per sweep.

    Naive datetimes passed as ``now`` are read as UTC, like stored timestamps.
    """

    def __init__(
        self,
        store: DocumentStore,
        message_retention: timedelta = timedelta(hours=48),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.message_retention = message_retention
        self.clock = clock

    def sweep_expired_events(self, now: Optional[datetime] = None) -> SweepResult:
        """Delete every event whose expiry_date is before now"""
        now = parse_timestamp(now or self.clock())
        return self._sweep("events", older_than("expiry_date", now))

    def sweep_stale_messages(self, now: Optional[datetime] = None) -> SweepResult:
        """Delete every message older than the retention window"""
        now = parse_timestamp(now or self.clock())
        cutoff = now - self.message_retention
        return self._sweep("messages", older_than("timestamp", cutoff))

    def _sweep(self, collection: str, where) -> SweepResult:
        result = SweepResult(collection=collection)
        try:
            expired = self.store.get(collection, where)
            result.matched = len(expired)
            if expired:
                result.deleted = self.store.batch_delete(collection, [doc["id"] for doc in expired])
        except StoreError as e:
            result.error = str(e)
            logger.error(f"Sweep of {collection} failed, leaving {result.matched} for the next run: {e}")
            return result

        if result.deleted:
            logger.info(f"Cleaned up {result.deleted} expired {collection}")
        return result
