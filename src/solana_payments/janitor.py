from datetime import datetime, timedelta

import structlog

from .models import PaymentRequest
from .store import PaymentStore

logger = structlog.get_logger(__name__)


class JanitorSweep:
    """Reclaims confirmed and expired records once they outlive the retention window."""

    def __init__(self, store: PaymentStore):
        self.store = store

    def run(self, retention: timedelta, now: datetime) -> int:
        """
        Single pass over the store. Pending records are never touched, whatever
        their age.

        Returns:
            Number of records deleted
        """

        def is_stale(record: PaymentRequest) -> bool:
            return record.status.is_terminal and now - record.created_at > retention

        removed = 0
        for record in self.store.snapshot():
            # Re-checked under the store lock against the current value
            if is_stale(record) and self.store.delete_if(record.id, is_stale):
                removed += 1

        logger.info(
            "sweep_completed",
            removed=removed,
            retention_seconds=retention.total_seconds(),
        )
        return removed
