"""
Payment record storage.

The ledger talks to storage only through the PaymentStore protocol, so a
database-backed store can replace the in-memory one without touching the
engine.
"""

import threading
from collections.abc import Callable
from typing import Protocol

from .models import PaymentRequest, PaymentStatus


class PaymentStore(Protocol):
    def add(self, record: PaymentRequest) -> bool:
        """Stores a new record. Returns False if the id is already taken."""
        ...

    def get(self, payment_id: str) -> PaymentRequest | None: ...

    def compare_and_set(
        self, payment_id: str, expected: PaymentStatus, record: PaymentRequest
    ) -> bool:
        """Replaces the record only if its stored status is still ``expected``."""
        ...

    def snapshot(self) -> list[PaymentRequest]:
        """Returns every stored record as of a single instant."""
        ...

    def delete_if(
        self, payment_id: str, predicate: Callable[[PaymentRequest], bool]
    ) -> bool:
        """Deletes the record if ``predicate`` holds for its current value."""
        ...


class InMemoryPaymentStore:
    """Dict-backed PaymentStore, safe to share between threads and tasks."""

    def __init__(self) -> None:
        self._records: dict[str, PaymentRequest] = {}
        self._lock = threading.Lock()

    def add(self, record: PaymentRequest) -> bool:
        with self._lock:
            if record.id in self._records:
                return False
            self._records[record.id] = record
            return True

    def get(self, payment_id: str) -> PaymentRequest | None:
        with self._lock:
            return self._records.get(payment_id)

    def compare_and_set(
        self, payment_id: str, expected: PaymentStatus, record: PaymentRequest
    ) -> bool:
        with self._lock:
            current = self._records.get(payment_id)
            if current is None or current.status is not expected:
                return False
            self._records[payment_id] = record
            return True

    def snapshot(self) -> list[PaymentRequest]:
        with self._lock:
            return list(self._records.values())

    def delete_if(
        self, payment_id: str, predicate: Callable[[PaymentRequest], bool]
    ) -> bool:
        with self._lock:
            current = self._records.get(payment_id)
            if current is None or not predicate(current):
                return False
            del self._records[payment_id]
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
