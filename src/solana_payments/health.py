"""Gateway health tracking.

Verification never raises on ledger outages, so this tracker is how operators
see them: it counts consecutive gateway failures and remembers the last error
and the last success.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class GatewayStatus(str, Enum):
    """Health status values."""

    OK = "ok"
    DEGRADED = "degraded"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class GatewayHealthSnapshot:
    """Point-in-time view of gateway health.

    Attributes:
        status: OK after a success, DEGRADED after a failure, UNKNOWN before any call
        consecutive_failures: Failures since the last successful pass
        last_error: Message of the most recent failure
        last_failure_at: When the most recent failure happened
        last_success_at: When the most recent successful pass happened
    """

    status: GatewayStatus
    consecutive_failures: int = 0
    last_error: str | None = None
    last_failure_at: datetime | None = None
    last_success_at: datetime | None = None


class GatewayHealth:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = GatewayHealthSnapshot(status=GatewayStatus.UNKNOWN)

    def record_success(self, at: datetime) -> None:
        with self._lock:
            self._snapshot = GatewayHealthSnapshot(
                status=GatewayStatus.OK,
                last_error=self._snapshot.last_error,
                last_failure_at=self._snapshot.last_failure_at,
                last_success_at=at,
            )

    def record_failure(self, error: BaseException, at: datetime) -> None:
        with self._lock:
            self._snapshot = GatewayHealthSnapshot(
                status=GatewayStatus.DEGRADED,
                consecutive_failures=self._snapshot.consecutive_failures + 1,
                last_error=str(error),
                last_failure_at=at,
                last_success_at=self._snapshot.last_success_at,
            )

    def snapshot(self) -> GatewayHealthSnapshot:
        with self._lock:
            return self._snapshot
