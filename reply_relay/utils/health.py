"""Reply Relay — Relay Statistics.

Tracks per-message outcomes for the logs. Uses in-memory data structures
(deque) for bounded error history.

Usage:
    stats = RelayStats()
    stats.record_outcome("delivered")
    stats.record_decision("ack")
    stats.record_error("telegram", "Forbidden: bot was blocked by the user")
    logger.info(stats.summary())
"""

from __future__ import annotations

import time
from collections import Counter, deque
from dataclasses import dataclass


@dataclass
class _ErrorRecord:
    """Record of a single error event."""
    timestamp: float
    component: str
    error: str


class RelayStats:
    """Counts what happened to every message the relay received.

    Attributes:
        start_time: Monotonic time the stats were created (relay start).
        received: Total deliveries taken from the queue.
        outcomes: Count per processing outcome name.
        decisions: Count per settle decision name.
    """

    def __init__(self, max_history: int = 50) -> None:
        """Initialize the counters.

        Args:
            max_history: Maximum number of error records to keep.
        """
        self.start_time = time.monotonic()
        self.received = 0
        self.outcomes: Counter[str] = Counter()
        self.decisions: Counter[str] = Counter()
        self._errors: deque[_ErrorRecord] = deque(maxlen=max_history)

    def record_received(self) -> None:
        self.received += 1

    def record_outcome(self, outcome: str) -> None:
        """Record how one message was processed.

        Args:
            outcome: Processing outcome name (delivered, decode_failed, send_failed).
        """
        self.outcomes[outcome] += 1

    def record_decision(self, decision: str) -> None:
        """Record how one message was settled, once the broker accepted it.

        Args:
            decision: Settle decision name (ack, requeue, reject).
        """
        self.decisions[decision] += 1

    def record_error(self, component: str, error: str) -> None:
        """Record an error event.

        Args:
            component: Component name (decoder, telegram, broker).
            error: Error description.
        """
        self._errors.append(_ErrorRecord(
            timestamp=time.monotonic(),
            component=component,
            error=error[:200],
        ))

    def uptime(self) -> str:
        """Human-readable uptime string."""
        s = time.monotonic() - self.start_time
        hours = int(s // 3600)
        mins = int((s % 3600) // 60)
        if hours:
            return f"{hours}h {mins}m"
        return f"{mins}m"

    def summary(self) -> str:
        """One-line summary for the logs."""
        return (
            f"Received: {self.received} | "
            f"Delivered: {self.outcomes['delivered']} | "
            f"Decode failed: {self.outcomes['decode_failed']} | "
            f"Send failed: {self.outcomes['send_failed']} | "
            f"Acked: {self.decisions['ack']} | "
            f"Requeued: {self.decisions['requeue']} | "
            f"Rejected: {self.decisions['reject']} | "
            f"Uptime: {self.uptime()}"
        ) + self._last_error()

    def _last_error(self) -> str:
        if not self._errors:
            return ""
        last = self._errors[-1]
        return f" | Last error: {last.component}: {last.error}"
