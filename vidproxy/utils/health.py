"""Relay metrics for the /health/relay endpoint.

Provides:
  - RelayMetricsTracker — gauge of in-flight relays plus counters per
                          terminal state and total bytes relayed.

Thread-safety:
    Safe for single-threaded asyncio access only (no locks — single event loop).
"""

from __future__ import annotations

from typing import Any


class RelayMetricsTracker:
    """Tracks active relay sessions and how they ended.

    Usage::

        tracker = RelayMetricsTracker()

        # RelaySession.prime() succeeded:
        tracker.relay_started()

        # RelaySession.close():
        tracker.relay_finished("COMPLETED", bytes_relayed=1048576)
    """

    def __init__(self) -> None:
        self._active: int = 0
        self._finished: dict[str, int] = {"COMPLETED": 0, "ABORTED": 0, "FAILED": 0}
        self._bytes_relayed: int = 0

    # ── Mutation ──────────────────────────────────────────────────────────────

    def relay_started(self) -> None:
        """Call when a relay starts streaming. Increments active count."""
        self._active += 1

    def relay_finished(self, state: str, bytes_relayed: int) -> None:
        """Call once when a started relay terminates.

        Decrements the active count (never below 0) and records the
        terminal state and the bytes written to the client.
        """
        self._active = max(0, self._active - 1)
        self._finished[state] = self._finished.get(state, 0) + 1
        self._bytes_relayed += bytes_relayed

    # ── Computed properties ───────────────────────────────────────────────────

    @property
    def active_count(self) -> int:
        """Current number of streaming relays (gauge, ≥ 0)."""
        return self._active

    def count(self, state: str) -> int:
        return self._finished.get(state, 0)

    @property
    def bytes_relayed(self) -> int:
        return self._bytes_relayed

    def snapshot(self) -> dict[str, Any]:
        return {
            "active": self._active,
            "completed": self.count("COMPLETED"),
            "aborted": self.count("ABORTED"),
            "failed": self.count("FAILED"),
            "bytes_relayed": self._bytes_relayed,
        }
