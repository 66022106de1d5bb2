"""
Cooldown tracking for automation rules.

The tracker is the one structure shared by every evaluation of a rule. It is
owned by the engine and handed to each rack worker, never held globally.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class CooldownTracker:
    """
    Per-rule last-triggered store with an atomic check-and-reserve.

    A lock guards every read-modify-write, so at most one reservation
    succeeds per cooldown window even when callers race on the same rule.
    Timestamps only move forward.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_triggered: Dict[str, datetime] = {}

    def try_reserve(self, rule_id: str, now: datetime, cooldown_minutes: float) -> bool:
        """
        Claim the rule's cooldown window.

        Args:
            rule_id: Rule to reserve
            now: Time of the reservation
            cooldown_minutes: Minimum minutes since the last trigger (0 = no gating)

        Returns:
            True if reserved (and `now` recorded), False if still cooling down
        """
        with self._lock:
            last = self._last_triggered.get(rule_id)
            if last is not None and cooldown_minutes > 0:
                elapsed = now - last
                if elapsed < timedelta(minutes=cooldown_minutes):
                    remaining = timedelta(minutes=cooldown_minutes) - elapsed
                    logger.debug(
                        f"Rule {rule_id} is in cooldown ({int(remaining.total_seconds())}s remaining)"
                    )
                    return False

            if last is None or now > last:
                self._last_triggered[rule_id] = now
            return True

    def prime(self, rule_id: str, last_triggered_at: Optional[datetime]) -> None:
        """
        Seed the tracker with a stored last-triggered time.

        Ignored if the tracker already holds a later time for the rule.
        """
        if last_triggered_at is None:
            return
        with self._lock:
            current = self._last_triggered.get(rule_id)
            if current is None or last_triggered_at > current:
                self._last_triggered[rule_id] = last_triggered_at

    def last_triggered(self, rule_id: str) -> Optional[datetime]:
        """Get the last reserved time for a rule."""
        with self._lock:
            return self._last_triggered.get(rule_id)

    def forget(self, rule_id: str) -> None:
        """Drop a rule's entry (rule deleted or rack torn down)."""
        with self._lock:
            self._last_triggered.pop(rule_id, None)

    def clear(self) -> None:
        with self._lock:
            self._last_triggered.clear()

    # =========================================================================
    # State Export/Import
    # =========================================================================

    def export_state(self) -> Dict[str, Any]:
        """Export reservations as ISO timestamps."""
        with self._lock:
            return {rule_id: ts.isoformat() for rule_id, ts in self._last_triggered.items()}

    def restore_state(self, state: Dict[str, str]) -> None:
        """Restore reservations, keeping any later time already held."""
        for rule_id, raw in state.items():
            self.prime(rule_id, datetime.fromisoformat(raw))
