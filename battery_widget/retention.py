"""
Retention policy for the battery history.

Snapshots older than `now - max_age_millis` are eligible for deletion. A
window of zero or less keeps history forever.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("BatteryWidget.Retention")

DEFAULT_MAX_AGE_MILLIS = 7 * 24 * 3600 * 1000


@dataclass(frozen=True)
class RetentionWindow:
    """Maximum age a snapshot may reach before it can be deleted."""

    max_age_millis: int = DEFAULT_MAX_AGE_MILLIS

    @property
    def unbounded(self) -> bool:
        return self.max_age_millis <= 0

    @classmethod
    def from_config(cls, config) -> "RetentionWindow":
        """Build the window from the current configuration value."""
        return cls(int(config.get("retention_max_age_millis", DEFAULT_MAX_AGE_MILLIS)))


def cutoff(now: int, window: RetentionWindow) -> Optional[int]:
    """
    Compute the deletion cutoff.

    Args:
        now: Current time in epoch milliseconds
        window: Retention window

    Returns:
        Timestamp below which snapshots expire, or None if retention is unbounded
    """
    if window.unbounded:
        return None
    return now - window.max_age_millis


def prune(store, now: int, window: RetentionWindow) -> int:
    """
    Delete expired snapshots from a store.

    Args:
        store: TimeSeriesStore instance
        now: Current time in epoch milliseconds
        window: Retention window

    Returns:
        Number of snapshots deleted
    """
    limit = cutoff(now, window)
    if limit is None:
        logger.debug("Retention unbounded, nothing to prune")
        return 0
    return store.delete_older_than(limit)
