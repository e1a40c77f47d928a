"""Retention sweeps: delete postings older than a window."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from .storage import JobStore


def sweep(
    store: JobStore,
    retention_window: timedelta,
    source: Optional[str] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Delete rows with posted_at strictly before now - retention_window.

    A row posted exactly at the cutoff is kept. A store failure is logged and
    reported as zero deletions; it never fails the run.

    Args:
        store: JobStore to sweep
        retention_window: Maximum age to keep
        source: Only sweep rows from this source (None = all sources)
        now: Reference time (defaults to current UTC time)

    Returns:
        Number of rows deleted
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - retention_window
    scope = f"source={source}" if source else "all sources"

    try:
        deleted = store.delete_older_than(cutoff, source=source)
    except Exception as e:
        print(f"⚠️ Cleanup warning: failed to remove jobs posted before {cutoff.isoformat(timespec='seconds')} ({scope}): {e}")
        return 0

    if deleted > 0:
        print(f"🧹 Cleanup: removed {deleted:,} jobs posted before {cutoff.isoformat(timespec='seconds')} ({scope})")
    else:
        print(f"🧹 Cleanup: nothing older than {retention_window.days} days ({scope})")
    return deleted
