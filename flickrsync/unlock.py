"""Recovery tool clearing write locks left behind by crashed runs."""

from __future__ import annotations

from typing import Callable, Optional

from flickrsync import store
from flickrsync.store import LockedRecord, UnlockSummary
from flickrsync.utils import confirm

CONFIRM_PROMPT = (
    "[?] Do you REALLY want to unlock the index? You should do it only if something crashed "
    "and you are 100% sure that no process is using the index. (y/N): "
)


def format_locks(records: list[LockedRecord]) -> list[str]:
    """Render locked records as aligned table rows (header first)."""
    if not records:
        return []
    rows = [("Type", "ID", "Title", "Locked at")]
    rows.extend((r.scope, r.id, r.label or "-", r.locked_at) for r in records)
    widths = [max(len(row[i]) for row in rows) for i in range(4)]
    return ["  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip() for row in rows]


def list_locks(scope: str = "all", db_path: Optional[str] = None) -> list[LockedRecord]:
    """Print every locked record within `scope` and return them."""
    records = store.find_locked(scope, db_path)
    if not records:
        print("[*] No locked entities found")
        return records
    for line in format_locks(records):
        print(line)
    return records


def unlock_index(
    scope: str = "all",
    db_path: Optional[str] = None,
    assume_yes: bool = False,
    ask: Callable[[str], bool] = confirm,
) -> Optional[UnlockSummary]:
    """
    List locks, ask for confirmation and clear them unconditionally.

    Nothing checks whether another process still uses the index; the operator
    is trusted.

    Args:
        scope (str): One of all, photos, albums, galleries, favorites.
        db_path (Optional[str]): Optional path override for SQLite DB.
        assume_yes (bool): Skip the confirmation prompt.
        ask: Confirmation callback, returns True to proceed.

    Returns:
        Optional[UnlockSummary]: Released counts, or None when nothing was
        locked or the operator declined.
    """
    records = list_locks(scope, db_path)
    if not records:
        return None
    if not assume_yes and not ask(CONFIRM_PROMPT):
        print("[!] Unlock cancelled")
        return None

    summary = store.unlock_all(scope, db_path)
    print(
        f"[^] Unlocked {summary.total} record(s): photos={summary.photos}, albums={summary.albums}, "
        f"galleries={summary.galleries}, favorites={summary.favorites}, other={summary.other}"
    )
    return summary
