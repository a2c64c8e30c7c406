"""Utility functions for time operations."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Union


def now_iso() -> str:
    """Get current timestamp in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat()


def timestamp_to_iso(timestamp: Union[int, float]) -> str:
    """Convert Unix timestamp to ISO 8601 format."""
    dt = datetime.fromtimestamp(timestamp, timezone.utc)
    return dt.isoformat()


def format_duration(seconds: float) -> str:
    """Format duration in human readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        return f"{seconds / 60:.1f}m"
    else:
        return f"{seconds / 3600:.1f}h"


BACKUP_ID_FORMAT = "%Y%m%d_%H%M%S_%f"

_last_backup_id = ""
_backup_id_lock = threading.Lock()


def generate_backup_id() -> str:
    """Snapshot version from the current UTC time.

    Versions are strictly increasing within the process, so back-to-back
    backups never share a directory and sort in creation order.
    """
    global _last_backup_id

    with _backup_id_lock:
        backup_id = datetime.now(timezone.utc).strftime(BACKUP_ID_FORMAT)
        if backup_id <= _last_backup_id:
            previous = datetime.strptime(_last_backup_id, BACKUP_ID_FORMAT)
            backup_id = (previous + timedelta(microseconds=1)).strftime(BACKUP_ID_FORMAT)
        _last_backup_id = backup_id
        return backup_id
