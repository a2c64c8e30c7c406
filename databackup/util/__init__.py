"""Utility module initialization."""

from .logging import get_logger, setup_logging
from .paths import device_join, format_size, media_target_name, safe_filename
from .timeutil import format_duration, generate_backup_id, now_iso, timestamp_to_iso

__all__ = [
    # logging
    "get_logger",
    "setup_logging",
    # paths
    "device_join",
    "format_size",
    "media_target_name",
    "safe_filename",
    # timeutil
    "format_duration",
    "generate_backup_id",
    "now_iso",
    "timestamp_to_iso",
]
