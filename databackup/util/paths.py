"""Utility functions for path operations."""

import posixpath

_UNSAFE_CHARS = '/\\:*?"<>|\n\r\t'


def safe_filename(filename: str) -> str:
    """Create a safe filename by replacing problematic characters."""
    safe_name = "".join("_" if c in _UNSAFE_CHARS else c for c in filename)
    safe_name = safe_name.strip(" .")

    if not safe_name:
        safe_name = "unknown"

    return safe_name


def media_target_name(device_path: str) -> str:
    """Name under which a media directory is stored in the backup tree."""
    return safe_filename(posixpath.basename(device_path.rstrip("/")))


def device_join(*parts: str) -> str:
    """Join path components on the device (always POSIX)."""
    return posixpath.join(*parts)


def format_size(size_bytes: float) -> str:
    """Format file size in human readable format."""
    if size_bytes == 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while size_bytes >= 1024.0 and i < len(size_names) - 1:
        size_bytes /= 1024.0
        i += 1

    return f"{size_bytes:.1f} {size_names[i]}"
