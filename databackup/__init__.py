"""
DataBackup - backup and restore session manager for Android devices.

Drives four symmetric workflows over a rooted device:
- App backup and app restore
- Media backup and media restore
with item selection, manifest validation, privileged execution and
crash-safe session logs.
"""

__version__ = "0.1.0"
__author__ = "DataBackup Contributors"
