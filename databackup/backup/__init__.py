"""Backup module initialization."""

from .executor import RootShellGateway
from .factory import create_controller
from .scanner import DeviceCatalogSource
from .storage import BackupStorage

__all__ = [
    # executor
    "RootShellGateway",
    # factory
    "create_controller",
    # scanner
    "DeviceCatalogSource",
    # storage
    "BackupStorage",
]
