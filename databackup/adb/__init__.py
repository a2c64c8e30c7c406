"""ADB module initialization."""

from .device import ADBDevice, ADBError, DeviceInfo, check_adb_available, get_device_by_serial, list_devices
from .package import PackageInfo, PackageManager
from .shell import ShellCommand

__all__ = [
    # device
    "ADBDevice",
    "ADBError",
    "DeviceInfo",
    "check_adb_available",
    "get_device_by_serial",
    "list_devices",
    # shell
    "ShellCommand",
    # package
    "PackageInfo",
    "PackageManager",
]
