"""ADB package management utilities."""

from dataclasses import dataclass
from typing import List, Optional

from .device import ADBDevice, ADBError
from .shell import ShellCommand
from ..util.logging import get_logger

logger = get_logger(__name__)

SYSTEM_APK_PREFIXES = (
    "/system/app/",
    "/system/priv-app/",
    "/product/app/",
    "/product/priv-app/",
    "/vendor/app/",
    "/oem/app/",
)


@dataclass
class PackageInfo:
    """Information about an installed package."""

    package_name: str
    version_name: str = ""
    version_code: str = ""
    apk_paths: tuple = ()
    first_install_time: str = ""
    is_system: bool = False


class PackageManager:
    """Utility for querying packages on the Android device."""

    def __init__(self, device: ADBDevice):
        self.device = device
        self.shell = ShellCommand(device)

    def list_packages(self, include_system: bool = False) -> List[str]:
        """List installed packages.

        Raises :class:`ADBError` when the package manager cannot be queried.
        """
        cmd = "pm list packages" if include_system else "pm list packages -3"
        output = self.shell.execute(cmd)

        packages = []
        for line in output.split("\n"):
            if line.startswith("package:"):
                packages.append(line.replace("package:", "").strip())

        logger.debug(f"Found {len(packages)} packages")
        return sorted(packages)

    def get_apk_paths(self, package_name: str) -> List[str]:
        """APK files (base and splits) of an installed package."""
        output = self.shell.execute(f"pm path {package_name}")
        return [
            line.replace("package:", "").strip()
            for line in output.split("\n")
            if line.startswith("package:")
        ]

    def get_package_info(self, package_name: str) -> Optional[PackageInfo]:
        """Get detailed information about a package."""
        try:
            apk_paths = self.get_apk_paths(package_name)
            output = self.shell.execute(f"dumpsys package {package_name}")
        except ADBError as e:
            logger.warning(f"Failed to get package info for {package_name}: {e}")
            return None

        info = PackageInfo(package_name=package_name, apk_paths=tuple(apk_paths))
        for line in output.split("\n"):
            line = line.strip()
            if line.startswith("versionName=") and not info.version_name:
                info.version_name = line.split("versionName=", 1)[1]
            elif "versionCode=" in line and not info.version_code:
                info.version_code = line.split("versionCode=", 1)[1].split()[0]
            elif line.startswith("firstInstallTime=") and not info.first_install_time:
                info.first_install_time = line.split("firstInstallTime=", 1)[1]

        info.is_system = any(path.startswith(SYSTEM_APK_PREFIXES) for path in apk_paths)
        return info

    def is_package_installed(self, package_name: str) -> bool:
        """Check if a package is installed."""
        try:
            output = self.shell.execute(f"pm list packages {package_name}")
        except ADBError:
            return False
        return any(line.strip() == f"package:{package_name}" for line in output.split("\n"))
