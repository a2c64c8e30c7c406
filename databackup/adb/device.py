"""ADB device management and communication."""

import subprocess
from dataclasses import dataclass
from typing import List, Optional

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..util.logging import get_logger

logger = get_logger(__name__)


@dataclass
class DeviceInfo:
    """Information about an Android device."""

    serial: str
    model: str
    brand: str
    android_version: str
    sdk_version: str
    state: str = "device"

    @property
    def display_name(self) -> str:
        """Get a human-readable device name."""
        return f"{self.brand} {self.model} ({self.serial})"


class ADBError(Exception):
    """ADB command execution error."""

    def __init__(self, message: str, returncode: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class ADBDevice:
    """Represents an ADB-connected Android device."""

    def __init__(self, serial: str, adb_path: str = "adb"):
        self.serial = serial
        self.adb_path = adb_path
        self._device_info: Optional[DeviceInfo] = None

    def _exec(self, command: List[str], timeout: int = 30) -> str:
        """Run an ADB command once."""
        cmd = [self.adb_path, "-s", self.serial] + command

        try:
            logger.debug(f"Running ADB command: {' '.join(cmd)}")
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=True
            )
            return result.stdout.strip()
        except subprocess.CalledProcessError as e:
            output = ((e.stdout or "") + (e.stderr or "")).strip()
            error_msg = f"ADB command failed ({e.returncode}): {' '.join(cmd)}\n{output}"
            logger.debug(error_msg)
            raise ADBError(error_msg, returncode=e.returncode, output=output) from e
        except subprocess.TimeoutExpired as e:
            error_msg = f"ADB command timed out: {' '.join(cmd)}"
            logger.debug(error_msg)
            raise ADBError(error_msg) from e
        except FileNotFoundError as e:
            raise ADBError("ADB not found. Please install Android platform tools.") from e

    @retry(
        retry=retry_if_exception_type(ADBError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def _run_command(self, command: List[str], timeout: int = 30) -> str:
        """Run a read-only ADB command with retry logic."""
        return self._exec(command, timeout=timeout)

    def get_device_info(self) -> DeviceInfo:
        """Get detailed device information."""
        if self._device_info is not None:
            return self._device_info

        props = {
            "model": self._run_command(["shell", "getprop", "ro.product.model"]),
            "brand": self._run_command(["shell", "getprop", "ro.product.brand"]),
            "android_version": self._run_command(["shell", "getprop", "ro.build.version.release"]),
            "sdk_version": self._run_command(["shell", "getprop", "ro.build.version.sdk"]),
        }

        self._device_info = DeviceInfo(serial=self.serial, **props)
        logger.info(f"Device info: {self._device_info.display_name}")
        return self._device_info

    def is_online(self) -> bool:
        """Check if device is online and accessible."""
        try:
            self._exec(["shell", "echo", "test"], timeout=10)
            return True
        except ADBError:
            return False

    def has_root(self) -> bool:
        """Check if ``su`` grants root on the device."""
        try:
            output = self._exec(["shell", "su -c id"], timeout=15)
            return "uid=0(root)" in output
        except ADBError:
            return False


def check_adb_available(adb_path: str = "adb") -> bool:
    """Check if ADB is available and working."""
    try:
        result = subprocess.run(
            [adb_path, "version"],
            capture_output=True,
            text=True,
            timeout=10
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return False


def list_devices(adb_path: str = "adb") -> List[ADBDevice]:
    """List all connected ADB devices."""
    if not check_adb_available(adb_path):
        raise ADBError("ADB is not available or not in PATH")

    try:
        result = subprocess.run(
            [adb_path, "devices"],
            capture_output=True,
            text=True,
            timeout=10,
            check=True
        )
    except subprocess.CalledProcessError as e:
        raise ADBError(f"Failed to list devices: {e.stderr}") from e

    devices = []
    for line in result.stdout.strip().split("\n")[1:]:  # Skip header
        parts = line.split("\t")
        if len(parts) >= 2 and parts[1] == "device":
            devices.append(ADBDevice(parts[0], adb_path))

    return devices


def get_device_by_serial(serial: Optional[str] = None, adb_path: str = "adb") -> ADBDevice:
    """Pick the device to work with.

    Without a serial exactly one device must be connected.
    """
    devices = list_devices(adb_path)

    if serial:
        for device in devices:
            if device.serial == serial:
                return device
        raise ADBError(f"Device with serial {serial} not found")

    if not devices:
        raise ADBError("No devices found")
    if len(devices) > 1:
        raise ADBError("Multiple devices found. Please specify a serial")
    return devices[0]
