"""ADB shell command execution utilities."""

import shlex
from typing import Optional

from .device import ADBDevice, ADBError
from ..util.logging import get_logger

logger = get_logger(__name__)


class ShellCommand:
    """Utility for executing shell commands on Android device."""

    def __init__(self, device: ADBDevice):
        self.device = device

    def execute(self, command: str, timeout: int = 30) -> str:
        """Execute a read-only shell command on the device (retried on failure)."""
        return self.device._run_command(["shell", command], timeout=timeout)

    def execute_as_root(self, command: str, timeout: int = 600) -> str:
        """Execute a command as root exactly once.

        Privileged commands change device state, so they are never retried.
        """
        return self.device._exec(["shell", f"su -c {shlex.quote(command)}"], timeout=timeout)

    def file_exists(self, path: str) -> bool:
        """Check if a file or directory exists on the device."""
        try:
            result = self.execute(f"test -e {shlex.quote(path)} && echo exists || echo absent")
            return result.strip() == "exists"
        except ADBError:
            return False

    def directory_size(self, path: str, as_root: bool = False) -> int:
        """Size of a file or directory tree in bytes (0 when unknown)."""
        command = f"du -sk {shlex.quote(path)}"
        try:
            output = self.execute_as_root(command, timeout=120) if as_root else self.execute(command, timeout=120)
            return int(output.split()[0]) * 1024
        except (ADBError, ValueError, IndexError) as e:
            logger.debug(f"Could not get size of {path}: {e}")
            return 0

    def get_mtime(self, path: str) -> Optional[int]:
        """Modification time of a path as a Unix timestamp."""
        try:
            output = self.execute(f"stat -c %Y {shlex.quote(path)}")
            return int(output.strip())
        except (ADBError, ValueError) as e:
            logger.debug(f"Could not stat {path}: {e}")
            return None
