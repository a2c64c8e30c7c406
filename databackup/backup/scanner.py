"""Device catalog source: installed apps, media directories and prior snapshots."""

import posixpath
import typing as t

from ..adb.device import ADBDevice
from ..adb.package import PackageManager
from ..adb.shell import ShellCommand
from ..config import DataBackupConfig
from ..session.types import SnapshotRef, WorkflowType
from ..util.logging import get_logger
from ..util.timeutil import timestamp_to_iso
from .storage import BackupStorage

logger = get_logger(__name__)


class DeviceCatalogSource:
    """Discovers backup candidates over ADB.

    Implements :class:`databackup.session.catalog.CatalogSource`. Transport
    errors propagate; the item catalog turns them into ``DiscoveryError``.
    """

    def __init__(self, device: ADBDevice, storage: BackupStorage, config: DataBackupConfig) -> None:
        self.device = device
        self.storage = storage
        self.config = config
        self.shell = ShellCommand(device)
        self.packages = PackageManager(device)

    def list_apps(self) -> t.Iterator[t.Dict[str, t.Any]]:
        """Yield installed apps with version and APK size."""
        names = self.packages.list_packages(include_system=self.config.backup.include_system_apps)

        for package_name in names:
            info = self.packages.get_package_info(package_name)
            if info is None:
                continue

            size = 0
            if info.apk_paths:
                size = self.shell.directory_size(posixpath.dirname(info.apk_paths[0]))

            yield {
                "id": package_name,
                "name": package_name,
                "size": size,
                "installed_at": info.first_install_time,
                "version": info.version_code,
                "installed": True,
            }

    def list_media(self) -> t.Iterator[t.Dict[str, t.Any]]:
        """Yield the configured media directories, flagging the ones that are gone."""
        for path in self.config.media.include_paths:
            exists = self.shell.file_exists(path)
            mtime = self.shell.get_mtime(path) if exists else None

            yield {
                "path": path,
                "size": self.shell.directory_size(path) if exists else 0,
                "modified_at": timestamp_to_iso(mtime) if mtime else None,
                "exists": exists,
            }

    def list_snapshots(self, workflow_type: WorkflowType) -> t.List[SnapshotRef]:
        return self.storage.list_snapshots(workflow_type.strategy.snapshot_namespace)

    def target_exists(self, workflow_type: WorkflowType, identifier: str) -> bool:
        if workflow_type.strategy.snapshot_namespace == "apps":
            return self.packages.is_package_installed(identifier)
        return self.shell.file_exists(identifier)
