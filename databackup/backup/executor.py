"""Privileged execution of backup and restore operations through a root shell."""

import shlex
import time
import typing as t

from ..adb.device import ADBDevice, ADBError
from ..adb.shell import ShellCommand
from ..errors import GatewayUnavailableError
from ..session.gateway import PrivilegedGateway
from ..session.types import ExecutionResult, ManifestEntry, OperationKind, Outcome, SnapshotRef
from ..util.logging import get_logger
from ..util.paths import device_join, media_target_name, safe_filename
from ..util.timeutil import generate_backup_id, now_iso
from .storage import BackupStorage

logger = get_logger(__name__)

APP_DATA_ROOT = "/data/data"


class _StepFailed(Exception):
    """An expected failure of one operation (the channel is fine)."""


class RootShellGateway(PrivilegedGateway):
    """Runs manifest entries as ``su`` commands over ADB.

    Snapshots live on the device under ``device_root/<namespace>/<name>/<version>``;
    each successful backup is recorded in the host snapshot index.
    """

    def __init__(
        self,
        device: ADBDevice,
        storage: BackupStorage,
        device_root: str = "/storage/emulated/0/DataBackup",
        command_timeout: int = 600,
    ) -> None:
        """Initialize the gateway.

        Args:
            device: Rooted device to operate on
            storage: Snapshot index updated after successful backups
            device_root: Backup directory on the device
            command_timeout: Timeout for a single privileged command in seconds
        """
        self.device = device
        self.storage = storage
        self.device_root = device_root.rstrip("/")
        self.command_timeout = command_timeout
        self.shell = ShellCommand(device)
        self._connected = False

        self._handlers: t.Dict[t.Tuple[str, OperationKind], t.Callable] = {
            ("apps", OperationKind.BACKUP): self._backup_app,
            ("apps", OperationKind.RESTORE): self._restore_app,
            ("media", OperationKind.BACKUP): self._backup_media,
            ("media", OperationKind.RESTORE): self._restore_media,
        }

    # -- channel ---------------------------------------------------------

    def connect(self) -> bool:
        if not self.device.is_online():
            logger.error(f"Device {self.device.serial} is offline")
            return False
        if not self.device.has_root():
            logger.error(f"Root access refused on {self.device.serial}")
            return False

        try:
            self._root(f"mkdir -p {shlex.quote(self.device_root)}")
        except ADBError as e:
            logger.error(f"Cannot create backup directory {self.device_root}: {e}")
            return False

        self._connected = True
        logger.info(f"Root shell ready on {self.device.serial}")
        return True

    def close(self) -> None:
        self._connected = False

    def _channel_alive(self) -> bool:
        return self.device.is_online() and self.device.has_root()

    def _root(self, command: str) -> str:
        return self.shell.execute_as_root(command, timeout=self.command_timeout)

    def _step(self, command: str, what: str) -> str:
        try:
            return self._root(command)
        except ADBError as e:
            if not self._channel_alive():
                self._connected = False
                raise GatewayUnavailableError(f"Lost root shell on {self.device.serial} while trying to {what}") from e
            raise _StepFailed(f"Failed to {what}: {e.output or e}") from e

    # -- execution -------------------------------------------------------

    def execute(self, entry: ManifestEntry) -> ExecutionResult:
        if not self._connected:
            raise GatewayUnavailableError("Root shell is not connected")

        if not entry.components:
            return ExecutionResult.for_entry(
                entry, Outcome.SKIPPED, output="Nothing changed since the last snapshot"
            )

        namespace = entry.workflow.strategy.snapshot_namespace
        handler = self._handlers[(namespace, entry.kind)]
        started = time.monotonic()

        try:
            output, size = handler(entry)
        except _StepFailed as e:
            logger.warning(f"{entry.kind.value} of {entry.source_id} failed: {e}")
            return ExecutionResult.for_entry(
                entry,
                Outcome.FAILED,
                error_detail=str(e),
                duration_seconds=round(time.monotonic() - started, 3),
            )

        logger.info(f"{entry.kind.value} of {entry.source_id} succeeded")
        return ExecutionResult.for_entry(
            entry,
            Outcome.SUCCESS,
            bytes_processed=size,
            duration_seconds=round(time.monotonic() - started, 3),
            output=output,
        )

    def _snapshot_dir(self, namespace: str, name: str, version: str) -> str:
        return device_join(self.device_root, namespace, name, version)

    def _finish_backup(self, entry: ManifestEntry, namespace: str, location: str, version: str, app_version: str = "") -> int:
        size = self.shell.directory_size(location, as_root=True)
        try:
            self.storage.record_snapshot(namespace, SnapshotRef(
                identifier=entry.source_id,
                version=version,
                location=location,
                created_at=now_iso(),
                size=size,
                app_version=app_version,
                components=entry.components,
            ))
        except OSError as e:
            raise _StepFailed(f"Snapshot written to {location} but the index update failed: {e}") from e
        return size

    def _discard(self, location: str) -> None:
        try:
            self._root(f"rm -rf {shlex.quote(location)}")
        except ADBError as e:
            logger.debug(f"Could not remove partial snapshot {location}: {e}")

    def _backup_app(self, entry: ManifestEntry) -> t.Tuple[str, int]:
        package = entry.source_id
        version = generate_backup_id()
        location = self._snapshot_dir("apps", safe_filename(package), version)
        quoted = shlex.quote(location)
        outputs = []

        try:
            outputs.append(self._step(f"mkdir -p {quoted}", f"create {location}"))
            if "apk" in entry.components:
                outputs.append(self._step(
                    f"pm path {shlex.quote(package)} | sed 's/^package://' | "
                    f"while read -r apk; do cp \"$apk\" {quoted}/ || exit 1; done && ls {quoted}/*.apk",
                    f"copy APKs of {package}",
                ))
            if "data" in entry.components:
                outputs.append(self._step(
                    f"tar -cpf {quoted}/data.tar -C {APP_DATA_ROOT} {shlex.quote(package)}",
                    f"archive data of {package}",
                ))
            app_version = self._step(
                f"dumpsys package {shlex.quote(package)} | grep -m1 -o 'versionCode=[0-9]*' | cut -d= -f2",
                f"read version of {package}",
            ).strip()
        except _StepFailed:
            self._discard(location)
            raise

        size = self._finish_backup(entry, "apps", location, version, app_version)
        return "\n".join(o for o in outputs if o), size

    def _restore_app(self, entry: ManifestEntry) -> t.Tuple[str, int]:
        package = entry.source_id
        snapshot = entry.snapshot
        if snapshot is None:
            raise _StepFailed(f"No snapshot to restore {package} from")

        quoted_pkg = shlex.quote(package)
        data_dir = shlex.quote(device_join(APP_DATA_ROOT, package))
        outputs = []

        if "apk" in entry.components:
            apk_location = self._apk_location(snapshot)
            quoted = shlex.quote(apk_location)
            outputs.append(self._step(
                f"sid=$(pm install-create -r -t | grep -o '[0-9]\\+') && "
                f"for apk in {quoted}/*.apk; do pm install-write \"$sid\" \"$(basename \"$apk\")\" \"$apk\" || exit 1; done && "
                f"pm install-commit \"$sid\"",
                f"install {package}",
            ))

        if "data" in entry.components:
            archive = shlex.quote(device_join(snapshot.location, "data.tar"))
            outputs.append(self._step(
                f"am force-stop {quoted_pkg}; uid=$(stat -c %u {data_dir}) && "
                f"tar -xpf {archive} -C {APP_DATA_ROOT} && "
                f"chown -R \"$uid:$uid\" {data_dir} && (restorecon -RF {data_dir} || true)",
                f"restore data of {package}",
            ))

        return "\n".join(o for o in outputs if o), snapshot.size

    def _apk_location(self, snapshot: SnapshotRef) -> str:
        """Newest snapshot of the same app that holds its APKs."""
        if "apk" in snapshot.components:
            return snapshot.location
        candidates = [
            ref for ref in self.storage.list_snapshots("apps")
            if ref.identifier == snapshot.identifier and "apk" in ref.components
        ]
        if not candidates:
            raise _StepFailed(f"No stored APK for {snapshot.identifier}")
        return candidates[-1].location

    @staticmethod
    def _split_media_path(path: str) -> t.Tuple[str, str]:
        """Parent directory and name of an absolute media path."""
        path = path.rstrip("/")
        if not path.startswith("/"):
            raise _StepFailed(f"Media path must be absolute: {path or '/'}")
        parent, name = path.rsplit("/", 1)
        return parent or "/", name

    def _backup_media(self, entry: ManifestEntry) -> t.Tuple[str, int]:
        parent, name = self._split_media_path(entry.source_id)
        path = device_join(parent, name)
        version = generate_backup_id()
        location = self._snapshot_dir("media", media_target_name(path), version)
        quoted = shlex.quote(location)

        try:
            self._step(f"mkdir -p {quoted}", f"create {location}")
            output = self._step(
                f"tar -cpf {quoted}/media.tar -C {shlex.quote(parent)} {shlex.quote(name)}",
                f"archive {path}",
            )
        except _StepFailed:
            self._discard(location)
            raise

        size = self._finish_backup(entry, "media", location, version)
        return output, size

    def _restore_media(self, entry: ManifestEntry) -> t.Tuple[str, int]:
        path = entry.source_id
        snapshot = entry.snapshot
        if snapshot is None:
            raise _StepFailed(f"No snapshot to restore {path} from")

        parent = shlex.quote(self._split_media_path(path)[0])
        archive = shlex.quote(device_join(snapshot.location, "media.tar"))
        output = self._step(
            f"mkdir -p {parent} && tar -xpf {archive} -C {parent}",
            f"restore {path}",
        )
        return output, snapshot.size
