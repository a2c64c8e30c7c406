"""Wiring of a workflow controller for a real device."""

from typing import Optional

from ..adb.device import ADBDevice
from ..config import DataBackupConfig
from ..session.catalog import ItemCatalog
from ..session.controller import WorkflowController
from ..session.log import SelectionStore, SessionLogPersister
from ..session.manifest import ManifestBuilder
from .executor import RootShellGateway
from .scanner import DeviceCatalogSource
from .storage import BackupStorage


def create_controller(device: ADBDevice, config: DataBackupConfig, storage: Optional[BackupStorage] = None) -> WorkflowController:
    """Build a controller for one session on ``device``."""
    storage = storage or BackupStorage(config.backup_root)

    return WorkflowController(
        gateway=RootShellGateway(
            device,
            storage,
            device_root=config.backup.device_root,
            command_timeout=config.command_timeout,
        ),
        catalog=ItemCatalog(DeviceCatalogSource(device, storage, config)),
        persister=SessionLogPersister(config.log_dir),
        builder=ManifestBuilder(
            incremental=config.backup.incremental,
            app_components=config.backup.app_components,
        ),
        selection_store=SelectionStore(config.backup_root),
        config=config.session,
    )
