"""Tests for device discovery."""

from unittest.mock import MagicMock

import pytest

from databackup.adb import ADBError
from databackup.backup import BackupStorage, DeviceCatalogSource
from databackup.config import DataBackupConfig, MediaConfig
from databackup.errors import DiscoveryError
from databackup.session import ItemCatalog, WorkflowType

DUMPSYS = """Packages:
  Package [com.example.notes] (1a2b3c):
    versionCode=31 minSdk=26 targetSdk=34
    versionName=3.1.0
    firstInstallTime=2024-01-05 10:00:00
"""


def make_device(answers):
    """Mock device answering read-only shell commands by prefix."""
    device = MagicMock()
    device.serial = "emulator-5554"

    def fake_run(command, timeout=30):
        line = command[-1]
        for prefix, answer in answers.items():
            if line.startswith(prefix):
                if isinstance(answer, Exception):
                    raise answer
                return answer
        return ""

    device._run_command.side_effect = fake_run
    return device


class TestDeviceCatalogSource:
    """Test catalog discovery over ADB."""

    def test_list_apps(self, tmp_path):
        """Test installed third-party apps are listed with version and size."""
        device = make_device({
            "pm list packages -3": "package:com.example.notes",
            "pm path": "package:/data/app/~~x/com.example.notes-1/base.apk",
            "dumpsys package": DUMPSYS,
            "du -sk": "2048\t/data/app/~~x/com.example.notes-1",
        })
        source = DeviceCatalogSource(device, BackupStorage(tmp_path), DataBackupConfig())

        apps = list(source.list_apps())

        assert apps == [{
            "id": "com.example.notes",
            "name": "com.example.notes",
            "size": 2048 * 1024,
            "installed_at": "2024-01-05 10:00:00",
            "version": "31",
            "installed": True,
        }]

    def test_list_media(self, tmp_path):
        """Test configured media paths report whether they still exist."""
        device = make_device({
            "test -e /sdcard/DCIM": "exists",
            "test -e": "absent",
            "stat -c %Y": "1700000000",
            "du -sk": "10\t/sdcard/DCIM",
        })
        config = DataBackupConfig(media=MediaConfig(include_paths=["/sdcard/DCIM", "/sdcard/Gone"]))
        source = DeviceCatalogSource(device, BackupStorage(tmp_path), config)

        media = {item["path"]: item for item in source.list_media()}

        assert media["/sdcard/DCIM"]["exists"] is True
        assert media["/sdcard/DCIM"]["size"] == 10240
        assert media["/sdcard/DCIM"]["modified_at"].startswith("2023-11-14")
        assert media["/sdcard/Gone"]["exists"] is False
        assert media["/sdcard/Gone"]["size"] == 0

    def test_restore_target_check(self, tmp_path):
        """Test app restore targets are checked against installed packages."""
        device = make_device({"pm list packages com.example.notes": "package:com.example.notes"})
        source = DeviceCatalogSource(device, BackupStorage(tmp_path), DataBackupConfig())

        assert source.target_exists(WorkflowType.APP_RESTORE, "com.example.notes")
        assert not source.target_exists(WorkflowType.APP_RESTORE, "com.other")

    def test_unreachable_device(self, tmp_path):
        """Test a failing package manager surfaces through the catalog."""
        device = make_device({"pm list packages": ADBError("device offline")})
        source = DeviceCatalogSource(device, BackupStorage(tmp_path), DataBackupConfig())

        with pytest.raises(DiscoveryError, match="device offline"):
            ItemCatalog(source).load(WorkflowType.APP_BACKUP)
