"""Tests for the host-side snapshot index."""

import tempfile
from pathlib import Path

from databackup.backup import BackupStorage
from databackup.session import SnapshotRef


def ref(identifier, version, **fields):
    return SnapshotRef(
        identifier=identifier,
        version=version,
        location=f"/storage/emulated/0/DataBackup/apps/{identifier}/{version}",
        **fields,
    )


class TestBackupStorage:
    """Test recording and listing snapshots."""

    def test_record_and_list(self):
        """Test snapshots are listed per identifier, oldest first."""
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = BackupStorage(Path(temp_dir))
            storage.record_snapshot("apps", ref("com.b", "20240301_000000"))
            storage.record_snapshot("apps", ref("com.a", "20240201_000000"))
            storage.record_snapshot("apps", ref("com.a", "20240101_000000", components=("apk", "data")))

            refs = storage.list_snapshots("apps")

            assert [(r.identifier, r.version) for r in refs] == [
                ("com.a", "20240101_000000"),
                ("com.a", "20240201_000000"),
                ("com.b", "20240301_000000"),
            ]
            assert refs[0].components == ("apk", "data")
            assert storage.list_snapshots("media") == []

    def test_same_version_replaced(self):
        """Test re-recording a version keeps a single entry."""
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = BackupStorage(Path(temp_dir))
            storage.record_snapshot("apps", ref("com.a", "20240101_000000", size=1))
            storage.record_snapshot("apps", ref("com.a", "20240101_000000", size=2))

            refs = storage.list_snapshots("apps")

            assert len(refs) == 1
            assert refs[0].size == 2

    def test_index_files_written(self):
        """Test the YAML index and its JSON copy are both written."""
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = BackupStorage(Path(temp_dir))
            storage.record_snapshot("apps", ref("com.a", "20240101_000000"))

            yaml_path = storage.get_index_path("apps")
            assert yaml_path.exists()
            assert yaml_path.with_suffix(".json").exists()

    def test_json_fallback(self):
        """Test the JSON copy is used when the YAML index is damaged."""
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = BackupStorage(Path(temp_dir))
            storage.record_snapshot("apps", ref("com.a", "20240101_000000", app_version="9"))
            storage.get_index_path("apps").write_text("snapshots: [unclosed")

            refs = BackupStorage(Path(temp_dir)).list_snapshots("apps")

            assert len(refs) == 1
            assert refs[0].app_version == "9"
