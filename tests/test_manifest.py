"""Tests for manifest building."""

import pytest

from databackup.errors import EmptyManifestError, ManifestConflictError
from databackup.session import (
    CatalogEntry,
    CatalogSnapshot,
    ConflictPolicy,
    ItemCatalog,
    ManifestBuilder,
    OperationKind,
    SelectionSet,
    ValidationStatus,
    WorkflowType,
)

from .fakes import FakeCatalogSource, app, snapshot


def load(source, workflow_type):
    return ItemCatalog(source).load(workflow_type)


class TestAppBackupManifest:
    """Test manifests for app backups."""

    def setup_method(self):
        self.builder = ManifestBuilder()
        self.source = FakeCatalogSource(apps=[app("com.a"), app("com.b"), app("com.c")])
        self.catalog = load(self.source, WorkflowType.APP_BACKUP)

    def test_entries_follow_selection_order(self):
        """Test entries come out in the order they were selected."""
        selection = SelectionSet(self.catalog.identifiers)
        selection.select("com.c")
        selection.select("com.a")

        manifest = self.builder.build(selection, WorkflowType.APP_BACKUP, self.catalog)

        assert [e.source_id for e in manifest.entries] == ["com.c", "com.a"]
        assert all(e.kind == OperationKind.BACKUP for e in manifest.entries)
        assert all(e.status == ValidationStatus.OK for e in manifest.entries)
        assert manifest.entries[0].components == ("apk", "data")
        assert manifest.rejected == ()

    def test_build_is_repeatable(self):
        """Test the same selection and catalog give the same manifest."""
        first = self.builder.build(["com.b", "com.a"], WorkflowType.APP_BACKUP, self.catalog)
        second = self.builder.build(["com.b", "com.a"], WorkflowType.APP_BACKUP, self.catalog)

        assert first == second

    def test_uninstalled_app_excluded(self):
        """Test apps that disappeared are rejected as missing."""
        source = FakeCatalogSource(apps=[app("com.a"), app("com.gone", installed=False)])
        catalog = load(source, WorkflowType.APP_BACKUP)

        manifest = self.builder.build(["com.gone", "com.a"], WorkflowType.APP_BACKUP, catalog)

        assert [e.source_id for e in manifest.entries] == ["com.a"]
        assert len(manifest.rejected) == 1
        assert manifest.rejected[0].status == ValidationStatus.MISSING

    def test_empty_manifest_raises(self):
        """Test an empty selection is refused by default."""
        with pytest.raises(EmptyManifestError):
            self.builder.build([], WorkflowType.APP_BACKUP, self.catalog)

    def test_empty_manifest_allowed(self):
        """Test require_entries=False returns an empty manifest."""
        manifest = self.builder.build([], WorkflowType.APP_BACKUP, self.catalog, require_entries=False)

        assert len(manifest) == 0


class TestIncrementalBackup:
    """Test APK skipping when the installed version is already stored."""

    def _catalog(self, installed_version):
        source = FakeCatalogSource(
            apps=[app("com.a", version=installed_version)],
            snapshots=[snapshot("com.a", app_version="7")],
        )
        return load(source, WorkflowType.APP_BACKUP)

    def test_same_version_skips_apk(self):
        """Test an unchanged app only backs up its data."""
        manifest = ManifestBuilder().build(["com.a"], WorkflowType.APP_BACKUP, self._catalog("7"))

        assert manifest.entries[0].components == ("data",)

    def test_new_version_backs_up_apk(self):
        """Test an updated app backs up both parts."""
        manifest = ManifestBuilder().build(["com.a"], WorkflowType.APP_BACKUP, self._catalog("8"))

        assert manifest.entries[0].components == ("apk", "data")

    def test_full_mode_ignores_snapshots(self):
        """Test incremental=False always includes the APK."""
        builder = ManifestBuilder(incremental=False)
        manifest = builder.build(["com.a"], WorkflowType.APP_BACKUP, self._catalog("7"))

        assert manifest.entries[0].components == ("apk", "data")


class TestMediaBackupManifest:
    """Test manifests for media backups."""

    def test_target_name_collision_in_selection(self):
        """Test two paths stored under the same name conflict."""
        source = FakeCatalogSource(media=[
            {"path": "/storage/emulated/0/DCIM/Camera", "exists": True},
            {"path": "/storage/emulated/0/Old/Camera", "exists": True},
        ])
        catalog = load(source, WorkflowType.MEDIA_BACKUP)

        manifest = ManifestBuilder().build(
            ["/storage/emulated/0/DCIM/Camera", "/storage/emulated/0/Old/Camera"],
            WorkflowType.MEDIA_BACKUP,
            catalog,
        )

        assert [e.source_id for e in manifest.entries] == ["/storage/emulated/0/DCIM/Camera"]
        assert manifest.rejected[0].status == ValidationStatus.CONFLICT
        assert manifest.entries[0].components == ("media",)

    def test_target_name_owned_by_earlier_backup(self):
        """Test a name already holding another path's snapshots conflicts."""
        source = FakeCatalogSource(
            media=[
                {"path": "/storage/emulated/0/Music", "exists": True},
                {"path": "/sdcard/old/Music", "exists": False},
            ],
            snapshots=[snapshot("/sdcard/old/Music", namespace="media", components=("media",))],
        )
        catalog = load(source, WorkflowType.MEDIA_BACKUP)

        with pytest.raises(ManifestConflictError) as excinfo:
            ManifestBuilder().build(
                ["/storage/emulated/0/Music"],
                WorkflowType.MEDIA_BACKUP,
                catalog,
                policy=ConflictPolicy.FAIL,
            )

        assert [e.source_id for e in excinfo.value.conflicts] == ["/storage/emulated/0/Music"]

    def test_same_path_reuses_its_own_name(self):
        """Test a path backed up before is not in conflict with itself."""
        path = "/storage/emulated/0/DCIM"
        source = FakeCatalogSource(
            media=[{"path": path, "exists": True}],
            snapshots=[snapshot(path, namespace="media", components=("media",))],
        )
        catalog = load(source, WorkflowType.MEDIA_BACKUP)

        manifest = ManifestBuilder().build([path], WorkflowType.MEDIA_BACKUP, catalog)

        assert manifest.entries[0].status == ValidationStatus.OK

    def test_vanished_path_missing(self):
        """Test a directory that no longer exists is rejected."""
        source = FakeCatalogSource(media=[
            {"path": "/storage/emulated/0/DCIM", "exists": True},
            {"path": "/storage/emulated/0/Movies", "exists": False},
        ])
        catalog = load(source, WorkflowType.MEDIA_BACKUP)

        manifest = ManifestBuilder().build(
            ["/storage/emulated/0/Movies", "/storage/emulated/0/DCIM"],
            WorkflowType.MEDIA_BACKUP,
            catalog,
        )

        assert [e.source_id for e in manifest.entries] == ["/storage/emulated/0/DCIM"]
        assert manifest.rejected[0].status == ValidationStatus.MISSING


class TestRestoreManifest:
    """Test manifests for restores and conflict policies."""

    def setup_method(self):
        self.source = FakeCatalogSource(
            snapshots=[
                snapshot("com.a", version="20240101_000000", components=("apk", "data")),
                snapshot("com.a", version="20240201_000000", components=("data",)),
                snapshot("com.b", version="20240101_000000"),
            ],
            occupied=["com.b"],
        )
        self.catalog = load(self.source, WorkflowType.APP_RESTORE)

    def test_restore_uses_latest_snapshot(self):
        """Test the newest snapshot is restored and older APKs are still found."""
        manifest = ManifestBuilder().build(["com.a"], WorkflowType.APP_RESTORE, self.catalog)
        entry = manifest.entries[0]

        assert entry.kind == OperationKind.RESTORE
        assert entry.target_id == "com.a@20240201_000000"
        assert entry.snapshot.version == "20240201_000000"
        assert entry.components == ("apk", "data")

    def test_skip_policy_excludes_conflicts(self):
        """Test an occupied destination is dropped under the skip policy."""
        manifest = ManifestBuilder().build(
            ["com.b", "com.a"], WorkflowType.APP_RESTORE, self.catalog, policy=ConflictPolicy.SKIP
        )

        assert [e.source_id for e in manifest.entries] == ["com.a"]
        assert manifest.rejected[0].source_id == "com.b"
        assert manifest.rejected[0].status == ValidationStatus.CONFLICT

    def test_overwrite_policy_keeps_conflicts(self):
        """Test the overwrite policy keeps conflicting entries in place."""
        manifest = ManifestBuilder().build(
            ["com.b", "com.a"], WorkflowType.APP_RESTORE, self.catalog, policy=ConflictPolicy.OVERWRITE
        )

        assert [e.source_id for e in manifest.entries] == ["com.b", "com.a"]
        assert manifest.entries[0].overwrite is True
        assert manifest.entries[1].overwrite is False

    def test_fail_policy_raises(self):
        """Test the fail policy refuses the whole manifest."""
        with pytest.raises(ManifestConflictError) as excinfo:
            ManifestBuilder().build(
                ["com.a", "com.b"], WorkflowType.APP_RESTORE, self.catalog, policy="fail"
            )

        assert "com.b" in str(excinfo.value)

    def test_entry_without_snapshot_missing(self):
        """Test entries with nothing to restore from are rejected."""
        catalog = CatalogSnapshot(WorkflowType.APP_RESTORE, [
            CatalogEntry(identifier="com.none", name="none", available=False),
        ])

        manifest = ManifestBuilder().build(
            ["com.none"], WorkflowType.APP_RESTORE, catalog, require_entries=False
        )

        assert manifest.entries == ()
        assert manifest.rejected[0].status == ValidationStatus.MISSING
        assert manifest.rejected[0].target_id == "com.none"

    def test_media_restore_components(self):
        """Test media restores carry the media archive only."""
        source = FakeCatalogSource(
            snapshots=[snapshot("/storage/emulated/0/DCIM", namespace="media", components=("media",))]
        )
        catalog = load(source, WorkflowType.MEDIA_RESTORE)

        manifest = ManifestBuilder().build(["/storage/emulated/0/DCIM"], WorkflowType.MEDIA_RESTORE, catalog)

        assert manifest.entries[0].components == ("media",)
