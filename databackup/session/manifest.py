"""Manifest builder: turns a selection into validated, ordered operations."""

import posixpath
from typing import Dict, Iterable, List, Sequence, Union

from ..errors import EmptyManifestError, ManifestConflictError
from ..util.logging import get_logger
from ..util.paths import media_target_name
from .catalog import CatalogSnapshot
from .selection import SelectionSet
from .types import (
    CatalogEntry,
    ConflictPolicy,
    Manifest,
    ManifestEntry,
    OperationKind,
    ValidationStatus,
    WorkflowType,
)

logger = get_logger(__name__)

DEFAULT_APP_COMPONENTS = ("apk", "data")
MEDIA_COMPONENTS = ("media",)


class ManifestBuilder:
    """Validates a selection against the catalog and applies the conflict policy.

    Entries keep selection order. Building is pure: the same selection and
    catalog always yield the same manifest.
    """

    def __init__(
        self,
        incremental: bool = True,
        app_components: Sequence[str] = DEFAULT_APP_COMPONENTS,
    ):
        self.incremental = incremental
        self.app_components = tuple(app_components)

    def build(
        self,
        selection: Union[SelectionSet, Iterable[str]],
        workflow_type: WorkflowType,
        catalog: CatalogSnapshot,
        policy: ConflictPolicy = ConflictPolicy.SKIP,
        require_entries: bool = True,
    ) -> Manifest:
        policy = ConflictPolicy(policy)
        selected = selection.selected() if isinstance(selection, SelectionSet) else list(selection)

        if workflow_type.strategy.is_restore:
            candidates = [self._restore_entry(workflow_type, catalog[i]) for i in selected]
        elif workflow_type.strategy.source == "media":
            candidates = self._media_backup_entries(workflow_type, catalog, selected)
        else:
            candidates = [self._app_backup_entry(workflow_type, catalog[i]) for i in selected]

        entries: List[ManifestEntry] = []
        rejected: List[ManifestEntry] = []
        conflicts: List[ManifestEntry] = []

        for entry in candidates:
            if entry.status == ValidationStatus.OK:
                entries.append(entry)
            elif entry.status == ValidationStatus.MISSING:
                rejected.append(entry)
            elif policy == ConflictPolicy.OVERWRITE:
                entries.append(entry.model_copy(update={"overwrite": True}))
            else:
                conflicts.append(entry)
                rejected.append(entry)

        if conflicts and policy == ConflictPolicy.FAIL:
            raise ManifestConflictError(conflicts)

        for entry in rejected:
            logger.debug(f"Excluded {entry.source_id}: {entry.status.value} ({entry.reason})")

        if require_entries and not entries:
            raise EmptyManifestError(
                f"No valid entries for {workflow_type.value} "
                f"({len(selected)} selected, {len(rejected)} rejected)"
            )

        return Manifest(
            workflow=workflow_type,
            policy=policy,
            entries=tuple(entries),
            rejected=tuple(rejected),
        )

    def _app_backup_entry(self, workflow_type: WorkflowType, entry: CatalogEntry) -> ManifestEntry:
        status, reason = ValidationStatus.OK, None
        if not entry.available:
            status, reason = ValidationStatus.MISSING, "app is no longer installed"

        components = self.app_components
        latest = entry.latest_snapshot
        if (
            self.incremental
            and latest is not None
            and entry.version
            and latest.app_version == entry.version
            and "apk" in latest.components
        ):
            components = tuple(c for c in components if c != "apk")

        return ManifestEntry(
            source_id=entry.identifier,
            target_id=entry.identifier,
            name=entry.name,
            kind=OperationKind.BACKUP,
            workflow=workflow_type,
            status=status,
            reason=reason,
            components=components,
        )

    def _media_backup_entries(
        self,
        workflow_type: WorkflowType,
        catalog: CatalogSnapshot,
        selected: List[str],
    ) -> List[ManifestEntry]:
        # Storage names already used by other paths in earlier backups
        owners: Dict[str, str] = {}
        for entry in catalog.entries():
            for ref in entry.snapshots:
                stored_as = posixpath.basename(posixpath.dirname(ref.location.rstrip("/")))
                owners.setdefault(stored_as, entry.identifier)

        planned: Dict[str, str] = {}
        result = []

        for identifier in selected:
            entry = catalog[identifier]
            target_name = media_target_name(identifier)
            status, reason = ValidationStatus.OK, None

            if not entry.available:
                status, reason = ValidationStatus.MISSING, "media path no longer exists"
            elif target_name in planned:
                status = ValidationStatus.CONFLICT
                reason = f"target name '{target_name}' collides with {planned[target_name]}"
            elif owners.get(target_name, identifier) != identifier:
                status = ValidationStatus.CONFLICT
                reason = f"target name '{target_name}' already holds backups of {owners[target_name]}"
            else:
                planned[target_name] = identifier

            result.append(ManifestEntry(
                source_id=identifier,
                target_id=identifier,
                name=entry.name,
                kind=OperationKind.BACKUP,
                workflow=workflow_type,
                status=status,
                reason=reason,
                components=MEDIA_COMPONENTS,
            ))

        return result

    @staticmethod
    def _restore_entry(workflow_type: WorkflowType, entry: CatalogEntry) -> ManifestEntry:
        snapshot = entry.latest_snapshot if entry.available else None
        status, reason = ValidationStatus.OK, None

        if snapshot is None:
            status, reason = ValidationStatus.MISSING, "no prior backup snapshot"
            target_id = entry.identifier
        else:
            target_id = f"{entry.identifier}@{snapshot.version}"
            if entry.target_exists:
                status, reason = ValidationStatus.CONFLICT, "restore destination already exists"

        if workflow_type.strategy.snapshot_namespace == "media":
            components = MEDIA_COMPONENTS
        elif snapshot is None:
            components = DEFAULT_APP_COMPONENTS
        else:
            # Incremental snapshots may leave the APK in an older snapshot
            components = tuple(
                c for c in DEFAULT_APP_COMPONENTS
                if c in snapshot.components
                or (c == "apk" and any("apk" in ref.components for ref in entry.snapshots))
            )

        return ManifestEntry(
            source_id=entry.identifier,
            target_id=target_id,
            name=entry.name,
            kind=OperationKind.RESTORE,
            workflow=workflow_type,
            status=status,
            reason=reason,
            components=components,
            snapshot=snapshot,
        )
