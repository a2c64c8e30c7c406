"""Session data model: workflow types, catalog entries, manifest entries and results."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, Field

from ..util.timeutil import now_iso


class WorkflowType(str, Enum):
    """The four symmetric workflows a session can run."""

    APP_BACKUP = "app-backup"
    MEDIA_BACKUP = "media-backup"
    APP_RESTORE = "app-restore"
    MEDIA_RESTORE = "media-restore"

    @property
    def strategy(self) -> "WorkflowStrategy":
        return WORKFLOWS[self]


class OperationKind(str, Enum):
    BACKUP = "backup"
    RESTORE = "restore"


class ValidationStatus(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    MISSING = "missing"


class ConflictPolicy(str, Enum):
    """How the manifest builder treats conflicting entries."""

    FAIL = "fail"
    SKIP = "skip"
    OVERWRITE = "overwrite"


class Outcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class ControllerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    MANIFESTING = "manifesting"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (ControllerState.COMPLETED, ControllerState.ABORTED)


@dataclass(frozen=True)
class WorkflowStrategy:
    """Per-workflow wiring: where entries come from and where results go."""

    source: str
    kind: OperationKind
    snapshot_namespace: str
    log_namespace: str
    title: str

    @property
    def is_restore(self) -> bool:
        return self.kind == OperationKind.RESTORE


WORKFLOWS: Dict[WorkflowType, WorkflowStrategy] = {
    WorkflowType.APP_BACKUP: WorkflowStrategy(
        source="apps",
        kind=OperationKind.BACKUP,
        snapshot_namespace="apps",
        log_namespace="app_backup",
        title="Select apps to back up",
    ),
    WorkflowType.MEDIA_BACKUP: WorkflowStrategy(
        source="media",
        kind=OperationKind.BACKUP,
        snapshot_namespace="media",
        log_namespace="media_backup",
        title="Select media to back up",
    ),
    WorkflowType.APP_RESTORE: WorkflowStrategy(
        source="snapshots",
        kind=OperationKind.RESTORE,
        snapshot_namespace="apps",
        log_namespace="app_restore",
        title="Select apps to restore",
    ),
    WorkflowType.MEDIA_RESTORE: WorkflowStrategy(
        source="snapshots",
        kind=OperationKind.RESTORE,
        snapshot_namespace="media",
        log_namespace="media_restore",
        title="Select media to restore",
    ),
}


class SnapshotRef(BaseModel):
    """A prior backup of one identifier stored on the device."""

    identifier: str = Field(description="Package name or media path")
    version: str = Field(description="Snapshot version (UTC YYYYmmdd_HHMMSS_ffffff)")
    location: str = Field(description="Snapshot directory on the device")
    created_at: str = Field(default_factory=now_iso, description="Snapshot creation timestamp")
    size: int = Field(default=0, description="Snapshot size in bytes")
    app_version: str = Field(default="", description="Version code of the backed up app")
    components: Tuple[str, ...] = Field(default=(), description="Stored parts (apk, data, media)")

    class Config:
        frozen = True


class CatalogEntry(BaseModel):
    """One backup/restore candidate."""

    identifier: str = Field(description="Package name or media directory path")
    name: str = Field(description="Display name")
    size: int = Field(default=0, description="Size estimate in bytes")
    last_timestamp: Optional[str] = Field(default=None, description="Last backup/restore timestamp")
    available: bool = Field(default=True, description="App installed, path exists or snapshot present")
    version: str = Field(default="", description="Installed version code (apps)")
    target_exists: bool = Field(default=False, description="Restore destination already occupied")
    snapshots: Tuple[SnapshotRef, ...] = Field(default=(), description="Prior snapshots, oldest first")

    class Config:
        frozen = True

    @property
    def latest_snapshot(self) -> Optional[SnapshotRef]:
        return self.snapshots[-1] if self.snapshots else None


class ManifestEntry(BaseModel):
    """One planned operation."""

    source_id: str
    target_id: str
    name: str = ""
    kind: OperationKind
    workflow: WorkflowType
    status: ValidationStatus = ValidationStatus.OK
    reason: Optional[str] = None
    components: Tuple[str, ...] = ()
    snapshot: Optional[SnapshotRef] = None
    overwrite: bool = False

    class Config:
        frozen = True


class Manifest(BaseModel):
    """Validated, ordered list of operations for one session."""

    workflow: WorkflowType
    policy: ConflictPolicy
    entries: Tuple[ManifestEntry, ...] = ()
    rejected: Tuple[ManifestEntry, ...] = ()

    class Config:
        frozen = True

    def __len__(self) -> int:
        return len(self.entries)


class ExecutionResult(BaseModel):
    """Outcome of one manifest entry. Never mutated once created."""

    timestamp: str = Field(default_factory=now_iso)
    session_started_at: str = ""
    workflow: WorkflowType
    source_id: str
    target_id: str
    outcome: Outcome
    error_detail: Optional[str] = None
    bytes_processed: int = 0
    duration_seconds: float = 0.0
    output: str = ""

    class Config:
        frozen = True

    @classmethod
    def for_entry(cls, entry: ManifestEntry, outcome: Outcome, **fields) -> "ExecutionResult":
        return cls(
            workflow=entry.workflow,
            source_id=entry.source_id,
            target_id=entry.target_id,
            outcome=outcome,
            **fields,
        )


class SessionProgress(BaseModel):
    """Aggregate view of a session, emitted on every state change."""

    state: ControllerState = ControllerState.UNINITIALIZED
    completed: int = 0
    total: int = 0
    failed_count: int = 0
    ready: bool = False
    warnings: Tuple[str, ...] = ()

    class Config:
        frozen = True

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 1.0 if self.state == ControllerState.COMPLETED else 0.0
        return self.completed / self.total
