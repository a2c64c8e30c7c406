"""Session module initialization."""

from .catalog import CatalogListing, CatalogSnapshot, CatalogSource, ItemCatalog
from .controller import WorkflowController
from .gateway import PrivilegedGateway
from .log import SelectionStore, SessionLogPersister
from .manifest import ManifestBuilder
from .progress import ProgressTracker
from .selection import SelectionSet
from .types import (
    WORKFLOWS,
    CatalogEntry,
    ConflictPolicy,
    ControllerState,
    ExecutionResult,
    Manifest,
    ManifestEntry,
    OperationKind,
    Outcome,
    SessionProgress,
    SnapshotRef,
    ValidationStatus,
    WorkflowStrategy,
    WorkflowType,
)

__all__ = [
    # catalog
    "CatalogListing",
    "CatalogSnapshot",
    "CatalogSource",
    "ItemCatalog",
    # selection
    "SelectionSet",
    # manifest
    "ManifestBuilder",
    # gateway
    "PrivilegedGateway",
    # progress
    "ProgressTracker",
    # log
    "SelectionStore",
    "SessionLogPersister",
    # controller
    "WorkflowController",
    # types
    "WORKFLOWS",
    "CatalogEntry",
    "ConflictPolicy",
    "ControllerState",
    "ExecutionResult",
    "Manifest",
    "ManifestEntry",
    "OperationKind",
    "Outcome",
    "SessionProgress",
    "SnapshotRef",
    "ValidationStatus",
    "WorkflowStrategy",
    "WorkflowType",
]
