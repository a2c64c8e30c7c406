"""Item catalog: enumerates backup/restore candidates for a workflow."""

from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Protocol

from ..errors import DiscoveryError
from ..util.logging import get_logger
from .types import CatalogEntry, SnapshotRef, WorkflowType

logger = get_logger(__name__)


class CatalogSource(Protocol):
    """Where catalog entries come from (device discovery and prior backups)."""

    def list_apps(self) -> Iterable[Mapping]:
        """Yield ``{id, name, size, installed_at, version}`` per installed app."""

    def list_media(self) -> Iterable[Mapping]:
        """Yield ``{path, size, modified_at, exists}`` per media directory."""

    def list_snapshots(self, workflow_type: WorkflowType) -> Iterable[SnapshotRef]:
        """Yield prior backup snapshots for the workflow's namespace."""

    def target_exists(self, workflow_type: WorkflowType, identifier: str) -> bool:
        """Whether the restore destination of ``identifier`` is already occupied."""


class CatalogListing:
    """Lazy, restartable enumeration. Every iteration re-reads the source."""

    def __init__(self, catalog: "ItemCatalog", workflow_type: WorkflowType):
        self.catalog = catalog
        self.workflow_type = workflow_type

    def __iter__(self) -> Iterator[CatalogEntry]:
        return self.catalog._generate(self.workflow_type)


class CatalogSnapshot(Mapping):
    """Read-only catalog materialized for one session."""

    def __init__(self, workflow_type: WorkflowType, entries: Iterable[CatalogEntry]):
        self.workflow_type = workflow_type
        self._entries: Dict[str, CatalogEntry] = {}

        for entry in entries:
            if entry.identifier in self._entries:
                logger.warning(f"Duplicate catalog identifier dropped: {entry.identifier}")
                continue
            self._entries[entry.identifier] = entry

    def __getitem__(self, identifier: str) -> CatalogEntry:
        return self._entries[identifier]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def identifiers(self) -> List[str]:
        return list(self._entries)

    def entries(self) -> List[CatalogEntry]:
        return list(self._entries.values())


class ItemCatalog:
    """Builds catalog entries for a workflow from a :class:`CatalogSource`."""

    def __init__(self, source: CatalogSource):
        self.source = source

    def enumerate(self, workflow_type: WorkflowType) -> CatalogListing:
        return CatalogListing(self, workflow_type)

    def load(self, workflow_type: WorkflowType) -> CatalogSnapshot:
        """Enumerate and materialize the catalog for a session."""
        snapshot = CatalogSnapshot(workflow_type, self.enumerate(workflow_type))
        logger.info(f"Catalog for {workflow_type.value}: {len(snapshot)} entries")
        return snapshot

    def _generate(self, workflow_type: WorkflowType) -> Iterator[CatalogEntry]:
        strategy = workflow_type.strategy

        try:
            snapshots = self._group_snapshots(self.source.list_snapshots(workflow_type))

            if strategy.source == "apps":
                for app in self.source.list_apps():
                    yield self._app_entry(app, snapshots.get(app["id"], []))
            elif strategy.source == "media":
                for media in self.source.list_media():
                    yield self._media_entry(media, snapshots.get(media["path"], []))
            else:
                for identifier, refs in snapshots.items():
                    yield self._restore_entry(workflow_type, identifier, refs)
        except DiscoveryError:
            raise
        except Exception as e:
            raise DiscoveryError(f"Catalog source unreachable for {workflow_type.value}: {e}") from e

    @staticmethod
    def _group_snapshots(refs: Iterable[SnapshotRef]) -> Dict[str, List[SnapshotRef]]:
        grouped: Dict[str, List[SnapshotRef]] = {}
        for ref in refs:
            grouped.setdefault(ref.identifier, []).append(ref)
        for group in grouped.values():
            group.sort(key=lambda ref: ref.version)
        return grouped

    @staticmethod
    def _app_entry(app: Mapping, refs: List[SnapshotRef]) -> CatalogEntry:
        return CatalogEntry(
            identifier=app["id"],
            name=app.get("name") or app["id"],
            size=int(app.get("size") or 0),
            last_timestamp=refs[-1].created_at if refs else None,
            available=app.get("installed", True),
            version=str(app.get("version") or ""),
            snapshots=tuple(refs),
        )

    @staticmethod
    def _media_entry(media: Mapping, refs: List[SnapshotRef]) -> CatalogEntry:
        path = media["path"]
        return CatalogEntry(
            identifier=path,
            name=media.get("name") or path.rstrip("/").rsplit("/", 1)[-1],
            size=int(media.get("size") or 0),
            last_timestamp=refs[-1].created_at if refs else None,
            available=media.get("exists", True),
            snapshots=tuple(refs),
        )

    def _restore_entry(
        self,
        workflow_type: WorkflowType,
        identifier: str,
        refs: List[SnapshotRef],
    ) -> CatalogEntry:
        latest: Optional[SnapshotRef] = refs[-1] if refs else None
        name = identifier
        if workflow_type.strategy.snapshot_namespace == "media":
            name = identifier.rstrip("/").rsplit("/", 1)[-1]

        return CatalogEntry(
            identifier=identifier,
            name=name,
            size=latest.size if latest else 0,
            last_timestamp=latest.created_at if latest else None,
            available=latest is not None,
            version=latest.app_version if latest else "",
            target_exists=self.source.target_exists(workflow_type, identifier),
            snapshots=tuple(refs),
        )
