"""Snapshot index: host-side record of the backups stored on the device."""

import json
import os
import threading
import typing as t
from pathlib import Path

from pydantic import BaseModel, Field
from ruamel.yaml import YAML

from ..session.types import SnapshotRef
from ..util.logging import get_logger
from ..util.timeutil import now_iso

logger = get_logger(__name__)


class SnapshotIndexFile(BaseModel):
    """On-disk layout of one namespace index."""

    version: int = Field(default=1, description="Index format version")
    updated_at: str = Field(default_factory=now_iso, description="Last update timestamp")
    snapshots: t.List[SnapshotRef] = Field(default_factory=list, description="Known snapshots")


class BackupStorage:
    """Keeps one index per snapshot namespace (``apps``, ``media``).

    The YAML file is primary; a JSON copy is written alongside and used when
    the YAML cannot be read.
    """

    def __init__(self, base_path: Path) -> None:
        """Initialize backup storage.

        Args:
            base_path: Host directory holding the snapshot indexes
        """
        self.base_path = Path(base_path)
        self._lock = threading.Lock()

    def get_index_path(self, namespace: str) -> Path:
        return self.base_path / "snapshots" / f"{namespace}.yaml"

    def _json_path(self, namespace: str) -> Path:
        return self.get_index_path(namespace).with_suffix(".json")

    def _load(self, namespace: str) -> SnapshotIndexFile:
        yaml_path = self.get_index_path(namespace)
        json_path = self._json_path(namespace)

        if yaml_path.exists():
            try:
                yaml = YAML(typ="safe")
                with open(yaml_path, "r") as f:
                    data = yaml.load(f) or {}
                return SnapshotIndexFile(**data)
            except Exception as e:
                logger.warning(f"Failed to load YAML snapshot index: {e}")

        if json_path.exists():
            try:
                with open(json_path, "r") as f:
                    return SnapshotIndexFile(**json.load(f))
            except Exception as e:
                logger.warning(f"Failed to load JSON snapshot index: {e}")

        return SnapshotIndexFile()

    def _save(self, namespace: str, index: SnapshotIndexFile) -> None:
        yaml_path = self.get_index_path(namespace)
        yaml_path.parent.mkdir(parents=True, exist_ok=True)
        data = index.model_dump(mode="json")

        yaml = YAML()
        yaml.default_flow_style = False
        yaml.width = 120

        tmp_path = yaml_path.with_suffix(".yaml.tmp")
        with open(tmp_path, "w") as f:
            yaml.dump(data, f)
        os.replace(tmp_path, yaml_path)

        with open(self._json_path(namespace), "w") as f:
            json.dump(data, f, indent=2, default=str)

        logger.debug(f"Saved snapshot index to {yaml_path}")

    def list_snapshots(self, namespace: str) -> t.List[SnapshotRef]:
        """All snapshots of a namespace, oldest first."""
        with self._lock:
            index = self._load(namespace)
        return sorted(index.snapshots, key=lambda ref: (ref.identifier, ref.version))


    def record_snapshot(self, namespace: str, ref: SnapshotRef) -> None:
        """Add or replace a snapshot (same identifier and version)."""
        with self._lock:
            index = self._load(namespace)
            index.snapshots = [
                existing for existing in index.snapshots
                if (existing.identifier, existing.version) != (ref.identifier, ref.version)
            ]
            index.snapshots.append(ref)
            index.updated_at = now_iso()
            self._save(namespace, index)

        logger.info(f"Recorded snapshot {ref.identifier}@{ref.version}")
