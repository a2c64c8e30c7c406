"""Session log persistence and remembered selections."""

import json
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError
from ruamel.yaml import YAML

from ..errors import PersistenceError
from ..util.logging import get_logger
from .types import ExecutionResult, WorkflowType

logger = get_logger(__name__)


class SessionLogPersister:
    """Append-only session logs, one JSON-lines file per workflow type.

    Each record is a single line written and fsynced before ``append`` returns.
    A record cut short by a crash only loses itself: it is skipped on load and
    the next append starts on a fresh line.
    """

    def __init__(self, log_dir: Path):
        self.log_dir = Path(log_dir)

    def path_for(self, workflow_type: WorkflowType) -> Path:
        return self.log_dir / f"{workflow_type.strategy.log_namespace}.jsonl"

    def append(self, workflow_type: WorkflowType, result: ExecutionResult) -> None:
        path = self.path_for(workflow_type)
        line = json.dumps(result.model_dump(mode="json"), sort_keys=True)

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "ab") as f:
                if f.tell() > 0 and not self._ends_with_newline(path):
                    logger.warning(f"Repairing truncated record at end of {path}")
                    f.write(b"\n")
                f.write(line.encode("utf-8") + b"\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise PersistenceError(f"Failed to append to {path}: {e}") from e

    def load(
        self,
        workflow_type: WorkflowType,
        session_started_at: Optional[str] = None,
    ) -> List[ExecutionResult]:
        """Read back records in append order.

        The returned list is a snapshot; later appends do not change it.
        """
        path = self.path_for(workflow_type)
        if not path.exists():
            return []

        results = []
        try:
            with open(path, "rb") as f:
                raw_lines = f.read().split(b"\n")
        except OSError as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e

        for number, raw in enumerate(raw_lines, start=1):
            if not raw.strip():
                continue
            try:
                result = ExecutionResult(**json.loads(raw.decode("utf-8")))
            except (TypeError, ValueError, ValidationError) as e:
                logger.warning(f"Skipping unreadable record {path.name}:{number}: {e}")
                continue

            if session_started_at is None or result.session_started_at == session_started_at:
                results.append(result)

        return results

    def sessions(self, workflow_type: WorkflowType) -> List[str]:
        """Distinct session start times, oldest first."""
        seen: Dict[str, None] = {}
        for result in self.load(workflow_type):
            seen.setdefault(result.session_started_at, None)
        return list(seen)

    @staticmethod
    def _ends_with_newline(path: Path) -> bool:
        with open(path, "rb") as f:
            f.seek(-1, os.SEEK_END)
            return f.read(1) == b"\n"


class SelectionStore:
    """Remembers the last selection of each workflow type."""

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)
        self.path = self.state_dir / "selections.yaml"

    def _read(self) -> Dict[str, List[str]]:
        if not self.path.exists():
            return {}
        try:
            yaml = YAML(typ="safe")
            with open(self.path, "r") as f:
                return yaml.load(f) or {}
        except Exception as e:
            logger.warning(f"Failed to load saved selections: {e}")
            return {}

    def load(self, workflow_type: WorkflowType) -> List[str]:
        return list(self._read().get(workflow_type.value, []))

    def save(self, workflow_type: WorkflowType, identifiers: Iterable[str]) -> None:
        data = self._read()
        data[workflow_type.value] = list(identifiers)

        yaml = YAML()
        yaml.default_flow_style = False
        tmp_path = self.path.with_suffix(".yaml.tmp")

        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                yaml.dump(data, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"Failed to save selection to {self.path}: {e}") from e

        logger.debug(f"Saved selection for {workflow_type.value} to {self.path}")
