"""Progress tracker: aggregates per-item outcomes into session progress."""

import threading
from typing import List

from .types import ControllerState, ExecutionResult, Outcome, SessionProgress


class ProgressTracker:
    """Derives :class:`SessionProgress` from execution results and readiness."""

    def __init__(self):
        self._lock = threading.Lock()
        self._catalog_ready = False
        self._gateway_ready = False
        self._completed = 0
        self._failed = 0
        self._total = 0
        self._warnings: List[str] = []

    def mark_catalog_ready(self) -> None:
        with self._lock:
            self._catalog_ready = True

    def mark_gateway_ready(self) -> None:
        with self._lock:
            self._gateway_ready = True

    @property
    def ready(self) -> bool:
        with self._lock:
            return self._catalog_ready and self._gateway_ready

    def start(self, total: int) -> None:
        """Reset counters for a manifest of ``total`` entries."""
        with self._lock:
            self._total = total
            self._completed = 0
            self._failed = 0

    def on_result(self, result: ExecutionResult) -> None:
        with self._lock:
            self._completed += 1
            if result.outcome != Outcome.SUCCESS:
                self._failed += 1

    def add_warning(self, message: str) -> None:
        with self._lock:
            self._warnings.append(message)

    def snapshot(self, state: ControllerState) -> SessionProgress:
        with self._lock:
            return SessionProgress(
                state=state,
                completed=self._completed,
                total=self._total,
                failed_count=self._failed,
                ready=self._catalog_ready and self._gateway_ready,
                warnings=tuple(self._warnings),
            )
