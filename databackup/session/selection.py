"""Selection set: which catalog entries are chosen for the current session."""

import threading
from typing import Collection, Dict, Iterable, List

from ..errors import UnknownEntryError
from ..util.logging import get_logger

logger = get_logger(__name__)


class SelectionSet:
    """Ordered selection over a fixed catalog domain.

    Insertion order is selection order, which the manifest builder keeps as
    execution order. Every mutation is atomic per identifier.
    """

    def __init__(self, domain: Collection[str]):
        self._domain = list(domain)
        self._known = set(self._domain)
        self._selected: Dict[str, bool] = {}
        self._lock = threading.Lock()

    def _check(self, identifier: str) -> None:
        if identifier not in self._known:
            raise UnknownEntryError(identifier)

    def select(self, identifier: str) -> None:
        self._check(identifier)
        with self._lock:
            self._selected.setdefault(identifier, True)

    def deselect(self, identifier: str) -> None:
        self._check(identifier)
        with self._lock:
            self._selected.pop(identifier, None)

    def toggle(self, identifier: str) -> bool:
        """Flip an entry and return its new state."""
        self._check(identifier)
        with self._lock:
            if self._selected.pop(identifier, False):
                return False
            self._selected[identifier] = True
            return True

    def select_all(self) -> None:
        with self._lock:
            for identifier in self._domain:
                self._selected.setdefault(identifier, True)

    def clear(self) -> None:
        with self._lock:
            self._selected.clear()

    def is_selected(self, identifier: str) -> bool:
        with self._lock:
            return self._selected.get(identifier, False)

    def seed(self, identifiers: Iterable[str]) -> List[str]:
        """Pre-select identifiers remembered from an earlier session.

        Identifiers no longer in the catalog are ignored. Returns the ones applied.
        """
        applied = []
        with self._lock:
            for identifier in identifiers:
                if identifier in self._known:
                    self._selected.setdefault(identifier, True)
                    applied.append(identifier)
        if applied:
            logger.debug(f"Seeded selection with {len(applied)} entries")
        return applied

    def selected(self) -> List[str]:
        """Selected identifiers in selection order."""
        with self._lock:
            return [identifier for identifier, flag in self._selected.items() if flag]

    def as_mapping(self) -> Dict[str, bool]:
        with self._lock:
            return dict(self._selected)

    def __len__(self) -> int:
        with self._lock:
            return len(self._selected)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return bool(self._selected.get(identifier))
