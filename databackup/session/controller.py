"""Workflow controller: drives one backup/restore session through its stages."""

import threading
import time
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Callable, Iterator, List, Optional

from ..errors import (
    DiscoveryError,
    GatewayUnavailableError,
    InvalidStateError,
    ManifestError,
    NotInitializedError,
    PersistenceError,
)
from ..util.logging import get_logger
from ..util.timeutil import now_iso
from .catalog import CatalogSnapshot, ItemCatalog
from .gateway import PrivilegedGateway
from .log import SelectionStore, SessionLogPersister
from .manifest import ManifestBuilder
from .progress import ProgressTracker
from .selection import SelectionSet
from .types import (
    ConflictPolicy,
    ControllerState,
    ExecutionResult,
    Manifest,
    ManifestEntry,
    SessionProgress,
    WorkflowType,
)

if TYPE_CHECKING:
    from ..config import SessionConfig

logger = get_logger(__name__)

ProgressListener = Callable[[SessionProgress], None]

_SELECTABLE = (ControllerState.READY, ControllerState.MANIFESTING)
_INITIALIZING = (ControllerState.UNINITIALIZED, ControllerState.INITIALIZING)


class WorkflowController:
    """State machine for a single session.

    ``uninitialized -> initializing -> ready <-> manifesting -> executing -> completed``,
    with ``aborted`` reachable from initializing, manifesting and executing.
    Completed and aborted are terminal; a new session needs a new controller.
    """

    def __init__(
        self,
        gateway: PrivilegedGateway,
        catalog: ItemCatalog,
        persister: SessionLogPersister,
        builder: Optional[ManifestBuilder] = None,
        selection_store: Optional[SelectionStore] = None,
        config: Optional["SessionConfig"] = None,
    ):
        self.gateway = gateway
        self.item_catalog = catalog
        self.persister = persister
        self.builder = builder or ManifestBuilder()
        self.selection_store = selection_store
        if config is None:
            # databackup.config depends on the session types
            from ..config import SessionConfig
            config = SessionConfig()
        self.config = config

        self._lock = threading.RLock()
        self._cancel = threading.Event()
        self._state = ControllerState.UNINITIALIZED
        self._tracker = ProgressTracker()
        self._listeners: List[ProgressListener] = []

        self._workflow_type: Optional[WorkflowType] = None
        self._session_started_at = ""
        self._catalog: Optional[CatalogSnapshot] = None
        self._selection: Optional[SelectionSet] = None
        self._manifest: Optional[Manifest] = None
        self._results: List[ExecutionResult] = []
        self._pending: List[ExecutionResult] = []

    # -- observation -----------------------------------------------------

    def current_state(self) -> ControllerState:
        return self._state

    def progress(self) -> SessionProgress:
        return self._tracker.snapshot(self._state)

    def results(self) -> tuple:
        """Results recorded so far, as an immutable snapshot."""
        with self._lock:
            return tuple(self._results)

    @property
    def workflow_type(self) -> Optional[WorkflowType]:
        return self._workflow_type

    @property
    def session_started_at(self) -> str:
        return self._session_started_at

    @property
    def catalog(self) -> Optional[CatalogSnapshot]:
        return self._catalog

    @property
    def manifest(self) -> Optional[Manifest]:
        return self._manifest

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Call ``listener`` with a fresh :class:`SessionProgress` on every change.

        Returns a function that removes the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> SessionProgress:
        progress = self.progress()
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(progress)
            except Exception as e:
                logger.warning(f"Progress listener failed: {e}")
        return progress

    def _transition(self, state: ControllerState) -> SessionProgress:
        with self._lock:
            previous, self._state = self._state, state
        logger.debug(f"Session state: {previous.value} -> {state.value}")

        if state.is_terminal:
            self._release_gateway()

        return self._emit()

    def _release_gateway(self) -> None:
        try:
            self.gateway.close()
        except Exception as e:
            logger.warning(f"Failed to release privileged gateway: {e}")

    # -- initialization --------------------------------------------------

    def start(self, workflow_type: WorkflowType) -> SessionProgress:
        """Connect the gateway and enumerate the catalog concurrently.

        Raises :class:`DiscoveryError` or :class:`GatewayUnavailableError`
        (after moving to ``aborted``) when either prerequisite fails.
        """
        with self._lock:
            if self._state != ControllerState.UNINITIALIZED:
                raise InvalidStateError(f"Session already started ({self._state.value})")
            self._workflow_type = WorkflowType(workflow_type)
            self._session_started_at = now_iso()

        self._transition(ControllerState.INITIALIZING)
        logger.info(f"Starting {self._workflow_type.value} session")

        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="session-init")
        catalog_future = pool.submit(self.item_catalog.load, self._workflow_type)
        gateway_future = pool.submit(self.gateway.connect)

        try:
            pending = {catalog_future, gateway_future}
            while pending:
                if self._cancel.is_set():
                    logger.info("Session cancelled during initialization")
                    return self._abort_start(pool)
                done, pending = wait(pending, timeout=0.1, return_when=FIRST_EXCEPTION)
                if any(future.exception() is not None for future in done):
                    break

            if gateway_future.done() and gateway_future.exception() is not None:
                self._resolve_gateway(gateway_future)
            self._catalog = self._resolve_catalog(catalog_future)
            self._tracker.mark_catalog_ready()
            self._resolve_gateway(gateway_future)
            self._tracker.mark_gateway_ready()
        except (DiscoveryError, GatewayUnavailableError) as e:
            logger.error(f"Session initialization failed: {e}")
            self._abort_start(pool)
            raise
        finally:
            pool.shutdown(wait=False)

        self._selection = SelectionSet(self._catalog.identifiers)
        self._seed_selection()
        return self._transition(ControllerState.READY)

    def _abort_start(self, pool: ThreadPoolExecutor) -> SessionProgress:
        # The gateway is closed on abort; a handshake still running must finish first
        pool.shutdown(wait=True, cancel_futures=True)
        return self._transition(ControllerState.ABORTED)

    @staticmethod
    def _resolve_catalog(future) -> CatalogSnapshot:
        if not future.done():
            raise DiscoveryError("Catalog enumeration did not finish")
        error = future.exception()
        if error is None:
            return future.result()
        if isinstance(error, DiscoveryError):
            raise error
        raise DiscoveryError(f"Catalog enumeration failed: {error}") from error

    @staticmethod
    def _resolve_gateway(future) -> None:
        if not future.done():
            raise GatewayUnavailableError("Gateway handshake did not finish")
        error = future.exception()
        if isinstance(error, GatewayUnavailableError):
            raise error
        if error is not None:
            raise GatewayUnavailableError(f"Gateway handshake failed: {error}") from error
        if not future.result():
            raise GatewayUnavailableError("Privileged access was refused")

    def _seed_selection(self) -> None:
        if not (self.selection_store and self.config.remember_selection):
            return
        if not self._workflow_type.strategy.is_restore:
            return
        applied = self._selection.seed(self.selection_store.load(self._workflow_type))
        if applied:
            logger.info(f"Restored previous selection of {len(applied)} entries")

    # -- selection -------------------------------------------------------

    def _selectable(self) -> SelectionSet:
        with self._lock:
            if self._state in _INITIALIZING:
                raise NotInitializedError("Session is not initialized yet")
            if self._state not in _SELECTABLE:
                raise InvalidStateError(f"Selection is frozen in state {self._state.value}")
            return self._selection

    def _after_edit(self) -> None:
        # Editing the selection invalidates a manifest under review
        if self._state == ControllerState.MANIFESTING:
            self._manifest = None
            self._transition(ControllerState.READY)

    def select(self, identifier: str) -> None:
        self._selectable().select(identifier)
        self._after_edit()

    def deselect(self, identifier: str) -> None:
        self._selectable().deselect(identifier)
        self._after_edit()

    def toggle(self, identifier: str) -> bool:
        selected = self._selectable().toggle(identifier)
        self._after_edit()
        return selected

    def select_all(self) -> None:
        self._selectable().select_all()
        self._after_edit()

    def clear(self) -> None:
        self._selectable().clear()
        self._after_edit()

    def is_selected(self, identifier: str) -> bool:
        if self._selection is None:
            raise NotInitializedError("Session is not initialized yet")
        return self._selection.is_selected(identifier)

    def selected(self) -> List[str]:
        if self._selection is None:
            return []
        return self._selection.selected()

    # -- manifest --------------------------------------------------------

    def build_manifest(
        self,
        conflict_policy: Optional[ConflictPolicy] = None,
        require_entries: Optional[bool] = None,
    ) -> Manifest:
        """Validate the current selection and enter the manifest stage."""
        selection = self._selectable()
        if not self._tracker.ready:
            raise NotInitializedError("Session is not ready")

        policy = ConflictPolicy(conflict_policy or self.config.conflict_policy)
        if require_entries is None:
            require_entries = self.config.require_entries

        try:
            manifest = self.builder.build(
                selection,
                self._workflow_type,
                self._catalog,
                policy=policy,
                require_entries=require_entries,
            )
        except ManifestError:
            if self._state == ControllerState.MANIFESTING:
                self._manifest = None
                self._transition(ControllerState.READY)
            raise

        self._manifest = manifest
        logger.info(
            f"Manifest: {len(manifest.entries)} to run, {len(manifest.rejected)} excluded"
        )
        self._transition(ControllerState.MANIFESTING)
        return manifest

    # -- execution -------------------------------------------------------

    def confirm_and_execute(self) -> Iterator[SessionProgress]:
        """Freeze the manifest and return a stream of progress updates.

        Entries run as the stream is consumed. A dead gateway moves the session
        to ``aborted`` and re-raises :class:`GatewayUnavailableError` from the
        stream; per-entry failures only show up in the progress and the log.
        """
        with self._lock:
            if self._state in _INITIALIZING:
                raise NotInitializedError("Session is not initialized yet")
            if self._state != ControllerState.MANIFESTING or self._manifest is None:
                raise InvalidStateError(f"Cannot execute from state {self._state.value}")
            self._tracker.start(len(self._manifest.entries))

        self._transition(ControllerState.EXECUTING)
        return self._run(self._manifest)

    def execute_all(self) -> SessionProgress:
        """Consume :meth:`confirm_and_execute` and return the final progress."""
        progress = self.progress()
        for progress in self.confirm_and_execute():
            pass
        return progress

    def cancel(self) -> None:
        """Stop after the entry in flight; pending entries are not started."""
        with self._lock:
            state = self._state
        if state in (ControllerState.UNINITIALIZED, ControllerState.READY):
            raise InvalidStateError(f"Nothing to cancel in state {state.value}")
        if state.is_terminal:
            return

        self._cancel.set()
        if state == ControllerState.MANIFESTING:
            self.flush_log()
            self._transition(ControllerState.ABORTED)

    def _batches(self, entries) -> Iterator[List[ManifestEntry]]:
        """Group consecutive entries; a batch never touches an identifier twice."""
        size = max(1, self.config.max_parallel)
        batch: List[ManifestEntry] = []
        for entry in entries:
            if len(batch) >= size or any(e.source_id == entry.source_id for e in batch):
                yield batch
                batch = []
            batch.append(entry)
        if batch:
            yield batch

    def _run(self, manifest: Manifest) -> Iterator[SessionProgress]:
        pool = None
        if self.config.max_parallel > 1:
            pool = ThreadPoolExecutor(
                max_workers=self.config.max_parallel, thread_name_prefix="session-exec"
            )

        try:
            yield self.progress()

            for batch in self._batches(manifest.entries):
                if self._cancel.is_set():
                    logger.info("Session cancelled, remaining entries not started")
                    self.flush_log()
                    yield self._transition(ControllerState.ABORTED)
                    return

                if pool is None:
                    outcomes = [self._attempt(batch[0])]
                else:
                    futures = [pool.submit(self._attempt, entry) for entry in batch]
                    outcomes = [future.result() for future in futures]

                failure: Optional[GatewayUnavailableError] = None
                for outcome in outcomes:
                    if isinstance(outcome, GatewayUnavailableError):
                        failure = failure or outcome
                        continue
                    self._record(outcome)
                    yield self._emit()

                if failure is not None:
                    logger.error(f"Privileged channel lost, aborting session: {failure}")
                    self.flush_log()
                    self._transition(ControllerState.ABORTED)
                    raise failure
        except (GeneratorExit, KeyboardInterrupt):
            if not self._state.is_terminal:
                logger.warning("Session interrupted, remaining entries not started")
                self.flush_log()
                self._transition(ControllerState.ABORTED)
            raise
        finally:
            if pool is not None:
                pool.shutdown(wait=True)

        self.flush_log()
        final = self._transition(ControllerState.COMPLETED)
        logger.info(
            f"Session completed: {final.completed - final.failed_count}/{final.total} succeeded"
        )
        yield final

    def _attempt(self, entry: ManifestEntry):
        """Run one entry; returns the result or the channel error."""
        started = time.monotonic()
        try:
            result = self.gateway.execute(entry)
        except GatewayUnavailableError as e:
            return e
        except Exception as e:
            error = GatewayUnavailableError(f"Gateway failed on {entry.source_id}: {e}")
            error.__cause__ = e
            return error

        update = {"session_started_at": self._session_started_at}
        if not result.duration_seconds:
            update["duration_seconds"] = round(time.monotonic() - started, 3)
        return result.model_copy(update=update)

    # -- persistence -----------------------------------------------------

    def _record(self, result: ExecutionResult) -> None:
        with self._lock:
            self._results.append(result)
            self._pending.append(result)
            self._tracker.on_result(result)
            self._drain_pending()

    def _drain_pending(self) -> bool:
        with self._lock:
            while self._pending:
                try:
                    self.persister.append(self._workflow_type, self._pending[0])
                except PersistenceError as e:
                    logger.warning(f"Session log degraded: {e}")
                    self._tracker.add_warning(str(e))
                    return False
                self._pending.pop(0)
            return True

    def flush_log(self) -> bool:
        """Persist outstanding results and the current selection.

        Safe to call in any state, e.g. from the embedding application's
        shutdown hook. Returns True when nothing is left unpersisted.
        """
        if self._workflow_type is None:
            return True

        persisted = self._drain_pending()

        if self.selection_store and self.config.remember_selection and self._selection is not None:
            try:
                self.selection_store.save(self._workflow_type, self._selection.selected())
            except PersistenceError as e:
                logger.warning(str(e))
                self._tracker.add_warning(str(e))
                persisted = False

        return persisted
