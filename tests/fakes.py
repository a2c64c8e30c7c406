"""Fakes and builders shared by the test modules."""

import posixpath
import threading
import time

from databackup.errors import GatewayUnavailableError
from databackup.session import (
    CatalogSnapshot,
    ExecutionResult,
    Outcome,
    PrivilegedGateway,
    SnapshotRef,
)


class FakeCatalogSource:
    """In-memory catalog source."""

    def __init__(self, apps=None, media=None, snapshots=None, occupied=None, error=None):
        self.apps = apps or []
        self.media = media or []
        self.snapshots = snapshots or []
        self.occupied = set(occupied or [])
        self.error = error
        self.calls = 0

    def list_apps(self):
        self.calls += 1
        if self.error:
            raise self.error
        return iter(self.apps)

    def list_media(self):
        self.calls += 1
        if self.error:
            raise self.error
        return iter(self.media)

    def list_snapshots(self, workflow_type):
        if self.error:
            raise self.error
        namespace = workflow_type.strategy.snapshot_namespace
        return [ref for ref in self.snapshots if f"/{namespace}/" in ref.location]

    def target_exists(self, workflow_type, identifier):
        return identifier in self.occupied


class FakeGateway(PrivilegedGateway):
    """Gateway double: fails or dies on demand and records what it ran."""

    def __init__(self, connect_result=True, fail_ids=(), dead_on_call=None, delays=None):
        self.connect_result = connect_result
        self.fail_ids = set(fail_ids)
        self.dead_on_call = dead_on_call
        self.delays = delays or {}
        self.executed = []
        self.closed = False
        self._lock = threading.Lock()

    def connect(self):
        return self.connect_result

    def execute(self, entry):
        with self._lock:
            self.executed.append(entry.source_id)
            call = len(self.executed)
        if self.dead_on_call is not None and call >= self.dead_on_call:
            raise GatewayUnavailableError("root access revoked")

        time.sleep(self.delays.get(entry.source_id, 0))

        if entry.source_id in self.fail_ids:
            return ExecutionResult.for_entry(entry, Outcome.FAILED, error_detail="permission denied")
        return ExecutionResult.for_entry(entry, Outcome.SUCCESS, bytes_processed=1024, output="ok")

    def close(self):
        self.closed = True


def app(identifier, version="1", installed=True):
    return {"id": identifier, "name": identifier.title(), "size": 100, "version": version, "installed": installed}


def snapshot(identifier, version="20240101_120000", namespace="apps", app_version="1",
             components=("apk", "data"), stored_as=None):
    stored_as = stored_as or posixpath.basename(identifier.rstrip("/"))
    return SnapshotRef(
        identifier=identifier,
        version=version,
        location=f"/storage/emulated/0/DataBackup/{namespace}/{stored_as}/{version}",
        app_version=app_version,
        components=components,
    )


class StaticCatalog:
    """Item catalog serving fixed entries regardless of any source."""

    def __init__(self, entries):
        self.entries = entries

    def load(self, workflow_type):
        return CatalogSnapshot(workflow_type, self.entries)


class SlowHandshakeGateway(FakeGateway):
    """Gateway whose handshake takes a while; records connect and close order."""

    def __init__(self, delay=0.3, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay
        self.events = []

    def connect(self):
        time.sleep(self.delay)
        self.events.append("connected")
        return self.connect_result

    def close(self):
        self.events.append("closed")
        super().close()
