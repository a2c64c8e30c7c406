"""Exception hierarchy for backup/restore sessions."""


class DataBackupError(Exception):
    """Base class for session errors."""


class DiscoveryError(DataBackupError):
    """The catalog source could not be read."""


class UnknownEntryError(DataBackupError, KeyError):
    """A selection operation named an identifier absent from the catalog."""

    def __init__(self, identifier: str):
        super().__init__(f"Unknown catalog entry: {identifier}")
        self.identifier = identifier

    def __str__(self) -> str:
        return self.args[0]


class ManifestError(DataBackupError):
    """The manifest could not be built."""


class EmptyManifestError(ManifestError):
    """No executable entries remained after validation."""


class ManifestConflictError(ManifestError):
    """A conflicting entry was found while the policy forbids conflicts."""

    def __init__(self, conflicts):
        self.conflicts = list(conflicts)
        ids = ", ".join(entry.source_id for entry in self.conflicts)
        super().__init__(f"Conflicting manifest entries: {ids}")


class GatewayUnavailableError(DataBackupError):
    """The privileged execution channel is gone."""


class PersistenceError(DataBackupError):
    """A session log record could not be written durably."""


class NotInitializedError(DataBackupError):
    """The session has not finished initializing."""


class InvalidStateError(DataBackupError):
    """The operation is not allowed in the controller's current state."""
