"""Interface to the privileged execution channel."""

import abc

from .types import ExecutionResult, ManifestEntry


class PrivilegedGateway(abc.ABC):
    """Executes manifest entries with elevated privileges.

    ``execute`` reports expected failures (permission denied, missing file,
    crashed process) as ``Outcome.FAILED`` results. It raises
    :class:`~databackup.errors.GatewayUnavailableError` only when the channel
    itself is gone. Calls are independent of each other.
    """

    @abc.abstractmethod
    def connect(self) -> bool:
        """Initialization handshake. Returns False when privileges are unavailable."""

    @abc.abstractmethod
    def execute(self, entry: ManifestEntry) -> ExecutionResult:
        """Run one manifest entry and report its outcome."""

    def close(self) -> None:
        """Release the channel. Called once the session reaches a terminal state."""
