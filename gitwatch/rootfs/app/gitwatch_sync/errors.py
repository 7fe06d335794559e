"""Failures that end a reconciliation run, each mapped to a process exit code."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ReconciliationReport

EXIT_OK = 0
EXIT_POLICY_FAILURE = 1
EXIT_TRANSPORT_INDETERMINATE = 2
EXIT_DIRECTORY_MISSING = 3


class SyncError(RuntimeError):
    """Base class for every failure the pre-flight reports to the watcher."""

    exit_code = EXIT_POLICY_FAILURE

    def __init__(self, message: str, report: ReconciliationReport | None = None) -> None:
        super().__init__(message)
        self.report = report


class ConfigurationError(SyncError):
    """Raised when the options cannot be turned into a usable context."""


class CredentialMissing(SyncError):
    """Raised when the SSH key file does not exist."""


class CredentialPermissionUnsafe(SyncError):
    """Raised when the SSH key is readable or writable by group/other."""


class TransportAuthFailed(SyncError):
    """Raised when the remote host rejects the key."""


class TransportUnexpectedStatus(SyncError):
    exit_code = EXIT_TRANSPORT_INDETERMINATE


class RemoteUnreachable(SyncError):
    """Raised when the remote branch cannot be queried or fetched."""


class LocalBehindRemoteAbort(SyncError):
    """Raised when the remote has commits that cannot be fast-forwarded."""


class ConflictDetected(SyncError):
    """Raised when local edits do not apply on top of the baseline."""


class PushRejectedAfterLocalCommit(SyncError):
    """Raised when the push fails after a local commit was already created.

    The commit is kept. The next run classifies against it, so an operator
    has to look at the branch before the watcher tries again.
    """

    def __init__(
        self,
        message: str,
        commit: str | None,
        report: ReconciliationReport | None = None,
    ) -> None:
        super().__init__(message, report)
        self.commit = commit


class LocalEditsNotReplayed(SyncError):
    """Raised when local edits could not be re-applied after adopting the baseline.

    ``saved_patch`` points at the copy of the edits kept outside the run's
    scratch space.
    """

    def __init__(
        self,
        message: str,
        saved_patch: Path,
        report: ReconciliationReport | None = None,
    ) -> None:
        super().__init__(message, report)
        self.saved_patch = saved_patch


class BootstrapDirectoryMissing(SyncError):
    exit_code = EXIT_DIRECTORY_MISSING
