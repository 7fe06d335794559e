from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

import git

from .auth import AuthProber
from .bootstrap import RepositoryBootstrapper
from .config import SyncContext, load_context
from .credentials import CredentialGate
from .errors import EXIT_OK, EXIT_POLICY_FAILURE, PushRejectedAfterLocalCommit, SyncError
from .git_client import GitBackend
from .models import ReconciliationReport
from .notifier import Notifier
from .reconciler import Reconciler

_LOGGER = logging.getLogger(__name__)


class PreflightService:
    """One pre-flight run: validate, reconcile, report, return an exit code."""

    def __init__(self, context: SyncContext | None = None) -> None:
        self.context = context or load_context()
        self.backend = GitBackend(self.context)
        self.notifier = Notifier(self.context)
        self.report: ReconciliationReport | None = None

    def _probe_url(self) -> str | None:
        if self.context.remote_url or not self.context.repo_dir.is_dir():
            return self.context.remote_url
        return self.backend.remote_url(self.context.remote)

    def _probe(self) -> None:
        AuthProber(self.context, remote_url=self._probe_url()).ensure_authenticated()

    def checks(self) -> list[Callable[[], Any]]:
        return [
            CredentialGate(self.context).check,
            self._probe,
            RepositoryBootstrapper(self.context, self.backend).ensure,
        ]

    def run(self) -> int:
        reconciler = Reconciler(self.context, self.backend, checks=self.checks())
        try:
            self.report = reconciler.run()
        except PushRejectedAfterLocalCommit as exc:
            _LOGGER.error("%s", exc)
            _LOGGER.error(
                "Local commit %s was NOT published. The next run will classify against it; "
                "inspect %s before letting the watcher retry.",
                exc.commit or "(none)",
                self.context.upstream,
            )
            return self._finish(exc.report, exc.exit_code)
        except SyncError as exc:
            _LOGGER.error("%s", exc)
            return self._finish(exc.report, exc.exit_code)
        except git.GitCommandError as exc:
            _LOGGER.exception("Unexpected git failure: %s", exc)
            return self._finish(None, EXIT_POLICY_FAILURE, str(exc))
        _LOGGER.info(
            "Pre-flight complete: %s (%s)",
            self.report.outcome.value if self.report.outcome else "no decision",
            (self.report.local_head_after or "no commits")[:12],
        )
        return self._finish(self.report, EXIT_OK)

    def _finish(
        self,
        report: ReconciliationReport | None,
        exit_code: int,
        error: str | None = None,
    ) -> int:
        if report is None:
            report = ReconciliationReport(
                branch=self.context.branch,
                remote=self.context.remote,
                started_at=datetime.now(timezone.utc),
                error=error,
            )
        self.report = report
        try:
            self.notifier.notify(report, exit_code)
        finally:
            self.notifier.close()
        return exit_code
