"""Decides and carries out the single action a pre-flight run may take.

A run walks ``Start -> Validated -> Classified -> {Aligning | Detecting} ->
Decided -> {Mutating | Aborting} -> End``. Nothing outside the Mutating phase
writes to the working tree, the real index or the local branch, except the
metadata-only alignment of an unborn store.
"""

from __future__ import annotations

import logging
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Sequence

import git

from .artifact import ConflictArtifactBuilder, preserve_patch
from .classifier import RemoteStateClassifier, Scenario
from .config import SyncContext
from .conflicts import ConflictDetector, PendingPatch, capture_pending_patch
from .errors import (
    ConflictDetected,
    LocalBehindRemoteAbort,
    LocalEditsNotReplayed,
    PushRejectedAfterLocalCommit,
    SyncError,
)
from .fast_forward import FastForwardEnforcer
from .git_client import VcsBackend
from .models import Outcome, Phase, ReconciliationReport, RepositoryState

_LOGGER = logging.getLogger(__name__)


class _Placeholders(dict):
    def __missing__(self, key: str) -> str:
        return "{" + str(key) + "}"


def render_message(template: str, context: SyncContext, now: datetime) -> str:
    return template.format_map(
        _Placeholders(
            timestamp=now.strftime("%Y-%m-%dT%H:%M:%SZ"),
            branch=context.branch,
            remote=context.remote,
        )
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Reconciler:
    def __init__(
        self,
        context: SyncContext,
        backend: VcsBackend,
        checks: Sequence[Callable[[], Any]] = (),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._context = context
        self._backend = backend
        self._checks = tuple(checks)
        self._clock = clock
        self._classifier = RemoteStateClassifier(context, backend)
        self._enforcer = FastForwardEnforcer(context, backend)

    def run(self) -> ReconciliationReport:
        report = ReconciliationReport(
            branch=self._context.branch,
            remote=self._context.remote,
            started_at=self._clock(),
        )
        try:
            with tempfile.TemporaryDirectory(prefix="gitwatch-sync-") as tmp:
                self._run(report, Path(tmp))
        except SyncError as exc:
            report.error = str(exc)
            if exc.report is None:
                exc.report = report
            raise
        finally:
            report.finished_at = self._clock()
            _advance(report, Phase.END)
        return report

    def _run(self, report: ReconciliationReport, scratch: Path) -> None:
        _advance(report, Phase.START)
        for check in self._checks:
            check()
        _advance(report, Phase.VALIDATED)

        state = self._classifier.refresh()
        report.local_head_before = state.local_head
        report.remote_head = state.remote_head
        _advance(report, Phase.CLASSIFIED)
        scenario = self._classifier.scenario(state)

        if scenario is Scenario.UNBORN_LOCAL:
            _advance(report, Phase.ALIGNING)
            self._enforcer.align_unborn(state)
            state = self._classifier.snapshot()
            scenario = self._classifier.scenario(state)

        if scenario is Scenario.FIRST_PUBLISH:
            if state.working_tree_dirty:
                self._detect(state, state.local_head, report, scratch)
            _decide(report, Outcome.FIRST_PUBLISH)
            _advance(report, Phase.MUTATING)
            self._first_publish(state, report)
        else:
            baseline = self._enforcer.baseline(state)
            if baseline is None:
                _decide(report, Outcome.LOCAL_BEHIND_REMOTE_ABORT)
                _advance(report, Phase.ABORTING)
                raise LocalBehindRemoteAbort(
                    f"Local branch is behind {self._context.upstream} (remote has commits not "
                    "in local). Resolve manually (pull/rebase/merge) and retry.",
                    report,
                )
            if baseline != state.local_head:
                report.incoming_changes = self._backend.changed_paths(state.local_head, baseline)

            patch = None
            if state.working_tree_dirty:
                patch = self._detect(state, baseline, report, scratch)

            if patch is not None:
                _decide(report, Outcome.ADOPT_REMOTE_THEN_COMMIT_LOCAL_EDITS)
                _advance(report, Phase.MUTATING)
                self._replay(state, baseline, patch, report)
            elif baseline == state.local_head:
                _decide(report, Outcome.ALREADY_SYNCHRONIZED)
                _advance(report, Phase.MUTATING)
                _LOGGER.info("Sync check passed: local contains %s", self._context.upstream)
            else:
                _decide(report, Outcome.ADOPT_REMOTE_NO_LOCAL_EDITS)
                _advance(report, Phase.MUTATING)
                self._enforcer.adopt(state, baseline)
                _LOGGER.info("No local edits; synced to %s", self._context.upstream)

        report.local_head_after = self._backend.resolve("HEAD")

    def _detect(
        self,
        state: RepositoryState,
        baseline: str | None,
        report: ReconciliationReport,
        scratch: Path,
    ) -> PendingPatch | None:
        _advance(report, Phase.DETECTING)
        patch = capture_pending_patch(self._backend, state.local_head, scratch)
        report.local_changes = patch.changes
        if patch.is_empty:
            _LOGGER.info("Working tree status is dirty but the captured patch is empty")
            return None

        detector = ConflictDetector(self._backend, scratch)
        trial = detector.check(patch, baseline)
        if trial.applies:
            return patch

        _decide(report, Outcome.CONFLICT_DETECTED)
        _advance(report, Phase.ABORTING)
        if self._context.conflict_artifacts:
            builder = ConflictArtifactBuilder(self._context, self._backend, detector)
            report.artifact = builder.build(state, patch, baseline, trial, scratch)
        where = self._context.upstream if state.remote_head else "an empty new branch"
        raise ConflictDetected(
            f"Conflicts detected between local edits and {where}; leaving files unchanged",
            report,
        )

    def _first_publish(self, state: RepositoryState, report: ReconciliationReport) -> None:
        self._backend.stage_all()
        if state.has_local_history:
            template = self._context.commit_message
        else:
            template = self._context.initial_commit_message
        report.commit = self._backend.commit(
            render_message(template, self._context, self._clock()),
            allow_empty=not state.has_local_history,
        )
        self._publish(report)
        _LOGGER.info("Created remote branch %s", self._context.upstream)

    def _replay(
        self,
        state: RepositoryState,
        baseline: str,
        patch: PendingPatch,
        report: ReconciliationReport,
    ) -> None:
        # Only copy of the edits between the reset and the re-apply.
        saved = preserve_patch(self._context, patch)
        try:
            self._enforcer.adopt(state, baseline)
            self._backend.apply_patch(patch.path)
        except git.GitCommandError as exc:
            report.artifact = saved
            report.local_head_after = self._backend.resolve("HEAD")
            raise LocalEditsNotReplayed(
                f"Could not re-apply local edits on top of {baseline[:12]}; they are saved "
                f"in {saved}. Apply them manually with: git apply --3way {saved}",
                saved_patch=saved,
                report=report,
            ) from exc
        except LocalBehindRemoteAbort:
            saved.unlink(missing_ok=True)
            raise
        saved.unlink(missing_ok=True)

        self._backend.stage_all()
        report.commit = self._backend.commit(
            render_message(self._context.commit_message, self._context, self._clock())
        )
        if report.commit is None:
            _LOGGER.info("Local edits are already part of %s; nothing to push", baseline[:12])
            return
        self._publish(report)
        _LOGGER.info(
            "Applied local edits cleanly and committed %s on top of %s",
            report.commit[:12],
            baseline[:12],
        )

    def _publish(self, report: ReconciliationReport) -> None:
        try:
            self._backend.push()
        except git.GitCommandError as exc:
            report.local_head_after = self._backend.resolve("HEAD")
            if report.commit:
                committed = f"committing {report.commit[:12]} locally"
            else:
                committed = "preparing the branch"
            raise PushRejectedAfterLocalCommit(
                f"Push to {self._context.upstream} was rejected after {committed}; "
                "the local commit is kept and needs operator attention",
                commit=report.commit,
                report=report,
            ) from exc
        report.pushed = True


def _advance(report: ReconciliationReport, phase: Phase) -> None:
    report.phases.append(phase)
    _LOGGER.debug("Phase -> %s", phase.value)


def _decide(report: ReconciliationReport, outcome: Outcome) -> None:
    report.outcome = outcome
    _advance(report, Phase.DECIDED)
    _LOGGER.info("Decision: %s", outcome.value)
