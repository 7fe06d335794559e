from __future__ import annotations

import logging
import shutil
import tarfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, TypeVar

import git

from .config import SyncContext
from .conflicts import ConflictDetector, PendingPatch
from .git_client import VcsBackend
from .models import FileChange, RepositoryState, TrialApplyResult

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

REPORT_NAME = "diagnostics.txt"
PATCH_NAME = "local-changes.patch"
TREE_NAME = "tree"


def unique_destination(path: Path, overwrite: bool = False, now: datetime | None = None) -> Path:
    """Pick an archive name that does not clobber an earlier artifact."""
    if overwrite or not path.exists():
        return path
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    suffix = "".join(path.suffixes)
    stem = path.name[: len(path.name) - len(suffix)] if suffix else path.name
    candidate = path.with_name(f"{stem}-{stamp}{suffix}")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{stem}-{stamp}-{counter}{suffix}")
        counter += 1
    return candidate


def preserve_patch(context: SyncContext, patch: PendingPatch) -> Path:
    """Copy the pending patch next to the conflict archive, outside the scratch space."""
    destination = unique_destination(context.conflict_archive.with_name(PATCH_NAME))
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(patch.path, destination)
    _LOGGER.debug("Saved a copy of the pending local edits to %s", destination)
    return destination


def _format_changes(changes: list[FileChange]) -> list[str]:
    if not changes:
        return ["  (none)"]
    lines = []
    for change in changes:
        if change.previous_path:
            lines.append(f"  {change.change_type}: {change.previous_path} -> {change.path}")
        else:
            lines.append(f"  {change.change_type}: {change.path}")
    return lines


class ConflictArtifactBuilder:
    def __init__(
        self, context: SyncContext, backend: VcsBackend, detector: ConflictDetector
    ) -> None:
        self._context = context
        self._backend = backend
        self._detector = detector

    def build(
        self,
        state: RepositoryState,
        patch: PendingPatch,
        baseline: str | None,
        trial: TrialApplyResult,
        scratch: Path,
    ) -> Path:
        tree, marked = self._detector.marked_tree(patch, baseline)
        report = scratch / REPORT_NAME
        report.write_text(
            self.render_report(state, patch, baseline, trial, marked), encoding="utf-8"
        )

        destination = unique_destination(
            self._context.conflict_archive, self._context.conflict_archive_overwrite
        )
        destination.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(destination, "w:gz") as archive:
            archive.add(tree, arcname=TREE_NAME)
            archive.add(report, arcname=REPORT_NAME)
            archive.add(patch.path, arcname=PATCH_NAME)
        _LOGGER.warning(
            "Saved conflict artifact %s (conflict-marked files, diagnostics report, local patch)",
            destination,
        )
        return destination

    def render_report(
        self,
        state: RepositoryState,
        patch: PendingPatch,
        baseline: str | None,
        trial: TrialApplyResult,
        marked: TrialApplyResult,
    ) -> str:
        remote_exists = state.remote_head is not None
        lines = [
            f"Remote: {self._context.upstream} (exists: {str(remote_exists).lower()})",
            f"Timestamp: {datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')}",
            f"Local HEAD: {state.local_head or '(none)'}",
            f"Baseline: {baseline or '(empty tree)'}",
            "",
            "Incoming commits relative to your local base:",
        ]
        if remote_exists:
            local, remote = state.local_head, state.remote_head
            incoming = self._safe(lambda: self._backend.incoming_log(local, remote))
            lines.append(incoming or "  (none)")
            lines += ["", "Paths changed upstream:"]
            lines += _format_changes(
                self._safe(lambda: self._backend.changed_paths(local, remote)) or []
            )
        else:
            lines.append("(none; remote branch not found, baseline is the empty tree)")
        lines += ["", "Paths changed locally:"]
        lines += _format_changes(patch.changes)
        lines += [
            "",
            "Local status:",
            self._safe(self._backend.status_text) or "  (clean)",
            "",
            f"Trial apply status: {trial.status} ({trial.verdict.value})",
            trial.detail or "",
            "",
            f"3-way apply status: {marked.status} "
            "(0 means no conflicts; non-zero leaves conflict markers in tree/)",
            "",
            "Conflicted files in artifact:",
        ]
        lines += [f"  {path}" for path in marked.conflicted] or ["  (none recorded)"]
        lines += [
            "",
            f"Local patch: {PATCH_NAME}",
            f"Inspect or apply manually with: git apply --3way {PATCH_NAME}",
            "",
        ]
        return "\n".join(lines)

    @staticmethod
    def _safe(producer: Callable[[], T]) -> T | None:
        try:
            return producer()
        except git.GitCommandError as exc:
            _LOGGER.debug("Diagnostics command failed: %s", exc)
            return None
