from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from .git_client import VcsBackend
from .models import FileChange, TrialApplyResult

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingPatch:
    path: Path
    base: str | None
    changes: list[FileChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.path.exists() or self.path.stat().st_size == 0


def capture_pending_patch(
    backend: VcsBackend, base: str | None, scratch: Path
) -> PendingPatch:
    """Serialize the uncommitted edits before anything is allowed to mutate."""
    destination = scratch / "local-changes.patch"
    changes = backend.capture_patch(base, destination)
    _LOGGER.info("Captured %d pending local change(s)", len(changes))
    return PendingPatch(path=destination, base=base, changes=changes)


class ConflictDetector:
    """Applies a pending patch to a disposable copy of a baseline tree."""

    def __init__(self, backend: VcsBackend, scratch: Path) -> None:
        self._backend = backend
        self._scratch = scratch

    def check(self, patch: PendingPatch, baseline: str | None) -> TrialApplyResult:
        area = Path(tempfile.mkdtemp(prefix="trial-", dir=self._scratch))
        result = self._backend.trial_apply(patch.path, baseline, area)
        if result.applies:
            _LOGGER.info("Local edits apply cleanly onto %s", _short(baseline))
        else:
            _LOGGER.warning(
                "Local edits conflict with %s (git apply exited %s): %s",
                _short(baseline),
                result.status,
                result.detail,
            )
        return result

    def marked_tree(
        self, patch: PendingPatch, baseline: str | None
    ) -> tuple[Path, TrialApplyResult]:
        """Three-way trial apply whose tree keeps the conflict markers."""
        area = Path(tempfile.mkdtemp(prefix="marked-", dir=self._scratch))
        result = self._backend.trial_apply(patch.path, baseline, area, three_way=True)
        return area / "tree", result


def _short(ref: str | None) -> str:
    return ref[:12] if ref else "the empty tree"
