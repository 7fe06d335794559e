from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class FileChange(BaseModel):
    path: str
    change_type: Literal["added", "modified", "deleted", "renamed"]
    previous_path: str | None = None


class Ancestry(str, Enum):
    TRUE = "true"
    FALSE = "false"
    UNKNOWN = "unknown"


class RepositoryState(BaseModel):
    """Snapshot of the local store against the remote-tracking ref."""

    model_config = ConfigDict(frozen=True)

    has_local_history: bool
    has_remote_tracking_ref: bool
    working_tree_dirty: bool
    local_ancestor_of_remote: Ancestry = Ancestry.UNKNOWN
    remote_ancestor_of_local: Ancestry = Ancestry.UNKNOWN
    local_head: str | None = None
    remote_head: str | None = None


class Outcome(str, Enum):
    FIRST_PUBLISH = "FirstPublish"
    ADOPT_REMOTE_NO_LOCAL_EDITS = "AdoptRemoteNoLocalEdits"
    ADOPT_REMOTE_THEN_COMMIT_LOCAL_EDITS = "AdoptRemoteThenCommitLocalEdits"
    CONFLICT_DETECTED = "ConflictDetected"
    LOCAL_BEHIND_REMOTE_ABORT = "LocalBehindRemoteAbort"
    ALREADY_SYNCHRONIZED = "AlreadySynchronized"


class Phase(str, Enum):
    START = "Start"
    VALIDATED = "Validated"
    CLASSIFIED = "Classified"
    ALIGNING = "Aligning"
    DETECTING = "Detecting"
    DECIDED = "Decided"
    MUTATING = "Mutating"
    ABORTING = "Aborting"
    END = "End"


class TrialVerdict(str, Enum):
    APPLIES = "Applies"
    CONFLICTS = "Conflicts"


class TrialApplyResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    verdict: TrialVerdict
    status: int
    detail: str = ""
    conflicted: list[str] = Field(default_factory=list)

    @property
    def applies(self) -> bool:
        return self.verdict is TrialVerdict.APPLIES


class ReconciliationReport(BaseModel):
    outcome: Outcome | None = None
    branch: str
    remote: str
    local_head_before: str | None = None
    local_head_after: str | None = None
    remote_head: str | None = None
    commit: str | None = None
    pushed: bool = False
    artifact: Path | None = None
    local_changes: list[FileChange] = Field(default_factory=list)
    incoming_changes: list[FileChange] = Field(default_factory=list)
    phases: list[Phase] = Field(default_factory=list)
    started_at: datetime
    finished_at: datetime | None = None
    error: str | None = None
