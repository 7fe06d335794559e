"""In-memory stand-in for ``GitBackend`` used by the decision-logic tests."""

from __future__ import annotations

from pathlib import Path

from git import GitCommandError

from gitwatch_sync.models import FileChange, TrialApplyResult, TrialVerdict


class FakeBackend:
    def __init__(
        self,
        parents: dict[str, tuple[str, ...]] | None = None,
        *,
        local: str | None = None,
        remote: str | None = None,
        remote_exists: bool | None = None,
        dirty: bool = False,
        trial_applies: bool = True,
        push_error: bool = False,
        fetch_error: bool = False,
        apply_error: bool = False,
    ) -> None:
        self.parents = dict(parents or {})
        self.local = local
        self.remote = remote
        self.remote_exists = remote is not None if remote_exists is None else remote_exists
        self.dirty = dirty
        self.trial_applies = trial_applies
        self.push_error = push_error
        self.fetch_error = fetch_error
        self.apply_error = apply_error
        self.pushed: str | None = None
        self.calls: list[str] = []
        self.mutations: list[tuple] = []
        self._counter = 0

    def ancestors(self, sha: str) -> set[str]:
        seen: set[str] = set()
        stack = [sha]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self.parents.get(current, ()))
        return seen

    def remote_branch_exists(self) -> bool:
        self.calls.append("remote_branch_exists")
        if self.fetch_error:
            raise GitCommandError(["git", "ls-remote"], 128, "could not read from remote")
        return self.remote_exists

    def fetch(self) -> None:
        self.calls.append("fetch")

    def forget_tracking_ref(self) -> None:
        self.calls.append("forget_tracking_ref")
        self.remote = None

    def resolve(self, ref: str) -> str | None:
        if ref == "HEAD":
            return self.local
        if ref.startswith("refs/remotes/"):
            return self.remote
        return ref if ref in self.parents else None

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        return ancestor in self.ancestors(descendant)

    def merge_base(self, first: str, second: str) -> str | None:
        common = self.ancestors(first) & self.ancestors(second)
        return min(common) if common else None

    def has_local_changes(self) -> bool:
        return self.dirty

    def capture_patch(self, base: str | None, destination: Path) -> list[FileChange]:
        self.calls.append("capture_patch")
        destination.write_text("diff --git a/x.txt b/x.txt\n" if self.dirty else "")
        return [FileChange(path="x.txt", change_type="modified")] if self.dirty else []

    def trial_apply(self, patch, baseline, area, *, three_way=False) -> TrialApplyResult:
        self.calls.append("trial_apply_3way" if three_way else "trial_apply")
        (area / "tree").mkdir(parents=True, exist_ok=True)
        if self.trial_applies:
            return TrialApplyResult(verdict=TrialVerdict.APPLIES, status=0)
        return TrialApplyResult(
            verdict=TrialVerdict.CONFLICTS,
            status=1,
            detail="error: patch failed: x.txt:3",
            conflicted=["x.txt"] if three_way else [],
        )

    def align_to(self, ref: str) -> None:
        self.mutations.append(("align_to", ref))
        self.local = ref

    def restore_missing(self) -> list[str]:
        return []

    def reset_to(self, ref: str) -> None:
        self.mutations.append(("reset_to", ref))
        self.local = ref

    def apply_patch(self, patch: Path) -> None:
        if self.apply_error:
            raise GitCommandError(["git", "apply", "--cached"], 1, "error: patch failed: x.txt:1")
        self.mutations.append(("apply_patch",))

    def stage_all(self) -> None:
        self.mutations.append(("stage_all",))

    def commit(self, message: str, *, allow_empty: bool = False) -> str | None:
        if not self.dirty and not allow_empty:
            return None
        self._counter += 1
        sha = f"new{self._counter}"
        self.parents[sha] = (self.local,) if self.local else ()
        self.local = sha
        self.dirty = False
        self.mutations.append(("commit", message, allow_empty))
        return sha

    def push(self) -> None:
        if self.push_error:
            raise GitCommandError(["git", "push"], 1, "! [rejected] main -> main (fetch first)")
        self.mutations.append(("push",))
        self.pushed = self.remote = self.local

    def incoming_log(self, base: str | None, tip: str) -> str:
        return f"* {tip} incoming"

    def changed_paths(self, base: str | None, tip: str) -> list[FileChange]:
        return [FileChange(path="z.txt", change_type="modified")] if base != tip else []

    def status_text(self) -> str:
        return " M x.txt\n" if self.dirty else ""
