from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol

import git

from .config import SyncContext
from .models import FileChange, TrialApplyResult, TrialVerdict

_LOGGER = logging.getLogger(__name__)


class VcsBackend(Protocol):
    """Git capabilities the reconciliation logic depends on.

    ``GitBackend`` implements it against a real store; tests substitute an
    in-memory version to exercise the decision logic without a repository.
    """

    def remote_branch_exists(self) -> bool: ...

    def fetch(self) -> None: ...

    def forget_tracking_ref(self) -> None: ...

    def resolve(self, ref: str) -> str | None: ...

    def is_ancestor(self, ancestor: str, descendant: str) -> bool: ...

    def merge_base(self, first: str, second: str) -> str | None: ...

    def has_local_changes(self) -> bool: ...

    def capture_patch(self, base: str | None, destination: Path) -> list[FileChange]: ...

    def trial_apply(
        self,
        patch: Path,
        baseline: str | None,
        area: Path,
        *,
        three_way: bool = False,
    ) -> TrialApplyResult: ...

    def align_to(self, ref: str) -> None: ...

    def restore_missing(self) -> list[str]: ...

    def reset_to(self, ref: str) -> None: ...

    def apply_patch(self, patch: Path) -> None: ...

    def stage_all(self) -> None: ...

    def commit(self, message: str, *, allow_empty: bool = False) -> str | None: ...

    def push(self) -> None: ...

    def incoming_log(self, base: str | None, tip: str) -> str: ...

    def changed_paths(self, base: str | None, tip: str) -> list[FileChange]: ...

    def status_text(self) -> str: ...


def parse_name_status(output: str) -> list[FileChange]:
    changes: list[FileChange] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        status, path, *rest = line.split("\t")
        if status.startswith(("R", "C")):
            new_path = rest[0] if rest else path
            changes.append(
                FileChange(path=new_path, change_type="renamed", previous_path=path)
            )
            continue
        changes.append(FileChange(path=path, change_type=_map_status(status)))
    return changes


def _map_status(status: str) -> str:
    mapping = {
        "A": "added",
        "M": "modified",
        "D": "deleted",
    }
    return mapping.get(status[:1], "modified")


class GitBackend:
    """Runs git against a store whose metadata lives outside the working tree.

    Every command carries ``GIT_DIR`` and ``GIT_WORK_TREE`` so nothing is ever
    written into the watched directory except through the working tree itself.
    """

    def __init__(self, context: SyncContext) -> None:
        self._context = context
        self._git = git.Git(str(context.repo_dir))
        self._git.update_environment(**self._environment(context.repo_dir))
        self._empty_tree: str | None = None

    def _environment(self, work_tree: Path) -> dict[str, str]:
        return {
            "GIT_DIR": str(self._context.git_dir),
            "GIT_WORK_TREE": str(work_tree),
            "GIT_OPTIONAL_LOCKS": "0",
            "GIT_TERMINAL_PROMPT": "0",
        }

    def _isolated(self, work_tree: Path, index: Path) -> git.Git:
        isolated = git.Git(str(work_tree))
        isolated.update_environment(
            GIT_INDEX_FILE=str(index), **self._environment(work_tree)
        )
        return isolated

    # -- bootstrap -----------------------------------------------------------

    def store_exists(self) -> bool:
        return (self._context.git_dir / "objects").is_dir()

    def init_store(self) -> None:
        self._git.init(f"--initial-branch={self._context.branch}")

    def set_config(self, key: str, value: str) -> None:
        self._git.config("--replace-all", key, value)

    def get_config(self, key: str) -> str | None:
        status, stdout, _ = self._git.config(
            "--get", key, with_extended_output=True, with_exceptions=False
        )
        return stdout.strip() if status == 0 else None

    def remote_url(self, name: str) -> str | None:
        if not self.store_exists():
            return None
        status, stdout, _ = self._git.remote(
            "get-url", name, with_extended_output=True, with_exceptions=False
        )
        return stdout.strip() if status == 0 else None

    def ensure_remote(self, name: str, url: str) -> None:
        current = self.remote_url(name)
        if current is None:
            _LOGGER.info("Adding remote %s", name)
            self._git.remote("add", name, url)
        elif current != url:
            _LOGGER.info("Updating URL of remote %s", name)
            self._git.remote("set-url", name, url)

    def head_target(self) -> str | None:
        status, stdout, _ = self._git.symbolic_ref(
            "--quiet", "HEAD", with_extended_output=True, with_exceptions=False
        )
        return stdout.strip() if status == 0 else None

    def point_head(self, ref: str) -> None:
        self._git.symbolic_ref("HEAD", ref)

    # -- remote state ----------------------------------------------------------

    def remote_branch_exists(self) -> bool:
        args = ("--exit-code", "--heads", self._context.remote, self._context.branch_ref)
        status, _, stderr = self._git.ls_remote(
            *args, with_extended_output=True, with_exceptions=False
        )
        if status == 0:
            return True
        if status == 2:
            return False
        raise git.GitCommandError(["git", "ls-remote", *args], status, stderr)

    def fetch(self) -> None:
        refspec = f"+{self._context.branch_ref}:{self._context.tracking_ref}"
        self._git.fetch("--prune", self._context.remote, refspec)

    def forget_tracking_ref(self) -> None:
        if self.resolve(self._context.tracking_ref) is not None:
            _LOGGER.info("Dropping stale %s", self._context.tracking_ref)
            self._git.update_ref("-d", self._context.tracking_ref)

    def resolve(self, ref: str) -> str | None:
        status, stdout, _ = self._git.rev_parse(
            "--verify",
            "--quiet",
            f"{ref}^{{commit}}",
            with_extended_output=True,
            with_exceptions=False,
        )
        return stdout.strip() if status == 0 else None

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        args = ("--is-ancestor", ancestor, descendant)
        status, _, stderr = self._git.merge_base(
            *args, with_extended_output=True, with_exceptions=False
        )
        if status in (0, 1):
            return status == 0
        raise git.GitCommandError(["git", "merge-base", *args], status, stderr)

    def merge_base(self, first: str, second: str) -> str | None:
        status, stdout, stderr = self._git.merge_base(
            first, second, with_extended_output=True, with_exceptions=False
        )
        if status == 0:
            return stdout.strip()
        if status == 1:
            return None
        raise git.GitCommandError(["git", "merge-base", first, second], status, stderr)

    def status_text(self) -> str:
        return self._git.status("--porcelain")

    def has_local_changes(self) -> bool:
        return bool(self.status_text().strip())

    # -- patches -----------------------------------------------------------------

    def empty_tree(self) -> str:
        if self._empty_tree is None:
            self._empty_tree = self._git.hash_object("-w", "-t", "tree", os.devnull).strip()
        return self._empty_tree

    def capture_patch(self, base: str | None, destination: Path) -> list[FileChange]:
        """Write every uncommitted change relative to ``base`` into ``destination``.

        The working tree is staged into a throw-away index seeded from ``base``,
        so untracked files, deletions and renames are captured while the real
        index stays untouched.
        """
        base_tree = base or self.empty_tree()
        index = destination.with_name(f"{destination.name}.index")
        try:
            with self._git.custom_environment(GIT_INDEX_FILE=str(index)):
                self._git.read_tree(base_tree)
                self._git.add("-A")
                patch = self._git.diff(
                    "--cached",
                    "--binary",
                    "--full-index",
                    "-M",
                    base_tree,
                    stdout_as_string=False,
                    strip_newline_in_stdout=False,
                )
                names = self._git.diff("--cached", "--name-status", "-M", base_tree)
        finally:
            index.unlink(missing_ok=True)
        destination.write_bytes(patch)
        return parse_name_status(names)

    def trial_apply(
        self,
        patch: Path,
        baseline: str | None,
        area: Path,
        *,
        three_way: bool = False,
    ) -> TrialApplyResult:
        tree = area / "tree"
        tree.mkdir(parents=True, exist_ok=True)
        isolated = self._isolated(tree, area / "index")
        isolated.read_tree(baseline or self.empty_tree())
        isolated.checkout_index("--all", "--force", "-u")
        mode = "--3way" if three_way else "--index"
        status, _, stderr = isolated.apply(
            mode, str(patch), with_extended_output=True, with_exceptions=False
        )
        conflicted: list[str] = []
        if three_way and status != 0:
            unmerged = isolated.ls_files("--unmerged")
            conflicted = sorted(
                {line.split("\t", 1)[1] for line in unmerged.splitlines() if "\t" in line}
            )
        verdict = TrialVerdict.APPLIES if status == 0 else TrialVerdict.CONFLICTS
        return TrialApplyResult(
            verdict=verdict,
            status=status,
            detail=stderr.strip(),
            conflicted=conflicted,
        )

    # -- mutations ---------------------------------------------------------------

    def align_to(self, ref: str) -> None:
        self._git.update_ref(self._context.branch_ref, ref)
        self._git.symbolic_ref("HEAD", self._context.branch_ref)
        self._git.read_tree("-m", ref)

    def restore_missing(self) -> list[str]:
        listing = self._git.ls_files("--deleted", "-z")
        paths = [path for path in listing.split("\0") if path]
        if paths:
            self._git.checkout_index("--force", "--", *paths)
        return paths

    def reset_to(self, ref: str) -> None:
        self._git.reset("--hard", ref)

    def apply_patch(self, patch: Path) -> None:
        """Replay ``patch`` onto the index, then make the working tree match it.

        The reset before this restored every file the patch deletes or renames
        away, so those are removed from disk again here.
        """
        self._git.apply("--cached", str(patch))
        self._git.checkout_index("--all", "--force")
        deleted = self._git.diff(
            "--cached", "--name-only", "--no-renames", "--diff-filter=D", "-z", "HEAD"
        )
        for path in filter(None, deleted.split("\0")):
            (self._context.repo_dir / path).unlink(missing_ok=True)

    def stage_all(self) -> None:
        self._git.add("-A")

    def commit(self, message: str, *, allow_empty: bool = False) -> str | None:
        status, _, _ = self._git.diff(
            "--cached", "--quiet", with_extended_output=True, with_exceptions=False
        )
        if status == 0 and not allow_empty:
            _LOGGER.debug("Nothing staged, skipping commit")
            return None
        args = ["-m", message]
        if allow_empty:
            args.append("--allow-empty")
        self._git.commit(*args)
        return self.resolve("HEAD")

    def push(self) -> None:
        refspec = f"{self._context.branch_ref}:{self._context.branch_ref}"
        self._git.push("--set-upstream", self._context.remote, refspec)

    # -- diagnostics -------------------------------------------------------------

    def incoming_log(self, base: str | None, tip: str) -> str:
        if base is None:
            return self._git.log("--oneline", "--decorate", tip)
        return self._git.log(
            "--oneline", "--decorate", "--graph", "--boundary", f"{base}..{tip}"
        )

    def changed_paths(self, base: str | None, tip: str) -> list[FileChange]:
        output = self._git.diff("--name-status", "-M", base or self.empty_tree(), tip)
        return parse_name_status(output)
