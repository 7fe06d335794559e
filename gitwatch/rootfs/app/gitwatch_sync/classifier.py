from __future__ import annotations

import logging
from enum import Enum

import git

from .config import SyncContext
from .errors import RemoteUnreachable
from .git_client import VcsBackend
from .models import Ancestry, RepositoryState

_LOGGER = logging.getLogger(__name__)


class Scenario(str, Enum):
    FIRST_PUBLISH = "first_publish"
    UNBORN_LOCAL = "unborn_local"
    DIVERGED = "diverged"
    EVALUATE = "evaluate"


class RemoteStateClassifier:
    def __init__(self, context: SyncContext, backend: VcsBackend) -> None:
        self._context = context
        self._backend = backend

    def refresh(self) -> RepositoryState:
        """Bring the remote-tracking ref up to date, then snapshot.

        Without a successful round trip there is no way to tell a missing
        branch from an unreachable host, so every transport error is fatal.
        """
        upstream = self._context.upstream
        try:
            if self._backend.remote_branch_exists():
                _LOGGER.debug("Fetching %s", upstream)
                self._backend.fetch()
            else:
                _LOGGER.info("Branch %s does not exist on the remote", upstream)
                self._backend.forget_tracking_ref()
        except git.GitCommandError as exc:
            raise RemoteUnreachable(
                f"Unable to fetch {self._context.branch!r} from remote "
                f"{self._context.remote!r} (network/auth/url?)"
            ) from exc
        return self.snapshot()

    def snapshot(self) -> RepositoryState:
        local = self._backend.resolve("HEAD")
        remote = self._backend.resolve(self._context.tracking_ref)
        local_in_remote = remote_in_local = Ancestry.UNKNOWN
        if local and remote and self._backend.merge_base(local, remote) is not None:
            local_in_remote = _tri(self._backend.is_ancestor(local, remote))
            remote_in_local = _tri(self._backend.is_ancestor(remote, local))
        state = RepositoryState(
            has_local_history=local is not None,
            has_remote_tracking_ref=remote is not None,
            working_tree_dirty=self._backend.has_local_changes(),
            local_ancestor_of_remote=local_in_remote,
            remote_ancestor_of_local=remote_in_local,
            local_head=local,
            remote_head=remote,
        )
        _LOGGER.debug("Repository state: %s", state)
        return state

    @staticmethod
    def scenario(state: RepositoryState) -> Scenario:
        if not state.has_remote_tracking_ref:
            return Scenario.FIRST_PUBLISH
        if not state.has_local_history:
            return Scenario.UNBORN_LOCAL
        if Ancestry.TRUE not in (
            state.local_ancestor_of_remote,
            state.remote_ancestor_of_local,
        ):
            return Scenario.DIVERGED
        return Scenario.EVALUATE


def _tri(value: bool) -> Ancestry:
    return Ancestry.TRUE if value else Ancestry.FALSE
