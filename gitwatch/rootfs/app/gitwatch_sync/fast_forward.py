from __future__ import annotations

import logging

from .config import SyncContext
from .errors import LocalBehindRemoteAbort
from .git_client import VcsBackend
from .models import Ancestry, RepositoryState

_LOGGER = logging.getLogger(__name__)


class FastForwardEnforcer:
    """Only ever moves the local branch along an existing line of history."""

    def __init__(self, context: SyncContext, backend: VcsBackend) -> None:
        self._context = context
        self._backend = backend

    def align_unborn(self, state: RepositoryState) -> list[str]:
        """Adopt the remote history on a store that has no commits yet.

        Refs and index are pointed at the remote tip; existing files are left
        alone. Paths of the remote tree that are missing from disk are written
        out so the node does not later publish them as deletions.
        """
        if state.has_local_history or state.remote_head is None:
            raise ValueError("alignment needs an unborn local branch and a remote tip")
        _LOGGER.info(
            "Local repository has no commits; aligning to %s without overwriting files",
            self._context.upstream,
        )
        self._backend.align_to(state.remote_head)
        restored = self._backend.restore_missing()
        if restored:
            _LOGGER.info("Materialised %d file(s) missing from the working tree", len(restored))
        return restored

    def baseline(self, state: RepositoryState) -> str | None:
        """Return the tip local work may build on, or ``None`` if there is none.

        That is the local tip when it already contains the remote tip, or the
        remote tip when it is a fast-forward of the local one.
        """
        if state.remote_ancestor_of_local is Ancestry.TRUE:
            return state.local_head
        if state.local_ancestor_of_remote is Ancestry.TRUE:
            return state.remote_head
        return None

    def accepts(self, local: str | None, target: str) -> bool:
        if local is None:
            return True
        return local == target or self._backend.is_ancestor(local, target)

    def adopt(self, state: RepositoryState, target: str) -> None:
        if not self.accepts(state.local_head, target):
            raise LocalBehindRemoteAbort(
                f"{target[:12]} is not a fast-forward of {state.local_head}"
            )
        _LOGGER.info("Resetting %s to %s", self._context.branch, target[:12])
        self._backend.reset_to(target)
