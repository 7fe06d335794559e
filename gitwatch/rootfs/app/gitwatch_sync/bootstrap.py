from __future__ import annotations

import logging

from .config import SyncContext
from .errors import BootstrapDirectoryMissing, ConfigurationError
from .git_client import GitBackend

_LOGGER = logging.getLogger(__name__)


class RepositoryBootstrapper:
    """Makes sure the metadata store exists and carries the expected settings.

    Safe to call on every run: settings are replaced rather than appended and
    the remote is updated in place.
    """

    def __init__(self, context: SyncContext, backend: GitBackend) -> None:
        self._context = context
        self._backend = backend

    def settings(self) -> dict[str, str]:
        return {
            "user.name": self._context.user_name,
            "user.email": self._context.user_email,
            "core.sshCommand": self._context.ssh_command(),
            "commit.gpgsign": "false",
            "pull.ff": "only",
            "push.ff": "only",
            "fetch.prune": "true",
        }

    def ensure(self) -> None:
        for label, path in (
            ("working tree", self._context.repo_dir),
            ("metadata store", self._context.git_dir),
        ):
            if not path.is_dir():
                raise BootstrapDirectoryMissing(
                    f"{label.capitalize()} {path} must exist with the correct permissions"
                )

        if not self._backend.store_exists():
            _LOGGER.info(
                "Initialising repository in %s (branch %s)",
                self._context.git_dir,
                self._context.branch,
            )
            self._backend.init_store()

        for key, value in self.settings().items():
            self._backend.set_config(key, value)

        if self._context.remote_url:
            self._backend.ensure_remote(self._context.remote, self._context.remote_url)
        elif self._backend.remote_url(self._context.remote) is None:
            raise ConfigurationError(
                f"Remote {self._context.remote!r} is not configured and no REMOTE_URL was given"
            )

        if self._backend.resolve("HEAD") is None:
            target = self._backend.head_target()
            if target != self._context.branch_ref:
                _LOGGER.info("Pointing unborn HEAD at %s", self._context.branch_ref)
                self._backend.point_head(self._context.branch_ref)
        else:
            target = self._backend.head_target()
            if target != self._context.branch_ref:
                raise ConfigurationError(
                    f"HEAD is on {target or 'a detached commit'}, not {self._context.branch_ref}; "
                    "switch the store back to the configured branch before retrying"
                )
