from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from .config import SyncContext
from .errors import CredentialMissing, CredentialPermissionUnsafe

_LOGGER = logging.getLogger(__name__)

REQUIRED_MODE = 0o600


class CredentialGate:
    """Refuses to go near the network with a missing or exposed SSH key."""

    def __init__(self, context: SyncContext) -> None:
        self._key = context.ssh_key

    def check(self) -> Path:
        try:
            info = self._key.stat()
        except FileNotFoundError as exc:
            raise CredentialMissing(f"SSH key not found at {self._key}") from exc
        if not stat.S_ISREG(info.st_mode):
            raise CredentialMissing(f"SSH key at {self._key} is not a regular file")
        mode = stat.S_IMODE(info.st_mode)
        if mode != REQUIRED_MODE:
            raise CredentialPermissionUnsafe(
                f"SSH key at {self._key} has mode {mode:o}, expected {REQUIRED_MODE:o}. "
                "Ensure the key is owned by the running user and has mode 600."
            )
        if hasattr(os, "getuid") and info.st_uid != os.getuid():
            _LOGGER.warning(
                "SSH key %s is owned by uid %s, not the running user (uid %s)",
                self._key,
                info.st_uid,
                os.getuid(),
            )
        _LOGGER.debug("SSH key %s passed permission check", self._key)
        return self._key
