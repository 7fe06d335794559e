from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Callable
from urllib.parse import urlsplit

from .config import SyncContext
from .errors import TransportAuthFailed, TransportUnexpectedStatus

_LOGGER = logging.getLogger(__name__)

SSH_REJECTED_STATUS = 255
_SCP_LIKE = re.compile(r"^(?:(?P<user>[^@/:]+)@)?(?P<host>[^/:]+):(?!//)")


class AuthStatus(str, Enum):
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"
    INDETERMINATE = "indeterminate"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SshTarget:
    destination: str
    port: int | None = None


def ssh_target(url: str | None, host_override: str | None = None) -> SshTarget | None:
    """Work out which host ``ssh -T`` should talk to for ``url``.

    Returns ``None`` for transports that do not go through ssh.
    """
    if host_override:
        return SshTarget(host_override)
    if not url:
        return None
    if "://" in url:
        parts = urlsplit(url)
        if parts.scheme not in {"ssh", "git+ssh", "ssh+git"} or not parts.hostname:
            return None
        destination = parts.hostname
        if parts.username:
            destination = f"{parts.username}@{destination}"
        return SshTarget(destination, parts.port)
    match = _SCP_LIKE.match(url)
    if match is None:
        return None
    user = match.group("user")
    host = match.group("host")
    return SshTarget(f"{user}@{host}" if user else host)


class AuthProber:
    def __init__(
        self,
        context: SyncContext,
        remote_url: str | None = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self._context = context
        self._remote_url = remote_url or context.remote_url
        self._runner = runner

    def classify(self, status: int) -> AuthStatus:
        if status in self._context.auth_success_statuses:
            return AuthStatus.AUTHENTICATED
        if status == SSH_REJECTED_STATUS:
            return AuthStatus.REJECTED
        return AuthStatus.INDETERMINATE

    def _command(self, target: SshTarget) -> list[str]:
        command = [
            "ssh",
            "-T",
            target.destination,
            "-i",
            str(self._context.ssh_key),
            "-o",
            "BatchMode=yes",
            "-o",
            "StrictHostKeyChecking=accept-new",
            "-F",
            "/dev/null",
        ]
        if target.port:
            command.extend(["-p", str(target.port)])
        return command

    def probe(self) -> AuthStatus:
        target = ssh_target(self._remote_url, self._context.ssh_host)
        if target is None:
            _LOGGER.info("Remote is not an SSH transport, skipping auth probe")
            return AuthStatus.SKIPPED
        try:
            completed = self._runner(
                self._command(target),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self._context.ssh_probe_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            _LOGGER.error(
                "SSH probe to %s timed out after %ss",
                target.destination,
                self._context.ssh_probe_timeout,
            )
            return AuthStatus.INDETERMINATE
        except OSError as exc:
            _LOGGER.error("Unable to run ssh: %s", exc)
            return AuthStatus.INDETERMINATE
        _LOGGER.debug(
            "SSH probe transcript (status %s): %s",
            completed.returncode,
            (completed.stderr or completed.stdout or "").strip(),
        )
        result = self.classify(completed.returncode)
        _LOGGER.info("SSH auth probe to %s: %s", target.destination, result.value)
        return result

    def ensure_authenticated(self) -> AuthStatus:
        result = self.probe()
        if result is AuthStatus.REJECTED:
            raise TransportAuthFailed("SSH authentication to the remote host failed")
        if result is AuthStatus.INDETERMINATE:
            raise TransportUnexpectedStatus(
                "SSH probe returned an unexpected status; refusing to continue"
            )
        return result
