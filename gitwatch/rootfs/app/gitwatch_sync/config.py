from __future__ import annotations

import json
import os
import shlex
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError

from .errors import ConfigurationError

OPTIONS_PATH = Path(os.getenv("GITWATCH_OPTIONS_FILE", "/data/options.json"))
LOCAL_DEV_OPTIONS = Path("./dev/options.json")

# Field name -> environment variable. The short names match the variables the
# gitwatch container has always been configured with.
ENV_VARS: dict[str, str] = {
    "repo_dir": "REPO_DIR",
    "git_dir": "GIT_DIR",
    "remote": "REMOTE",
    "remote_url": "REMOTE_URL",
    "branch": "BRANCH",
    "ssh_key": "SSH_KEY",
    "ssh_host": "SSH_HOST",
    "ssh_probe_timeout": "SSH_PROBE_TIMEOUT",
    "auth_success_statuses": "AUTH_SUCCESS_STATUSES",
    "commit_message": "COMMIT_MESSAGE",
    "initial_commit_message": "INITIAL_COMMIT_MESSAGE",
    "user_name": "GIT_USER_NAME",
    "user_email": "GIT_USER_EMAIL",
    "conflict_archive": "CONFLICT_ARCHIVE",
    "conflict_artifacts": "DEBUG_CONFLICTS",
    "conflict_archive_overwrite": "CONFLICT_ARCHIVE_OVERWRITE",
    "log_level": "LOG_LEVEL",
    "webhook_url": "NOTIFY_WEBHOOK_URL",
    "webhook_token": "NOTIFY_WEBHOOK_TOKEN",
    "webhook_verify_ssl": "NOTIFY_WEBHOOK_VERIFY_SSL",
    "notify_on_success": "NOTIFY_ON_SUCCESS",
    "mqtt_enabled": "MQTT_ENABLED",
    "mqtt_topic": "MQTT_TOPIC",
    "mqtt_host": "MQTT_HOST",
    "mqtt_port": "MQTT_PORT",
    "mqtt_username": "MQTT_USERNAME",
    "mqtt_password": "MQTT_PASSWORD",
    "mqtt_qos": "MQTT_QOS",
    "mqtt_retain": "MQTT_RETAIN",
}

_SECRET_FIELDS = ("webhook_token", "mqtt_password")


class MqttSettings(BaseModel):
    enabled: bool = False
    host: str = "localhost"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    topic: str = "gitwatch/sync"
    qos: int = Field(default=1, ge=0, le=2)
    retain: bool = False


class SyncContext(BaseModel):
    """Configuration for a single reconciliation run.

    Built once at startup and handed to every component; nothing reads the
    process environment after this object exists.
    """

    model_config = ConfigDict(frozen=True)

    repo_dir: Path = Path("/mnt/repo")
    git_dir: Path = Path("/mnt/.git")
    remote: str = "origin"
    remote_url: str | None = None
    branch: str = "main"
    ssh_key: Path = Path("/run/secrets/id_ed25519_github")
    ssh_host: str | None = None
    ssh_probe_timeout: PositiveInt = 30
    auth_success_statuses: tuple[int, ...] = (1,)
    commit_message: str = "Apply local changes after remote sync ({timestamp})"
    initial_commit_message: str = "Initial commit from restored working tree"
    user_name: str = "gitwatch"
    user_email: str = "gitwatch@dsm.local"
    conflict_archive: Path = Path("conflict-artifact.tgz")
    conflict_artifacts: bool = True
    conflict_archive_overwrite: bool = False
    log_level: str = Field(default="info", pattern=r"^(debug|info|warning|error)$")
    webhook_url: str | None = None
    webhook_token: str | None = None
    webhook_verify_ssl: bool = True
    notify_on_success: bool = False
    mqtt_enabled: bool = False
    mqtt_topic: str = "gitwatch/sync"
    mqtt_host: str | None = None
    mqtt_port: int | None = None
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_qos: int | None = None
    mqtt_retain: bool = False

    @property
    def tracking_ref(self) -> str:
        return f"refs/remotes/{self.remote}/{self.branch}"

    @property
    def branch_ref(self) -> str:
        return f"refs/heads/{self.branch}"

    @property
    def upstream(self) -> str:
        return f"{self.remote}/{self.branch}"

    def ssh_command(self) -> str:
        key = shlex.quote(str(self.ssh_key))
        return f"ssh -i {key} -o StrictHostKeyChecking=accept-new -F /dev/null"

    def mqtt(self) -> MqttSettings:
        return MqttSettings(
            enabled=self.mqtt_enabled,
            host=self.mqtt_host or "localhost",
            port=self.mqtt_port or 1883,
            username=self.mqtt_username,
            password=self.mqtt_password,
            topic=self.mqtt_topic,
            qos=self.mqtt_qos if self.mqtt_qos is not None else 1,
            retain=self.mqtt_retain,
        )

    def public_config(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        for key in _SECRET_FIELDS:
            if data.get(key):
                data[key] = "***redacted***"
        return data


def _load_raw_options() -> dict[str, Any]:
    for candidate in (OPTIONS_PATH, LOCAL_DEV_OPTIONS):
        if candidate.exists():
            with candidate.open("r", encoding="utf-8") as handle:
                return json.load(handle)
    return {}


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for field, name in ENV_VARS.items():
        value = environ.get(name)
        if value is None or value == "":
            continue
        if field == "auth_success_statuses":
            overrides[field] = [part.strip() for part in value.split(",") if part.strip()]
        else:
            overrides[field] = value
    return overrides


def load_context(environ: Mapping[str, str] | None = None) -> SyncContext:
    raw = _load_raw_options()
    raw.update(_env_overrides(os.environ if environ is None else environ))
    try:
        return SyncContext(**raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid options: {exc}") from exc
