from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, PositiveInt, ValidationError

from .models import DEFAULT_FETCH_INTERVAL_MS, MAX_FETCH_INTERVAL_MS, MIN_FETCH_INTERVAL_MS

OPTIONS_PATH = Path(os.getenv("MULTI_GIT_OPTIONS_FILE", "/data/options.json"))
LOCAL_DEV_OPTIONS = Path("./dev/options.json")
STATE_DIR = Path(os.getenv("MULTI_GIT_STATE_DIR", "/data/state"))
REPOSITORIES_FILE = "repositories.yaml"
DEFAULT_HTTP_PORT = 7998


class MqttSettings(BaseModel):
    enabled: bool = False
    host: str = "core-mosquitto"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    topic: str = "multi_git/events"
    qos: int = Field(default=1, ge=0, le=2)
    retain: bool = False


class Options(BaseModel):
    log_level: str = Field(default="info", pattern=r"^(debug|info|warning|error)$")
    http_api_port: int = DEFAULT_HTTP_PORT
    http_host: str = "0.0.0.0"
    state_dir: Path = STATE_DIR
    git_executable: str = "git"
    command_timeout_ms: PositiveInt = 10_000
    fetch_timeout_ms: PositiveInt = 60_000
    push_timeout_ms: PositiveInt = 60_000
    default_fetch_interval_ms: int = Field(
        default=DEFAULT_FETCH_INTERVAL_MS, ge=MIN_FETCH_INTERVAL_MS, le=MAX_FETCH_INTERVAL_MS
    )
    fetch_on_startup: bool = True
    notify_on_remote_changes: bool = True
    notify_on_fetch_errors: bool = True
    notification_cooldown_ms: int = Field(default=60_000, ge=0)
    event_url: str | None = None
    event_token: str | None = None
    event_name: str = "multi_git.remote_changes"
    event_verify_ssl: bool = True
    mqtt_enabled: bool = False
    mqtt_topic: str = "multi_git/events"
    mqtt_host: str | None = None
    mqtt_port: int | None = None
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_qos: int | None = None
    mqtt_retain: bool = False

    @property
    def repositories_file(self) -> Path:
        return self.state_dir / REPOSITORIES_FILE

    def mqtt(self) -> MqttSettings:
        return MqttSettings(
            enabled=self.mqtt_enabled,
            host=self.mqtt_host or "core-mosquitto",
            port=self.mqtt_port or 1883,
            username=self.mqtt_username,
            password=self.mqtt_password,
            topic=self.mqtt_topic,
            qos=self.mqtt_qos if self.mqtt_qos is not None else 1,
            retain=self.mqtt_retain,
        )


def _load_raw_options() -> dict[str, Any]:
    candidates = [OPTIONS_PATH, LOCAL_DEV_OPTIONS]
    for candidate in candidates:
        if candidate.exists():
            with candidate.open("r", encoding="utf-8") as handle:
                return json.load(handle)
    raise FileNotFoundError(
        f"No options file found. Provide {OPTIONS_PATH} or {LOCAL_DEV_OPTIONS}"
    )


def load_options() -> Options:
    raw = _load_raw_options()
    try:
        return Options(**raw)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid options: {exc}") from exc
