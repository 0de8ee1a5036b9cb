from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Protocol

from .config import Options
from .events import EventClient
from .models import RemoteChangeEvent
from .mqtt_client import MqttPayload, MqttPublisher

_LOGGER = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def notify_remote_changes(self, event: RemoteChangeEvent) -> None: ...

    async def notify_fetch_error(self, repository_name: str, error: str) -> None: ...


class Notifier:
    """Fans notifications out to the HTTP event endpoint and MQTT.

    Error notices for the same repository are suppressed inside the cooldown
    window so a failing remote does not spam on every timer tick.
    """

    def __init__(self, options: Options) -> None:
        self._options = options
        self._events = EventClient(options)
        self._mqtt_settings = options.mqtt()
        self._mqtt = MqttPublisher(self._mqtt_settings)
        self._cooldown_s = options.notification_cooldown_ms / 1000
        self._recent: dict[str, float] = {}

    async def notify_remote_changes(self, event: RemoteChangeEvent) -> None:
        noun = "commit" if event.remote_ahead == 1 else "commits"
        _LOGGER.info(
            "Repository '%s' has %d new %s available",
            event.repository_name,
            event.remote_ahead,
            noun,
        )
        payload = {
            "event": "remote_changes",
            "repository_id": event.repository_id,
            "repository": event.repository_name,
            "remote_ahead": event.remote_ahead,
            "detected_at": event.detected_at.isoformat(),
        }
        await self._deliver(payload)

    async def notify_fetch_error(self, repository_name: str, error: str) -> None:
        key = f"fetch-error:{repository_name}"
        if self._in_cooldown(key):
            _LOGGER.debug("Fetch error notice for %s suppressed (cooldown)", repository_name)
            return
        payload = {
            "event": "fetch_error",
            "repository": repository_name,
            "error": error,
            "detected_at": datetime.now(timezone.utc).isoformat(),
        }
        await self._deliver(payload)

    async def _deliver(self, payload: dict) -> None:
        try:
            await self._events.fire_event(payload)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Failed to deliver event: %s", exc)
        await self._mqtt.publish(
            MqttPayload(
                topic=self._mqtt_settings.topic,
                payload=payload,
                qos=self._mqtt_settings.qos,
                retain=self._mqtt_settings.retain,
            )
        )

    def _in_cooldown(self, key: str) -> bool:
        now = time.monotonic()
        last = self._recent.get(key)
        if last is not None and now - last < self._cooldown_s:
            return True
        self._recent[key] = now
        cutoff = now - 2 * self._cooldown_s
        for stale in [name for name, seen in self._recent.items() if seen < cutoff]:
            del self._recent[stale]
        return False

    def clear_tracking(self) -> None:
        self._recent.clear()

    async def aclose(self) -> None:
        await self._events.aclose()
