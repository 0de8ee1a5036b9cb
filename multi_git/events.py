from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import Options

_LOGGER = logging.getLogger(__name__)


class EventClient:
    """Posts notification payloads as JSON to a configured HTTP endpoint.

    The endpoint is typically a Home Assistant ``/api/events/<name>`` URL or a
    generic webhook. With no URL configured every call is a no-op.
    """

    def __init__(self, options: Options) -> None:
        self._url = options.event_url.rstrip("/") if options.event_url else None
        self._event_name = options.event_name
        self._token = options.event_token or None
        self._client = httpx.AsyncClient(timeout=20, verify=options.event_verify_ssl)

        if self._url is None:
            _LOGGER.debug("No event URL configured; HTTP notifications disabled")
        elif self._token is None:
            _LOGGER.info("Posting notifications to %s without authentication", self._url)

    @property
    def enabled(self) -> bool:
        return self._url is not None

    async def fire_event(self, payload: dict[str, Any]) -> None:
        if self._url is None:
            return
        url = self._url
        if "{event}" in url:
            url = url.replace("{event}", self._event_name)
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        resp = await self._client.post(url, json=payload, headers=headers)
        resp.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()
