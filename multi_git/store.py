from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from .errors import DuplicateRepositoryError, RepositoryNotFoundError
from .models import FetchOutcome, FetchResult, FetchStatus, RepositoryConfig

_LOGGER = logging.getLogger(__name__)


class RepositoryStore:
    """YAML-backed list of configured repositories.

    Every accessor returns copies; state changes only through the explicit
    update calls below, each of which is persisted immediately.
    """

    def __init__(self, path: Path, default_fetch_interval: int | None = None) -> None:
        self._path = path
        self._default_interval = default_fetch_interval
        self._repositories: dict[str, RepositoryConfig] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def list(self) -> list[RepositoryConfig]:
        return [repo.model_copy() for repo in self._repositories.values()]

    def enabled(self) -> list[RepositoryConfig]:
        return [repo.model_copy() for repo in self._repositories.values() if repo.enabled]

    def with_remote_changes(self) -> list[RepositoryConfig]:
        return [
            repo.model_copy() for repo in self._repositories.values() if repo.remote_changes
        ]

    def get(self, repository_id: str) -> RepositoryConfig:
        return self._require(repository_id).model_copy()

    def find_by_path(self, path: str) -> RepositoryConfig | None:
        for repo in self._repositories.values():
            if repo.path == path:
                return repo.model_copy()
        return None

    def add(self, config: RepositoryConfig) -> RepositoryConfig:
        if self.find_by_path(config.path) is not None:
            raise DuplicateRepositoryError(config.path)
        self._repositories[config.id] = config.model_copy()
        self._save()
        _LOGGER.info("Added repository %s (%s)", config.name, config.path)
        return config.model_copy()

    def remove(self, repository_id: str) -> bool:
        removed = self._repositories.pop(repository_id, None)
        if removed is None:
            return False
        self._save()
        _LOGGER.info("Removed repository %s (%s)", removed.name, repository_id)
        return True

    def set_enabled(self, repository_id: str, enabled: bool) -> RepositoryConfig:
        repo = self._require(repository_id)
        repo.enabled = enabled
        self._save()
        return repo.model_copy()

    def update_fetch_interval(self, repository_id: str, interval_ms: int) -> RepositoryConfig:
        repo = self._require(repository_id)
        repo.fetch_interval = interval_ms
        self._save()
        return repo.model_copy()

    def record_fetch_result(self, result: FetchResult) -> RepositoryConfig:
        repo = self._require(result.repository_id)
        repo.last_fetch_time = result.timestamp
        if result.outcome is FetchOutcome.SUCCESS:
            repo.last_fetch_status = FetchStatus.SUCCESS
            repo.last_fetch_error = None
            repo.remote_changes = result.remote_changes
            repo.remote_commit_count = result.remote_ahead
        else:
            repo.last_fetch_status = FetchStatus.ERROR
            repo.last_fetch_error = result.error
        self._save()
        _LOGGER.debug(
            "Recorded fetch result for %s: %s (remote_changes=%s)",
            repo.name,
            repo.last_fetch_status.value,
            repo.remote_changes,
        )
        return repo.model_copy()

    def _require(self, repository_id: str) -> RepositoryConfig:
        try:
            return self._repositories[repository_id]
        except KeyError:
            raise RepositoryNotFoundError(repository_id) from None

    def _load(self) -> None:
        if not self._path.exists():
            return
        with self._path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        for entry in raw.get("repositories", []):
            if self._default_interval and "fetch_interval" not in entry:
                entry["fetch_interval"] = self._default_interval
            repo = RepositoryConfig.model_validate(entry)
            self._repositories[repo.id] = repo
        _LOGGER.debug("Loaded %d repositories from %s", len(self._repositories), self._path)

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "repositories": [
                repo.model_dump(mode="json") for repo in self._repositories.values()
            ]
        }
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, sort_keys=False)
        os.replace(tmp_path, self._path)
