from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .errors import (
    DuplicateRepositoryError,
    MultiGitError,
    ProcessSpawnError,
    ProcessTimeoutError,
    RepositoryNotFoundError,
    ValidationError,
    VcsError,
)
from .models import FetchResult, RepositoryConfig, RepositoryStatus
from .sanitize import sanitize
from .service import MultiGitService


class AddRepositoryRequest(BaseModel):
    path: str
    name: str | None = None


class UpdateRepositoryRequest(BaseModel):
    enabled: bool | None = None
    fetch_interval: int | None = None


class CommitRequest(BaseModel):
    message: str


class CommitResponse(BaseModel):
    repository_id: str
    phase: str
    succeeded: bool
    committed_locally: bool
    failed_phase: str | None = None
    reason: str | None = None
    error: str | None = None
    hook_output: str | None = None
    commit_id: str | None = None


def create_app(service: MultiGitService) -> FastAPI:
    app = FastAPI(title="Multi Git", version="0.1.0")

    @app.exception_handler(MultiGitError)
    async def _multi_git_error(_: Request, exc: MultiGitError) -> JSONResponse:
        if isinstance(exc, RepositoryNotFoundError):
            status = 404
        elif isinstance(exc, ValidationError):
            status = 422
        elif isinstance(exc, DuplicateRepositoryError):
            status = 409
        elif isinstance(exc, (VcsError, ProcessSpawnError, ProcessTimeoutError)):
            status = 502
        else:
            status = 500
        return JSONResponse(
            status_code=status,
            content={"detail": sanitize(str(exc)), "error": type(exc).__name__},
        )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        version = await service.git.git_version()
        return {"status": "ok" if version else "degraded", "git": version}

    @app.get("/repositories", response_model=list[RepositoryConfig])
    async def list_repositories() -> list[RepositoryConfig]:
        return service.repositories()

    @app.post("/repositories", response_model=RepositoryConfig, status_code=201)
    async def add_repository(body: AddRepositoryRequest) -> RepositoryConfig:
        return await service.add_repository(body.path, body.name)

    @app.patch("/repositories/{repository_id}", response_model=RepositoryConfig)
    async def update_repository(
        repository_id: str, body: UpdateRepositoryRequest
    ) -> RepositoryConfig:
        if body.enabled is None and body.fetch_interval is None:
            raise HTTPException(status_code=400, detail="Nothing to update")
        config = service.store.get(repository_id)
        if body.fetch_interval is not None:
            config = service.update_fetch_interval(repository_id, body.fetch_interval)
        if body.enabled is not None:
            config = service.set_enabled(repository_id, body.enabled)
        return config

    @app.delete("/repositories/{repository_id}", status_code=204)
    async def remove_repository(repository_id: str) -> None:
        service.remove_repository(repository_id)

    @app.get("/repositories/{repository_id}/status", response_model=RepositoryStatus)
    async def repository_status(repository_id: str) -> RepositoryStatus:
        return await service.repository_status(repository_id)

    @app.get("/repositories/{repository_id}/suggestion")
    async def suggestion(repository_id: str) -> dict[str, str]:
        return {"message": await service.suggest_commit_message(repository_id)}

    @app.post("/repositories/{repository_id}/fetch", response_model=FetchResult)
    async def fetch_repository(repository_id: str) -> FetchResult:
        return await service.fetch_now(repository_id)

    @app.post("/fetch", response_model=list[FetchResult])
    async def fetch_all() -> list[FetchResult]:
        return await service.fetch_all()

    @app.post("/repositories/{repository_id}/commit", response_model=CommitResponse)
    async def commit(repository_id: str, body: CommitRequest) -> CommitResponse:
        operation = await service.commit_and_push(repository_id, body.message)
        return CommitResponse(
            repository_id=operation.repository_id,
            phase=operation.phase.value,
            succeeded=operation.succeeded,
            committed_locally=operation.committed_locally,
            failed_phase=operation.failed_phase.value if operation.failed_phase else None,
            reason=operation.reason,
            error=sanitize(operation.error) if operation.error else None,
            hook_output=operation.hook_output,
            commit_id=operation.commit_id,
        )

    @app.get("/config")
    async def config() -> dict[str, Any]:
        return service.public_config()

    return app
