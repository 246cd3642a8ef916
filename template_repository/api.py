"""FastAPI service exposing the template repository.

Routes (all under /repository):

  GET   /steps                 → every step template
  GET   /steps/{id}            → one step template (404 when unknown)
  GET   /workflows             → every workflow template
  GET   /workflows/{id}        → one workflow template (404 when unknown)
  POST  /refresh               → drop the cache and reload both kinds
  GET   /status                → cache/config snapshot, no I/O
  PATCH /config                → partial runtime reconfiguration

The TemplateRepository is built once in the lifespan hook from the
environment (unless one was injected via create_app) and lives on
app.state.repository.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Literal

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from template_repository.errors import ConfigError
from template_repository.loader import TemplateRepository
from template_repository.models import CollectionType

logger = logging.getLogger("template_repository.api")

# ---------------------------------------------------------------------------
# API key authentication, enabled when REPOSITORY_API_KEY is set
# ---------------------------------------------------------------------------

_bearer = HTTPBearer(auto_error=False)


def _verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> None:
    """Verify Bearer token matches REPOSITORY_API_KEY env var.

    If REPOSITORY_API_KEY is not set, all requests are allowed.
    """
    api_key = os.getenv("REPOSITORY_API_KEY")
    if not api_key:
        return
    if not credentials or credentials.credentials != api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class ConfigUpdateRequest(BaseModel):
    """Body for PATCH /repository/config. Omitted fields are left untouched."""

    repo: str | None = Field(None, description="GitHub repository as 'owner/name'.", examples=["CEREMA/airjobs"])
    branch: str | None = Field(None, description="Branch or ref to read from.")
    token: str | None = Field(None, description="GitHub token for private repositories.")
    repo_path: str | None = Field(None, description="Path of the repository folder inside the GitHub repo.")
    cache_ttl: int | None = Field(None, ge=0, description="Cache TTL in seconds. 0 always refetches.")
    source: Literal["github", "local", "remote", "local-only"] | None = Field(
        None, description="'github' reads GitHub first; 'local' serves bundled templates only."
    )


class RefreshResponse(BaseModel):
    steps: int
    workflows: int
    source: str
    timestamp: str


class StatusResponse(BaseModel):
    source: str
    repo: str
    branch: str | None = None
    cache_ttl: int
    last_fetch: str | None = None
    is_stale: bool
    steps_count: int = 0
    workflows_count: int = 0
    origins: dict[str, str | None] = Field(
        default_factory=dict,
        description="Tier that produced each cached collection: github, mirror or bundled.",
    )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_repository(request: Request) -> TemplateRepository:
    return request.app.state.repository


_rate_limit = os.getenv("RATE_LIMIT_REFRESH_PER_MIN", "10")
limiter = Limiter(key_func=get_remote_address)

router = APIRouter(prefix="/repository", dependencies=[Depends(_verify_api_key)])


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/steps", tags=["templates"])
async def list_steps(repository: TemplateRepository = Depends(_get_repository)) -> list[dict[str, Any]]:
    return await repository.load_steps()


@router.get("/steps/{step_id}", tags=["templates"])
async def get_step(step_id: str, repository: TemplateRepository = Depends(_get_repository)) -> dict[str, Any]:
    step = await repository.get_step_by_id(step_id)
    if step is None:
        raise HTTPException(status_code=404, detail=f"Step '{step_id}' not found.")
    return step


@router.get("/workflows", tags=["templates"])
async def list_workflows(repository: TemplateRepository = Depends(_get_repository)) -> list[dict[str, Any]]:
    return await repository.load_workflows()


@router.get("/workflows/{workflow_id}", tags=["templates"])
async def get_workflow(
    workflow_id: str, repository: TemplateRepository = Depends(_get_repository)
) -> dict[str, Any]:
    workflow = await repository.get_workflow_by_id(workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail=f"Workflow '{workflow_id}' not found.")
    return workflow


@router.post("/refresh", response_model=RefreshResponse, tags=["cache"])
@limiter.limit(f"{_rate_limit}/minute")
async def refresh_cache(request: Request) -> RefreshResponse:
    """Drop both cached collections and reload them from the configured source."""
    summary = await _get_repository(request).refresh()
    logger.info(
        "Cache refreshed: %d steps, %d workflows (source=%s)",
        summary["steps"], summary["workflows"], summary["source"],
    )
    return RefreshResponse(**summary)


@router.get("/status", response_model=StatusResponse, tags=["cache"])
async def cache_status(repository: TemplateRepository = Depends(_get_repository)) -> StatusResponse:
    return StatusResponse(**repository.status())


@router.patch("/config", response_model=StatusResponse, tags=["cache"])
async def update_config(
    body: ConfigUpdateRequest, repository: TemplateRepository = Depends(_get_repository)
) -> StatusResponse:
    """Apply the provided options and invalidate the cache."""
    try:
        status = repository.reconfigure(**body.model_dump(exclude_none=True))
    except ConfigError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return StatusResponse(**status)


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------


def create_app(repository: TemplateRepository | None = None) -> FastAPI:
    """Build the FastAPI app. Pass a repository to skip environment loading."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "repository", None) is None:
            load_dotenv()
            app.state.repository = TemplateRepository.from_env()
        config = app.state.repository.config
        logger.info(
            "Starting template repository | source=%s | repo=%s@%s | ttl=%ss",
            config.source.value, config.repo, config.branch, config.cache_ttl,
        )
        yield
        logger.info("Shutting down template repository")

    app = FastAPI(
        title="Template Repository API",
        description=(
            "Serves step and workflow templates from GitHub, with an on-disk "
            "mirror and bundled defaults as fallbacks."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.repository = repository
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.include_router(router)

    @app.get("/health", tags=["system"])
    async def health(request: Request) -> dict:
        repo: TemplateRepository | None = request.app.state.repository
        return {
            "api": "ok",
            "source": repo.config.source.value if repo is not None else None,
            "kinds": [kind.value for kind in CollectionType],
        }

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Entry point (for uvicorn programmatic launch)
# ---------------------------------------------------------------------------


def serve(host: str = "0.0.0.0", port: int = 8000, reload: bool = False) -> None:
    """Launch the FastAPI server via uvicorn."""
    import uvicorn

    logging.basicConfig(level=os.getenv("REPOSITORY_LOG_LEVEL", "INFO").upper())
    uvicorn.run(
        "template_repository.api:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    serve()
