"""
FastAPI application: the JSON/HTTP gateway of the control plane.
"""

from __future__ import annotations

import importlib.metadata
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings, get_settings, validate_config
from .core.service import JobService
from .errors import (
    BootstrapError,
    CompilationError,
    ConfigurationError,
    DagplaneError,
    DeadlineExceeded,
    DependencyResolutionError,
    DeploymentError,
    InvalidProject,
    JobValidationError,
    NotFoundError,
    StorageConfigError,
    StorageError,
    UnitNotFound,
)
from .logs import configure_logging
from .schemas.job_v1 import CompiledJobResponse, JobListResponse, JobSpecV1
from .schemas.project_v1 import ProjectResponseV1, ProjectV1, SecretV1
from .wiring import Pipeline, build_pipeline

logger = structlog.get_logger()

# Most specific first
ERROR_STATUS = (
    (NotFoundError, 404),
    (UnitNotFound, 400),
    (JobValidationError, 400),
    (InvalidProject, 400),
    (DependencyResolutionError, 409),
    (CompilationError, 422),
    (StorageConfigError, 412),
    (StorageError, 502),
    (BootstrapError, 502),
    (DeadlineExceeded, 504),
    (DeploymentError, 500),
    (ConfigurationError, 500),
)

# Partial failure of a multi-job or multi-project pass
MULTI_STATUS = 207


def status_for(error: DagplaneError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def version() -> str:
    return importlib.metadata.version("dagplane")


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline


def get_service(pipeline: Pipeline = Depends(get_pipeline)) -> JobService:
    return pipeline.service


async def run_bootstrap(pipeline: Pipeline) -> None:
    """Bootstrap every registered project; failures never stop startup."""
    try:
        await pipeline.bootstrap.bootstrap_registered(pipeline.repository)
    except (DagplaneError, SQLAlchemyError) as e:
        logger.error("bootstrap_skipped", error=str(e))


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[Pipeline] = None,
    bootstrap: bool = True,
) -> FastAPI:
    """Application factory.

    Without an explicit ``pipeline`` one is built from ``settings`` (or the
    environment) on startup; invalid configuration aborts startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("starting_dagplane")
        if app.state.pipeline is None:
            config = validate_config(settings or get_settings())
            configure_logging(config.log_level, config.log_format)
            app.state.pipeline = build_pipeline(config)
        if bootstrap:
            await run_bootstrap(app.state.pipeline)
        yield
        logger.info("dagplane_stopped")

    app = FastAPI(
        title="dagplane",
        description="Job orchestration control plane",
        version=version(),
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    @app.exception_handler(DagplaneError)
    async def dagplane_error_handler(request: Request, exc: DagplaneError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(status_code=status, content={"error": exc.to_dict()})

    app.include_router(router)
    return app


router = APIRouter()


# Health and Info Endpoints
@router.get("/ping", response_class=PlainTextResponse, tags=["system"])
def ping() -> str:
    return "pong"


@router.get("/healthz", tags=["system"])
def healthz() -> Dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/version", tags=["system"])
def get_version() -> Dict[str, str]:
    """Return the version of the application."""
    return {"version": version()}


# Projects
@router.post("/v1/projects", response_model=ProjectResponseV1, tags=["projects"])
async def register_project(
    body: ProjectV1, pipeline: Pipeline = Depends(get_pipeline)
) -> ProjectResponseV1:
    """Register or update a project, then bootstrap the scheduler for it.

    A failed bootstrap is logged and can be retried with
    ``POST /v1/projects/{project}/bootstrap``.
    """
    project = await pipeline.service.register_project(body.to_spec())
    await pipeline.bootstrap.bootstrap_project(project)
    return ProjectResponseV1.from_spec(project)


@router.get("/v1/projects", response_model=List[ProjectResponseV1], tags=["projects"])
async def list_projects(service: JobService = Depends(get_service)) -> List[ProjectResponseV1]:
    return [ProjectResponseV1.from_spec(p) for p in await service.list_projects()]


@router.post("/v1/projects/{project}/secrets", tags=["projects"])
async def register_secret(
    project: str, body: SecretV1, service: JobService = Depends(get_service)
) -> Dict[str, str]:
    await service.register_secret(project, body.name, body.decoded())
    return {"status": "ok", "project": project, "name": body.name}


@router.post("/v1/projects/{project}/bootstrap", tags=["projects"])
async def bootstrap_project(project: str, pipeline: Pipeline = Depends(get_pipeline)) -> JSONResponse:
    spec = await pipeline.service.get_project(project)
    result = await pipeline.bootstrap.bootstrap_project(spec)
    if result.error is not None:
        raise result.error
    return JSONResponse(content=result.to_dict())


# Jobs
@router.post("/v1/projects/{project}/jobs", response_model=JobSpecV1, tags=["jobs"])
async def register_job(
    project: str, body: JobSpecV1, service: JobService = Depends(get_service)
) -> JobSpecV1:
    job = await service.register_job(project, body.to_spec())
    return JobSpecV1.from_spec(job)


@router.get("/v1/projects/{project}/jobs", response_model=JobListResponse, tags=["jobs"])
async def list_jobs(project: str, service: JobService = Depends(get_service)) -> JobListResponse:
    jobs = await service.list_jobs(project)
    return JobListResponse(project=project, jobs=[JobSpecV1.from_spec(j) for j in jobs])


@router.get("/v1/projects/{project}/jobs/{job}", response_model=JobSpecV1, tags=["jobs"])
async def get_job(project: str, job: str, service: JobService = Depends(get_service)) -> JobSpecV1:
    return JobSpecV1.from_spec(await service.get_job(project, job))


@router.delete("/v1/projects/{project}/jobs/{job}", tags=["jobs"])
async def delete_job(project: str, job: str, service: JobService = Depends(get_service)) -> Dict[str, str]:
    await service.delete_job(project, job)
    return {"status": "deleted", "project": project, "job": job}


@router.get(
    "/v1/projects/{project}/jobs/{job}/compiled",
    response_model=CompiledJobResponse,
    tags=["jobs"],
)
async def compile_job(
    project: str, job: str, service: JobService = Depends(get_service)
) -> CompiledJobResponse:
    """Dry run: the artifact the next deploy would write for ``job``."""
    artifact = await service.compile_job(project, job)
    return CompiledJobResponse(
        project=project,
        job=artifact.job,
        path=artifact.path,
        checksum=artifact.checksum,
        contents=artifact.payload.decode("utf-8"),
    )


# Deployment
@router.post("/v1/projects/{project}/deploy", tags=["deploy"])
async def deploy_project(project: str, service: JobService = Depends(get_service)) -> JSONResponse:
    report = await service.deploy_project(project)
    status = 200 if report.ok else MULTI_STATUS
    return JSONResponse(status_code=status, content=report.to_dict())


@router.post("/v1/deploy", tags=["deploy"])
async def deploy_all(service: JobService = Depends(get_service)) -> JSONResponse:
    reports = await service.deploy_all()
    body: Dict[str, Any] = {
        "ok": all(r.ok for r in reports),
        "projects": [r.to_dict() for r in reports],
    }
    return JSONResponse(status_code=200 if body["ok"] else MULTI_STATUS, content=body)
