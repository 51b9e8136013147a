"""Test configuration and fixtures."""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from dagplane.core.assets import AssetRenderer
from dagplane.core.compiler import Compiler
from dagplane.core.dependency_resolver import DependencyResolver, InferencePolicy
from dagplane.core.deployer import Deployer
from dagplane.core.interfaces import SpecificationRepository
from dagplane.core.priority_resolver import PriorityResolver
from dagplane.core.service import JobService
from dagplane.data.models import (
    PROJECT_SECRET_STORAGE_KEY,
    PROJECT_STORAGE_PATH_KEY,
    JobHook,
    JobRef,
    JobSchedule,
    JobSpec,
    JobTask,
    ProjectSpec,
)
from dagplane.errors import JobNotFound, ProjectNotFound, SecretNotFound
from dagplane.scheduler.airflow2 import Airflow2Scheduler
from dagplane.storage.artifacts import ArtifactRepositoryFactory
from dagplane.storage.base import ObjectWriter
from dagplane.storage.registry import default_storage_registry
from dagplane.units.registry import default_hook_registry, default_task_registry

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_job(
    name: str,
    dependencies: Sequence[str] = (),
    unit: str = "shell",
    config: Optional[Dict[str, str]] = None,
    hooks: Sequence[JobHook] = (),
    assets: Optional[Dict[str, str]] = None,
    **overrides,
) -> JobSpec:
    """Create a valid job with optional overrides."""
    if config is None:
        config = {"COMMAND": f"run {name}"}
    defaults = {
        "name": name,
        "owner": "data-eng@example.com",
        "schedule": JobSchedule(start_date=START, interval="0 2 * * *"),
        "task": JobTask(unit=unit, config=dict(config)),
        "hooks": list(hooks),
        "dependencies": list(dependencies),
        "assets": dict(assets or {}),
    }
    defaults.update(overrides)
    return JobSpec(**defaults)


class FakeSpecRepository(SpecificationRepository):
    """In-memory specification repository that records its calls."""

    def __init__(self) -> None:
        self.projects: Dict[str, ProjectSpec] = {}
        self.jobs: Dict[str, Dict[str, Tuple[JobSpec, Optional[str]]]] = {}
        self.calls: List[Tuple[str, ...]] = []
        self._lock = threading.Lock()

    def _record(self, *call: str) -> None:
        with self._lock:
            self.calls.append(call)

    def add_project(self, name: str, **config: str) -> ProjectSpec:
        project = ProjectSpec(name=name, config=dict(config))
        self.projects[name] = project
        self.jobs.setdefault(name, {})
        return project

    def add_jobs(self, project: str, *jobs: JobSpec) -> None:
        if project not in self.projects:
            self.add_project(project)
        registry = default_task_registry()
        self.jobs.setdefault(project, {})
        for job in jobs:
            self.jobs[project][job.name] = (job, registry.get(job.task.unit).get_destination(job))

    def list_projects(self) -> List[ProjectSpec]:
        self._record("list_projects")
        return [self.projects[name] for name in sorted(self.projects)]

    def get_project(self, name: str) -> ProjectSpec:
        self._record("get_project", name)
        if name not in self.projects:
            raise ProjectNotFound(name)
        return self.projects[name]

    def save_project(self, project: ProjectSpec) -> None:
        existing = self.projects.get(project.name)
        secrets = dict(existing.secrets) if existing else {}
        self.projects[project.name] = ProjectSpec(project.name, dict(project.config), secrets)
        self.jobs.setdefault(project.name, {})

    def list_jobs(self, project: str) -> List[JobSpec]:
        self._record("list_jobs", project)
        if project not in self.projects:
            raise ProjectNotFound(project)
        return [self.jobs[project][name][0] for name in sorted(self.jobs[project])]

    def get_job(self, project: str, name: str) -> JobSpec:
        self._record("get_job", project, name)
        if project not in self.projects:
            raise ProjectNotFound(project)
        if name not in self.jobs[project]:
            raise JobNotFound(project, name)
        return self.jobs[project][name][0]

    def save_job(self, project: str, job: JobSpec, destination: Optional[str] = None) -> None:
        if project not in self.projects:
            raise ProjectNotFound(project)
        self.jobs[project][job.name] = (job, destination)

    def delete_job(self, project: str, name: str) -> None:
        if name not in self.jobs.get(project, {}):
            raise JobNotFound(project, name)
        del self.jobs[project][name]

    def find_jobs_by_destination(self, destination: str) -> List[JobRef]:
        self._record("find_jobs_by_destination", destination)
        return sorted(
            JobRef(project, name)
            for project, jobs in self.jobs.items()
            for name, (_, produced) in jobs.items()
            if produced == destination
        )

    def get_secret(self, project: str, name: str) -> bytes:
        secret = self.get_project(project).get_secret(name)
        if secret is None:
            raise SecretNotFound(project, name)
        return secret

    def save_secret(self, project: str, name: str, value: bytes) -> None:
        self.get_project(project).secrets[name] = value


@pytest.fixture
def repository() -> FakeSpecRepository:
    return FakeSpecRepository()


@pytest.fixture
def task_registry():
    return default_task_registry()


@pytest.fixture
def hook_registry():
    return default_hook_registry()


@pytest.fixture
def renderer() -> AssetRenderer:
    return AssetRenderer()


@pytest.fixture
def resolver(task_registry, renderer) -> DependencyResolver:
    return DependencyResolver(task_registry, renderer, InferencePolicy.BEST_EFFORT)


@pytest.fixture
def storage_registry():
    return default_storage_registry()


@pytest.fixture
def scheduler(storage_registry) -> Airflow2Scheduler:
    return Airflow2Scheduler(storage_registry)


@pytest.fixture
def compiler(scheduler, task_registry, hook_registry) -> Compiler:
    return Compiler(scheduler, task_registry, hook_registry, ingress_host="dagplane.internal:9100")


@pytest.fixture
def artifact_factory(storage_registry, scheduler) -> ArtifactRepositoryFactory:
    return ArtifactRepositoryFactory(
        storage_registry, scheduler.get_jobs_dir(), scheduler.get_jobs_extension()
    )


@pytest.fixture
def storage_path(tmp_path) -> str:
    return f"file://{tmp_path / 'storage'}"


@pytest.fixture
def file_project(storage_path) -> ProjectSpec:
    """A project deploying to the local filesystem."""
    return ProjectSpec(
        name="analytics",
        config={PROJECT_STORAGE_PATH_KEY: storage_path},
        secrets={PROJECT_SECRET_STORAGE_KEY: b"{}"},
    )


@pytest.fixture
def service(
    repository,
    task_registry,
    hook_registry,
    resolver,
    renderer,
    compiler,
    artifact_factory,
) -> JobService:
    return JobService(
        repository=repository,
        task_registry=task_registry,
        hook_registry=hook_registry,
        resolver=resolver,
        priority_resolver=PriorityResolver(),
        renderer=renderer,
        compiler=compiler,
        deployer=Deployer(concurrency=4),
        artifacts=artifact_factory,
    )


class UnreachableWriter(ObjectWriter):
    """Object store whose every call fails with ``error``."""

    def __init__(self, error: Exception):
        self.error = error

    def write(self, bucket, key, data):
        raise self.error

    def delete(self, bucket, key):
        raise self.error

    def list(self, bucket, prefix):
        raise self.error


@pytest.fixture
def unreachable_project(storage_registry):
    """Factory for projects on a ``mem://`` store that fails with the given error."""

    def make(name: str, error: Exception) -> ProjectSpec:
        storage_registry.register("mem", lambda credentials: UnreachableWriter(error))
        return ProjectSpec(
            name=name,
            config={PROJECT_STORAGE_PATH_KEY: f"mem://bucket/{name}"},
            secrets={PROJECT_SECRET_STORAGE_KEY: b"{}"},
        )

    return make
