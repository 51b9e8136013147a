"""
Airflow 2 scheduler backend.

Artifacts are DAG files in the project's ``dags/`` folder. Bootstrap uploads
the shared ``__lib.py`` module the DAGs import.
"""
from __future__ import annotations

import hashlib
from pathlib import Path

import structlog

from ..core.deadline import Deadline
from ..data.models.project import ProjectSpec
from ..errors import BootstrapError, DagplaneError
from ..storage.artifacts import ArtifactRepositoryFactory
from ..storage.registry import StorageRegistry
from .base import Scheduler

logger = structlog.get_logger()

RESOURCES = Path(__file__).parent / "resources" / "airflow2"
LIB_NAME = "__lib.py"


class Airflow2Scheduler(Scheduler):
    def __init__(self, storage: StorageRegistry, resources: Path = RESOURCES):
        self.resources = resources
        self.repositories = ArtifactRepositoryFactory(
            storage, self.get_jobs_dir(), self.get_jobs_extension()
        )

    @property
    def name(self) -> str:
        return "airflow2"

    def get_jobs_dir(self) -> str:
        return "dags"

    def get_jobs_extension(self) -> str:
        return ".py"

    def get_template_path(self) -> Path:
        return self.resources / "base_dag.py.j2"

    def lib(self) -> bytes:
        return (self.resources / LIB_NAME).read_bytes()

    async def bootstrap(self, project: ProjectSpec, deadline: Deadline) -> None:
        log = logger.bind(project=project.name, scheduler=self.name)
        try:
            repository = self.repositories.new(project)
            lib = self.lib()
            existing = await deadline.run(
                "list_artifacts", repository.list, include_reserved=True
            )
            if existing.get(LIB_NAME) == hashlib.md5(lib).hexdigest():
                log.debug("scheduler_lib_unchanged")
                return
            await deadline.run("write_scheduler_lib", repository.write, LIB_NAME, lib)
            log.info("scheduler_lib_uploaded", path=repository.location.key(LIB_NAME))
        except DagplaneError as e:
            raise BootstrapError(project.name, e.message) from e
        except OSError as e:
            raise BootstrapError(project.name, str(e)) from e
