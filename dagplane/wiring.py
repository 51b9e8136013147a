"""
Assembly of the pipeline components from settings.

Every registry and backend is constructed here and passed down explicitly;
tests build their own with different registries or repositories.
"""

from dataclasses import dataclass
from typing import Optional

from .config import Settings
from .core.assets import AssetRenderer
from .core.bootstrap import BootstrapRunner
from .core.compiler import Compiler
from .core.dependency_resolver import DependencyResolver, InferencePolicy
from .core.deployer import Deployer
from .core.interfaces import SpecificationRepository
from .core.priority_resolver import PriorityResolver
from .core.service import JobService
from .db.base import create_db_engine, get_database_url, get_session_factory, init_database
from .db.crypto import ApplicationKey
from .db.repositories import SqlSpecificationRepository
from .scheduler.airflow2 import Airflow2Scheduler
from .scheduler.base import Scheduler
from .storage.artifacts import ArtifactRepositoryFactory
from .storage.registry import StorageRegistry, default_storage_registry
from .units.registry import HookRegistry, TaskRegistry, default_hook_registry, default_task_registry


@dataclass
class Pipeline:
    service: JobService
    bootstrap: BootstrapRunner
    scheduler: Scheduler
    repository: SpecificationRepository


def build_repository(settings: Settings) -> SqlSpecificationRepository:
    """SQL repository for the configured database.

    SQLite databases are created on the fly; PostgreSQL schemas are managed
    by the Alembic migrations.
    """
    database_url = get_database_url(settings)
    engine = create_db_engine(settings, database_url)
    if database_url.startswith("sqlite"):
        init_database(engine)
    return SqlSpecificationRepository(get_session_factory(engine), ApplicationKey(settings.app_key))


def build_pipeline(
    settings: Settings,
    repository: Optional[SpecificationRepository] = None,
    storage: Optional[StorageRegistry] = None,
    task_registry: Optional[TaskRegistry] = None,
    hook_registry: Optional[HookRegistry] = None,
) -> Pipeline:
    repository = repository or build_repository(settings)
    storage = storage or default_storage_registry()
    tasks = task_registry or default_task_registry()
    hooks = hook_registry or default_hook_registry()

    scheduler = Airflow2Scheduler(storage)
    renderer = AssetRenderer()
    service = JobService(
        repository=repository,
        task_registry=tasks,
        hook_registry=hooks,
        resolver=DependencyResolver(
            tasks, renderer, InferencePolicy(settings.inferred_dependency_policy)
        ),
        priority_resolver=PriorityResolver(),
        renderer=renderer,
        compiler=Compiler(scheduler, tasks, hooks, settings.ingress_host),
        deployer=Deployer(settings.deploy_concurrency),
        artifacts=ArtifactRepositoryFactory(
            storage, scheduler.get_jobs_dir(), scheduler.get_jobs_extension()
        ),
        call_timeout=settings.storage_call_timeout_seconds,
        deploy_timeout=settings.deploy_timeout_seconds,
    )
    bootstrap = BootstrapRunner(
        scheduler,
        timeout=settings.bootstrap_timeout_seconds,
        call_timeout=settings.storage_call_timeout_seconds,
    )
    return Pipeline(service=service, bootstrap=bootstrap, scheduler=scheduler, repository=repository)
