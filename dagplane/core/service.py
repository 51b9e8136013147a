"""
Control-plane service.

Wires the pipeline for one project

    repository -> DependencyResolver -> PriorityResolver
               -> AssetRenderer -> Compiler -> Deployer

and exposes project, secret and job registration on top of the
specification repository. Multi-project passes isolate failures per project.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from ..data.models.artifact import CompiledArtifact
from ..data.models.graph import DependencyGraph
from ..data.models.job import NAME_PATTERN, JobRef, JobSpec
from ..data.models.project import ProjectSpec
from ..errors import (
    DagplaneError,
    DeploymentError,
    InternalError,
    InvalidProject,
    JobFailure,
    JobNotFound,
    JobValidationError,
    error_code,
)
from ..storage.artifacts import ArtifactRepositoryFactory
from ..units.registry import HookRegistry, TaskRegistry
from .assets import AssetDump
from .compiler import Compiler
from .deadline import Deadline
from .dependency_resolver import DependencyResolver
from .deployer import Deployer, SyncResult
from .interfaces import SpecificationRepository
from .priority_resolver import PriorityResolver
from .windows import compute_window, reference_time

logger = structlog.get_logger()


@dataclass
class CompileResult:
    """Artifacts of a project's jobs plus the jobs that failed to compile."""

    project: str
    graph: DependencyGraph
    artifacts: List[CompiledArtifact] = field(default_factory=list)
    failures: List[JobFailure] = field(default_factory=list)
    weights: Dict[str, int] = field(default_factory=dict)


@dataclass
class DeployReport:
    """Outcome of deploying one project."""

    project: str
    sync: Optional[SyncResult] = None
    compile_failures: List[JobFailure] = field(default_factory=list)
    error: Optional[DagplaneError] = None

    @property
    def failures(self) -> List[JobFailure]:
        failures = list(self.compile_failures)
        if self.sync is not None:
            failures.extend(self.sync.failures)
        return failures

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failures

    def raise_for_failures(self) -> None:
        """
        Raises:
            DagplaneError: The project-level error, if any
            DeploymentError: If any job failed to compile, write or delete
        """
        if self.error is not None:
            raise self.error
        if self.failures:
            written = len(self.sync.written) if self.sync else 0
            raise DeploymentError(self.project, self.failures, written=written)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "project": self.project,
            "ok": self.ok,
            "written": self.sync.written if self.sync else [],
            "unchanged": self.sync.unchanged if self.sync else [],
            "deleted": self.sync.deleted if self.sync else [],
            "failures": [f.to_dict() for f in self.failures],
        }
        if self.error is not None:
            result["error"] = {
                "code": error_code(self.error),
                "message": str(self.error),
                "details": self.error.details,
            }
        return result


class JobService:
    def __init__(
        self,
        repository: SpecificationRepository,
        task_registry: TaskRegistry,
        hook_registry: HookRegistry,
        resolver: DependencyResolver,
        priority_resolver: PriorityResolver,
        renderer: AssetDump,
        compiler: Compiler,
        deployer: Deployer,
        artifacts: ArtifactRepositoryFactory,
        call_timeout: Optional[float] = None,
        deploy_timeout: Optional[float] = None,
    ):
        self.repository = repository
        self.task_registry = task_registry
        self.hook_registry = hook_registry
        self.resolver = resolver
        self.priority_resolver = priority_resolver
        self.renderer = renderer
        self.compiler = compiler
        self.deployer = deployer
        self.artifacts = artifacts
        self.call_timeout = call_timeout
        self.deploy_timeout = deploy_timeout

    def deadline(self, timeout: Optional[float] = None) -> Deadline:
        return Deadline(timeout=timeout, call_timeout=self.call_timeout)

    # Projects and secrets

    async def register_project(self, project: ProjectSpec) -> ProjectSpec:
        if not NAME_PATTERN.match(project.name):
            raise InvalidProject(project.name, "invalid project name")
        deadline = self.deadline()
        await deadline.run("save_project", self.repository.save_project, project)
        logger.info("project_registered", project=project.name)
        return await deadline.run("get_project", self.repository.get_project, project.name)

    async def list_projects(self) -> List[ProjectSpec]:
        return await self.deadline().run("list_projects", self.repository.list_projects)

    async def get_project(self, name: str) -> ProjectSpec:
        return await self.deadline().run("get_project", self.repository.get_project, name)

    async def register_secret(self, project: str, name: str, value: bytes) -> None:
        if not name.strip():
            raise InvalidProject(project, "secret name is required")
        deadline = self.deadline()
        await deadline.run("get_project", self.repository.get_project, project)
        await deadline.run("save_secret", self.repository.save_secret, project, name, value)
        logger.info("secret_registered", project=project, secret=name)

    # Jobs

    def validate_job(self, project: str, job: JobSpec) -> Optional[str]:
        """Check a job against its units and return the destination it produces.

        Raises:
            JobValidationError: If the job is malformed
            UnitNotFound: If the job names an unregistered task or hook unit
        """
        if not NAME_PATTERN.match(job.name):
            raise JobValidationError(job.name, "invalid job name")
        if not job.owner.strip():
            raise JobValidationError(job.name, "owner is required")
        if not job.schedule.interval.strip():
            raise JobValidationError(job.name, "schedule interval is required")
        if job.schedule.start_date is None:
            raise JobValidationError(job.name, "schedule start_date is required")

        window = job.task.window
        try:
            compute_window(window, reference_time(job))
        except ValueError as e:
            raise JobValidationError(job.name, f"invalid window: {e}") from None

        for dependency in job.dependencies:
            try:
                JobRef.parse(dependency, project)
            except ValueError as e:
                raise JobValidationError(job.name, str(e)) from None

        task_unit = self.task_registry.get(job.task.unit)
        task_unit.validate(job)

        seen = set()
        for hook in job.hooks:
            if hook.unit in seen:
                raise JobValidationError(job.name, f"hook {hook.unit} is attached twice")
            seen.add(hook.unit)
            self.hook_registry.get(hook.unit).validate(job, hook.config)

        return task_unit.get_destination(job)

    async def register_job(self, project: str, job: JobSpec) -> JobSpec:
        destination = self.validate_job(project, job)
        deadline = self.deadline()
        await deadline.run("get_project", self.repository.get_project, project)
        await deadline.run("save_job", self.repository.save_job, project, job, destination)
        logger.info("job_registered", project=project, job=job.name, destination=destination)
        return job

    async def delete_job(self, project: str, name: str) -> None:
        await self.deadline().run("delete_job", self.repository.delete_job, project, name)
        logger.info("job_deleted", project=project, job=name)

    async def list_jobs(self, project: str) -> List[JobSpec]:
        return await self.deadline().run("list_jobs", self.repository.list_jobs, project)

    async def get_job(self, project: str, name: str) -> JobSpec:
        return await self.deadline().run("get_job", self.repository.get_job, project, name)

    # Pipeline

    async def resolve(self, project: str, deadline: Optional[Deadline] = None) -> DependencyGraph:
        return await self.resolver.resolve(project, self.repository, deadline or self.deadline())

    async def compile_project(
        self, project: str, deadline: Optional[Deadline] = None
    ) -> CompileResult:
        """Resolve and compile every job of ``project``.

        A job that fails to compile is reported and the others still compile.

        Raises:
            DependencyResolutionError: If the graph cannot be built
        """
        deadline = deadline or self.deadline()
        graph = await self.resolve(project, deadline)
        weights = self.priority_resolver.resolve(graph)
        result = CompileResult(project=project, graph=graph)

        for ref in graph.jobs(project):
            deadline.check("compile")
            job = graph.nodes[ref]
            try:
                artifact = self._compile(project, graph, ref, weights[ref])
            except DagplaneError as e:
                logger.warning("job_compile_failed", project=project, job=ref.name, error=str(e))
                result.failures.append(JobFailure(ref.name, "compile", e))
                continue
            result.artifacts.append(artifact)
            result.weights[job.name] = weights[ref]

        logger.info(
            "project_compiled",
            reporter="pipeline",
            project=project,
            jobs=len(result.artifacts),
            failed=len(result.failures),
        )
        return result

    async def compile_job(
        self, project: str, name: str, deadline: Optional[Deadline] = None
    ) -> CompiledArtifact:
        """Dry run compilation of a single job.

        Raises:
            JobNotFound: If the job does not exist
            CompilationError: If the job cannot be compiled
        """
        deadline = deadline or self.deadline()
        graph = await self.resolve(project, deadline)
        ref = JobRef(project, name)
        if ref not in graph.nodes:
            raise JobNotFound(project, name)
        weights = self.priority_resolver.resolve(graph)
        return self._compile(project, graph, ref, weights[ref])

    def _compile(
        self, project: str, graph: DependencyGraph, ref: JobRef, weight: int
    ) -> CompiledArtifact:
        job = graph.nodes[ref]
        assets = self.renderer(job, reference_time(job))
        return self.compiler.compile(project, job, graph.dependencies_of(ref), weight, assets)

    async def deploy_project(
        self, project: str, deadline: Optional[Deadline] = None
    ) -> DeployReport:
        """Compile and sync one project.

        Raises:
            DagplaneError: On project-level failures (unknown project, storage
                configuration, dependency resolution, listing the store)
        """
        deadline = deadline or self.deadline(self.deploy_timeout)
        log = logger.bind(project=project, reporter="pipeline")
        log.info("project_deploy_started")

        spec = await deadline.run("get_project", self.repository.get_project, project)
        repository = await deadline.run("open_storage", self.artifacts.new, spec)
        compiled = await self.compile_project(project, deadline)

        # Jobs that failed to compile keep their last deployed artifact
        keep = {self.compiler.artifact_path(ref.name) for ref in compiled.graph.jobs(project)}
        sync = await self.deployer.sync(project, repository, compiled.artifacts, keep, deadline)

        report = DeployReport(project=project, sync=sync, compile_failures=compiled.failures)
        log.info("project_deploy_finished", ok=report.ok, failures=len(report.failures))
        return report

    async def deploy_all(self, deadline: Optional[Deadline] = None) -> List[DeployReport]:
        """Deploy every registered project concurrently.

        A project-level failure is captured in that project's report.
        """
        deadline = deadline or self.deadline(self.deploy_timeout)
        projects = await deadline.run("list_projects", self.repository.list_projects)
        reports = await asyncio.gather(*(self._deploy_isolated(p.name, deadline) for p in projects))
        logger.info(
            "deploy_all_finished",
            reporter="pipeline",
            projects=len(reports),
            failed=[r.project for r in reports if not r.ok],
        )
        return list(reports)

    async def _deploy_isolated(self, project: str, deadline: Deadline) -> DeployReport:
        try:
            return await self.deploy_project(project, deadline)
        except DagplaneError as e:
            logger.error("project_deploy_failed", project=project, code=e.code, error=e.message)
            return DeployReport(project=project, error=e)
        except Exception as e:
            logger.exception("project_deploy_failed", project=project, code=InternalError.code)
            return DeployReport(project=project, error=InternalError(f"project {project}", e))
