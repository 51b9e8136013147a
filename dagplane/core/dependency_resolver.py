"""
Dependency resolution.

Builds the dependency graph of one project: its own jobs plus every job,
in this or another project, that they transitively depend on. Edges come
from three places:

- explicit ``dependencies`` (``job`` or ``project/job``)
- ``@job:<ref>`` tokens inside task and hook config values (inferred)
- destinations read by the task unit, found in the job's rendered assets and
  matched to the job that produces them (inferred)

The finished graph is checked for cycles. The same input always yields the
same graph and, when there is a cycle, the same reported path.
"""

from __future__ import annotations

import re
from collections import deque
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple

import structlog

from ..data.models.graph import DependencyGraph, find_cycle
from ..data.models.job import DependencyKind, JobRef, JobSpec
from ..errors import (
    AmbiguousDependency,
    CompilationError,
    CyclicDependency,
    JobNotFound,
    MissingDependency,
    ProjectNotFound,
)
from ..units.registry import TaskRegistry
from .assets import AssetDump
from .deadline import Deadline
from .interfaces import SpecificationRepository
from .windows import reference_time

logger = structlog.get_logger()

JOB_REFERENCE = re.compile(r"@job:([^\s,;'\"`()\[\]{}]+)")


class InferencePolicy(Enum):
    """What to do with inferred references that cannot be resolved."""

    # Skip the reference and log a warning
    BEST_EFFORT = "best_effort"
    # Fail resolution
    STRICT = "strict"


class DependencyResolver:
    """Resolves a project's jobs into a validated ``DependencyGraph``."""

    def __init__(
        self,
        task_registry: TaskRegistry,
        asset_dump: AssetDump,
        policy: InferencePolicy = InferencePolicy.BEST_EFFORT,
    ):
        self.task_registry = task_registry
        self.asset_dump = asset_dump
        self.policy = policy

    async def resolve(
        self,
        project: str,
        repository: SpecificationRepository,
        deadline: Optional[Deadline] = None,
    ) -> DependencyGraph:
        """Resolve every job of ``project``.

        Raises:
            MissingDependency: A referenced job or project does not exist
            AmbiguousDependency: Strict policy and an inferred reference
                matches several jobs
            CyclicDependency: The graph has a cycle
        """
        deadline = deadline or Deadline()
        log = logger.bind(project=project)

        local_jobs = await deadline.run("list_jobs", repository.list_jobs, project)
        run = _Resolution(self, project, repository, deadline, local_jobs)
        graph = await run.build()

        cycle = find_cycle(graph.nodes, graph.adjacency())
        if cycle:
            path = [ref.display(project) for ref in cycle]
            log.warning("dependency_cycle_detected", path=path)
            raise CyclicDependency(path)

        log.info("dependencies_resolved", jobs=len(graph), edges=len(graph.edges))
        return graph

    def job_references(self, job: JobSpec, project: str) -> List[Tuple[str, Optional[JobRef]]]:
        """``@job:`` tokens of a job as ``(token, parsed ref or None)``."""
        refs = []
        for value in job.parameter_values():
            for token in JOB_REFERENCE.findall(value):
                try:
                    refs.append((token, JobRef.parse(token, project)))
                except ValueError:
                    refs.append((token, None))
        return refs


class _Resolution:
    """State of a single ``resolve`` call."""

    def __init__(
        self,
        resolver: DependencyResolver,
        project: str,
        repository: SpecificationRepository,
        deadline: Deadline,
        local_jobs: List[JobSpec],
    ):
        self.resolver = resolver
        self.project = project
        self.repository = repository
        self.deadline = deadline
        self.graph = DependencyGraph(project)
        self.local: Dict[str, JobSpec] = {job.name: job for job in local_jobs}
        self.local_destinations: Dict[str, List[JobRef]] = {}
        self.destination_cache: Dict[str, List[JobRef]] = {}
        self.fetched: Dict[JobRef, JobSpec] = {}
        self.log = logger.bind(project=project)

    async def build(self) -> DependencyGraph:
        pending: Deque[JobRef] = deque()
        for name in sorted(self.local):
            ref = JobRef(self.project, name)
            self.graph.add_node(ref, self.local[name])
            pending.append(ref)
            destination = self._destination(self.local[name])
            if destination:
                self.local_destinations.setdefault(destination, []).append(ref)

        while pending:
            source = pending.popleft()
            for target, kind in await self._references(source, self.graph.nodes[source]):
                if target not in self.graph.nodes:
                    self.graph.add_node(target, await self._fetch(source, target))
                    pending.append(target)
                self.graph.add_edge(source, target, kind)
        return self.graph

    def _destination(self, job: JobSpec) -> Optional[str]:
        unit = self.resolver.task_registry.get(job.task.unit)
        return unit.get_destination(job)

    async def _references(self, source: JobRef, job: JobSpec) -> List[Tuple[JobRef, DependencyKind]]:
        found: Dict[JobRef, DependencyKind] = {}
        name = source.display(self.project)

        for dep in job.dependencies:
            try:
                target = JobRef.parse(dep, source.project)
            except ValueError:
                raise MissingDependency(name, dep) from None
            found[target] = DependencyKind.EXPLICIT

        for token, target in self.resolver.job_references(job, source.project):
            if target is None:
                self._reject(MissingDependency(name, f"@job:{token}"))
                continue
            if target == source or target in found:
                continue
            if await self._exists(source, target):
                found[target] = DependencyKind.INFERRED

        for target in await self._destination_dependencies(source, job):
            found.setdefault(target, DependencyKind.INFERRED)

        return sorted(found.items())

    async def _destination_dependencies(self, source: JobRef, job: JobSpec) -> List[JobRef]:
        name = source.display(self.project)
        unit = self.resolver.task_registry.get(job.task.unit)
        try:
            assets = self.resolver.asset_dump(job, reference_time(job))
        except CompilationError as e:
            self._reject(e)
            return []

        own = unit.get_destination(job)
        targets = []
        for destination in unit.generate_dependencies(job, assets):
            if destination == own:
                continue
            candidates = [c for c in await self._producers(source, destination) if c != source]
            if not candidates:
                # Produced outside the control plane
                continue
            if len(candidates) > 1:
                self._reject(
                    AmbiguousDependency(name, destination, [c.display(self.project) for c in candidates])
                )
                continue
            targets.append(candidates[0])
        return targets

    async def _producers(self, source: JobRef, destination: str) -> List[JobRef]:
        """Jobs producing ``destination``; the source's own project wins."""
        if source.project == self.project and destination in self.local_destinations:
            return self.local_destinations[destination]

        if destination not in self.destination_cache:
            refs = await self.deadline.run(
                "find_jobs_by_destination", self.repository.find_jobs_by_destination, destination
            )
            # Local jobs are indexed from the specs being resolved
            remote = [r for r in refs if r.project != self.project]
            local = self.local_destinations.get(destination, [])
            self.destination_cache[destination] = sorted(set(remote) | set(local))
        candidates = self.destination_cache[destination]
        same_project = [c for c in candidates if c.project == source.project]
        return same_project or candidates

    async def _exists(self, source: JobRef, target: JobRef) -> bool:
        if target in self.graph.nodes:
            return True
        try:
            await self._fetch(source, target)
        except MissingDependency as e:
            self._reject(e)
            return False
        return True

    async def _fetch(self, source: JobRef, target: JobRef) -> JobSpec:
        name = source.display(self.project)
        if target.project == self.project:
            if target.name not in self.local:
                raise MissingDependency(name, target.name, target.project)
            return self.local[target.name]
        if target not in self.fetched:
            try:
                self.fetched[target] = await self.deadline.run(
                    "get_job", self.repository.get_job, target.project, target.name
                )
            except (JobNotFound, ProjectNotFound):
                raise MissingDependency(name, target.name, target.project) from None
        return self.fetched[target]

    def _reject(self, error: Exception) -> None:
        """Apply the inference policy to an unresolvable inferred reference."""
        if self.resolver.policy is InferencePolicy.STRICT:
            raise error
        self.log.warning("inferred_dependency_skipped", reason=str(error))
