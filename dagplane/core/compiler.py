"""
Job compilation.

Renders one job into the scheduler's definition file (an Airflow DAG for the
built-in backend). Compilation is a pure function of its inputs: the same job,
dependencies, priority weight and rendered assets produce the same bytes.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Sequence, Set

import structlog
from jinja2 import Environment, StrictUndefined, TemplateError, UndefinedError

from ..data.models.artifact import CompiledArtifact, RenderedAssetSet
from ..data.models.job import HookType, JobHook, JobSpec, ResolvedDependency
from ..errors import CompilationError, UnitNotFound
from ..scheduler.base import Scheduler
from ..units.base import HookUnit
from ..units.registry import HookRegistry, TaskRegistry
from .windows import as_utc, compute_window, reference_time

logger = structlog.get_logger()

HOOK_ORDER = (HookType.PRE, HookType.POST, HookType.FAIL)

_UNDEFINED_NAME = re.compile(r"'([^']+)' is undefined|has no attribute '([^']+)'")


def identifier(value: str) -> str:
    """A python identifier fragment for ``value``."""
    return re.sub(r"[^0-9A-Za-z_]", "_", value)


def unique(value: str, taken: Set[str]) -> str:
    """``value``, suffixed with a counter while it is already in ``taken``."""
    candidate, n = value, 2
    while candidate in taken:
        candidate = f"{value}_{n}"
        n += 1
    taken.add(candidate)
    return candidate


def pod_name(*parts: str) -> str:
    name = "-".join(parts).lower()
    return re.sub(r"[^0-9a-z\-]", "-", name).strip("-")[:63]


class Compiler:
    """Compiles jobs with the scheduler's template.

    The template is read once; a compiler instance can be shared by
    concurrent compilations.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        task_registry: TaskRegistry,
        hook_registry: HookRegistry,
        ingress_host: str = "",
    ):
        self.scheduler = scheduler
        self.task_registry = task_registry
        self.hook_registry = hook_registry
        self.ingress_host = ingress_host
        self.env = Environment(
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )
        self.env.filters["pyrepr"] = repr
        source = scheduler.get_template_path().read_text(encoding="utf-8")
        self.template = self.env.from_string(source)

    def artifact_path(self, job_name: str) -> str:
        """Path of a job's artifact relative to the project namespace."""
        return f"{job_name}{self.scheduler.get_jobs_extension()}"

    def compile(
        self,
        project: str,
        job: JobSpec,
        dependencies: Sequence[ResolvedDependency],
        priority_weight: int,
        assets: RenderedAssetSet,
    ) -> CompiledArtifact:
        """Render ``job`` into a scheduler artifact.

        Raises:
            CompilationError: If a required field is missing, a unit is not
                registered or the template references an unknown placeholder
        """
        context = self.context(project, job, dependencies, priority_weight, assets)
        try:
            payload = self.template.render(**context)
        except UndefinedError as e:
            raise CompilationError(job.name, _undefined_name(e)) from e
        except TemplateError as e:
            raise CompilationError(job.name, "template", reason=str(e)) from e

        logger.debug("job_compiled", project=project, job=job.name, weight=priority_weight)
        return CompiledArtifact(
            job=job.name,
            path=self.artifact_path(job.name),
            payload=payload.encode("utf-8"),
        )

    def context(
        self,
        project: str,
        job: JobSpec,
        dependencies: Sequence[ResolvedDependency],
        priority_weight: int,
        assets: RenderedAssetSet,
    ) -> Dict[str, Any]:
        """Template variables for one job."""
        _require(job, "owner", job.owner)
        _require(job, "schedule.start_date", job.schedule.start_date)
        _require(job, "schedule.interval", job.schedule.interval)
        try:
            compute_window(job.task.window, reference_time(job))
        except ValueError as e:
            raise CompilationError(job.name, "task.window", reason=str(e)) from e

        try:
            task_unit = self.task_registry.get(job.task.unit)
        except UnitNotFound as e:
            raise CompilationError(job.name, "task.unit", reason=e.message) from e

        task_id = identifier(job.task.unit)
        transformation = f"transformation_{task_id}"
        hooks = self._hooks(job, transformation)
        pre_hooks = [h for h in hooks if h["type"] == HookType.PRE.value]

        if pre_hooks:
            entry_steps = [f"hook_{h['identifier']}" for h in pre_hooks if not h["upstream"]]
        else:
            entry_steps = [transformation]

        window = job.task.window
        end_date = job.schedule.end_date
        return {
            "project": project,
            "job": {
                "name": job.name,
                "owner": job.owner,
                "description": job.description,
                "interval": job.schedule.interval,
                "start_date": as_utc(job.schedule.start_date).isoformat(),
                "end_date": as_utc(end_date).isoformat() if end_date else None,
                "depends_on_past": job.behavior.depends_on_past,
                "catch_up": job.behavior.catch_up,
                "retry_count": job.behavior.retry.count,
                "retry_delay": job.behavior.retry.delay,
                "retry_exponential_backoff": job.behavior.retry.exponential_backoff,
                "tags": [f"{key}:{value}" for key, value in sorted(job.labels.items())],
                "window": {
                    "size": window.size,
                    "offset": window.offset,
                    "truncate_to": window.truncate_to,
                },
            },
            "priority_weight": priority_weight,
            "assets": dict(sorted(assets.items())),
            "task": {
                "identifier": task_id,
                "unit": job.task.unit,
                "pod_name": pod_name(job.name, job.task.unit),
                "image": task_unit.image,
                "config": dict(sorted(job.task.config.items())),
                "upstream": [f"hook_{h['identifier']}" for h in pre_hooks],
            },
            "hooks": hooks,
            "dependencies": self._dependencies(project, dependencies),
            "ingress_host": self.ingress_host,
            "entry_steps": entry_steps,
        }

    def _dependencies(
        self, project: str, dependencies: Sequence[ResolvedDependency]
    ) -> List[Dict[str, Any]]:
        # Distinct jobs can share an identifier (orders-daily, orders_daily)
        identifiers: Set[str] = set()
        task_ids: Set[str] = set()
        result = []
        for dep in sorted(dependencies, key=lambda d: d.ref):
            external = dep.ref.project != project
            name = f"{dep.ref.project}__{dep.ref.name}" if external else dep.ref.name
            task_id = f"{dep.ref.project}_{dep.ref.name}" if external else dep.ref.name
            result.append(
                {
                    "external": external,
                    "identifier": unique(identifier(name), identifiers),
                    "task_id": "wait_" + unique(task_id, task_ids),
                    "project": dep.ref.project,
                    "job": dep.ref.name,
                    "kind": dep.kind.value,
                }
            )
        return result

    def _hooks(self, job: JobSpec, transformation: str) -> List[Dict[str, Any]]:
        units: Dict[str, HookUnit] = {}
        for hook in job.hooks:
            try:
                units[hook.unit] = self.hook_registry.get(hook.unit)
            except UnitNotFound as e:
                raise CompilationError(job.name, f"hooks.{hook.unit}", reason=e.message) from e

        result = []
        for hook_type in HOOK_ORDER:
            attached = [h for h in job.hooks if units[h.unit].hook_type is hook_type]
            for hook in _ordered(job, attached, units):
                unit = units[hook.unit]
                upstream = [
                    f"hook_{identifier(dep)}"
                    for dep in unit.depends_on
                    if any(h.unit == dep for h in attached)
                ]
                if hook_type is HookType.FAIL or (hook_type is HookType.POST and not upstream):
                    upstream = [transformation]
                result.append(
                    {
                        "identifier": identifier(hook.unit),
                        "task_id": hook.unit,
                        "pod_name": pod_name(job.name, hook.unit),
                        "image": unit.image,
                        "config": dict(sorted(hook.config.items())),
                        "type": hook_type.value,
                        "upstream": upstream,
                    }
                )
        return result


def _ordered(job: JobSpec, hooks: List[JobHook], units: Dict[str, HookUnit]) -> List[JobHook]:
    """Hooks of one type, each after the attached hooks it depends on.

    Declaration order is kept wherever ``depends_on`` allows it.
    """
    attached = {h.unit for h in hooks}
    placed: List[JobHook] = []
    done = set()
    remaining = list(hooks)
    while remaining:
        for hook in remaining:
            deps = [d for d in units[hook.unit].depends_on if d in attached]
            if all(d in done for d in deps):
                placed.append(hook)
                done.add(hook.unit)
                remaining.remove(hook)
                break
        else:
            raise CompilationError(
                job.name,
                "hooks",
                reason=f"cyclic hook dependencies between {', '.join(sorted(h.unit for h in remaining))}",
            )
    return placed


def _require(job: JobSpec, field: str, value: Optional[Any]) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise CompilationError(job.name, field)


def _undefined_name(error: UndefinedError) -> str:
    match = _UNDEFINED_NAME.search(str(error))
    if not match:
        return "template"
    return match.group(1) or match.group(2)
