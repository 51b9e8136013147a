"""
Scheduler bootstrap at startup.

Every registered project is bootstrapped concurrently, each under its own
timeout. A failing project is logged and reported; it never blocks the others
or the process, and can be retried on its own later.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import structlog

from ..data.models.project import ProjectSpec
from ..errors import BootstrapError, DagplaneError, error_code
from ..scheduler.base import Scheduler
from .deadline import Deadline
from .interfaces import SpecificationRepository

logger = structlog.get_logger()

DEFAULT_BOOTSTRAP_TIMEOUT = 10.0


@dataclass
class BootstrapResult:
    project: str
    error: Optional[DagplaneError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"project": self.project, "ok": self.ok}
        if self.error is not None:
            result["error"] = {"code": error_code(self.error), "message": str(self.error)}
        return result


class BootstrapRunner:
    def __init__(
        self,
        scheduler: Scheduler,
        timeout: float = DEFAULT_BOOTSTRAP_TIMEOUT,
        call_timeout: Optional[float] = None,
    ):
        self.scheduler = scheduler
        self.timeout = timeout
        self.call_timeout = call_timeout

    async def bootstrap_project(self, project: ProjectSpec) -> BootstrapResult:
        """Bootstrap one project. Failures are returned, never raised."""
        log = logger.bind(project=project.name, scheduler=self.scheduler.name)
        deadline = Deadline(timeout=self.timeout, call_timeout=self.call_timeout)
        try:
            await self.scheduler.bootstrap(project, deadline)
        except DagplaneError as e:
            log.error("project_bootstrap_failed", code=e.code, error=e.message)
            return BootstrapResult(project.name, e)
        except Exception as e:
            log.exception("project_bootstrap_failed", code=BootstrapError.code)
            error = BootstrapError(project.name, f"{type(e).__name__}: {e}")
            return BootstrapResult(project.name, error)
        log.info("project_bootstrapped")
        return BootstrapResult(project.name)

    async def bootstrap_all(self, projects: Iterable[ProjectSpec]) -> List[BootstrapResult]:
        results = await asyncio.gather(*(self.bootstrap_project(p) for p in projects))
        failed = [r.project for r in results if not r.ok]
        logger.info(
            "bootstrap_finished",
            reporter="pipeline",
            projects=len(results),
            failed=failed,
        )
        return list(results)

    async def bootstrap_registered(self, repository: SpecificationRepository) -> List[BootstrapResult]:
        """Bootstrap every project in ``repository``.

        Raises:
            DeadlineExceeded: If the projects cannot be listed in time
        """
        deadline = Deadline(timeout=self.timeout, call_timeout=self.call_timeout)
        projects = await deadline.run("list_projects", repository.list_projects)
        return await self.bootstrap_all(projects)
