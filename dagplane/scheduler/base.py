"""
Execution scheduler capability.

dagplane does not run jobs; it compiles them for an external scheduler and
prepares that scheduler per project.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from ..core.deadline import Deadline
from ..data.models.project import ProjectSpec


class Scheduler(ABC):
    """Abstract base class for scheduler backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def get_jobs_dir(self) -> str:
        """Folder, relative to the project storage path, holding artifacts."""
        pass

    @abstractmethod
    def get_jobs_extension(self) -> str:
        pass

    @abstractmethod
    def get_template_path(self) -> Path:
        """Jinja2 template rendered once per job by the compiler."""
        pass

    @abstractmethod
    async def bootstrap(self, project: ProjectSpec, deadline: Deadline) -> None:
        """Idempotently prepare the scheduler for a project's artifacts.

        Raises:
            BootstrapError: If the project cannot be prepared
        """
        pass
