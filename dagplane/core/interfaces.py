"""
Capabilities the pipeline depends on but does not implement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from ..data.models.job import JobRef, JobSpec
from ..data.models.project import ProjectSpec


class SpecificationRepository(ABC):
    """Durable store of project and job declarations.

    Implementations are externally synchronized and may be mutated
    concurrently; every method is a blocking call.
    """

    @abstractmethod
    def list_projects(self) -> List[ProjectSpec]:
        """All registered projects, secrets included, sorted by name."""
        pass

    @abstractmethod
    def get_project(self, name: str) -> ProjectSpec:
        """Raises ProjectNotFound."""
        pass

    @abstractmethod
    def save_project(self, project: ProjectSpec) -> None:
        """Create or update a project's configuration. Secrets are kept."""
        pass

    @abstractmethod
    def list_jobs(self, project: str) -> List[JobSpec]:
        """All jobs of a project sorted by name. Raises ProjectNotFound."""
        pass

    @abstractmethod
    def get_job(self, project: str, name: str) -> JobSpec:
        """Raises ProjectNotFound or JobNotFound."""
        pass

    @abstractmethod
    def save_job(self, project: str, job: JobSpec, destination: Optional[str] = None) -> None:
        """Create or replace a job, recording the destination it produces."""
        pass

    @abstractmethod
    def delete_job(self, project: str, name: str) -> None:
        """Raises JobNotFound."""
        pass

    @abstractmethod
    def find_jobs_by_destination(self, destination: str) -> List[JobRef]:
        """Jobs in any project that produce ``destination``, sorted."""
        pass

    @abstractmethod
    def get_secret(self, project: str, name: str) -> bytes:
        """Raises SecretNotFound."""
        pass

    @abstractmethod
    def save_secret(self, project: str, name: str, value: bytes) -> None:
        pass
