"""
Task and hook unit interfaces.

A task unit interprets a job's ``task.config`` and assets: it knows which
container image runs the job, which output the job produces (its
destination) and which outputs it reads. Hook units run beside the task
(before it, after it, or on failure).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..data.models.artifact import RenderedAssetSet
from ..data.models.job import HookType, JobSpec
from ..errors import JobValidationError


def _missing_keys(config: Mapping[str, str], required: Tuple[str, ...]) -> List[str]:
    return [key for key in required if not str(config.get(key, "")).strip()]


class TaskUnit(ABC):
    """Abstract base class for task units."""

    description: str = ""
    required_config: Tuple[str, ...] = ()
    required_assets: Tuple[str, ...] = ()

    @property
    @abstractmethod
    def name(self) -> str:
        """Unit name referenced by ``JobSpec.task.unit``."""
        pass

    @property
    @abstractmethod
    def image(self) -> str:
        """Container image executing the task."""
        pass

    def validate(self, job: JobSpec) -> None:
        """Reject a job whose config or assets this unit cannot run.

        Raises:
            JobValidationError: If a required config key or asset is missing
        """
        missing = _missing_keys(job.task.config, self.required_config)
        if missing:
            raise JobValidationError(
                job.name, f"task {self.name} requires config {', '.join(missing)}"
            )
        missing_assets = [a for a in self.required_assets if a not in job.assets]
        if missing_assets:
            raise JobValidationError(
                job.name, f"task {self.name} requires assets {', '.join(missing_assets)}"
            )

    def get_destination(self, job: JobSpec) -> Optional[str]:
        """The output this job produces, if any."""
        return None

    def generate_dependencies(self, job: JobSpec, assets: RenderedAssetSet) -> List[str]:
        """Destinations this job reads, discovered from its rendered assets."""
        return []

    def info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "image": self.image,
            "description": self.description,
            "required_config": list(self.required_config),
        }


class HookUnit(ABC):
    """Abstract base class for hook units."""

    description: str = ""
    required_config: Tuple[str, ...] = ()
    # Other hook units that must finish first when attached to the same job
    depends_on: Tuple[str, ...] = ()

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def image(self) -> str:
        pass

    @property
    @abstractmethod
    def hook_type(self) -> HookType:
        pass

    def validate(self, job: JobSpec, config: Mapping[str, str]) -> None:
        missing = _missing_keys(config, self.required_config)
        if missing:
            raise JobValidationError(
                job.name, f"hook {self.name} requires config {', '.join(missing)}"
            )

    def info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "image": self.image,
            "type": self.hook_type.value,
            "description": self.description,
            "depends_on": list(self.depends_on),
        }
