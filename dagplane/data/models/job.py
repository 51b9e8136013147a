"""
Job specification models.

A JobSpec is the declarative description of a scheduled job as registered by
a project. It is interpreted by a pluggable task unit (``task.unit``) and may
carry hook units, explicit dependencies and raw asset templates.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

# Job and project identifiers
NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")


class DependencyKind(Enum):
    """How a dependency edge was discovered."""

    EXPLICIT = "explicit"
    INFERRED = "inferred"
    CROSS_PROJECT = "cross-project"


class HookType(Enum):
    PRE = "pre"
    POST = "post"
    FAIL = "fail"


@dataclass(frozen=True, order=True)
class JobRef:
    """Project-qualified job identifier."""

    project: str
    name: str

    @classmethod
    def parse(cls, ref: str, default_project: str) -> "JobRef":
        """Parse ``job`` or ``project/job``.

        Raises:
            ValueError: If the reference is malformed
        """
        parts = ref.strip().split("/")
        if len(parts) == 1:
            project, name = default_project, parts[0]
        elif len(parts) == 2:
            project, name = parts
        else:
            raise ValueError(f"malformed job reference: {ref!r}")
        if not NAME_PATTERN.match(project) or not NAME_PATTERN.match(name):
            raise ValueError(f"malformed job reference: {ref!r}")
        return cls(project=project, name=name)

    @property
    def qualified(self) -> str:
        return f"{self.project}/{self.name}"

    def display(self, relative_to: Optional[str] = None) -> str:
        """Bare name inside ``relative_to``, qualified name elsewhere."""
        if relative_to is not None and self.project == relative_to:
            return self.name
        return self.qualified

    def __str__(self) -> str:
        return self.qualified


@dataclass
class JobSchedule:
    start_date: Optional[datetime]
    interval: str
    end_date: Optional[datetime] = None


@dataclass
class RetryPolicy:
    count: int = 0
    delay: int = 0  # seconds
    exponential_backoff: bool = False


@dataclass
class JobBehavior:
    depends_on_past: bool = False
    catch_up: bool = True
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass
class Window:
    """Data window relative to the scheduled time.

    ``size`` and ``offset`` are durations such as ``24h`` or ``-1h30m``;
    ``truncate_to`` is one of ``h``, ``d``, ``w``, ``M`` or empty.
    """

    size: str = "24h"
    offset: str = "0"
    truncate_to: str = "d"


@dataclass
class JobTask:
    unit: str
    config: Dict[str, str] = field(default_factory=dict)
    window: Window = field(default_factory=Window)


@dataclass
class JobHook:
    unit: str
    config: Dict[str, str] = field(default_factory=dict)


@dataclass
class JobSpec:
    """A job declaration, unique by ``name`` within its project."""

    name: str
    owner: str
    schedule: JobSchedule
    task: JobTask
    description: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    behavior: JobBehavior = field(default_factory=JobBehavior)
    hooks: List[JobHook] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    assets: Dict[str, str] = field(default_factory=dict)

    def get_hook(self, unit: str) -> Optional[JobHook]:
        for hook in self.hooks:
            if hook.unit == unit:
                return hook
        return None

    def parameter_values(self) -> List[str]:
        """Every task and hook config value, in declaration order."""
        values = list(self.task.config.values())
        for hook in self.hooks:
            values.extend(hook.config.values())
        return values


@dataclass(frozen=True)
class ResolvedDependency:
    """A job's upstream after resolution."""

    ref: JobRef
    kind: DependencyKind

    def to_dict(self, relative_to: Optional[str] = None) -> Dict[str, Any]:
        return {
            "project": self.ref.project,
            "job": self.ref.name,
            "ref": self.ref.display(relative_to),
            "kind": self.kind.value,
        }
