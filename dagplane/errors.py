"""
Error types for dagplane.

Every error carries the context needed to report it to an API caller and a
stable ``code`` for programmatic handling. Per-job failures are collected by
the multi-job passes (compilation, deployment) and per-project failures by the
multi-project passes (bootstrap, deploy-all); graph-level failures abort
resolution for a single project only.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class DagplaneError(Exception):
    """Base exception for dagplane."""

    code = "DAGPLANE_ERROR"

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(DagplaneError):
    """Process configuration is incomplete or invalid. Fatal at startup."""

    code = "CONFIGURATION_ERROR"

    def __init__(self, problems: Sequence[str]):
        self.problems = list(problems)
        super().__init__("\n".join(self.problems), problems=self.problems)


class NotFoundError(DagplaneError):
    code = "NOT_FOUND"


class ProjectNotFound(NotFoundError):
    code = "PROJECT_NOT_FOUND"

    def __init__(self, project: str):
        self.project = project
        super().__init__(f"project {project} not found", project=project)


class JobNotFound(NotFoundError):
    code = "JOB_NOT_FOUND"

    def __init__(self, project: str, job: str):
        self.project = project
        self.job = job
        super().__init__(
            f"job {job} not found in project {project}", project=project, job=job
        )


class SecretNotFound(NotFoundError):
    code = "SECRET_NOT_FOUND"

    def __init__(self, project: str, name: str):
        self.project = project
        self.name = name
        super().__init__(
            f"secret {name} not found in project {project}", project=project, secret=name
        )


class UnitNotFound(DagplaneError):
    """A job names a task or hook unit that is not registered."""

    code = "UNIT_NOT_FOUND"

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} unit {name} is not registered", kind=kind, unit=name)


class InvalidProject(DagplaneError):
    """A project registration or secret is rejected."""

    code = "INVALID_PROJECT"

    def __init__(self, project: str, reason: str):
        self.project = project
        self.reason = reason
        super().__init__(f"project {project}: {reason}", project=project, reason=reason)


class JobValidationError(DagplaneError):
    """A job specification is rejected at registration time."""

    code = "INVALID_JOB"

    def __init__(self, job: str, reason: str):
        self.job = job
        self.reason = reason
        super().__init__(f"job {job}: {reason}", job=job, reason=reason)


class DependencyResolutionError(DagplaneError):
    code = "DEPENDENCY_RESOLUTION_ERROR"


class MissingDependency(DependencyResolutionError):
    """A job references a job or project that does not exist."""

    code = "MISSING_DEPENDENCY"

    def __init__(self, job: str, reference: str, project: Optional[str] = None):
        self.job = job
        self.reference = reference
        self.project = project
        where = f" in project {project}" if project else ""
        super().__init__(
            f"job {job} depends on {reference}{where} which does not exist",
            job=job,
            reference=reference,
            project=project,
        )


class AmbiguousDependency(DependencyResolutionError):
    """An inferred reference matches more than one job."""

    code = "AMBIGUOUS_DEPENDENCY"

    def __init__(self, job: str, reference: str, candidates: Sequence[str]):
        self.job = job
        self.reference = reference
        self.candidates = list(candidates)
        super().__init__(
            f"job {job} references {reference} which is produced by "
            f"{', '.join(self.candidates)}",
            job=job,
            reference=reference,
            candidates=self.candidates,
        )


class CyclicDependency(DependencyResolutionError):
    """The dependency graph contains a cycle; ``path`` lists it in traversal order."""

    code = "CYCLIC_DEPENDENCY"

    def __init__(self, path: Sequence[str]):
        self.path = list(path)
        super().__init__(
            f"cyclic dependency: {' -> '.join(self.path)}", path=self.path
        )


class CompilationError(DagplaneError):
    """A job cannot be rendered into a scheduler artifact."""

    code = "COMPILATION_ERROR"

    def __init__(self, job: str, field: str, reason: str = "missing required field"):
        self.job = job
        self.field = field
        self.reason = reason
        super().__init__(f"job {job}: {reason}: {field}", job=job, field=field)


class StorageConfigError(DagplaneError):
    """Project storage is not configured or uses an unsupported scheme."""

    code = "STORAGE_CONFIG_ERROR"

    def __init__(self, project: str, reason: str):
        self.project = project
        self.reason = reason
        super().__init__(f"project {project}: {reason}", project=project)


class StorageError(DagplaneError):
    """An object store call failed."""

    code = "STORAGE_ERROR"


class DeadlineExceeded(DagplaneError):
    code = "DEADLINE_EXCEEDED"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"deadline exceeded during {operation}", operation=operation)


class JobFailure:
    """A single failed job inside an aggregate error."""

    def __init__(self, job: str, operation: str, error: BaseException):
        self.job = job
        self.operation = operation
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        code = error_code(self.error)
        return {
            "job": self.job,
            "operation": self.operation,
            "code": code,
            "message": str(self.error),
        }

    def __repr__(self) -> str:
        return f"JobFailure(job={self.job!r}, operation={self.operation!r}, error={self.error!r})"


class DeploymentError(DagplaneError):
    """Aggregate of per-job write/delete failures for one project sync."""

    code = "DEPLOYMENT_ERROR"

    def __init__(self, project: str, failures: List[JobFailure], written: int = 0):
        self.project = project
        self.failures = failures
        self.written = written
        super().__init__(
            f"project {project}: {len(failures)} artifact operation(s) failed",
            project=project,
            written=written,
            failures=[f.to_dict() for f in failures],
        )


class BootstrapError(DagplaneError):
    """Scheduler bootstrap failed for one project. Never fatal for the process."""

    code = "BOOTSTRAP_ERROR"

    def __init__(self, project: str, reason: str):
        self.project = project
        self.reason = reason
        super().__init__(f"bootstrap of project {project} failed: {reason}", project=project)


class InternalError(DagplaneError):
    """An unexpected failure confined to one project or job."""

    code = "INTERNAL_ERROR"

    def __init__(self, scope: str, error: BaseException):
        self.scope = scope
        self.error = error
        super().__init__(
            f"{scope}: {type(error).__name__}: {error}",
            scope=scope,
            type=type(error).__name__,
        )


def error_code(error: BaseException) -> str:
    if isinstance(error, DagplaneError):
        return error.code
    return "INTERNAL_ERROR"
