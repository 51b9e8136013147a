"""Data models for projects, jobs, dependency graphs and compiled artifacts."""

from .artifact import CompiledArtifact, RenderedAssetSet
from .graph import DependencyEdge, DependencyGraph, find_cycle
from .job import (
    DependencyKind,
    HookType,
    JobBehavior,
    JobHook,
    JobRef,
    JobSchedule,
    JobSpec,
    JobTask,
    ResolvedDependency,
    RetryPolicy,
    Window,
)
from .project import PROJECT_SECRET_STORAGE_KEY, PROJECT_STORAGE_PATH_KEY, ProjectSpec

__all__ = [
    "CompiledArtifact",
    "DependencyEdge",
    "DependencyGraph",
    "DependencyKind",
    "HookType",
    "JobBehavior",
    "JobHook",
    "JobRef",
    "JobSchedule",
    "JobSpec",
    "JobTask",
    "PROJECT_SECRET_STORAGE_KEY",
    "PROJECT_STORAGE_PATH_KEY",
    "ProjectSpec",
    "RenderedAssetSet",
    "ResolvedDependency",
    "RetryPolicy",
    "Window",
    "find_cycle",
]
