"""Pluggable task and hook units."""

from .base import HookUnit, TaskUnit
from .registry import (
    HookRegistry,
    TaskRegistry,
    UnitRegistry,
    default_hook_registry,
    default_task_registry,
)

__all__ = [
    "HookRegistry",
    "HookUnit",
    "TaskRegistry",
    "TaskUnit",
    "UnitRegistry",
    "default_hook_registry",
    "default_task_registry",
]
