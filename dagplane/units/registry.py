"""
Unit registries.

Registries are ordinary objects built by the caller and passed to the
components that need them, so tests and alternative deployments can hold
several side by side.
"""

from __future__ import annotations

from typing import Dict, Generic, Iterator, List, TypeVar, Union

from ..errors import UnitNotFound
from .base import HookUnit, TaskUnit

U = TypeVar("U", bound=Union[TaskUnit, HookUnit])


class UnitRegistry(Generic[U]):
    """Units of one kind (``task`` or ``hook``) keyed by name."""

    def __init__(self, kind: str):
        self.kind = kind
        self._units: Dict[str, U] = {}

    def register(self, unit: U) -> None:
        if unit.name in self._units:
            raise ValueError(f"{self.kind} unit {unit.name} is already registered")
        self._units[unit.name] = unit

    def get(self, name: str) -> U:
        try:
            return self._units[name]
        except KeyError:
            raise UnitNotFound(self.kind, name) from None

    def names(self) -> List[str]:
        return sorted(self._units)

    def __contains__(self, name: object) -> bool:
        return name in self._units

    def __iter__(self) -> Iterator[U]:
        return iter(self._units[name] for name in self.names())

    def __len__(self) -> int:
        return len(self._units)


TaskRegistry = UnitRegistry[TaskUnit]
HookRegistry = UnitRegistry[HookUnit]


def default_task_registry() -> "UnitRegistry[TaskUnit]":
    """A fresh registry holding the built-in task units."""
    from .bq2bq import BQ2BQTask
    from .shell import ShellTask

    registry: UnitRegistry[TaskUnit] = UnitRegistry("task")
    registry.register(BQ2BQTask())
    registry.register(ShellTask())
    return registry


def default_hook_registry() -> "UnitRegistry[HookUnit]":
    """A fresh registry holding the built-in hook units."""
    from .hooks import NotifyHook, PredatorHook, TransporterHook

    registry: UnitRegistry[HookUnit] = UnitRegistry("hook")
    registry.register(TransporterHook())
    registry.register(PredatorHook())
    registry.register(NotifyHook())
    return registry
