"""
Generic container command task.

``DESTINATION`` optionally names the output the command produces and
``SOURCES`` (comma separated) the outputs it reads.
"""

from __future__ import annotations

from typing import List, Optional

from ..data.models.artifact import RenderedAssetSet
from ..data.models.job import JobSpec
from .base import TaskUnit


class ShellTask(TaskUnit):
    description = "Run a shell command in a container"
    required_config = ("COMMAND",)

    @property
    def name(self) -> str:
        return "shell"

    @property
    def image(self) -> str:
        return "docker.io/library/alpine:3.20"

    def get_destination(self, job: JobSpec) -> Optional[str]:
        destination = job.task.config.get("DESTINATION", "").strip()
        return destination or None

    def generate_dependencies(self, job: JobSpec, assets: RenderedAssetSet) -> List[str]:
        sources = job.task.config.get("SOURCES", "")
        return sorted({s.strip() for s in sources.split(",") if s.strip()})
