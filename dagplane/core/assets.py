"""
Asset rendering with time-relative macros.

Assets are Jinja2 templates declared on a job (``query.sql`` and friends).
Rendering is a pure function of the job and the scheduled time: no clock, no
I/O. The renderer is handed to the dependency resolver and the compiler as a
plain callable, ``(job, scheduled_at) -> {asset name: text}``.

Available macros:

    DSTART, DEND        data window bounds (see ``JobSpec.task.window``)
    EXECUTION_TIME      the scheduled time
    START_OF_DAY        the scheduled time truncated to the day
    JOB_NAME            the job name
    days_before(n)      scheduled time minus n days
    hours_before(n)     scheduled time minus n hours
    value | date        keep only the YYYY-MM-DD part of a timestamp
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Dict

from jinja2 import StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from ..data.models.artifact import RenderedAssetSet
from ..data.models.job import JobSpec
from ..errors import CompilationError
from .windows import as_utc, compute_window, format_timestamp, truncate

AssetDump = Callable[[JobSpec, datetime], RenderedAssetSet]


def _date(value: str) -> str:
    return str(value)[:10]


class AssetRenderer:
    """Renders every asset of a job for one scheduled time."""

    def __init__(self) -> None:
        self.env = SandboxedEnvironment(
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        self.env.filters["date"] = _date

    def macros(self, job: JobSpec, scheduled_at: datetime) -> Dict[str, Any]:
        scheduled_at = as_utc(scheduled_at)
        try:
            start, end = compute_window(job.task.window, scheduled_at)
        except ValueError as e:
            raise CompilationError(job.name, "task.window", reason=str(e)) from e

        def days_before(n: int) -> str:
            return format_timestamp(scheduled_at - timedelta(days=n))

        def hours_before(n: int) -> str:
            return format_timestamp(scheduled_at - timedelta(hours=n))

        return {
            "DSTART": format_timestamp(start),
            "DEND": format_timestamp(end),
            "EXECUTION_TIME": format_timestamp(scheduled_at),
            "START_OF_DAY": format_timestamp(truncate(scheduled_at, "d")),
            "JOB_NAME": job.name,
            "days_before": days_before,
            "hours_before": hours_before,
        }

    def render(self, job: JobSpec, scheduled_at: datetime) -> RenderedAssetSet:
        """Render all assets of ``job``.

        Raises:
            CompilationError: If an asset uses an unknown macro, is not a
                valid template or fails while rendering
        """
        if not job.assets:
            return {}
        macros = self.macros(job, scheduled_at)
        rendered: RenderedAssetSet = {}
        for name in sorted(job.assets):
            try:
                template = self.env.from_string(job.assets[name])
                rendered[name] = template.render(**macros)
            except TemplateError as e:
                raise CompilationError(
                    job.name, f"assets.{name}", reason=f"cannot render asset ({e})"
                ) from e
            except Exception as e:
                # Errors raised by the asset's own expressions, such as 1/0
                raise CompilationError(
                    job.name,
                    f"assets.{name}",
                    reason=f"cannot render asset ({type(e).__name__}: {e})",
                ) from e
        return rendered

    __call__ = render
