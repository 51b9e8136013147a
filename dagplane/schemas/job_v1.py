"""
V1 job specification schema.

The wire format of ``POST /v1/projects/{project}/jobs`` and the format job
specifications are stored in.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, conint, constr

from ..data.models.job import (
    JobBehavior,
    JobHook,
    JobSchedule,
    JobSpec,
    JobTask,
    RetryPolicy,
    Window,
)


class ScheduleV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    interval: str = Field(default="", description="Cron expression or Airflow preset")


class RetryV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    count: conint(ge=0) = 0
    delay: conint(ge=0) = Field(default=0, description="Seconds between attempts")
    exponential_backoff: bool = False


class BehaviorV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    depends_on_past: bool = False
    catch_up: bool = True
    retry: RetryV1 = Field(default_factory=RetryV1)


class WindowV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    size: str = "24h"
    offset: str = "0"
    truncate_to: str = "d"


class TaskV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    unit: constr(min_length=1, max_length=100)
    config: Dict[str, str] = Field(default_factory=dict)
    window: WindowV1 = Field(default_factory=WindowV1)


class HookV1(BaseModel):
    model_config = ConfigDict(extra="forbid")

    unit: constr(min_length=1, max_length=100)
    config: Dict[str, str] = Field(default_factory=dict)


class JobSpecV1(BaseModel):
    """A job declaration."""

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "name": "orders_daily",
                "owner": "data-eng@example.com",
                "description": "daily order aggregates",
                "labels": {"team": "orders"},
                "schedule": {"start_date": "2024-01-01T00:00:00Z", "interval": "0 2 * * *"},
                "behavior": {"depends_on_past": False, "catch_up": False, "retry": {"count": 2, "delay": 300}},
                "task": {
                    "unit": "bq2bq",
                    "config": {"PROJECT": "analytics", "DATASET": "orders", "TABLE": "daily"},
                    "window": {"size": "24h", "offset": "0", "truncate_to": "d"},
                },
                "hooks": [{"unit": "notify", "config": {"CHANNEL": "#orders-alerts"}}],
                "dependencies": ["raw_orders"],
                "assets": {"query.sql": "SELECT * FROM `analytics.raw.orders` WHERE ts < '{{ DEND }}'"},
            }
        },
    )

    name: constr(min_length=1, max_length=200)
    owner: str = ""
    description: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    schedule: ScheduleV1 = Field(default_factory=ScheduleV1)
    behavior: BehaviorV1 = Field(default_factory=BehaviorV1)
    task: TaskV1
    hooks: List[HookV1] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    assets: Dict[str, str] = Field(default_factory=dict)

    def to_spec(self) -> JobSpec:
        return JobSpec(
            name=self.name,
            owner=self.owner,
            description=self.description,
            labels=dict(self.labels),
            schedule=JobSchedule(
                start_date=self.schedule.start_date,
                interval=self.schedule.interval,
                end_date=self.schedule.end_date,
            ),
            behavior=JobBehavior(
                depends_on_past=self.behavior.depends_on_past,
                catch_up=self.behavior.catch_up,
                retry=RetryPolicy(
                    count=self.behavior.retry.count,
                    delay=self.behavior.retry.delay,
                    exponential_backoff=self.behavior.retry.exponential_backoff,
                ),
            ),
            task=JobTask(
                unit=self.task.unit,
                config=dict(self.task.config),
                window=Window(
                    size=self.task.window.size,
                    offset=self.task.window.offset,
                    truncate_to=self.task.window.truncate_to,
                ),
            ),
            hooks=[JobHook(unit=h.unit, config=dict(h.config)) for h in self.hooks],
            dependencies=list(self.dependencies),
            assets=dict(self.assets),
        )

    @classmethod
    def from_spec(cls, job: JobSpec) -> "JobSpecV1":
        return cls(
            name=job.name,
            owner=job.owner,
            description=job.description,
            labels=job.labels,
            schedule=ScheduleV1(
                start_date=job.schedule.start_date,
                end_date=job.schedule.end_date,
                interval=job.schedule.interval,
            ),
            behavior=BehaviorV1(
                depends_on_past=job.behavior.depends_on_past,
                catch_up=job.behavior.catch_up,
                retry=RetryV1(
                    count=job.behavior.retry.count,
                    delay=job.behavior.retry.delay,
                    exponential_backoff=job.behavior.retry.exponential_backoff,
                ),
            ),
            task=TaskV1(
                unit=job.task.unit,
                config=job.task.config,
                window=WindowV1(
                    size=job.task.window.size,
                    offset=job.task.window.offset,
                    truncate_to=job.task.window.truncate_to,
                ),
            ),
            hooks=[HookV1(unit=h.unit, config=h.config) for h in job.hooks],
            dependencies=job.dependencies,
            assets=job.assets,
        )


class CompiledJobResponse(BaseModel):
    project: str
    job: str
    path: str
    checksum: str
    contents: str


class JobListResponse(BaseModel):
    project: str
    jobs: List[JobSpecV1]


def dump_spec(job: JobSpec) -> Dict[str, Any]:
    """JSON-compatible form of a job, as stored."""
    return JobSpecV1.from_spec(job).model_dump(mode="json")


def load_spec(data: Dict[str, Any]) -> JobSpec:
    return JobSpecV1.model_validate(data).to_spec()
