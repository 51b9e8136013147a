"""
V1 project and secret schemas.
"""

from __future__ import annotations

import base64
import binascii
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, constr, field_validator

from ..data.models.project import ProjectSpec


class ProjectV1(BaseModel):
    """Project registration. ``config`` must carry ``storage-path`` to deploy."""

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "name": "analytics",
                "config": {"storage-path": "gs://example-composer-bucket/analytics"},
            }
        },
    )

    name: constr(min_length=1, max_length=100)
    config: Dict[str, str] = Field(default_factory=dict)

    def to_spec(self) -> ProjectSpec:
        return ProjectSpec(name=self.name, config=dict(self.config))


class ProjectResponseV1(BaseModel):
    name: str
    config: Dict[str, str]
    secrets: List[str] = Field(default_factory=list, description="Secret names; values are never returned")

    @classmethod
    def from_spec(cls, project: ProjectSpec) -> "ProjectResponseV1":
        return cls(**project.to_dict())


class SecretV1(BaseModel):
    """A named project secret. ``value`` is base64 encoded."""

    model_config = ConfigDict(extra="forbid")

    name: constr(min_length=1, max_length=100)
    value: constr(min_length=1)

    @field_validator("value")
    @classmethod
    def check_base64(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("value must be base64 encoded") from None
        return value

    def decoded(self) -> bytes:
        return base64.b64decode(self.value)
