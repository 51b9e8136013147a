"""
Built-in hook units.
"""

from __future__ import annotations

from ..data.models.job import HookType
from .base import HookUnit


class TransporterHook(HookUnit):
    description = "Publish the task destination to a Kafka topic"
    required_config = ("KAFKA_TOPIC",)

    @property
    def name(self) -> str:
        return "transporter"

    @property
    def image(self) -> str:
        return "ghcr.io/dagplane/hook-transporter:0.9"

    @property
    def hook_type(self) -> HookType:
        return HookType.POST


class PredatorHook(HookUnit):
    description = "Profile and audit the task destination"
    depends_on = ("transporter",)

    @property
    def name(self) -> str:
        return "predator"

    @property
    def image(self) -> str:
        return "ghcr.io/dagplane/hook-predator:0.6"

    @property
    def hook_type(self) -> HookType:
        return HookType.POST


class NotifyHook(HookUnit):
    description = "Send a notification when the task fails"
    required_config = ("CHANNEL",)

    @property
    def name(self) -> str:
        return "notify"

    @property
    def image(self) -> str:
        return "ghcr.io/dagplane/hook-notify:0.3"

    @property
    def hook_type(self) -> HookType:
        return HookType.FAIL
