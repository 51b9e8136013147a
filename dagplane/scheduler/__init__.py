"""Scheduler backends."""

from .airflow2 import Airflow2Scheduler
from .base import Scheduler

__all__ = ["Airflow2Scheduler", "Scheduler"]
