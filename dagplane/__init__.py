"""
dagplane

A multi-tenant control plane that compiles declarative job specifications
into scheduler artifacts and deploys them to per-project object storage.
"""

import importlib.metadata

__version__ = importlib.metadata.version("dagplane")

from .data.models import JobRef, JobSpec, ProjectSpec
from .errors import DagplaneError

__all__ = [
    "DagplaneError",
    "JobRef",
    "JobSpec",
    "ProjectSpec",
]
