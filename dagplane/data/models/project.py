"""
Project (tenant) models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

# Project configuration key holding the object store destination, e.g.
# gs://bucket/path
PROJECT_STORAGE_PATH_KEY = "storage-path"

# Project secret holding the object store credentials
PROJECT_SECRET_STORAGE_KEY = "STORAGE"


@dataclass
class ProjectSpec:
    """A registered tenant: its configuration and named secrets."""

    name: str
    config: Dict[str, str] = field(default_factory=dict)
    secrets: Dict[str, bytes] = field(default_factory=dict, repr=False)
    # Secrets that are stored but could not be read, with the reason
    secret_errors: Dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def storage_path(self) -> Optional[str]:
        return self.config.get(PROJECT_STORAGE_PATH_KEY)

    def get_secret(self, name: str) -> Optional[bytes]:
        return self.secrets.get(name)

    def to_dict(self) -> Dict[str, object]:
        """Public view of the project. Secret values are never included."""
        return {
            "name": self.name,
            "config": dict(sorted(self.config.items())),
            "secrets": sorted(set(self.secrets) | set(self.secret_errors)),
        }
