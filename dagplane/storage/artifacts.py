"""
Per-project artifact namespace.

Compiled artifacts live in ``<storage-path>/<jobs dir>/`` and are addressed
by paths relative to it (``orders_daily.py``). Names starting with ``__``
belong to the scheduler (shared helper modules) and are never listed as job
artifacts.
"""
from __future__ import annotations

from typing import Dict

from ..data.models.project import PROJECT_SECRET_STORAGE_KEY, ProjectSpec
from ..errors import StorageConfigError
from .base import ObjectWriter, StorageLocation
from .registry import StorageRegistry

RESERVED_PREFIX = "__"


class ArtifactRepository:
    """Reads and writes one project's compiled artifacts."""

    def __init__(self, project: str, writer: ObjectWriter, location: StorageLocation, extension: str):
        self.project = project
        self.writer = writer
        self.location = location
        self.extension = extension

    def write(self, path: str, data: bytes) -> None:
        self.writer.write(self.location.bucket, self.location.key(path), data)

    def delete(self, path: str) -> None:
        self.writer.delete(self.location.bucket, self.location.key(path))

    def list(self, include_reserved: bool = False) -> Dict[str, str]:
        """Artifacts in the namespace as ``{relative path: md5 hex digest}``."""
        objects = self.writer.list(self.location.bucket, self.location.prefix)
        artifacts = {}
        for key, checksum in objects.items():
            path = key[len(self.location.prefix):].lstrip("/") if self.location.prefix else key
            if "/" in path or not path.endswith(self.extension):
                continue
            if path.startswith(RESERVED_PREFIX) and not include_reserved:
                continue
            artifacts[path] = checksum
        return artifacts


class ArtifactRepositoryFactory:
    """Builds a project's ``ArtifactRepository`` from its configuration."""

    def __init__(self, storage: StorageRegistry, jobs_dir: str, extension: str):
        self.storage = storage
        self.jobs_dir = jobs_dir
        self.extension = extension

    def new(self, project: ProjectSpec) -> ArtifactRepository:
        """
        Raises:
            StorageConfigError: If the project's storage path or secret is
                missing, or the storage scheme is unsupported
        """
        storage_path = project.storage_path
        if not storage_path:
            raise StorageConfigError(project.name, "storage-path not configured")
        backend = self.storage.backend(_scheme(storage_path))
        credentials = project.get_secret(PROJECT_SECRET_STORAGE_KEY)
        if PROJECT_SECRET_STORAGE_KEY in project.secret_errors:
            raise StorageConfigError(
                project.name,
                f"{PROJECT_SECRET_STORAGE_KEY} secret is unreadable: "
                f"{project.secret_errors[PROJECT_SECRET_STORAGE_KEY]}",
            )
        if credentials is None and (backend is None or backend.requires_credentials):
            raise StorageConfigError(
                project.name, f"{PROJECT_SECRET_STORAGE_KEY} secret not configured"
            )
        writer, location = self.storage.new_writer(project.name, storage_path, credentials)
        return ArtifactRepository(
            project.name, writer, location.join(self.jobs_dir), self.extension
        )


def _scheme(storage_path: str) -> str:
    return storage_path.split("://", 1)[0] if "://" in storage_path else ""
