"""
Storage backends keyed by URI scheme.

Adding a backend is a single ``register`` call; the scheme is checked when a
project's artifact repository is constructed.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ..errors import StorageConfigError, StorageError
from .base import ObjectWriter, StorageLocation

WriterFactory = Callable[[Optional[bytes]], ObjectWriter]


@dataclass(frozen=True)
class StorageBackend:
    scheme: str
    factory: WriterFactory
    requires_credentials: bool = True


class StorageRegistry:
    def __init__(self) -> None:
        self._backends: Dict[str, StorageBackend] = {}

    def register(
        self, scheme: str, factory: WriterFactory, requires_credentials: bool = True
    ) -> None:
        self._backends[scheme] = StorageBackend(scheme, factory, requires_credentials)

    def schemes(self) -> List[str]:
        return sorted(self._backends)

    def backend(self, scheme: str) -> Optional[StorageBackend]:
        return self._backends.get(scheme)

    def new_writer(
        self, project: str, storage_path: str, credentials: Optional[bytes]
    ) -> Tuple[ObjectWriter, StorageLocation]:
        """Construct the writer for a project's storage path.

        Raises:
            StorageConfigError: If the path is invalid, its scheme is not
                registered, credentials are missing or rejected
        """
        try:
            location = StorageLocation.parse(storage_path)
        except ValueError as e:
            raise StorageConfigError(project, str(e)) from e

        backend = self._backends.get(location.scheme)
        if backend is None:
            raise StorageConfigError(
                project,
                f"unsupported storage config {storage_path} "
                f"(supported schemes: {', '.join(self.schemes())})",
            )
        if backend.requires_credentials and not credentials:
            raise StorageConfigError(project, f"{location.scheme} storage requires credentials")
        try:
            return backend.factory(credentials), location
        except StorageError as e:
            raise StorageConfigError(project, e.message) from e


def default_storage_registry() -> StorageRegistry:
    """A fresh registry with the ``gs`` and ``file`` backends."""
    from .filesystem import new_file_writer
    from .gcs import new_gcs_writer

    registry = StorageRegistry()
    registry.register("gs", new_gcs_writer)
    registry.register("file", new_file_writer, requires_credentials=False)
    return registry
