"""Object storage backends and per-project artifact namespaces."""

from .artifacts import ArtifactRepository, ArtifactRepositoryFactory
from .base import ObjectWriter, StorageLocation
from .registry import StorageRegistry, default_storage_registry

__all__ = [
    "ArtifactRepository",
    "ArtifactRepositoryFactory",
    "ObjectWriter",
    "StorageLocation",
    "StorageRegistry",
    "default_storage_registry",
]
