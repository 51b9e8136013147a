"""
Object storage abstraction.

Storage is addressed by URI. A project's ``storage-path`` selects the
backend by scheme and the bucket/prefix inside it.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict
from urllib.parse import urlparse


@dataclass(frozen=True)
class StorageLocation:
    """A parsed storage URI such as ``gs://bucket/some/prefix``."""

    scheme: str
    bucket: str
    prefix: str

    @classmethod
    def parse(cls, uri: str) -> "StorageLocation":
        """
        Raises:
            ValueError: If the URI has no scheme
        """
        parsed = urlparse(uri.strip())
        if not parsed.scheme:
            raise ValueError(f"storage path {uri!r} has no scheme")
        return cls(
            scheme=parsed.scheme,
            bucket=parsed.netloc,
            prefix=parsed.path.strip("/"),
        )

    def join(self, *parts: str) -> "StorageLocation":
        segments = [self.prefix] + [p.strip("/") for p in parts]
        return StorageLocation(
            scheme=self.scheme,
            bucket=self.bucket,
            prefix="/".join(s for s in segments if s),
        )

    def key(self, name: str) -> str:
        return f"{self.prefix}/{name}" if self.prefix else name

    @property
    def uri(self) -> str:
        return f"{self.scheme}://{self.bucket}/{self.prefix}"


class ObjectWriter(ABC):
    """Abstract base class for object store backends.

    Writes must be atomic: an object is either fully written or absent.
    """

    @abstractmethod
    def write(self, bucket: str, key: str, data: bytes) -> None:
        """Write (or replace) an object."""
        pass

    @abstractmethod
    def delete(self, bucket: str, key: str) -> None:
        """Delete an object. Deleting a missing object is not an error."""
        pass

    @abstractmethod
    def list(self, bucket: str, prefix: str) -> Dict[str, str]:
        """Objects directly under ``prefix`` as ``{key: md5 hex digest}``."""
        pass
