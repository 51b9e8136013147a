"""
Local filesystem backend (``file://`` URIs).

    file:///var/lib/dagplane/projects/alpha -> /var/lib/dagplane/projects/alpha
"""
from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from .base import ObjectWriter

_TMP_PREFIX = ".tmp-"


class FileObjectWriter(ObjectWriter):
    """Objects are files below ``root``; the bucket is a subdirectory."""

    def __init__(self, root: Path = Path("/")):
        self.root = root

    def _path(self, bucket: str, key: str) -> Path:
        return self.root / bucket / key

    def write(self, bucket: str, key: str, data: bytes) -> None:
        """Write through a temporary file and rename it into place."""
        full_path = self._path(bucket, key)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=_TMP_PREFIX, dir=full_path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, full_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, bucket: str, key: str) -> None:
        self._path(bucket, key).unlink(missing_ok=True)

    def list(self, bucket: str, prefix: str) -> Dict[str, str]:
        directory = self._path(bucket, prefix)
        if not directory.is_dir():
            return {}
        objects = {}
        for path in sorted(directory.iterdir()):
            if not path.is_file() or path.name.startswith(_TMP_PREFIX):
                continue
            key = f"{prefix}/{path.name}" if prefix else path.name
            objects[key] = hashlib.md5(path.read_bytes()).hexdigest()
        return objects


def new_file_writer(credentials: Optional[bytes] = None) -> FileObjectWriter:
    return FileObjectWriter()
