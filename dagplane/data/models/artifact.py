"""
Compilation outputs. Recomputed on every compilation cycle, never persisted.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Dict

# Asset name -> rendered text for one (job, scheduled time) pair
RenderedAssetSet = Dict[str, str]


@dataclass(frozen=True)
class CompiledArtifact:
    """A scheduler definition for one job.

    ``path`` is relative to the project's artifact namespace.
    """

    job: str
    path: str
    payload: bytes

    @property
    def checksum(self) -> str:
        return hashlib.md5(self.payload).hexdigest()
