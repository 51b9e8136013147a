"""
Deployment of compiled artifacts to a project's object store.

A sync pass writes every artifact whose content changed, then removes the
artifacts of jobs that no longer exist. Writes run concurrently; the delete
step starts only once every write of the pass has finished. A failed write or
delete is recorded against its job and does not stop the others.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog

from ..data.models.artifact import CompiledArtifact
from ..errors import DagplaneError, DeploymentError, JobFailure, StorageError
from ..storage.artifacts import ArtifactRepository
from .deadline import Deadline

logger = structlog.get_logger()

DEFAULT_CONCURRENCY = 8


@dataclass
class SyncResult:
    """Outcome of one project's sync pass."""

    project: str
    written: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failures: List[JobFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        """
        Raises:
            DeploymentError: If any write or delete failed
        """
        if self.failures:
            raise DeploymentError(self.project, self.failures, written=len(self.written))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project": self.project,
            "written": self.written,
            "unchanged": self.unchanged,
            "deleted": self.deleted,
            "failures": [f.to_dict() for f in self.failures],
        }


class Deployer:
    """Syncs compiled artifacts into an ``ArtifactRepository``."""

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency

    async def sync(
        self,
        project: str,
        repository: ArtifactRepository,
        artifacts: Sequence[CompiledArtifact],
        keep: Optional[Iterable[str]] = None,
        deadline: Optional[Deadline] = None,
    ) -> SyncResult:
        """Write ``artifacts`` and delete stale ones.

        Args:
            project: Project name, for reporting
            repository: The project's artifact namespace
            artifacts: Artifacts of every job compiled in this pass
            keep: Further paths that must survive the pass, such as those of
                current jobs that failed to compile
            deadline: Budget for the whole pass

        Raises:
            StorageError: If the existing artifacts cannot be listed; nothing
                is written or deleted in that case
        """
        deadline = deadline or Deadline()
        log = logger.bind(project=project)
        result = SyncResult(project=project)

        try:
            existing = await deadline.run("list_artifacts", repository.list)
        except DagplaneError:
            raise
        except Exception as e:
            raise StorageError(f"error listing artifacts of project {project}: {e}") from e
        semaphore = asyncio.Semaphore(self.concurrency)

        async def write(artifact: CompiledArtifact) -> None:
            if existing.get(artifact.path) == artifact.checksum:
                result.unchanged.append(artifact.path)
                return
            async with semaphore:
                try:
                    await deadline.run(
                        "write_artifact", repository.write, artifact.path, artifact.payload
                    )
                except Exception as e:
                    log.warning("artifact_write_failed", job=artifact.job, error=str(e))
                    result.failures.append(JobFailure(artifact.job, "write", e))
                    return
            result.written.append(artifact.path)

        async def delete(path: str) -> None:
            async with semaphore:
                try:
                    await deadline.run("delete_artifact", repository.delete, path)
                except Exception as e:
                    log.warning("artifact_delete_failed", path=path, error=str(e))
                    result.failures.append(JobFailure(_job_name(path, repository), "delete", e))
                    return
            result.deleted.append(path)

        await asyncio.gather(*(write(a) for a in artifacts))

        current = {a.path for a in artifacts} | set(keep or ())
        stale = sorted(set(existing) - current)
        await asyncio.gather(*(delete(path) for path in stale))

        result.written.sort()
        result.unchanged.sort()
        result.deleted.sort()
        result.failures.sort(key=lambda f: (f.job, f.operation))
        log.info(
            "artifacts_synced",
            reporter="pipeline",
            written=len(result.written),
            unchanged=len(result.unchanged),
            deleted=len(result.deleted),
            failed=len(result.failures),
        )
        return result


def _job_name(path: str, repository: ArtifactRepository) -> str:
    if repository.extension and path.endswith(repository.extension):
        return path[: -len(repository.extension)]
    return path
