"""Tests for scheduler bootstrap."""

import time

import pytest

from dagplane.core.bootstrap import BootstrapRunner
from dagplane.data.models import ProjectSpec
from dagplane.errors import BootstrapError, DeadlineExceeded
from dagplane.scheduler.airflow2 import LIB_NAME, Airflow2Scheduler


class SlowScheduler(Airflow2Scheduler):
    """Blocks on storage for ``delay`` seconds, except for ``fast`` projects."""

    def __init__(self, storage, delay, fast=()):
        super().__init__(storage)
        self.delay = delay
        self.fast = set(fast)

    async def bootstrap(self, project, deadline):
        if project.name not in self.fast:
            await deadline.run("write_scheduler_lib", time.sleep, self.delay)


class TestAirflow2Bootstrap:
    @pytest.mark.asyncio
    async def test_uploads_shared_library(self, scheduler, file_project, tmp_path):
        result = await BootstrapRunner(scheduler).bootstrap_project(file_project)

        assert result.ok
        lib = tmp_path / "storage" / "dags" / LIB_NAME
        assert lib.read_bytes() == scheduler.lib()
        assert b"class DagplanePodOperator" in lib.read_bytes()

    @pytest.mark.asyncio
    async def test_unchanged_library_is_not_rewritten(self, scheduler, file_project, tmp_path):
        runner = BootstrapRunner(scheduler)
        await runner.bootstrap_project(file_project)
        lib = tmp_path / "storage" / "dags" / LIB_NAME
        inode = lib.stat().st_ino

        await runner.bootstrap_project(file_project)

        assert lib.stat().st_ino == inode

    @pytest.mark.asyncio
    async def test_changed_library_is_replaced(self, scheduler, file_project, tmp_path):
        lib = tmp_path / "storage" / "dags" / LIB_NAME
        lib.parent.mkdir(parents=True)
        lib.write_bytes(b"# stale")

        result = await BootstrapRunner(scheduler).bootstrap_project(file_project)

        assert result.ok
        assert lib.read_bytes() == scheduler.lib()

    @pytest.mark.asyncio
    async def test_missing_storage_path(self, scheduler):
        result = await BootstrapRunner(scheduler).bootstrap_project(ProjectSpec("nowhere"))

        assert not result.ok
        assert isinstance(result.error, BootstrapError)
        assert result.to_dict() == {
            "project": "nowhere",
            "ok": False,
            "error": {
                "code": "BOOTSTRAP_ERROR",
                "message": "bootstrap of project nowhere failed: project nowhere: storage-path not configured",
            },
        }


class TestBootstrapRunner:
    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, scheduler, file_project):
        broken = ProjectSpec("broken", config={"storage-path": "s3://bucket/x"})

        results = await BootstrapRunner(scheduler).bootstrap_all([broken, file_project])

        assert [(r.project, r.ok) for r in results] == [("broken", False), ("analytics", True)]

    @pytest.mark.asyncio
    async def test_unexpected_store_error_is_isolated(self, scheduler, file_project, unreachable_project):
        broken = unreachable_project("broken", RuntimeError("RefreshError: invalid_grant"))

        results = await BootstrapRunner(scheduler).bootstrap_all([file_project, broken])

        assert [(r.project, r.ok) for r in results] == [("analytics", True), ("broken", False)]
        assert isinstance(results[1].error, BootstrapError)
        assert results[1].to_dict()["error"]["code"] == "BOOTSTRAP_ERROR"
        assert "invalid_grant" in results[1].error.reason

    @pytest.mark.asyncio
    async def test_slow_project_times_out_alone(self, storage_registry):
        scheduler = SlowScheduler(storage_registry, delay=1.0, fast=["quick"])
        runner = BootstrapRunner(scheduler, timeout=0.1)

        started = time.monotonic()
        results = await runner.bootstrap_all([ProjectSpec("slow"), ProjectSpec("quick")])

        assert time.monotonic() - started < 1.0
        assert [r.project for r in results] == ["slow", "quick"]
        assert isinstance(results[0].error, DeadlineExceeded)
        assert results[1].ok

    @pytest.mark.asyncio
    async def test_bootstrap_registered(self, repository, scheduler, file_project):
        repository.projects[file_project.name] = file_project
        repository.add_project("unconfigured")

        results = await BootstrapRunner(scheduler).bootstrap_registered(repository)

        assert {r.project: r.ok for r in results} == {"analytics": True, "unconfigured": False}
        assert ("list_projects",) in repository.calls
