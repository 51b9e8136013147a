"""Tests for the control-plane service."""

import pytest

from dagplane.data.models import JobHook, JobSchedule, JobTask, ProjectSpec, Window
from dagplane.errors import (
    CyclicDependency,
    InvalidProject,
    JobNotFound,
    JobValidationError,
    ProjectNotFound,
    StorageConfigError,
    StorageError,
    UnitNotFound,
)

from .conftest import START, make_job


@pytest.fixture
def analytics(repository, file_project):
    repository.projects[file_project.name] = file_project
    repository.jobs[file_project.name] = {}
    return file_project


def dag_files(tmp_path):
    dags = tmp_path / "storage" / "dags"
    return sorted(p.name for p in dags.iterdir()) if dags.exists() else []


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_project(self, service, repository):
        project = await service.register_project(ProjectSpec("marketing", {"storage-path": "gs://b/m"}))

        assert project.name == "marketing"
        assert [p.name for p in await service.list_projects()] == ["marketing"]

    @pytest.mark.asyncio
    async def test_invalid_project_name(self, service):
        with pytest.raises(InvalidProject):
            await service.register_project(ProjectSpec("no spaces allowed"))

    @pytest.mark.asyncio
    async def test_secret_for_unknown_project(self, service):
        with pytest.raises(ProjectNotFound):
            await service.register_secret("missing", "STORAGE", b"{}")

    @pytest.mark.asyncio
    async def test_register_secret(self, service, analytics, repository):
        await service.register_secret("analytics", "EXTRA", b"value")

        assert repository.get_secret("analytics", "EXTRA") == b"value"

    @pytest.mark.asyncio
    async def test_register_job_records_destination(self, service, analytics, repository):
        job = make_job(
            "orders",
            unit="bq2bq",
            config={"PROJECT": "w", "DATASET": "s", "TABLE": "orders"},
            assets={"query.sql": "SELECT 1"},
        )

        await service.register_job("analytics", job)

        assert repository.jobs["analytics"]["orders"] == (job, "w.s.orders")
        assert (await service.get_job("analytics", "orders")) == job

    @pytest.mark.asyncio
    async def test_register_job_unknown_project(self, service):
        with pytest.raises(ProjectNotFound):
            await service.register_job("missing", make_job("a"))

    @pytest.mark.parametrize(
        "job",
        [
            make_job("bad name"),
            make_job("a", owner=" "),
            make_job("a", schedule=JobSchedule(start_date=None, interval="@daily")),
            make_job("a", schedule=JobSchedule(start_date=make_job("x").schedule.start_date, interval="")),
            make_job("a", ["too/many/parts"]),
            make_job("a", config={}),
            make_job("a", unit="bq2bq", config={"PROJECT": "w", "DATASET": "s", "TABLE": "t"}),
            make_job("a", hooks=[JobHook("notify", {"CHANNEL": "x"}), JobHook("notify", {"CHANNEL": "y"})]),
            make_job("a", hooks=[JobHook("transporter")]),
            make_job("a", task=JobTask("shell", {"COMMAND": "x"}, Window(truncate_to="y"))),
            make_job("a", task=JobTask("shell", {"COMMAND": "x"}, Window(size="long"))),
            make_job("a", task=JobTask("shell", {"COMMAND": "x"}, Window(size="999999999999d"))),
            make_job("a", schedule=JobSchedule(start_date=START.replace(year=1), interval="@daily")),
        ],
    )
    def test_validate_job_rejects(self, service, job):
        with pytest.raises(JobValidationError):
            service.validate_job("analytics", job)

    def test_validate_job_unknown_units(self, service):
        with pytest.raises(UnitNotFound):
            service.validate_job("analytics", make_job("a", unit="spark"))
        with pytest.raises(UnitNotFound):
            service.validate_job("analytics", make_job("a", hooks=[JobHook("pager")]))

    def test_self_dependency_passes_validation(self, service):
        # reported as a cycle when the project is resolved
        assert service.validate_job("analytics", make_job("d", ["d"])) is None

    @pytest.mark.asyncio
    async def test_delete_job(self, service, analytics, repository):
        repository.add_jobs("analytics", make_job("a"))

        await service.delete_job("analytics", "a")

        assert await service.list_jobs("analytics") == []
        with pytest.raises(JobNotFound):
            await service.delete_job("analytics", "a")


class TestCompilation:
    @pytest.mark.asyncio
    async def test_compile_project_weights(self, service, repository):
        repository.add_jobs("P", make_job("A"), make_job("B", ["A"]), make_job("C", ["A"]))

        result = await service.compile_project("P")

        assert result.weights == {"A": 120, "B": 100, "C": 100}
        assert [a.path for a in result.artifacts] == ["A.py", "B.py", "C.py"]
        assert result.failures == []

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_others(self, service, repository):
        repository.add_jobs(
            "P",
            make_job("good"),
            make_job("broken", assets={"query.sql": "SELECT {{ NOT_A_MACRO }}"}),
        )

        result = await service.compile_project("P")

        assert [a.job for a in result.artifacts] == ["good"]
        assert [(f.job, f.operation) for f in result.failures] == [("broken", "compile")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["{{ days_before('3') }}", "{{ 1 / 0 }}"])
    async def test_asset_runtime_error_fails_only_its_job(self, service, repository, query):
        repository.add_jobs("P", make_job("good"), make_job("broken", assets={"q.sql": query}))

        result = await service.compile_project("P")

        assert [a.job for a in result.artifacts] == ["good"]
        assert [(f.job, f.operation) for f in result.failures] == [("broken", "compile")]
        assert result.failures[0].error.field == "assets.q.sql"

    @pytest.mark.asyncio
    async def test_external_dependencies_are_not_compiled(self, service, repository):
        repository.add_jobs("P", make_job("report", ["upstream/orders"]))
        repository.add_jobs("upstream", make_job("orders"))

        result = await service.compile_project("P")

        assert [a.job for a in result.artifacts] == ["report"]
        assert b"CrossProjectDependencySensor(" in result.artifacts[0].payload

    @pytest.mark.asyncio
    async def test_compile_job(self, service, repository):
        repository.add_jobs("P", make_job("A"), make_job("B", ["A"]))

        artifact = await service.compile_job("P", "A")

        assert artifact.path == "A.py"
        assert b'"priority_weight": 110,' in artifact.payload

    @pytest.mark.asyncio
    async def test_compile_unknown_job(self, service, repository):
        repository.add_jobs("P", make_job("A"))

        with pytest.raises(JobNotFound):
            await service.compile_job("P", "B")


class TestDeployment:
    @pytest.mark.asyncio
    async def test_deploy_project(self, service, analytics, repository, tmp_path):
        repository.add_jobs("analytics", make_job("A"), make_job("B", ["A"]), make_job("C", ["A"]))

        report = await service.deploy_project("analytics")

        assert report.ok
        assert report.sync.written == ["A.py", "B.py", "C.py"]
        assert dag_files(tmp_path) == ["A.py", "B.py", "C.py"]
        assert b'"priority_weight": 120,' in (tmp_path / "storage" / "dags" / "A.py").read_bytes()

    @pytest.mark.asyncio
    async def test_redeploy_is_a_no_op(self, service, analytics, repository):
        repository.add_jobs("analytics", make_job("A"), make_job("B", ["A"]))
        await service.deploy_project("analytics")

        report = await service.deploy_project("analytics")

        assert report.sync.written == []
        assert report.sync.unchanged == ["A.py", "B.py"]

    @pytest.mark.asyncio
    async def test_deleted_job_is_removed(self, service, analytics, repository, tmp_path):
        repository.add_jobs("analytics", make_job("A"), make_job("B", ["A"]), make_job("C", ["A"]))
        await service.deploy_project("analytics")
        del repository.jobs["analytics"]["C"]

        report = await service.deploy_project("analytics")

        assert report.sync.deleted == ["C.py"]
        assert dag_files(tmp_path) == ["A.py", "B.py"]

    @pytest.mark.asyncio
    async def test_failed_compile_keeps_last_artifact(self, service, analytics, repository, tmp_path):
        repository.add_jobs("analytics", make_job("A"), make_job("B"))
        await service.deploy_project("analytics")
        before = (tmp_path / "storage" / "dags" / "B.py").read_bytes()
        repository.add_jobs("analytics", make_job("B", assets={"q.sql": "{{ NOT_A_MACRO }}"}))

        report = await service.deploy_project("analytics")

        assert not report.ok
        assert [(f.job, f.operation) for f in report.failures] == [("B", "compile")]
        assert report.sync.deleted == []
        assert (tmp_path / "storage" / "dags" / "B.py").read_bytes() == before
        assert report.to_dict()["failures"][0]["code"] == "COMPILATION_ERROR"

    @pytest.mark.asyncio
    async def test_cycle_aborts_before_writing(self, service, analytics, repository, tmp_path):
        repository.add_jobs("analytics", make_job("X", ["Y"]), make_job("Y", ["X"]))

        with pytest.raises(CyclicDependency):
            await service.deploy_project("analytics")

        assert dag_files(tmp_path) == []

    @pytest.mark.asyncio
    async def test_missing_storage_configuration(self, service, repository):
        repository.add_jobs("unconfigured", make_job("A"))

        with pytest.raises(StorageConfigError):
            await service.deploy_project("unconfigured")

    @pytest.mark.asyncio
    async def test_deploy_all_isolates_projects(self, service, analytics, repository, tmp_path):
        repository.add_jobs("analytics", make_job("A"))
        repository.add_jobs("unconfigured", make_job("A"))

        reports = await service.deploy_all()

        assert [(r.project, r.ok) for r in reports] == [("analytics", True), ("unconfigured", False)]
        assert isinstance(reports[1].error, StorageConfigError)
        assert reports[1].to_dict()["error"]["code"] == "STORAGE_CONFIG_ERROR"
        assert dag_files(tmp_path) == ["A.py"]

    @pytest.mark.asyncio
    async def test_deploy_all_isolates_unreachable_store(
        self, service, analytics, repository, unreachable_project, tmp_path
    ):
        broken = unreachable_project("broken", ConnectionError("store unreachable"))
        repository.projects["broken"] = broken
        repository.add_jobs("analytics", make_job("A"))
        repository.add_jobs("broken", make_job("B"))

        reports = await service.deploy_all()

        assert [(r.project, r.ok) for r in reports] == [("analytics", True), ("broken", False)]
        assert isinstance(reports[1].error, StorageError)
        assert "store unreachable" in reports[1].error.message
        assert dag_files(tmp_path) == ["A.py"]

    @pytest.mark.asyncio
    async def test_deploy_all_isolates_unexpected_errors(self, service, analytics, repository, monkeypatch):
        repository.add_jobs("analytics", make_job("A"))
        repository.add_jobs("other", make_job("B"))
        compile_project = service.compile_project

        async def crash_other(project, deadline=None):
            if project == "other":
                raise RuntimeError("boom")
            return await compile_project(project, deadline)

        monkeypatch.setattr(service, "compile_project", crash_other)
        repository.projects["other"] = ProjectSpec(
            "other", dict(analytics.config), dict(analytics.secrets)
        )

        reports = await service.deploy_all()

        assert [(r.project, r.ok) for r in reports] == [("analytics", True), ("other", False)]
        error = reports[1].to_dict()["error"]
        assert error["code"] == "INTERNAL_ERROR"
        assert "RuntimeError: boom" in error["message"]
