"""Tests for task and hook units."""

import pytest

from dagplane.data.models import HookType
from dagplane.errors import JobValidationError, UnitNotFound
from dagplane.units.bq2bq import BQ2BQTask, referenced_tables
from dagplane.units.hooks import PredatorHook, TransporterHook
from dagplane.units.registry import UnitRegistry, default_hook_registry
from dagplane.units.shell import ShellTask

from .conftest import make_job


class TestBQ2BQ:
    def test_destination(self):
        job = make_job("t", unit="bq2bq", config={"PROJECT": "w", "DATASET": "s", "TABLE": "orders"})

        assert BQ2BQTask().get_destination(job) == "w.s.orders"

    def test_referenced_tables(self):
        query = """
            -- FROM `w.old.ignored`
            SELECT * FROM `w.sales.orders` o
            LEFT JOIN w.sales.customers c ON o.c = c.id
            /* JOIN `w.x.commented` */
            JOIN `legacy-project:raw.events` e ON e.id = o.id
            WHERE o.id IN (SELECT id FROM `w.sales.orders`)
        """

        assert referenced_tables(query) == [
            "legacy-project.raw.events",
            "w.sales.customers",
            "w.sales.orders",
        ]

    def test_dependencies_come_from_rendered_query(self):
        job = make_job("t", unit="bq2bq", config={"PROJECT": "w", "DATASET": "s", "TABLE": "t"})

        deps = BQ2BQTask().generate_dependencies(job, {"query.sql": "SELECT 1 FROM `a.b.c`"})

        assert deps == ["a.b.c"]
        assert BQ2BQTask().generate_dependencies(job, {}) == []

    def test_requires_query_asset(self):
        job = make_job("t", unit="bq2bq", config={"PROJECT": "w", "DATASET": "s", "TABLE": "t"})

        with pytest.raises(JobValidationError) as exc_info:
            BQ2BQTask().validate(job)

        assert "query.sql" in exc_info.value.reason

    def test_requires_config(self):
        job = make_job("t", unit="bq2bq", config={"PROJECT": "w"}, assets={"query.sql": "SELECT 1"})

        with pytest.raises(JobValidationError) as exc_info:
            BQ2BQTask().validate(job)

        assert "DATASET, TABLE" in exc_info.value.reason


class TestShell:
    def test_destination_and_sources(self):
        job = make_job("t", config={"COMMAND": "x", "DESTINATION": " out ", "SOURCES": "b, a,,a"})

        assert ShellTask().get_destination(job) == "out"
        assert ShellTask().generate_dependencies(job, {}) == ["a", "b"]

    def test_no_destination(self):
        assert ShellTask().get_destination(make_job("t")) is None

    def test_blank_command(self):
        with pytest.raises(JobValidationError):
            ShellTask().validate(make_job("t", config={"COMMAND": "  "}))


class TestHooks:
    def test_hook_config(self):
        job = make_job("t")

        TransporterHook().validate(job, {"KAFKA_TOPIC": "orders"})
        with pytest.raises(JobValidationError):
            TransporterHook().validate(job, {})

    def test_info(self):
        info = PredatorHook().info()

        assert info["type"] == HookType.POST.value
        assert info["depends_on"] == ["transporter"]


class TestRegistry:
    def test_default_hooks(self):
        registry = default_hook_registry()

        assert registry.names() == ["notify", "predator", "transporter"]
        assert [u.name for u in registry] == ["notify", "predator", "transporter"]
        assert "notify" in registry
        assert len(registry) == 3

    def test_unknown_unit(self, task_registry):
        with pytest.raises(UnitNotFound) as exc_info:
            task_registry.get("spark")

        assert exc_info.value.details == {"kind": "task", "unit": "spark"}

    def test_duplicate_registration(self):
        registry = UnitRegistry("task")
        registry.register(ShellTask())

        with pytest.raises(ValueError):
            registry.register(ShellTask())
