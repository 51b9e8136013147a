"""Tests for the command line interface."""

import logging

import pytest
import structlog
from typer.testing import CliRunner

from dagplane.cli import app
from dagplane.config import PARAMETERS

runner = CliRunner()


@pytest.fixture(autouse=True)
def environment(monkeypatch):
    for parameter in PARAMETERS:
        monkeypatch.delenv(parameter.env, raising=False)
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("APP_KEY", "k" * 32)
    monkeypatch.setenv("INGRESS_HOST", "dagplane.internal:9100")
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "dagplane v" in result.stdout


def test_missing_configuration(monkeypatch):
    monkeypatch.delenv("APP_KEY")
    monkeypatch.delenv("INGRESS_HOST")

    result = runner.invoke(app, ["deploy"])

    assert result.exit_code == 1
    assert "missing required parameter: --app-key" in result.stdout
    assert "missing required parameter: --ingress-host" in result.stdout


def test_deploy_without_projects():
    result = runner.invoke(app, ["deploy"])

    assert result.exit_code == 0
    assert "Deployment" in result.stdout


def test_deploy_unknown_project():
    result = runner.invoke(app, ["deploy", "missing"])

    assert result.exit_code == 1
    assert "PROJECT_NOT_FOUND" in result.stdout


def test_bootstrap_unknown_project():
    result = runner.invoke(app, ["bootstrap", "missing"])

    assert result.exit_code == 1
