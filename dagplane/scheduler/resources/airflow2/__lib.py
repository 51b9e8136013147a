# Shared helpers for DAGs generated by dagplane. Uploaded to every project's
# dags/ folder when the scheduler is bootstrapped; DO NOT EDIT.

import json
import logging
import os
import urllib.error
import urllib.request
from datetime import datetime, timedelta

from airflow.exceptions import AirflowException
from airflow.models import DagRun
from airflow.providers.cncf.kubernetes.operators.pod import KubernetesPodOperator
from airflow.sensors.base import BaseSensorOperator
from kubernetes.client import models as k8s

log = logging.getLogger(__name__)

NAMESPACE = os.environ.get("DAGPLANE_POD_NAMESPACE", "default")
SLACK_WEBHOOK = os.environ.get("DAGPLANE_SLACK_WEBHOOK", "")


def _parse_duration(value):
    value = (value or "0").strip()
    if value in ("", "0"):
        return timedelta(0)
    sign = -1 if value.startswith("-") else 1
    value = value.lstrip("+-")
    total, number = 0.0, ""
    units = {"d": 86400, "h": 3600, "m": 60, "s": 1}
    for char in value:
        if char in units:
            total += float(number) * units[char]
            number = ""
        else:
            number += char
    return timedelta(seconds=sign * total)


def _truncate(value, unit):
    if unit == "h":
        return value.replace(minute=0, second=0, microsecond=0)
    day = value.replace(hour=0, minute=0, second=0, microsecond=0)
    if unit == "d":
        return day
    if unit == "w":
        return day - timedelta(days=day.weekday())
    if unit == "M":
        return day.replace(day=1)
    return value


def window_bounds(window, scheduled_at):
    end = _truncate(scheduled_at, window.get("truncate_to", "")) + _parse_duration(window.get("offset"))
    start = end - _parse_duration(window.get("size"))
    return start, end


class DagplanePodOperator(KubernetesPodOperator):
    """Runs a task or hook container with its config and window as env vars."""

    def __init__(self, project, job, config, assets, window, ingress_host, **kwargs):
        self.dagplane_project = project
        self.dagplane_job = job
        self.dagplane_config = config
        self.dagplane_assets = assets
        self.dagplane_window = window
        self.dagplane_ingress_host = ingress_host
        kwargs.setdefault("namespace", NAMESPACE)
        kwargs.setdefault("get_logs", True)
        kwargs.setdefault("is_delete_operator_pod", True)
        super().__init__(**kwargs)

    def execute(self, context):
        scheduled_at = context["data_interval_end"]
        start, end = window_bounds(self.dagplane_window, scheduled_at)
        env = dict(self.dagplane_config)
        env.update(
            {
                "DAGPLANE_PROJECT": self.dagplane_project,
                "DAGPLANE_JOB": self.dagplane_job,
                "DAGPLANE_HOST": self.dagplane_ingress_host,
                "DSTART": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "DEND": end.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "EXECUTION_TIME": scheduled_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "DAGPLANE_ASSETS": json.dumps(self.dagplane_assets),
            }
        )
        self.env_vars = [k8s.V1EnvVar(name=name, value=value) for name, value in sorted(env.items())]
        return super().execute(context)


class CrossProjectDependencySensor(BaseSensorOperator):
    """Waits for a job of another project to succeed within the same window.

    The upstream job is looked up through the dagplane ingress host so a
    deleted or renamed upstream fails the sensor instead of waiting forever.
    """

    def __init__(self, ingress_host, upstream_project, upstream_job, window, **kwargs):
        super().__init__(**kwargs)
        self.ingress_host = ingress_host
        self.upstream_project = upstream_project
        self.upstream_job = upstream_job
        self.window = window

    def poke(self, context):
        url = f"http://{self.ingress_host}/v1/projects/{self.upstream_project}/jobs/{self.upstream_job}"
        try:
            with urllib.request.urlopen(url, timeout=30) as response:
                json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            if e.code == 404:
                raise AirflowException(f"upstream job {self.upstream_project}/{self.upstream_job} does not exist")
            log.warning("upstream job lookup failed for %s: %s", url, e)
            return False
        except OSError as e:
            log.warning("upstream job lookup failed for %s: %s", url, e)
            return False

        start, end = window_bounds(self.window, context["data_interval_end"])
        runs = DagRun.find(
            dag_id=self.upstream_job,
            execution_start_date=start,
            execution_end_date=end,
        )
        return any(run.get_state() == "success" for run in runs)


def alert_failed_to_slack(context):
    if not SLACK_WEBHOOK:
        return
    task = context.get("task_instance")
    message = {
        "text": f"dagplane job failed: {task.dag_id}.{task.task_id} at {datetime.utcnow().isoformat()}",
    }
    request = urllib.request.Request(
        SLACK_WEBHOOK,
        data=json.dumps(message).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )
    try:
        urllib.request.urlopen(request, timeout=10)
    except OSError as e:
        log.warning("failed to send slack alert: %s", e)


def log_success_event(context):
    task = context.get("task_instance")
    log.info("dagplane job succeeded: %s.%s", task.dag_id, task.task_id)
