"""
BigQuery to BigQuery transformation task.

The job runs the ``query.sql`` asset and writes the result into
``PROJECT.DATASET.TABLE``. Tables read by the query (``FROM``/``JOIN``
clauses) are reported as dependencies so the job is ordered after whichever
job produces them.
"""

from __future__ import annotations

import re
from typing import List, Optional

from ..data.models.artifact import RenderedAssetSet
from ..data.models.job import JobSpec
from .base import TaskUnit

QUERY_ASSET = "query.sql"

_COMMENTS = re.compile(r"--[^\n]*|/\*.*?\*/", re.DOTALL)
_TABLE_REFERENCE = re.compile(
    r"\b(?:from|join)\s+`?([\w\-]+)[.:]([\w\-]+)\.([\w\-]+)`?", re.IGNORECASE
)


def referenced_tables(query: str) -> List[str]:
    """Fully qualified tables named after FROM or JOIN, sorted and unique."""
    stripped = _COMMENTS.sub(" ", query)
    tables = {".".join(match) for match in _TABLE_REFERENCE.findall(stripped)}
    return sorted(tables)


class BQ2BQTask(TaskUnit):
    description = "Transform BigQuery tables with a SQL query"
    required_config = ("PROJECT", "DATASET", "TABLE")
    required_assets = (QUERY_ASSET,)

    @property
    def name(self) -> str:
        return "bq2bq"

    @property
    def image(self) -> str:
        return "ghcr.io/dagplane/task-bq2bq:1.4"

    def get_destination(self, job: JobSpec) -> Optional[str]:
        config = job.task.config
        return f"{config['PROJECT']}.{config['DATASET']}.{config['TABLE']}"

    def generate_dependencies(self, job: JobSpec, assets: RenderedAssetSet) -> List[str]:
        return referenced_tables(assets.get(QUERY_ASSET, ""))
