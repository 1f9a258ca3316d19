"""JSON / CSV export helpers for downstream viewers."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from leadscout.models import JobResult
from leadscout.reporting.archive import LeadArchive

logger = logging.getLogger(__name__)


def export_to_file(
    archive: LeadArchive,
    output_dir: str | Path,
    fmt: str = "json",
    since_date: str = "",
) -> Path:
    """Write an export of archived leads and return its path.

    *fmt* is ``"json"`` or ``"csv"``.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    if fmt == "csv":
        content = archive.export_csv(since_date)
        suffix = ".csv"
    else:
        content = archive.export_json(since_date)
        suffix = ".json"

    dest = output_dir / f"leads_export{suffix}"
    dest.write_text(content, encoding="utf-8")
    logger.info("Exported %s to %s.", fmt.upper(), dest)
    return dest


def write_job_result(result: JobResult, output_dir: str | Path) -> Path:
    """Write one JobResult as ``<job_id>.json``."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    dest = output_dir / f"{result.job_id}.json"
    dest.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
    logger.info("Wrote job result to %s.", dest)
    return dest
