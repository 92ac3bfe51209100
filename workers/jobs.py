"""
Job registry.

Called from:
- scripts.pipeline_worker.run_worker (EXTRACT_JOB -> job 전략 객체)
"""

from __future__ import annotations

from utils.config import (
    ASSET_DB_NAME,
    LS_DB_NAME,
    PAR_INCLUDE_COUNT_SHEET,
    RFID_CODE_PREFIX,
    SUPPORTED_JOBS,
    WORKFLOW_RETROACTIVE_HOURS,
)
from workers.par_report import ParReportJob
from workers.provisioning import ProvisioningJob
from workers.workflow import WorkflowJob


def build_job(
    name: str,
    *,
    asset_db: str = ASSET_DB_NAME,
    ls_db: str = LS_DB_NAME,
    rfid_prefix: str = RFID_CODE_PREFIX,
    retroactive_hours: int = WORKFLOW_RETROACTIVE_HOURS,
    include_count_sheet: bool = PAR_INCLUDE_COUNT_SHEET,
):
    if name == "par_report":
        return ParReportJob(
            asset_db=asset_db, ls_db=ls_db, include_count_sheet=include_count_sheet
        )
    if name == "provisioning":
        return ProvisioningJob(asset_db=asset_db, ls_db=ls_db, rfid_prefix=rfid_prefix)
    if name == "workflow":
        return WorkflowJob(
            asset_db=asset_db, ls_db=ls_db, retroactive_hours=retroactive_hours
        )
    rendered = ", ".join(SUPPORTED_JOBS)
    raise ValueError(f"Unknown extraction job: {name}. Supported: {rendered}")
