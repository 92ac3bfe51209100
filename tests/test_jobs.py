import pytest

from utils.config import SUPPORTED_JOBS
from workers.jobs import build_job
from workers.par_report import ParReportJob
from workers.provisioning import ProvisioningJob
from workers.workflow import WorkflowJob


def test_build_job_covers_every_supported_job():
    for name in SUPPORTED_JOBS:
        assert build_job(name).name == name


def test_build_job_passes_job_options():
    par = build_job("par_report", asset_db="AgilityUAT", include_count_sheet=True)
    provisioning = build_job("provisioning", rfid_prefix="U")
    workflow = build_job("workflow", ls_db="CoreUAT", retroactive_hours=6)

    assert isinstance(par, ParReportJob)
    assert par.asset_db == "AgilityUAT"
    assert par.include_count_sheet is True
    assert isinstance(provisioning, ProvisioningJob)
    assert provisioning.rfid_prefix == "U"
    assert isinstance(workflow, WorkflowJob)
    assert workflow.ls_db == "CoreUAT"
    assert workflow.retroactive_hours == 6


def test_build_job_rejects_unknown_name():
    with pytest.raises(ValueError):
        build_job("predict")
