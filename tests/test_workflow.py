from datetime import datetime, timedelta

from utils.pipeline_contracts import FileType
from utils.recordset import AttributeIndex, Recordset
from workers.workflow import (
    CHANGED_BEFORE_CUTOFF_HEADER,
    WORKFLOW_ATTRIBUTE_COLUMNS,
    WORKFLOW_HEADERS,
    WorkflowJob,
    clamp_to_previous_minute,
    format_gap,
    format_last_modified,
)

CUTOFF = datetime(2024, 3, 15, 9, 30)
SOURCE_COLUMNS = [
    "Code", "StatusCode", "LastChangeDate", "CoreUID", "CoreStatus", "CoreRFID",
    "CoreModifiedDate",
]


def _row(code, last_changed, core_status="Available", core_modified=""):
    return [code, "ACTIVE", last_changed, code, core_status, "4D544D31", core_modified]


def _source(rows):
    return Recordset(
        columns=list(SOURCE_COLUMNS),
        rows=rows,
        index=AttributeIndex(WORKFLOW_ATTRIBUTE_COLUMNS),
        last_modified=CUTOFF,
    )


def test_format_last_modified_uses_day_first_milliseconds():
    assert format_last_modified(datetime(2017, 10, 11, 16, 46, 0, 507000)) == (
        "11/10/2017 16:46:00.507"
    )


def test_clamp_to_previous_minute():
    assert clamp_to_previous_minute(datetime(2024, 3, 15, 10, 15, 42, 300000)) == (
        datetime(2024, 3, 15, 10, 14, 59)
    )


def test_format_gap_drops_days():
    assert format_gap(timedelta(days=2, hours=3, minutes=4, seconds=5)) == "03:04:05"
    assert format_gap(timedelta(minutes=90)) == "01:30:00"


def test_build_query_binds_cutoff_and_retroactive_cutoff():
    job = WorkflowJob(asset_db="Agility", ls_db="ECSGCore", retroactive_hours=24)

    query = job.build_query(CUTOFF)

    assert query.params == {
        "cutoff": CUTOFF,
        "retroactive_cutoff": datetime(2024, 3, 14, 9, 30),
    }
    assert "ECSGCore..tbAsset" in query.sql


def test_map_columns_builds_rows_and_tracks_watermark():
    job = WorkflowJob(asset_db="Agility", ls_db="ECSGCore")
    rows = [
        _row("MTM1", "2024-03-15 10:05:12.345"),
        _row("MTM2", "2024-03-15 08:00:00.000"),
    ]

    output = job.map_columns(_source(rows))

    assert output.columns == (
        WORKFLOW_HEADERS
        + [CHANGED_BEFORE_CUTOFF_HEADER]
        + ["_" + name for name in SOURCE_COLUMNS]
    )
    # newest row is clamped so the importer does not miss same-minute changes
    assert output.rows[0][:7] == [
        "", "", "", "MTM1", "ACTIVE", "15/03/2024 10:04:59.000", "",
    ]
    # retroactive row keeps its timestamp and reports how far before the cutoff it is
    assert output.rows[1][:7] == [
        "", "", "", "MTM2", "ACTIVE", "15/03/2024 08:00:00.000", "01:30:00",
    ]
    assert output.rows[0][7:] == rows[0]
    assert output.last_modified == datetime(2024, 3, 15, 10, 5, 12, 345000)


def test_map_columns_uses_core_modified_date_when_core_status_is_blank():
    job = WorkflowJob(asset_db="Agility", ls_db="ECSGCore")
    row = _row(
        "MTM3",
        "2024-03-14 09:00:00.000",
        core_status="",
        core_modified="2024-03-15 11:00:30.000",
    )

    output = job.map_columns(_source([row]))

    assert output.rows[0][5] == "15/03/2024 10:59:59.000"
    # gap is measured from the asset register change time
    assert output.rows[0][6] == "00:30:00"
    assert output.last_modified == datetime(2024, 3, 15, 11, 0, 30)


def test_map_columns_skips_rows_with_unparsable_timestamps(caplog):
    job = WorkflowJob(asset_db="Agility", ls_db="ECSGCore")
    rows = [
        _row("MTM4", ""),
        _row("MTM5", "2024-03-15 10:00:00.000", core_status="", core_modified="x"),
        _row("MTM6", "2024-03-15 10:00:00.000"),
    ]

    output = job.map_columns(_source(rows))

    assert [row[3] for row in output.rows] == ["MTM6"]
    assert "MTM4" in caplog.text
    assert "MTM5" in caplog.text


def test_map_columns_escapes_csv_fields():
    job = WorkflowJob(asset_db="Agility", ls_db="ECSGCore")
    row = _row("MTM7", "2024-03-15 10:00:00.000")
    row[1] = "In Repair, Bay 2"

    output = job.map_columns(_source([row]))

    assert output.rows[0][4] == '"In Repair, Bay 2"'
    assert output.rows[0][8] == '"In Repair, Bay 2"'


def test_job_constants():
    job = WorkflowJob(asset_db="Agility", ls_db="ECSGCore")

    assert job.file_prefix == "AssetDataFile"
    assert job.file_type == FileType.CSV
    assert job.retention_count == 3
    assert job.overwrite is False
