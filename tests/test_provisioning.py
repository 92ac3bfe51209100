import logging
from datetime import datetime

import pytest

from utils.pipeline_contracts import FileType
from utils.recordset import AttributeIndex, Recordset
from workers.provisioning import (
    CORE_IMPORT_HEADERS,
    PROVISIONING_ATTRIBUTE_COLUMNS,
    TAG_LABEL_HEADERS,
    ImportMethod,
    ProvisioningJob,
    classify_import_method,
    default_asset_name,
)

CUTOFF = datetime(2024, 3, 15, 9, 30)
SOURCE_COLUMNS = [
    "Code", "LastChangeDate", "AssetCategory", "AssetType", "AssetModel",
    "AssetName", "RFIDTag", "Department", "SerialNo", "SubLocation",
    "COREUID", "CORERFID", "COREModifiedDate", "CORECreatedDate",
    "CORELevel", "COREZone", "COREAssetName",
]
TAG_COLUMN = len(CORE_IMPORT_HEADERS)


def _row(**overrides):
    values = {
        "code": "MTM42946",
        "last_changed": "2024-03-15 10:05:12.345",
        "category": "MTMU",
        "asset_type": "Infusion Pump",
        "model": "Alaris GP",
        "name": "",
        "rfid": "",
        "department": "",
        "serial": "SN 001",
        "sublocation": "",
        "core_uid": "",
        "core_rfid": "",
        "core_modified": "",
        "core_created": "",
        "core_level": "",
        "core_zone": "",
        "core_name": "",
    }
    values.update(overrides)
    return list(values.values())


def _source(rows):
    return Recordset(
        columns=list(SOURCE_COLUMNS),
        rows=rows,
        index=AttributeIndex(PROVISIONING_ATTRIBUTE_COLUMNS),
        last_modified=CUTOFF,
    )


def _job():
    return ProvisioningJob(asset_db="Agility", ls_db="ECSGCore", rfid_prefix="U")


@pytest.mark.parametrize(
    ("core_uid", "core_rfid", "expected"),
    [
        ("", "", ImportMethod.NEW),
        ("MTM1", "", ImportMethod.RETAG),
        ("MTM1", "4D544D31", ImportMethod.REPROVISION),
    ],
)
def test_classify_import_method(core_uid, core_rfid, expected):
    assert classify_import_method(core_uid, core_rfid) == expected


def test_default_asset_name_truncates_type():
    assert default_asset_name("Infusion Pump", "MTM42946") == "Infusion MTM42946"
    assert default_asset_name("Bed", "FM7") == "Bed FM7"


def test_build_query_binds_cutoff():
    query = _job().build_query(datetime(2024, 3, 15, 9, 30, 1, 123456))

    assert query.params == {"cutoff": datetime(2024, 3, 15, 9, 30, 1, 123000)}
    assert query.attribute_columns == PROVISIONING_ATTRIBUTE_COLUMNS


def test_map_columns_builds_core_import_row_for_new_asset():
    output = _job().map_columns(_source([_row()]))

    assert output.name == "Worksheet1"
    assert output.columns[:TAG_COLUMN] == CORE_IMPORT_HEADERS
    assert output.columns[TAG_COLUMN:TAG_COLUMN + 5] == TAG_LABEL_HEADERS
    assert output.columns[TAG_COLUMN + 5:] == ["_" + name for name in SOURCE_COLUMNS]

    row = output.rows[0]
    assert len(row) == len(output.columns)
    assert row[:15] == [
        "LB",
        "LBS02 [ICT Storeroom]",
        "No",
        "MTMU",
        "55544D3432393436",
        "MTM42946-SN 001",
        "MTM42946",
        "MTMU Equipment",
        "Infusion Pump",
        "Alaris GP",
        "Yes",
        "Infusion MTM42946",
        "",
        "",
        "RFID Tag ID: 55544D3432393436",
    ]
    assert set(row[15:TAG_COLUMN]) == {""}
    assert row[TAG_COLUMN:TAG_COLUMN + 5] == [
        "",
        "Medical Technology Management Unit",
        "For equipment service call  6456 3242",
        "Tag No.",
        "New",
    ]
    assert row[TAG_COLUMN + 5] == "MTM42946"
    assert output.last_modified == datetime(2024, 3, 15, 10, 5, 12, 345000)


def test_map_columns_uses_core_timestamps_for_modify_methods():
    retag = _row(
        code="MTM1",
        core_uid="MTM1",
        core_modified="2024-03-16 07:00:00.000",
    )
    reprovision = _row(
        code="MTM2",
        core_uid="MTM2",
        core_rfid="4D544D32",
        core_created="2024-03-14 06:00:00.000",
        core_level="Level 2",
        core_zone="2B",
    )

    output = _job().map_columns(_source([retag, reprovision]))

    assert [row[TAG_COLUMN + 4] for row in output.rows] == [
        "Modify (Retag)",
        "Modify (Reprovision)",
    ]
    assert output.rows[0][:2] == ["LB", "LBS02 [ICT Storeroom]"]
    assert output.rows[1][:2] == ["Level 2", "2B"]
    # reprovision timestamp is older than the retag one
    assert output.last_modified == datetime(2024, 3, 16, 7, 0)


def test_map_columns_fm_asset_uses_sublocation_and_default_department():
    output = _job().map_columns(
        _source(
            [
                _row(
                    code="FM100",
                    category="Facilities Management",
                    asset_type="Bed",
                    name="Ward bed 7",
                    sublocation="Plant Room",
                    serial="   ",
                )
            ]
        )
    )

    row = output.rows[0]
    assert row[3] == "Facilities Management"
    assert row[5] == "FM100"
    assert row[7] == "FM Equipment"
    assert row[11] == "Ward bed 7"
    assert row[TAG_COLUMN:TAG_COLUMN + 4] == [
        "Plant Room",
        "Facilities Management",
        "For equipment service support contact",
        "Asset Number",
    ]


def test_map_columns_mtmu_tag_location_is_raw_department():
    output = _job().map_columns(_source([_row(department="ICU")]))

    assert output.rows[0][3] == "ICU"
    assert output.rows[0][TAG_COLUMN] == "ICU"


def test_map_columns_unknown_category_leaves_profile_fields_blank():
    output = _job().map_columns(_source([_row(category="ICT")]))

    row = output.rows[0]
    assert row[3] == ""
    assert row[7] == ""
    assert row[TAG_COLUMN:TAG_COLUMN + 5] == ["", "", "", "", "New"]


def test_map_columns_skips_invalid_rows(caplog):
    rows = [
        _row(code="MTM1", model=""),
        _row(code="MTM2", last_changed=""),
        _row(code="MTM3", core_uid="MTM3", core_modified="garbage"),
        _row(code="MTM4"),
    ]

    with caplog.at_level(logging.WARNING):
        output = _job().map_columns(_source(rows))

    assert [row[6] for row in output.rows] == ["MTM4"]
    assert "MTM1" in caplog.text
    assert "MTM2" in caplog.text
    assert "MTM3" in caplog.text


def test_map_columns_without_rfid_prefix_uses_full_code():
    job = ProvisioningJob(asset_db="Agility", ls_db="ECSGCore")

    output = job.map_columns(_source([_row()]))

    assert output.rows[0][4] == "4D544D3432393436"


def test_job_constants():
    job = _job()

    assert job.file_prefix == "AssetProvisioningDataFile"
    assert job.file_type == FileType.XLSX
    assert job.retention_count == 8
    assert job.overwrite is False
