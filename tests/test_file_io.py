import json
import os
import stat

import pytest

from utils.file_io import atomic_write_bytes, atomic_write_json, atomic_write_text


def test_atomic_write_json_creates_and_replaces_file(tmp_path):
    target = tmp_path / "runtime_metrics_workflow.json"
    target.write_text('{"old": true}')

    payload = {"job": "workflow", "recent_cycles": [{"result": "ok"}]}
    atomic_write_json(target, payload, indent=2)

    loaded = json.loads(target.read_text())
    assert loaded == payload


def test_atomic_write_json_applies_world_readable_mode_on_posix(tmp_path):
    if os.name != "posix":
        pytest.skip("Permission mode check is POSIX-only.")

    target = tmp_path / "AssetDataFile_2024_03_15_09_30.csv"
    atomic_write_text(target, "a,b\r\n")

    file_mode = stat.S_IMODE(target.stat().st_mode)
    assert file_mode == 0o644


def test_atomic_write_json_cleans_temp_file_and_keeps_previous_content_on_failure(
    tmp_path,
):
    target = tmp_path / "runtime_metrics_par_report.json"
    target.write_text('{"stable": true}')

    # set() is not JSON serializable.
    with pytest.raises(TypeError):
        atomic_write_json(target, {"broken": {1, 2, 3}})

    assert json.loads(target.read_text()) == {"stable": True}
    assert not list(tmp_path.glob(f".{target.name}.*"))


def test_atomic_write_text_keeps_crlf_line_terminators(tmp_path):
    target = tmp_path / "AssetDataFile_2024_03_15_09_30.csv"
    atomic_write_text(target, "Asset Code,Asset Status\r\nMTM1,ACTIVE\r\n")

    assert target.read_bytes() == b"Asset Code,Asset Status\r\nMTM1,ACTIVE\r\n"


def test_atomic_write_bytes_creates_parent_directory(tmp_path):
    target = tmp_path / "nested" / "AssetPARDataFile_2024_03_15_09_30.xlsx"
    atomic_write_bytes(target, b"PK\x03\x04")

    assert target.read_bytes() == b"PK\x03\x04"
    assert not list(target.parent.glob(".*"))
