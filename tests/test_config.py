import pytest

from utils.config import (
    _parse_bool_env,
    _parse_interval_seconds,
    _parse_job_name,
    _parse_positive_int_env,
    _parse_sql_identifier,
)


def test_parse_interval_seconds_defaults_to_twenty_seconds():
    assert _parse_interval_seconds(None, None) == 20


def test_parse_interval_seconds_combines_minutes_and_seconds():
    assert _parse_interval_seconds("360", "0") == 360 * 60
    assert _parse_interval_seconds("1", "30") == 90


def test_parse_interval_seconds_keeps_default_seconds_when_only_minutes_given():
    assert _parse_interval_seconds("5", None) == 5 * 60 + 20


def test_parse_interval_seconds_ignores_out_of_range_and_invalid_values():
    assert _parse_interval_seconds("2000", "30") == 30
    assert _parse_interval_seconds("2", "75") == 120
    assert _parse_interval_seconds("abc", "10") == 10


def test_parse_interval_seconds_falls_back_when_total_is_zero():
    assert _parse_interval_seconds("0", "0") == 20
    assert _parse_interval_seconds("-1", "-1") == 20


def test_parse_bool_env_parses_common_values():
    assert _parse_bool_env("true") is True
    assert _parse_bool_env("1") is True
    assert _parse_bool_env("on") is True
    assert _parse_bool_env("false") is False
    assert _parse_bool_env("0") is False
    assert _parse_bool_env("off") is False


def test_parse_bool_env_falls_back_to_default_for_invalid():
    assert _parse_bool_env("not-a-bool", default=False) is False
    assert _parse_bool_env("not-a-bool", default=True) is True
    assert _parse_bool_env(None, default=True) is True


def test_parse_positive_int_env_falls_back_on_invalid_or_non_positive():
    assert _parse_positive_int_env("7", 5) == 7
    assert _parse_positive_int_env("0", 5) == 5
    assert _parse_positive_int_env("seven", 5) == 5
    assert _parse_positive_int_env(None, 5) == 5


def test_parse_sql_identifier_accepts_plain_names_and_default():
    assert _parse_sql_identifier(" Agility_UAT ", "Agility", env_name="X") == "Agility_UAT"
    assert _parse_sql_identifier("", "Agility", env_name="X") == "Agility"


def test_parse_sql_identifier_rejects_injection():
    with pytest.raises(ValueError) as excinfo:
        _parse_sql_identifier(
            "Agility]; DROP TABLE x;--", "Agility", env_name="ASSET_DB_NAME"
        )
    assert "ASSET_DB_NAME" in str(excinfo.value)


def test_parse_job_name_normalizes_and_validates():
    assert _parse_job_name(None) is None
    assert _parse_job_name(" Workflow ") == "workflow"
    with pytest.raises(ValueError):
        _parse_job_name("ingest")
