import os
import re

from utils.rfid import normalize_rfid_prefix

DEFAULT_INTERVAL_MINUTES = 0.0
DEFAULT_INTERVAL_SECONDS = 20.0
MAX_INTERVAL_MINUTES = 1440
MAX_INTERVAL_SECONDS = 59

DEFAULT_LOOKBACK_DAYS = 5
DEFAULT_QUERY_TIMEOUT_SECONDS = 60
DEFAULT_WORKFLOW_RETROACTIVE_HOURS = 24
DEFAULT_STANDBY_POLL_SECONDS = 5

SUPPORTED_JOBS = ("par_report", "provisioning", "workflow")

SQL_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_$#@]*$")


def _parse_bool_env(raw: str | None, default: bool = False) -> bool:
    if raw is None:
        return default

    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_positive_int_env(raw: str | None, default: int) -> int:
    if raw is None:
        return default

    try:
        value = int(raw.strip())
        return value if value > 0 else default
    except ValueError:
        return default


def _parse_float(raw: str | None) -> float | None:
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw.strip())
    except ValueError:
        return None


def _parse_interval_seconds(
    raw_minutes: str | None, raw_seconds: str | None
) -> float:
    """
    추출 주기(분+초)를 초 단위로 계산한다.

    Rules:
    - 분은 0..1440, 초는 0..59 범위만 반영한다. 범위 밖/파싱 불가 값은 무시.
    - 입력이 없으면 각 항목 기본값(0분, 20초)을 쓴다.
    - 합계가 0이면 기본 20초로 되돌린다.
    """
    minutes = _parse_float(raw_minutes)
    seconds = _parse_float(raw_seconds)
    if raw_minutes is None:
        minutes = DEFAULT_INTERVAL_MINUTES
    if raw_seconds is None:
        seconds = DEFAULT_INTERVAL_SECONDS

    total = 0.0
    if minutes is not None and 0 <= minutes <= MAX_INTERVAL_MINUTES:
        total += minutes * 60
    if seconds is not None and 0 <= seconds <= MAX_INTERVAL_SECONDS:
        total += seconds
    if total <= 0:
        total = DEFAULT_INTERVAL_SECONDS
    return total


def _parse_sql_identifier(raw: str | None, default: str, *, env_name: str) -> str:
    """
    쿼리에 식별자로 치환되는 DB 이름을 검증한다.
    """
    if raw is None or not raw.strip():
        return default
    value = raw.strip()
    if not SQL_IDENTIFIER_PATTERN.fullmatch(value):
        raise ValueError(
            f"{env_name} must be a plain SQL identifier. Got: {value!r}"
        )
    return value


def _parse_job_name(raw: str | None) -> str | None:
    if raw is None or not raw.strip():
        return None
    job = raw.strip().lower()
    if job not in SUPPORTED_JOBS:
        rendered = ", ".join(SUPPORTED_JOBS)
        raise ValueError(f"EXTRACT_JOB must be one of: {rendered}. Got: {job}")
    return job


EXTRACT_JOB = _parse_job_name(os.getenv("EXTRACT_JOB"))
EXTRACT_INTERVAL_SECONDS = _parse_interval_seconds(
    os.getenv("EXTRACT_INTERVAL_MINUTES"),
    os.getenv("EXTRACT_INTERVAL_SECONDS"),
)

# ── Database ──
DB_URL = os.getenv("DB_URL", "")
DB_SERVER = os.getenv("DB_SERVER", "localhost")
DB_DRIVER = os.getenv("DB_DRIVER", "ODBC Driver 18 for SQL Server")
# 비어 있으면 Windows 통합 인증(Trusted_Connection)으로 접속한다.
DB_USER = os.getenv("DB_USER", "").strip()
DB_PASSWORD = os.getenv("DB_PASSWORD", "")
DB_TRUST_SERVER_CERTIFICATE = _parse_bool_env(
    os.getenv("DB_TRUST_SERVER_CERTIFICATE"), default=True
)
ASSET_DB_NAME = _parse_sql_identifier(
    os.getenv("ASSET_DB_NAME"), "Agility", env_name="ASSET_DB_NAME"
)
LS_DB_NAME = _parse_sql_identifier(
    os.getenv("LS_DB_NAME"), "ECSGCore", env_name="LS_DB_NAME"
)
QUERY_TIMEOUT_SECONDS = _parse_positive_int_env(
    os.getenv("QUERY_TIMEOUT_SECONDS"), DEFAULT_QUERY_TIMEOUT_SECONDS
)

# ── Extraction policy ──
LOOKBACK_DAYS = _parse_positive_int_env(
    os.getenv("DEFAULT_LOOKBACK_DAYS"), DEFAULT_LOOKBACK_DAYS
)
WORKFLOW_RETROACTIVE_HOURS = _parse_positive_int_env(
    os.getenv("WORKFLOW_RETROACTIVE_HOURS"), DEFAULT_WORKFLOW_RETROACTIVE_HOURS
)
# PROD는 prefix 없음, UAT는 `U`. 최대 1문자.
RFID_CODE_PREFIX = normalize_rfid_prefix(os.getenv("RFID_CODE_PREFIX"))
# PAR 보고서에 hierarchy별 수량 sheet("PAR Count")를 추가할지 여부
PAR_INCLUDE_COUNT_SHEET = _parse_bool_env(
    os.getenv("PAR_INCLUDE_COUNT_SHEET"), default=False
)

# ── Active/standby ──
MASTER_SERVICE_NAME = os.getenv("MASTER_SERVICE_NAME", "").strip()
STANDBY_POLL_SECONDS = _parse_positive_int_env(
    os.getenv("STANDBY_POLL_SECONDS"), DEFAULT_STANDBY_POLL_SECONDS
)
