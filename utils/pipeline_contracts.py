"""
Extraction runtime contracts (DTO + Enum).

Why this module exists:
- pipeline 단계별 결과를 예외/문자열 대신 명시적인 타입으로 고정해
  오케스트레이터가 분기 누락 없이 결과를 해석하게 한다.
- 실패 경로에서 watermark가 절대 전진하지 않도록 `RunResult`를
  fail-closed 기본값으로 모델링한다.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

# DB datetime 문자열 포맷 (yyyy-MM-dd HH:mm:ss.fff)
DB_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def format_db_datetime(value: datetime) -> str:
    """
    datetime을 millisecond 정밀도의 DB 문자열로 직렬화한다.
    """
    return value.strftime(DB_DATETIME_FORMAT)[:-3]


def parse_db_datetime(text: str | None) -> datetime | None:
    """
    DB 문자열(millisecond 유무 무관)을 naive datetime으로 파싱한다.
    """
    if not isinstance(text, str) or not text.strip():
        return None
    normalized = text.strip()
    for fmt in (DB_DATETIME_FORMAT, "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
        try:
            return datetime.strptime(normalized, fmt)
        except ValueError:
            continue
    return None


class FileType(str, Enum):
    """
    출력 파일 형식. value는 확장자와 같다.
    """

    CSV = "csv"
    XLSX = "xlsx"


class ServerStatus(str, Enum):
    """
    active/standby 판별 결과.
    """

    UNKNOWN = "unknown"
    ACTIVE = "active"
    STANDBY = "standby"


class RunResult(str, Enum):
    """
    ExtractionPipeline.run() 결과 코드.
    """

    SAVED = "saved"
    NO_DATA = "no_data"
    NO_VALID_ROWS = "no_valid_rows"
    CUTOFF_FAILED = "cutoff_failed"
    QUERY_FAILED = "query_failed"
    TRANSFORM_FAILED = "transform_failed"
    WRITE_SKIPPED = "write_skipped"
    WRITE_FAILED = "write_failed"
    BUSY = "busy"


class WriteSkipReason(str, Enum):
    """
    파일을 쓰지 않은 사유 코드.
    """

    TARGET_EXISTS = "target_exists"
    EMPTY_RECORDSET = "empty_recordset"


class QueryExecutionError(RuntimeError):
    """
    DB 조회 실패(연결/timeout/쿼리 오류)를 감싸는 예외.
    """


@dataclass(frozen=True)
class QuerySpec:
    """
    job이 만든 실행 가능한 쿼리 DTO.

    - sql: bind parameter(`:name`)를 포함한 SQL 텍스트
    - params: bind parameter 값
    - attribute_columns: AssetAttribute -> 결과 컬럼 위치
    """

    sql: str
    params: dict
    attribute_columns: dict


@dataclass(frozen=True)
class WriteOutcome:
    """
    파일 기록 결과 DTO.
    """

    saved: bool
    path: Path | None
    skip_reason: WriteSkipReason | None = None
    error: str | None = None


@dataclass(frozen=True)
class RunOutcome:
    """
    pipeline 1회 실행 결과 DTO.
    """

    result: RunResult
    cutoff: datetime | None = None
    watermark: datetime | None = None
    path: Path | None = None
    source_rows: int = 0
    output_rows: int = 0
    archived: int = 0
    error: str | None = None

    @property
    def advanced_watermark(self) -> bool:
        return self.result == RunResult.SAVED

    @property
    def is_failure(self) -> bool:
        return self.result in {
            RunResult.CUTOFF_FAILED,
            RunResult.QUERY_FAILED,
            RunResult.TRANSFORM_FAILED,
            RunResult.WRITE_FAILED,
        }
