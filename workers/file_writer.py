"""
Output file writer (CSV / multi-sheet XLSX).

Why this module exists:
- downstream importer는 출력 디렉터리를 독립적으로 polling한다.
  모든 출력은 임시 파일에 쓴 뒤 rename하는 원자적 기록만 허용한다.
- 파일명 규칙(`<prefix>_yyyy_MM_dd_HH_mm.<ext>`)과 필드 escape 규칙을
  job과 무관하게 한 곳에 고정한다.
"""

from __future__ import annotations

import io
import re
from datetime import datetime
from pathlib import Path

import pandas as pd
from openpyxl.utils.exceptions import IllegalCharacterError

from utils.file_io import atomic_write_bytes, atomic_write_text
from utils.logger import get_logger
from utils.pipeline_contracts import FileType, WriteOutcome, WriteSkipReason
from utils.recordset import Recordset
from workers.cutoff import format_file_timestamp

logger = get_logger(__name__)

CSV_SEPARATOR = ","
DB_COLUMN_PREFIX = "_"
CSV_LINE_TERMINATOR = "\r\n"
DEFAULT_SHEET_NAME = "Sheet1"
EXCEL_SHEET_NAME_MAX_LENGTH = 31
# Excel double 정밀도(15자리)를 넘는 숫자열은 문자열로 남긴다.
EXCEL_MAX_NUMERIC_DIGITS = 15
NUMERIC_PATTERN = re.compile(r"^[+-]?\d+(\.\d+)?$")


def escape_field(value: str | None, file_type: FileType) -> str:
    """
    출력 필드를 escape한다.

    Rules:
    - `"`는 항상 `""`로 바꾼다.
    - CSV에서 `,`가 포함되면 값 전체를 `"`로 감싼다.
    - `\\r`, `\\n`은 무조건 제거한다.

    Example:
    - `He said "hi", bye` -> `"He said ""hi"", bye"` (CSV)
    """
    text = "" if value is None else str(value)
    text = text.replace('"', '""')
    if file_type == FileType.CSV and CSV_SEPARATOR in text:
        text = f'"{text}"'
    return text.replace("\r", "").replace("\n", "")


def build_target_path(
    output_dir: Path, prefix: str, file_type: FileType, last_modified: datetime
) -> Path:
    return Path(output_dir) / (
        f"{prefix}_{format_file_timestamp(last_modified)}.{file_type.value}"
    )


def db_column_headers(columns: list[str], file_type: FileType) -> list[str]:
    """
    원본 DB 컬럼명을 `_` prefix로 붙여 출력 끝에 덧붙인다(운영 중 데이터 추적용).
    """
    return [escape_field(f"{DB_COLUMN_PREFIX}{column}", file_type) for column in columns]


def _render_csv(recordset: Recordset) -> str:
    lines = [CSV_SEPARATOR.join(recordset.columns)]
    lines.extend(CSV_SEPARATOR.join(row) for row in recordset.rows)
    return CSV_LINE_TERMINATOR.join(lines) + CSV_LINE_TERMINATOR


def _coerce_cell(value: str):
    """
    숫자처럼 보이는 문자열은 숫자로 저장한다(엑셀의 '텍스트 숫자' 경고 방지).
    """
    if not NUMERIC_PATTERN.fullmatch(value):
        return value
    digits = sum(char.isdigit() for char in value)
    if digits > EXCEL_MAX_NUMERIC_DIGITS:
        return value
    if "." in value:
        return float(value)
    return int(value)


def _sheet_frame(recordset: Recordset) -> pd.DataFrame:
    return pd.DataFrame(
        [[_coerce_cell(field) for field in row] for row in recordset.rows],
        columns=recordset.columns,
        dtype=object,
    )


def _render_xlsx(recordset: Recordset) -> bytes:
    sheets = [recordset]
    if recordset.supplementary is not None:
        sheets.append(recordset.supplementary)

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        used_names: set[str] = set()
        for number, sheet in enumerate(sheets, start=1):
            name = (sheet.name or DEFAULT_SHEET_NAME)[:EXCEL_SHEET_NAME_MAX_LENGTH]
            if name in used_names:
                name = f"{name[: EXCEL_SHEET_NAME_MAX_LENGTH - 2]}_{number}"
            used_names.add(name)
            _sheet_frame(sheet).to_excel(writer, sheet_name=name, index=False)
    return buffer.getvalue()


def write_recordset(
    recordset: Recordset,
    path: Path,
    file_type: FileType,
    *,
    overwrite: bool = False,
) -> WriteOutcome:
    """
    recordset을 path에 원자적으로 기록한다. 예외를 던지지 않고 결과 DTO를 반환한다.

    Called from:
    - workers.pipeline.ExtractionPipeline.run
    - workers.par_report.ParReportJob.after_save (master file)
    """
    target = Path(path)
    if recordset.is_empty:
        return WriteOutcome(
            saved=False, path=target, skip_reason=WriteSkipReason.EMPTY_RECORDSET
        )
    if target.exists() and not overwrite:
        logger.warning(
            f"[Writer] {target.name} already exists and overwrite is off, "
            "retry next cycle."
        )
        return WriteOutcome(
            saved=False, path=target, skip_reason=WriteSkipReason.TARGET_EXISTS
        )

    try:
        recordset.validate()
        if file_type == FileType.CSV:
            atomic_write_text(target, _render_csv(recordset))
        else:
            atomic_write_bytes(target, _render_xlsx(recordset))
    except (OSError, ValueError, IllegalCharacterError) as e:
        logger.error(f"[Writer] failed to write {target}: {e}")
        return WriteOutcome(saved=False, path=target, error=str(e))

    logger.info(f"[Writer] wrote {len(recordset)} row(s) to {target.name}")
    return WriteOutcome(saved=True, path=target)
