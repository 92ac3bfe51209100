"""
Cutoff (watermark) resolution.

Why this module exists:
- 외부 change-log 없이, 마지막으로 기록한 출력 파일명에 박힌 시각(분 단위)과
  프로세스 메모리의 정밀 watermark(초 이하 단위)를 조합해 다음 추출 기준점을 정한다.
- 파일명은 분 단위로 잘리므로 메모리 값이 1분 이내로 앞서 있으면 메모리 값을 써서
  마지막 레코드를 다시 뽑지 않게 한다.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

from utils.logger import get_logger

logger = get_logger(__name__)

# 고정 폭 zero-padding이라 사전순 정렬 == 시간순 정렬
FILE_TIMESTAMP_FORMAT = "%Y_%m_%d_%H_%M"
FILE_TIMESTAMP_FIELDS = 5
RECONCILE_WINDOW = timedelta(minutes=1)


def format_file_timestamp(value: datetime) -> str:
    return value.strftime(FILE_TIMESTAMP_FORMAT)


def list_output_files(output_dir: Path, prefix: str, ext: str) -> list[Path]:
    """
    `<prefix>*.<ext>` 파일을 파일명 오름차순(가장 최신이 마지막)으로 반환한다.

    Called from:
    - resolve_cutoff
    - workers.archive.rotate_archive
    """
    directory = Path(output_dir)
    if not directory.is_dir():
        return []
    return sorted(
        (path for path in directory.glob(f"{prefix}*.{ext}") if path.is_file()),
        key=lambda path: path.name,
    )


def parse_file_timestamp(file_name: str, prefix: str, ext: str) -> datetime | None:
    """
    `<prefix>_yyyy_MM_dd_HH_mm.<ext>`에서 시각을 꺼낸다. 형식이 다르면 None.
    """
    suffix = f".{ext}"
    if not file_name.startswith(prefix) or not file_name.endswith(suffix):
        return None

    embedded = file_name[len(prefix) : len(file_name) - len(suffix)]
    tokens = embedded.strip("_").split("_")
    if len(tokens) != FILE_TIMESTAMP_FIELDS:
        return None
    try:
        year, month, day, hour, minute = (int(token) for token in tokens)
        return datetime(year, month, day, hour, minute, 0)
    except ValueError:
        return None


def resolve_cutoff(
    output_dir: Path,
    prefix: str,
    ext: str,
    lookback_days: int,
    in_memory_watermark: datetime | None = None,
    *,
    now: datetime | None = None,
) -> datetime:
    """
    다음 추출 cutoff를 계산한다.

    Rules:
    - 출력 파일이 없거나 최신 파일명을 파싱할 수 없으면 now - lookback_days
    - 메모리 watermark가 파일 시각보다 크고 그 차이가 1분 미만이면 메모리 값
    - 그 외에는 파일 시각

    Raises:
      - OSError: 출력 디렉터리를 나열할 수 없을 때 (기본 lookback으로 대체하지 않는다)

    Called from:
    - workers.pipeline.ExtractionPipeline.run
    """
    resolved_now = now or datetime.now()
    default_cutoff = resolved_now - timedelta(days=lookback_days)

    files = list_output_files(output_dir, prefix, ext)
    if not files:
        logger.info(
            f"[Cutoff] no {prefix}*.{ext} files, default cutoff={default_cutoff}"
        )
        return default_cutoff

    newest = files[-1]
    file_cutoff = parse_file_timestamp(newest.name, prefix, ext)
    if file_cutoff is None:
        logger.warning(
            f"[Cutoff] unparsable file timestamp: {newest.name}, "
            f"default cutoff={default_cutoff}"
        )
        return default_cutoff

    if (
        in_memory_watermark is not None
        and in_memory_watermark > file_cutoff
        and in_memory_watermark - file_cutoff < RECONCILE_WINDOW
    ):
        logger.debug(
            f"[Cutoff] in-memory watermark {in_memory_watermark} "
            f"refines file cutoff {file_cutoff}"
        )
        return in_memory_watermark

    return file_cutoff
