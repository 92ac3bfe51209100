"""
Bounded-retention archive rotation for the output directory.
"""

from __future__ import annotations

import os
from pathlib import Path

from utils.logger import get_logger
from workers.cutoff import list_output_files

logger = get_logger(__name__)

ARCHIVE_SUBFOLDER = "Archive"


def rotate_archive(
    output_dir: Path, prefix: str, ext: str, retention_count: int
) -> int:
    """
    최신 retention_count개만 남기고 나머지를 `Archive/`로 옮긴다.

    - 같은 이름이 Archive에 있으면 덮어쓴다.
    - 개별 파일 이동 실패는 로그만 남기고 다음 파일을 계속 처리한다.
      (다음 cycle에 다시 시도된다)

    Returns:
      - int: 실제로 옮긴 파일 수

    Called from:
    - workers.pipeline.ExtractionPipeline.run (매 run의 첫 단계)
    """
    try:
        files = list_output_files(output_dir, prefix, ext)
    except OSError as e:
        logger.error(f"[Archive] cannot list {output_dir}: {e}")
        return 0
    keep = max(0, retention_count)
    if len(files) <= keep:
        return 0

    archive_dir = Path(output_dir) / ARCHIVE_SUBFOLDER
    try:
        archive_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"[Archive] cannot create {archive_dir}: {e}")
        return 0

    expired = files[: len(files) - keep]
    moved = 0
    for source in expired:
        try:
            os.replace(source, archive_dir / source.name)
            moved += 1
        except OSError as e:
            logger.error(f"[Archive] failed to move {source.name}: {e}")

    logger.info(
        f"[Archive] archived {moved}/{len(expired)} file(s), "
        f"retained={keep}, prefix={prefix}"
    )
    return moved
