"""
Incremental extraction pipeline.

Why this module exists:
- archive -> cutoff -> query -> transform -> write -> watermark 순서를 한 곳에 고정한다.
- 모든 실패 경로는 RunOutcome으로 반환하고 watermark를 전진시키지 않는다.
  같은 cutoff로 다시 실행하면 같은 row set이 나오므로 재시도가 항상 안전하다(at-least-once).
- job별 차이(SQL, 컬럼 매핑, 파일 규칙)는 주입된 job 전략 객체로만 표현한다.
"""

from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol

from utils.logger import get_logger
from utils.pipeline_contracts import (
    FileType,
    QueryExecutionError,
    QuerySpec,
    RunOutcome,
    RunResult,
    WriteSkipReason,
)
from utils.recordset import Recordset
from workers.archive import rotate_archive
from workers.cutoff import resolve_cutoff
from workers.file_writer import build_target_path, write_recordset

logger = get_logger(__name__)


class ExtractionJob(Protocol):
    """
    job 전략 인터페이스.

    - 선택 hook: `after_save(output, output_dir)`
      저장 성공과 watermark 전진 후 호출된다. 예외는 로그만 남긴다.
    """

    name: str
    file_prefix: str
    file_type: FileType
    retention_count: int
    overwrite: bool

    def build_query(self, cutoff: datetime) -> QuerySpec: ...

    def map_columns(self, recordset: Recordset) -> Recordset: ...


class QueryExecutor(Protocol):
    def fetch(self, query: QuerySpec, cutoff: datetime) -> Recordset: ...


class ExtractionPipeline:
    """
    job 하나의 출력 디렉터리와 메모리 watermark를 소유한다.

    - 동시에 두 run이 돌지 않도록 single-flight lock을 건다.
      (겹치면 watermark 전진과 파일명이 경합한다)
    """

    def __init__(
        self,
        job: ExtractionJob,
        executor: QueryExecutor,
        output_dir: Path,
        *,
        lookback_days: int,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.job = job
        self.executor = executor
        self.output_dir = Path(output_dir)
        self.lookback_days = lookback_days
        self.in_memory_watermark: datetime | None = None
        self._clock = clock
        self._run_lock = threading.Lock()

    def run(self) -> RunOutcome:
        """
        1회 추출을 실행한다. 예외를 밖으로 던지지 않는다.

        Called from:
        - scripts.pipeline_worker.run_worker (interval마다)
        """
        if not self._run_lock.acquire(blocking=False):
            logger.warning(f"[Pipeline] {self.job.name} run already in progress, skip.")
            return RunOutcome(result=RunResult.BUSY)
        try:
            return self._run_once()
        finally:
            self._run_lock.release()

    def _run_once(self) -> RunOutcome:
        job = self.job
        ext = job.file_type.value

        archived = rotate_archive(
            self.output_dir, job.file_prefix, ext, job.retention_count
        )

        try:
            cutoff = resolve_cutoff(
                self.output_dir,
                job.file_prefix,
                ext,
                self.lookback_days,
                self.in_memory_watermark,
                now=self._clock(),
            )
        except OSError as e:
            logger.error(f"[Pipeline] {job.name} cutoff resolution failed: {e}")
            return RunOutcome(
                result=RunResult.CUTOFF_FAILED,
                watermark=self.in_memory_watermark,
                archived=archived,
                error=str(e),
            )

        try:
            source = self.executor.fetch(job.build_query(cutoff), cutoff)
        except (QueryExecutionError, OSError) as e:
            logger.error(f"[Pipeline] {job.name} query failed (cutoff={cutoff}): {e}")
            return RunOutcome(
                result=RunResult.QUERY_FAILED,
                cutoff=cutoff,
                watermark=self.in_memory_watermark,
                archived=archived,
                error=str(e),
            )

        if source.is_empty:
            logger.info(f"[Pipeline] {job.name} no changes since {cutoff}")
            return RunOutcome(
                result=RunResult.NO_DATA,
                cutoff=cutoff,
                watermark=self.in_memory_watermark,
                archived=archived,
            )

        try:
            output = job.map_columns(source)
        except Exception as e:
            logger.exception(f"[Pipeline] {job.name} transform failed: {e}")
            return RunOutcome(
                result=RunResult.TRANSFORM_FAILED,
                cutoff=cutoff,
                watermark=self.in_memory_watermark,
                source_rows=len(source),
                archived=archived,
                error=str(e),
            )

        if output.is_empty:
            logger.warning(
                f"[Pipeline] {job.name} all {len(source)} source row(s) were skipped"
            )
            return RunOutcome(
                result=RunResult.NO_VALID_ROWS,
                cutoff=cutoff,
                watermark=self.in_memory_watermark,
                source_rows=len(source),
                archived=archived,
            )

        if output.last_modified is None or output.last_modified < cutoff:
            output.last_modified = cutoff

        target = build_target_path(
            self.output_dir, job.file_prefix, job.file_type, output.last_modified
        )
        write = write_recordset(output, target, job.file_type, overwrite=job.overwrite)
        if not write.saved:
            skipped = write.skip_reason == WriteSkipReason.TARGET_EXISTS
            return RunOutcome(
                result=RunResult.WRITE_SKIPPED if skipped else RunResult.WRITE_FAILED,
                cutoff=cutoff,
                watermark=self.in_memory_watermark,
                path=target,
                source_rows=len(source),
                output_rows=len(output),
                archived=archived,
                error=write.error,
            )

        output.saved = True
        previous = self.in_memory_watermark
        if previous is None or output.last_modified > previous:
            self.in_memory_watermark = output.last_modified

        # 주 파일은 이미 기록됨. hook 실패는 결과(SAVED)를 바꾸지 않는다.
        after_save = getattr(job, "after_save", None)
        if after_save is not None:
            try:
                after_save(output, self.output_dir)
            except Exception as e:
                logger.exception(f"[Pipeline] {job.name} after_save hook failed: {e}")

        logger.info(
            f"[Pipeline] {job.name} saved {len(output)} row(s) to {target.name}, "
            f"watermark={self.in_memory_watermark}"
        )
        return RunOutcome(
            result=RunResult.SAVED,
            cutoff=cutoff,
            watermark=self.in_memory_watermark,
            path=target,
            source_rows=len(source),
            output_rows=len(output),
            archived=archived,
        )
