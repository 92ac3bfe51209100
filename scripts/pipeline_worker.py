"""
Extraction worker orchestrator.

Why this file exists:
- Runtime orchestration(job 선택, 주기 실행, active/standby gate, 알림, 메트릭)을 한곳에서 제어한다.
- 실제 추출 로직(cutoff/query/transform/write)은 workers/*로 분리해 변경 폭을 줄인다.
- 테스트는 `scripts.pipeline_worker.*` 심볼(send_alert, 경로 상수)을 직접 monkeypatch한다.

즉, 이 파일은 "비즈니스 계산"보다 "운영 제어면(control-plane)"에 집중한다.
"""

import json
import math
import signal
import threading
import time
import traceback
from datetime import datetime, timezone
from pathlib import Path

import requests

from scripts.worker_config import (
    CYCLE_TARGET_SECONDS,
    DISCORD_WEBHOOK_URL,
    FAILURE_BACKOFF_SECONDS,
    OUTPUT_DIR,
    RUNTIME_METRICS_FILE,
    RUNTIME_METRICS_WINDOW_SIZE,
)
from scripts.worker_guards import StandbyMonitor
from utils.config import (
    DB_DRIVER,
    DB_PASSWORD,
    DB_SERVER,
    DB_TRUST_SERVER_CERTIFICATE,
    DB_URL,
    DB_USER,
    EXTRACT_JOB,
    LOOKBACK_DAYS,
    MASTER_SERVICE_NAME,
    QUERY_TIMEOUT_SECONDS,
    STANDBY_POLL_SECONDS,
)
from utils.file_io import atomic_write_json
from utils.logger import get_logger
from utils.pipeline_contracts import RunOutcome, RunResult
from workers.jobs import build_job
from workers.pipeline import ExtractionPipeline
from workers.query import SqlQueryExecutor, build_mssql_url, create_db_engine

logger = get_logger(__name__)

# cycle_result 값. ok/idle/standby는 정상 cycle로 집계한다.
CYCLE_OK = "ok"
CYCLE_IDLE = "idle"
CYCLE_STANDBY = "standby"
CYCLE_FAILED = "failed"
SUCCESS_CYCLE_RESULTS = {CYCLE_OK, CYCLE_IDLE, CYCLE_STANDBY}


def send_alert(message):
    """
    디스코드 webhook으로 알림 전송. webhook이 없으면 로그만 남긴다.
    """
    if not DISCORD_WEBHOOK_URL:
        logger.warning(f"[Alert Ignored] {message}")
        return

    try:
        payload = {"content": f"**Asset Extract Worker Alert**\n```{message}```"}
        requests.post(DISCORD_WEBHOOK_URL, json=payload, timeout=5)
    except requests.RequestException as e:
        logger.error(f"Failed to send alert: {e}")


def _load_runtime_metrics(path: Path = RUNTIME_METRICS_FILE) -> list[dict]:
    """
    Returns:
      - list[dict]: recent_cycles

    Example:
        recent_cycles: [
            {
                started_at: 2026-02-17T04:43:11Z,
                elapsed_seconds: 1.42,
                sleep_seconds: 18.58,
                overrun: false,
                result: ok,
                run_result: saved,
                rows_written: 12,
                error: null
            }, ...
        ]
    """
    if not path.exists():
        return []

    try:
        with open(path, "r") as f:
            payload = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load runtime metrics file: {e}")
        return []

    entries = payload.get("recent_cycles")
    if not isinstance(entries, list):
        logger.error("Invalid runtime metrics format: recent_cycles is not a list.")
        return []
    return entries


def _percentile(values: list[float], q: float) -> float | None:
    if not values:
        return None
    if q <= 0:
        return min(values)
    if q >= 100:
        return max(values)

    sorted_values = sorted(values)
    rank = math.ceil((q / 100) * len(sorted_values)) - 1
    rank = max(0, min(rank, len(sorted_values) - 1))
    return sorted_values[rank]


def _aggregate_run_results(entries: list[dict]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for item in entries:
        run_result = item.get("run_result")
        if not isinstance(run_result, str) or not run_result:
            continue
        counts[run_result] = counts.get(run_result, 0) + 1
    return counts


def append_runtime_cycle_metrics(
    *,
    started_at: datetime,
    elapsed_seconds: float,
    sleep_seconds: float,
    overrun: bool,
    cycle_result: str,
    error: str | None = None,
    run_result: str | None = None,
    rows_written: int = 0,
    job: str | None = EXTRACT_JOB,
    path: Path = RUNTIME_METRICS_FILE,
    target_cycle_seconds: float = CYCLE_TARGET_SECONDS,
    window_size: int = RUNTIME_METRICS_WINDOW_SIZE,
) -> dict:
    """
    cycle 메트릭을 recent window에 누적하고 요약 통계를 갱신한다.

    Called from:
    - run_worker() 정상/idle/standby/실패 cycle 종료 시점
    """
    entries = _load_runtime_metrics(path=path)
    entries.append(
        {
            "started_at": started_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "elapsed_seconds": round(max(0.0, elapsed_seconds), 2),
            "sleep_seconds": round(max(0.0, sleep_seconds), 2),
            "overrun": overrun,
            "result": cycle_result,
            "run_result": run_result,
            "rows_written": max(0, int(rows_written)),
            "error": error,
        }
    )

    effective_window = max(1, window_size)
    entries = entries[-effective_window:]

    samples = len(entries)
    success_count = sum(
        1 for item in entries if item.get("result") in SUCCESS_CYCLE_RESULTS
    )
    failure_count = samples - success_count
    overrun_count = sum(1 for item in entries if item.get("overrun") is True)
    elapsed_values = [float(item.get("elapsed_seconds", 0.0)) for item in entries]
    p95_elapsed = _percentile(elapsed_values, 95)

    summary = {
        "samples": samples,
        "success_count": success_count,
        "failure_count": failure_count,
        "success_rate": round(success_count / samples, 4) if samples else None,
        "avg_elapsed_seconds": (
            round(sum(elapsed_values) / samples, 2) if samples else None
        ),
        "p95_elapsed_seconds": (
            round(p95_elapsed, 2) if p95_elapsed is not None else None
        ),
        "overrun_count": overrun_count,
        "overrun_rate": round(overrun_count / samples, 4) if samples else None,
        "rows_written": sum(int(item.get("rows_written") or 0) for item in entries),
        "run_result_counts": _aggregate_run_results(entries),
    }

    payload = {
        "version": 1,
        "job": job,
        "updated_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "target_cycle_seconds": target_cycle_seconds,
        "window_size": effective_window,
        "summary": summary,
        "recent_cycles": entries,
    }
    atomic_write_json(path, payload, indent=2)
    return summary


def classify_cycle_result(outcome: RunOutcome) -> str:
    if outcome.is_failure:
        return CYCLE_FAILED
    if outcome.result == RunResult.SAVED:
        return CYCLE_OK
    return CYCLE_IDLE


def build_pipeline(job_name: str, output_dir: Path = OUTPUT_DIR) -> ExtractionPipeline:
    """
    job/engine/executor를 조립한다. DB_URL이 있으면 그대로 쓰고, 없으면 SQL Server URL을 만든다.
    """
    url = DB_URL or build_mssql_url(
        server=DB_SERVER,
        driver=DB_DRIVER,
        username=DB_USER,
        password=DB_PASSWORD,
        trust_server_certificate=DB_TRUST_SERVER_CERTIFICATE,
    )
    engine = create_db_engine(url, query_timeout_seconds=QUERY_TIMEOUT_SECONDS)
    return ExtractionPipeline(
        build_job(job_name),
        SqlQueryExecutor(engine),
        output_dir,
        lookback_days=LOOKBACK_DAYS,
    )


def run_cycle(
    pipeline: ExtractionPipeline, monitor: StandbyMonitor
) -> tuple[str, RunOutcome | None]:
    """
    1 cycle: standby면 건너뛰고, 아니면 pipeline을 1회 실행한다.
    """
    if not monitor.is_active:
        logger.debug("[Worker] standby, extraction skipped.")
        return CYCLE_STANDBY, None

    outcome = pipeline.run()
    cycle_result = classify_cycle_result(outcome)
    if cycle_result == CYCLE_FAILED:
        logger.error(
            f"[Worker] {pipeline.job.name} cycle failed: "
            f"result={outcome.result.value}, error={outcome.error}"
        )
    return cycle_result, outcome


def _install_signal_handlers(stop_event: threading.Event) -> None:
    if threading.current_thread() is not threading.main_thread():
        return

    def _handle(signum, _frame):
        logger.info(f"[Worker] signal {signum} received, stopping after current run.")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def run_worker(stop_event: threading.Event | None = None):
    """
    worker 메인 루프.
    Stage order (per cycle):
    1) active/standby gate
    2) pipeline.run() (archive -> cutoff -> query -> transform -> write)
    3) runtime metrics 기록 및 sleep/overrun 처리
    """
    if not EXTRACT_JOB:
        raise ValueError("EXTRACT_JOB is required (par_report, provisioning, workflow).")

    stop_event = stop_event or threading.Event()
    _install_signal_handlers(stop_event)

    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    RUNTIME_METRICS_FILE.parent.mkdir(parents=True, exist_ok=True)

    logger.info(
        f"[Worker] Started. Job: {EXTRACT_JOB}, Output: {OUTPUT_DIR}, "
        f"Interval: {CYCLE_TARGET_SECONDS}s, Master: {MASTER_SERVICE_NAME or '-'}"
    )
    pipeline = build_pipeline(EXTRACT_JOB, OUTPUT_DIR)
    monitor = StandbyMonitor(MASTER_SERVICE_NAME, poll_seconds=STANDBY_POLL_SECONDS)
    monitor.start()

    send_alert(f"Worker Started. Job: {EXTRACT_JOB}")
    previous_result: str | None = None

    while not stop_event.is_set():
        cycle_started_at = datetime.now(timezone.utc)
        start_time = time.time()

        try:
            cycle_result, outcome = run_cycle(pipeline, monitor)
            if cycle_result == CYCLE_FAILED and previous_result != CYCLE_FAILED:
                send_alert(
                    f"{EXTRACT_JOB} extraction failed: "
                    f"{outcome.result.value} ({outcome.error})"
                )
            previous_result = cycle_result

            elapsed = time.time() - start_time
            sleep_time = CYCLE_TARGET_SECONDS - elapsed
            overrun = sleep_time <= 0

            try:
                append_runtime_cycle_metrics(
                    started_at=cycle_started_at,
                    elapsed_seconds=elapsed,
                    sleep_seconds=max(sleep_time, 0.0),
                    overrun=overrun,
                    cycle_result=cycle_result,
                    error=outcome.error if outcome else None,
                    run_result=outcome.result.value if outcome else None,
                    rows_written=(
                        outcome.output_rows
                        if outcome and outcome.advanced_watermark
                        else 0
                    ),
                    job=EXTRACT_JOB,
                    path=RUNTIME_METRICS_FILE,
                    target_cycle_seconds=CYCLE_TARGET_SECONDS,
                )
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"Runtime metrics update failed: {e}")

            if sleep_time > 0:
                logger.debug(
                    f"Cycle finished in {elapsed:.2f}s. Sleeping for {sleep_time:.2f}s..."
                )
                stop_event.wait(sleep_time)
            else:
                warning_msg = (
                    f"[Warning] Cycle Overrun! Took {elapsed:.2f}s "
                    f"(Limit: {CYCLE_TARGET_SECONDS}s)"
                )
                logger.warning(warning_msg)
                send_alert(warning_msg)

        except Exception as e:
            error_msg = f"Worker Critical Error:\n{traceback.format_exc()}"
            logger.error(error_msg)
            send_alert(error_msg)
            previous_result = CYCLE_FAILED
            elapsed = time.time() - start_time
            try:
                append_runtime_cycle_metrics(
                    started_at=cycle_started_at,
                    elapsed_seconds=elapsed,
                    sleep_seconds=FAILURE_BACKOFF_SECONDS,
                    overrun=elapsed > CYCLE_TARGET_SECONDS,
                    cycle_result=CYCLE_FAILED,
                    error=str(e),
                    job=EXTRACT_JOB,
                    path=RUNTIME_METRICS_FILE,
                    target_cycle_seconds=CYCLE_TARGET_SECONDS,
                )
            except (OSError, TypeError, ValueError) as metrics_error:
                logger.error(
                    "Runtime metrics update failed after worker error: "
                    f"{metrics_error}"
                )
            stop_event.wait(FAILURE_BACKOFF_SECONDS)

    monitor.stop()
    logger.info(f"[Worker] Stopped. Job: {EXTRACT_JOB}")


if __name__ == "__main__":
    run_worker()
