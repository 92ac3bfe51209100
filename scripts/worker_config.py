"""
Worker configuration constants.

Why this module exists:
- pipeline_worker.py의 경로/알림/메트릭 설정을 분리해 오케스트레이션 코드의 인지 부하를 줄인다.
- 상수 변경 시 영향 범위를 이 파일로 한정한다.

Note:
- pipeline_worker.py에서 이 모듈의 값을 import해 모듈 속성으로 재노출하므로,
  테스트 monkeypatch 경로(`scripts.pipeline_worker.*`)는 그대로 유효하다.
"""

import os
from pathlib import Path

from utils.config import EXTRACT_INTERVAL_SECONDS, EXTRACT_JOB

# ── Alerting ──
DISCORD_WEBHOOK_URL = os.getenv("DISCORD_WEBHOOK_URL", "")

# ── Paths ──
BASE_DIR = Path(__file__).resolve().parent.parent
STATE_DIR = Path(os.getenv("STATE_DIR", str(BASE_DIR / "state")))
# job마다 출력 디렉터리/prefix/watermark를 따로 가진다.
OUTPUT_DIR = Path(
    os.getenv("OUTPUT_DIR", str(BASE_DIR / "output" / (EXTRACT_JOB or "default")))
)

# ── Cycle / Runtime metrics ──
CYCLE_TARGET_SECONDS = EXTRACT_INTERVAL_SECONDS
RUNTIME_METRICS_FILE = STATE_DIR / f"runtime_metrics_{EXTRACT_JOB or 'default'}.json"
RUNTIME_METRICS_WINDOW_SIZE = int(os.getenv("RUNTIME_METRICS_WINDOW_SIZE", "240"))

# ── Failure back-off ──
FAILURE_BACKOFF_SECONDS = 10
