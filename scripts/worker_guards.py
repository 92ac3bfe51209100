"""
Active/standby guard.

Why this module exists:
- 같은 worker가 두 서버(active/standby)에 모두 떠 있고, master 서비스가
  실행 중인 서버만 추출을 수행해야 한다.
- 판별은 추출 주기와 무관하게 짧은 주기(기본 5초)로 background thread에서 갱신하고,
  run_worker는 매 cycle 마지막 판별값만 읽는다.
"""

from __future__ import annotations

import subprocess
import threading
from typing import Callable

from utils.logger import get_logger
from utils.pipeline_contracts import ServerStatus

logger = get_logger(__name__)

PROBE_TIMEOUT_SECONDS = 5


def probe_master_service(
    service_name: str,
    *,
    runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> bool:
    """
    master 서비스가 실행 중이면 True.

    Raises:
      - OSError / subprocess.SubprocessError: systemctl 실행 실패, timeout
    """
    completed = runner(
        ["systemctl", "is-active", "--quiet", service_name],
        timeout=PROBE_TIMEOUT_SECONDS,
        check=False,
    )
    return completed.returncode == 0


class StandbyMonitor:
    """
    master 서비스 상태를 polling해 ServerStatus를 유지한다.

    Rules:
    - service name이 비어 있으면 단일 노드 배포로 보고 항상 ACTIVE
    - probe 실패는 STANDBY로 간주한다. 오류 로그는 STANDBY로 바뀌는 시점에만 남긴다.
    - 상태 로그는 전이 시점에만 남긴다.
    """

    def __init__(
        self,
        service_name: str,
        *,
        poll_seconds: float = 5,
        probe: Callable[[str], bool] = probe_master_service,
    ):
        self.service_name = service_name.strip()
        self.poll_seconds = poll_seconds
        self._probe = probe
        self._status = ServerStatus.UNKNOWN
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def status(self) -> ServerStatus:
        with self._lock:
            return self._status

    @property
    def is_active(self) -> bool:
        return self.status == ServerStatus.ACTIVE

    def update_status(self) -> ServerStatus:
        """
        1회 판별 후 상태를 갱신한다.

        Called from:
        - StandbyMonitor._poll_loop
        - StandbyMonitor.start (첫 cycle 전에 동기 판별)
        """
        previous = self.status
        if not self.service_name:
            active = True
        else:
            try:
                active = self._probe(self.service_name)
            except (OSError, subprocess.SubprocessError) as e:
                if previous != ServerStatus.STANDBY:
                    logger.error(
                        f"[Standby] failed to probe {self.service_name}: {e}"
                    )
                active = False

        current = ServerStatus.ACTIVE if active else ServerStatus.STANDBY
        with self._lock:
            self._status = current

        if current != previous:
            if current == ServerStatus.ACTIVE:
                logger.info(f"[Standby] host is active ({self.service_name or 'single node'})")
            else:
                logger.warning(
                    f"[Standby] host on standby ({self.service_name} not running)"
                )
        return current

    def start(self) -> None:
        self.update_status()
        if not self.service_name:
            return
        self._thread = threading.Thread(
            target=self._poll_loop, name="standby-monitor", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.poll_seconds + PROBE_TIMEOUT_SECONDS)

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(self.poll_seconds):
            self.update_status()
