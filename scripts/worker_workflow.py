"""
Workflow status worker entrypoint.

Why this tiny wrapper exists:
- 동일 코드에서 환경변수만으로 추출 job을 고정해 운영 단순성을 유지한다.
- import 전에 env를 주입해야 pipeline_worker의 module-level 설정이 올바르게 계산된다.
"""

import os


def main() -> None:
    """
    Called from:
    - systemd unit `asset-extract-workflow.service` ExecStart
    """
    os.environ["EXTRACT_JOB"] = "workflow"
    from scripts.pipeline_worker import run_worker

    run_worker()


if __name__ == "__main__":
    main()
