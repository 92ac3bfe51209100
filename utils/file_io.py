import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator


@contextmanager
def _staged_target(path: str | Path) -> Iterator[tuple[int, str]]:
    """
    같은 디렉터리에 숨김 임시 파일을 만들고, 블록이 정상 종료되면 교체한다.

    Why:
    - 임시 파일명은 `.`으로 시작하므로 `<prefix>*.<ext>` glob에 잡히지 않는다.
      importer/cutoff/archive가 반쯤 쓰인 파일을 보는 일이 없다.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        dir=str(file_path.parent), prefix=f".{file_path.name}."
    )
    try:
        yield fd, temp_path
        os.replace(temp_path, file_path)
        os.chmod(file_path, 0o644)
    finally:
        if os.path.exists(temp_path):
            os.remove(temp_path)


def atomic_write_json(
    path: str | Path, payload: Any, indent: int | None = None
) -> None:
    """
    JSON을 저장하다가 죽어도 파일이 깨지지 않게 만듦(안전 장치)
    json.dump() 대신 사용
    """
    with _staged_target(path) as (fd, _):
        with os.fdopen(fd, "w") as temp_file:
            json.dump(payload, temp_file, indent=indent)
            temp_file.flush()
            os.fsync(temp_file.fileno())


def atomic_write_text(
    path: str | Path, text: str, *, encoding: str = "utf-8"
) -> None:
    """
    CSV 등 텍스트 출력 파일을 원자적으로 기록한다.
    newline 변환은 하지 않으므로 호출자가 line terminator를 직접 넣는다.
    """
    with _staged_target(path) as (fd, _):
        with os.fdopen(fd, "w", encoding=encoding, newline="") as temp_file:
            temp_file.write(text)
            temp_file.flush()
            os.fsync(temp_file.fileno())


def atomic_write_bytes(path: str | Path, data: bytes) -> None:
    """
    메모리에서 완성된 바이너리(XLSX workbook 등)를 원자적으로 기록한다.

    Called from:
    - workers.file_writer XLSX 저장
    """
    with _staged_target(path) as (fd, _):
        with os.fdopen(fd, "wb") as temp_file:
            temp_file.write(data)
            temp_file.flush()
            os.fsync(temp_file.fileno())
