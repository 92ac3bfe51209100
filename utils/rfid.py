"""
Fixed-width RFID code encoding for tag printing.

Why this module exists:
- 라벨 프린터는 문자당 hex 2자리로 인코딩된 고정 길이 코드를 받는다.
- 환경 구분용 prefix 문자(예: UAT=`U`)가 있으면 그만큼 asset id 문자 수를 줄인다.
"""

BITS_PER_CHARACTER = 2


def normalize_rfid_prefix(raw: str | None) -> str:
    """
    prefix를 trim 후 최대 1문자로 자른다. 없으면 빈 문자열.
    """
    if raw is None:
        return ""
    return raw.strip()[:1]


def encode_rfid_code(identifier: str, prefix: str, total_bits: int) -> str:
    """
    identifier의 오른쪽 문자들을 ASCII hex로 인코딩한다.

    Example:
    - ("MTM42946", "U", 16) -> "55544D3432393436"
    """
    prefix = normalize_rfid_prefix(prefix)
    max_id_chars = total_bits // BITS_PER_CHARACTER - (1 if prefix else 0)
    if max_id_chars <= 0:
        selected = ""
    else:
        selected = identifier[-max_id_chars:]
    return "".join(f"{ord(char):X}" for char in prefix + selected)
