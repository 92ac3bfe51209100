"""
In-memory table passed between query, transform and write stages.

Why this module exists:
- job별 SQL 결과 컬럼 순서가 모두 다르므로, 의미 기반 attribute -> 컬럼 위치
  매핑(AttributeIndex)을 recordset에 붙여 writer/transform이 SQL을 몰라도 되게 한다.
- 행 길이/인덱스 범위 불변식을 한 곳에서 검사한다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class AssetAttribute(str, Enum):
    """
    job과 무관한 고정 의미 attribute 집합.
    """

    ASSET_CODE = "asset_code"
    ASSET_STATUS = "asset_status"
    LAST_CHANGED = "last_changed"
    SUBLOCATION = "sublocation"
    DEPARTMENT = "department"
    RFID_TAG = "rfid_tag"
    SERIAL_NUMBER = "serial_number"
    ASSET_NAME = "asset_name"
    ASSET_CATEGORY = "asset_category"
    ASSET_TYPE = "asset_type"
    ASSET_MODEL = "asset_model"
    ASSET_MODEL_DESCRIPTION = "asset_model_description"
    CORE_UID = "core_uid"
    CORE_RFID = "core_rfid"
    CORE_STATUS = "core_status"
    CORE_MODIFIED_DATE = "core_modified_date"
    CORE_CREATED_DATE = "core_created_date"
    CORE_LEVEL = "core_level"
    CORE_ZONE = "core_zone"
    CURRENT_QTY = "current_qty"
    LEVEL = "level"
    ZONE_TYPE = "zone_type"
    ZONE = "zone"
    WORKFLOW_STATUS = "workflow_status"
    PAR_RULE = "par_rule"
    PAR_RULE_STATUS = "par_rule_status"
    PAR_RULE_QTY = "par_rule_qty"
    PAR_RULE_REPL_QTY = "par_rule_repl_qty"
    PAR_RULE_DATE = "par_rule_date"


class AttributeIndex:
    """
    AssetAttribute -> 컬럼 위치 매핑. 설정되지 않은 attribute는 UNSET(-1).
    """

    UNSET = -1

    def __init__(self, positions: dict[AssetAttribute, int] | None = None):
        self._positions: dict[AssetAttribute, int] = {}
        for attribute, position in (positions or {}).items():
            self.set(attribute, position)

    def set(self, attribute: AssetAttribute, position: int) -> None:
        if position < 0:
            raise ValueError(
                f"column position must be >= 0 for {attribute.value}: {position}"
            )
        self._positions[AssetAttribute(attribute)] = position

    def get(self, attribute: AssetAttribute) -> int:
        return self._positions.get(attribute, self.UNSET)

    def is_set(self, attribute: AssetAttribute) -> bool:
        return attribute in self._positions

    def validate(self, column_count: int) -> None:
        """
        설정된 모든 위치가 컬럼 수보다 작은지 검사한다.
        """
        out_of_range = {
            attribute.value: position
            for attribute, position in self._positions.items()
            if position >= column_count
        }
        if out_of_range:
            raise ValueError(
                f"attribute index out of range (columns={column_count}): "
                f"{out_of_range}"
            )


@dataclass
class Recordset:
    """
    컬럼 + 문자열 행 + attribute index.

    - last_modified: 이 recordset이 대표하는 watermark
    - saved: 기록 결과. True가 된 이후에는 행을 추가할 수 없다.
    - supplementary: 두 번째 sheet로 기록할 recordset (XLSX 전용)
    """

    columns: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)
    index: AttributeIndex = field(default_factory=AttributeIndex)
    last_modified: datetime | None = None
    saved: bool = False
    name: str | None = None
    supplementary: Recordset | None = None

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def add_row(self, fields: list[str]) -> None:
        if self.saved:
            raise RuntimeError("recordset is already saved and must not change.")
        if len(fields) != len(self.columns):
            raise ValueError(
                f"row has {len(fields)} fields, expected {len(self.columns)}."
            )
        self.rows.append(list(fields))

    def value(self, row: list[str], attribute: AssetAttribute) -> str:
        """
        attribute에 매핑된 필드 값을 반환한다. 매핑이 없으면 빈 문자열.
        """
        if not self.index.is_set(attribute):
            return ""
        return row[self.index.get(attribute)]

    def validate(self) -> None:
        for number, row in enumerate(self.rows):
            if len(row) != len(self.columns):
                raise ValueError(
                    f"row {number} has {len(row)} fields, "
                    f"expected {len(self.columns)}."
                )
        self.index.validate(len(self.columns))
        if self.supplementary is not None:
            self.supplementary.validate()
