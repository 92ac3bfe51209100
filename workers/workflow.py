"""
Asset workflow status job.

Why this module exists:
- CORE importer는 가장 최신 파일 하나만 읽고, workflow status 반영이 간헐적으로 실패한다.
  그래서 cutoff 이후 변경이 있을 때만 파일을 만들되, cutoff 이전
  retroactive window(기본 24시간)의 변경도 다시 포함해 누락분을 재반영한다.
- 방금 CORE에 provisioning되어 workflow status가 아직 없는 자산은
  CORE ModifiedDate로 timestamp를 잡는다.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from utils.logger import get_logger
from utils.pipeline_contracts import FileType, QuerySpec, parse_db_datetime
from utils.recordset import AssetAttribute, Recordset
from workers.file_writer import db_column_headers, escape_field
from workers.query import bind_datetime, load_sql_template

logger = get_logger(__name__)

WORKFLOW_ATTRIBUTE_COLUMNS = {
    AssetAttribute.ASSET_CODE: 0,
    AssetAttribute.ASSET_STATUS: 1,
    AssetAttribute.LAST_CHANGED: 2,
    AssetAttribute.CORE_UID: 3,
    AssetAttribute.CORE_STATUS: 4,
    AssetAttribute.CORE_RFID: 5,
    AssetAttribute.CORE_MODIFIED_DATE: 6,
}

WORKFLOW_HEADERS = [
    "Asset Category",
    "Asset Type",
    "Asset Model",
    "Asset Code",
    "Asset Status",
    "Last Modified",
]
CHANGED_BEFORE_CUTOFF_HEADER = "__Changed Before Cutoff"

# e.g. 11/10/2017 16:46:00.507
LAST_MODIFIED_FORMAT = "%d/%m/%Y %H:%M:%S.%f"


def format_last_modified(value: datetime) -> str:
    return value.strftime(LAST_MODIFIED_FORMAT)[:-3]


def clamp_to_previous_minute(value: datetime) -> datetime:
    """
    분 단위로 내림한 뒤 1초를 뺀다.

    Example:
    - 10:15:42.300 -> 10:14:59
    """
    return value.replace(second=0, microsecond=0) - timedelta(seconds=1)


def format_gap(gap: timedelta) -> str:
    """
    cutoff 이전 변경의 시간 차이를 `hh:mm:ss`로 표시한다. 일(day) 단위는 버린다.
    """
    total_seconds = int(gap.total_seconds())
    hours = total_seconds // 3600 % 24
    minutes = total_seconds // 60 % 60
    seconds = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


@dataclass
class WorkflowJob:
    asset_db: str
    ls_db: str
    retroactive_hours: int = 24

    name = "workflow"
    file_prefix = "AssetDataFile"
    file_type = FileType.CSV
    retention_count = 3
    overwrite = False
    sheet_name = "Workflow Data"

    def build_query(self, cutoff: datetime) -> QuerySpec:
        retroactive_cutoff = cutoff - timedelta(hours=self.retroactive_hours)
        sql = load_sql_template(self.name).format(
            asset_db=self.asset_db, ls_db=self.ls_db
        )
        logger.debug(
            f"[Workflow] cutoff={cutoff} retroactive_cutoff={retroactive_cutoff}"
        )
        return QuerySpec(
            sql=sql,
            params={
                "cutoff": bind_datetime(cutoff),
                "retroactive_cutoff": bind_datetime(retroactive_cutoff),
            },
            attribute_columns=WORKFLOW_ATTRIBUTE_COLUMNS,
        )

    def map_columns(self, recordset: Recordset) -> Recordset:
        """
        Rules:
        - 행 timestamp가 현재까지의 최대값(= 출력 watermark) 이상이면
          분 단위 내림 - 1초로 기록한다. importer가 같은 분의 변경을 놓치지 않게 한다.
        - Agility 변경 시각이 cutoff보다 이전이면 `__Changed Before Cutoff`에 차이를 쓴다.
        """
        cutoff = recordset.last_modified
        output = Recordset(
            columns=list(WORKFLOW_HEADERS)
            + [escape_field(CHANGED_BEFORE_CUTOFF_HEADER, self.file_type)]
            + db_column_headers(recordset.columns, self.file_type),
            last_modified=cutoff,
            name=self.sheet_name,
        )

        for row in recordset.rows:
            asset_code = recordset.value(row, AssetAttribute.ASSET_CODE)
            agility_changed = parse_db_datetime(
                recordset.value(row, AssetAttribute.LAST_CHANGED)
            )
            changed_at = agility_changed
            if not recordset.value(row, AssetAttribute.CORE_STATUS).strip():
                # CORE가 아직 workflow status를 import하지 않은 신규 자산
                changed_at = parse_db_datetime(
                    recordset.value(row, AssetAttribute.CORE_MODIFIED_DATE)
                )
            if agility_changed is None or changed_at is None:
                logger.warning(
                    f"[Workflow] {asset_code}: unparsable change timestamp. Skipping row."
                )
                continue

            if output.last_modified is None or changed_at > output.last_modified:
                output.last_modified = changed_at
            if changed_at >= output.last_modified:
                changed_at = clamp_to_previous_minute(changed_at)

            changed_before_cutoff = ""
            if cutoff is not None and agility_changed < cutoff:
                changed_before_cutoff = format_gap(cutoff - agility_changed)

            fields = [
                "",
                "",
                "",
                escape_field(asset_code, self.file_type),
                escape_field(
                    recordset.value(row, AssetAttribute.ASSET_STATUS), self.file_type
                ),
                escape_field(format_last_modified(changed_at), self.file_type),
                escape_field(changed_before_cutoff, self.file_type),
            ]
            fields.extend(escape_field(value, self.file_type) for value in row)
            output.add_row(fields)

        return output
