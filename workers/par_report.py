"""
PAR (equipment level) report job.

Why this module exists:
- CORE의 PAR current status는 rule 재설정 후 늦게 갱신되거나 모순된 값이 남는다.
  보고서는 수량/rule 기준으로 status와 보충 수량을 다시 계산해서 내보낸다.
- 쿼리는 cutoff와 무관한 현재 상태 snapshot이다. 파일 timestamp는
  가장 최근 Cur-Status Date로 잡고, 같은 분이면 같은 파일을 덮어쓴다.
- 저장에 성공하면 downstream이 고정 경로로 읽을 수 있게 MASTER 파일도 갱신한다.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from utils.logger import get_logger
from utils.par_status import evaluate_par_status
from utils.pipeline_contracts import FileType, QuerySpec, parse_db_datetime
from utils.recordset import AssetAttribute, Recordset
from workers.file_writer import escape_field, write_recordset
from workers.query import load_sql_template

logger = get_logger(__name__)

PAR_ATTRIBUTE_COLUMNS = {
    AssetAttribute.ASSET_STATUS: 0,
    AssetAttribute.CURRENT_QTY: 1,
    AssetAttribute.PAR_RULE_STATUS: 2,
    AssetAttribute.PAR_RULE_QTY: 3,
    AssetAttribute.PAR_RULE_REPL_QTY: 4,
    AssetAttribute.LEVEL: 5,
    AssetAttribute.ZONE_TYPE: 6,
    AssetAttribute.ZONE: 7,
    AssetAttribute.ASSET_CATEGORY: 8,
    AssetAttribute.ASSET_TYPE: 9,
    AssetAttribute.ASSET_MODEL: 10,
    AssetAttribute.ASSET_MODEL_DESCRIPTION: 11,
    AssetAttribute.WORKFLOW_STATUS: 12,
    AssetAttribute.PAR_RULE: 13,
    AssetAttribute.PAR_RULE_DATE: 14,
    AssetAttribute.LAST_CHANGED: 15,
}

PAR_HEADERS = [
    "Cur-Status",
    "Cur-Qty",
    "Cur-Repl Qty",
    "PAR Rule-Status",
    "PAR Rule-Qty",
    "PAR Rule-Repl Qty",
    "Level",
    "Zone-Type",
    "Zone",
    "Asset-Category",
    "Asset-Type",
    "Asset-Model",
    "Asset-Model Descr",
    "Workflow Statuses",
    "PAR Rule-Name",
    "PAR Rule-Date",
    "Cur-Status Date",
]

PAR_COUNT_HEADERS = [
    "Cur-Qty",
    "Level",
    "Zone-Type",
    "Zone",
    "Asset-Category",
    "Asset-Type",
    "Asset-Model",
    "Workflow Statuses",
]

# 그대로 옮겨 적는 텍스트 컬럼 (PAR_HEADERS의 Level 이후 순서)
_PASSTHROUGH_ATTRIBUTES = (
    AssetAttribute.LEVEL,
    AssetAttribute.ZONE_TYPE,
    AssetAttribute.ZONE,
    AssetAttribute.ASSET_CATEGORY,
    AssetAttribute.ASSET_TYPE,
    AssetAttribute.ASSET_MODEL,
    AssetAttribute.ASSET_MODEL_DESCRIPTION,
    AssetAttribute.WORKFLOW_STATUS,
    AssetAttribute.PAR_RULE,
    AssetAttribute.PAR_RULE_DATE,
    AssetAttribute.LAST_CHANGED,
)

_COUNT_ATTRIBUTES = (
    AssetAttribute.CURRENT_QTY,
    AssetAttribute.LEVEL,
    AssetAttribute.ZONE_TYPE,
    AssetAttribute.ZONE,
    AssetAttribute.ASSET_CATEGORY,
    AssetAttribute.ASSET_TYPE,
    AssetAttribute.ASSET_MODEL,
    AssetAttribute.WORKFLOW_STATUS,
)


def _parse_int(text: str) -> int:
    try:
        return int(text.strip())
    except ValueError:
        return 0


@dataclass
class ParReportJob:
    asset_db: str
    ls_db: str
    include_count_sheet: bool = False

    name = "par_report"
    file_prefix = "AssetPARDataFile"
    file_type = FileType.XLSX
    retention_count = 3
    overwrite = True
    sheet_name = "PAR Data"
    count_sheet_name = "PAR Count"
    master_file_name = "MASTER_AssetPARDataFile"

    def build_query(self, cutoff: datetime) -> QuerySpec:
        # snapshot 쿼리: cutoff는 파일 timestamp 기준값으로만 쓰인다.
        sql = load_sql_template(self.name).format(
            asset_db=self.asset_db, ls_db=self.ls_db
        )
        return QuerySpec(sql=sql, params={}, attribute_columns=PAR_ATTRIBUTE_COLUMNS)

    def map_columns(self, recordset: Recordset) -> Recordset:
        """
        PAR snapshot을 보고서 layout으로 바꾼다.

        Rules:
        - 수량 파싱 실패는 0으로 본다.
        - Cur-Status Date가 비어 있으면(rule 없는 count 행) timestamp 추적에서 제외,
          파싱할 수 없으면 기존 값을 유지한다.
        """
        output = Recordset(
            columns=list(PAR_HEADERS),
            last_modified=recordset.last_modified,
            name=self.sheet_name,
        )

        for row in recordset.rows:
            cur_qty = _parse_int(recordset.value(row, AssetAttribute.CURRENT_QTY))
            rule_qty = _parse_int(recordset.value(row, AssetAttribute.PAR_RULE_QTY))
            rule_repl_qty = _parse_int(
                recordset.value(row, AssetAttribute.PAR_RULE_REPL_QTY)
            )
            rule_status = recordset.value(row, AssetAttribute.PAR_RULE_STATUS)

            evaluation = evaluate_par_status(
                cur_qty=cur_qty,
                rule_qty=rule_qty,
                rule_repl_qty=rule_repl_qty,
                rule_status_label=rule_status,
                reported_status=recordset.value(row, AssetAttribute.ASSET_STATUS),
            )

            status_date = recordset.value(row, AssetAttribute.LAST_CHANGED)
            if status_date.strip():
                changed_at = parse_db_datetime(status_date)
                if changed_at is None:
                    logger.debug(f"[PAR] could not parse status date: {status_date!r}")
                elif output.last_modified is None or changed_at > output.last_modified:
                    output.last_modified = changed_at

            fields = [
                escape_field(evaluation.status.value, self.file_type),
                str(cur_qty),
                str(evaluation.replenishment_qty),
                escape_field(rule_status, self.file_type),
                str(rule_qty),
                str(rule_repl_qty),
            ]
            fields.extend(
                escape_field(recordset.value(row, attribute), self.file_type)
                for attribute in _PASSTHROUGH_ATTRIBUTES
            )
            output.add_row(fields)

        if self.include_count_sheet:
            output.supplementary = self.build_count_sheet(recordset)
        return output

    def build_count_sheet(self, recordset: Recordset) -> Recordset:
        """
        level/zone/asset hierarchy별 현재 수량만 담은 보조 sheet.
        """
        sheet = Recordset(
            columns=list(PAR_COUNT_HEADERS),
            last_modified=recordset.last_modified,
            name=self.count_sheet_name,
        )
        for row in recordset.rows:
            sheet.add_row(
                [
                    escape_field(recordset.value(row, attribute), self.file_type)
                    for attribute in _COUNT_ATTRIBUTES
                ]
            )
        return sheet

    def master_path(self, output_dir: Path) -> Path:
        return Path(output_dir) / f"{self.master_file_name}.{self.file_type.value}"

    def after_save(self, output: Recordset, output_dir: Path) -> None:
        """
        방금 저장한 보고서로 MASTER 파일을 덮어쓴다. 실패해도 run 결과는 SAVED로 둔다.
        """
        outcome = write_recordset(
            output, self.master_path(output_dir), self.file_type, overwrite=True
        )
        if not outcome.saved:
            logger.error(f"[PAR] master file update failed: {outcome.error}")
