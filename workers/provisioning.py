"""
Asset provisioning job.

Why this module exists:
- 자산 대장(Agility)에 새로 등록됐거나, CORE에서 tag가 해제됐거나, CORE에서
  재생성된 자산을 CORE import layout + tag 인쇄용 컬럼으로 내보낸다.
- import 방식(New / Modify (Retag) / Modify (Reprovision))마다 watermark에
  반영할 timestamp 원천이 다르다.

Rules:
- New: Agility LastChangeDate
- Modify (Retag): CORE에 자산은 있지만 RFID가 없음 -> CORE ModifiedDate
- Modify (Reprovision): CORE에 자산과 RFID가 모두 있음 -> CORE CreatedDate,
  위치는 CORE의 현재 level/zone을 유지한다.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from utils.logger import get_logger
from utils.pipeline_contracts import FileType, QuerySpec, parse_db_datetime
from utils.recordset import AssetAttribute, Recordset
from utils.rfid import encode_rfid_code
from workers.file_writer import db_column_headers, escape_field
from workers.query import bind_datetime, load_sql_template

logger = get_logger(__name__)

PROVISIONING_ATTRIBUTE_COLUMNS = {
    AssetAttribute.ASSET_CODE: 0,
    AssetAttribute.LAST_CHANGED: 1,
    AssetAttribute.ASSET_CATEGORY: 2,
    AssetAttribute.ASSET_TYPE: 3,
    AssetAttribute.ASSET_MODEL: 4,
    AssetAttribute.ASSET_NAME: 5,
    AssetAttribute.RFID_TAG: 6,
    AssetAttribute.DEPARTMENT: 7,
    AssetAttribute.SERIAL_NUMBER: 8,
    AssetAttribute.SUBLOCATION: 9,
    AssetAttribute.CORE_UID: 10,
    AssetAttribute.CORE_RFID: 11,
    AssetAttribute.CORE_MODIFIED_DATE: 12,
    AssetAttribute.CORE_CREATED_DATE: 13,
    AssetAttribute.CORE_LEVEL: 14,
    AssetAttribute.CORE_ZONE: 15,
}

# CORE bulk import가 요구하는 컬럼 전체. 실제로 소비되는 것은 앞쪽 일부뿐이다.
CORE_IMPORT_HEADERS = [
    "LocationName", "ZoneName", "IsHuman", "OwnershipName", "RFIDTagID",
    "SerialNumber", "UID", "AssetCategoryName", "AssetTypeName", "AssetModelName",
    "IsDynamic", "AssetName", "Barcode", "AssetComment", "Description",
    "PurchasePrice", "PurchaseDate", "ExpiryDate", "MarketValue", "CostPerDay",
    "RevenuePerDay", "IsSold", "IsLeased", "LeasedDate", "LeaseOwnershipName",
    "LeasedStartDate", "LeasedEndDate", "Comments", "Role", "FirstName",
    "LastName", "ContactNumber", "Gender", "Address1", "Address2",
    "City", "State", "Country", "PostCode", "Email",
    "BirthDate", "StaffID", "VisitorID",
]

# tag 인쇄 template binding용 (double underscore)
TAG_LABEL_HEADERS = [
    "__TagLocation",
    "__AssetCategoryTagLabel",
    "__ContactTagLabel",
    "__IDTagLabel",
    "__COREImportMethod",
]

RFID_TOTAL_BITS = 16
SERIAL_SEPARATOR = "-"
ASSET_TYPE_CHARS_IN_NAME = 8
RFID_DESCRIPTION_LABEL = "RFID Tag ID: "

DEFAULT_LOCATION = "LB"
DEFAULT_ZONE = "LBS02 [ICT Storeroom]"
DEFAULT_IS_HUMAN = "No"
DEFAULT_IS_DYNAMIC = "Yes"


class ImportMethod(str, Enum):
    NEW = "New"
    RETAG = "Modify (Retag)"
    REPROVISION = "Modify (Reprovision)"


@dataclass(frozen=True)
class CategoryProfile:
    """
    자산 대장 category별 CORE category, 기본 부서, tag 인쇄 문구.
    """

    core_category: str
    default_department: str
    category_label: str
    contact_label: str
    id_label: str


MTMU_CATEGORY = "MTMU"
FM_CATEGORY = "Facilities Management"

CATEGORY_PROFILES = {
    MTMU_CATEGORY: CategoryProfile(
        core_category="MTMU Equipment",
        default_department="MTMU",
        category_label="Medical Technology Management Unit",
        contact_label="For equipment service call  6456 3242",
        id_label="Tag No.",
    ),
    FM_CATEGORY: CategoryProfile(
        core_category="FM Equipment",
        default_department="Facilities Management",
        category_label="Facilities Management",
        contact_label="For equipment service support contact",
        id_label="Asset Number",
    ),
}


def classify_import_method(core_uid: str, core_rfid: str) -> ImportMethod:
    if not core_uid:
        return ImportMethod.NEW
    if not core_rfid:
        return ImportMethod.RETAG
    return ImportMethod.REPROVISION


def default_asset_name(asset_type: str, uid: str) -> str:
    """
    Example:
    - ("Infusion Pump", "MTM42946") -> "Infusion MTM42946"
    """
    return f"{asset_type[:ASSET_TYPE_CHARS_IN_NAME]} {uid}"


@dataclass
class ProvisioningJob:
    asset_db: str
    ls_db: str
    rfid_prefix: str = ""

    name = "provisioning"
    file_prefix = "AssetProvisioningDataFile"
    file_type = FileType.XLSX
    # 6시간 주기 기준 약 2일치
    retention_count = 8
    overwrite = False
    # 인쇄 template이 sheet 이름으로 binding한다. 바꾸지 말 것.
    sheet_name = "Worksheet1"

    def build_query(self, cutoff: datetime) -> QuerySpec:
        sql = load_sql_template(self.name).format(
            asset_db=self.asset_db, ls_db=self.ls_db
        )
        return QuerySpec(
            sql=sql,
            params={"cutoff": bind_datetime(cutoff)},
            attribute_columns=PROVISIONING_ATTRIBUTE_COLUMNS,
        )

    def map_columns(self, recordset: Recordset) -> Recordset:
        """
        Called from:
        - workers.pipeline.ExtractionPipeline.run

        hierarchy(category/type/model)가 빠진 행, timestamp를 읽을 수 없는 행은
        경고만 남기고 건너뛴다.
        """
        output = Recordset(
            columns=list(CORE_IMPORT_HEADERS)
            + [escape_field(header, self.file_type) for header in TAG_LABEL_HEADERS]
            + db_column_headers(recordset.columns, self.file_type),
            last_modified=recordset.last_modified,
            name=self.sheet_name,
        )

        for row in recordset.rows:
            uid = recordset.value(row, AssetAttribute.ASSET_CODE).strip()
            try:
                fields, changed_at = self._map_row(recordset, row, uid)
            except ValueError as e:
                logger.warning(f"[Provisioning] {uid}: {e}. Skipping row.")
                continue

            if output.last_modified is None or changed_at > output.last_modified:
                output.last_modified = changed_at
            output.add_row(fields)

        return output

    def _map_row(
        self, recordset: Recordset, row: list[str], uid: str
    ) -> tuple[list[str], datetime]:
        def field(attribute: AssetAttribute) -> str:
            return recordset.value(row, attribute).strip()

        def escape(value: str) -> str:
            return escape_field(value, self.file_type)

        category = field(AssetAttribute.ASSET_CATEGORY)
        asset_type = field(AssetAttribute.ASSET_TYPE)
        asset_model = field(AssetAttribute.ASSET_MODEL)
        if not category or not asset_type or not asset_model:
            raise ValueError("category, type, or model is missing")

        method = classify_import_method(
            field(AssetAttribute.CORE_UID), field(AssetAttribute.CORE_RFID)
        )
        timestamp_source = {
            ImportMethod.NEW: AssetAttribute.LAST_CHANGED,
            ImportMethod.RETAG: AssetAttribute.CORE_MODIFIED_DATE,
            ImportMethod.REPROVISION: AssetAttribute.CORE_CREATED_DATE,
        }[method]
        changed_at = parse_db_datetime(recordset.value(row, timestamp_source))
        if changed_at is None:
            raise ValueError(
                f"unparsable {timestamp_source.value} for import method {method.value}"
            )

        level, zone = DEFAULT_LOCATION, DEFAULT_ZONE
        if method == ImportMethod.REPROVISION:
            level = field(AssetAttribute.CORE_LEVEL)
            zone = field(AssetAttribute.CORE_ZONE)

        profile = CATEGORY_PROFILES.get(category)
        department = field(AssetAttribute.DEPARTMENT)
        if not department and profile is not None:
            department = profile.default_department

        rfid_code = encode_rfid_code(uid, self.rfid_prefix, RFID_TOTAL_BITS)

        serial_no = uid
        raw_serial = recordset.value(row, AssetAttribute.SERIAL_NUMBER)
        if raw_serial.rstrip():
            serial_no = f"{uid}{SERIAL_SEPARATOR}{raw_serial}"

        asset_name = field(AssetAttribute.ASSET_NAME) or default_asset_name(
            asset_type, uid
        )

        fields = [
            escape(level),
            escape(zone),
            escape(DEFAULT_IS_HUMAN),
            escape(department),
            rfid_code,
            escape(serial_no),
            escape(uid),
            escape(profile.core_category if profile else ""),
            escape(asset_type),
            escape(asset_model),
            escape(DEFAULT_IS_DYNAMIC),
            escape(asset_name),
            "",
            "",
            f"{RFID_DESCRIPTION_LABEL}{rfid_code}",
        ]
        fields.extend([""] * (len(CORE_IMPORT_HEADERS) - len(fields)))

        if category == MTMU_CATEGORY:
            tag_location = recordset.value(row, AssetAttribute.DEPARTMENT)
        elif category == FM_CATEGORY:
            tag_location = recordset.value(row, AssetAttribute.SUBLOCATION)
        else:
            tag_location = ""
        if profile is None:
            fields.extend(["", "", "", ""])
        else:
            fields.extend(
                [
                    escape(tag_location),
                    escape(profile.category_label),
                    escape(profile.contact_label),
                    escape(profile.id_label),
                ]
            )
        fields.append(escape(method.value))
        fields.extend(escape(value) for value in row)
        return fields, changed_at

