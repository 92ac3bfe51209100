"""
SQL Server query executor.

Why this module exists:
- job은 SQL 텍스트와 attribute 매핑만 만들고, 연결/격리수준/timeout/값 직렬화는
  여기서 일괄 처리한다.
- DB 예외는 QueryExecutionError로 감싸서 pipeline이 타입으로 분기하게 한다.
"""

from __future__ import annotations

from datetime import date, datetime, time
from functools import lru_cache
from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from utils.logger import get_logger
from utils.pipeline_contracts import (
    QueryExecutionError,
    QuerySpec,
    format_db_datetime,
)
from utils.recordset import AttributeIndex, Recordset

logger = get_logger(__name__)

SQL_DIR = Path(__file__).resolve().parent / "sql"
READ_ISOLATION_LEVEL = "READ UNCOMMITTED"


@lru_cache(maxsize=None)
def load_sql_template(name: str) -> str:
    """
    `workers/sql/<name>.sql` 템플릿을 읽는다. DB 이름은 `{asset_db}`, `{ls_db}`로 치환된다.
    """
    return (SQL_DIR / f"{name}.sql").read_text(encoding="utf-8")


def build_mssql_url(
    *,
    server: str,
    driver: str,
    username: str = "",
    password: str = "",
    trust_server_certificate: bool = True,
) -> URL:
    query = {"driver": driver}
    if trust_server_certificate:
        query["TrustServerCertificate"] = "yes"
    if not username:
        # 계정이 없으면 서비스 계정(Windows 통합 인증)으로 접속한다.
        query["Trusted_Connection"] = "yes"
    return URL.create(
        "mssql+pyodbc",
        username=username or None,
        password=password or None,
        host=server,
        query=query,
    )


def create_db_engine(url: str | URL, *, query_timeout_seconds: int) -> Engine:
    """
    engine을 만들고 연결마다 query timeout을 건다.

    Called from:
    - scripts.pipeline_worker.run_worker
    """
    engine = create_engine(url, pool_pre_ping=True)

    @event.listens_for(engine, "connect")
    def _apply_query_timeout(dbapi_connection, _connection_record):
        # pyodbc Connection.timeout = statement timeout(초)
        if hasattr(dbapi_connection, "timeout"):
            dbapi_connection.timeout = query_timeout_seconds

    return engine


def bind_datetime(value: datetime) -> datetime:
    """
    bind parameter용으로 millisecond 미만을 버린다(SQL Server datetime 정밀도).
    """
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def render_value(value) -> str:
    """
    DB 값을 출력용 문자열로 바꾼다. NULL은 빈 문자열, datetime은 ms 정밀도.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return format_db_datetime(value)
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


class SqlQueryExecutor:
    """
    QuerySpec을 실행해 문자열 Recordset으로 돌려준다.
    """

    def __init__(self, engine: Engine, *, isolation_level: str = READ_ISOLATION_LEVEL):
        self._engine = engine
        self._isolation_level = isolation_level

    def fetch(self, query: QuerySpec, cutoff: datetime) -> Recordset:
        """
        쿼리를 실행한다. 결과 recordset의 last_modified는 cutoff로 초기화한다.

        Raises:
          - QueryExecutionError: 연결/timeout/SQL 오류, 또는 매핑 컬럼 누락
        """
        logger.debug(f"[Query] cutoff={cutoff} sql={query.sql}")
        try:
            with self._engine.connect().execution_options(
                isolation_level=self._isolation_level
            ) as conn:
                result = conn.execute(text(query.sql), query.params)
                if result.returns_rows:
                    columns = list(result.keys())
                    rows = [[render_value(value) for value in row] for row in result]
                else:
                    # `IF EXISTS(...) SELECT` 조건이 거짓이면 result set이 없다.
                    columns, rows = [], []
        except SQLAlchemyError as e:
            raise QueryExecutionError(str(e)) from e

        recordset = Recordset(columns=columns, rows=rows, last_modified=cutoff)
        if columns:
            try:
                recordset.index = AttributeIndex(query.attribute_columns)
                recordset.index.validate(len(columns))
            except ValueError as e:
                raise QueryExecutionError(
                    f"query result does not match attribute index: {e}"
                ) from e
        return recordset
