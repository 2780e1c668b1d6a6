"""
Repository 공통 기능 - SQLAlchemy 세션 위의 얇은 데이터 접근 계층

Repository는 commit/rollback을 하지 않는다. 트랜잭션은 호출하는 use case가 관리한다.
"""

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import DatabaseError

logger = logging.getLogger(__name__)


class BaseRepository:
    table_name = ""

    def __init__(self, db: Session):
        self.db = db

    def _execute(self, sql: str, params: dict[str, Any] | None = None, operation: str = "query"):
        try:
            return self.db.execute(text(sql), params or {})
        except SQLAlchemyError as e:
            logger.error(f"[{self.table_name}] {operation} 실패: {e}")
            raise DatabaseError(
                f"데이터베이스 오류 ({self.table_name}.{operation}): {e}",
                table=self.table_name,
                operation=operation,
            ) from e

    def _fetch_all(self, sql: str, params: dict[str, Any] | None = None, operation: str = "select") -> list[dict[str, Any]]:
        result = self._execute(sql, params, operation)
        return [dict(row) for row in result.mappings().all()]

    def _fetch_one(self, sql: str, params: dict[str, Any] | None = None, operation: str = "select") -> dict[str, Any] | None:
        result = self._execute(sql, params, operation)
        row = result.mappings().first()
        return dict(row) if row else None

    @staticmethod
    def _stringify_ids(row: dict[str, Any] | None, *keys: str) -> dict[str, Any] | None:
        """UUID 컬럼을 문자열로 변환"""
        if row is None:
            return None
        for key in keys:
            if row.get(key) is not None:
                row[key] = str(row[key])
        return row
