"""
데이터베이스 연결 서비스 - SQLAlchemy 전용 버전
"""

import logging
from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from ..config import settings

logger = logging.getLogger(__name__)

SCHEMA_FILE = Path(__file__).parent.parent / "data" / "schema.sql"

# SQLAlchemy 엔진 및 세션 설정
engine = create_engine(
    settings.DATABASE_URL,
    echo=False,  # SQL 로그는 필요시에만
    pool_pre_ping=True,
    pool_recycle=3600
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# SQLAlchemy 세션 의존성
def get_db():
    """SQLAlchemy 세션 생성 (FastAPI 의존성)"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


REQUIRED_TABLES = ("products", "orders", "order_items", "order_shipping", "order_payments", "payment_groups", "coupons")


def init_database():
    """데이터베이스 연결 확인 + 필수 테이블 존재 여부 점검"""
    try:
        with engine.connect() as connection:
            version = connection.execute(text("SELECT version()")).scalar()
            logger.info(f"PostgreSQL 버전: {version}")

            existing = set(
                connection.execute(
                    text("SELECT tablename FROM pg_tables WHERE schemaname = current_schema()")
                ).scalars()
            )
        missing = [table for table in REQUIRED_TABLES if table not in existing]
        if missing:
            logger.warning(f"누락된 테이블: {', '.join(missing)} - schema.sql 적용 필요")
        else:
            logger.info("PostgreSQL 데이터베이스 연결 및 스키마 확인 완료")
        return not missing

    except Exception as e:
        logger.error(f"데이터베이스 연결 실패: {e}")
        raise e


def apply_schema():
    """schema.sql 적용 (CREATE TABLE IF NOT EXISTS 기반이라 반복 실행 가능)"""
    sql = SCHEMA_FILE.read_text(encoding="utf-8")
    with engine.begin() as connection:
        connection.exec_driver_sql(sql)
    logger.info(f"스키마 적용 완료: {SCHEMA_FILE.name}")
