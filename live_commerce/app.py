"""
라이브커머스 쇼핑몰 - FastAPI 애플리케이션
상품/주문/쿠폰 API와 관리자 백오피스 API
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings

# 라우터 임포트
from .routers import admin, auth, coupons, orders, products

# 데이터베이스 서비스 임포트
from .services.database import apply_schema, init_database

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """앱 생명주기 관리 - 시작 및 종료 이벤트"""
    logger.info("라이브커머스 API 서버 시작...")

    try:
        init_database()
        if settings.ENVIRONMENT == "development":
            apply_schema()
        logger.info("데이터베이스 연결 확인 완료")
    except Exception as e:
        logger.error(f"데이터베이스 초기화 실패: {e}")

    yield

    logger.info("라이브커머스 API 서버 종료...")


# FastAPI 앱 생성
app = FastAPI(
    title="라이브커머스 쇼핑몰",
    description="라이브커머스 상품 주문, 일괄결제, 쿠폰, 관리자 백오피스 API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS 설정 (프론트엔드 연결용)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTPException 응답을 {success: false, error, details} 형태로 통일"""
    if isinstance(exc.detail, dict):
        error = exc.detail.get("error")
        details = exc.detail.get("details")
    else:
        error = exc.detail
        details = None
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": error, "details": details},
        headers=getattr(exc, "headers", None),
    )


app.include_router(auth.router, prefix="/api/admin")
app.include_router(admin.router, prefix="/api/admin")
app.include_router(orders.router, prefix="/api/orders")
app.include_router(products.router, prefix="/api/products")
app.include_router(coupons.router, prefix="/api/coupons")


# 간단 헬스체크 엔드포인트 (무인증)
@app.get("/healthz")
async def healthz():
    return {"status": "ok"}
