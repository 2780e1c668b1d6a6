"""
관리자 인증 API 라우터
JWT 토큰 기반 관리자 로그인
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from ..services.database import get_db
from ..services.login_service import authenticate_admin, create_login_response, require_admin

logger = logging.getLogger(__name__)


# 로그인 요청 모델
class LoginRequest(BaseModel):
    email: EmailStr
    password: Annotated[str, Field(min_length=6)]


# 로그인 응답 모델
class LoginResponse(BaseModel):
    success: bool
    access_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None
    admin: dict[str, Any] | None = None
    message: str
    error: str | None = None


router = APIRouter(tags=["authentication"])


@router.post("/login", response_model=LoginResponse)
async def login(
    login_request: LoginRequest,
    db: Annotated[Session, Depends(get_db)]
) -> dict[str, Any]:
    """관리자 로그인 - JWT 토큰 발급"""
    try:
        logger.info(f"관리자 로그인 요청: email={login_request.email}")
        auth_result = authenticate_admin(db, login_request.email, login_request.password)

        if not auth_result["success"]:
            logger.warning(f"로그인 실패: {auth_result['error']} - email={login_request.email}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"error": auth_result["error"], "details": None},
                headers={"WWW-Authenticate": "Bearer"},
            )

        return create_login_response(auth_result["admin"])

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"로그인 처리 중 오류: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": f"로그인 처리 중 오류가 발생했습니다: {str(e)}", "details": None},
        )


@router.get("/me")
async def get_me(admin: Annotated[dict[str, Any], Depends(require_admin)]) -> dict[str, Any]:
    """현재 관리자 정보 (토큰 확인용)"""
    return {"success": True, "admin": admin}
