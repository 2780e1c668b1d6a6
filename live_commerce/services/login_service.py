"""
관리자 로그인 서비스 - JWT 토큰 기반 인증
관리자 인증, 토큰 생성, 관리자 권한 검증 의존성 제공
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from typing_extensions import Annotated

from fastapi import HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import settings
from .database import get_db
from .user_repository import AdminRepository

# 비밀번호 해싱 설정
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

logger = logging.getLogger(__name__)

# 토큰이 없으면 403 대신 401을 직접 내려주기 위해 auto_error=False
security = HTTPBearer(auto_error=False)

ADMIN_ROLE = "admin"


class LoginService:
    """로그인 관련 비즈니스 로직 처리"""

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """비밀번호 검증"""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def get_password_hash(password: str) -> str:
        """비밀번호 해싱"""
        return pwd_context.hash(password)

    @staticmethod
    def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
        """JWT 액세스 토큰 생성"""
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=settings.JWT_EXPIRATION_HOURS))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def verify_token(token: str) -> dict[str, Any] | None:
        """JWT 토큰 검증 (만료/서명 오류 시 None)"""
        try:
            payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
            if payload.get("sub") is None:
                return None
            return payload
        except JWTError:
            return None


def authenticate_admin(db: Session, email: str, password: str) -> dict[str, Any]:
    """관리자 인증 처리"""
    admins = AdminRepository(db)
    admin = admins.find_by_email(email)
    if not admin:
        return {"success": False, "error": "관리자를 찾을 수 없습니다", "admin": None}
    if not admin.get("is_active"):
        return {"success": False, "error": "비활성화된 관리자 계정입니다", "admin": None}
    if not LoginService.verify_password(password, admin["password_hash"]):
        return {"success": False, "error": "비밀번호가 일치하지 않습니다", "admin": None}

    try:
        admins.touch_last_login(admin["id"])
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning(f"마지막 로그인 시각 갱신 실패: {e}")

    return {
        "success": True,
        "admin": {
            "id": admin["id"],
            "email": admin["email"],
            "name": admin.get("name") or admin["email"].split("@")[0],
            "is_master": bool(admin.get("is_master")),
        },
        "message": "인증 성공",
    }


def create_login_response(admin: dict[str, Any]) -> dict[str, Any]:
    """로그인 성공 응답 생성"""
    expires = timedelta(hours=settings.JWT_EXPIRATION_HOURS)
    access_token = LoginService.create_access_token(
        data={"sub": admin["email"], "admin_id": admin["id"], "role": ADMIN_ROLE},
        expires_delta=expires,
    )
    return {
        "success": True,
        "access_token": access_token,
        "token_type": "bearer",
        "expires_in": int(expires.total_seconds()),
        "admin": admin,
        "message": "로그인 성공",
    }


def _resolve_admin(token: str, db: Session) -> dict[str, Any] | None:
    """유효한 관리자 토큰이면 관리자 정보, 아니면 None (토큰 자체가 무효면 401)"""
    payload = LoginService.verify_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="인증 정보를 확인할 수 없습니다",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if payload.get("role") != ADMIN_ROLE:
        return None

    admin = AdminRepository(db).find_by_email(payload["sub"])
    if not admin or not admin.get("is_active"):
        logger.warning(f"관리자 권한 없는 토큰: {payload['sub']}")
        return None
    return {"id": admin["id"], "email": admin["email"], "name": admin.get("name")}


async def require_admin(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> dict[str, Any]:
    """관리자 전용 라우트 의존성 - 토큰 없음/무효 401, 관리자 아님 403"""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="관리자 인증이 필요합니다",
            headers={"WWW-Authenticate": "Bearer"},
        )
    admin = _resolve_admin(credentials.credentials, db)
    if admin is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="관리자 권한이 없습니다")
    return admin


async def get_optional_admin(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> dict[str, Any] | None:
    """토큰이 없으면 None (비회원/고객 요청), 있으면 관리자 검증"""
    if credentials is None:
        return None
    return _resolve_admin(credentials.credentials, db)
