"""
라우터 공통 - 서비스 예외를 HTTP 응답으로 변환
"""

import logging
from typing import Any

from fastapi import HTTPException, status

from ..services.errors import CommerceError, ValidationError

logger = logging.getLogger(__name__)


def http_error(error: CommerceError, status_code: int | None = None) -> HTTPException:
    details: Any = error.errors if isinstance(error, ValidationError) and error.errors else error.context
    return HTTPException(
        status_code=status_code or error.status_code,
        detail={"error": error.message, "details": details},
    )


def server_error(message: str, error: Exception) -> HTTPException:
    logger.error(f"{message}: {error}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": f"{message}: {str(error)}", "details": repr(error)},
    )


def bad_request(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": message, "details": None})
