"""
도메인/인프라 예외 정의

Use case는 예외를 던지고, 라우터가 경계에서 잡아 HTTP 상태 코드로 변환한다.
"""

from datetime import datetime
from typing import Any


class CommerceError(Exception):
    """모든 커스텀 예외의 기본 클래스"""

    status_code = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context
        self.timestamp = datetime.now().isoformat()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp,
        }


class ValidationError(CommerceError):
    """입력값 검증 실패"""

    status_code = 400

    def __init__(self, message: str, errors: list[str] | None = None, **context: Any):
        super().__init__(message, errors=errors or [], **context)
        self.errors = errors or []


class UnauthorizedError(CommerceError):
    status_code = 401


class ForbiddenError(CommerceError):
    status_code = 403


class NotFoundError(CommerceError):
    status_code = 404

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(f"{resource}를 찾을 수 없습니다: {resource_id}", resource=resource, id=resource_id)


class InvalidOrderStatusError(CommerceError):
    """허용되지 않는 주문 상태 전환"""

    status_code = 409

    def __init__(self, order_id: str, current_status: str, requested_status: str):
        super().__init__(
            f"{current_status} 상태에서 {requested_status}(으)로 변경할 수 없습니다",
            order_id=order_id,
            current_status=current_status,
            requested_status=requested_status,
        )


class InsufficientInventoryError(CommerceError):
    status_code = 409

    def __init__(self, requested: int, available: int, product_id: str | None = None, title: str | None = None):
        label = title or product_id or "상품"
        super().__init__(
            f"재고 부족: {label} (현재 {available}개, 요청 {requested}개)",
            product_id=product_id,
            title=title,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class ConcurrentUpdateError(CommerceError):
    """조건부 업데이트가 다른 요청에 밀려 적용되지 않음"""

    status_code = 409

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"동시 업데이트 충돌: {resource} {resource_id} - 잠시 후 다시 시도해주세요",
            resource=resource,
            id=resource_id,
        )


class CouponNotAvailableError(CommerceError):
    status_code = 400

    def __init__(self, code: str, reason: str):
        super().__init__(f"쿠폰을 사용할 수 없습니다: {reason}", code=code, reason=reason)
        self.reason = reason


class DatabaseError(CommerceError):
    """SQLAlchemy 예외 래핑 (테이블/작업 정보 포함)"""

    status_code = 500
