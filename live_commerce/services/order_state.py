"""
주문 상태 정의 및 상태 전환 규칙

pending → verifying → paid → shipping → delivered 순서로만 진행하며
(건너뛰기는 허용, 역행은 불가), delivered 이전 상태에서는 언제든 cancelled로
전환할 수 있다. cancelled는 종료 상태이다.
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    VERIFYING = "verifying"
    PAID = "paid"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


PROGRESSION = [
    OrderStatus.PENDING,
    OrderStatus.VERIFYING,
    OrderStatus.PAID,
    OrderStatus.SHIPPING,
    OrderStatus.DELIVERED,
]

# 상태별 타임스탬프 컬럼
TIMESTAMP_COLUMNS = {
    OrderStatus.VERIFYING: "verifying_at",
    OrderStatus.PAID: "paid_at",
    OrderStatus.SHIPPING: "shipping_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

# 사용자가 직접 취소할 수 있는 상태
USER_CANCELLABLE = {OrderStatus.PENDING, OrderStatus.VERIFYING}


def parse_status(value: str | OrderStatus | None) -> OrderStatus | None:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).lower())
    except ValueError:
        return None


def can_transition(current: str | OrderStatus, target: str | OrderStatus) -> bool:
    """current → target 전환 가능 여부 (같은 상태 재지정은 허용)"""
    current_status = parse_status(current)
    target_status = parse_status(target)
    if current_status is None or target_status is None:
        return False

    if current_status == OrderStatus.CANCELLED:
        return False
    if target_status == OrderStatus.CANCELLED:
        return current_status != OrderStatus.DELIVERED
    return PROGRESSION.index(target_status) >= PROGRESSION.index(current_status)
