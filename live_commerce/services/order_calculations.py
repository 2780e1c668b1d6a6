"""
주문 금액 계산 모듈 - 상품 금액, 지역별 배송비, 쿠폰 할인, 최종 결제 금액

금액은 모두 원 단위 정수로 다룬다. 쿠폰 할인은 상품 금액에만 적용되며
배송비는 할인 대상이 아니다.
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import Any

from ..config import settings

logger = logging.getLogger(__name__)


# 도서산간 우편번호 범위 (시작, 끝)
JEJU_POSTAL_CODES = [(63000, 63644)]
ULLEUNG_POSTAL_CODES = [(40200, 40240)]
REMOTE_ISLAND_POSTAL_CODES = [
    (23000, 23999),  # 인천 옹진군
    (53031, 53033),  # 경남 거제시 일부 섬
    (59100, 59166),  # 전남 신안군
    (58800, 58810),  # 전남 진도군 일부 섬
    (59421, 59470),  # 전남 완도군
    (59531, 59563),  # 전남 진도군
    (58760, 58762),  # 전남 해남군 일부 섬
    (53081, 53104),  # 경남 통영시 일부 섬
]

SHIPPING_SURCHARGE = {
    "JEJU": 3000,
    "ULLEUNG": 5000,
    "REMOTE": 5000,
}


def to_amount(value: Any) -> int:
    """DB/요청에서 온 금액(Decimal, float, str, None)을 정수 원 단위로 변환"""
    if value is None or value == "":
        return 0
    try:
        return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_FLOOR))
    except (InvalidOperation, ValueError):
        return 0


def _in_ranges(postal_code: str | None, ranges: list[tuple[int, int]]) -> bool:
    if not postal_code:
        return False
    digits = "".join(ch for ch in str(postal_code) if ch.isdigit())
    if not digits:
        return False
    code = int(digits)
    return any(start <= code <= end for start, end in ranges)


def calculate_shipping_surcharge(postal_code: str | None) -> dict[str, Any]:
    """도서산간 지역 여부 판별 및 추가 배송비"""
    if _in_ranges(postal_code, JEJU_POSTAL_CODES):
        return {"is_remote": True, "region": "제주", "surcharge": SHIPPING_SURCHARGE["JEJU"]}
    if _in_ranges(postal_code, ULLEUNG_POSTAL_CODES):
        return {"is_remote": True, "region": "울릉도/독도", "surcharge": SHIPPING_SURCHARGE["ULLEUNG"]}
    if _in_ranges(postal_code, REMOTE_ISLAND_POSTAL_CODES):
        return {"is_remote": True, "region": "도서산간", "surcharge": SHIPPING_SURCHARGE["REMOTE"]}
    return {"is_remote": False, "region": None, "surcharge": 0}


def calculate_shipping_fee(postal_code: str | None, base_fee: int | None = None) -> int:
    """기본 배송비 + 지역 추가 배송비. 기본 배송비가 0(무료배송)이면 추가 배송비도 면제"""
    base = settings.BASE_SHIPPING_FEE if base_fee is None else base_fee
    if base <= 0:
        return 0
    return base + calculate_shipping_surcharge(postal_code)["surcharge"]


def calculate_item_total(item: dict[str, Any]) -> int:
    quantity = to_amount(item.get("quantity"))
    if item.get("total"):
        return to_amount(item["total"])
    if item.get("price") and quantity:
        return to_amount(item["price"]) * quantity
    if item.get("total_price"):
        return to_amount(item["total_price"])
    if item.get("unit_price") and quantity:
        return to_amount(item["unit_price"]) * quantity
    return 0


def calculate_items_total(items: list[dict[str, Any]] | None) -> int:
    """상품 아이템 총액"""
    if not items:
        return 0
    return sum(calculate_item_total(item) for item in items)


def calculate_coupon_discount(
    items_total: int,
    discount_type: str | None,
    discount_value: Any,
    max_discount_amount: Any = None,
) -> int:
    """쿠폰 할인 금액 - 음수가 되거나 상품 금액을 넘지 않는다"""
    if items_total <= 0 or not discount_type:
        return 0

    value = Decimal(str(discount_value or 0))
    if discount_type == "percentage":
        discount = (Decimal(items_total) * value / Decimal("100")).quantize(Decimal("1"), rounding=ROUND_FLOOR)
        cap = to_amount(max_discount_amount)
        if cap and discount > cap:
            discount = Decimal(cap)
    elif discount_type == "fixed_amount":
        discount = value.quantize(Decimal("1"), rounding=ROUND_FLOOR)
    else:
        logger.warning(f"알 수 없는 할인 유형: {discount_type}")
        return 0

    return int(max(Decimal("0"), min(discount, Decimal(items_total))))


def apply_coupon_discount(items_total: int, coupon: dict[str, Any] | None = None) -> dict[str, Any]:
    """쿠폰 할인 적용 결과 (배송비 제외)"""
    if not coupon or not coupon.get("discount_type") or not coupon.get("discount_value"):
        return {
            "items_total": items_total,
            "discount_amount": 0,
            "items_total_after_discount": items_total,
            "coupon_applied": False,
        }

    discount = calculate_coupon_discount(
        items_total,
        coupon["discount_type"],
        coupon["discount_value"],
        coupon.get("max_discount_amount"),
    )
    return {
        "items_total": items_total,
        "discount_amount": discount,
        "items_total_after_discount": items_total - discount,
        "coupon_applied": True,
        "coupon_code": coupon.get("code"),
    }


def calculate_final_order_amount(
    items: list[dict[str, Any]] | None,
    shipping_fee: int = 0,
    discount_amount: int = 0,
) -> dict[str, Any]:
    """최종 결제 금액 = 상품 금액 + 배송비 - 쿠폰 할인 (할인은 상품 금액까지만)"""
    items_total = calculate_items_total(items)
    discount = max(0, min(to_amount(discount_amount), items_total))
    final_amount = items_total - discount + max(0, shipping_fee)

    return {
        "items_total": items_total,
        "coupon_discount": discount,
        "items_total_after_discount": items_total - discount,
        "shipping_fee": shipping_fee,
        "final_amount": final_amount,
    }


def calculate_group_total(orders: list[dict[str, Any]]) -> int:
    """일괄결제 그룹 합계 - total_amount 합 (None은 0)"""
    return sum(to_amount(order.get("total_amount")) for order in orders)
