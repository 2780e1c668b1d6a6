"""
주문 검증 도메인 서비스 - I/O 없는 순수 함수

모든 함수는 {"is_valid": bool, "errors": [...]} 형태로 결과를 반환하고
예외를 던지지 않는다. 에러를 어떻게 노출할지는 호출하는 쪽이 결정한다.
"""

import re
from typing import Any

PHONE_PATTERN = re.compile(r"^[0-9-]+$")
POSTAL_CODE_PATTERN = re.compile(r"^\d{5}$")

BANK_TRANSFER_METHODS = {"transfer", "bank_transfer", "account_transfer"}
VALID_PAYMENT_METHODS = {"card"} | BANK_TRANSFER_METHODS

MAX_NAME_LENGTH = 50


def _pick(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None


def _is_blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def validate_order_data(order_data: dict[str, Any] | None) -> dict[str, Any]:
    """주문 상품 목록 검증"""
    errors: list[str] = []
    items = (order_data or {}).get("items")

    if not items or not isinstance(items, list):
        errors.append("주문 아이템이 필요합니다")
        return {"is_valid": False, "errors": errors}

    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            errors.append(f"{index}번째 상품 정보가 올바르지 않습니다")
            continue

        if _is_blank(item.get("title")):
            errors.append(f"{index}번째 상품의 제목이 필요합니다")

        if not _pick(item, "price", "unit_price", "total_price", "totalPrice"):
            errors.append(f"{index}번째 상품의 가격 정보가 필요합니다")

        quantity = item.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            errors.append(f"{index}번째 상품의 수량은 1개 이상이어야 합니다")

        product_id = item.get("product_id")
        if product_id is not None and not isinstance(product_id, str):
            errors.append(f"{index}번째 상품의 product_id가 올바르지 않습니다")

    total_amount = (order_data or {}).get("totalAmount")
    if total_amount is not None and (not isinstance(total_amount, (int, float)) or total_amount < 0):
        errors.append("총 금액은 0 이상이어야 합니다")

    return {"is_valid": not errors, "errors": errors}


def validate_shipping(shipping: dict[str, Any] | None) -> dict[str, Any]:
    """배송 정보 검증 (이름, 연락처, 주소, 우편번호)"""
    errors: list[str] = []

    if not shipping:
        return {"is_valid": False, "errors": ["배송 정보가 필요합니다"]}

    name = shipping.get("name")
    if _is_blank(name):
        errors.append("받는 사람 이름이 필요합니다")
    elif len(str(name)) > MAX_NAME_LENGTH:
        errors.append(f"받는 사람 이름은 {MAX_NAME_LENGTH}자 이하여야 합니다")

    phone = shipping.get("phone")
    if _is_blank(phone):
        errors.append("연락처가 필요합니다")
    elif not PHONE_PATTERN.match(str(phone)):
        errors.append("연락처는 숫자와 하이픈만 입력 가능합니다")

    if _is_blank(shipping.get("address")):
        errors.append("주소가 필요합니다")

    postal_code = _pick(shipping, "postal_code", "postalCode")
    if postal_code and not POSTAL_CODE_PATTERN.match(str(postal_code)):
        errors.append("우편번호는 5자리 숫자여야 합니다")

    return {"is_valid": not errors, "errors": errors}


def validate_payment(payment: dict[str, Any] | None) -> dict[str, Any]:
    """결제 정보 검증 (결제 수단, 무통장입금 입금자명)"""
    errors: list[str] = []

    if not payment:
        return {"is_valid": False, "errors": ["결제 정보가 필요합니다"]}

    method = _pick(payment, "payment_method", "paymentMethod", "method")
    if method not in VALID_PAYMENT_METHODS:
        errors.append("유효한 결제 방법을 선택해주세요 (card, transfer)")

    depositor_name = _pick(payment, "depositor_name", "depositorName")
    if method in BANK_TRANSFER_METHODS and _is_blank(depositor_name):
        errors.append("무통장입금 시 입금자명이 필요합니다")

    if depositor_name and len(str(depositor_name)) > MAX_NAME_LENGTH:
        errors.append(f"입금자명은 {MAX_NAME_LENGTH}자 이하여야 합니다")

    return {"is_valid": not errors, "errors": errors}


def validate_order(order: dict[str, Any]) -> dict[str, Any]:
    """orderData + shipping + payment 전체 검증 (섹션별 에러 맵 반환)"""
    order_data_result = validate_order_data(order.get("order_data") or order.get("orderData") or order)
    shipping_result = validate_shipping(order.get("shipping"))
    payment_result = validate_payment(order.get("payment"))

    return {
        "is_valid": order_data_result["is_valid"] and shipping_result["is_valid"] and payment_result["is_valid"],
        "errors": {
            "order_data": order_data_result["errors"],
            "shipping": shipping_result["errors"],
            "payment": payment_result["errors"],
        },
    }
