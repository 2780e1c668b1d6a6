from live_commerce.services.order_validator import (
    validate_order,
    validate_order_data,
    validate_payment,
    validate_shipping,
)


def _shipping(**overrides):
    shipping = {
        "name": "홍길동",
        "phone": "010-1234-5678",
        "address": "서울시 강남구 테헤란로 1",
        "detail_address": "101호",
        "postal_code": "06000",
    }
    shipping.update(overrides)
    return shipping


def test_valid_order_data():
    result = validate_order_data({"items": [{"title": "티셔츠", "price": 15000, "quantity": 2, "product_id": "p-1"}]})

    assert result == {"is_valid": True, "errors": []}


def test_order_data_requires_items():
    assert validate_order_data({"items": []})["errors"] == ["주문 아이템이 필요합니다"]
    assert validate_order_data(None)["is_valid"] is False


def test_order_item_errors_are_numbered():
    result = validate_order_data({
        "items": [
            {"title": "티셔츠", "price": 15000, "quantity": 1},
            {"title": " ", "quantity": 0, "product_id": 123},
        ],
    })

    assert result["is_valid"] is False
    assert result["errors"] == [
        "2번째 상품의 제목이 필요합니다",
        "2번째 상품의 가격 정보가 필요합니다",
        "2번째 상품의 수량은 1개 이상이어야 합니다",
        "2번째 상품의 product_id가 올바르지 않습니다",
    ]


def test_item_price_may_come_from_total_price():
    result = validate_order_data({"items": [{"title": "모자", "totalPrice": 9000, "quantity": 1}]})

    assert result["is_valid"] is True


def test_negative_total_amount_rejected():
    result = validate_order_data({"items": [{"title": "모자", "price": 9000, "quantity": 1}], "totalAmount": -1})

    assert result["errors"] == ["총 금액은 0 이상이어야 합니다"]


def test_valid_shipping():
    assert validate_shipping(_shipping())["is_valid"] is True


def test_malformed_phone_rejected():
    result = validate_shipping(_shipping(phone="010 1234 5678"))

    assert result["errors"] == ["연락처는 숫자와 하이픈만 입력 가능합니다"]


def test_malformed_postal_code_rejected():
    assert validate_shipping(_shipping(postal_code="1234"))["errors"] == ["우편번호는 5자리 숫자여야 합니다"]
    assert validate_shipping(_shipping(postal_code="0600a"))["is_valid"] is False


def test_missing_address_and_long_name():
    result = validate_shipping(_shipping(address="", name="가" * 51))

    assert "주소가 필요합니다" in result["errors"]
    assert "받는 사람 이름은 50자 이하여야 합니다" in result["errors"]


def test_empty_shipping():
    assert validate_shipping({})["errors"] == ["배송 정보가 필요합니다"]


def test_bank_transfer_requires_depositor_name():
    result = validate_payment({"payment_method": "bank_transfer", "depositor_name": "  "})

    assert result["errors"] == ["무통장입금 시 입금자명이 필요합니다"]


def test_card_payment_without_depositor_is_valid():
    assert validate_payment({"paymentMethod": "card"})["is_valid"] is True


def test_unknown_payment_method():
    result = validate_payment({"method": "bitcoin"})

    assert result["errors"] == ["유효한 결제 방법을 선택해주세요 (card, transfer)"]


def test_validate_order_groups_errors_by_section():
    result = validate_order({
        "orderData": {"items": [{"title": "모자", "price": 9000, "quantity": 1}]},
        "shipping": _shipping(phone="abc"),
        "payment": {"payment_method": "transfer", "depositor_name": "홍길동"},
    })

    assert result["is_valid"] is False
    assert result["errors"]["order_data"] == []
    assert result["errors"]["shipping"] == ["연락처는 숫자와 하이픈만 입력 가능합니다"]
    assert result["errors"]["payment"] == []
