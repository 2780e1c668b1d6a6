from datetime import datetime, timedelta, timezone

import pytest

from fakes import (
    FakeCouponApplier,
    FakeCouponRepository,
    FakeOrderRepository,
    FakePaymentGroupRepository,
    FakeProductRepository,
    FakeSession,
    FakeStore,
)
from live_commerce.services.coupon_service import ValidateCouponUseCase
from live_commerce.services.errors import (
    CouponNotAvailableError,
    ForbiddenError,
    InvalidOrderStatusError,
    NotFoundError,
    ValidationError,
)
from live_commerce.services.identity import CustomerRef
from live_commerce.services.order_service import CreateOrderUseCase
from live_commerce.services.order_status_service import (
    SideEffectFailure,
    UpdateOrderStatusUseCase,
    UpdateTrackingUseCase,
)


NOW = datetime(2025, 10, 24, 12, 0, 0)
COUPON_NOW = datetime(2025, 10, 24, 3, 0, tzinfo=timezone.utc)
GROUP_ID = f"GROUP-{int(NOW.timestamp() * 1000)}"
CUSTOMER = CustomerRef.internal("u-1")


def _shipping(detail_address="101호", postal_code="06000", fee=0):
    return {
        "name": "홍길동",
        "phone": "010-1234-5678",
        "address": "서울시 강남구 테헤란로 1",
        "detail_address": detail_address,
        "postal_code": postal_code,
        "shipping_fee": fee,
    }


def _payment(amount, status="pending"):
    return {"method": "bank_transfer", "amount": amount, "status": status, "depositor_name": "홍길동"}


def _use_case(store, orders=None, groups=None, coupons=None):
    session = FakeSession()
    return UpdateOrderStatusUseCase(
        session,
        orders=orders or FakeOrderRepository(store, session),
        groups=groups or FakePaymentGroupRepository(store),
        coupons=coupons or FakeCouponApplier(),
        now=lambda: NOW,
    ), session


class _BrokenAddressCheck(FakeOrderRepository):
    def has_verifying_order_at_address(self, customer, postal_code, detail_address, exclude_ids=None):
        raise RuntimeError("connection lost")


class _BrokenGroupLookup(FakeOrderRepository):
    def find_verifying_with_shipping(self, customer, exclude_ids=None):
        raise RuntimeError("connection lost")


class _BrokenGroupRefresh(FakePaymentGroupRepository):
    def refresh(self, group_id):
        raise RuntimeError("deadlock detected")


def test_order_lifecycle_charges_shipping_on_verifying():
    store = FakeStore()
    store.add_product("p-1", 5)
    session = FakeSession()
    create = CreateOrderUseCase(
        session,
        orders=FakeOrderRepository(store, session),
        products=FakeProductRepository(store, session),
        coupons=FakeCouponApplier(),
    )
    profile = {key: value for key, value in _shipping().items() if key != "shipping_fee"}
    order = create.execute(
        {"items": [{"product_id": "p-1", "title": "원피스", "price": 50000, "quantity": 1}]},
        profile,
        customer=CUSTOMER,
    )
    assert order["order_shipping"]["shipping_fee"] == 0
    assert order["order_payment"]["amount"] == 50000

    use_case, _ = _use_case(store)
    result = use_case.execute([order["id"]], "verifying", customer=CUSTOMER)

    stored = store.orders[order["id"]]
    assert result.to_dict() == {"success": True, "updatedCount": 1, "paymentGroupId": None, "sideEffects": []}
    assert stored["status"] == "verifying"
    assert stored["verifying_at"] is not None
    assert stored["order_shipping"]["shipping_fee"] == 4000
    assert stored["order_payment"]["amount"] == 54000
    assert stored["order_payment"]["status"] == "verifying"
    assert stored["order_payment"]["depositor_name"] == "홍길동"
    assert "shipping:user:u-1:06000:101호" in store.advisory_locks


def test_same_address_verifying_order_waives_shipping_and_joins_group():
    store = FakeStore()
    first = store.add_order(
        CUSTOMER, status="verifying", total_amount=50000,
        shipping=_shipping(fee=4000), payment=_payment(54000, "verifying"),
    )
    second = store.add_order(CUSTOMER, total_amount=30000, shipping=_shipping(), payment=_payment(30000))
    use_case, _ = _use_case(store)

    result = use_case.execute([second], "verifying", customer=CUSTOMER)

    assert store.orders[second]["order_shipping"]["shipping_fee"] == 0
    assert store.orders[second]["order_payment"]["amount"] == 30000
    assert result.payment_group_id == GROUP_ID
    assert store.orders[first]["payment_group_id"] == GROUP_ID
    assert store.orders[first]["order_payment"]["payment_group_id"] == GROUP_ID
    assert store.groups[GROUP_ID] == {
        "id": GROUP_ID,
        "order_count": 2,
        "total_amount": 80000,
        "representative_order_id": first,
    }


def test_existing_group_of_same_address_order_is_reused():
    store = FakeStore()
    store.add_order(
        CUSTOMER, status="verifying", shipping=_shipping(fee=4000),
        payment=_payment(54000, "verifying"), payment_group_id="GROUP-1",
    )
    second = store.add_order(CUSTOMER, total_amount=30000, shipping=_shipping(), payment=_payment(30000))
    use_case, _ = _use_case(store)

    result = use_case.execute([second], "verifying", customer=CUSTOMER)

    assert result.payment_group_id == "GROUP-1"
    assert store.groups["GROUP-1"]["order_count"] == 2


def test_different_detail_address_pays_full_shipping():
    store = FakeStore()
    store.add_order(CUSTOMER, status="verifying", shipping=_shipping(fee=4000), payment=_payment(54000, "verifying"))
    second = store.add_order(CUSTOMER, total_amount=30000, payment=_payment(30000))
    use_case, _ = _use_case(store)

    result = use_case.execute([second], "verifying", {
        "depositorName": "홍길동",
        "shippingData": {
            "shipping_name": "홍길동",
            "shipping_phone": "010-1234-5678",
            "shipping_address": "서울시 강남구 테헤란로 1",
            "shipping_detail_address": "102호 ",
            "shipping_postal_code": "06000",
        },
    }, customer=CUSTOMER)

    stored = store.orders[second]
    assert result.payment_group_id is None
    assert stored["order_shipping"]["detail_address"] == "102호"
    assert stored["order_shipping"]["shipping_fee"] == 4000
    assert stored["order_payment"]["amount"] == 34000


def test_other_customer_at_same_address_does_not_waive_shipping():
    store = FakeStore()
    store.add_order(
        CustomerRef.external("KAKAO", "42"), status="verifying",
        shipping=_shipping(fee=4000), payment=_payment(54000, "verifying"),
    )
    order_id = store.add_order(CUSTOMER, shipping=_shipping(), payment=_payment(50000))
    use_case, _ = _use_case(store)

    use_case.execute([order_id], "verifying", customer=CUSTOMER)

    assert store.orders[order_id]["order_shipping"]["shipping_fee"] == 4000


def test_failed_address_check_charges_base_fee():
    store = FakeStore()
    store.add_order(CUSTOMER, status="verifying", shipping=_shipping(fee=4000), payment=_payment(54000, "verifying"))
    order_id = store.add_order(CUSTOMER, shipping=_shipping(), payment=_payment(50000))
    use_case, session = _use_case(store, orders=_BrokenAddressCheck(store))

    result = use_case.execute([order_id], "verifying", customer=CUSTOMER)

    # 확인 실패 시 무료배송 대신 기본 배송비
    assert result.success is True
    assert store.orders[order_id]["order_shipping"]["shipping_fee"] == 4000
    assert store.orders[order_id]["order_payment"]["amount"] == 54000
    assert session.nested == 2


def test_remote_region_surcharge():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, shipping=_shipping(postal_code="63100"), payment=_payment(50000))
    use_case, _ = _use_case(store)

    use_case.execute([order_id], "verifying", customer=CUSTOMER)

    assert store.orders[order_id]["order_shipping"]["shipping_fee"] == 7000
    assert store.orders[order_id]["order_payment"]["amount"] == 57000


def test_bulk_update_groups_orders_and_charges_one_fee():
    store = FakeStore()
    first = store.add_order(CUSTOMER, total_amount=50000, shipping=_shipping(), payment=_payment(50000))
    second = store.add_order(CUSTOMER, total_amount=60000, shipping=_shipping(), payment=_payment(60000))
    use_case, _ = _use_case(store)

    result = use_case.execute([first, second], "verifying", {
        "depositorName": "홍길동",
        "discountAmount": 3000,
        "shippingData": _shipping(),
    }, trusted=True)

    assert result.updated_count == 2
    assert result.payment_group_id == GROUP_ID
    assert store.orders[first]["discount_amount"] == 3000
    assert store.orders[second]["discount_amount"] == 0
    assert store.orders[first]["order_payment"]["amount"] == 51000
    assert store.orders[second]["order_shipping"]["shipping_fee"] == 0
    assert store.orders[second]["order_payment"]["amount"] == 60000
    for order_id in (first, second):
        assert store.orders[order_id]["payment_group_id"] == GROUP_ID
        assert store.orders[order_id]["order_payment"]["payment_group_id"] == GROUP_ID
        assert store.orders[order_id]["customer_order_number"].startswith("S251024-")
    assert store.groups[GROUP_ID]["total_amount"] == 110000
    assert store.groups[GROUP_ID]["representative_order_id"] == first


def test_coupon_failure_is_reported_as_side_effect():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, shipping=_shipping(), payment=_payment(50000))
    coupons = FakeCouponApplier(error=CouponNotAvailableError("WELCOME", "이미 사용된 쿠폰입니다"))
    use_case, _ = _use_case(store, coupons=coupons)

    result = use_case.execute([order_id], "verifying", {"selectedCoupon": {"code": "WELCOME"}}, customer=CUSTOMER)

    assert store.orders[order_id]["status"] == "verifying"
    assert result.success is True
    assert result.side_effects == [
        SideEffectFailure(order_id, "coupon_usage", "쿠폰을 사용할 수 없습니다: 이미 사용된 쿠폰입니다"),
    ]
    assert result.to_dict()["sideEffects"][0]["effect"] == "coupon_usage"
    # 사용 처리되지 않은 쿠폰은 결제 금액에 반영되지 않는다
    assert store.orders[order_id]["discount_amount"] == 0
    assert store.orders[order_id]["order_payment"]["amount"] == 54000


def test_coupon_applied_to_first_order_only():
    store = FakeStore()
    first = store.add_order(CUSTOMER, total_amount=50000, payment=_payment(50000))
    second = store.add_order(CUSTOMER, total_amount=60000, payment=_payment(60000))
    coupons = FakeCouponApplier()
    use_case, _ = _use_case(store, coupons=coupons)

    result = use_case.execute([first, second], "verifying", {"selectedCoupon": {"code": "WELCOME"}}, customer=CUSTOMER)

    assert coupons.calls == [("WELCOME", "u-1", first, 50000)]
    assert result.side_effects == []
    assert store.orders[first]["discount_amount"] == 3000
    assert store.orders[first]["order_payment"]["amount"] == 47000
    assert store.orders[second]["discount_amount"] == 0
    assert store.orders[second]["order_payment"]["amount"] == 60000


def test_customer_supplied_discount_is_ignored():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, total_amount=50000, shipping=_shipping(), payment=_payment(50000))
    use_case, _ = _use_case(store)

    use_case.execute([order_id], "verifying", {"discountAmount": 50000}, customer=CUSTOMER)

    assert store.orders[order_id]["discount_amount"] == 0
    assert store.orders[order_id]["order_payment"]["amount"] == 54000


def test_discount_saved_at_checkout_is_kept():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, total_amount=50000, shipping=_shipping(), discount_amount=2000)
    use_case, _ = _use_case(store)

    use_case.execute([order_id], "verifying", customer=CUSTOMER)

    assert store.orders[order_id]["order_payment"]["amount"] == 52000


def test_applied_coupon_discount_reaches_payment_amount():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, total_amount=50000, shipping=_shipping(), payment=_payment(50000))
    use_case, _ = _use_case(store, coupons=FakeCouponApplier())

    result = use_case.execute([order_id], "verifying", {"selectedCoupon": {"code": "WELCOME"}}, customer=CUSTOMER)

    assert result.side_effects == []
    assert store.orders[order_id]["discount_amount"] == 3000
    assert store.orders[order_id]["order_payment"]["amount"] == 51000


def test_coupon_checkout_records_one_discount_everywhere():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, total_amount=50000, shipping=_shipping(), payment=_payment(50000))
    coupon_repository = FakeCouponRepository(
        {
            "id": "c-1",
            "code": "TENOFF",
            "discount_type": "percentage",
            "discount_value": 10,
            "min_purchase_amount": 0,
            "max_discount_amount": None,
            "valid_from": COUPON_NOW - timedelta(days=1),
            "valid_until": COUPON_NOW + timedelta(days=1),
            "usage_limit_per_user": 1,
            "total_usage_limit": None,
            "total_used_count": 0,
            "is_active": True,
        },
        [{"id": "uc-1", "user_id": "u-1", "is_used": False}],
    )
    session = FakeSession()
    coupons = ValidateCouponUseCase(session, coupons=coupon_repository, now=lambda: COUPON_NOW)
    use_case, _ = _use_case(store, coupons=coupons)

    use_case.execute([order_id], "verifying", {"selectedCoupon": {"code": "tenoff"}}, customer=CUSTOMER)

    stored = store.orders[order_id]
    charged = 50000 + stored["order_shipping"]["shipping_fee"] - stored["order_payment"]["amount"]
    assert coupon_repository.usages[order_id]["discount_amount"] == 5000
    assert stored["discount_amount"] == 5000
    assert charged == 5000
    assert coupon_repository.used_count == 1


def test_customer_cannot_update_someone_elses_order():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, shipping=_shipping(), payment=_payment(50000))
    use_case, session = _use_case(store)

    with pytest.raises(ForbiddenError):
        use_case.execute([order_id], "verifying", customer=CustomerRef.internal("u-2"))
    with pytest.raises(ForbiddenError):
        use_case.execute([order_id], "verifying")

    assert store.orders[order_id]["status"] == "pending"
    assert session.commits == 0


def test_guest_order_can_be_sent_to_verifying_without_identity():
    store = FakeStore()
    order_id = store.add_order(None, shipping=_shipping(), payment=_payment(50000))
    use_case, _ = _use_case(store)

    result = use_case.execute([order_id], "verifying")

    assert result.updated_count == 1
    assert store.orders[order_id]["order_payment"]["amount"] == 54000


def test_customer_request_limited_to_verifying():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, status="verifying", payment=_payment(54000, "verifying"))
    use_case, _ = _use_case(store)

    with pytest.raises(ForbiddenError):
        use_case.execute([order_id], "paid", customer=CUSTOMER)

    assert store.orders[order_id]["status"] == "verifying"


def test_failed_group_lookup_continues_without_group():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, shipping=_shipping(), payment=_payment(50000))
    use_case, session = _use_case(store, orders=_BrokenGroupLookup(store))

    result = use_case.execute([order_id], "verifying", customer=CUSTOMER)

    assert result.success is True
    assert result.payment_group_id is None
    assert store.orders[order_id]["status"] == "verifying"
    assert store.orders[order_id]["payment_group_id"] is None
    assert store.orders[order_id]["order_payment"]["amount"] == 54000
    assert session.nested == 2


def test_group_refresh_failure_keeps_status_change():
    store = FakeStore()
    first = store.add_order(CUSTOMER, payment=_payment(50000))
    second = store.add_order(CUSTOMER, payment=_payment(50000))
    use_case, _ = _use_case(store, groups=_BrokenGroupRefresh(store))

    result = use_case.execute([first, second], "paid", trusted=True)

    assert store.orders[first]["status"] == "paid"
    assert [failure.effect for failure in result.side_effects] == ["payment_group_refresh"]


def test_invalid_transition_writes_nothing():
    store = FakeStore()
    pending = store.add_order(CUSTOMER, payment=_payment(50000))
    delivered = store.add_order(CUSTOMER, status="delivered", payment=_payment(50000, "delivered"))
    use_case, session = _use_case(store)

    with pytest.raises(InvalidOrderStatusError):
        use_case.execute([pending, delivered], "paid", trusted=True)

    assert store.orders[pending]["status"] == "pending"
    assert session.commits == 0


def test_cancelled_order_cannot_be_reopened():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, status="cancelled")
    use_case, _ = _use_case(store)

    with pytest.raises(InvalidOrderStatusError):
        use_case.execute([order_id], "pending", trusted=True)


def test_unknown_order_and_status_rejected():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER)
    use_case, _ = _use_case(store)

    with pytest.raises(NotFoundError):
        use_case.execute([order_id, "missing"], "paid", trusted=True)
    with pytest.raises(ValidationError):
        use_case.execute([order_id], "refunded")
    with pytest.raises(ValidationError):
        use_case.execute([], "paid")


def test_malformed_shipping_input_rejected():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER)
    use_case, _ = _use_case(store)

    with pytest.raises(ValidationError) as exc_info:
        use_case.execute([order_id], "verifying", {"shippingData": {**_shipping(), "postal_code": "123"}})

    assert exc_info.value.errors == ["우편번호는 5자리 숫자여야 합니다"]
    assert store.orders[order_id]["status"] == "pending"


def test_payment_status_follows_order_status_without_payment_data():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, status="paid", shipping=_shipping(fee=4000), payment=_payment(54000, "paid"))
    use_case, _ = _use_case(store)

    use_case.execute([order_id], "delivered", trusted=True)

    stored = store.orders[order_id]
    assert stored["order_payment"] == {**_payment(54000), "status": "delivered"}
    assert stored["order_shipping"]["shipping_fee"] == 4000
    assert stored["delivered_at"] is not None


def test_update_tracking_moves_order_to_shipping():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, status="paid", shipping=_shipping(fee=4000), payment=_payment(54000, "paid"))
    status_use_case, session = _use_case(store)
    use_case = UpdateTrackingUseCase(session, orders=status_use_case.orders, status_use_case=status_use_case)

    result = use_case.execute(order_id, " 123456789 ", "CJ대한통운")

    stored = store.orders[order_id]
    assert result.updated_count == 1
    assert stored["status"] == "shipping"
    assert stored["order_shipping"]["tracking_number"] == "123456789"
    assert stored["order_shipping"]["tracking_company"] == "CJ대한통운"


def test_update_tracking_rejects_cancelled_order():
    store = FakeStore()
    order_id = store.add_order(CUSTOMER, status="cancelled", shipping=_shipping())
    status_use_case, session = _use_case(store)
    use_case = UpdateTrackingUseCase(session, orders=status_use_case.orders, status_use_case=status_use_case)

    with pytest.raises(InvalidOrderStatusError):
        use_case.execute(order_id, "123456789")
