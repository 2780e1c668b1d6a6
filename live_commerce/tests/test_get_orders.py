from datetime import datetime

import pytest

from fakes import FakeOrderRepository, FakePaymentGroupRepository, FakeSession, FakeStore
from live_commerce.services.errors import ValidationError
from live_commerce.services.identity import CustomerRef
from live_commerce.services.order_service import (
    DeleteCancelledOrdersUseCase,
    GetOrdersUseCase,
    PendingOrderCheckUseCase,
    annotate_bulk_payment,
)


CUSTOMER = CustomerRef.external("KAKAO", "3141592")


def _order(order_id, total_amount, created_at, group_id="GROUP-1"):
    return {"id": order_id, "total_amount": total_amount, "created_at": created_at, "payment_group_id": group_id}


def test_bulk_payment_info_computed_from_members():
    orders = [
        _order("o-2", 60000, datetime(2025, 10, 2)),
        _order("o-1", 50000, datetime(2025, 10, 1)),
        _order("o-3", 40000, datetime(2025, 10, 3)),
    ]

    annotate_bulk_payment(orders)

    info = {order["id"]: order["bulkPaymentInfo"] for order in orders}
    assert info["o-1"] == {
        "isBulkPayment": True,
        "groupOrderCount": 3,
        "groupTotalAmount": 150000,
        "isRepresentativeOrder": True,
    }
    assert info["o-2"]["isRepresentativeOrder"] is False
    assert info["o-3"]["groupTotalAmount"] == 150000


def test_order_without_group_has_no_bulk_payment_info():
    orders = [_order("o-1", 50000, datetime(2025, 10, 1), group_id=None)]

    annotate_bulk_payment(orders)

    assert orders[0]["bulkPaymentInfo"] is None


def test_stored_group_aggregate_is_preferred():
    # 현재 페이지에는 1건만 보이지만 그룹 전체는 3건
    orders = [_order("o-2", 60000, datetime(2025, 10, 2))]
    stored = {"GROUP-1": {"order_count": 3, "total_amount": 150000, "representative_order_id": "o-1"}}

    annotate_bulk_payment(orders, stored)

    assert orders[0]["bulkPaymentInfo"] == {
        "isBulkPayment": True,
        "groupOrderCount": 3,
        "groupTotalAmount": 150000,
        "isRepresentativeOrder": False,
    }


def _get_orders(store):
    return GetOrdersUseCase(FakeSession(), orders=FakeOrderRepository(store), groups=FakePaymentGroupRepository(store))


def test_get_orders_excludes_cancelled_and_paginates():
    store = FakeStore()
    for _ in range(3):
        store.add_order(CUSTOMER, status="pending")
    store.add_order(CUSTOMER, status="verifying")
    store.add_order(CUSTOMER, status="cancelled")
    store.add_order(CustomerRef.internal("someone-else"), status="pending")

    result = _get_orders(store).execute(CUSTOMER, page=1, page_size=3)

    assert len(result["orders"]) == 3
    assert result["statusCounts"] == {"pending": 3, "verifying": 1}
    assert result["totalCount"] == 4
    assert result["pagination"] == {"page": 1, "pageSize": 3, "totalPages": 2, "hasMore": True}
    # 최신순
    assert result["orders"][0]["status"] == "verifying"


def test_get_orders_filters_by_status():
    store = FakeStore()
    store.add_order(CUSTOMER, status="pending")
    store.add_order(CUSTOMER, status="paid")

    result = _get_orders(store).execute(CUSTOMER, status="paid")

    assert [order["status"] for order in result["orders"]] == ["paid"]
    assert result["totalCount"] == 1
    assert result["pagination"]["hasMore"] is False


def test_get_orders_uses_stored_group_for_bulk_info():
    store = FakeStore()
    first = store.add_order(CUSTOMER, status="verifying", total_amount=50000, payment_group_id="GROUP-9")
    store.add_order(CUSTOMER, status="verifying", total_amount=60000, payment_group_id="GROUP-9")
    store.add_order(CUSTOMER, status="verifying", total_amount=40000, payment_group_id="GROUP-9")
    FakePaymentGroupRepository(store).refresh("GROUP-9")

    result = _get_orders(store).execute(CUSTOMER, page=1, page_size=1)

    # 첫 페이지에는 가장 최근 주문만 있지만 그룹 합계는 전체 기준
    info = result["orders"][0]["bulkPaymentInfo"]
    assert info["groupOrderCount"] == 3
    assert info["groupTotalAmount"] == 150000
    assert info["isRepresentativeOrder"] is False
    assert store.groups["GROUP-9"]["representative_order_id"] == first


@pytest.mark.parametrize("page, page_size", [(0, 10), (1, 0), (1, 101)])
def test_get_orders_rejects_bad_pagination(page, page_size):
    with pytest.raises(ValidationError):
        _get_orders(FakeStore()).execute(CUSTOMER, page=page, page_size=page_size)


def test_get_orders_requires_customer():
    with pytest.raises(ValidationError):
        _get_orders(FakeStore()).execute(None)


def test_pending_check_by_address():
    store = FakeStore()
    existing = store.add_order(
        CUSTOMER, status="verifying", shipping={"postal_code": "06000", "detail_address": "101호"}
    )
    check = PendingOrderCheckUseCase(FakeSession(), orders=FakeOrderRepository(store))

    assert check.has_pending_orders(CUSTOMER)
    assert not check.has_pending_orders(CUSTOMER, exclude_ids=[existing])
    assert check.has_pending_orders_at_address(CUSTOMER, "06000", "101호")
    assert not check.has_pending_orders_at_address(CUSTOMER, "06000", "102호")
    with pytest.raises(ValidationError):
        check.has_pending_orders_at_address(CUSTOMER, "06000", "")


def test_delete_only_cancelled_orders():
    store = FakeStore()
    cancelled = store.add_order(CUSTOMER, status="cancelled", payment_group_id="GROUP-1")
    kept = store.add_order(CUSTOMER, status="verifying", payment_group_id="GROUP-1")
    session = FakeSession()
    use_case = DeleteCancelledOrdersUseCase(
        session, orders=FakeOrderRepository(store), groups=FakePaymentGroupRepository(store)
    )

    result = use_case.execute([cancelled, kept, cancelled])

    assert result == {"success": True, "deletedCount": 1, "deletedIds": [cancelled], "skippedIds": [kept]}
    assert kept in store.orders
    assert store.groups["GROUP-1"]["order_count"] == 1
    assert session.commits == 1
