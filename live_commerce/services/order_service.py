"""
주문 처리 서비스 - 주문 생성(재고 예약), 사용자 취소, 주문 내역 조회(일괄결제 그룹 표시)
"""

import logging
import random
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from .coupon_service import ValidateCouponUseCase
from .errors import (
    CouponNotAvailableError,
    ForbiddenError,
    InvalidOrderStatusError,
    NotFoundError,
    ValidationError,
)
from .identity import CustomerRef
from .inventory import Inventory
from .order_calculations import calculate_group_total, calculate_item_total, to_amount
from .order_repository import OrderRepository, PaymentGroupRepository
from .order_state import OrderStatus, USER_CANCELLABLE, parse_status
from .order_validator import validate_order_data, validate_payment, validate_shipping
from .product_repository import ProductRepository

logger = logging.getLogger(__name__)


MAX_PAGE_SIZE = 100


def generate_order_number(now: datetime | None = None) -> str:
    """고객용 주문번호 (S251024-0427 형식)"""
    now = now or datetime.now()
    return f"S{now:%y%m%d}-{random.randint(0, 9999):04d}"


def _reservation_keys(items: list[dict[str, Any]]) -> list[tuple[tuple[str, str | None], int]]:
    """(product_id, variant_id)별 수량 합계 - 정렬된 순서로 잠가 교착을 피한다"""
    quantities: dict[tuple[str, str | None], int] = {}
    for item in items:
        product_id = item.get("product_id")
        if not product_id:
            continue
        key = (str(product_id), str(item["variant_id"]) if item.get("variant_id") else None)
        quantities[key] = quantities.get(key, 0) + int(item.get("quantity") or 0)
    return sorted(quantities.items(), key=lambda entry: (entry[0][0], entry[0][1] or ""))


def _normalize_item(item: dict[str, Any]) -> dict[str, Any]:
    """주문 시점 상품 스냅샷"""
    quantity = int(item["quantity"])
    total = calculate_item_total(item)
    price = to_amount(item.get("price") or item.get("unit_price")) or (total // quantity if quantity else 0)
    return {
        "product_id": item.get("product_id"),
        "variant_id": item.get("variant_id"),
        "title": item["title"],
        "thumbnail_url": item.get("thumbnail_url") or item.get("thumbnail"),
        "price": price,
        "quantity": quantity,
        "total": total,
        "selected_options": item.get("selected_options") or item.get("selectedOptions") or {},
    }


class CreateOrderUseCase:
    """주문 생성 (상태: 없음 → pending). 배송비는 입금 확인 요청(verifying) 시점에 계산한다."""

    def __init__(
        self,
        db: Session,
        orders: OrderRepository | None = None,
        products: ProductRepository | None = None,
        coupons: ValidateCouponUseCase | None = None,
    ):
        self.db = db
        self.orders = orders or OrderRepository(db)
        self.products = products or ProductRepository(db)
        self.coupons = coupons or ValidateCouponUseCase(db)

    def execute(
        self,
        order_data: dict[str, Any],
        user_profile: dict[str, Any],
        customer: CustomerRef | None = None,
        deposit_name: str | None = None,
        payment_method: str = "bank_transfer",
        coupon_code: str | None = None,
    ) -> dict[str, Any]:
        depositor_name = deposit_name or (user_profile or {}).get("name")
        errors = (
            validate_order_data(order_data)["errors"]
            + validate_shipping(user_profile)["errors"]
            + validate_payment({"payment_method": payment_method, "depositor_name": depositor_name})["errors"]
        )
        if errors:
            raise ValidationError("주문 정보가 올바르지 않습니다", errors=errors)

        items = [_normalize_item(item) for item in order_data["items"]]
        items_total = sum(item["total"] for item in items)
        logger.info(f"주문 생성 시작: customer={customer.key if customer else 'guest'}, items={len(items)}, total={items_total}")

        try:
            self._reserve_inventory(items)

            discount = 0
            if coupon_code:
                discount = self._validate_coupon(coupon_code, customer, items_total)

            identity = customer.columns() if customer else {"user_id": None, "identity_provider": None, "external_id": None}
            order = self.orders.create_order(
                {
                    "customer_order_number": generate_order_number(),
                    "status": OrderStatus.PENDING.value,
                    **identity,
                    "order_type": order_data.get("orderType") or order_data.get("order_type") or "direct",
                    "total_amount": items_total,
                    "discount_amount": discount,
                },
                items,
                {
                    "name": user_profile["name"],
                    "phone": user_profile["phone"],
                    "address": user_profile["address"],
                    "detail_address": user_profile.get("detail_address") or user_profile.get("detailAddress") or "",
                    "postal_code": user_profile.get("postal_code") or user_profile.get("postalCode"),
                    "shipping_fee": 0,
                },
                {
                    "method": payment_method,
                    "amount": items_total - discount,
                    "status": OrderStatus.PENDING.value,
                    "depositor_name": depositor_name,
                },
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"주문 생성 중 오류: {e}")
            raise

        logger.info(f"주문 생성 완료: order_id={order['id']}, number={order['customer_order_number']}")
        return order

    def _reserve_inventory(self, items: list[dict[str, Any]]) -> None:
        titles = {(item.get("product_id"), item.get("variant_id")): item["title"] for item in items}
        for (product_id, variant_id), quantity in _reservation_keys(items):
            row = self.products.lock_inventory(product_id, variant_id)
            if not row:
                raise NotFoundError("상품", variant_id or product_id)

            current = Inventory(int(row["inventory"] or 0))
            reserved = current.reserve(
                quantity,
                product_id=product_id,
                title=row.get("title") or titles.get((product_id, variant_id)),
            )
            self.products.update_inventory(product_id, int(reserved), int(current), variant_id)
            logger.info(f"재고 예약: product_id={product_id}, variant_id={variant_id}, {current} → {reserved}")

    def _validate_coupon(self, coupon_code: str, customer: CustomerRef | None, items_total: int) -> int:
        if customer is None or customer.is_external:
            raise CouponNotAvailableError(coupon_code, "회원만 쿠폰을 사용할 수 있습니다")
        result = self.coupons.validate(coupon_code, customer.user_id, items_total)
        if not result["valid"]:
            raise CouponNotAvailableError(coupon_code, result["error"])
        return result["discount"]


class CancelOrderUseCase:
    """사용자 주문 취소 - pending/verifying 상태만, 재고 복원"""

    def __init__(
        self,
        db: Session,
        orders: OrderRepository | None = None,
        products: ProductRepository | None = None,
        groups: PaymentGroupRepository | None = None,
    ):
        self.db = db
        self.orders = orders or OrderRepository(db)
        self.products = products or ProductRepository(db)
        self.groups = groups or PaymentGroupRepository(db)

    def execute(self, order_id: str, customer: CustomerRef | None) -> dict[str, Any]:
        order = self.orders.find_by_id(order_id)
        if not order:
            raise NotFoundError("주문", order_id)
        if customer is None or not customer.owns(order):
            raise ForbiddenError("본인의 주문만 취소할 수 있습니다", order_id=order_id)

        current = parse_status(order["status"])
        if current not in USER_CANCELLABLE:
            raise InvalidOrderStatusError(order_id, order["status"], OrderStatus.CANCELLED.value)

        try:
            for (product_id, variant_id), quantity in _reservation_keys(order.get("order_items") or []):
                row = self.products.lock_inventory(product_id, variant_id)
                if not row:
                    logger.warning(f"재고 복원 대상 상품 없음: product_id={product_id}, variant_id={variant_id}")
                    continue
                inventory = Inventory(int(row["inventory"] or 0))
                self.products.update_inventory(product_id, int(inventory.release(quantity)), int(inventory), variant_id)

            self.orders.update_status(order_id, OrderStatus.CANCELLED)
            self.orders.update_payment_status(order_id, OrderStatus.CANCELLED)
            if order.get("payment_group_id"):
                self.groups.refresh(order["payment_group_id"])
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"주문 취소 중 오류: {e}")
            raise

        logger.info(f"주문 취소 완료: order_id={order_id}")
        return self.orders.find_by_id(order_id)


def annotate_bulk_payment(
    orders: list[dict[str, Any]],
    stored_groups: dict[str, dict[str, Any]] | None = None,
) -> list[dict[str, Any]]:
    """
    일괄결제 그룹 정보(bulkPaymentInfo) 추가

    저장된 payment_groups 집계가 있으면 그것을 쓰고, 없으면 조회된 멤버로 계산한다.
    그룹이 없는 주문은 bulkPaymentInfo = None.
    """
    stored_groups = stored_groups or {}
    members: dict[str, list[dict[str, Any]]] = {}
    for order in orders:
        if order.get("payment_group_id"):
            members.setdefault(order["payment_group_id"], []).append(order)

    summaries: dict[str, dict[str, Any]] = {}
    for group_id, group_orders in members.items():
        stored = stored_groups.get(group_id)
        if stored:
            summaries[group_id] = {
                "count": int(stored["order_count"]),
                "total": to_amount(stored["total_amount"]),
                "representative": str(stored["representative_order_id"]) if stored.get("representative_order_id") else None,
            }
        else:
            earliest = min(group_orders, key=lambda order: (order["created_at"], str(order["id"])))
            summaries[group_id] = {
                "count": len(group_orders),
                "total": calculate_group_total(group_orders),
                "representative": str(earliest["id"]),
            }

    for order in orders:
        summary = summaries.get(order.get("payment_group_id"))
        if summary is None:
            order["bulkPaymentInfo"] = None
            continue
        order["bulkPaymentInfo"] = {
            "isBulkPayment": True,
            "groupOrderCount": summary["count"],
            "groupTotalAmount": summary["total"],
            "isRepresentativeOrder": str(order["id"]) == summary["representative"],
        }
    return orders


class GetOrdersUseCase:
    """고객 주문 내역 조회 (취소 제외, 페이지네이션, 상태별 건수)"""

    def __init__(
        self,
        db: Session,
        orders: OrderRepository | None = None,
        groups: PaymentGroupRepository | None = None,
    ):
        self.db = db
        self.orders = orders or OrderRepository(db)
        self.groups = groups or PaymentGroupRepository(db)

    def execute(
        self,
        customer: CustomerRef | None,
        page: int = 1,
        page_size: int = 10,
        status: str | None = None,
    ) -> dict[str, Any]:
        if customer is None:
            raise ValidationError("사용자 정보가 필요합니다")
        if page < 1:
            raise ValidationError("page는 1 이상이어야 합니다")
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise ValidationError(f"pageSize는 1~{MAX_PAGE_SIZE} 사이여야 합니다")
        if status and parse_status(status) is None:
            raise ValidationError(f"알 수 없는 주문 상태입니다: {status}")

        offset = (page - 1) * page_size
        orders = self.orders.find_by_customer(customer, status=status, limit=page_size, offset=offset)
        status_counts = self.orders.count_by_status(customer)
        total_count = status_counts.get(status, 0) if status else sum(status_counts.values())

        group_ids = sorted({order["payment_group_id"] for order in orders if order.get("payment_group_id")})
        stored_groups = self.groups.find_by_ids(group_ids)
        annotate_bulk_payment(orders, stored_groups)

        total_pages = (total_count + page_size - 1) // page_size
        logger.info(f"주문 내역 조회: customer={customer.key}, page={page}, 조회 {len(orders)}건 / 전체 {total_count}건")
        return {
            "orders": orders,
            "statusCounts": status_counts,
            "totalCount": total_count,
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "totalPages": total_pages,
                "hasMore": page < total_pages,
            },
        }


class PendingOrderCheckUseCase:
    """verifying 주문 존재 여부 (체크아웃 화면의 합배/무료배송 안내용)"""

    def __init__(self, db: Session, orders: OrderRepository | None = None):
        self.db = db
        self.orders = orders or OrderRepository(db)

    def has_pending_orders(self, customer: CustomerRef, exclude_ids: list[str] | None = None) -> bool:
        return self.orders.has_verifying_orders(customer, exclude_ids)

    def has_pending_orders_at_address(
        self,
        customer: CustomerRef,
        postal_code: str,
        detail_address: str,
        exclude_ids: list[str] | None = None,
    ) -> bool:
        if not postal_code or not detail_address:
            raise ValidationError("postal_code와 detail_address가 필요합니다")
        return self.orders.has_verifying_order_at_address(customer, postal_code, detail_address, exclude_ids)


class DeleteCancelledOrdersUseCase:
    """관리자 전용 하드 삭제 - 취소된 주문만, 아이템/배송/결제 포함"""

    def __init__(
        self,
        db: Session,
        orders: OrderRepository | None = None,
        groups: PaymentGroupRepository | None = None,
    ):
        self.db = db
        self.orders = orders or OrderRepository(db)
        self.groups = groups or PaymentGroupRepository(db)

    def execute(self, order_ids: list[str]) -> dict[str, Any]:
        if not order_ids:
            raise ValidationError("삭제할 주문 ID가 필요합니다")
        order_ids = list(dict.fromkeys(str(order_id) for order_id in order_ids))

        try:
            group_ids = {
                order["payment_group_id"]
                for order in self.orders.find_by_ids(order_ids)
                if order.get("payment_group_id")
            }
            deleted = self.orders.delete_cancelled(order_ids)
            for group_id in sorted(group_ids):
                self.groups.refresh(group_id)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"주문 삭제 중 오류: {e}")
            raise

        skipped = [order_id for order_id in order_ids if order_id not in deleted]
        if skipped:
            logger.warning(f"취소 상태가 아니거나 없는 주문은 삭제하지 않음: {skipped}")
        logger.info(f"취소 주문 삭제 완료: {len(deleted)}건")
        return {"success": True, "deletedCount": len(deleted), "deletedIds": deleted, "skippedIds": skipped}
