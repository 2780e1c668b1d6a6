"""
주문 Repository - orders / order_items / order_shipping / order_payments / payment_groups
"""

import json
import logging
from typing import Any

from .base_repository import BaseRepository
from .identity import CustomerRef
from .order_state import OrderStatus, TIMESTAMP_COLUMNS

logger = logging.getLogger(__name__)


ORDER_COLUMNS = """
    o.id, o.customer_order_number, o.status, o.user_id, o.identity_provider, o.external_id,
    o.order_type, o.payment_group_id, o.total_amount, o.discount_amount,
    o.created_at, o.updated_at, o.verifying_at, o.paid_at, o.shipping_at, o.delivered_at, o.cancelled_at
"""

# update_fields로 변경 가능한 컬럼
UPDATABLE_COLUMNS = {"customer_order_number", "payment_group_id", "discount_amount", "total_amount"}


class OrderRepository(BaseRepository):
    table_name = "orders"

    # ----- 조회 -----

    def find_by_id(self, order_id: str) -> dict[str, Any] | None:
        order = self._fetch_one(
            f"SELECT {ORDER_COLUMNS} FROM orders o WHERE o.id = CAST(:order_id AS uuid)",
            {"order_id": order_id},
            operation="find_by_id",
        )
        if not order:
            return None
        return self._attach_details([order])[0]

    def find_by_ids(self, order_ids: list[str]) -> list[dict[str, Any]]:
        if not order_ids:
            return []
        orders = self._fetch_all(
            f"""
            SELECT {ORDER_COLUMNS}
            FROM orders o
            WHERE o.id = ANY(CAST(:order_ids AS uuid[]))
            ORDER BY o.created_at ASC
            """,
            {"order_ids": list(order_ids)},
            operation="find_by_ids",
        )
        return self._attach_details(orders)

    def find_by_customer(
        self,
        customer: CustomerRef,
        status: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """고객의 취소되지 않은 주문 목록 (최신순)"""
        where, params = customer.sql_filter("o")
        status_clause = ""
        if status:
            status_clause = "AND o.status = :status"
            params["status"] = status
        params.update({"limit": limit, "offset": offset, "cancelled": OrderStatus.CANCELLED.value})

        orders = self._fetch_all(
            f"""
            SELECT {ORDER_COLUMNS}
            FROM orders o
            WHERE {where}
              AND o.status <> :cancelled
              {status_clause}
            ORDER BY o.created_at DESC
            LIMIT :limit OFFSET :offset
            """,
            params,
            operation="find_by_customer",
        )
        return self._attach_details(orders)

    def count_by_status(self, customer: CustomerRef) -> dict[str, int]:
        """상태별 주문 수 (취소 제외) - COUNT 쿼리로 계산"""
        where, params = customer.sql_filter("o")
        params["cancelled"] = OrderStatus.CANCELLED.value
        rows = self._fetch_all(
            f"""
            SELECT o.status, COUNT(*) AS count
            FROM orders o
            WHERE {where} AND o.status <> :cancelled
            GROUP BY o.status
            """,
            params,
            operation="count_by_status",
        )
        return {row["status"]: int(row["count"]) for row in rows}

    def find_verifying_with_shipping(
        self,
        customer: CustomerRef,
        exclude_ids: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """같은 고객의 verifying 주문 + 배송지 (합배/무료배송 판정용)"""
        where, params = customer.sql_filter("o")
        params.update({"verifying": OrderStatus.VERIFYING.value, "exclude_ids": list(exclude_ids or [])})
        return self._fetch_all(
            f"""
            SELECT o.id::text AS id, o.payment_group_id, o.created_at,
                   s.postal_code, s.detail_address
            FROM orders o
            LEFT JOIN order_shipping s ON s.order_id = o.id
            WHERE {where}
              AND o.status = :verifying
              AND NOT (o.id = ANY(CAST(:exclude_ids AS uuid[])))
            ORDER BY o.created_at ASC
            """,
            params,
            operation="find_verifying_with_shipping",
        )

    def has_verifying_orders(self, customer: CustomerRef, exclude_ids: list[str] | None = None) -> bool:
        return bool(self.find_verifying_with_shipping(customer, exclude_ids))

    def has_verifying_order_at_address(
        self,
        customer: CustomerRef,
        postal_code: str,
        detail_address: str,
        exclude_ids: list[str] | None = None,
    ) -> bool:
        """같은 고객의 verifying 주문 중 우편번호 + 상세주소가 모두 같은 주문이 있는지"""
        where, params = customer.sql_filter("o")
        params.update({
            "verifying": OrderStatus.VERIFYING.value,
            "exclude_ids": list(exclude_ids or []),
            "postal_code": postal_code,
            "detail_address": detail_address,
        })
        row = self._fetch_one(
            f"""
            SELECT EXISTS (
                SELECT 1
                FROM orders o
                JOIN order_shipping s ON s.order_id = o.id
                WHERE {where}
                  AND o.status = :verifying
                  AND NOT (o.id = ANY(CAST(:exclude_ids AS uuid[])))
                  AND s.postal_code = :postal_code
                  AND s.detail_address = :detail_address
            ) AS matched
            """,
            params,
            operation="has_verifying_order_at_address",
        )
        return bool(row and row["matched"])

    def lock_shipping_destination(self, customer: CustomerRef, postal_code: str, detail_address: str) -> None:
        """(고객, 우편번호, 상세주소) 단위 트랜잭션 advisory lock - commit/rollback 시 해제"""
        self._execute(
            "SELECT pg_advisory_xact_lock(hashtext(:lock_key))",
            {"lock_key": f"shipping:{customer.key}:{postal_code}:{detail_address}"},
            operation="lock_shipping_destination",
        )

    def find_for_admin(
        self,
        status: str | None = None,
        payment_method: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        clauses = ["1 = 1"]
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            clauses.append("o.status = :status")
            params["status"] = status
        if payment_method:
            clauses.append("p.method = :payment_method")
            params["payment_method"] = payment_method
        where = " AND ".join(clauses)

        count_row = self._fetch_one(
            f"""
            SELECT COUNT(*) AS total
            FROM orders o
            LEFT JOIN order_payments p ON p.order_id = o.id
            WHERE {where}
            """,
            params,
            operation="count_for_admin",
        )
        orders = self._fetch_all(
            f"""
            SELECT {ORDER_COLUMNS}, pr.name AS customer_name, pr.email AS customer_email
            FROM orders o
            LEFT JOIN order_payments p ON p.order_id = o.id
            LEFT JOIN profiles pr
              ON pr.id = o.user_id OR (o.identity_provider = 'KAKAO' AND pr.kakao_id = o.external_id)
            WHERE {where}
            ORDER BY o.created_at DESC
            LIMIT :limit OFFSET :offset
            """,
            params,
            operation="find_for_admin",
        )
        return self._attach_details(orders), int(count_row["total"]) if count_row else 0

    def _attach_details(self, orders: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """order_items / order_shipping / order_payments를 주문별로 붙인다"""
        if not orders:
            return orders

        for order in orders:
            self._stringify_ids(order, "id", "user_id")

        order_ids = [order["id"] for order in orders]
        params = {"order_ids": order_ids}

        items = self._fetch_all(
            """
            SELECT id::text AS id, order_id::text AS order_id, product_id::text AS product_id,
                   variant_id::text AS variant_id, title, thumbnail_url, price, quantity, total,
                   selected_options
            FROM order_items
            WHERE order_id = ANY(CAST(:order_ids AS uuid[]))
            ORDER BY created_at ASC
            """,
            params,
            operation="find_items",
        )
        shippings = self._fetch_all(
            """
            SELECT order_id::text AS order_id, name, phone, address, detail_address, postal_code,
                   shipping_fee, tracking_number, tracking_company, shipped_at
            FROM order_shipping
            WHERE order_id = ANY(CAST(:order_ids AS uuid[]))
            """,
            params,
            operation="find_shipping",
        )
        payments = self._fetch_all(
            """
            SELECT order_id::text AS order_id, method, amount, status, depositor_name, payment_group_id
            FROM order_payments
            WHERE order_id = ANY(CAST(:order_ids AS uuid[]))
            """,
            params,
            operation="find_payments",
        )

        items_by_order: dict[str, list[dict[str, Any]]] = {}
        for item in items:
            items_by_order.setdefault(item["order_id"], []).append(item)
        shipping_by_order = {row["order_id"]: row for row in shippings}
        payment_by_order = {row["order_id"]: row for row in payments}

        for order in orders:
            order["order_items"] = items_by_order.get(order["id"], [])
            order["order_shipping"] = shipping_by_order.get(order["id"])
            order["order_payment"] = payment_by_order.get(order["id"])
        return orders

    # ----- 생성 / 변경 -----

    def create_order(
        self,
        order: dict[str, Any],
        items: list[dict[str, Any]],
        shipping: dict[str, Any],
        payment: dict[str, Any],
    ) -> dict[str, Any]:
        """주문 + 아이템 + 배송 + 결제 행 생성 (commit 하지 않음)"""
        created = self._fetch_one(
            """
            INSERT INTO orders
            (customer_order_number, status, user_id, identity_provider, external_id,
             order_type, total_amount, discount_amount, created_at, updated_at)
            VALUES
            (:customer_order_number, :status, CAST(:user_id AS uuid), :identity_provider, :external_id,
             :order_type, :total_amount, :discount_amount, NOW(), NOW())
            RETURNING id::text AS id, customer_order_number, status, user_id::text AS user_id,
                      identity_provider, external_id, order_type, payment_group_id,
                      total_amount, discount_amount, created_at
            """,
            order,
            operation="create_order",
        )
        order_id = created["id"]

        for item in items:
            self._execute(
                """
                INSERT INTO order_items
                (order_id, product_id, variant_id, title, thumbnail_url, price, quantity, total,
                 selected_options, created_at)
                VALUES
                (CAST(:order_id AS uuid), CAST(:product_id AS uuid), CAST(:variant_id AS uuid), :title,
                 :thumbnail_url, :price, :quantity, :total, CAST(:selected_options AS jsonb), NOW())
                """,
                {
                    "order_id": order_id,
                    "product_id": item.get("product_id"),
                    "variant_id": item.get("variant_id"),
                    "title": item["title"],
                    "thumbnail_url": item.get("thumbnail_url"),
                    "price": item["price"],
                    "quantity": item["quantity"],
                    "total": item["total"],
                    "selected_options": json.dumps(item.get("selected_options") or {}, ensure_ascii=False),
                },
                operation="create_item",
            )

        self.upsert_shipping(order_id, shipping)
        self.upsert_payment(order_id, payment)

        created["order_items"] = items
        created["order_shipping"] = shipping
        created["order_payment"] = payment
        return created

    def update_status(self, order_id: str, status: OrderStatus, fields: dict[str, Any] | None = None) -> None:
        """상태 변경 + 해당 상태 타임스탬프 기록 (+ 부가 컬럼)"""
        params: dict[str, Any] = {"order_id": order_id, "status": status.value}
        assignments = ["status = :status", "updated_at = NOW()"]

        timestamp_column = TIMESTAMP_COLUMNS.get(status)
        if timestamp_column:
            assignments.append(f"{timestamp_column} = NOW()")

        for column, value in (fields or {}).items():
            if column not in UPDATABLE_COLUMNS:
                raise ValueError(f"변경할 수 없는 컬럼입니다: {column}")
            assignments.append(f"{column} = :{column}")
            params[column] = value

        self._execute(
            f"UPDATE orders SET {', '.join(assignments)} WHERE id = CAST(:order_id AS uuid)",
            params,
            operation="update_status",
        )

    def update_fields(self, order_id: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        for column in fields:
            if column not in UPDATABLE_COLUMNS:
                raise ValueError(f"변경할 수 없는 컬럼입니다: {column}")
        assignments = ", ".join(f"{column} = :{column}" for column in fields)
        self._execute(
            f"UPDATE orders SET {assignments}, updated_at = NOW() WHERE id = CAST(:order_id AS uuid)",
            {"order_id": order_id, **fields},
            operation="update_fields",
        )

    def upsert_shipping(self, order_id: str, shipping: dict[str, Any]) -> None:
        """order_id 기준 배송 정보 UPSERT - shipping_fee는 누적하지 않고 덮어쓴다"""
        self._execute(
            """
            INSERT INTO order_shipping
            (order_id, name, phone, address, detail_address, postal_code, shipping_fee, created_at, updated_at)
            VALUES
            (CAST(:order_id AS uuid), :name, :phone, :address, :detail_address, :postal_code, :shipping_fee, NOW(), NOW())
            ON CONFLICT (order_id)
            DO UPDATE SET
                name = EXCLUDED.name,
                phone = EXCLUDED.phone,
                address = EXCLUDED.address,
                detail_address = EXCLUDED.detail_address,
                postal_code = EXCLUDED.postal_code,
                shipping_fee = EXCLUDED.shipping_fee,
                updated_at = NOW()
            """,
            {
                "order_id": order_id,
                "name": shipping.get("name"),
                "phone": shipping.get("phone"),
                "address": shipping.get("address"),
                "detail_address": shipping.get("detail_address") or "",
                "postal_code": shipping.get("postal_code"),
                "shipping_fee": shipping.get("shipping_fee", 0),
            },
            operation="upsert_shipping",
        )

    def upsert_payment(self, order_id: str, payment: dict[str, Any]) -> None:
        """order_id 기준 결제 정보 UPSERT"""
        self._execute(
            """
            INSERT INTO order_payments
            (order_id, method, amount, status, depositor_name, payment_group_id, created_at, updated_at)
            VALUES
            (CAST(:order_id AS uuid), :method, :amount, :status, :depositor_name, :payment_group_id, NOW(), NOW())
            ON CONFLICT (order_id)
            DO UPDATE SET
                method = EXCLUDED.method,
                amount = EXCLUDED.amount,
                status = EXCLUDED.status,
                depositor_name = EXCLUDED.depositor_name,
                payment_group_id = EXCLUDED.payment_group_id,
                updated_at = NOW()
            """,
            {
                "order_id": order_id,
                "method": payment.get("method") or "bank_transfer",
                "amount": payment.get("amount", 0),
                "status": payment.get("status") or OrderStatus.PENDING.value,
                "depositor_name": payment.get("depositor_name"),
                "payment_group_id": payment.get("payment_group_id"),
            },
            operation="upsert_payment",
        )

    def update_payment_status(self, order_id: str, status: OrderStatus) -> None:
        self._execute(
            """
            UPDATE order_payments SET status = :status, updated_at = NOW()
            WHERE order_id = CAST(:order_id AS uuid)
            """,
            {"order_id": order_id, "status": status.value},
            operation="update_payment_status",
        )

    def update_payment_group(self, order_id: str, group_id: str) -> None:
        self._execute(
            """
            UPDATE order_payments SET payment_group_id = :group_id, updated_at = NOW()
            WHERE order_id = CAST(:order_id AS uuid)
            """,
            {"order_id": order_id, "group_id": group_id},
            operation="update_payment_group",
        )

    def update_tracking(self, order_id: str, tracking_number: str, tracking_company: str | None) -> bool:
        result = self._execute(
            """
            UPDATE order_shipping
            SET tracking_number = :tracking_number,
                tracking_company = :tracking_company,
                shipped_at = NOW(),
                updated_at = NOW()
            WHERE order_id = CAST(:order_id AS uuid)
            """,
            {"order_id": order_id, "tracking_number": tracking_number, "tracking_company": tracking_company},
            operation="update_tracking",
        )
        return result.rowcount > 0

    def delete_cancelled(self, order_ids: list[str]) -> list[str]:
        """취소된 주문만 하드 삭제 (아이템/배송/결제 포함). 삭제된 주문 ID 반환"""
        rows = self._fetch_all(
            """
            SELECT id::text AS id FROM orders
            WHERE id = ANY(CAST(:order_ids AS uuid[])) AND status = :cancelled
            """,
            {"order_ids": list(order_ids), "cancelled": OrderStatus.CANCELLED.value},
            operation="find_cancelled",
        )
        deletable = [row["id"] for row in rows]
        if not deletable:
            return []

        params = {"order_ids": deletable}
        for table in ("order_items", "order_shipping", "order_payments"):
            self._execute(
                f"DELETE FROM {table} WHERE order_id = ANY(CAST(:order_ids AS uuid[]))",
                params,
                operation=f"delete_{table}",
            )
        self._execute(
            "DELETE FROM orders WHERE id = ANY(CAST(:order_ids AS uuid[]))",
            params,
            operation="delete_orders",
        )
        return deletable


class PaymentGroupRepository(BaseRepository):
    """일괄결제 그룹 집계 (쓰기 시점에 합계/대표 주문을 저장)"""

    table_name = "payment_groups"

    def refresh(self, group_id: str) -> dict[str, Any] | None:
        """그룹 멤버(취소 제외)로 합계/건수/대표 주문 재계산 후 저장"""
        return self._fetch_one(
            """
            INSERT INTO payment_groups (id, order_count, total_amount, representative_order_id, updated_at)
            SELECT
                :group_id,
                COUNT(*),
                COALESCE(SUM(COALESCE(o.total_amount, 0)), 0),
                (
                    SELECT r.id FROM orders r
                    WHERE r.payment_group_id = :group_id AND r.status <> :cancelled
                    ORDER BY r.created_at ASC, r.id ASC
                    LIMIT 1
                ),
                NOW()
            FROM orders o
            WHERE o.payment_group_id = :group_id AND o.status <> :cancelled
            ON CONFLICT (id)
            DO UPDATE SET
                order_count = EXCLUDED.order_count,
                total_amount = EXCLUDED.total_amount,
                representative_order_id = EXCLUDED.representative_order_id,
                updated_at = NOW()
            RETURNING id, order_count, total_amount, representative_order_id::text AS representative_order_id
            """,
            {"group_id": group_id, "cancelled": OrderStatus.CANCELLED.value},
            operation="refresh",
        )

    def find_by_ids(self, group_ids: list[str]) -> dict[str, dict[str, Any]]:
        if not group_ids:
            return {}
        rows = self._fetch_all(
            """
            SELECT id, order_count, total_amount, representative_order_id::text AS representative_order_id
            FROM payment_groups
            WHERE id = ANY(:group_ids)
            """,
            {"group_ids": list(group_ids)},
            operation="find_by_ids",
        )
        return {row["id"]: row for row in rows}
