"""
쿠폰 Repository - coupons / user_coupons
"""

import logging
from typing import Any

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


COUPON_COLUMNS = """
    id::text AS id, code, name, description, discount_type, discount_value, min_purchase_amount,
    max_discount_amount, valid_from, valid_until, usage_limit_per_user, total_usage_limit,
    total_issued_count, total_used_count, is_active, is_welcome_coupon, created_at
"""

USER_COUPON_COLUMNS = """
    id::text AS id, user_id::text AS user_id, coupon_id::text AS coupon_id, is_used, used_at,
    order_id::text AS order_id, discount_amount, issued_at
"""


class CouponRepository(BaseRepository):
    table_name = "coupons"

    def find_by_code(self, code: str) -> dict[str, Any] | None:
        return self._fetch_one(
            f"SELECT {COUPON_COLUMNS} FROM coupons WHERE code = :code",
            {"code": code.strip().upper()},
            operation="find_by_code",
        )

    def find_by_id(self, coupon_id: str) -> dict[str, Any] | None:
        return self._fetch_one(
            f"SELECT {COUPON_COLUMNS} FROM coupons WHERE id = CAST(:coupon_id AS uuid)",
            {"coupon_id": coupon_id},
            operation="find_by_id",
        )

    def create(self, coupon: dict[str, Any]) -> dict[str, Any]:
        created = self._fetch_one(
            f"""
            INSERT INTO coupons
            (code, name, description, discount_type, discount_value, min_purchase_amount,
             max_discount_amount, valid_from, valid_until, usage_limit_per_user, total_usage_limit,
             is_active, is_welcome_coupon, created_by, created_at)
            VALUES
            (:code, :name, :description, :discount_type, :discount_value, :min_purchase_amount,
             :max_discount_amount, :valid_from, :valid_until, :usage_limit_per_user, :total_usage_limit,
             :is_active, :is_welcome_coupon, :created_by, NOW())
            RETURNING {COUPON_COLUMNS}
            """,
            coupon,
            operation="create",
        )
        logger.info(f"[coupons] 쿠폰 생성: {created['code']}")
        return created

    # ----- user_coupons -----

    def find_user_coupons(self, coupon_id: str, user_id: str) -> list[dict[str, Any]]:
        return self._fetch_all(
            f"""
            SELECT {USER_COUPON_COLUMNS}
            FROM user_coupons
            WHERE coupon_id = CAST(:coupon_id AS uuid) AND user_id = CAST(:user_id AS uuid)
            ORDER BY issued_at ASC
            """,
            {"coupon_id": coupon_id, "user_id": user_id},
            operation="find_user_coupons",
        )

    def find_usage_by_order(self, coupon_id: str, order_id: str) -> dict[str, Any] | None:
        """해당 주문에서 이미 사용된 쿠폰 (중복 적용 방지)"""
        return self._fetch_one(
            f"""
            SELECT {USER_COUPON_COLUMNS}
            FROM user_coupons
            WHERE coupon_id = CAST(:coupon_id AS uuid) AND order_id = CAST(:order_id AS uuid)
            """,
            {"coupon_id": coupon_id, "order_id": order_id},
            operation="find_usage_by_order",
        )

    def mark_as_used(self, user_coupon_id: str, order_id: str, discount_amount: int) -> dict[str, Any] | None:
        """미사용 쿠폰만 사용 처리 - 이미 사용된 경우 None"""
        return self._fetch_one(
            f"""
            UPDATE user_coupons
            SET is_used = TRUE, used_at = NOW(), order_id = CAST(:order_id AS uuid),
                discount_amount = :discount_amount
            WHERE id = CAST(:user_coupon_id AS uuid) AND is_used = FALSE
            RETURNING {USER_COUPON_COLUMNS}
            """,
            {"user_coupon_id": user_coupon_id, "order_id": order_id, "discount_amount": discount_amount},
            operation="mark_as_used",
        )

    def increment_used_count(self, coupon_id: str) -> None:
        self._execute(
            "UPDATE coupons SET total_used_count = total_used_count + 1 WHERE id = CAST(:coupon_id AS uuid)",
            {"coupon_id": coupon_id},
            operation="increment_used_count",
        )

    def find_holders(self, coupon_id: str, user_ids: list[str]) -> set[str]:
        """user_ids 중 이미 쿠폰을 보유한 사용자"""
        if not user_ids:
            return set()
        rows = self._fetch_all(
            """
            SELECT DISTINCT user_id::text AS user_id
            FROM user_coupons
            WHERE coupon_id = CAST(:coupon_id AS uuid) AND user_id = ANY(CAST(:user_ids AS uuid[]))
            """,
            {"coupon_id": coupon_id, "user_ids": list(user_ids)},
            operation="find_holders",
        )
        return {row["user_id"] for row in rows}

    def issue_to_user(self, coupon_id: str, user_id: str, issued_by: str | None = None) -> dict[str, Any]:
        return self._fetch_one(
            f"""
            INSERT INTO user_coupons (coupon_id, user_id, is_used, issued_by, issued_at)
            VALUES (CAST(:coupon_id AS uuid), CAST(:user_id AS uuid), FALSE, :issued_by, NOW())
            RETURNING {USER_COUPON_COLUMNS}
            """,
            {"coupon_id": coupon_id, "user_id": user_id, "issued_by": issued_by},
            operation="issue_to_user",
        )

    def increment_issued_count(self, coupon_id: str, count: int = 1) -> None:
        self._execute(
            """
            UPDATE coupons SET total_issued_count = total_issued_count + :count
            WHERE id = CAST(:coupon_id AS uuid)
            """,
            {"coupon_id": coupon_id, "count": count},
            operation="increment_issued_count",
        )
