"""
사용자 Repository - profiles(고객) / admins(관리자)
"""

from typing import Any

from .base_repository import BaseRepository


class UserRepository(BaseRepository):
    table_name = "profiles"

    def find_customers(self, search: str | None = None, limit: int = 50, offset: int = 0) -> tuple[list[dict[str, Any]], int]:
        """고객 목록 + 주문 수/누적 구매액 (취소 제외)"""
        where = "1 = 1"
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if search:
            where = "(p.name ILIKE :search OR p.phone ILIKE :search OR p.email ILIKE :search)"
            params["search"] = f"%{search}%"

        count_row = self._fetch_one(
            f"SELECT COUNT(*) AS total FROM profiles p WHERE {where}",
            params,
            operation="count_customers",
        )
        customers = self._fetch_all(
            f"""
            SELECT p.id::text AS id, p.name, p.nickname, p.email, p.phone, p.address, p.detail_address,
                   p.postal_code, p.kakao_id, p.created_at,
                   COUNT(o.id) AS order_count,
                   COALESCE(SUM(o.total_amount), 0) AS total_spent
            FROM profiles p
            LEFT JOIN orders o
              ON o.status <> 'cancelled'
             AND (o.user_id = p.id OR (o.identity_provider = 'KAKAO' AND o.external_id = p.kakao_id))
            WHERE {where}
            GROUP BY p.id
            ORDER BY p.created_at DESC
            LIMIT :limit OFFSET :offset
            """,
            params,
            operation="find_customers",
        )
        return customers, int(count_row["total"]) if count_row else 0

    def find_all_customer_ids(self) -> list[str]:
        rows = self._fetch_all(
            "SELECT id::text AS id FROM profiles ORDER BY created_at ASC",
            operation="find_all_customer_ids",
        )
        return [row["id"] for row in rows]


class AdminRepository(BaseRepository):
    table_name = "admins"

    def find_by_email(self, email: str) -> dict[str, Any] | None:
        return self._fetch_one(
            """
            SELECT id::text AS id, email, name, password_hash, is_active, is_master
            FROM admins
            WHERE email = :email
            """,
            {"email": email.strip().lower()},
            operation="find_by_email",
        )

    def touch_last_login(self, admin_id: str) -> None:
        self._execute(
            "UPDATE admins SET last_login_at = NOW() WHERE id = CAST(:admin_id AS uuid)",
            {"admin_id": admin_id},
            operation="touch_last_login",
        )
