"""
상품 Repository - products / product_variants / product_options / 옵션 값
"""

import logging
from typing import Any

from .base_repository import BaseRepository
from .errors import ConcurrentUpdateError

logger = logging.getLogger(__name__)


PRODUCT_COLUMNS = """
    p.id::text AS id, p.product_number, p.title, p.description, p.price, p.compare_price,
    p.thumbnail_url, p.inventory, p.status, p.is_live, p.option_count, p.variant_count,
    p.created_at, p.updated_at
"""


class ProductRepository(BaseRepository):
    table_name = "products"

    def find_all(
        self,
        status: str | None = "active",
        is_live: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        clauses = ["1 = 1"]
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            clauses.append("p.status = :status")
            params["status"] = status
        if is_live is not None:
            clauses.append("p.is_live = :is_live")
            params["is_live"] = is_live
        where = " AND ".join(clauses)

        count_row = self._fetch_one(
            f"SELECT COUNT(*) AS total FROM products p WHERE {where}",
            params,
            operation="count_all",
        )
        products = self._fetch_all(
            f"""
            SELECT {PRODUCT_COLUMNS}
            FROM products p
            WHERE {where}
            ORDER BY p.created_at DESC
            LIMIT :limit OFFSET :offset
            """,
            params,
            operation="find_all",
        )
        return products, int(count_row["total"]) if count_row else 0

    def find_by_id(self, product_id: str) -> dict[str, Any] | None:
        return self._fetch_one(
            f"SELECT {PRODUCT_COLUMNS} FROM products p WHERE p.id = CAST(:product_id AS uuid)",
            {"product_id": product_id},
            operation="find_by_id",
        )

    def find_by_ids(self, product_ids: list[str]) -> list[dict[str, Any]]:
        if not product_ids:
            return []
        return self._fetch_all(
            f"SELECT {PRODUCT_COLUMNS} FROM products p WHERE p.id = ANY(CAST(:product_ids AS uuid[]))",
            {"product_ids": list(product_ids)},
            operation="find_by_ids",
        )

    def find_variants(self, product_id: str) -> list[dict[str, Any]]:
        """상품의 variant 목록 + 각 variant의 옵션 값"""
        variants = self._fetch_all(
            """
            SELECT id::text AS id, product_id::text AS product_id, sku, price_adjustment,
                   inventory, is_active
            FROM product_variants
            WHERE product_id = CAST(:product_id AS uuid)
            ORDER BY created_at ASC
            """,
            {"product_id": product_id},
            operation="find_variants",
        )
        if not variants:
            return []

        option_rows = self._fetch_all(
            """
            SELECT vov.variant_id::text AS variant_id, po.name AS option_name, pov.value AS option_value
            FROM variant_option_values vov
            JOIN product_option_values pov ON pov.id = vov.option_value_id
            JOIN product_options po ON po.id = pov.option_id
            WHERE vov.variant_id = ANY(CAST(:variant_ids AS uuid[]))
            ORDER BY po.display_order ASC, pov.display_order ASC
            """,
            {"variant_ids": [variant["id"] for variant in variants]},
            operation="find_variant_options",
        )
        options_by_variant: dict[str, dict[str, str]] = {}
        for row in option_rows:
            options_by_variant.setdefault(row["variant_id"], {})[row["option_name"]] = row["option_value"]

        for variant in variants:
            variant["options"] = options_by_variant.get(variant["id"], {})
        return variants

    # ----- 재고 -----

    def lock_inventory(self, product_id: str, variant_id: str | None = None) -> dict[str, Any] | None:
        """재고 행 잠금 (SELECT ... FOR UPDATE) 후 현재 재고 반환 - 트랜잭션 종료 시 해제"""
        if variant_id:
            return self._fetch_one(
                """
                SELECT v.id::text AS variant_id, v.product_id::text AS product_id, v.inventory, p.title
                FROM product_variants v
                JOIN products p ON p.id = v.product_id
                WHERE v.id = CAST(:variant_id AS uuid) AND v.product_id = CAST(:product_id AS uuid)
                FOR UPDATE OF v
                """,
                {"product_id": product_id, "variant_id": variant_id},
                operation="lock_variant_inventory",
            )
        return self._fetch_one(
            """
            SELECT id::text AS product_id, inventory, title
            FROM products
            WHERE id = CAST(:product_id AS uuid)
            FOR UPDATE
            """,
            {"product_id": product_id},
            operation="lock_inventory",
        )

    def update_inventory(
        self,
        product_id: str,
        new_quantity: int,
        expected_quantity: int,
        variant_id: str | None = None,
    ) -> None:
        """재고가 expected_quantity일 때만 변경 (아니면 ConcurrentUpdateError)"""
        params = {
            "product_id": product_id,
            "variant_id": variant_id,
            "new_quantity": new_quantity,
            "expected_quantity": expected_quantity,
        }
        if variant_id:
            result = self._execute(
                """
                UPDATE product_variants
                SET inventory = :new_quantity, updated_at = NOW()
                WHERE id = CAST(:variant_id AS uuid) AND inventory = :expected_quantity
                """,
                params,
                operation="update_variant_inventory",
            )
            if result.rowcount == 0:
                raise ConcurrentUpdateError("product_variant", variant_id)
            self.sync_product_inventory(product_id)
            return

        result = self._execute(
            """
            UPDATE products
            SET inventory = :new_quantity, updated_at = NOW()
            WHERE id = CAST(:product_id AS uuid) AND inventory = :expected_quantity
            """,
            params,
            operation="update_inventory",
        )
        if result.rowcount == 0:
            raise ConcurrentUpdateError("product", product_id)

    def sync_product_inventory(self, product_id: str) -> None:
        """variant 재고 합계를 상품 재고로 반영"""
        self._execute(
            """
            UPDATE products
            SET inventory = (
                SELECT COALESCE(SUM(inventory), 0) FROM product_variants
                WHERE product_id = CAST(:product_id AS uuid)
            ),
            updated_at = NOW()
            WHERE id = CAST(:product_id AS uuid)
            """,
            {"product_id": product_id},
            operation="sync_product_inventory",
        )

    def get_inventory(self, product_id: str, variant_id: str | None = None) -> dict[str, Any] | None:
        """잠금 없이 현재 재고 조회"""
        if variant_id:
            return self._fetch_one(
                """
                SELECT id::text AS variant_id, product_id::text AS product_id, inventory
                FROM product_variants
                WHERE id = CAST(:variant_id AS uuid)
                """,
                {"variant_id": variant_id},
                operation="get_variant_inventory",
            )
        return self._fetch_one(
            "SELECT id::text AS product_id, title, inventory FROM products WHERE id = CAST(:product_id AS uuid)",
            {"product_id": product_id},
            operation="get_inventory",
        )

    # ----- 생성 -----

    def create_product(self, product: dict[str, Any]) -> dict[str, Any]:
        return self._fetch_one(
            """
            INSERT INTO products
            (product_number, title, description, price, compare_price, thumbnail_url, inventory,
             status, is_live, option_count, variant_count, created_at, updated_at)
            VALUES
            (:product_number, :title, :description, :price, :compare_price, :thumbnail_url, :inventory,
             :status, :is_live, :option_count, :variant_count, NOW(), NOW())
            RETURNING id::text AS id, product_number, title, price, inventory, status, is_live
            """,
            product,
            operation="create_product",
        )

    def create_option(self, product_id: str, name: str, display_order: int) -> str:
        row = self._fetch_one(
            """
            INSERT INTO product_options (product_id, name, display_order)
            VALUES (CAST(:product_id AS uuid), :name, :display_order)
            RETURNING id::text AS id
            """,
            {"product_id": product_id, "name": name, "display_order": display_order},
            operation="create_option",
        )
        return row["id"]

    def create_option_value(self, option_id: str, value: str, display_order: int) -> str:
        row = self._fetch_one(
            """
            INSERT INTO product_option_values (option_id, value, display_order)
            VALUES (CAST(:option_id AS uuid), :value, :display_order)
            RETURNING id::text AS id
            """,
            {"option_id": option_id, "value": value, "display_order": display_order},
            operation="create_option_value",
        )
        return row["id"]

    def create_variant(self, product_id: str, variant: dict[str, Any], option_value_ids: list[str]) -> str:
        row = self._fetch_one(
            """
            INSERT INTO product_variants
            (product_id, sku, price_adjustment, inventory, is_active, created_at, updated_at)
            VALUES
            (CAST(:product_id AS uuid), :sku, :price_adjustment, :inventory, TRUE, NOW(), NOW())
            RETURNING id::text AS id
            """,
            {
                "product_id": product_id,
                "sku": variant.get("sku"),
                "price_adjustment": variant.get("price_adjustment", 0),
                "inventory": variant.get("inventory", 0),
            },
            operation="create_variant",
        )
        for option_value_id in option_value_ids:
            self._execute(
                """
                INSERT INTO variant_option_values (variant_id, option_value_id)
                VALUES (CAST(:variant_id AS uuid), CAST(:option_value_id AS uuid))
                """,
                {"variant_id": row["id"], "option_value_id": option_value_id},
                operation="link_variant_option",
            )
        return row["id"]

    def count_product_numbers(self, prefix: str) -> int:
        row = self._fetch_one(
            "SELECT COUNT(*) AS count FROM products WHERE product_number LIKE :prefix",
            {"prefix": f"{prefix}%"},
            operation="count_product_numbers",
        )
        return int(row["count"]) if row else 0
