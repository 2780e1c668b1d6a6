"""
상품 서비스 - 목록/옵션 조회, 재고 확인, 관리자 상품 등록
"""

import logging
import random
from datetime import datetime
from itertools import product as cartesian
from typing import Any

from sqlalchemy.orm import Session

from .errors import NotFoundError, ValidationError
from .inventory import Inventory
from .order_calculations import to_amount
from .product_repository import ProductRepository

logger = logging.getLogger(__name__)


MAX_PAGE_SIZE = 100
PRODUCT_STATUSES = {"active", "draft", "inactive", "deleted"}


class GetProductsUseCase:
    def __init__(self, db: Session, products: ProductRepository | None = None):
        self.db = db
        self.products = products or ProductRepository(db)

    def execute(
        self,
        status: str | None = "active",
        is_live: bool | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> dict[str, Any]:
        if page < 1:
            raise ValidationError("page는 1 이상이어야 합니다")
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise ValidationError(f"pageSize는 1~{MAX_PAGE_SIZE} 사이여야 합니다")

        products, total_count = self.products.find_all(
            status=status,
            is_live=is_live,
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        total_pages = (total_count + page_size - 1) // page_size
        return {
            "products": products,
            "totalCount": total_count,
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "totalPages": total_pages,
                "hasMore": page < total_pages,
            },
        }


class GetProductVariantsUseCase:
    def __init__(self, db: Session, products: ProductRepository | None = None):
        self.db = db
        self.products = products or ProductRepository(db)

    def execute(self, product_id: str) -> list[dict[str, Any]]:
        if not self.products.find_by_id(product_id):
            raise NotFoundError("상품", product_id)
        return self.products.find_variants(product_id)


class CheckInventoryUseCase:
    """장바구니/결제 전 재고 확인 (잠금 없음)"""

    def __init__(self, db: Session, products: ProductRepository | None = None):
        self.db = db
        self.products = products or ProductRepository(db)

    def execute(self, product_id: str, quantity: int, variant_id: str | None = None) -> dict[str, Any]:
        if quantity < 1:
            raise ValidationError("수량은 1개 이상이어야 합니다")
        row = self.products.get_inventory(product_id, variant_id)
        if not row:
            raise NotFoundError("상품", variant_id or product_id)

        inventory = Inventory(int(row["inventory"] or 0))
        return {
            "productId": product_id,
            "variantId": variant_id,
            "available": inventory.check_availability(quantity),
            "inventory": int(inventory),
            "requested": quantity,
        }


class CreateProductUseCase:
    """
    관리자 상품 등록

    옵션이 있으면 옵션 값의 모든 조합으로 variant를 만들고 상품 재고는 variant 재고 합계가 된다.
    data 예시:
        {
            "title": "니트", "price": 39000, "inventory": 10,
            "options": [{"name": "사이즈", "values": ["S", "M"]}],
            "variants": [{"options": {"사이즈": "S"}, "inventory": 3}, ...]
        }
    """

    def __init__(self, db: Session, products: ProductRepository | None = None):
        self.db = db
        self.products = products or ProductRepository(db)

    @staticmethod
    def validate(data: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        if not data.get("title") or not str(data["title"]).strip():
            errors.append("상품명이 필요합니다")
        if to_amount(data.get("price")) <= 0:
            errors.append("가격은 0보다 커야 합니다")
        inventory = data.get("inventory", 0)
        if not isinstance(inventory, int) or isinstance(inventory, bool) or inventory < 0:
            errors.append("재고는 0 이상의 정수여야 합니다")
        if data.get("status") and data["status"] not in PRODUCT_STATUSES:
            errors.append(f"알 수 없는 상품 상태입니다: {data['status']}")

        for option in data.get("options") or []:
            if not option.get("name") or not option.get("values"):
                errors.append("옵션 이름과 옵션 값이 필요합니다")
        for variant in data.get("variants") or []:
            quantity = variant.get("inventory", 0)
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
                errors.append("옵션 재고는 0 이상의 정수여야 합니다")
        return errors

    def _generate_product_number(self) -> str:
        prefix = f"P-{datetime.now():%y%m%d}-"
        try:
            next_number = self.products.count_product_numbers(prefix) + 1
            return f"{prefix}{next_number:04d}"
        except Exception as e:
            logger.error(f"상품번호 생성 중 오류: {e}")
            return f"{prefix}{random.randint(0, 9999):04d}"

    def execute(self, data: dict[str, Any]) -> dict[str, Any]:
        errors = self.validate(data)
        if errors:
            raise ValidationError("상품 정보가 올바르지 않습니다", errors=errors)

        options = data.get("options") or []
        variant_inputs = {
            tuple(sorted((variant.get("options") or {}).items())): variant
            for variant in data.get("variants") or []
        }

        # 옵션 조합별 variant 재고
        combinations: list[dict[str, str]] = []
        if options:
            names = [option["name"] for option in options]
            for values in cartesian(*[option["values"] for option in options]):
                combinations.append(dict(zip(names, values)))
        variant_inventory = [
            int(variant_inputs.get(tuple(sorted(combination.items())), {}).get("inventory", 0))
            for combination in combinations
        ]
        total_inventory = sum(variant_inventory) if combinations else data.get("inventory", 0)

        try:
            product = self.products.create_product({
                "product_number": self._generate_product_number(),
                "title": str(data["title"]).strip(),
                "description": data.get("description"),
                "price": to_amount(data["price"]),
                "compare_price": to_amount(data["compare_price"]) if data.get("compare_price") else None,
                "thumbnail_url": data.get("thumbnail_url"),
                "inventory": total_inventory,
                "status": data.get("status") or "active",
                "is_live": bool(data.get("is_live")),
                "option_count": len(options),
                "variant_count": len(combinations),
            })

            value_ids: dict[tuple[str, str], str] = {}
            for option_order, option in enumerate(options):
                option_id = self.products.create_option(product["id"], option["name"], option_order)
                for value_order, value in enumerate(option["values"]):
                    value_ids[(option["name"], value)] = self.products.create_option_value(option_id, value, value_order)

            for combination, quantity in zip(combinations, variant_inventory):
                requested = variant_inputs.get(tuple(sorted(combination.items())), {})
                sku = requested.get("sku") or "-".join([product["product_number"], *combination.values()])
                self.products.create_variant(
                    product["id"],
                    {"sku": sku, "inventory": quantity, "price_adjustment": to_amount(requested.get("price_adjustment"))},
                    [value_ids[(name, value)] for name, value in combination.items()],
                )

            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"상품 등록 실패: {e}")
            raise

        logger.info(f"상품 등록 완료: {product['product_number']} {product['title']} (variant {len(combinations)}개, 재고 {total_inventory})")
        product["variant_count"] = len(combinations)
        return product
