import pytest

from fakes import FakeSession
from live_commerce.services.errors import NotFoundError, ValidationError
from live_commerce.services.product_service import (
    CheckInventoryUseCase,
    CreateProductUseCase,
    GetProductsUseCase,
    GetProductVariantsUseCase,
)


class _FakeProductRepository:
    def __init__(self, products=None, existing_numbers=0, count_error=None):
        self.products = products or {}
        self.existing_numbers = existing_numbers
        self.count_error = count_error
        self.created = None
        self.options = []
        self.values = []
        self.variants = []
        self.find_all_args = None

    def find_all(self, status=None, is_live=None, limit=50, offset=0):
        self.find_all_args = {"status": status, "is_live": is_live, "limit": limit, "offset": offset}
        rows = list(self.products.values())
        return rows[offset:offset + limit], len(rows)

    def find_by_id(self, product_id):
        return self.products.get(product_id)

    def find_variants(self, product_id):
        return [{"id": "v-1", "product_id": product_id, "inventory": 2, "options": {"사이즈": "S"}}]

    def get_inventory(self, product_id, variant_id=None):
        product = self.products.get(product_id)
        return {"inventory": product["inventory"]} if product else None

    def count_product_numbers(self, prefix):
        if self.count_error:
            raise self.count_error
        return self.existing_numbers

    def create_product(self, product):
        self.created = {"id": "p-new", **product}
        return dict(self.created)

    def create_option(self, product_id, name, display_order):
        self.options.append((name, display_order))
        return f"opt-{name}"

    def create_option_value(self, option_id, value, display_order):
        self.values.append((option_id, value, display_order))
        return f"{option_id}:{value}"

    def create_variant(self, product_id, variant, option_value_ids):
        self.variants.append((variant, option_value_ids))
        return f"v-{len(self.variants)}"


def test_get_products_paginates():
    repository = _FakeProductRepository({f"p-{i}": {"id": f"p-{i}"} for i in range(5)})

    result = GetProductsUseCase(FakeSession(), products=repository).execute(is_live=True, page=2, page_size=2)

    assert [product["id"] for product in result["products"]] == ["p-2", "p-3"]
    assert result["pagination"] == {"page": 2, "pageSize": 2, "totalPages": 3, "hasMore": True}
    assert repository.find_all_args == {"status": "active", "is_live": True, "limit": 2, "offset": 2}


@pytest.mark.parametrize("page, page_size", [(0, 50), (1, 0), (1, 101)])
def test_get_products_rejects_bad_pagination(page, page_size):
    with pytest.raises(ValidationError):
        GetProductsUseCase(FakeSession(), products=_FakeProductRepository()).execute(page=page, page_size=page_size)


def test_get_variants_for_missing_product():
    with pytest.raises(NotFoundError):
        GetProductVariantsUseCase(FakeSession(), products=_FakeProductRepository()).execute("missing")


def test_get_variants():
    repository = _FakeProductRepository({"p-1": {"id": "p-1"}})

    variants = GetProductVariantsUseCase(FakeSession(), products=repository).execute("p-1")

    assert variants[0]["options"] == {"사이즈": "S"}


def test_check_inventory():
    repository = _FakeProductRepository({"p-1": {"id": "p-1", "inventory": 3}})
    use_case = CheckInventoryUseCase(FakeSession(), products=repository)

    assert use_case.execute("p-1", 3)["available"] is True
    assert use_case.execute("p-1", 4) == {
        "productId": "p-1",
        "variantId": None,
        "available": False,
        "inventory": 3,
        "requested": 4,
    }
    with pytest.raises(ValidationError):
        use_case.execute("p-1", 0)


def test_create_product_without_options():
    repository = _FakeProductRepository(existing_numbers=4)
    session = FakeSession()

    product = CreateProductUseCase(session, products=repository).execute({"title": " 모자 ", "price": 9000, "inventory": 7})

    assert product["title"] == "모자"
    assert product["inventory"] == 7
    assert product["product_number"].endswith("-0005")
    assert product["variant_count"] == 0
    assert repository.variants == []
    assert session.commits == 1


def test_create_product_builds_variant_for_each_option_combination():
    repository = _FakeProductRepository()

    product = CreateProductUseCase(FakeSession(), products=repository).execute({
        "title": "니트",
        "price": 39000,
        "options": [{"name": "사이즈", "values": ["S", "M"]}, {"name": "색상", "values": ["블랙", "아이보리"]}],
        "variants": [
            {"options": {"사이즈": "S", "색상": "블랙"}, "inventory": 3},
            {"options": {"색상": "아이보리", "사이즈": "M"}, "inventory": 2, "sku": "KNIT-M-IV"},
        ],
    })

    assert product["variant_count"] == 4
    assert repository.created["inventory"] == 5
    assert repository.created["option_count"] == 2
    assert [variant["inventory"] for variant, _ in repository.variants] == [3, 0, 0, 2]
    assert repository.variants[3][0]["sku"] == "KNIT-M-IV"
    assert repository.variants[0][1] == ["opt-사이즈:S", "opt-색상:블랙"]


def test_product_number_falls_back_to_random_suffix():
    repository = _FakeProductRepository(count_error=RuntimeError("timeout"))

    product = CreateProductUseCase(FakeSession(), products=repository).execute({"title": "모자", "price": 9000})

    assert product["product_number"].startswith("P-")
    assert len(product["product_number"]) == len("P-251024-0001")


def test_create_product_validation():
    errors = CreateProductUseCase.validate({"title": "", "price": 0, "inventory": -1, "status": "sold"})

    assert errors == [
        "상품명이 필요합니다",
        "가격은 0보다 커야 합니다",
        "재고는 0 이상의 정수여야 합니다",
        "알 수 없는 상품 상태입니다: sold",
    ]
