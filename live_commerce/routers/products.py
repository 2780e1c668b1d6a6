"""
상품 API 라우터
상품 목록, 옵션(variant) 조회, 재고 확인
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..services.database import get_db
from ..services.errors import CommerceError
from ..services.product_service import CheckInventoryUseCase, GetProductVariantsUseCase, GetProductsUseCase
from .common import http_error, server_error


class InventoryCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    variant_id: str | None = Field(default=None, alias="variantId")
    quantity: int = 1


router = APIRouter(tags=["products"])


@router.get("/list")
async def list_products(
    db: Annotated[Session, Depends(get_db)],
    status: str | None = "active",
    is_live: Annotated[bool | None, Query(alias="isLive")] = None,
    page: int = 1,
    page_size: Annotated[int, Query(alias="pageSize")] = 50,
) -> dict[str, Any]:
    """상품 목록 (page ≥ 1, 1 ≤ pageSize ≤ 100)"""
    try:
        result = GetProductsUseCase(db).execute(status=status, is_live=is_live, page=page, page_size=page_size)
        return {"success": True, **result}
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("상품 목록 조회에 실패했습니다", e)


@router.get("/{product_id}/variants")
async def get_product_variants(
    product_id: str,
    db: Annotated[Session, Depends(get_db)]
) -> dict[str, Any]:
    try:
        variants = GetProductVariantsUseCase(db).execute(product_id)
        return {"success": True, "variants": variants}
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("옵션 조회에 실패했습니다", e)


@router.post("/check-inventory")
async def check_inventory(
    request: InventoryCheckRequest,
    db: Annotated[Session, Depends(get_db)]
) -> dict[str, Any]:
    """재고 확인 (잠금/차감 없음)"""
    try:
        result = CheckInventoryUseCase(db).execute(request.product_id, request.quantity, request.variant_id)
        return {"success": True, **result}
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("재고 확인에 실패했습니다", e)
