"""
쿠폰 API 라우터
쿠폰 검증 (비즈니스 규칙 실패는 200 + valid: false), 쿠폰 사용 처리
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..services.coupon_service import ValidateCouponUseCase
from ..services.database import get_db
from ..services.errors import CommerceError
from .common import server_error

logger = logging.getLogger(__name__)


class ValidateCouponRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(alias="couponCode")
    user_id: str | None = Field(default=None, alias="userId")
    order_amount: int = Field(default=0, alias="orderAmount")


class ApplyCouponRequest(ValidateCouponRequest):
    order_id: str = Field(alias="orderId")


router = APIRouter(tags=["coupons"])


@router.post("/validate")
async def validate_coupon(
    request: ValidateCouponRequest,
    db: Annotated[Session, Depends(get_db)]
) -> dict[str, Any]:
    try:
        result = ValidateCouponUseCase(db).validate(request.code, request.user_id, request.order_amount)
    except Exception as e:
        raise server_error("쿠폰 검증에 실패했습니다", e)

    if not result["valid"]:
        return {"valid": False, "error": result["error"]}
    coupon = result["coupon"]
    return {
        "valid": True,
        "discount": result["discount"],
        "coupon": {
            "id": coupon["id"],
            "code": coupon["code"],
            "name": coupon.get("name"),
            "discount_type": coupon["discount_type"],
            "discount_value": coupon["discount_value"],
        },
    }


@router.post("/apply")
async def apply_coupon(
    request: ApplyCouponRequest,
    db: Annotated[Session, Depends(get_db)]
) -> dict[str, Any]:
    """쿠폰 사용 처리 - 같은 주문에 반복 호출해도 한 번만 기록"""
    try:
        result = ValidateCouponUseCase(db).apply(request.code, request.user_id, request.order_id, request.order_amount)
        db.commit()
        return {"success": True, "discount": result["discount"], "userCoupon": result["user_coupon"]}
    except CommerceError as e:
        db.rollback()
        logger.error(f"쿠폰 사용 처리 실패: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": e.message, "details": e.context},
        )
    except Exception as e:
        db.rollback()
        raise server_error("쿠폰 사용 처리에 실패했습니다", e)
