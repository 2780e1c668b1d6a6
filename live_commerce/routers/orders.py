"""
주문 API 라우터
주문 생성/취소, 상태 변경, 주문 내역 조회, 합배(verifying 주문) 확인
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..services.database import get_db
from ..services.errors import CommerceError, InvalidOrderStatusError
from ..services.identity import CustomerRef
from ..services.login_service import get_optional_admin
from ..services.order_service import (
    CancelOrderUseCase,
    CreateOrderUseCase,
    GetOrdersUseCase,
    PendingOrderCheckUseCase,
)
from ..services.order_state import OrderStatus, parse_status
from ..services.order_status_service import UpdateOrderStatusUseCase
from .common import bad_request, http_error, server_error

logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateOrderRequest(CamelModel):
    order_data: dict[str, Any] = Field(alias="orderData")
    user_profile: dict[str, Any] = Field(alias="userProfile")
    deposit_name: str | None = Field(default=None, alias="depositName")
    payment_method: str = Field(default="bank_transfer", alias="paymentMethod")
    coupon_code: str | None = Field(default=None, alias="couponCode")
    user: dict[str, Any] | None = None


class CancelOrderRequest(CamelModel):
    order_id: str | None = Field(default=None, alias="orderId")
    user: dict[str, Any] | None = None


class UpdateStatusRequest(CamelModel):
    order_ids: list[str] = Field(alias="orderIds")
    status: str
    payment_data: dict[str, Any] | None = Field(default=None, alias="paymentData")
    user: dict[str, Any] | None = None


class OrderListRequest(CamelModel):
    user: dict[str, Any] | None = None
    page: int = 1
    page_size: int = Field(default=10, alias="pageSize")
    status: str | None = None


class CheckPendingRequest(CamelModel):
    user_id: str | None = Field(default=None, alias="userId")
    kakao_id: str | None = Field(default=None, alias="kakaoId")
    exclude_ids: list[str] = Field(default_factory=list, alias="excludeIds")
    postal_code: str | None = None
    detail_address: str | None = None


router = APIRouter(tags=["orders"])


def _customer_from_ids(user_id: str | None, kakao_id: str | None) -> CustomerRef:
    customer = CustomerRef.from_payload({"id": user_id, "kakao_id": kakao_id})
    if customer is None:
        raise bad_request("userId 또는 kakaoId가 필요합니다")
    return customer


@router.post("/create")
async def create_order(
    request: CreateOrderRequest,
    db: Annotated[Session, Depends(get_db)]
) -> dict[str, Any]:
    """주문 생성 (pending)"""
    try:
        order = CreateOrderUseCase(db).execute(
            request.order_data,
            request.user_profile,
            customer=CustomerRef.from_payload(request.user),
            deposit_name=request.deposit_name,
            payment_method=request.payment_method,
            coupon_code=request.coupon_code,
        )
        return {"success": True, "order": order}
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("주문 생성에 실패했습니다", e)


@router.post("/cancel")
async def cancel_order(
    request: CancelOrderRequest,
    db: Annotated[Session, Depends(get_db)]
) -> dict[str, Any]:
    """사용자 주문 취소 (pending/verifying만)"""
    if not request.order_id or not request.user:
        raise bad_request("orderId와 user 정보가 필요합니다")
    try:
        order = CancelOrderUseCase(db).execute(request.order_id, CustomerRef.from_payload(request.user))
        return {"success": True, "order": order}
    except InvalidOrderStatusError as e:
        raise http_error(e, status.HTTP_400_BAD_REQUEST)
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("주문 취소에 실패했습니다", e)


@router.post("/update-status")
async def update_order_status(
    request: UpdateStatusRequest,
    db: Annotated[Session, Depends(get_db)],
    admin: Annotated[dict[str, Any] | None, Depends(get_optional_admin)],
) -> dict[str, Any]:
    """주문 상태 변경 - 비회원/고객은 본인 주문의 입금 확인 요청(verifying)만 가능"""
    target = parse_status(request.status)
    if target is None:
        raise bad_request(f"알 수 없는 주문 상태입니다: {request.status}")
    if target != OrderStatus.VERIFYING and admin is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "관리자만 변경할 수 있는 상태입니다", "details": {"status": target.value}},
        )

    try:
        result = UpdateOrderStatusUseCase(db).execute(
            request.order_ids,
            target.value,
            request.payment_data,
            customer=CustomerRef.from_payload(request.user),
            trusted=admin is not None,
        )
        return result.to_dict()
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("주문 상태 변경에 실패했습니다", e)


@router.post("/list")
async def list_orders(
    request: OrderListRequest,
    db: Annotated[Session, Depends(get_db)]
) -> dict[str, Any]:
    """고객 주문 내역 (일괄결제 그룹 정보 포함)"""
    customer = CustomerRef.from_payload(request.user)
    if customer is None:
        raise bad_request("사용자 정보가 필요합니다")
    try:
        result = GetOrdersUseCase(db).execute(customer, request.page, request.page_size, request.status)
        return {"success": True, **result}
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("주문 내역 조회에 실패했습니다", e)


@router.post("/check-pending")
async def check_pending(
    request: CheckPendingRequest,
    db: Annotated[Session, Depends(get_db)]
) -> dict[str, Any]:
    """verifying 주문 존재 여부 (배송지 무관)"""
    customer = _customer_from_ids(request.user_id, request.kakao_id)
    try:
        has_pending = PendingOrderCheckUseCase(db).has_pending_orders(customer, request.exclude_ids)
        return {"success": True, "hasPendingOrders": has_pending}
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("pending 주문 확인에 실패했습니다", e)


@router.post("/check-pending-with-address")
async def check_pending_with_address(
    request: CheckPendingRequest,
    db: Annotated[Session, Depends(get_db)]
) -> dict[str, Any]:
    """같은 배송지(우편번호 + 상세주소)의 verifying 주문 존재 여부"""
    customer = _customer_from_ids(request.user_id, request.kakao_id)
    if not request.postal_code or not request.detail_address:
        raise bad_request("postal_code와 detail_address가 필요합니다")
    try:
        has_pending = PendingOrderCheckUseCase(db).has_pending_orders_at_address(
            customer, request.postal_code, request.detail_address, request.exclude_ids
        )
        return {"success": True, "hasPendingOrders": has_pending}
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("pending 주문 확인에 실패했습니다", e)
