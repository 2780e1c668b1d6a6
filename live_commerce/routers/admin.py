"""
관리자 API 라우터
주문 관리/삭제, 송장 등록, 상품·쿠폰 등록, 쿠폰 배포, 고객 목록, 입금 확인
모든 엔드포인트는 관리자 토큰 필요 (require_admin)
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..services.coupon_service import CreateCouponUseCase, DistributeCouponUseCase
from ..services.database import get_db
from ..services.deposit_service import DepositMatchingService
from ..services.errors import CommerceError
from ..services.login_service import require_admin
from ..services.order_repository import OrderRepository
from ..services.order_service import DeleteCancelledOrdersUseCase
from ..services.order_state import OrderStatus
from ..services.order_status_service import UpdateOrderStatusUseCase, UpdateTrackingUseCase
from ..services.product_service import CreateProductUseCase
from ..services.user_repository import UserRepository
from .common import bad_request, http_error, server_error

logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DeleteOrdersRequest(CamelModel):
    order_ids: list[str] = Field(alias="orderIds")


class TrackingRequest(CamelModel):
    order_id: str = Field(alias="orderId")
    tracking_number: str = Field(alias="trackingNumber")
    tracking_company: str | None = Field(default=None, alias="trackingCompany")


class DistributeRequest(CamelModel):
    coupon_id: str = Field(alias="couponId")
    user_ids: list[str] | None = Field(default=None, alias="userIds")
    distribute_to_all: bool = Field(default=False, alias="distributeToAll")


class BankTransaction(BaseModel):
    depositor: str
    amount: int
    date: str | None = None


class DepositMatchRequest(BaseModel):
    transactions: list[BankTransaction]


class DepositConfirmRequest(CamelModel):
    order_ids: list[str] = Field(alias="orderIds")


router = APIRouter(tags=["admin"])

AdminUser = Annotated[dict[str, Any], Depends(require_admin)]


@router.get("/orders")
async def list_orders(
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
    status: str | None = None,
    payment_method: Annotated[str | None, Query(alias="paymentMethod")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> dict[str, Any]:
    """전체 주문 목록 (상태/결제수단 필터)"""
    try:
        orders, total_count = OrderRepository(db).find_for_admin(status, payment_method, limit, offset)
        return {
            "success": True,
            "orders": orders,
            "totalCount": total_count,
            "hasMore": offset + len(orders) < total_count,
        }
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("주문 목록 조회에 실패했습니다", e)


@router.post("/orders/delete")
async def delete_orders(
    request: DeleteOrdersRequest,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
) -> dict[str, Any]:
    """취소된 주문 하드 삭제"""
    logger.info(f"주문 삭제 요청: admin={admin['email']}, {len(request.order_ids)}건")
    try:
        return DeleteCancelledOrdersUseCase(db).execute(request.order_ids)
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("주문 삭제에 실패했습니다", e)


@router.post("/shipping/update-tracking")
async def update_tracking(
    request: TrackingRequest,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
) -> dict[str, Any]:
    try:
        result = UpdateTrackingUseCase(db).execute(request.order_id, request.tracking_number, request.tracking_company)
        return result.to_dict()
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("송장 등록에 실패했습니다", e)


@router.post("/products/create")
async def create_product(
    data: dict[str, Any],
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
) -> dict[str, Any]:
    try:
        product = CreateProductUseCase(db).execute(data)
        return {"success": True, "product": product}
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("상품 등록에 실패했습니다", e)


@router.post("/coupons/create")
async def create_coupon(
    data: dict[str, Any],
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
) -> dict[str, Any]:
    try:
        coupon = CreateCouponUseCase(db).execute(data, created_by=admin["id"])
        return {"success": True, "coupon": coupon}
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("쿠폰 생성에 실패했습니다", e)


@router.post("/coupons/distribute")
async def distribute_coupon(
    request: DistributeRequest,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
) -> dict[str, Any]:
    """특정 고객 또는 전체 고객에게 쿠폰 배포 (부분 성공 시 집계 반환)"""
    if not request.distribute_to_all and not request.user_ids:
        raise bad_request("userIds 또는 distributeToAll이 필요합니다")
    try:
        use_case = DistributeCouponUseCase(db)
        if request.distribute_to_all:
            return use_case.distribute_to_all(request.coupon_id, issued_by=admin["id"])
        return use_case.distribute_to_users(request.coupon_id, request.user_ids, issued_by=admin["id"])
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("쿠폰 배포에 실패했습니다", e)


@router.get("/customers")
async def list_customers(
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
    search: str | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> dict[str, Any]:
    try:
        customers, total_count = UserRepository(db).find_customers(search, limit, offset)
        return {
            "success": True,
            "customers": customers,
            "totalCount": total_count,
            "hasMore": offset + len(customers) < total_count,
        }
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("고객 목록 조회에 실패했습니다", e)


@router.post("/deposits/match")
async def match_deposits(
    request: DepositMatchRequest,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
) -> dict[str, Any]:
    """은행 거래내역 ↔ 입금 대기 주문 매칭"""
    try:
        service = DepositMatchingService(db)
        transactions = [transaction.model_dump() for transaction in request.transactions]
        result = service.match(transactions, service.find_pending_orders())
        return {"success": True, **result}
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("입금 매칭에 실패했습니다", e)


@router.post("/deposits/confirm")
async def confirm_deposits(
    request: DepositConfirmRequest,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
) -> dict[str, Any]:
    """입금 확인 → 결제완료(paid)"""
    logger.info(f"입금 확인: admin={admin['email']}, orders={request.order_ids}")
    try:
        result = UpdateOrderStatusUseCase(db).execute(request.order_ids, OrderStatus.PAID.value, trusted=True)
        return result.to_dict()
    except CommerceError as e:
        raise http_error(e)
    except Exception as e:
        raise server_error("입금 확인 처리에 실패했습니다", e)
