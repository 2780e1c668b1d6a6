"""
주문 상태 변경 서비스

상태 변경과 함께 배송/결제 행을 다시 계산해 UPSERT 한다.
- 2건 이상 함께 변경하면 일괄결제 그룹(payment_group_id)으로 묶는다
- verifying 전환 시 같은 고객의 verifying 주문이 같은 배송지(우편번호 + 상세주소)에
  이미 있으면 배송비 0원 (합배)
- 쿠폰 사용 처리는 부가 작업이며 실패해도 상태 변경은 유지하고 결과에 기록한다
- 결제 금액의 할인은 서버가 정한다: 적용된 쿠폰 할인 > 주문 생성 시 저장된 할인.
  요청의 discountAmount는 관리자 요청(trusted)일 때만 반영한다
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.orm import Session

from .coupon_service import ValidateCouponUseCase
from .errors import ForbiddenError, InvalidOrderStatusError, NotFoundError, ValidationError
from .identity import CustomerRef
from .order_calculations import calculate_final_order_amount, calculate_shipping_fee, to_amount
from .order_repository import OrderRepository, PaymentGroupRepository
from .order_service import generate_order_number
from .order_state import OrderStatus, can_transition, parse_status
from .order_validator import validate_shipping

logger = logging.getLogger(__name__)


@dataclass
class SideEffectFailure:
    order_id: str | None
    effect: str
    error: str


@dataclass
class StatusUpdateResult:
    success: bool
    updated_count: int
    payment_group_id: str | None = None
    side_effects: list[SideEffectFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "updatedCount": self.updated_count,
            "paymentGroupId": self.payment_group_id,
            "sideEffects": [asdict(failure) for failure in self.side_effects],
        }


def _shipping_from_payment_data(payment_data: dict[str, Any]) -> dict[str, Any] | None:
    """paymentData.shippingData → order_shipping 컬럼 형태"""
    shipping = payment_data.get("shippingData") or payment_data.get("shipping_data")
    if not shipping:
        return None
    return {
        "name": shipping.get("shipping_name") or shipping.get("name"),
        "phone": shipping.get("shipping_phone") or shipping.get("phone"),
        "address": shipping.get("shipping_address") or shipping.get("address"),
        "detail_address": (shipping.get("shipping_detail_address") or shipping.get("detail_address") or "").strip(),
        "postal_code": shipping.get("shipping_postal_code") or shipping.get("postal_code"),
    }


def _has_destination(shipping: dict[str, Any] | None) -> bool:
    if not shipping:
        return False
    return bool(str(shipping.get("postal_code") or "").strip() and str(shipping.get("detail_address") or "").strip())


class UpdateOrderStatusUseCase:
    def __init__(
        self,
        db: Session,
        orders: OrderRepository | None = None,
        groups: PaymentGroupRepository | None = None,
        coupons: ValidateCouponUseCase | None = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.orders = orders or OrderRepository(db)
        self.groups = groups or PaymentGroupRepository(db)
        self.coupons = coupons or ValidateCouponUseCase(db)
        self.now = now

    def execute(
        self,
        order_ids: list[str],
        status: str,
        payment_data: dict[str, Any] | None = None,
        customer: CustomerRef | None = None,
        trusted: bool = False,
    ) -> StatusUpdateResult:
        """
        주문 상태 변경

        trusted=False (비회원/고객 요청)면 verifying 전환만 가능하고, 식별 정보가 있는
        주문은 customer 본인 주문이어야 한다.
        """
        if not order_ids or not isinstance(order_ids, list):
            raise ValidationError("주문 ID가 필요합니다")
        target = parse_status(status) if status else None
        if target is None:
            raise ValidationError(f"알 수 없는 주문 상태입니다: {status}")

        order_ids = list(dict.fromkeys(str(order_id) for order_id in order_ids))
        payment_data = payment_data or {}
        shipping_input = _shipping_from_payment_data(payment_data)
        if shipping_input is not None:
            shipping_errors = validate_shipping(shipping_input)["errors"]
            if shipping_errors:
                raise ValidationError("배송 정보가 올바르지 않습니다", errors=shipping_errors)

        found = {order["id"]: order for order in self.orders.find_by_ids(order_ids)}
        for order_id in order_ids:
            if order_id not in found:
                raise NotFoundError("주문", order_id)
        orders = [found[order_id] for order_id in order_ids]

        if not trusted:
            if target != OrderStatus.VERIFYING:
                raise ForbiddenError("관리자만 변경할 수 있는 상태입니다", status=target.value)
            for order in orders:
                if CustomerRef.from_row(order) is not None and (customer is None or not customer.owns(order)):
                    raise ForbiddenError("본인의 주문만 변경할 수 있습니다", order_id=order["id"])

        # 하나라도 전환 불가하면 아무것도 쓰지 않는다
        for order in orders:
            if not can_transition(order["status"], target):
                raise InvalidOrderStatusError(order["id"], order["status"], target.value)

        logger.info(f"주문 상태 업데이트 시작: {len(orders)}건 → {target.value}")

        touched_groups: set[str] = {order["payment_group_id"] for order in orders if order.get("payment_group_id")}
        try:
            group_id = self._resolve_group_id(orders, target, shipping_input)
        except Exception:
            self.db.rollback()
            raise
        if group_id:
            touched_groups.add(group_id)
            logger.info(f"일괄결제 그룹 적용: group_id={group_id}, {len(orders)}건")

        result = StatusUpdateResult(success=True, updated_count=0, payment_group_id=group_id)
        for index, order in enumerate(orders):
            try:
                self._update_single_order(
                    order, target, payment_data, shipping_input, group_id,
                    first=index == 0, trusted=trusted, result=result,
                )
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.error(f"주문 상태 업데이트 실패: order_id={order['id']}, error={e}")
                raise
            result.updated_count += 1

        for touched in sorted(touched_groups):
            try:
                self.groups.refresh(touched)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.warning(f"일괄결제 그룹 집계 갱신 실패 (상태 변경은 유지): group_id={touched}, error={e}")
                result.side_effects.append(SideEffectFailure(None, "payment_group_refresh", str(e)))

        logger.info(f"주문 상태 업데이트 완료: {result.updated_count}건, 부가 작업 실패 {len(result.side_effects)}건")
        return result

    # ----- 그룹 -----

    def _mint_group_id(self) -> str:
        return f"GROUP-{int(self.now().timestamp() * 1000)}"

    def _resolve_group_id(
        self,
        orders: list[dict[str, Any]],
        target: OrderStatus,
        shipping_input: dict[str, Any] | None,
    ) -> str | None:
        """기존 그룹 재사용 → 2건 이상이면 신규 → 1건 verifying이면 같은 배송지 주문의 그룹에 합류"""
        for order in orders:
            if order.get("payment_group_id"):
                return order["payment_group_id"]

        if len(orders) >= 2:
            return self._mint_group_id()

        order = orders[0]
        customer = CustomerRef.from_row(order)
        destination = shipping_input or order.get("order_shipping")
        if target != OrderStatus.VERIFYING or customer is None or not _has_destination(destination):
            return None

        postal_code = str(destination["postal_code"]).strip()
        detail_address = str(destination["detail_address"]).strip()
        self.orders.lock_shipping_destination(customer, postal_code, detail_address)

        try:
            with self.db.begin_nested():
                candidates = self.orders.find_verifying_with_shipping(customer, exclude_ids=[order["id"]])
        except Exception as e:
            # 조회 실패 시 묶지 않고 단건으로 진행
            logger.warning(f"같은 배송지 주문 조회 실패, 그룹 없이 진행: order_id={order['id']}, error={e}")
            return None

        matched = next(
            (
                candidate for candidate in candidates
                if candidate.get("postal_code") == postal_code and (candidate.get("detail_address") or "") == detail_address
            ),
            None,
        )
        if matched is None:
            return None
        if matched.get("payment_group_id"):
            logger.info(f"같은 배송지 주문의 그룹에 합류: matched={matched['id']}, group_id={matched['payment_group_id']}")
            return matched["payment_group_id"]

        group_id = self._mint_group_id()
        self.orders.update_fields(matched["id"], {"payment_group_id": group_id})
        self.orders.update_payment_group(matched["id"], group_id)
        logger.info(f"같은 배송지 주문과 신규 그룹 생성: matched={matched['id']}, group_id={group_id}")
        return group_id

    # ----- 단건 처리 -----

    def _update_single_order(
        self,
        order: dict[str, Any],
        target: OrderStatus,
        payment_data: dict[str, Any],
        shipping_input: dict[str, Any] | None,
        group_id: str | None,
        first: bool,
        trusted: bool,
        result: StatusUpdateResult,
    ) -> None:
        order_id = order["id"]
        fields: dict[str, Any] = {}
        if target == OrderStatus.VERIFYING and not order.get("customer_order_number"):
            fields["customer_order_number"] = generate_order_number(self.now())
        if group_id and order.get("payment_group_id") != group_id:
            fields["payment_group_id"] = group_id

        # 쿠폰/관리자 지정 할인은 묶음의 첫 주문에만 적용
        discount = to_amount(order.get("discount_amount"))
        if first and payment_data.get("selectedCoupon"):
            # 사용 처리되지 않은 쿠폰의 할인은 남기지 않는다
            applied = self._apply_coupon(order, payment_data, result)
            discount = applied if applied is not None else 0
            fields["discount_amount"] = discount
        elif trusted and "discountAmount" in payment_data:
            discount = to_amount(payment_data["discountAmount"]) if first else 0
            fields["discount_amount"] = discount
        elif "discountAmount" in payment_data:
            logger.warning(f"요청 할인 금액 무시 (관리자 요청 아님): order_id={order_id}")

        self.orders.update_status(order_id, target, fields)

        existing_shipping = order.get("order_shipping")
        shipping_fee = to_amount(existing_shipping.get("shipping_fee")) if existing_shipping else 0
        recalculated = False
        if shipping_input is not None:
            shipping_fee = self._shipping_fee(order, target, shipping_input)
            self.orders.upsert_shipping(order_id, {**shipping_input, "shipping_fee": shipping_fee})
            recalculated = True
        elif existing_shipping and target == OrderStatus.VERIFYING:
            shipping_fee = self._shipping_fee(order, target, existing_shipping)
            self.orders.upsert_shipping(order_id, {**existing_shipping, "shipping_fee": shipping_fee})
            recalculated = True

        existing_payment = order.get("order_payment") or {}
        if payment_data or recalculated:
            items = order.get("order_items") or []
            if items:
                amount = calculate_final_order_amount(items, shipping_fee, discount)["final_amount"]
            else:
                items_total = to_amount(order.get("total_amount"))
                amount = items_total - min(discount, items_total) + shipping_fee
            self.orders.upsert_payment(order_id, {
                "method": payment_data.get("method") or existing_payment.get("method") or "bank_transfer",
                "amount": amount,
                "status": target.value,
                "depositor_name": payment_data.get("depositorName") or existing_payment.get("depositor_name"),
                "payment_group_id": group_id or order.get("payment_group_id"),
            })
            logger.info(f"결제 정보 갱신: order_id={order_id}, 배송비={shipping_fee}, 할인={discount}, 결제금액={amount}")
        else:
            # 결제 정보 없이 상태만 바뀌어도 결제 상태는 주문 상태를 따른다
            self.orders.update_payment_status(order_id, target)

    def _shipping_fee(self, order: dict[str, Any], target: OrderStatus, destination: dict[str, Any]) -> int:
        """지역 배송비 계산 후 같은 배송지 verifying 주문이 있으면 0원"""
        postal_code = str(destination.get("postal_code") or "").strip() or None
        base_fee = calculate_shipping_fee(postal_code)

        customer = CustomerRef.from_row(order)
        if target != OrderStatus.VERIFYING or customer is None or not _has_destination(destination):
            return base_fee

        detail_address = str(destination["detail_address"]).strip()
        self.orders.lock_shipping_destination(customer, postal_code, detail_address)
        try:
            with self.db.begin_nested():
                matched = self.orders.has_verifying_order_at_address(
                    customer, postal_code, detail_address, exclude_ids=[order["id"]]
                )
        except Exception as e:
            # 확인 실패 시 무료배송을 주지 않는다
            logger.warning(f"합배 확인 실패, 기본 배송비 적용: order_id={order['id']}, error={e}")
            return base_fee

        if matched:
            logger.info(f"같은 배송지 verifying 주문 존재 - 배송비 면제: order_id={order['id']}")
            return 0
        return base_fee

    # ----- 쿠폰 -----

    def _apply_coupon(
        self, order: dict[str, Any], payment_data: dict[str, Any], result: StatusUpdateResult
    ) -> int | None:
        """
        쿠폰 사용 처리 후 실제 할인 금액 반환, 실패하면 None

        savepoint 안에서 실행하므로 실패해도 주문 트랜잭션은 계속된다.
        쿠폰 소유자는 주문의 회원으로 고정한다.
        """
        coupon = payment_data["selectedCoupon"]
        code = coupon.get("code") if isinstance(coupon, dict) else str(coupon)
        user_id = order.get("user_id")
        try:
            if not user_id:
                raise ValidationError("쿠폰 사용자 정보가 없습니다")
            items_total = to_amount(order.get("total_amount"))
            with self.db.begin_nested():
                applied = self.coupons.apply(code, str(user_id), order["id"], items_total)
        except Exception as e:
            logger.warning(f"쿠폰 적용 실패 (상태 변경은 유지): code={code}, order_id={order['id']}, error={e}")
            result.side_effects.append(SideEffectFailure(order["id"], "coupon_usage", str(e)))
            return None

        discount = to_amount(applied["discount"])
        logger.info(f"쿠폰 적용 완료: code={code}, order_id={order['id']}, discount={discount}")
        return discount


class UpdateTrackingUseCase:
    """송장 등록 후 배송중(shipping) 상태로 전환"""

    def __init__(self, db: Session, orders: OrderRepository | None = None, status_use_case: UpdateOrderStatusUseCase | None = None):
        self.db = db
        self.orders = orders or OrderRepository(db)
        self.status_use_case = status_use_case or UpdateOrderStatusUseCase(db, orders=self.orders)

    def execute(self, order_id: str, tracking_number: str, tracking_company: str | None = None) -> StatusUpdateResult:
        if not order_id or not tracking_number or not str(tracking_number).strip():
            raise ValidationError("주문 ID와 송장번호가 필요합니다")

        order = self.orders.find_by_id(order_id)
        if not order:
            raise NotFoundError("주문", order_id)
        if not can_transition(order["status"], OrderStatus.SHIPPING):
            raise InvalidOrderStatusError(order_id, order["status"], OrderStatus.SHIPPING.value)

        try:
            if not self.orders.update_tracking(order_id, str(tracking_number).strip(), tracking_company):
                raise NotFoundError("배송 정보", order_id)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"송장 등록 실패: order_id={order_id}, error={e}")
            raise

        logger.info(f"송장 등록: order_id={order_id}, {tracking_company} {tracking_number}")
        return self.status_use_case.execute([order_id], OrderStatus.SHIPPING.value, trusted=True)
