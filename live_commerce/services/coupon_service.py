"""
쿠폰 서비스 - 쿠폰 검증/사용 처리, 일괄 배포, 관리자 쿠폰 생성
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from .coupon_repository import CouponRepository
from .errors import CouponNotAvailableError, NotFoundError, ValidationError
from .order_calculations import calculate_coupon_discount, to_amount
from .user_repository import UserRepository

logger = logging.getLogger(__name__)


DISCOUNT_TYPES = {"fixed_amount", "percentage"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: Any) -> datetime | None:
    """DB/요청의 일시 값을 timezone-aware datetime으로 정규화 (naive는 UTC로 간주)"""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class ValidateCouponUseCase:
    """쿠폰 사용 가능 여부 검증 및 주문 적용"""

    def __init__(self, db: Session, coupons: CouponRepository | None = None, now: Callable[[], datetime] = _utcnow):
        self.db = db
        self.coupons = coupons or CouponRepository(db)
        self.now = now

    def validate(self, code: str, user_id: str, order_amount: Any) -> dict[str, Any]:
        """검증 결과 반환 - 비즈니스 규칙 위반은 예외 대신 {"valid": False, "error"}"""
        if not code or not str(code).strip():
            return {"valid": False, "error": "쿠폰 코드를 입력해주세요"}

        amount = to_amount(order_amount)
        coupon = self.coupons.find_by_code(code)
        if not coupon:
            return {"valid": False, "error": "존재하지 않는 쿠폰 코드입니다"}

        if not coupon.get("is_active"):
            return {"valid": False, "error": "비활성화된 쿠폰입니다"}

        now = self.now()
        valid_from = _as_aware(coupon.get("valid_from"))
        valid_until = _as_aware(coupon.get("valid_until"))
        if valid_from and now < valid_from:
            return {"valid": False, "error": "쿠폰 사용 기간이 아닙니다"}
        if valid_until and now > valid_until:
            return {"valid": False, "error": "만료된 쿠폰입니다"}

        min_purchase = to_amount(coupon.get("min_purchase_amount"))
        if amount < min_purchase:
            return {"valid": False, "error": f"최소 주문 금액 {min_purchase:,}원 이상이어야 합니다"}

        total_limit = coupon.get("total_usage_limit")
        if total_limit and (coupon.get("total_used_count") or 0) >= total_limit:
            return {"valid": False, "error": "쿠폰 사용 한도가 초과되었습니다"}

        if not user_id:
            return {"valid": False, "error": "보유하지 않은 쿠폰입니다"}

        user_coupons = self.coupons.find_user_coupons(coupon["id"], user_id)
        if not user_coupons:
            return {"valid": False, "error": "보유하지 않은 쿠폰입니다"}

        used_count = sum(1 for user_coupon in user_coupons if user_coupon.get("is_used"))
        if used_count >= (coupon.get("usage_limit_per_user") or 1):
            return {"valid": False, "error": "쿠폰 사용 횟수를 초과했습니다"}

        available = next((user_coupon for user_coupon in user_coupons if not user_coupon.get("is_used")), None)
        if available is None:
            return {"valid": False, "error": "사용 가능한 쿠폰이 없습니다"}

        discount = calculate_coupon_discount(
            amount,
            coupon.get("discount_type"),
            coupon.get("discount_value"),
            coupon.get("max_discount_amount"),
        )
        return {
            "valid": True,
            "error": None,
            "discount": discount,
            "coupon": coupon,
            "user_coupon": available,
        }

    def apply(self, code: str, user_id: str, order_id: str, order_amount: Any) -> dict[str, Any]:
        """
        쿠폰 사용 처리 (commit은 호출하는 쪽에서)

        같은 주문에 이미 사용된 쿠폰이면 기존 사용 내역을 그대로 반환한다.
        """
        coupon = self.coupons.find_by_code(code) if code else None
        if coupon:
            existing = self.coupons.find_usage_by_order(coupon["id"], order_id)
            if existing:
                logger.info(f"이미 적용된 쿠폰: code={coupon['code']}, order_id={order_id}")
                return {"discount": to_amount(existing.get("discount_amount")), "user_coupon": existing}

        result = self.validate(code, user_id, order_amount)
        if not result["valid"]:
            raise CouponNotAvailableError(code, result["error"])

        used = self.coupons.mark_as_used(result["user_coupon"]["id"], order_id, result["discount"])
        if used is None:
            # 다른 요청이 먼저 사용 처리함
            raise CouponNotAvailableError(code, "이미 사용된 쿠폰입니다")
        self.coupons.increment_used_count(result["coupon"]["id"])

        logger.info(f"쿠폰 사용 처리 완료: code={result['coupon']['code']}, order_id={order_id}, discount={result['discount']}")
        return {"discount": result["discount"], "user_coupon": used}


class DistributeCouponUseCase:
    """쿠폰 일괄 배포 - 사용자별 실패는 집계하여 반환하고 전체를 중단하지 않는다"""

    def __init__(
        self,
        db: Session,
        coupons: CouponRepository | None = None,
        users: UserRepository | None = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.coupons = coupons or CouponRepository(db)
        self.users = users or UserRepository(db)
        self.now = now

    def distribute_to_all(self, coupon_id: str, issued_by: str | None = None) -> dict[str, Any]:
        user_ids = self.users.find_all_customer_ids()
        logger.info(f"전체 고객 쿠폰 배포: coupon_id={coupon_id}, 대상={len(user_ids)}명")
        return self.distribute_to_users(coupon_id, user_ids, issued_by)

    def distribute_to_users(self, coupon_id: str, user_ids: list[str], issued_by: str | None = None) -> dict[str, Any]:
        if not coupon_id:
            raise ValidationError("쿠폰 ID가 필요합니다")
        if not user_ids:
            raise ValidationError("배포 대상 사용자가 필요합니다")

        coupon = self.coupons.find_by_id(coupon_id)
        if not coupon:
            raise NotFoundError("쿠폰", coupon_id)
        if not coupon.get("is_active"):
            raise ValidationError("비활성화된 쿠폰은 배포할 수 없습니다")
        valid_until = _as_aware(coupon.get("valid_until"))
        if valid_until and self.now() > valid_until:
            raise ValidationError("만료된 쿠폰은 배포할 수 없습니다")

        # 중복 제거 (입력 순서 유지)
        targets = list(dict.fromkeys(str(user_id) for user_id in user_ids if user_id))
        total_requested = len(targets)

        total_limit = coupon.get("total_usage_limit")
        if total_limit:
            remaining = max(0, total_limit - (coupon.get("total_issued_count") or 0))
            if remaining == 0:
                raise ValidationError("쿠폰 발급 한도가 모두 소진되었습니다")
            if len(targets) > remaining:
                logger.warning(f"발급 한도 초과 요청: 요청 {len(targets)}명, 잔여 {remaining}장 - 앞에서부터 {remaining}명만 발급")
                targets = targets[:remaining]

        holders = self.coupons.find_holders(coupon_id, targets)
        results: list[dict[str, Any]] = []
        issued = skipped = failed = 0

        for user_id in targets:
            if user_id in holders:
                skipped += 1
                results.append({"userId": user_id, "status": "skipped", "reason": "이미 보유한 쿠폰"})
                continue
            try:
                with self.db.begin_nested():
                    self.coupons.issue_to_user(coupon_id, user_id, issued_by)
                issued += 1
                results.append({"userId": user_id, "status": "issued"})
            except Exception as e:
                failed += 1
                logger.warning(f"쿠폰 발급 실패: coupon_id={coupon_id}, user_id={user_id}, error={e}")
                results.append({"userId": user_id, "status": "failed", "reason": str(e)})

        try:
            if issued:
                self.coupons.increment_issued_count(coupon_id, issued)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"쿠폰 배포 커밋 실패: {e}")
            raise

        logger.info(f"쿠폰 배포 완료: coupon={coupon['code']}, 발급 {issued}, 건너뜀 {skipped}, 실패 {failed}")
        return {
            "success": True,
            "totalRequested": total_requested,
            "totalIssued": issued,
            "totalSkipped": skipped,
            "totalFailed": failed,
            "results": results,
        }


class CreateCouponUseCase:
    """관리자 쿠폰 생성"""

    def __init__(self, db: Session, coupons: CouponRepository | None = None):
        self.db = db
        self.coupons = coupons or CouponRepository(db)

    @staticmethod
    def validate(data: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        if not data.get("code") or not str(data["code"]).strip():
            errors.append("쿠폰 코드가 필요합니다")
        if not data.get("name"):
            errors.append("쿠폰 이름이 필요합니다")

        discount_type = data.get("discount_type")
        if discount_type not in DISCOUNT_TYPES:
            errors.append("할인 유형은 fixed_amount 또는 percentage 여야 합니다")

        value = to_amount(data.get("discount_value"))
        if value <= 0:
            errors.append("할인 값은 0보다 커야 합니다")
        elif discount_type == "percentage" and value > 100:
            errors.append("퍼센트 할인은 100을 넘을 수 없습니다")

        valid_from = _as_aware(data.get("valid_from"))
        valid_until = _as_aware(data.get("valid_until"))
        if not valid_from or not valid_until:
            errors.append("유효 기간(시작/종료)이 필요합니다")
        elif valid_until <= valid_from:
            errors.append("유효 기간 종료일은 시작일 이후여야 합니다")
        return errors

    def execute(self, data: dict[str, Any], created_by: str | None = None) -> dict[str, Any]:
        errors = self.validate(data)
        if errors:
            raise ValidationError("쿠폰 정보가 올바르지 않습니다", errors=errors)

        code = str(data["code"]).strip().upper()
        if self.coupons.find_by_code(code):
            raise ValidationError(f"이미 존재하는 쿠폰 코드입니다: {code}")

        try:
            coupon = self.coupons.create({
                "code": code,
                "name": data["name"],
                "description": data.get("description"),
                "discount_type": data["discount_type"],
                "discount_value": to_amount(data["discount_value"]),
                "min_purchase_amount": to_amount(data.get("min_purchase_amount")),
                "max_discount_amount": to_amount(data["max_discount_amount"]) if data.get("max_discount_amount") else None,
                "valid_from": _as_aware(data["valid_from"]),
                "valid_until": _as_aware(data["valid_until"]),
                "usage_limit_per_user": data.get("usage_limit_per_user") or 1,
                "total_usage_limit": data.get("total_usage_limit"),
                "is_active": data.get("is_active", True) is not False,
                "is_welcome_coupon": bool(data.get("is_welcome_coupon")),
                "created_by": created_by,
            })
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"쿠폰 생성 실패: {e}")
            raise
        return coupon
