"""
입금 확인 서비스 - 은행 거래내역과 입금 대기(verifying) 주문 매칭

일괄결제 그룹은 하나의 입금 대상으로 묶어 그룹 결제 금액 합계와 비교한다.
매칭 신뢰도:
    high   - 이름 + 금액 일치
    medium - 이름만 일치
    low    - 금액만 일치
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from .order_calculations import to_amount
from .order_repository import OrderRepository
from .order_state import OrderStatus
from .order_validator import BANK_TRANSFER_METHODS

logger = logging.getLogger(__name__)


MAX_PENDING_ORDERS = 1000


def _normalize_name(name: Any) -> str:
    return "".join(str(name or "").split())


class DepositMatchingService:
    def __init__(self, db: Session | None = None, orders: OrderRepository | None = None):
        self.db = db
        self.orders = orders or (OrderRepository(db) if db is not None else None)

    def find_pending_orders(self) -> list[dict[str, Any]]:
        """입금 대기 중인 무통장입금 주문"""
        orders, _ = self.orders.find_for_admin(status=OrderStatus.VERIFYING.value, limit=MAX_PENDING_ORDERS)
        return [
            order for order in orders
            if (order.get("order_payment") or {}).get("method", "bank_transfer") in BANK_TRANSFER_METHODS
        ]

    @staticmethod
    def build_candidates(orders: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """주문 → 입금 대상 (같은 payment_group_id는 하나로)"""
        candidates: list[dict[str, Any]] = []
        groups: dict[str, dict[str, Any]] = {}

        for order in sorted(orders, key=lambda o: (o["created_at"], str(o["id"]))):
            payment = order.get("order_payment") or {}
            shipping = order.get("order_shipping") or {}
            names = {
                _normalize_name(payment.get("depositor_name")),
                _normalize_name(shipping.get("name")),
                _normalize_name(order.get("customer_name")),
            } - {""}
            amount = to_amount(payment.get("amount"))

            group_id = order.get("payment_group_id")
            if group_id and group_id in groups:
                group = groups[group_id]
                group["orderIds"].append(order["id"])
                group["amount"] += amount
                group["names"] |= names
                continue

            candidate = {
                "id": group_id or order["id"],
                "isGroup": bool(group_id),
                "paymentGroupId": group_id,
                "orderIds": [order["id"]],
                "customerOrderNumber": order.get("customer_order_number"),
                "amount": amount,
                "names": names,
            }
            candidates.append(candidate)
            if group_id:
                groups[group_id] = candidate
        return candidates

    def match(self, transactions: list[dict[str, Any]], orders: list[dict[str, Any]]) -> dict[str, Any]:
        candidates = self.build_candidates(orders)
        available = list(candidates)
        matched: list[dict[str, Any]] = []
        unmatched: list[dict[str, Any]] = []

        for transaction in transactions:
            depositor = _normalize_name(transaction.get("depositor"))
            amount = to_amount(transaction.get("amount"))
            if amount <= 0:
                unmatched.append(transaction)
                continue

            found = None
            confidence = None
            for level, predicate in (
                ("high", lambda c: depositor in c["names"] and c["amount"] == amount),
                ("medium", lambda c: depositor in c["names"]),
                ("low", lambda c: c["amount"] == amount),
            ):
                found = next((candidate for candidate in available if predicate(candidate)), None)
                if found:
                    confidence = level
                    break

            if not found:
                unmatched.append(transaction)
                continue

            available.remove(found)
            matched.append({
                "transaction": transaction,
                "order": {key: value for key, value in found.items() if key != "names"},
                "confidence": confidence,
                "amountDifference": amount - found["amount"],
            })

        logger.info(f"입금 매칭 결과: 거래 {len(transactions)}건 → 매칭 {len(matched)}건, 미매칭 {len(unmatched)}건")
        return {"matched": matched, "unmatched": unmatched}
