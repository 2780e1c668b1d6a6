"""
재고 값 객체 (Inventory Value Object)

reserve/release는 항상 새 객체를 반환하며 원본은 변하지 않는다.
"""

from dataclasses import dataclass

from .errors import InsufficientInventoryError


@dataclass(frozen=True)
class Inventory:
    quantity: int

    def __post_init__(self):
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError("재고 수량은 정수여야 합니다.")
        if self.quantity < 0:
            raise ValueError("재고 수량은 0 이상이어야 합니다.")

    def check_availability(self, required: int) -> bool:
        """재고가 required 이상이면 True"""
        if required < 0:
            raise ValueError("요구 수량은 0 이상이어야 합니다.")
        return self.quantity >= required

    def reserve(self, quantity: int, product_id: str | None = None, title: str | None = None) -> "Inventory":
        """재고 예약 (감소) - 부족하면 InsufficientInventoryError"""
        if quantity <= 0:
            raise ValueError("예약 수량은 0보다 커야 합니다.")
        if not self.check_availability(quantity):
            raise InsufficientInventoryError(quantity, self.quantity, product_id=product_id, title=title)
        return Inventory(self.quantity - quantity)

    def release(self, quantity: int) -> "Inventory":
        """재고 해제 (증가)"""
        if quantity <= 0:
            raise ValueError("해제 수량은 0보다 커야 합니다.")
        return Inventory(self.quantity + quantity)

    def is_available(self) -> bool:
        return self.quantity > 0

    def is_empty(self) -> bool:
        return self.quantity == 0

    def __int__(self) -> int:
        return self.quantity

    def __str__(self) -> str:
        return f"Inventory({self.quantity})"
