"""
주문자 식별 정보

내부 회원(user_id)과 외부 소셜 로그인 사용자(provider + external_id)를
명시적으로 구분한다. orders 테이블에는 user_id / identity_provider /
external_id 세 컬럼으로 정규화하여 저장한다.
"""

from dataclasses import dataclass
from typing import Any

INTERNAL = "internal"
EXTERNAL = "external"


@dataclass(frozen=True)
class CustomerRef:
    kind: str
    user_id: str | None = None
    provider: str | None = None
    external_id: str | None = None

    @classmethod
    def internal(cls, user_id: str) -> "CustomerRef":
        return cls(kind=INTERNAL, user_id=str(user_id))

    @classmethod
    def external(cls, provider: str, external_id: str) -> "CustomerRef":
        return cls(kind=EXTERNAL, provider=provider.upper(), external_id=str(external_id))

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "CustomerRef | None":
        """요청 body의 user 객체에서 식별 정보 추출 (kakao_id 우선)"""
        if not payload:
            return None
        kakao_id = payload.get("kakao_id") or payload.get("kakaoId")
        if kakao_id:
            return cls.external("KAKAO", kakao_id)
        user_id = payload.get("id") or payload.get("user_id") or payload.get("userId")
        if user_id:
            return cls.internal(user_id)
        return None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CustomerRef | None":
        if row.get("identity_provider") and row.get("external_id"):
            return cls.external(row["identity_provider"], row["external_id"])
        if row.get("user_id"):
            return cls.internal(row["user_id"])
        return None

    @property
    def is_external(self) -> bool:
        return self.kind == EXTERNAL

    @property
    def key(self) -> str:
        """잠금/캐시 키 용 문자열"""
        if self.is_external:
            return f"{self.provider}:{self.external_id}"
        return f"user:{self.user_id}"

    def columns(self) -> dict[str, Any]:
        """orders 테이블 식별 컬럼 값"""
        if self.is_external:
            return {"user_id": None, "identity_provider": self.provider, "external_id": self.external_id}
        return {"user_id": self.user_id, "identity_provider": None, "external_id": None}

    def sql_filter(self, alias: str = "o") -> tuple[str, dict[str, Any]]:
        """WHERE 절 조각과 바인딩 파라미터"""
        if self.is_external:
            return (
                f"{alias}.identity_provider = :identity_provider AND {alias}.external_id = :external_id",
                {"identity_provider": self.provider, "external_id": self.external_id},
            )
        return f"{alias}.user_id = CAST(:identity_user_id AS uuid)", {"identity_user_id": self.user_id}

    def owns(self, order: dict[str, Any]) -> bool:
        return CustomerRef.from_row(order) == self
