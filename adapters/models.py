"""
어댑터 공통 모델

외부 교환/포지션 어댑터의 결과 타입과 에러.
"""

from dataclasses import dataclass
from typing import Any


class AdapterError(Exception):
    """외부 어댑터 에러

    어댑터 호출이 실패했을 때 발생.
    """

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"Adapter Error [{code}]: {message}")


class AdapterErrorCodes:
    """AdapterError 코드"""

    UNKNOWN: int = -1
    INSUFFICIENT_FUNDS: int = -1001
    NO_LIQUIDITY: int = -1002
    BELOW_MINIMUM: int = -1003
    UNKNOWN_POSITION: int = -1004
    NOT_OWNER: int = -1005
    SIMULATED: int = -1999


@dataclass(frozen=True)
class TokenAmounts:
    """두 토큰 수량 (수수료 수령 / 상환 결과)"""

    amount_a: int
    amount_b: int

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환 (이벤트 payload용, 금액은 문자열)"""
        return {
            "amount_a": str(self.amount_a),
            "amount_b": str(self.amount_b),
        }


@dataclass(frozen=True)
class MintResult:
    """포지션 생성 결과

    Attributes:
        handle: 포지션 식별자
        used_a: 실제 예치된 token_a 수량
        used_b: 실제 예치된 token_b 수량
    """

    handle: str
    used_a: int
    used_b: int

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환 (이벤트 payload용, 금액은 문자열)"""
        return {
            "handle": self.handle,
            "used_a": str(self.used_a),
            "used_b": str(self.used_b),
        }
