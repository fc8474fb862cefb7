"""
어댑터 레이어

외부 협력자(토큰 이동, 교환, 유동성 포지션, DB)와의 연동을 담당.
Protocol 기반 인터페이스로 Mock 교체 가능.
"""

from adapters.interfaces import (
    ITokenLedger,
    IExchangeAdapter,
    IPositionAdapter,
)
from adapters.models import (
    AdapterError,
    AdapterErrorCodes,
    MintResult,
    TokenAmounts,
)

__all__ = [
    # Interfaces
    "ITokenLedger",
    "IExchangeAdapter",
    "IPositionAdapter",
    # Models
    "AdapterError",
    "AdapterErrorCodes",
    "MintResult",
    "TokenAmounts",
]
