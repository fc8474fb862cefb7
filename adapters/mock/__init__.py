"""
Mock 어댑터

테스트/로컬 실행용 Mock 구현체 제공.
Protocol 준수하여 실제 구현체와 교체 가능.
"""

from adapters.mock.exchange_adapter import MockExchangeAdapter
from adapters.mock.position_adapter import MockPositionAdapter
from adapters.mock.token_ledger import MockTokenLedger

__all__ = [
    "MockExchangeAdapter",
    "MockPositionAdapter",
    "MockTokenLedger",
]
