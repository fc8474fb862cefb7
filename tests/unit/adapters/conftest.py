"""
어댑터 테스트 픽스처

Mock 토큰 원장 / 교환 / 포지션 어댑터 공통 설정.
"""

from decimal import Decimal

import pytest

from adapters.mock.exchange_adapter import MockExchangeAdapter
from adapters.mock.position_adapter import MockPositionAdapter
from adapters.mock.token_ledger import MockTokenLedger

OWNER = "fund-1a2b3c4d5e6f"


@pytest.fixture
def owner() -> str:
    """토큰 보유 주체 (펀드 주소 역할)"""
    return OWNER


@pytest.fixture
def tokens() -> MockTokenLedger:
    """USDC 10,000 / WETH 5,000을 가진 토큰 원장"""
    ledger = MockTokenLedger()
    ledger.mint("USDC", OWNER, 10_000)
    ledger.mint("WETH", OWNER, 5_000)
    return ledger


@pytest.fixture
def exchange(tokens: MockTokenLedger) -> MockExchangeAdapter:
    """USDC→WETH 0.5 가격의 교환 어댑터"""
    adapter = MockExchangeAdapter(tokens)
    adapter.set_price("USDC", "WETH", Decimal("0.5"))
    return adapter


@pytest.fixture
def position_adapter(tokens: MockTokenLedger) -> MockPositionAdapter:
    """포지션 어댑터"""
    return MockPositionAdapter(tokens)
