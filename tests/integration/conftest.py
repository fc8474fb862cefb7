"""
통합 테스트 공통 fixture

임시 SQLite DB + Mock 토큰 원장/교환/포지션 어댑터 위에 FundRegistry 구성.
시각은 FakeClock으로 제어.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Awaitable, Callable

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from adapters.mock.exchange_adapter import MockExchangeAdapter
from adapters.mock.position_adapter import MockPositionAdapter
from adapters.mock.token_ledger import MockTokenLedger
from core.fund.fund import Fund
from core.fund.registry import FundRegistry
from core.types import ResidualAssetPolicy

START = datetime(2025, 1, 1, tzinfo=timezone.utc)


def pytest_configure(config: Any) -> None:
    """pytest 마커 등록"""
    config.addinivalue_line(
        "markers",
        "scenario: 펀드 생애주기 전체를 따라가는 시나리오 테스트",
    )


class FakeClock:
    """테스트용 시계 (호출 가능 객체)"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        """timedelta 인자만큼 이동"""
        self.now = self.now + timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        self.now = now


@dataclass(frozen=True)
class Schedule:
    """테스트 펀드 일정 (START + 30일 모집, + 60일 만기)"""

    start: datetime = START
    open_until: datetime = START + timedelta(days=30)
    matures_at: datetime = START + timedelta(days=60)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def schedule() -> Schedule:
    return Schedule()


@pytest.fixture
def tokens() -> MockTokenLedger:
    """입금자 3명에게 USDC 지급"""
    ledger = MockTokenLedger()
    for depositor in ("alice", "bob", "carol"):
        ledger.mint("USDC", depositor, 1_000_000)
    return ledger


@pytest.fixture
def exchange(tokens: MockTokenLedger) -> MockExchangeAdapter:
    """USDC 1 → WETH 0.5"""
    adapter = MockExchangeAdapter(tokens)
    adapter.set_price("USDC", "WETH", Decimal("0.5"))
    return adapter


@pytest.fixture
def positions(tokens: MockTokenLedger) -> MockPositionAdapter:
    return MockPositionAdapter(tokens)


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> SQLiteAdapter:
    """스키마 초기화된 임시 DB"""
    adapter = SQLiteAdapter(tmp_path / "fund_integration.db")
    await adapter.connect()
    await init_schema(adapter)
    yield adapter
    await adapter.close()


@pytest.fixture
def registry(
    db: SQLiteAdapter,
    tokens: MockTokenLedger,
    exchange: MockExchangeAdapter,
    positions: MockPositionAdapter,
    clock: FakeClock,
) -> FundRegistry:
    return FundRegistry(db, tokens, exchange, positions, clock=clock)


@pytest.fixture
def make_fund(
    registry: FundRegistry,
    schedule: Schedule,
) -> Callable[..., Awaitable[Fund]]:
    """일정에 맞춘 펀드 생성 함수"""

    async def _make(
        residual_policy: ResidualAssetPolicy | None = None,
        manager: str = "manager",
        name: str = "Integration Fund",
    ) -> Fund:
        return await registry.create_fund(
            manager=manager,
            denomination_asset="USDC",
            open_until=schedule.open_until,
            matures_at=schedule.matures_at,
            name=name,
            residual_policy=residual_policy,
        )

    return _make


@pytest_asyncio.fixture
async def fund(make_fund: Callable[..., Awaitable[Fund]]) -> Fund:
    """기본 정책 (DENOMINATION_ONLY) 펀드"""
    return await make_fund()


@pytest.fixture
def deposit(tokens: MockTokenLedger) -> Callable[[Fund, str, int], Awaitable[int]]:
    """approve 후 입금하는 함수"""

    async def _deposit(fund: Fund, depositor: str, amount: int) -> int:
        await tokens.approve(fund.denomination_asset, depositor, fund.address, amount)
        return await fund.deposit(depositor, amount)

    return _deposit
