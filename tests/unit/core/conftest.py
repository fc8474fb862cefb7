"""
core 단위 테스트 fixture

스키마가 초기화된 임시 DB와 기본 펀드 행.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest
import pytest_asyncio

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from core.storage.fund_store import FundStore
from core.types import FundRecord, ResidualAssetPolicy

FUND_ID = "fund-1a2b3c4d5e6f"
CREATED_AT = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_fund_record(
    fund_id: str = FUND_ID,
    manager: str = "manager",
    created_at: datetime = CREATED_AT,
) -> FundRecord:
    """테스트용 FundRecord"""
    return FundRecord(
        fund_id=fund_id,
        name="Test Fund",
        manager=manager,
        denomination_asset="USDC",
        open_until=created_at + timedelta(days=30),
        matures_at=created_at + timedelta(days=60),
        residual_policy=ResidualAssetPolicy.DENOMINATION_ONLY,
        total_value_locked=0,
        total_value_locked_at_close=None,
        distribution_frozen_at=None,
        created_at=created_at,
    )


@pytest.fixture
def make_record() -> Callable[..., FundRecord]:
    """FundRecord 생성 함수"""
    return make_fund_record


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> SQLiteAdapter:
    """스키마 초기화된 임시 DB"""
    adapter = SQLiteAdapter(tmp_path / "core_test.db")
    await adapter.connect()
    await init_schema(adapter)
    yield adapter
    await adapter.close()


@pytest_asyncio.fixture
async def fund_id(db: SQLiteAdapter) -> str:
    """외래 키 대상 펀드 행 생성"""
    async with db.transaction():
        await FundStore(db).insert_fund(make_fund_record())
    return FUND_ID
