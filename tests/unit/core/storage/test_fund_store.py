"""
FundStore 테스트

펀드 행, 보유 잔고, 포지션 상태, 분배 기준 잔고, 출금 기록.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

import aiosqlite
import pytest

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.storage.fund_store import FundStore
from core.types import FundRecord, PositionRecord, PositionStatus, ResidualAssetPolicy

NOW = datetime(2025, 2, 1, tzinfo=timezone.utc)


def _position(fund_id: str, handle: str, offset_seconds: int = 0) -> PositionRecord:
    return PositionRecord(
        handle=handle,
        fund_id=fund_id,
        token_a="USDC",
        token_b="WETH",
        used_a=10**24,
        used_b=250,
        fee_tier=3000,
        status=PositionStatus.OPEN,
        last_error=None,
        created_at=NOW + timedelta(seconds=offset_seconds),
    )


class TestFunds:
    """펀드 행 테스트"""

    @pytest.mark.asyncio
    async def test_round_trip(
        self, db: SQLiteAdapter, fund_id: str, make_record: Callable[..., FundRecord]
    ) -> None:
        """저장 후 조회"""
        record = await FundStore(db).get_fund(fund_id)

        assert record is not None
        assert record == make_record()
        assert record.residual_policy == ResidualAssetPolicy.DENOMINATION_ONLY

    @pytest.mark.asyncio
    async def test_missing_fund(self, db: SQLiteAdapter) -> None:
        """없는 펀드"""
        assert await FundStore(db).get_fund("fund-missing") is None

    @pytest.mark.asyncio
    async def test_manager_index_in_creation_order(
        self, db: SQLiteAdapter, make_record: Callable[..., FundRecord]
    ) -> None:
        """매니저별 생성 순서 유지"""
        store = FundStore(db)
        async with db.transaction():
            await store.insert_fund(make_record("fund-b", manager="m1"))
            await store.insert_fund(make_record("fund-a", manager="m1"))
            await store.insert_fund(make_record("fund-c", manager="m2"))

        assert await store.get_funds_by_manager("m1") == ["fund-b", "fund-a"]
        assert await store.get_funds_by_manager("m2") == ["fund-c"]
        assert await store.get_funds_by_manager("nobody") == []
        assert await store.list_fund_ids() == ["fund-b", "fund-a", "fund-c"]


class TestHoldings:
    """보유 잔고 테스트"""

    @pytest.mark.asyncio
    async def test_adjust_holding(self, db: SQLiteAdapter, fund_id: str) -> None:
        """증가/감소"""
        store = FundStore(db)
        async with db.transaction():
            assert await store.adjust_holding(fund_id, "USDC", 1_000, NOW) == 1_000
            assert await store.adjust_holding(fund_id, "USDC", -400, NOW) == 600
            await store.adjust_holding(fund_id, "WETH", 7, NOW)

        assert await store.get_holding(fund_id, "USDC") == 600
        assert await store.get_holdings(fund_id) == {"USDC": 600, "WETH": 7}
        assert await store.get_holding(fund_id, "DAI") == 0

    @pytest.mark.asyncio
    async def test_negative_holding_rejected(self, db: SQLiteAdapter, fund_id: str) -> None:
        """음수 잔고 거부"""
        store = FundStore(db)

        with pytest.raises(ValueError):
            async with db.transaction():
                await store.adjust_holding(fund_id, "USDC", 100, NOW)
                await store.adjust_holding(fund_id, "USDC", -101, NOW)

        assert await store.get_holdings(fund_id) == {}

    @pytest.mark.asyncio
    async def test_large_amount_precision(self, db: SQLiteAdapter, fund_id: str) -> None:
        """64비트를 넘는 금액 보존"""
        store = FundStore(db)
        huge = 2**100 + 1
        async with db.transaction():
            await store.adjust_holding(fund_id, "USDC", huge, NOW)

        assert await store.get_holding(fund_id, "USDC") == huge


class TestPositions:
    """포지션 테스트"""

    @pytest.mark.asyncio
    async def test_insert_and_list(self, db: SQLiteAdapter, fund_id: str) -> None:
        """생성 순서로 조회"""
        store = FundStore(db)
        async with db.transaction():
            await store.insert_position(_position(fund_id, "pos-2", 0))
            await store.insert_position(_position(fund_id, "pos-1", 1))

        positions = await store.list_positions(fund_id)

        assert [p.handle for p in positions] == ["pos-2", "pos-1"]
        assert positions[0].used_a == 10**24
        assert positions[0].is_open

    @pytest.mark.asyncio
    async def test_status_transitions(self, db: SQLiteAdapter, fund_id: str) -> None:
        """상태 변경과 redeemed_at"""
        store = FundStore(db)
        async with db.transaction():
            await store.insert_position(_position(fund_id, "pos-1"))
            await store.insert_position(_position(fund_id, "pos-2", 1))

        assert await store.count_unsettled_positions(fund_id) == 2

        async with db.transaction():
            await store.update_position_status("pos-1", PositionStatus.REDEEMING, NOW)
        assert await store.count_unsettled_positions(fund_id) == 2
        assert [p.handle for p in await store.list_positions(fund_id, PositionStatus.OPEN)] == [
            "pos-2"
        ]

        async with db.transaction():
            await store.update_position_status("pos-1", PositionStatus.REDEEMED, NOW)
            await store.update_position_status(
                "pos-2", PositionStatus.OPEN, NOW, last_error="redeem failed"
            )

        redeemed = await store.get_position("pos-1")
        failed = await store.get_position("pos-2")
        assert redeemed is not None and redeemed.is_settled
        assert redeemed.redeemed_at == NOW
        assert failed is not None and failed.last_error == "redeem failed"
        assert failed.redeemed_at is None
        assert await store.count_unsettled_positions(fund_id) == 1

    @pytest.mark.asyncio
    async def test_handle_unique_across_funds(
        self, db: SQLiteAdapter, fund_id: str, make_record: Callable[..., FundRecord]
    ) -> None:
        """handle 중복 거부"""
        store = FundStore(db)
        async with db.transaction():
            await store.insert_fund(make_record("fund-other"))
            await store.insert_position(_position(fund_id, "pos-1"))

        with pytest.raises(aiosqlite.IntegrityError):
            async with db.transaction():
                await store.insert_position(_position("fund-other", "pos-1"))

    @pytest.mark.asyncio
    async def test_missing_position(self, db: SQLiteAdapter) -> None:
        """없는 handle"""
        assert await FundStore(db).get_position("pos-404") is None


class TestDistribution:
    """분배 기준 잔고 / 출금 기록 테스트"""

    @pytest.mark.asyncio
    async def test_not_frozen(self, db: SQLiteAdapter, fund_id: str) -> None:
        """동결 전에는 None"""
        assert await FundStore(db).get_distribution_base(fund_id) is None

    @pytest.mark.asyncio
    async def test_freeze_distribution(
        self, db: SQLiteAdapter, fund_id: str, make_record: Callable[..., FundRecord]
    ) -> None:
        """동결 후 조회 및 펀드 행 반영"""
        store = FundStore(db)
        async with db.transaction():
            await store.freeze_distribution(fund_id, {"USDC": 1_500, "WETH": 0}, NOW)

        assert await store.get_distribution_base(fund_id) == {"USDC": 1_500, "WETH": 0}
        record = await store.get_fund(fund_id)
        assert record is not None
        assert record.distribution_frozen_at == NOW
        assert record.created_at == make_record().created_at

    @pytest.mark.asyncio
    async def test_withdrawn_amounts(self, db: SQLiteAdapter, fund_id: str) -> None:
        """토큰별 출금 합계"""
        store = FundStore(db)
        async with db.transaction():
            await store.record_withdrawal(fund_id, "alice", "USDC", 100, NOW)
            await store.record_withdrawal(fund_id, "alice", "WETH", 3, NOW)
            await store.record_withdrawal(fund_id, "bob", "USDC", 50, NOW)

        assert await store.withdrawn_amounts(fund_id, "alice") == {"USDC": 100, "WETH": 3}
        assert await store.withdrawn_amounts(fund_id, "carol") == {}
