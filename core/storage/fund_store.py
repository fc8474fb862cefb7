"""
FundStore - 펀드 상태 저장소

펀드 기본 정보, 토큰별 보유 잔고, 유동성 포지션, 분배 기준 잔고, 출금 기록 관리.

주의: 쓰기 메서드는 커밋하지 않음. 호출자가 SQLiteAdapter.transaction()으로 묶어야 함.
"""

import logging
from datetime import datetime
from typing import Any

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.types import FundRecord, PositionRecord, PositionStatus, ResidualAssetPolicy
from core.utils.timezone import from_iso, to_iso

logger = logging.getLogger(__name__)


_FUND_COLUMNS = """
    fund_id, name, manager, denomination_asset, open_until, matures_at,
    residual_policy, total_value_locked, total_value_locked_at_close,
    distribution_frozen_at, created_at
"""

_POSITION_COLUMNS = """
    handle, fund_id, token_a, token_b, used_a, used_b, fee_tier,
    status, last_error, created_at, redeemed_at
"""

# 출금을 막는 미정산 상태
_UNSETTLED_STATUSES = (PositionStatus.OPEN.value, PositionStatus.REDEEMING.value)


class FundStore:
    """펀드 상태 저장소

    Args:
        db: SQLiteAdapter 인스턴스

    사용 예시:
    ```python
    store = FundStore(db)

    async with db.transaction():
        await store.adjust_holding(fund_id, "USDC", -500, now)

    holdings = await store.get_holdings(fund_id)
    ```
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    # -------------------------------------------------------------------------
    # 펀드
    # -------------------------------------------------------------------------

    async def insert_fund(self, record: FundRecord) -> None:
        """펀드 생성 (created_seq는 매니저별 생성 순서 정렬용)"""
        row = await self.db.fetchone("SELECT COALESCE(MAX(created_seq), 0) FROM funds")
        created_seq = (row[0] if row else 0) + 1

        await self.db.execute(
            """
            INSERT INTO funds (
                fund_id, name, manager, denomination_asset, open_until, matures_at,
                residual_policy, total_value_locked, created_seq, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.fund_id,
                record.name,
                record.manager,
                record.denomination_asset,
                to_iso(record.open_until),
                to_iso(record.matures_at),
                record.residual_policy.value,
                str(record.total_value_locked),
                created_seq,
                to_iso(record.created_at),
            ),
        )

    async def get_fund(self, fund_id: str) -> FundRecord | None:
        """펀드 조회"""
        row = await self.db.fetchone(
            f"SELECT {_FUND_COLUMNS} FROM funds WHERE fund_id = ?",
            (fund_id,),
        )
        if row is None:
            return None
        return self._row_to_fund(row)

    async def get_funds_by_manager(self, manager: str) -> list[str]:
        """매니저의 펀드 ID 목록 (생성 순서)"""
        rows = await self.db.fetchall(
            "SELECT fund_id FROM funds WHERE manager = ? ORDER BY created_seq ASC",
            (manager,),
        )
        return [row[0] for row in rows]

    async def list_fund_ids(self) -> list[str]:
        """전체 펀드 ID 목록 (생성 순서)"""
        rows = await self.db.fetchall("SELECT fund_id FROM funds ORDER BY created_seq ASC")
        return [row[0] for row in rows]

    # -------------------------------------------------------------------------
    # 보유 잔고 (어댑터가 돌려준 수량으로만 증가)
    # -------------------------------------------------------------------------

    async def get_holdings(self, fund_id: str) -> dict[str, int]:
        """토큰별 보유 잔고 (0 포함)"""
        rows = await self.db.fetchall(
            "SELECT token, amount FROM fund_holdings WHERE fund_id = ? ORDER BY token ASC",
            (fund_id,),
        )
        return {row[0]: int(row[1]) for row in rows}

    async def get_holding(self, fund_id: str, token: str) -> int:
        """단일 토큰 보유 잔고 (없으면 0)"""
        row = await self.db.fetchone(
            "SELECT amount FROM fund_holdings WHERE fund_id = ? AND token = ?",
            (fund_id, token),
        )
        return int(row[0]) if row else 0

    async def adjust_holding(self, fund_id: str, token: str, delta: int, ts: datetime) -> int:
        """보유 잔고 증감

        Returns:
            변경 후 잔고

        Raises:
            ValueError: 잔고가 음수가 되는 경우
        """
        current = await self.get_holding(fund_id, token)
        new_amount = current + delta
        if new_amount < 0:
            raise ValueError(
                f"보유 잔고가 음수가 됩니다: {fund_id} {token} {current} + ({delta})"
            )

        await self.db.execute(
            """
            INSERT INTO fund_holdings (fund_id, token, amount, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(fund_id, token)
            DO UPDATE SET amount = excluded.amount, updated_at = excluded.updated_at
            """,
            (fund_id, token, str(new_amount), to_iso(ts)),
        )
        return new_amount

    # -------------------------------------------------------------------------
    # 포지션
    # -------------------------------------------------------------------------

    async def insert_position(self, record: PositionRecord) -> None:
        """포지션 기록 (handle은 전체 펀드에서 유일)"""
        await self.db.execute(
            f"""
            INSERT INTO positions ({_POSITION_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.handle,
                record.fund_id,
                record.token_a,
                record.token_b,
                str(record.used_a),
                str(record.used_b),
                record.fee_tier,
                record.status.value,
                record.last_error,
                to_iso(record.created_at),
                to_iso(record.redeemed_at) if record.redeemed_at else None,
            ),
        )

    async def get_position(self, handle: str) -> PositionRecord | None:
        """handle로 포지션 조회"""
        row = await self.db.fetchone(
            f"SELECT {_POSITION_COLUMNS} FROM positions WHERE handle = ?",
            (handle,),
        )
        if row is None:
            return None
        return self._row_to_position(row)

    async def list_positions(
        self,
        fund_id: str,
        status: PositionStatus | None = None,
    ) -> list[PositionRecord]:
        """펀드의 포지션 목록 (생성 순서)"""
        if status is not None:
            rows = await self.db.fetchall(
                f"""
                SELECT {_POSITION_COLUMNS} FROM positions
                WHERE fund_id = ? AND status = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (fund_id, status.value),
            )
        else:
            rows = await self.db.fetchall(
                f"""
                SELECT {_POSITION_COLUMNS} FROM positions
                WHERE fund_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (fund_id,),
            )
        return [self._row_to_position(row) for row in rows]

    async def update_position_status(
        self,
        handle: str,
        status: PositionStatus,
        ts: datetime,
        last_error: str | None = None,
    ) -> None:
        """포지션 상태 변경

        REDEEMED로 바뀔 때만 redeemed_at 기록.
        """
        redeemed_at = to_iso(ts) if status == PositionStatus.REDEEMED else None
        await self.db.execute(
            """
            UPDATE positions SET status = ?, last_error = ?, redeemed_at = ?
            WHERE handle = ?
            """,
            (status.value, last_error, redeemed_at, handle),
        )

    async def count_unsettled_positions(self, fund_id: str) -> int:
        """출금을 막는 포지션 수 (OPEN + REDEEMING)"""
        row = await self.db.fetchone(
            "SELECT COUNT(*) FROM positions WHERE fund_id = ? AND status IN (?, ?)",
            (fund_id, *_UNSETTLED_STATUSES),
        )
        return row[0] if row else 0

    # -------------------------------------------------------------------------
    # 분배 기준 잔고 (첫 출금 시 동결)
    # -------------------------------------------------------------------------

    async def freeze_distribution(
        self,
        fund_id: str,
        balances: dict[str, int],
        ts: datetime,
    ) -> None:
        """분배 기준 잔고 동결"""
        await self.db.executemany(
            "INSERT INTO distribution_base (fund_id, token, amount) VALUES (?, ?, ?)",
            [(fund_id, token, str(amount)) for token, amount in balances.items()],
        )
        await self.db.execute(
            "UPDATE funds SET distribution_frozen_at = ? WHERE fund_id = ?",
            (to_iso(ts), fund_id),
        )

        logger.info(
            f"[{fund_id}] 분배 기준 잔고 동결",
            extra={
                "fund_id": fund_id,
                "balances": {token: str(amount) for token, amount in balances.items()},
            },
        )

    async def get_distribution_base(self, fund_id: str) -> dict[str, int] | None:
        """동결된 분배 기준 잔고 (미동결이면 None)"""
        row = await self.db.fetchone(
            "SELECT distribution_frozen_at FROM funds WHERE fund_id = ?",
            (fund_id,),
        )
        if row is None or row[0] is None:
            return None

        rows = await self.db.fetchall(
            "SELECT token, amount FROM distribution_base WHERE fund_id = ? ORDER BY token ASC",
            (fund_id,),
        )
        return {r[0]: int(r[1]) for r in rows}

    # -------------------------------------------------------------------------
    # 출금
    # -------------------------------------------------------------------------

    async def record_withdrawal(
        self,
        fund_id: str,
        depositor: str,
        token: str,
        amount: int,
        ts: datetime,
    ) -> None:
        """실제 이체된 출금 기록"""
        await self.db.execute(
            """
            INSERT INTO withdrawals (fund_id, depositor, token, amount, ts)
            VALUES (?, ?, ?, ?, ?)
            """,
            (fund_id, depositor, token, str(amount), to_iso(ts)),
        )

    async def withdrawn_amounts(self, fund_id: str, depositor: str) -> dict[str, int]:
        """입금자에게 이미 이체된 토큰별 합계"""
        rows = await self.db.fetchall(
            "SELECT token, amount FROM withdrawals WHERE fund_id = ? AND depositor = ?",
            (fund_id, depositor),
        )
        totals: dict[str, int] = {}
        for token, amount in rows:
            totals[token] = totals.get(token, 0) + int(amount)
        return totals

    # -------------------------------------------------------------------------
    # 내부
    # -------------------------------------------------------------------------

    def _row_to_fund(self, row: tuple[Any, ...]) -> FundRecord:
        return FundRecord(
            fund_id=row[0],
            name=row[1],
            manager=row[2],
            denomination_asset=row[3],
            open_until=from_iso(row[4]),
            matures_at=from_iso(row[5]),
            residual_policy=ResidualAssetPolicy(row[6]),
            total_value_locked=int(row[7]),
            total_value_locked_at_close=int(row[8]) if row[8] is not None else None,
            distribution_frozen_at=from_iso(row[9]) if row[9] else None,
            created_at=from_iso(row[10]),
        )

    def _row_to_position(self, row: tuple[Any, ...]) -> PositionRecord:
        return PositionRecord(
            handle=row[0],
            fund_id=row[1],
            token_a=row[2],
            token_b=row[3],
            used_a=int(row[4]),
            used_b=int(row[5]),
            fee_tier=row[6],
            status=PositionStatus(row[7]),
            last_error=row[8],
            created_at=from_iso(row[9]),
            redeemed_at=from_iso(row[10]) if row[10] else None,
        )
