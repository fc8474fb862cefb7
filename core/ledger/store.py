"""
입금 원장 저장소

입금자별 누적 입금액(deposit_ledger)과 펀드의 total_value_locked 관리.
지분 비율 = 원장 금액 / 모집 마감 시점 total_value_locked.

주의: 쓰기 메서드는 커밋하지 않음. 호출자가 SQLiteAdapter.transaction()으로 묶어야 함.
"""

import logging
from datetime import datetime

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.utils.timezone import to_iso

logger = logging.getLogger(__name__)


class LedgerStore:
    """입금 원장 저장소

    Args:
        db: SQLiteAdapter 인스턴스

    사용 예시:
    ```python
    ledger = LedgerStore(db)

    async with db.transaction():
        await ledger.credit_deposit("fund-1a2b3c4d5e6f", "alice", 1_000, now)

    amount = await ledger.deposited_amount("fund-1a2b3c4d5e6f", "alice")
    ```
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    async def deposited_amount(self, fund_id: str, depositor: str) -> int:
        """입금자 원장 금액 (없으면 0)"""
        row = await self.db.fetchone(
            "SELECT amount FROM deposit_ledger WHERE fund_id = ? AND depositor = ?",
            (fund_id, depositor),
        )
        return int(row[0]) if row else 0

    async def total_value_locked(self, fund_id: str) -> int:
        """현재 원장 합계 (출금 시 감소)"""
        row = await self.db.fetchone(
            "SELECT total_value_locked FROM funds WHERE fund_id = ?",
            (fund_id,),
        )
        if row is None:
            raise KeyError(f"Unknown fund: {fund_id}")
        return int(row[0])

    async def total_value_locked_at_close(self, fund_id: str) -> int | None:
        """모집 마감 시점 원장 합계 (미동결이면 None)"""
        row = await self.db.fetchone(
            "SELECT total_value_locked_at_close FROM funds WHERE fund_id = ?",
            (fund_id,),
        )
        if row is None:
            raise KeyError(f"Unknown fund: {fund_id}")
        return int(row[0]) if row[0] is not None else None

    async def sum_entries(self, fund_id: str) -> int:
        """원장 항목 합계 (total_value_locked 검증용)"""
        rows = await self.db.fetchall(
            "SELECT amount FROM deposit_ledger WHERE fund_id = ?",
            (fund_id,),
        )
        return sum(int(row[0]) for row in rows)

    async def depositors(self, fund_id: str) -> dict[str, int]:
        """입금자별 원장 금액 (출금 완료로 0인 항목 포함)"""
        rows = await self.db.fetchall(
            """
            SELECT depositor, amount FROM deposit_ledger
            WHERE fund_id = ?
            ORDER BY depositor ASC
            """,
            (fund_id,),
        )
        return {row[0]: int(row[1]) for row in rows}

    async def deposit_records(self, fund_id: str) -> list[tuple[str, str, int, datetime]]:
        """감사용 입금 기록 (deposit_id, depositor, amount, ts)"""
        rows = await self.db.fetchall(
            """
            SELECT deposit_id, depositor, amount, ts FROM deposits
            WHERE fund_id = ?
            ORDER BY ts ASC, deposit_id ASC
            """,
            (fund_id,),
        )
        return [
            (row[0], row[1], int(row[2]), datetime.fromisoformat(row[3]))
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # 쓰기 (커밋은 호출자 책임)
    # -------------------------------------------------------------------------

    async def credit_deposit(self, fund_id: str, depositor: str, amount: int, ts: datetime) -> int:
        """원장 금액 및 total_value_locked 증가

        Returns:
            증가 후 원장 금액
        """
        if amount < 0:
            raise ValueError(f"amount는 음수일 수 없습니다: {amount}")

        current = await self.deposited_amount(fund_id, depositor)
        new_amount = current + amount

        await self.db.execute(
            """
            INSERT INTO deposit_ledger (fund_id, depositor, amount, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(fund_id, depositor)
            DO UPDATE SET amount = excluded.amount, updated_at = excluded.updated_at
            """,
            (fund_id, depositor, str(new_amount), to_iso(ts)),
        )
        await self._adjust_total(fund_id, amount)

        return new_amount

    async def zero_entry(self, fund_id: str, depositor: str, ts: datetime) -> int:
        """원장 금액을 0으로 만들고 total_value_locked에서 차감

        Returns:
            0으로 만들기 전 금액
        """
        current = await self.deposited_amount(fund_id, depositor)
        if current == 0:
            return 0

        await self.db.execute(
            """
            UPDATE deposit_ledger SET amount = '0', updated_at = ?
            WHERE fund_id = ? AND depositor = ?
            """,
            (to_iso(ts), fund_id, depositor),
        )
        await self._adjust_total(fund_id, -current)

        return current

    async def restore_entry(self, fund_id: str, depositor: str, amount: int, ts: datetime) -> None:
        """zero_entry 보상 (출금 이체 실패 시)"""
        await self.credit_deposit(fund_id, depositor, amount, ts)

    async def debit(self, fund_id: str, depositor: str, amount: int, ts: datetime) -> None:
        """credit 보상 (입금 이체 실패 시)"""
        current = await self.deposited_amount(fund_id, depositor)
        if amount > current:
            raise ValueError(
                f"원장 금액보다 큰 차감: {fund_id}/{depositor} {current} < {amount}"
            )

        await self.db.execute(
            """
            UPDATE deposit_ledger SET amount = ?, updated_at = ?
            WHERE fund_id = ? AND depositor = ?
            """,
            (str(current - amount), to_iso(ts), fund_id, depositor),
        )
        await self._adjust_total(fund_id, -amount)

    async def record_deposit(
        self,
        deposit_id: str,
        fund_id: str,
        depositor: str,
        amount: int,
        ts: datetime,
    ) -> None:
        """감사용 입금 기록 추가"""
        await self.db.execute(
            """
            INSERT INTO deposits (deposit_id, fund_id, depositor, amount, ts)
            VALUES (?, ?, ?, ?, ?)
            """,
            (deposit_id, fund_id, depositor, str(amount), to_iso(ts)),
        )

    async def delete_deposit(self, deposit_id: str) -> None:
        """record_deposit 보상"""
        await self.db.execute(
            "DELETE FROM deposits WHERE deposit_id = ?",
            (deposit_id,),
        )

    async def freeze_total_at_close(self, fund_id: str) -> int:
        """모집 마감 시점 total_value_locked 동결 (이미 동결되었으면 기존 값)

        Returns:
            동결된 값
        """
        frozen = await self.total_value_locked_at_close(fund_id)
        if frozen is not None:
            return frozen

        total = await self.total_value_locked(fund_id)
        await self.db.execute(
            """
            UPDATE funds SET total_value_locked_at_close = ?
            WHERE fund_id = ? AND total_value_locked_at_close IS NULL
            """,
            (str(total), fund_id),
        )

        logger.info(
            f"[{fund_id}] total_value_locked 동결: {total}",
            extra={"fund_id": fund_id, "total_value_locked_at_close": str(total)},
        )
        return total

    # -------------------------------------------------------------------------
    # 내부
    # -------------------------------------------------------------------------

    async def _adjust_total(self, fund_id: str, delta: int) -> None:
        total = await self.total_value_locked(fund_id)
        new_total = total + delta
        if new_total < 0:
            raise ValueError(f"total_value_locked가 음수가 됩니다: {fund_id} {new_total}")

        await self.db.execute(
            "UPDATE funds SET total_value_locked = ? WHERE fund_id = ?",
            (str(new_total), fund_id),
        )
