"""
입금 원장

입금자별 원장 금액과 total_value_locked 관리.
지분 비율 계산의 근거가 되는 유일한 장부.

사용 예시:
```python
from core.ledger import LedgerStore

ledger_store = LedgerStore(db)

async with db.transaction():
    await ledger_store.credit_deposit(fund_id, "alice", 1_000, now)

total = await ledger_store.total_value_locked(fund_id)
```
"""

from core.ledger.store import LedgerStore

__all__ = [
    "LedgerStore",
]
