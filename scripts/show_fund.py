#!/usr/bin/env python3
"""펀드 상태 확인 스크립트

원장 (합계 검증), 입금 기록, 보유 잔고, 포지션, 최근 이벤트를 출력 (읽기 전용).

사용법:
    python scripts/show_fund.py fund-1a2b3c4d5e6f
    python scripts/show_fund.py fund-1a2b3c4d5e6f --events 20
"""

import argparse
import asyncio
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.config.loader import load_settings
from core.domain.state_machines import derive_phase
from core.ledger.store import LedgerStore
from core.storage.event_store import EventStore
from core.storage.fund_store import FundStore
from core.utils.timezone import now_utc


async def main(fund_id: str, config_path: Path | None, event_limit: int) -> int:
    settings = load_settings(config_path)

    async with SQLiteAdapter(settings.db_path, readonly=True) as db:
        fund_store = FundStore(db)
        ledger_store = LedgerStore(db)
        event_store = EventStore(db)

        record = await fund_store.get_fund(fund_id)
        if record is None:
            print(f"Unknown fund: {fund_id}")
            return 1

        unsettled = await fund_store.count_unsettled_positions(fund_id)
        phase = derive_phase(now_utc(), record.open_until, record.matures_at, unsettled > 0)

        print(f"Fund: {record.fund_id} ({record.name})")
        print(f"Manager: {record.manager}")
        print(f"Denomination: {record.denomination_asset}")
        print(f"Open until: {record.open_until.isoformat()}")
        print(f"Matures at: {record.matures_at.isoformat()}")
        print(f"Phase: {phase.value}")
        print(f"Residual policy: {record.residual_policy.value}")
        print(f"Total value locked: {record.total_value_locked}")
        print(f"Total value locked at close: {record.total_value_locked_at_close}")

        depositors = await ledger_store.depositors(fund_id)
        print(f"\nLedger ({len(depositors)}):")
        for depositor, amount in depositors.items():
            print(f"  - {depositor}: {amount}")

        ledger_sum = await ledger_store.sum_entries(fund_id)
        consistent = ledger_sum == record.total_value_locked
        print(f"  sum: {ledger_sum} ({'OK' if consistent else 'MISMATCH'})")

        deposits = await ledger_store.deposit_records(fund_id)
        print(f"\nDeposits ({len(deposits)}):")
        for deposit_id, depositor, amount, ts in deposits:
            print(f"  - {deposit_id}: {depositor} {amount} at {ts.isoformat()}")

        holdings = await fund_store.get_holdings(fund_id)
        print(f"\nHoldings ({len(holdings)}):")
        for token, amount in holdings.items():
            print(f"  - {token}: {amount}")

        positions = await fund_store.list_positions(fund_id)
        print(f"\nPositions ({len(positions)}):")
        for p in positions:
            error = f", last_error: {p.last_error}" if p.last_error else ""
            print(
                f"  - {p.handle}: {p.status.value}, "
                f"{p.used_a} {p.token_a} + {p.used_b} {p.token_b}{error}"
            )

        events = await event_store.get_by_fund(fund_id)
        recent = events[-event_limit:]
        print(f"\nRecent events ({len(recent)}/{len(events)}):")
        for e in recent:
            print(f"  - seq: {e.seq}, type: {e.event_type}, actor: {e.actor}, ts: {e.ts.isoformat()}")

    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="펀드 상태 확인")
    parser.add_argument("fund_id", help="펀드 ID (fund-...)")
    parser.add_argument("--config", type=Path, default=None, help="settings.yaml 경로")
    parser.add_argument("--events", type=int, default=10, help="출력할 최근 이벤트 수")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.fund_id, args.config, args.events)))
