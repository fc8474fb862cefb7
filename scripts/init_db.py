#!/usr/bin/env python3
"""DB 스키마 초기화 스크립트

settings.yaml의 mode에 맞는 DB 파일에 테이블 생성.

사용법:
    python scripts/init_db.py
    python scripts/init_db.py --config path/to/settings.yaml
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from adapters.db.sqlite_adapter import SQLiteAdapter, init_schema
from core.config.loader import load_settings
from core.logging import setup_logging

logger = logging.getLogger(__name__)


async def main(config_path: Path | None) -> None:
    settings = load_settings(config_path)
    setup_logging("init_db", console_level=settings.log_level)

    async with SQLiteAdapter(settings.db_path) as db:
        await init_schema(db)
        logger.info(f"스키마 초기화 완료: {settings.db_path}", extra={"mode": settings.mode.value})

        print(f"Mode: {settings.mode.value}")
        print(f"DB Path: {settings.db_path}")
        for table in (
            "funds",
            "deposit_ledger",
            "deposits",
            "fund_holdings",
            "distribution_base",
            "positions",
            "withdrawals",
            "event_store",
        ):
            exists = await db.table_exists(table)
            print(f"  - {table}: {'OK' if exists else 'MISSING'}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="DB 스키마 초기화")
    parser.add_argument("--config", type=Path, default=None, help="settings.yaml 경로")
    args = parser.parse_args()

    asyncio.run(main(args.config))
