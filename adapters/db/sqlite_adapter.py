"""
SQLite 어댑터

WAL 모드로 SQLite 연결 관리.
펀드 원장, 포지션, 이벤트 등 모든 영속 상태의 저장소.

주의: 금액은 TEXT(10진 문자열)로 저장 (SQLite INTEGER 64bit 한계 회피)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

from core.constants import Paths
from core.types import TradingMode

logger = logging.getLogger(__name__)


def get_db_path(mode: TradingMode | str) -> Path:
    """모드에 따른 DB 경로 반환

    Args:
        mode: 운영 모드 (PRODUCTION/TESTNET)

    Returns:
        DB 파일 경로 (Path 타입)
    """
    if isinstance(mode, str):
        mode = TradingMode(mode.lower())

    if mode == TradingMode.PRODUCTION:
        return Paths.PROD_DB
    return Paths.TEST_DB


async def create_connection(
    db_path: Path | str,
    readonly: bool = False,
) -> aiosqlite.Connection:
    """SQLite 연결 생성 (WAL 모드)

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부

    Returns:
        aiosqlite 연결 객체
    """
    db_path_str = str(db_path)

    # 디렉토리가 없으면 생성
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    if readonly:
        conn = await aiosqlite.connect(f"file:{db_path_str}?mode=ro", uri=True)
    else:
        conn = await aiosqlite.connect(db_path_str)

    # WAL 모드 설정
    await conn.execute("PRAGMA journal_mode=WAL")

    # 동시 접근 설정
    await conn.execute("PRAGMA busy_timeout=30000")  # 30초 대기

    # 외래 키 제약 활성화
    await conn.execute("PRAGMA foreign_keys=ON")

    logger.info(
        "SQLite 연결 생성",
        extra={"db_path": db_path_str, "readonly": readonly},
    )

    return conn


class SQLiteAdapter:
    """SQLite 어댑터

    WAL 모드로 SQLite 연결 관리.
    트랜잭션 컨텍스트 매니저 제공.

    Args:
        db_path: DB 파일 경로
        readonly: 읽기 전용 여부 (조회 스크립트용)

    사용 예시:
    ```python
    adapter = SQLiteAdapter(db_path)
    await adapter.connect()

    async with adapter.transaction() as conn:
        await conn.execute("INSERT INTO ...")

    await adapter.close()
    ```
    """

    def __init__(self, db_path: Path | str, readonly: bool = False):
        self.db_path = Path(db_path)
        self.readonly = readonly
        self._conn: aiosqlite.Connection | None = None
        # 같은 연결을 공유하는 여러 펀드의 트랜잭션이 섞이지 않도록 직렬화
        self._tx_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        """연결 상태 확인"""
        return self._conn is not None

    async def connect(self) -> None:
        """연결 생성"""
        if self._conn is not None:
            return

        self._conn = await create_connection(self.db_path, self.readonly)

    async def close(self) -> None:
        """연결 종료"""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("SQLite 연결 종료")

    async def execute(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> aiosqlite.Cursor:
        """SQL 실행"""
        if self._conn is None:
            raise RuntimeError("Not connected to database")

        if parameters:
            return await self._conn.execute(sql, parameters)
        return await self._conn.execute(sql)

    async def executemany(
        self,
        sql: str,
        parameters: list[tuple[Any, ...]],
    ) -> aiosqlite.Cursor:
        """SQL 다중 실행"""
        if self._conn is None:
            raise RuntimeError("Not connected to database")

        return await self._conn.executemany(sql, parameters)

    async def fetchone(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> tuple[Any, ...] | None:
        """단일 행 조회"""
        cursor = await self.execute(sql, parameters)
        return await cursor.fetchone()

    async def fetchall(
        self,
        sql: str,
        parameters: tuple[Any, ...] | None = None,
    ) -> list[tuple[Any, ...]]:
        """전체 행 조회"""
        cursor = await self.execute(sql, parameters)
        return list(await cursor.fetchall())

    async def commit(self) -> None:
        """커밋"""
        if self._conn is not None:
            await self._conn.commit()

    async def rollback(self) -> None:
        """롤백"""
        if self._conn is not None:
            await self._conn.rollback()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """트랜잭션 컨텍스트 매니저

        성공 시 자동 커밋, 예외 시 자동 롤백.
        중첩 호출 불가 (같은 태스크에서 다시 진입하면 교착).

        사용 예시:
        ```python
        async with adapter.transaction() as conn:
            await conn.execute("INSERT INTO ...")
            # 성공 시 자동 커밋
        ```
        """
        if self._conn is None:
            raise RuntimeError("Not connected to database")

        async with self._tx_lock:
            try:
                yield self._conn
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise

    async def table_exists(self, table_name: str) -> bool:
        """테이블 존재 여부 확인"""
        result = await self.fetchone(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,),
        )
        return result is not None

    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "SQLiteAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def init_schema(adapter: SQLiteAdapter) -> None:
    """스키마 초기화 (테이블 생성)

    Args:
        adapter: 연결된 SQLiteAdapter

    주의: 여러 번 호출해도 안전 (IF NOT EXISTS).
    """
    # funds (펀드 기본 정보 + 마감/분배 스냅샷)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS funds (
            fund_id                      TEXT PRIMARY KEY,
            name                         TEXT NOT NULL,
            manager                      TEXT NOT NULL,
            denomination_asset           TEXT NOT NULL,
            open_until                   TEXT NOT NULL,
            matures_at                   TEXT NOT NULL,
            residual_policy              TEXT NOT NULL DEFAULT 'DENOMINATION_ONLY',

            total_value_locked           TEXT NOT NULL DEFAULT '0',
            total_value_locked_at_close  TEXT,
            distribution_frozen_at       TEXT,

            created_seq                  INTEGER NOT NULL,
            created_at                   TEXT NOT NULL
        )
    """)

    # deposit_ledger (입금자별 누적 입금액)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS deposit_ledger (
            fund_id          TEXT NOT NULL,
            depositor        TEXT NOT NULL,
            amount           TEXT NOT NULL DEFAULT '0',
            updated_at       TEXT NOT NULL,

            PRIMARY KEY (fund_id, depositor),
            FOREIGN KEY (fund_id) REFERENCES funds(fund_id)
        )
    """)

    # deposits (감사용 입금 기록, 회계에는 미사용)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS deposits (
            deposit_id       TEXT PRIMARY KEY,
            fund_id          TEXT NOT NULL,
            depositor        TEXT NOT NULL,
            amount           TEXT NOT NULL,
            ts               TEXT NOT NULL,

            FOREIGN KEY (fund_id) REFERENCES funds(fund_id)
        )
    """)

    # fund_holdings (펀드 내부 토큰별 잔고)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS fund_holdings (
            fund_id          TEXT NOT NULL,
            token            TEXT NOT NULL,
            amount           TEXT NOT NULL DEFAULT '0',
            updated_at       TEXT NOT NULL,

            PRIMARY KEY (fund_id, token),
            FOREIGN KEY (fund_id) REFERENCES funds(fund_id)
        )
    """)

    # distribution_base (첫 출금 시 동결된 최종 유동 잔고)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS distribution_base (
            fund_id          TEXT NOT NULL,
            token            TEXT NOT NULL,
            amount           TEXT NOT NULL,

            PRIMARY KEY (fund_id, token),
            FOREIGN KEY (fund_id) REFERENCES funds(fund_id)
        )
    """)

    # positions (유동성 포지션, handle은 전체 펀드에서 유일)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS positions (
            handle           TEXT PRIMARY KEY,
            fund_id          TEXT NOT NULL,
            token_a          TEXT NOT NULL,
            token_b          TEXT NOT NULL,
            used_a           TEXT NOT NULL,
            used_b           TEXT NOT NULL,
            fee_tier         INTEGER NOT NULL,
            status           TEXT NOT NULL DEFAULT 'OPEN',
            last_error       TEXT,
            created_at       TEXT NOT NULL,
            redeemed_at      TEXT,

            FOREIGN KEY (fund_id) REFERENCES funds(fund_id)
        )
    """)

    # withdrawals (출금 지급 기록)
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS withdrawals (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            fund_id          TEXT NOT NULL,
            depositor        TEXT NOT NULL,
            token            TEXT NOT NULL,
            amount           TEXT NOT NULL,
            ts               TEXT NOT NULL,

            FOREIGN KEY (fund_id) REFERENCES funds(fund_id)
        )
    """)

    # event_store
    await adapter.execute("""
        CREATE TABLE IF NOT EXISTS event_store (
            seq              INTEGER PRIMARY KEY AUTOINCREMENT,
            event_id         TEXT NOT NULL UNIQUE,
            event_type       TEXT NOT NULL,
            ts               TEXT NOT NULL,

            fund_id          TEXT NOT NULL,
            entity_kind      TEXT NOT NULL,
            entity_id        TEXT NOT NULL,
            actor            TEXT NOT NULL,
            correlation_id   TEXT NOT NULL,

            dedup_key        TEXT NOT NULL UNIQUE,
            payload_json     TEXT NOT NULL,

            created_at       TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # 인덱스 생성
    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_funds_manager
        ON funds(manager, created_seq)
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_positions_fund_status
        ON positions(fund_id, status)
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_deposits_fund
        ON deposits(fund_id, ts)
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_event_store_fund
        ON event_store(fund_id, seq)
    """)

    await adapter.execute("""
        CREATE INDEX IF NOT EXISTS ix_event_store_type
        ON event_store(event_type)
    """)

    await adapter.commit()

    logger.info("스키마 초기화 완료")
