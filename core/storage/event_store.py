"""
EventStore - 이벤트 저장소

펀드의 모든 관측 이벤트(입금, 포지션 생성/상환, 출금 등)를 기록.
dedup_key로 중복 이벤트를 방지하고, append-only 방식으로 저장.
"""

import json
import logging
from typing import Any

from adapters.db.sqlite_adapter import SQLiteAdapter
from core.domain.events import Event, EventTypes

logger = logging.getLogger(__name__)


_SELECT_COLUMNS = """
    seq, event_id, event_type, ts,
    fund_id, entity_kind, entity_id, actor, correlation_id,
    dedup_key, payload_json
"""


class EventStore:
    """이벤트 저장소

    모든 이벤트를 append-only로 저장하고, dedup_key로 중복 방지.

    Args:
        db: SQLiteAdapter 인스턴스

    사용 예시:
    ```python
    async with SQLiteAdapter(db_path) as db:
        event_store = EventStore(db)

        # 이벤트 저장
        saved = await event_store.append(event)

        # 펀드별 이벤트 조회
        events = await event_store.get_by_fund("fund-1a2b3c4d5e6f")
    ```
    """

    def __init__(self, db: SQLiteAdapter):
        self.db = db

    async def append(self, event: Event, commit: bool = True) -> bool:
        """이벤트 저장 (dedup_key로 중복 제거)

        Args:
            event: 저장할 Event 인스턴스
            commit: 즉시 커밋 여부 (외부 트랜잭션 안에서는 False)

        Returns:
            True: 저장 성공 (신규 이벤트)
            False: 중복으로 무시됨

        Raises:
            ValueError: 등록되지 않은 이벤트 타입
        """
        if not EventTypes.is_valid_type(event.event_type):
            raise ValueError(f"Unknown event type: {event.event_type}")

        payload_json = json.dumps(event.payload, ensure_ascii=False)
        ts_str = event.ts.isoformat()

        try:
            # INSERT OR IGNORE로 중복 방지 (dedup_key UNIQUE 제약)
            await self.db.execute(
                """
                INSERT OR IGNORE INTO event_store (
                    event_id, event_type, ts,
                    fund_id, entity_kind, entity_id, actor, correlation_id,
                    dedup_key, payload_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.event_id,
                    event.event_type,
                    ts_str,
                    event.fund_id,
                    event.entity_kind,
                    event.entity_id,
                    event.actor,
                    event.correlation_id,
                    event.dedup_key,
                    payload_json,
                ),
            )
            if commit:
                await self.db.commit()

            # INSERT OR IGNORE는 중복 시 행이 생기지 않음
            row = await self.db.fetchone(
                "SELECT seq FROM event_store WHERE event_id = ?",
                (event.event_id,),
            )

            if row:
                event.seq = row[0]
                logger.debug(
                    "이벤트 저장 완료",
                    extra={"event_id": event.event_id, "event_type": event.event_type},
                )
                return True
            else:
                logger.debug(
                    "이벤트 중복 (무시됨)",
                    extra={"dedup_key": event.dedup_key},
                )
                return False

        except Exception as e:
            logger.error(
                "이벤트 저장 실패",
                extra={"event_id": event.event_id, "error": str(e)},
            )
            raise

    async def get_by_fund(
        self,
        fund_id: str,
        event_type: str | None = None,
        limit: int = 1000,
    ) -> list[Event]:
        """펀드별 이벤트 조회

        Args:
            fund_id: 펀드 ID
            event_type: 이벤트 타입 필터 (None이면 전체)
            limit: 최대 조회 개수 (기본 1000)

        Returns:
            Event 리스트 (seq 순서로 정렬)
        """
        if event_type is not None:
            rows = await self.db.fetchall(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM event_store
                WHERE fund_id = ? AND event_type = ?
                ORDER BY seq ASC
                LIMIT ?
                """,
                (fund_id, event_type, limit),
            )
        else:
            rows = await self.db.fetchall(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM event_store
                WHERE fund_id = ?
                ORDER BY seq ASC
                LIMIT ?
                """,
                (fund_id, limit),
            )

        return [self._row_to_event(row) for row in rows]

    async def discard(self, event: Event) -> None:
        """입금 보상 트랜잭션에서 방금 기록한 이벤트 제거 (커밋하지 않음)

        그 외 이벤트는 append-only.
        """
        await self.db.execute("DELETE FROM event_store WHERE event_id = ?", (event.event_id,))
        logger.debug(
            "이벤트 제거",
            extra={"event_id": event.event_id, "event_type": event.event_type},
        )

    def _row_to_event(self, row: tuple[Any, ...]) -> Event:
        """DB 행을 Event 객체로 변환

        컬럼 순서:
        0: seq, 1: event_id, 2: event_type, 3: ts,
        4: fund_id, 5: entity_kind, 6: entity_id, 7: actor, 8: correlation_id,
        9: dedup_key, 10: payload_json
        """
        payload = row[10]
        if isinstance(payload, str):
            payload = json.loads(payload)

        return Event.from_dict(
            {
                "seq": row[0],
                "event_id": row[1],
                "event_type": row[2],
                "ts": row[3],
                "fund_id": row[4],
                "entity_kind": row[5],
                "entity_id": row[6],
                "actor": row[7],
                "correlation_id": row[8],
                "dedup_key": row[9],
                "payload": payload,
            }
        )
