"""
Event 도메인 모델

펀드의 모든 상태 변경은 Event로 기록됨 (외부 소비자가 이력을 재구성하는 근거)
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from core.utils.idempotency import make_dedup_key


@dataclass
class Event:
    """이벤트

    펀드 상태 변경을 기록하는 불변 데이터 구조.
    dedup_key로 중복 이벤트를 방지함.
    """

    event_id: str
    event_type: str
    ts: datetime
    fund_id: str
    entity_kind: str
    entity_id: str
    actor: str
    dedup_key: str
    payload: dict[str, Any]
    correlation_id: str
    seq: int | None = None  # DB에서 조회 시 자동 할당되는 시퀀스 번호

    @staticmethod
    def create(
        event_type: str,
        fund_id: str,
        entity_kind: str,
        entity_id: str,
        actor: str,
        payload: dict[str, Any],
        dedup_key: str | None = None,
        correlation_id: str | None = None,
        ts: datetime | None = None,
    ) -> "Event":
        """새 이벤트 생성

        Args:
            event_type: 이벤트 타입 (예: DepositRecorded)
            fund_id: 펀드 ID
            entity_kind: 엔티티 종류 (FUND, DEPOSIT, POSITION 등)
            entity_id: 엔티티 ID
            actor: 호출자 식별자
            payload: 이벤트 상세 데이터 (금액은 문자열)
            dedup_key: 중복 제거 키 (없으면 fund/type/entity로 생성)
            correlation_id: 상관 ID (없으면 자동 생성)
            ts: 발생 시각 (없으면 현재 UTC)

        Returns:
            새 Event 인스턴스
        """
        return Event(
            event_id=str(uuid4()),
            event_type=event_type,
            ts=ts or datetime.now(timezone.utc),
            fund_id=fund_id,
            entity_kind=entity_kind,
            entity_id=entity_id,
            actor=actor,
            dedup_key=dedup_key or make_dedup_key(fund_id, event_type, entity_id),
            payload=payload,
            correlation_id=correlation_id or str(uuid4()),
        )

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환 (직렬화용)"""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "ts": self.ts.isoformat(),
            "fund_id": self.fund_id,
            "entity_kind": self.entity_kind,
            "entity_id": self.entity_id,
            "actor": self.actor,
            "dedup_key": self.dedup_key,
            "payload": self.payload,
            "correlation_id": self.correlation_id,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Event":
        """딕셔너리에서 생성 (역직렬화용)"""
        ts = data["ts"]
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts)

        return Event(
            event_id=data["event_id"],
            event_type=data["event_type"],
            ts=ts,
            fund_id=data["fund_id"],
            entity_kind=data["entity_kind"],
            entity_id=data["entity_id"],
            actor=data["actor"],
            dedup_key=data["dedup_key"],
            payload=data.get("payload", {}),
            correlation_id=data["correlation_id"],
            seq=data.get("seq"),
        )


class EventTypes:
    """Event Type 상수"""

    # Fund
    FUND_CREATED: str = "FundCreated"

    # Deposit / Withdraw
    DEPOSIT_RECORDED: str = "DepositRecorded"
    WITHDRAWAL_COMPLETED: str = "WithdrawalCompleted"

    # Exchange
    TOKENS_SWAPPED: str = "TokensSwapped"

    # Liquidity Position
    POSITION_CREATED: str = "PositionCreated"
    FEES_COLLECTED: str = "FeesCollected"
    POSITION_REDEEMED: str = "PositionRedeemed"
    POSITION_REDEEM_FAILED: str = "PositionRedeemFailed"

    @classmethod
    def all_types(cls) -> list[str]:
        """모든 이벤트 타입 목록 반환"""
        return [
            value
            for name, value in vars(cls).items()
            if not name.startswith("_") and isinstance(value, str) and name.isupper()
        ]

    @classmethod
    def is_valid_type(cls, event_type: str) -> bool:
        """유효한 이벤트 타입인지 확인"""
        return event_type in cls.all_types()
