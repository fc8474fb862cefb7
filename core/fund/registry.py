"""
FundRegistry - 펀드 생성 및 매니저별 색인

펀드 하나당 Fund 객체 하나만 캐시해 모든 호출자가 같은 락을 공유.
"""

import logging
from datetime import datetime
from typing import Callable
from uuid import uuid4

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.interfaces import IExchangeAdapter, IPositionAdapter, ITokenLedger
from core.config.loader import FundSettings
from core.constants import Defaults
from core.domain.events import Event, EventTypes
from core.fund.errors import InvalidRequest
from core.fund.fund import Fund
from core.storage.event_store import EventStore
from core.storage.fund_store import FundStore
from core.types import EntityKind, FundRecord, ResidualAssetPolicy
from core.utils.timezone import ensure_utc, now_utc

logger = logging.getLogger(__name__)


class FundRegistry:
    """펀드 레지스트리

    Args:
        db: SQLiteAdapter 인스턴스 (init_schema 완료 상태)
        tokens: 토큰 이동 프리미티브
        exchange: 교환 어댑터
        positions: 유동성 포지션 어댑터
        clock: 현재 시각 함수 (기본 now_utc)
        settings: 운영 설정 (None이면 기본값)

    사용 예시:
    ```python
    registry = FundRegistry(db, tokens, exchange, positions)

    fund = await registry.create_fund(
        manager="manager",
        denomination_asset="USDC",
        open_until=now + timedelta(days=30),
        matures_at=now + timedelta(days=60),
        name="Alpha",
    )
    fund_ids = await registry.get_funds_by_manager("manager")
    ```
    """

    def __init__(
        self,
        db: SQLiteAdapter,
        tokens: ITokenLedger,
        exchange: IExchangeAdapter,
        positions: IPositionAdapter,
        clock: Callable[[], datetime] | None = None,
        settings: FundSettings | None = None,
    ):
        self.db = db
        self.tokens = tokens
        self.exchange = exchange
        self.positions = positions
        self.fund_store = FundStore(db)
        self.event_store = EventStore(db)
        self._clock = clock or now_utc

        if settings is not None:
            self.default_fee_tier = settings.default_fee_tier
            self.default_residual_policy = settings.default_residual_policy
        else:
            self.default_fee_tier = Defaults.FEE_TIER
            self.default_residual_policy = ResidualAssetPolicy(Defaults.RESIDUAL_POLICY)

        self._funds: dict[str, Fund] = {}

    async def create_fund(
        self,
        manager: str,
        denomination_asset: str,
        open_until: datetime,
        matures_at: datetime,
        name: str,
        residual_policy: ResidualAssetPolicy | None = None,
    ) -> Fund:
        """펀드 생성

        Args:
            manager: 매니저 식별자 (이후 변경 불가)
            denomination_asset: 입금 토큰
            open_until: 모집 마감 시각
            matures_at: 만기 시각 (open_until보다 뒤)
            name: 펀드 이름
            residual_policy: 잔여 자산 정책 (None이면 설정 기본값)

        Returns:
            생성된 Fund

        Raises:
            InvalidRequest: 빈 값 또는 open_until >= matures_at
        """
        fund_id = f"{Defaults.FUND_ID_PREFIX}-{uuid4().hex[:12]}"

        for field_name, value in (
            ("manager", manager),
            ("denomination_asset", denomination_asset),
            ("name", name),
        ):
            if not isinstance(value, str) or not value.strip():
                raise InvalidRequest(fund_id, f"create_fund: {field_name} must be non-empty")

        open_until = ensure_utc(open_until)
        matures_at = ensure_utc(matures_at)
        if open_until >= matures_at:
            raise InvalidRequest(
                fund_id,
                f"create_fund: open_until must be before matures_at "
                f"({open_until.isoformat()} >= {matures_at.isoformat()})",
            )

        policy = ResidualAssetPolicy(residual_policy or self.default_residual_policy)
        now = ensure_utc(self._clock())

        record = FundRecord(
            fund_id=fund_id,
            name=name,
            manager=manager,
            denomination_asset=denomination_asset,
            open_until=open_until,
            matures_at=matures_at,
            residual_policy=policy,
            total_value_locked=0,
            total_value_locked_at_close=None,
            distribution_frozen_at=None,
            created_at=now,
        )

        event = Event.create(
            event_type=EventTypes.FUND_CREATED,
            fund_id=fund_id,
            entity_kind=EntityKind.FUND.value,
            entity_id=fund_id,
            actor=manager,
            payload={
                "name": name,
                "manager": manager,
                "denomination_asset": denomination_asset,
                "open_until": open_until.isoformat(),
                "matures_at": matures_at.isoformat(),
                "residual_policy": policy.value,
            },
            ts=now,
        )

        async with self.db.transaction():
            await self.fund_store.insert_fund(record)
            await self.event_store.append(event, commit=False)

        logger.info(
            f"[{fund_id}] 펀드 생성: {name} (manager={manager}, asset={denomination_asset})",
            extra={
                "fund_id": fund_id,
                "open_until": open_until.isoformat(),
                "matures_at": matures_at.isoformat(),
            },
        )
        return self._attach(record)

    async def get_fund(self, fund_id: str) -> Fund:
        """ID로 펀드 조회

        Raises:
            KeyError: 존재하지 않는 펀드
        """
        cached = self._funds.get(fund_id)
        if cached is not None:
            return cached

        record = await self.fund_store.get_fund(fund_id)
        if record is None:
            raise KeyError(f"Unknown fund: {fund_id}")
        return self._attach(record)

    async def get_funds_by_manager(self, manager: str) -> list[str]:
        """매니저의 펀드 ID 목록 (생성 순서)"""
        return await self.fund_store.get_funds_by_manager(manager)

    async def list_funds(self) -> list[str]:
        """전체 펀드 ID 목록 (생성 순서)"""
        return await self.fund_store.list_fund_ids()

    def _attach(self, record: FundRecord) -> Fund:
        fund = self._funds.get(record.fund_id)
        if fund is None:
            fund = Fund(
                record=record,
                db=self.db,
                tokens=self.tokens,
                exchange=self.exchange,
                positions=self.positions,
                clock=self._clock,
                default_fee_tier=self.default_fee_tier,
            )
            self._funds[record.fund_id] = fund
        return fund
