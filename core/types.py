"""
타입 정의 모듈

Enum, Dataclass 등 핵심 타입 정의
모든 Enum은 str을 상속하여 문자열 직렬화 가능
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class TradingMode(str, Enum):
    """운영 모드 (실운영 / 테스트넷)"""

    PRODUCTION = "production"
    TESTNET = "testnet"


class FundPhase(str, Enum):
    """펀드 생애주기 단계

    저장하지 않고 항상 (현재 시각, open_until, matures_at, 미정산 포지션 여부)로 계산.
    """

    RAISING = "RAISING"  # now < open_until: 입금 가능
    DEPLOYING = "DEPLOYING"  # open_until <= now < matures_at: 매니저 운용
    MATURED_PENDING_REDEMPTION = "MATURED_PENDING_REDEMPTION"  # 만기, 포지션 남음
    MATURED_WITHDRAWABLE = "MATURED_WITHDRAWABLE"  # 만기, 포지션 모두 상환


class PositionStatus(str, Enum):
    """유동성 포지션 상태"""

    OPEN = "OPEN"
    REDEEMING = "REDEEMING"  # 상환 호출 진행 중 (openPositions에서 제외됨)
    REDEEMED = "REDEEMED"


class ResidualAssetPolicy(str, Enum):
    """출금 시 기준 자산 외 잔여 자산 처리 정책"""

    DENOMINATION_ONLY = "DENOMINATION_ONLY"  # 기준 자산만 분배, 나머지는 펀드에 잔류
    PRO_RATA_IN_KIND = "PRO_RATA_IN_KIND"  # 다른 자산도 지분 비율대로 현물 분배


class EntityKind(str, Enum):
    """Entity 종류 (이벤트 대상)"""

    FUND = "FUND"
    DEPOSIT = "DEPOSIT"
    SWAP = "SWAP"
    POSITION = "POSITION"
    WITHDRAWAL = "WITHDRAWAL"


@dataclass(frozen=True)
class FundRecord:
    """펀드 기본 정보 (불변 필드 + 마감 스냅샷)

    Attributes:
        fund_id: 펀드 ID (온체인 주소 역할)
        name: 펀드 이름
        manager: 매니저 식별자
        denomination_asset: 입금 가능한 유일한 토큰
        open_until: 모집 마감 시각
        matures_at: 만기 시각
        residual_policy: 잔여 자산 처리 정책
        total_value_locked: 현재 원장 합계 (출금 시 감소)
        total_value_locked_at_close: 모집 마감 시점 원장 합계 (None이면 아직 미동결)
        distribution_frozen_at: 분배 기준 잔고 동결 시각
        created_at: 생성 시각
    """

    fund_id: str
    name: str
    manager: str
    denomination_asset: str
    open_until: datetime
    matures_at: datetime
    residual_policy: ResidualAssetPolicy
    total_value_locked: int
    total_value_locked_at_close: int | None
    distribution_frozen_at: datetime | None
    created_at: datetime


@dataclass(frozen=True)
class PositionRecord:
    """펀드가 보유한 유동성 포지션"""

    handle: str
    fund_id: str
    token_a: str
    token_b: str
    used_a: int
    used_b: int
    fee_tier: int
    status: PositionStatus
    last_error: str | None
    created_at: datetime
    redeemed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        """openPositions 포함 여부"""
        return self.status == PositionStatus.OPEN

    @property
    def is_settled(self) -> bool:
        """상환 완료 여부"""
        return self.status == PositionStatus.REDEEMED


@dataclass(frozen=True)
class WithdrawalReceipt:
    """출금 결과

    Attributes:
        depositor: 출금자
        entry: 0으로 초기화된 원장 금액
        payouts: 토큰별 지급액 (기준 자산은 항상 포함)
        denomination_amount: 기준 자산 지급액
    """

    depositor: str
    entry: int
    payouts: dict[str, int]
    denomination_amount: int
