"""
State Machines

펀드 생애주기 단계 계산과 유동성 포지션 상태 전이 관리.

펀드 단계는 저장하지 않음: 호출 시점마다 시각과 포지션 정산 여부로 다시 계산.
"""

import logging
from datetime import datetime
from enum import Enum

from core.types import FundPhase, PositionStatus

logger = logging.getLogger(__name__)


class StateMachineError(Exception):
    """상태 전이 오류"""
    pass


def derive_phase(
    now: datetime,
    open_until: datetime,
    matures_at: datetime,
    has_unsettled_positions: bool,
) -> FundPhase:
    """펀드 단계 계산 (순수 함수)

    전이 규칙:
    - now < open_until → RAISING
    - open_until <= now < matures_at → DEPLOYING
    - now >= matures_at, 미정산(OPEN/REDEEMING) 포지션 있음 → MATURED_PENDING_REDEMPTION
    - now >= matures_at, 미정산 포지션 없음 → MATURED_WITHDRAWABLE

    Args:
        now: 현재 시각
        open_until: 모집 마감 시각
        matures_at: 만기 시각
        has_unsettled_positions: OPEN 또는 REDEEMING 포지션 존재 여부

    Returns:
        FundPhase
    """
    if now < open_until:
        return FundPhase.RAISING
    if now < matures_at:
        return FundPhase.DEPLOYING
    if has_unsettled_positions:
        return FundPhase.MATURED_PENDING_REDEMPTION
    return FundPhase.MATURED_WITHDRAWABLE


class StateMachine:
    """상태 머신 기본 클래스

    Args:
        initial_state: 초기 상태
        transitions: 허용된 전이 정의 {from_state: [to_states]}
        name: 머신 이름 (로깅용)
    """

    def __init__(
        self,
        initial_state: str | Enum,
        transitions: dict[str, list[str]],
        name: str = "StateMachine",
    ):
        self._state = initial_state.value if isinstance(initial_state, Enum) else initial_state
        self._transitions = transitions
        self._name = name

    @property
    def state(self) -> str:
        """현재 상태"""
        return self._state

    def can_transition(self, to_state: str | Enum) -> bool:
        """전이 가능 여부 확인

        Args:
            to_state: 목표 상태

        Returns:
            전이 가능 여부
        """
        target = to_state.value if isinstance(to_state, Enum) else to_state
        allowed = self._transitions.get(self._state, [])
        return target in allowed

    def transition(self, to_state: str | Enum) -> str:
        """상태 전이

        Args:
            to_state: 목표 상태

        Returns:
            새 상태

        Raises:
            StateMachineError: 허용되지 않은 전이
        """
        target = to_state.value if isinstance(to_state, Enum) else to_state

        if not self.can_transition(target):
            allowed = self._transitions.get(self._state, [])
            raise StateMachineError(
                f"{self._name}: Cannot transition from {self._state} to {target}. "
                f"Allowed: {allowed}"
            )

        old_state = self._state
        self._state = target

        logger.debug(
            f"{self._name}: {old_state} → {target}",
        )

        return target


class PositionStateMachine(StateMachine):
    """유동성 포지션 상태 머신

    전이 규칙:
    - OPEN → REDEEMING: 상환 호출 직전 (openPositions에서 제외)
    - REDEEMING → REDEEMED: 상환 성공
    - REDEEMING → OPEN: 상환 실패 (재시도 대상으로 복귀)
    """

    TRANSITIONS: dict[str, list[str]] = {
        "OPEN": ["REDEEMING"],
        "REDEEMING": ["REDEEMED", "OPEN"],
    }

    def __init__(self, initial_state: str | PositionStatus = PositionStatus.OPEN):
        super().__init__(
            initial_state=initial_state,
            transitions=self.TRANSITIONS,
            name="PositionStateMachine",
        )
