"""
core/domain/state_machines.py 테스트

펀드 단계 계산과 포지션 상태 전이 검증
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.domain.state_machines import (
    PositionStateMachine,
    StateMachine,
    StateMachineError,
    derive_phase,
)
from core.types import FundPhase, PositionStatus

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
OPEN_UNTIL = T0 + timedelta(days=30)
MATURES_AT = T0 + timedelta(days=60)


class TestDerivePhase:
    """derive_phase 테스트"""

    def test_raising_before_open_until(self) -> None:
        """모집 마감 전"""
        assert derive_phase(T0, OPEN_UNTIL, MATURES_AT, False) == FundPhase.RAISING

    def test_deploying_at_open_until(self) -> None:
        """open_until 경계는 DEPLOYING"""
        assert derive_phase(OPEN_UNTIL, OPEN_UNTIL, MATURES_AT, False) == FundPhase.DEPLOYING

    def test_deploying_just_before_maturity(self) -> None:
        """만기 직전"""
        now = MATURES_AT - timedelta(seconds=1)
        assert derive_phase(now, OPEN_UNTIL, MATURES_AT, True) == FundPhase.DEPLOYING

    def test_matured_pending_redemption(self) -> None:
        """만기, 미정산 포지션 있음"""
        assert (
            derive_phase(MATURES_AT, OPEN_UNTIL, MATURES_AT, True)
            == FundPhase.MATURED_PENDING_REDEMPTION
        )

    def test_matured_withdrawable(self) -> None:
        """만기, 미정산 포지션 없음"""
        now = MATURES_AT + timedelta(days=1)
        assert derive_phase(now, OPEN_UNTIL, MATURES_AT, False) == FundPhase.MATURED_WITHDRAWABLE

    def test_positions_do_not_matter_before_maturity(self) -> None:
        """만기 전에는 포지션 여부와 무관"""
        assert derive_phase(T0, OPEN_UNTIL, MATURES_AT, True) == FundPhase.RAISING


class TestStateMachine:
    """StateMachine 기본 클래스 테스트"""

    def test_transition(self) -> None:
        """허용된 전이"""
        machine = StateMachine("A", {"A": ["B"], "B": ["C"]}, name="Test")

        machine.transition("B")
        machine.transition("C")

        assert machine.state == "C"

    def test_invalid_transition(self) -> None:
        """허용되지 않은 전이"""
        machine = StateMachine("A", {"A": ["B"]})

        with pytest.raises(StateMachineError, match="Cannot transition"):
            machine.transition("C")

        assert machine.state == "A"


class TestPositionStateMachine:
    """PositionStateMachine 테스트"""

    def test_initial_open(self) -> None:
        """초기 상태 OPEN"""
        machine = PositionStateMachine()

        assert machine.state == "OPEN"
        assert machine.can_transition(PositionStatus.REDEEMING) is True

    def test_successful_redemption(self) -> None:
        """OPEN → REDEEMING → REDEEMED"""
        machine = PositionStateMachine(PositionStatus.OPEN)

        assert machine.transition(PositionStatus.REDEEMING) == "REDEEMING"
        assert machine.transition(PositionStatus.REDEEMED) == "REDEEMED"
        assert machine.can_transition(PositionStatus.OPEN) is False

    def test_failed_redemption_returns_to_open(self) -> None:
        """REDEEMING → OPEN (재시도 가능)"""
        machine = PositionStateMachine()
        machine.transition(PositionStatus.REDEEMING)

        machine.transition(PositionStatus.OPEN)

        assert machine.state == "OPEN"
        assert machine.can_transition(PositionStatus.REDEEMING) is True

    def test_cannot_skip_redeeming(self) -> None:
        """OPEN → REDEEMED 직접 전이 불가"""
        machine = PositionStateMachine()

        with pytest.raises(StateMachineError):
            machine.transition(PositionStatus.REDEEMED)

    def test_redeemed_is_terminal(self) -> None:
        """REDEEMED 이후 전이 불가"""
        machine = PositionStateMachine(PositionStatus.REDEEMED)

        assert machine.can_transition(PositionStatus.OPEN) is False
        assert machine.can_transition(PositionStatus.REDEEMING) is False

    def test_interrupted_redemption_resumes(self) -> None:
        """중단되어 REDEEMING에 남은 포지션은 결과에 따라 종료 또는 복귀"""
        assert PositionStateMachine(PositionStatus.REDEEMING).can_transition(
            PositionStatus.REDEEMED
        )
        assert PositionStateMachine(PositionStatus.REDEEMING).can_transition(PositionStatus.OPEN)
