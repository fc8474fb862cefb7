"""
펀드 에러 분류

모든 실패는 호출자에게 동기적으로 전달됨. 내부 자동 재시도 없음.
"""

from core.types import FundPhase


class FundError(Exception):
    """펀드 에러 기본 클래스"""

    def __init__(self, fund_id: str, message: str):
        self.fund_id = fund_id
        self.message = message
        super().__init__(f"[{fund_id}] {message}")


class PhaseViolation(FundError):
    """허용된 생애주기 구간 밖에서 호출됨 (자동 재시도 대상 아님)"""

    def __init__(
        self,
        fund_id: str,
        operation: str,
        actual: FundPhase,
        allowed: tuple[FundPhase, ...],
    ):
        self.operation = operation
        self.actual = actual
        self.allowed = allowed
        allowed_str = ", ".join(p.value for p in allowed)
        super().__init__(
            fund_id,
            f"{operation} not allowed in {actual.value} (allowed: {allowed_str})",
        )


class Unauthorized(FundError):
    """호출자에게 필요한 역할이 없음"""

    def __init__(self, fund_id: str, operation: str, caller: str, role: str = "manager"):
        self.operation = operation
        self.caller = caller
        self.role = role
        super().__init__(fund_id, f"{operation} requires {role}, caller={caller}")


class TransferFailure(FundError):
    """토큰 이동 프리미티브 실패 (상태 변경 없이 중단)"""

    def __init__(self, fund_id: str, token: str, amount: int, reason: str):
        self.token = token
        self.amount = amount
        self.reason = reason
        super().__init__(fund_id, f"transfer of {amount} {token} failed: {reason}")


class ExternalCallFailure(FundError):
    """교환/포지션 어댑터 호출 실패 또는 최소 수량 미달

    매니저가 파라미터를 조정해 재시도 가능.
    """

    def __init__(self, fund_id: str, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(fund_id, f"{operation} external call failed: {reason}")


class PartialRedemptionFailure(FundError):
    """일괄 상환 중 일부 handle 실패

    성공한 handle은 openPositions에서 제거된 상태로 유지되고,
    실패한 handle은 남아 있어 개별 재시도 필요.

    Attributes:
        failed: handle -> 실패 사유
        redeemed: 이번 호출에서 상환 성공한 handle 목록
    """

    def __init__(self, fund_id: str, failed: dict[str, str], redeemed: list[str]):
        self.failed = dict(failed)
        self.redeemed = list(redeemed)
        super().__init__(
            fund_id,
            f"{len(self.failed)} position(s) failed to redeem: {sorted(self.failed)}",
        )


class NothingToWithdraw(FundError):
    """원장 금액이 0 (상태 변경 없음)"""

    def __init__(self, fund_id: str, depositor: str):
        self.depositor = depositor
        super().__init__(fund_id, f"nothing to withdraw for {depositor}")


class InvalidRequest(FundError, ValueError):
    """입력 검증 실패 (0 이하 금액, 잔고 부족, 잘못된 토큰 등)"""
    pass


class PositionNotFound(FundError):
    """펀드가 보유하지 않은(또는 이미 상환된) handle"""

    def __init__(self, fund_id: str, handle: str):
        self.handle = handle
        super().__init__(fund_id, f"position {handle} is not open in this fund")
