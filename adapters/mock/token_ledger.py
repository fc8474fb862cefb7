"""
Mock 토큰 원장

테스트용 transfer/approve/transferFrom 프리미티브.
ITokenLedger Protocol 준수.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable

# 이체 직전 호출되는 훅 (token, sender, recipient, amount)
TransferHook = Callable[[str, str, str, int], Awaitable[None]]


@dataclass
class TokenLedgerState:
    """Mock 상태 (메모리 내 저장)"""

    # (token, holder) -> 잔고
    balances: dict[tuple[str, str], int] = field(default_factory=dict)

    # (token, owner, spender) -> 허용량
    allowances: dict[tuple[str, str, str], int] = field(default_factory=dict)

    # 시뮬레이션 옵션
    fail_next_transfer: bool = False
    raise_next_transfer: bool = False

    # 이체 기록 (token, sender, recipient, amount)
    transfers: list[tuple[str, str, str, int]] = field(default_factory=list)


class MockTokenLedger:
    """Mock 토큰 원장

    ITokenLedger Protocol 구현.
    잔고 부족/허용량 부족 시 False 반환 (boolean 실패 의미론).

    사용 예시:
    ```python
    tokens = MockTokenLedger()
    tokens.mint("USDC", "alice", 10_000)

    await tokens.approve("USDC", "alice", fund_id, 1_000)
    await tokens.transfer_from("USDC", fund_id, "alice", fund_id, 1_000)
    ```
    """

    def __init__(self, state: TokenLedgerState | None = None):
        self.state = state or TokenLedgerState()
        self.before_transfer: TransferHook | None = None

    # -------------------------------------------------------------------------
    # 상태 조작 메서드 (테스트용)
    # -------------------------------------------------------------------------

    def mint(self, token: str, holder: str, amount: int) -> None:
        """토큰 발행"""
        if amount < 0:
            raise ValueError("amount는 음수일 수 없습니다")
        key = (token, holder)
        self.state.balances[key] = self.state.balances.get(key, 0) + amount

    def burn(self, token: str, holder: str, amount: int) -> None:
        """토큰 소각"""
        key = (token, holder)
        current = self.state.balances.get(key, 0)
        if amount > current:
            raise ValueError(f"잔고 부족: {holder} {token} {current} < {amount}")
        self.state.balances[key] = current - amount

    def balance(self, token: str, holder: str) -> int:
        """동기 잔고 조회 (테스트 단언용)"""
        return self.state.balances.get((token, holder), 0)

    def set_fail_next_transfer(self, raise_error: bool = False) -> None:
        """다음 이체 실패 설정 (False 반환 또는 예외)"""
        if raise_error:
            self.state.raise_next_transfer = True
        else:
            self.state.fail_next_transfer = True

    # -------------------------------------------------------------------------
    # ITokenLedger 구현
    # -------------------------------------------------------------------------

    async def balance_of(self, token: str, holder: str) -> int:
        return self.balance(token, holder)

    async def transfer(self, token: str, sender: str, recipient: str, amount: int) -> bool:
        return await self._move(token, sender, recipient, amount)

    async def approve(self, token: str, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            return False
        self.state.allowances[(token, owner, spender)] = amount
        return True

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        return self.state.allowances.get((token, owner, spender), 0)

    async def transfer_from(
        self,
        token: str,
        spender: str,
        owner: str,
        recipient: str,
        amount: int,
    ) -> bool:
        key = (token, owner, spender)
        allowed = self.state.allowances.get(key, 0)
        if amount > allowed:
            return False

        # 허용량 차감 후 이체, 실패 시 복원
        self.state.allowances[key] = allowed - amount
        moved = await self._move(token, owner, recipient, amount)
        if not moved:
            self.state.allowances[key] = self.state.allowances.get(key, 0) + amount
        return moved

    # -------------------------------------------------------------------------
    # 내부
    # -------------------------------------------------------------------------

    async def _move(self, token: str, sender: str, recipient: str, amount: int) -> bool:
        if self.state.raise_next_transfer:
            self.state.raise_next_transfer = False
            raise RuntimeError("Mock transfer error")

        if self.state.fail_next_transfer:
            self.state.fail_next_transfer = False
            return False

        if amount < 0 or self.balance(token, sender) < amount:
            return False

        # 외부 호출 중 재진입 시뮬레이션 지점
        if self.before_transfer is not None:
            await self.before_transfer(token, sender, recipient, amount)

        # 훅 실행 중 잔고가 바뀌었을 수 있으므로 재확인
        if self.balance(token, sender) < amount:
            return False

        self.state.balances[(token, sender)] = self.balance(token, sender) - amount
        self.state.balances[(token, recipient)] = self.balance(token, recipient) + amount
        self.state.transfers.append((token, sender, recipient, amount))
        return True
