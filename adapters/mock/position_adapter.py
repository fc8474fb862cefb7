"""
Mock 유동성 포지션 어댑터

NFT형 포지션 생성/수수료 수령/상환. IPositionAdapter Protocol 준수.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR

from adapters.mock.token_ledger import MockTokenLedger
from adapters.models import AdapterError, AdapterErrorCodes, MintResult, TokenAmounts


@dataclass
class MockPosition:
    """Mock 포지션 (메모리 내 저장)"""

    handle: str
    owner: str
    token_a: str
    token_b: str
    amount_a: int
    amount_b: int
    fee_tier: int
    fees_a: int = 0
    fees_b: int = 0


@dataclass
class PositionAdapterState:
    """Mock 상태 (메모리 내 저장)"""

    positions: dict[str, MockPosition] = field(default_factory=dict)

    # 부분 체결 비율 (요청 수량 대비 실제 사용 비율)
    fill_ratio_a: Decimal = Decimal(1)
    fill_ratio_b: Decimal = Decimal(1)

    # 시뮬레이션 옵션
    should_fail_next_mint: bool = False
    fail_redeem: dict[str, int] = field(default_factory=dict)  # handle -> 남은 실패 횟수
    fail_collect: set[str] = field(default_factory=set)

    # 적대적 응답: 실제 결과 대신 보고할 MintResult
    reported_mint: MintResult | None = None

    position_counter: int = 0


class MockPositionAdapter:
    """Mock 유동성 포지션 어댑터

    mint 시 owner의 approve를 전제로 실제 사용 수량만 가져감.
    수수료는 accrue_fees()로 누적시키고 collect_fees/redeem 시 발행해서 지급.

    사용 예시:
    ```python
    lp = MockPositionAdapter(tokens)
    lp.set_fill_ratio(Decimal(1), Decimal("0.8"))

    result = await lp.mint(fund_id, "USDC", 500, "WETH", 250, 0, 0, 3000)
    lp.accrue_fees(result.handle, 3, 1)
    amounts = await lp.redeem(fund_id, result.handle)
    ```
    """

    def __init__(
        self,
        tokens: MockTokenLedger,
        address: str = "mock-position-manager",
        handle_prefix: str = "pos",
        state: PositionAdapterState | None = None,
    ):
        self.tokens = tokens
        self._address = address
        self.handle_prefix = handle_prefix
        self.state = state or PositionAdapterState()

    @property
    def address(self) -> str:
        return self._address

    # -------------------------------------------------------------------------
    # 상태 조작 메서드 (테스트용)
    # -------------------------------------------------------------------------

    def set_fill_ratio(self, ratio_a: Decimal, ratio_b: Decimal) -> None:
        """부분 체결 비율 설정 (0 < ratio <= 1)"""
        for ratio in (ratio_a, ratio_b):
            if ratio <= 0 or ratio > 1:
                raise ValueError("fill ratio는 (0, 1] 범위여야 합니다")
        self.state.fill_ratio_a = ratio_a
        self.state.fill_ratio_b = ratio_b

    def set_fail_next_mint(self) -> None:
        """다음 mint 실패 설정"""
        self.state.should_fail_next_mint = True

    def set_fail_redeem(self, handle: str, times: int = 1) -> None:
        """특정 handle 상환을 times회 실패시키도록 설정"""
        self.state.fail_redeem[handle] = times

    def set_fail_collect(self, handle: str) -> None:
        """특정 handle 수수료 수령 실패 설정"""
        self.state.fail_collect.add(handle)

    def set_reported_mint(self, result: MintResult | None) -> None:
        """보고할 MintResult 강제 (적대적 응답 시뮬레이션)"""
        self.state.reported_mint = result

    def accrue_fees(self, handle: str, fees_a: int, fees_b: int) -> None:
        """수수료 누적"""
        position = self._get(handle)
        position.fees_a += fees_a
        position.fees_b += fees_b

    def set_position_value(self, handle: str, amount_a: int, amount_b: int) -> None:
        """상환 시 돌려줄 원금 변경 (가격 변동 시뮬레이션)"""
        position = self._get(handle)
        position.amount_a = amount_a
        position.amount_b = amount_b

    # -------------------------------------------------------------------------
    # IPositionAdapter 구현
    # -------------------------------------------------------------------------

    async def mint(
        self,
        owner: str,
        token_a: str,
        amount_a: int,
        token_b: str,
        amount_b: int,
        min_a: int,
        min_b: int,
        fee_tier: int,
    ) -> MintResult:
        if self.state.should_fail_next_mint:
            self.state.should_fail_next_mint = False
            raise AdapterError(AdapterErrorCodes.SIMULATED, "Mock mint error")

        used_a = self._fill(amount_a, self.state.fill_ratio_a)
        used_b = self._fill(amount_b, self.state.fill_ratio_b)

        if used_a < min_a or used_b < min_b:
            raise AdapterError(
                AdapterErrorCodes.BELOW_MINIMUM,
                f"Price slippage check: used=({used_a}, {used_b}) min=({min_a}, {min_b})",
            )

        if not await self.tokens.transfer_from(token_a, self._address, owner, self._address, used_a):
            raise AdapterError(AdapterErrorCodes.INSUFFICIENT_FUNDS, f"transferFrom failed: {token_a}")
        if not await self.tokens.transfer_from(token_b, self._address, owner, self._address, used_b):
            # token_a 반환 후 실패 (원자성)
            await self.tokens.transfer(token_a, self._address, owner, used_a)
            raise AdapterError(AdapterErrorCodes.INSUFFICIENT_FUNDS, f"transferFrom failed: {token_b}")

        self.state.position_counter += 1
        handle = f"{self.handle_prefix}-{self.state.position_counter}"
        self.state.positions[handle] = MockPosition(
            handle=handle,
            owner=owner,
            token_a=token_a,
            token_b=token_b,
            amount_a=used_a,
            amount_b=used_b,
            fee_tier=fee_tier,
        )

        if self.state.reported_mint is not None:
            return self.state.reported_mint
        return MintResult(handle=handle, used_a=used_a, used_b=used_b)

    async def collect_fees(self, owner: str, handle: str) -> TokenAmounts:
        position = self._get_owned(owner, handle)

        if handle in self.state.fail_collect:
            raise AdapterError(AdapterErrorCodes.SIMULATED, f"Mock collect error: {handle}")

        fees_a, fees_b = position.fees_a, position.fees_b
        position.fees_a = 0
        position.fees_b = 0

        await self._pay(position.token_a, owner, fees_a)
        await self._pay(position.token_b, owner, fees_b)
        return TokenAmounts(amount_a=fees_a, amount_b=fees_b)

    async def redeem(self, owner: str, handle: str) -> TokenAmounts:
        position = self._get_owned(owner, handle)

        remaining_failures = self.state.fail_redeem.get(handle, 0)
        if remaining_failures > 0:
            self.state.fail_redeem[handle] = remaining_failures - 1
            raise AdapterError(AdapterErrorCodes.SIMULATED, f"Mock redeem error: {handle}")

        del self.state.positions[handle]

        amount_a = position.amount_a + position.fees_a
        amount_b = position.amount_b + position.fees_b

        await self._pay(position.token_a, owner, amount_a)
        await self._pay(position.token_b, owner, amount_b)
        return TokenAmounts(amount_a=amount_a, amount_b=amount_b)

    # -------------------------------------------------------------------------
    # 내부
    # -------------------------------------------------------------------------

    @staticmethod
    def _fill(amount: int, ratio: Decimal) -> int:
        return int((Decimal(amount) * ratio).to_integral_value(rounding=ROUND_FLOOR))

    def _get(self, handle: str) -> MockPosition:
        position = self.state.positions.get(handle)
        if position is None:
            raise AdapterError(AdapterErrorCodes.UNKNOWN_POSITION, f"Unknown position: {handle}")
        return position

    def _get_owned(self, owner: str, handle: str) -> MockPosition:
        position = self._get(handle)
        if position.owner != owner:
            raise AdapterError(AdapterErrorCodes.NOT_OWNER, f"{owner} does not own {handle}")
        return position

    async def _pay(self, token: str, recipient: str, amount: int) -> None:
        """보유분 + 수수료 발행분에서 지급"""
        if amount <= 0:
            return
        shortfall = amount - self.tokens.balance(token, self._address)
        if shortfall > 0:
            self.tokens.mint(token, self._address, shortfall)
        if not await self.tokens.transfer(token, self._address, recipient, amount):
            raise AdapterError(AdapterErrorCodes.INSUFFICIENT_FUNDS, f"payout failed: {token}")
