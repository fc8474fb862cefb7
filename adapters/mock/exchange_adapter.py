"""
Mock 교환 어댑터

고정 가격표 기반 스왑. IExchangeAdapter Protocol 준수.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR

from adapters.mock.token_ledger import MockTokenLedger
from adapters.models import AdapterError, AdapterErrorCodes


@dataclass
class ExchangeState:
    """Mock 상태 (메모리 내 저장)"""

    # (token_in, token_out) -> token_in 1단위당 token_out 수량
    prices: dict[tuple[str, str], Decimal] = field(default_factory=dict)

    # 시뮬레이션 옵션
    should_fail_next_swap: bool = False
    next_error_message: str = "Mock swap error"

    # 적대적 응답: 실제 이동량과 무관하게 보고할 amount_out
    reported_amount_out: int | None = None

    swap_count: int = 0


class MockExchangeAdapter:
    """Mock 교환 어댑터

    payer의 approve를 전제로 token_in을 가져가고 token_out을 발행해 돌려줌
    (유동성 무한한 마켓 메이커).

    사용 예시:
    ```python
    exchange = MockExchangeAdapter(tokens)
    exchange.set_price("USDC", "WETH", Decimal("0.0005"))

    amount_out = await exchange.swap(fund_id, "USDC", "WETH", 500_000_000)
    ```
    """

    def __init__(
        self,
        tokens: MockTokenLedger,
        address: str = "mock-exchange",
        state: ExchangeState | None = None,
    ):
        self.tokens = tokens
        self._address = address
        self.state = state or ExchangeState()

    @property
    def address(self) -> str:
        return self._address

    # -------------------------------------------------------------------------
    # 상태 조작 메서드 (테스트용)
    # -------------------------------------------------------------------------

    def set_price(self, token_in: str, token_out: str, price: Decimal) -> None:
        """가격 설정 (역방향 가격도 함께 설정)"""
        if price <= 0:
            raise ValueError("price는 양수여야 합니다")
        self.state.prices[(token_in, token_out)] = price
        self.state.prices[(token_out, token_in)] = Decimal(1) / price

    def set_fail_next_swap(self, error_message: str = "Mock swap error") -> None:
        """다음 스왑 실패 설정"""
        self.state.should_fail_next_swap = True
        self.state.next_error_message = error_message

    def set_reported_amount_out(self, amount_out: int | None) -> None:
        """보고할 amount_out 강제 (적대적 응답 시뮬레이션)"""
        self.state.reported_amount_out = amount_out

    def quote(self, token_in: str, token_out: str, amount_in: int) -> int:
        """예상 출력 수량 (내림)"""
        price = self.state.prices.get((token_in, token_out))
        if price is None:
            raise AdapterError(
                AdapterErrorCodes.NO_LIQUIDITY,
                f"No market for {token_in}->{token_out}",
            )
        return int((Decimal(amount_in) * price).to_integral_value(rounding=ROUND_FLOOR))

    # -------------------------------------------------------------------------
    # IExchangeAdapter 구현
    # -------------------------------------------------------------------------

    async def swap(self, payer: str, token_in: str, token_out: str, amount_in: int) -> int:
        if self.state.should_fail_next_swap:
            self.state.should_fail_next_swap = False
            raise AdapterError(AdapterErrorCodes.SIMULATED, self.state.next_error_message)

        amount_out = self.quote(token_in, token_out, amount_in)
        if self.state.reported_amount_out is None and amount_out <= 0:
            raise AdapterError(AdapterErrorCodes.NO_LIQUIDITY, "Output amount is zero")

        pulled = await self.tokens.transfer_from(
            token_in, self._address, payer, self._address, amount_in
        )
        if not pulled:
            raise AdapterError(
                AdapterErrorCodes.INSUFFICIENT_FUNDS,
                f"transferFrom failed: {payer} {token_in} {amount_in}",
            )

        if amount_out > 0:
            self.tokens.mint(token_out, self._address, amount_out)
            await self.tokens.transfer(token_out, self._address, payer, amount_out)

        self.state.swap_count += 1

        if self.state.reported_amount_out is not None:
            return self.state.reported_amount_out
        return amount_out
