"""
어댑터 인터페이스 정의

Protocol 기반으로 정의하여 의존성 주입 및 Mock 교체 가능.
모든 구현체는 이 Protocol을 준수해야 함.

금액은 항상 토큰 최소 단위의 음이 아닌 정수(int).
"""

from typing import Protocol, runtime_checkable, TYPE_CHECKING


@runtime_checkable
class ITokenLedger(Protocol):
    """토큰 이동 프리미티브 인터페이스 (transfer/approve/transferFrom)

    실패는 False 반환 또는 예외로 표현됨. 호출자는 두 경우 모두 실패로 취급해야 함.
    """

    async def balance_of(self, token: str, holder: str) -> int:
        """보유 잔고 조회"""
        ...

    async def transfer(self, token: str, sender: str, recipient: str, amount: int) -> bool:
        """sender → recipient 이체

        Returns:
            성공 여부
        """
        ...

    async def approve(self, token: str, owner: str, spender: str, amount: int) -> bool:
        """spender가 owner 잔고에서 amount까지 인출하도록 허용 (기존 허용량 덮어씀)

        Returns:
            성공 여부
        """
        ...

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        """남은 허용량 조회"""
        ...

    async def transfer_from(
        self,
        token: str,
        spender: str,
        owner: str,
        recipient: str,
        amount: int,
    ) -> bool:
        """허용량 범위 내에서 owner → recipient 이체 (spender가 실행)

        Returns:
            성공 여부
        """
        ...


@runtime_checkable
class IExchangeAdapter(Protocol):
    """외부 교환(스왑) 어댑터 인터페이스

    원자적: 양수 amount_out으로 완료되거나, 부분 이동 없이 전체 실패.
    """

    @property
    def address(self) -> str:
        """어댑터 주소 (approve 대상)"""
        ...

    async def swap(self, payer: str, token_in: str, token_out: str, amount_in: int) -> int:
        """현재 시장가로 token_in → token_out 스왑

        payer가 사전에 amount_in 만큼 approve 해야 함.
        출력 토큰은 payer에게 전달됨.

        Args:
            payer: 입력 토큰 지불자 겸 출력 토큰 수령자
            token_in: 입력 토큰
            token_out: 출력 토큰
            amount_in: 입력 수량

        Returns:
            amount_out (출력 수량)

        Raises:
            AdapterError: 스왑 실패 시
        """
        ...


@runtime_checkable
class IPositionAdapter(Protocol):
    """외부 유동성 포지션 어댑터 인터페이스

    반환된 수량만이 실제 예치/반환 수량의 유일한 근거.
    """

    @property
    def address(self) -> str:
        """어댑터 주소 (approve 대상)"""
        ...

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
    ) -> "MintResult":
        """두 토큰으로 포지션 생성 (부분 사용 가능)

        Returns:
            MintResult (handle, used_a, used_b)

        Raises:
            AdapterError: 생성 실패 또는 최소 수량 미달
        """
        ...

    async def collect_fees(self, owner: str, handle: str) -> "TokenAmounts":
        """누적 수수료 수령 (포지션 유지)"""
        ...

    async def redeem(self, owner: str, handle: str) -> "TokenAmounts":
        """포지션 소각 후 원금 + 미수령 수수료 반환"""
        ...


# 순환 참조 방지를 위한 타입 힌트 (런타임에는 문자열로 유지)
# 실제 타입은 adapters.models에서 정의
if TYPE_CHECKING:
    from adapters.models import MintResult, TokenAmounts
