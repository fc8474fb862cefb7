"""
Fund - 풀 펀드 상태 머신

입금 원장, 생애주기 단계, 보유 포지션을 소유하고
교환/포지션 어댑터 호출을 조율하며 입금자별 최종 지급액을 계산.

원칙:
- 단계는 저장하지 않음. 모든 연산이 호출 시점 시각으로 다시 계산
- checks-effects-interactions: 상태 변경을 먼저 커밋한 뒤 외부 호출
- 외부 호출 실패 시 커밋한 변경을 정확히 되돌리는 보상 갱신 후 예외
- 보유 잔고는 어댑터가 돌려준 수량으로만 증가
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Callable
from uuid import uuid4

from adapters.db.sqlite_adapter import SQLiteAdapter
from adapters.interfaces import IExchangeAdapter, IPositionAdapter, ITokenLedger
from adapters.models import MintResult, TokenAmounts
from core.constants import Defaults
from core.domain.events import Event, EventTypes
from core.domain.state_machines import PositionStateMachine, derive_phase
from core.fund.accounting import distribution_for
from core.fund.errors import (
    ExternalCallFailure,
    FundError,
    InvalidRequest,
    NothingToWithdraw,
    PartialRedemptionFailure,
    PhaseViolation,
    PositionNotFound,
    TransferFailure,
    Unauthorized,
)
from core.ledger.store import LedgerStore
from core.storage.event_store import EventStore
from core.storage.fund_store import FundStore
from core.types import (
    EntityKind,
    FundPhase,
    FundRecord,
    PositionRecord,
    PositionStatus,
    ResidualAssetPolicy,
    WithdrawalReceipt,
)
from core.utils.idempotency import make_dedup_key
from core.utils.timezone import ensure_utc, now_utc

logger = logging.getLogger(__name__)


_MATURED = (FundPhase.MATURED_PENDING_REDEMPTION, FundPhase.MATURED_WITHDRAWABLE)
_ANY_PHASE = tuple(FundPhase)


def _is_amount(value: Any) -> bool:
    """음이 아닌 정수 여부 (bool 제외)"""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class Fund:
    """풀 펀드

    입금자 자금을 모아 만기까지 운용하고 지분 비율대로 돌려주는 펀드 하나.
    모든 연산은 호출자 식별자(caller)를 명시적으로 받음.

    Args:
        record: 펀드 기본 정보
        db: SQLiteAdapter 인스턴스
        tokens: 토큰 이동 프리미티브
        exchange: 교환 어댑터
        positions: 유동성 포지션 어댑터
        clock: 현재 시각 함수 (기본 now_utc, 테스트에서 교체)
        default_fee_tier: create_lp_position 기본 수수료 등급

    사용 예시:
    ```python
    fund = await registry.create_fund("manager", "USDC", open_until, matures_at, "Alpha")

    await tokens.approve("USDC", "alice", fund.address, 1_000)
    await fund.deposit("alice", 1_000)

    # 모집 마감 후 (매니저)
    await fund.swap_tokens("manager", "USDC", "WETH", 500)
    position = await fund.create_lp_position("manager", "USDC", "WETH", 500, 250)

    # 만기 후
    await fund.redeem_all_lp_positions("manager")
    receipt = await fund.withdraw("alice")
    ```
    """

    def __init__(
        self,
        record: FundRecord,
        db: SQLiteAdapter,
        tokens: ITokenLedger,
        exchange: IExchangeAdapter,
        positions: IPositionAdapter,
        clock: Callable[[], datetime] | None = None,
        default_fee_tier: int = Defaults.FEE_TIER,
    ):
        self.fund_id = record.fund_id
        self.name = record.name
        self.manager = record.manager
        self.denomination_asset = record.denomination_asset
        self.open_until = record.open_until
        self.matures_at = record.matures_at
        self.residual_policy = record.residual_policy

        self.db = db
        self.tokens = tokens
        self.exchange = exchange
        self.positions_adapter = positions
        self.default_fee_tier = default_fee_tier

        self.ledger_store = LedgerStore(db)
        self.fund_store = FundStore(db)
        self.event_store = EventStore(db)

        self._clock = clock or now_utc
        self._lock = asyncio.Lock()
        # 락을 잡은 태스크 (재진입 판별용)
        self._owner: asyncio.Task | None = None
        # 이 프로세스에서 어댑터 상환 호출이 진행 중인 handle
        self._redeeming: set[str] = set()
        self._close_frozen = record.total_value_locked_at_close is not None

    @property
    def address(self) -> str:
        """토큰 보유/승인 주체로서의 펀드 식별자"""
        return self.fund_id

    # =========================================================================
    # 입금자 연산
    # =========================================================================

    async def deposit(self, caller: str, amount: int) -> int:
        """입금 (RAISING 단계만)

        원장 변경과 입금 이벤트를 한 트랜잭션으로 먼저 커밋한 뒤
        transfer_from으로 토큰을 가져옴. 이체 실패 시 둘 다 되돌림.
        호출자는 사전에 펀드 주소로 approve 해야 함.

        Args:
            caller: 입금자
            amount: 기준 자산 최소 단위 금액 (> 0)

        Returns:
            입금 후 입금자 원장 금액

        Raises:
            InvalidRequest: amount <= 0
            PhaseViolation: now >= open_until
            TransferFailure: 토큰 이동 실패 (변경 사항 없음)
        """
        self._require_positive("deposit", "amount", amount)

        async with self._serialized():
            now = await self._guard("deposit", caller, (FundPhase.RAISING,))
            deposit_id = f"dep-{uuid4().hex[:12]}"
            token = self.denomination_asset

            async with self.db.transaction():
                await self.ledger_store.credit_deposit(self.fund_id, caller, amount, now)
                await self.ledger_store.record_deposit(deposit_id, self.fund_id, caller, amount, now)
                await self.fund_store.adjust_holding(self.fund_id, token, amount, now)
                event = await self._append_event(
                    EventTypes.DEPOSIT_RECORDED,
                    EntityKind.DEPOSIT,
                    deposit_id,
                    caller,
                    {"depositor": caller, "amount": str(amount)},
                    now,
                )

            try:
                moved = await self.tokens.transfer_from(
                    token, self.address, caller, self.address, amount
                )
            except Exception as e:
                await self._revert_deposit(deposit_id, event, caller, amount, now)
                raise TransferFailure(self.fund_id, token, amount, str(e)) from e

            if not moved:
                await self._revert_deposit(deposit_id, event, caller, amount, now)
                raise TransferFailure(self.fund_id, token, amount, "transfer_from returned False")

            entry = await self.ledger_store.deposited_amount(self.fund_id, caller)

        logger.info(
            f"[{self.fund_id}] 입금 기록: {caller} {amount} {token}",
            extra={"fund_id": self.fund_id, "depositor": caller, "amount": str(amount)},
        )
        return entry

    async def withdraw(self, caller: str) -> WithdrawalReceipt:
        """출금 (MATURED_WITHDRAWABLE 단계만)

        지급액 = 원장 금액 * 분배 기준 잔고 // 모집 마감 시점 total_value_locked (내림).
        분배 기준 잔고는 첫 출금 때 동결되므로 출금 순서와 무관하게 같은 금액.
        원장을 0으로 만든 뒤 이체 (재진입 이중 출금 방지).

        이체 도중 실패하면 원장과 미이체분 잔고를 되돌리고, 이미 이체된 토큰은
        출금 기록에 남아 재시도 시 차감됨.

        Returns:
            WithdrawalReceipt

        Raises:
            PhaseViolation: 만기 전이거나 미정산 포지션 존재
            NothingToWithdraw: 원장 금액 0
            TransferFailure: 토큰 이동 실패
        """
        async with self._serialized():
            now = await self._guard("withdraw", caller, (FundPhase.MATURED_WITHDRAWABLE,))

            entry = await self.ledger_store.deposited_amount(self.fund_id, caller)
            if entry == 0:
                raise NothingToWithdraw(self.fund_id, caller)

            total = await self.ledger_store.total_value_locked_at_close(self.fund_id)
            assert total is not None
            base = await self._distribution_base(now)
            payouts = distribution_for(entry, base, total)
            already_paid = await self.fund_store.withdrawn_amounts(self.fund_id, caller)

            due: list[tuple[str, int]] = []
            for token in self._payout_order(payouts):
                amount = payouts[token] - already_paid.get(token, 0)
                if amount > 0:
                    due.append((token, amount))

            async with self.db.transaction():
                await self.ledger_store.zero_entry(self.fund_id, caller, now)
                for token, amount in due:
                    await self.fund_store.adjust_holding(self.fund_id, token, -amount, now)

            pending = list(due)
            while pending:
                token, amount = pending[0]
                try:
                    moved = await self.tokens.transfer(token, self.address, caller, amount)
                except Exception as e:
                    await self._revert_withdrawal(caller, entry, pending, now)
                    raise TransferFailure(self.fund_id, token, amount, str(e)) from e

                if not moved:
                    await self._revert_withdrawal(caller, entry, pending, now)
                    raise TransferFailure(self.fund_id, token, amount, "transfer returned False")

                async with self.db.transaction():
                    await self.fund_store.record_withdrawal(
                        self.fund_id, caller, token, amount, now
                    )
                pending.pop(0)

            denomination_amount = payouts.get(self.denomination_asset, 0)
            async with self.db.transaction():
                await self._append_event(
                    EventTypes.WITHDRAWAL_COMPLETED,
                    EntityKind.WITHDRAWAL,
                    caller,
                    caller,
                    {
                        "depositor": caller,
                        "entry": str(entry),
                        "amount": str(denomination_amount),
                        "payouts": {t: str(a) for t, a in payouts.items()},
                    },
                    now,
                )

        logger.info(
            f"[{self.fund_id}] 출금 완료: {caller} {denomination_amount} {self.denomination_asset}",
            extra={
                "fund_id": self.fund_id,
                "depositor": caller,
                "entry": str(entry),
                "payouts": {t: str(a) for t, a in payouts.items()},
            },
        )
        return WithdrawalReceipt(
            depositor=caller,
            entry=entry,
            payouts=payouts,
            denomination_amount=denomination_amount,
        )

    # =========================================================================
    # 매니저 연산
    # =========================================================================

    async def swap_tokens(
        self,
        caller: str,
        token_in: str,
        token_out: str,
        amount_in: int,
    ) -> int:
        """토큰 교환 (DEPLOYING 단계, 매니저만)

        원장은 건드리지 않고 펀드 보유 잔고만 바뀜.

        Returns:
            교환 어댑터가 돌려준 amount_out (> 0 검증 후 반영)

        Raises:
            Unauthorized: caller != manager
            PhaseViolation: DEPLOYING 밖
            InvalidRequest: 잘못된 토큰/수량, 보유 잔고 부족
            ExternalCallFailure: 어댑터 실패 또는 amount_out <= 0
        """
        self._require_token("swap_tokens", token_in)
        self._require_token("swap_tokens", token_out)
        if token_in == token_out:
            raise InvalidRequest(self.fund_id, "swap_tokens: token_in and token_out must differ")
        self._require_positive("swap_tokens", "amount_in", amount_in)

        async with self._serialized():
            now = await self._guard(
                "swap_tokens", caller, (FundPhase.DEPLOYING,), manager_only=True
            )
            await self._require_holding("swap_tokens", token_in, amount_in)
            swap_id = f"swap-{uuid4().hex[:12]}"
            spender = self.exchange.address

            async with self.db.transaction():
                await self.fund_store.adjust_holding(self.fund_id, token_in, -amount_in, now)

            try:
                await self._approve(token_in, spender, amount_in)
                amount_out = await self.exchange.swap(self.address, token_in, token_out, amount_in)
            except Exception as e:
                await self._release({token_in: amount_in}, now)
                await self._reset_approvals(spender, token_in)
                if isinstance(e, FundError):
                    raise
                raise ExternalCallFailure(self.fund_id, "swap_tokens", str(e)) from e

            await self._reset_approvals(spender, token_in)

            if not _is_amount(amount_out) or amount_out == 0:
                await self._release({token_in: amount_in}, now)
                raise ExternalCallFailure(
                    self.fund_id, "swap_tokens", f"invalid amount_out: {amount_out!r}"
                )

            async with self.db.transaction():
                await self.fund_store.adjust_holding(self.fund_id, token_out, amount_out, now)
                await self._append_event(
                    EventTypes.TOKENS_SWAPPED,
                    EntityKind.SWAP,
                    swap_id,
                    caller,
                    {
                        "token_in": token_in,
                        "token_out": token_out,
                        "amount_in": str(amount_in),
                        "amount_out": str(amount_out),
                    },
                    now,
                )

        logger.info(
            f"[{self.fund_id}] 교환: {amount_in} {token_in} → {amount_out} {token_out}",
            extra={"fund_id": self.fund_id, "swap_id": swap_id},
        )
        return amount_out

    async def create_lp_position(
        self,
        caller: str,
        token_a: str,
        token_b: str,
        amount_a: int,
        amount_b: int,
        min_a: int = 0,
        min_b: int = 0,
        fee_tier: int | None = None,
    ) -> PositionRecord:
        """유동성 포지션 생성 (DEPLOYING 단계, 매니저만)

        요청 수량을 보유 잔고에서 먼저 차감하고, 어댑터가 실제 사용한 수량만
        포지션에 기록. 사용하지 않은 수량은 보유 잔고로 돌려놓음.

        어댑터가 최소 수량 미달을 보고하면 방금 만든 포지션을 즉시 상환해 되돌림.
        되돌리기마저 실패하면 가치가 사라지지 않도록 handle을 OPEN으로 기록.

        Args:
            caller: 호출자 (매니저)
            token_a, token_b: 포지션 토큰 쌍
            amount_a, amount_b: 요청 수량
            min_a, min_b: 최소 사용 수량 (슬리피지 한도)
            fee_tier: 수수료 등급 (None이면 기본값 3000)

        Returns:
            기록된 PositionRecord

        Raises:
            Unauthorized, PhaseViolation, InvalidRequest
            ExternalCallFailure: 어댑터 실패 또는 최소 수량 미달 (포지션 미기록)
        """
        self._require_token("create_lp_position", token_a)
        self._require_token("create_lp_position", token_b)
        if token_a == token_b:
            raise InvalidRequest(self.fund_id, "create_lp_position: token_a and token_b must differ")
        self._require_positive("create_lp_position", "amount_a", amount_a)
        self._require_positive("create_lp_position", "amount_b", amount_b)
        for name, minimum, requested in (("min_a", min_a, amount_a), ("min_b", min_b, amount_b)):
            if not _is_amount(minimum) or minimum > requested:
                raise InvalidRequest(
                    self.fund_id,
                    f"create_lp_position: {name} must be within [0, {requested}], got {minimum!r}",
                )
        if fee_tier is None:
            fee_tier = self.default_fee_tier
        self._require_positive("create_lp_position", "fee_tier", fee_tier)

        async with self._serialized():
            now = await self._guard(
                "create_lp_position", caller, (FundPhase.DEPLOYING,), manager_only=True
            )
            await self._require_holding("create_lp_position", token_a, amount_a)
            await self._require_holding("create_lp_position", token_b, amount_b)
            spender = self.positions_adapter.address
            reserved = {token_a: amount_a, token_b: amount_b}

            async with self.db.transaction():
                await self.fund_store.adjust_holding(self.fund_id, token_a, -amount_a, now)
                await self.fund_store.adjust_holding(self.fund_id, token_b, -amount_b, now)

            try:
                await self._approve(token_a, spender, amount_a)
                await self._approve(token_b, spender, amount_b)
                result = await self.positions_adapter.mint(
                    self.address, token_a, amount_a, token_b, amount_b, min_a, min_b, fee_tier
                )
            except Exception as e:
                await self._release(reserved, now)
                await self._reset_approvals(spender, token_a, token_b)
                if isinstance(e, FundError):
                    raise
                raise ExternalCallFailure(self.fund_id, "create_lp_position", str(e)) from e

            await self._reset_approvals(spender, token_a, token_b)

            problem = await self._check_mint_result(result, amount_a, amount_b, min_a, min_b)
            if problem is not None:
                await self._unwind_mint(
                    caller, result, token_a, token_b, amount_a, amount_b, fee_tier, problem, now
                )
                raise ExternalCallFailure(self.fund_id, "create_lp_position", problem)

            record = PositionRecord(
                handle=result.handle,
                fund_id=self.fund_id,
                token_a=token_a,
                token_b=token_b,
                used_a=result.used_a,
                used_b=result.used_b,
                fee_tier=fee_tier,
                status=PositionStatus.OPEN,
                last_error=None,
                created_at=now,
            )
            async with self.db.transaction():
                await self.fund_store.insert_position(record)
                await self._credit(
                    {token_a: amount_a - result.used_a, token_b: amount_b - result.used_b}, now
                )
                await self._append_event(
                    EventTypes.POSITION_CREATED,
                    EntityKind.POSITION,
                    record.handle,
                    caller,
                    {
                        "handle": record.handle,
                        "token_a": token_a,
                        "token_b": token_b,
                        "used_a": str(record.used_a),
                        "used_b": str(record.used_b),
                        "fee_tier": fee_tier,
                    },
                    now,
                )

        logger.info(
            f"[{self.fund_id}] 포지션 생성: {record.handle} "
            f"({record.used_a} {token_a} + {record.used_b} {token_b})",
            extra={"fund_id": self.fund_id, "handle": record.handle},
        )
        return record

    async def collect_fees(self, caller: str, handle: str) -> TokenAmounts:
        """포지션 수수료 수령 (OPEN 포지션, 매니저만, 단계 무관)

        포지션은 openPositions에 그대로 남음.

        Raises:
            Unauthorized, PositionNotFound
            ExternalCallFailure: 어댑터 실패 또는 잘못된 수량
        """
        async with self._serialized():
            now = await self._guard("collect_fees", caller, _ANY_PHASE, manager_only=True)
            position = await self._require_open_position(handle)

            try:
                fees = await self.positions_adapter.collect_fees(self.address, handle)
            except Exception as e:
                raise ExternalCallFailure(self.fund_id, "collect_fees", str(e)) from e

            problem = self._check_amounts(fees)
            if problem is not None:
                raise ExternalCallFailure(self.fund_id, "collect_fees", problem)

            async with self.db.transaction():
                await self._credit(
                    {position.token_a: fees.amount_a, position.token_b: fees.amount_b}, now
                )
                await self._append_event(
                    EventTypes.FEES_COLLECTED,
                    EntityKind.POSITION,
                    handle,
                    caller,
                    {"handle": handle, **fees.to_dict()},
                    now,
                    discriminator=uuid4().hex[:12],
                )

        logger.info(
            f"[{self.fund_id}] 수수료 수령: {handle} ({fees.amount_a}, {fees.amount_b})",
            extra={"fund_id": self.fund_id, "handle": handle},
        )
        return fees

    async def redeem_all_lp_positions(self, caller: str) -> list[str]:
        """모든 OPEN 포지션 상환 (만기 이후, 매니저만)

        handle마다 독립적으로 처리. 하나가 실패해도 나머지는 계속 상환하고,
        실패한 handle은 OPEN으로 남아 redemption_failures()에 사유가 기록됨.
        이전 호출이 중단되어 REDEEMING으로 남은 handle도 다시 상환.

        Returns:
            이번 호출에서 상환된 handle 목록

        Raises:
            Unauthorized, PhaseViolation
            PartialRedemptionFailure: 하나 이상 실패 (성공분은 반영된 상태)
        """
        async with self._serialized():
            now = await self._guard(
                "redeem_all_lp_positions", caller, _MATURED, manager_only=True
            )
            candidates = [
                position
                for position in await self.fund_store.list_positions(self.fund_id)
                if self._is_redeemable(position)
            ]

            redeemed: list[str] = []
            failed: dict[str, str] = {}
            for position in candidates:
                # 재진입 호출이 먼저 상환했을 수 있음
                current = await self.fund_store.get_position(position.handle)
                if current is None or not self._is_redeemable(current):
                    continue

                _, error = await self._redeem_position(current, caller, now)
                if error is None:
                    redeemed.append(current.handle)
                else:
                    failed[current.handle] = error

        if failed:
            logger.warning(
                f"[{self.fund_id}] 일괄 상환 부분 실패: {len(failed)}건",
                extra={"fund_id": self.fund_id, "failed": failed, "redeemed": redeemed},
            )
            raise PartialRedemptionFailure(self.fund_id, failed, redeemed)

        logger.info(
            f"[{self.fund_id}] 일괄 상환 완료: {len(redeemed)}건",
            extra={"fund_id": self.fund_id, "redeemed": redeemed},
        )
        return redeemed

    async def redeem_lp_position(self, caller: str, handle: str) -> TokenAmounts:
        """단일 포지션 상환 (실패 handle 개별 재시도용)

        Raises:
            Unauthorized, PhaseViolation, PositionNotFound
            ExternalCallFailure: 상환 실패 (handle은 OPEN으로 남음)
        """
        async with self._serialized():
            now = await self._guard("redeem_lp_position", caller, _MATURED, manager_only=True)
            position = await self._require_redeemable_position(handle)

            returned, error = await self._redeem_position(position, caller, now)
            if error is not None:
                raise ExternalCallFailure(self.fund_id, "redeem_lp_position", error)

        assert returned is not None
        return returned

    # =========================================================================
    # 조회
    # =========================================================================

    async def total_value_locked(self) -> int:
        """현재 원장 합계 (출금 시 감소, 모두 출금하면 0)"""
        return await self.ledger_store.total_value_locked(self.fund_id)

    async def total_value_locked_at_close(self) -> int | None:
        """모집 마감 시점 원장 합계 (모집 중이면 None)"""
        frozen = await self.ledger_store.total_value_locked_at_close(self.fund_id)
        if frozen is not None:
            return frozen
        if self._now() < self.open_until:
            return None
        # 마감 이후 아직 아무 연산도 없었으면 원장은 마감 시점 그대로
        return await self.ledger_store.total_value_locked(self.fund_id)

    async def deposited_amount(self, identity: str) -> int:
        """입금자 원장 금액 (출금 후 0)"""
        return await self.ledger_store.deposited_amount(self.fund_id, identity)

    async def phase(self) -> FundPhase:
        """현재 단계"""
        return await self._phase_at(self._now())

    async def open_positions(self) -> list[str]:
        """openPositions (OPEN 상태 handle 목록)"""
        records = await self.fund_store.list_positions(self.fund_id, PositionStatus.OPEN)
        return [record.handle for record in records]

    async def positions(self, status: PositionStatus | None = None) -> list[PositionRecord]:
        """포지션 목록 (상태 필터 선택)"""
        return await self.fund_store.list_positions(self.fund_id, status)

    async def holdings(self) -> dict[str, int]:
        """토큰별 보유 잔고"""
        return await self.fund_store.get_holdings(self.fund_id)

    async def depositors(self) -> dict[str, int]:
        """입금자별 원장 금액"""
        return await self.ledger_store.depositors(self.fund_id)

    async def redemption_failures(self) -> dict[str, str]:
        """상환 실패 후 OPEN으로 남은 handle → 마지막 실패 사유"""
        records = await self.fund_store.list_positions(self.fund_id, PositionStatus.OPEN)
        return {r.handle: r.last_error for r in records if r.last_error is not None}

    async def info(self) -> FundRecord:
        """펀드 기본 정보 (최신)"""
        record = await self.fund_store.get_fund(self.fund_id)
        assert record is not None
        return record

    async def events(self, event_type: str | None = None, limit: int = 1000) -> list[Event]:
        """펀드 이벤트 이력"""
        return await self.event_store.get_by_fund(self.fund_id, event_type, limit)

    # =========================================================================
    # 내부: 직렬화 / 가드
    # =========================================================================

    @asynccontextmanager
    async def _serialized(self) -> AsyncIterator[None]:
        """펀드 단위 직렬화

        락을 잡은 태스크 안에서 같은 펀드로 재진입한 호출은 락을 기다리지 않고
        이미 커밋된 상태를 그대로 봄. 외부 호출이 create_task로 띄운 태스크는
        다른 태스크이므로 락을 기다림.
        """
        current = asyncio.current_task()
        if self._owner is not None and self._owner is current:
            logger.debug(f"[{self.fund_id}] 재진입 호출")
            yield
            return

        async with self._lock:
            self._owner = current
            try:
                yield
            finally:
                self._owner = None

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    async def _phase_at(self, now: datetime) -> FundPhase:
        unsettled = await self.fund_store.count_unsettled_positions(self.fund_id)
        return derive_phase(now, self.open_until, self.matures_at, unsettled > 0)

    async def _guard(
        self,
        operation: str,
        caller: str,
        allowed: tuple[FundPhase, ...],
        manager_only: bool = False,
    ) -> datetime:
        """권한 → 단계 확인 후 호출 시각 반환

        모집 마감 이후 첫 연산이면 total_value_locked를 동결.
        """
        if manager_only and caller != self.manager:
            logger.warning(
                f"[{self.fund_id}] 권한 없음: {operation} by {caller}",
                extra={"fund_id": self.fund_id, "operation": operation, "caller": caller},
            )
            raise Unauthorized(self.fund_id, operation, caller)

        now = self._now()
        phase = await self._phase_at(now)
        if phase not in allowed:
            raise PhaseViolation(self.fund_id, operation, phase, allowed)

        if not self._close_frozen and now >= self.open_until:
            async with self.db.transaction():
                await self.ledger_store.freeze_total_at_close(self.fund_id)
            self._close_frozen = True

        return now

    # =========================================================================
    # 내부: 검증
    # =========================================================================

    def _require_positive(self, operation: str, name: str, value: Any) -> None:
        if not _is_amount(value) or value == 0:
            raise InvalidRequest(
                self.fund_id, f"{operation}: {name} must be a positive integer, got {value!r}"
            )

    def _require_token(self, operation: str, token: Any) -> None:
        if not isinstance(token, str) or not token:
            raise InvalidRequest(self.fund_id, f"{operation}: invalid token {token!r}")

    async def _require_holding(self, operation: str, token: str, amount: int) -> None:
        held = await self.fund_store.get_holding(self.fund_id, token)
        if held < amount:
            raise InvalidRequest(
                self.fund_id, f"{operation}: insufficient {token} holdings ({held} < {amount})"
            )

    async def _require_open_position(self, handle: str) -> PositionRecord:
        position = await self.fund_store.get_position(handle)
        if position is None or position.fund_id != self.fund_id or not position.is_open:
            raise PositionNotFound(self.fund_id, handle)
        return position

    async def _require_redeemable_position(self, handle: str) -> PositionRecord:
        """OPEN 또는 중단된 REDEEMING 포지션만 상환 대상"""
        position = await self.fund_store.get_position(handle)
        if (
            position is None
            or position.fund_id != self.fund_id
            or not self._is_redeemable(position)
        ):
            raise PositionNotFound(self.fund_id, handle)
        return position

    def _is_redeemable(self, position: PositionRecord) -> bool:
        # REDEEMING인데 진행 중인 호출이 없으면 이전 호출이 중단된 것
        if position.is_settled or position.handle in self._redeeming:
            return False
        return position.is_open or position.status == PositionStatus.REDEEMING

    @staticmethod
    def _check_amounts(amounts: Any) -> str | None:
        """어댑터가 돌려준 TokenAmounts 검증 (문제 없으면 None)"""
        if not isinstance(amounts, TokenAmounts):
            return f"unexpected amounts result: {amounts!r}"
        if not _is_amount(amounts.amount_a) or not _is_amount(amounts.amount_b):
            return f"invalid amounts reported: {amounts!r}"
        return None

    async def _check_mint_result(
        self,
        result: Any,
        amount_a: int,
        amount_b: int,
        min_a: int,
        min_b: int,
    ) -> str | None:
        """MintResult 검증 (문제 없으면 None)"""
        if not isinstance(result, MintResult):
            return f"unexpected mint result: {result!r}"
        if not isinstance(result.handle, str) or not result.handle:
            return f"invalid handle: {result.handle!r}"
        if await self.fund_store.get_position(result.handle) is not None:
            return f"handle already recorded: {result.handle}"
        if not _is_amount(result.used_a) or result.used_a > amount_a:
            return f"invalid used_a: {result.used_a!r}"
        if not _is_amount(result.used_b) or result.used_b > amount_b:
            return f"invalid used_b: {result.used_b!r}"
        if result.used_a < min_a or result.used_b < min_b:
            return (
                f"used amounts below minimum: "
                f"({result.used_a}, {result.used_b}) < ({min_a}, {min_b})"
            )
        return None

    # =========================================================================
    # 내부: 보상 / 잔고
    # =========================================================================

    async def _credit(self, amounts: dict[str, int], now: datetime) -> None:
        """보유 잔고 증가 (트랜잭션 안에서 호출)"""
        for token, amount in amounts.items():
            if amount > 0:
                await self.fund_store.adjust_holding(self.fund_id, token, amount, now)

    async def _release(self, reserved: dict[str, int], now: datetime) -> None:
        """외부 호출 전에 차감한 보유 잔고 복원"""
        async with self.db.transaction():
            await self._credit(reserved, now)

    async def _revert_deposit(
        self,
        deposit_id: str,
        event: Event,
        depositor: str,
        amount: int,
        now: datetime,
    ) -> None:
        async with self.db.transaction():
            await self.ledger_store.debit(self.fund_id, depositor, amount, now)
            await self.ledger_store.delete_deposit(deposit_id)
            await self.event_store.discard(event)
            await self.fund_store.adjust_holding(
                self.fund_id, self.denomination_asset, -amount, now
            )
        logger.warning(
            f"[{self.fund_id}] 입금 이체 실패, 원장 복원: {depositor} {amount}",
            extra={"fund_id": self.fund_id, "deposit_id": deposit_id},
        )

    async def _revert_withdrawal(
        self,
        depositor: str,
        entry: int,
        pending: list[tuple[str, int]],
        now: datetime,
    ) -> None:
        async with self.db.transaction():
            await self.ledger_store.restore_entry(self.fund_id, depositor, entry, now)
            for token, amount in pending:
                await self.fund_store.adjust_holding(self.fund_id, token, amount, now)
        logger.warning(
            f"[{self.fund_id}] 출금 이체 실패, 원장 복원: {depositor} {entry}",
            extra={
                "fund_id": self.fund_id,
                "depositor": depositor,
                "pending": {t: str(a) for t, a in pending},
            },
        )

    async def _approve(self, token: str, spender: str, amount: int) -> None:
        try:
            approved = await self.tokens.approve(token, self.address, spender, amount)
        except Exception as e:
            raise TransferFailure(self.fund_id, token, amount, f"approve failed: {e}") from e
        if not approved:
            raise TransferFailure(self.fund_id, token, amount, "approve returned False")

    async def _reset_approvals(self, spender: str, *tokens: str) -> None:
        """남은 허용량 회수"""
        for token in tokens:
            try:
                await self.tokens.approve(token, self.address, spender, 0)
            except Exception as e:
                logger.error(
                    f"[{self.fund_id}] 허용량 회수 실패: {token} → {spender}",
                    extra={"fund_id": self.fund_id, "error": str(e)},
                    exc_info=True,
                )

    # =========================================================================
    # 내부: 포지션
    # =========================================================================

    async def _unwind_mint(
        self,
        caller: str,
        result: Any,
        token_a: str,
        token_b: str,
        amount_a: int,
        amount_b: int,
        fee_tier: int,
        problem: str,
        now: datetime,
    ) -> None:
        """기준 미달 mint 되돌리기

        보고된 사용량을 믿을 수 없으면 요청 수량 전부 사용된 것으로 간주.
        """
        used_a = result.used_a if isinstance(result, MintResult) and _is_amount(result.used_a) else amount_a
        used_b = result.used_b if isinstance(result, MintResult) and _is_amount(result.used_b) else amount_b
        used_a = min(used_a, amount_a)
        used_b = min(used_b, amount_b)
        unused = {token_a: amount_a - used_a, token_b: amount_b - used_b}

        handle = result.handle if isinstance(result, MintResult) else None
        unwindable = (
            isinstance(handle, str)
            and bool(handle)
            and await self.fund_store.get_position(handle) is None
        )
        if not unwindable:
            await self._release(unused, now)
            logger.error(
                f"[{self.fund_id}] mint 결과 거부, 되돌릴 handle 없음: {problem}",
                extra={"fund_id": self.fund_id, "result": repr(result)},
            )
            return

        try:
            returned = await self.positions_adapter.redeem(self.address, handle)
            unwind_problem = self._check_amounts(returned)
        except Exception as e:
            unwind_problem = str(e) or e.__class__.__name__

        if unwind_problem is None:
            async with self.db.transaction():
                await self._credit(unused, now)
                await self._credit(
                    {token_a: returned.amount_a, token_b: returned.amount_b}, now
                )
            logger.warning(
                f"[{self.fund_id}] mint 되돌림: {handle} ({problem})",
                extra={"fund_id": self.fund_id, "handle": handle},
            )
            return

        # 되돌리기 실패: 가치 보존을 위해 OPEN으로 기록해 만기 상환 대상에 포함
        record = PositionRecord(
            handle=handle,
            fund_id=self.fund_id,
            token_a=token_a,
            token_b=token_b,
            used_a=used_a,
            used_b=used_b,
            fee_tier=fee_tier,
            status=PositionStatus.OPEN,
            last_error=f"unwind failed: {unwind_problem}",
            created_at=now,
        )
        async with self.db.transaction():
            await self.fund_store.insert_position(record)
            await self._credit(unused, now)
            await self._append_event(
                EventTypes.POSITION_CREATED,
                EntityKind.POSITION,
                handle,
                caller,
                {
                    "handle": handle,
                    "token_a": token_a,
                    "token_b": token_b,
                    "used_a": str(used_a),
                    "used_b": str(used_b),
                    "fee_tier": fee_tier,
                    "unwind_error": unwind_problem,
                },
                now,
            )
        logger.error(
            f"[{self.fund_id}] mint 되돌리기 실패, OPEN으로 기록: {handle}",
            extra={"fund_id": self.fund_id, "handle": handle, "error": unwind_problem},
        )

    async def _redeem_position(
        self,
        position: PositionRecord,
        caller: str,
        now: datetime,
    ) -> tuple[TokenAmounts | None, str | None]:
        """포지션 하나 상환

        REDEEMING을 먼저 커밋해 openPositions에서 뺀 뒤 어댑터 호출.
        실패하면 OPEN으로 되돌리고 사유 기록. 호출이 취소되어도 OPEN으로 되돌린 뒤
        취소를 전파. 프로세스 종료로 REDEEMING에 남은 handle은 다음 상환 호출이 이어받음.

        Returns:
            (돌려받은 수량, None) 또는 (None, 실패 사유)
        """
        handle = position.handle
        machine = PositionStateMachine(position.status)
        if position.status == PositionStatus.REDEEMING:
            logger.warning(
                f"[{self.fund_id}] 중단된 상환 재시도: {handle}",
                extra={"fund_id": self.fund_id, "handle": handle},
            )
        else:
            machine.transition(PositionStatus.REDEEMING)
            async with self.db.transaction():
                await self.fund_store.update_position_status(
                    handle, PositionStatus.REDEEMING, now, position.last_error
                )

        self._redeeming.add(handle)
        try:
            try:
                returned = await self.positions_adapter.redeem(self.address, handle)
                problem = self._check_amounts(returned)
            except asyncio.CancelledError:
                async with self.db.transaction():
                    await self.fund_store.update_position_status(
                        handle, PositionStatus.OPEN, now, "redeem cancelled"
                    )
                logger.warning(
                    f"[{self.fund_id}] 포지션 상환 취소, OPEN으로 복귀: {handle}",
                    extra={"fund_id": self.fund_id, "handle": handle},
                )
                raise
            except Exception as e:
                problem = str(e) or e.__class__.__name__
        finally:
            self._redeeming.discard(handle)

        if problem is not None:
            machine.transition(PositionStatus.OPEN)
            async with self.db.transaction():
                await self.fund_store.update_position_status(
                    handle, PositionStatus.OPEN, now, problem
                )
                await self._append_event(
                    EventTypes.POSITION_REDEEM_FAILED,
                    EntityKind.POSITION,
                    handle,
                    caller,
                    {"handle": handle, "reason": problem},
                    now,
                    discriminator=uuid4().hex[:12],
                )
            logger.warning(
                f"[{self.fund_id}] 포지션 상환 실패: {handle}",
                extra={"fund_id": self.fund_id, "handle": handle, "error": problem},
            )
            return None, problem

        machine.transition(PositionStatus.REDEEMED)
        async with self.db.transaction():
            await self.fund_store.update_position_status(handle, PositionStatus.REDEEMED, now)
            await self._credit(
                {position.token_a: returned.amount_a, position.token_b: returned.amount_b}, now
            )
            await self._append_event(
                EventTypes.POSITION_REDEEMED,
                EntityKind.POSITION,
                handle,
                caller,
                {"handle": handle, **returned.to_dict()},
                now,
            )
        logger.info(
            f"[{self.fund_id}] 포지션 상환: {handle} ({returned.amount_a}, {returned.amount_b})",
            extra={"fund_id": self.fund_id, "handle": handle},
        )
        return returned, None

    # =========================================================================
    # 내부: 분배
    # =========================================================================

    async def _distribution_base(self, now: datetime) -> dict[str, int]:
        """분배 기준 잔고 (첫 출금 때 정책에 따라 동결)"""
        base = await self.fund_store.get_distribution_base(self.fund_id)
        if base is not None:
            return base

        holdings = await self.fund_store.get_holdings(self.fund_id)
        base = {self.denomination_asset: holdings.get(self.denomination_asset, 0)}
        if self.residual_policy == ResidualAssetPolicy.PRO_RATA_IN_KIND:
            for token, amount in holdings.items():
                if token != self.denomination_asset and amount > 0:
                    base[token] = amount

        async with self.db.transaction():
            await self.fund_store.freeze_distribution(self.fund_id, base, now)
        return base

    def _payout_order(self, payouts: dict[str, int]) -> list[str]:
        """기준 자산 먼저, 나머지는 이름순"""
        others = sorted(t for t in payouts if t != self.denomination_asset)
        if self.denomination_asset in payouts:
            return [self.denomination_asset, *others]
        return others

    async def _append_event(
        self,
        event_type: str,
        entity_kind: EntityKind,
        entity_id: str,
        actor: str,
        payload: dict[str, Any],
        now: datetime,
        discriminator: str | None = None,
    ) -> Event:
        """이벤트 기록 (트랜잭션 안에서 호출)"""
        event = Event.create(
            event_type=event_type,
            fund_id=self.fund_id,
            entity_kind=entity_kind.value,
            entity_id=entity_id,
            actor=actor,
            payload=payload,
            dedup_key=make_dedup_key(self.fund_id, event_type, entity_id, discriminator),
            ts=now,
        )
        await self.event_store.append(event, commit=False)
        return event
