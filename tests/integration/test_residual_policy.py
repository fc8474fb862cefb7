"""
잔여 자산 정책 테스트

DENOMINATION_ONLY / PRO_RATA_IN_KIND, 분배 기준 잔고 동결, 부분 이체 실패 후 재시도.
"""

import pytest

from adapters.mock.token_ledger import MockTokenLedger
from core.fund.errors import TransferFailure
from core.fund.fund import Fund
from core.types import ResidualAssetPolicy


async def _swap_and_mature(fund: Fund, clock, schedule, deposit) -> None:
    """alice 1000 / bob 500 입금, 600 USDC → 300 WETH 교환 후 만기"""
    await deposit(fund, "alice", 1_000)
    await deposit(fund, "bob", 500)
    clock.set(schedule.open_until)
    await fund.swap_tokens("manager", "USDC", "WETH", 600)
    clock.set(schedule.matures_at)


class TestDenominationOnly:
    """기준 자산만 분배"""

    @pytest.mark.asyncio
    async def test_other_asset_stays_in_fund(
        self, fund: Fund, tokens: MockTokenLedger, clock, schedule, deposit
    ) -> None:
        """WETH는 지급하지 않고 펀드에 잔류"""
        assert fund.residual_policy == ResidualAssetPolicy.DENOMINATION_ONLY
        await _swap_and_mature(fund, clock, schedule, deposit)

        alice = await fund.withdraw("alice")
        bob = await fund.withdraw("bob")

        assert alice.payouts == {"USDC": 600}
        assert bob.payouts == {"USDC": 300}
        assert tokens.balance("WETH", "alice") == 0
        assert await fund.holdings() == {"USDC": 0, "WETH": 300}
        assert await fund.fund_store.get_distribution_base(fund.fund_id) == {"USDC": 900}


class TestProRataInKind:
    """현물 비례 분배"""

    @pytest.mark.asyncio
    async def test_every_asset_distributed(
        self, make_fund, tokens: MockTokenLedger, clock, schedule, deposit
    ) -> None:
        """모든 보유 자산을 지분 비율로 지급"""
        fund = await make_fund(ResidualAssetPolicy.PRO_RATA_IN_KIND)
        await _swap_and_mature(fund, clock, schedule, deposit)

        alice = await fund.withdraw("alice")
        bob = await fund.withdraw("bob")

        assert alice.payouts == {"USDC": 600, "WETH": 200}
        assert bob.payouts == {"USDC": 300, "WETH": 100}
        assert tokens.balance("WETH", "alice") == 200
        assert await fund.holdings() == {"USDC": 0, "WETH": 0}

    @pytest.mark.asyncio
    async def test_zero_balance_assets_excluded(
        self, make_fund, clock, schedule, deposit
    ) -> None:
        """잔고 0인 자산은 분배 기준에서 제외"""
        fund = await make_fund(ResidualAssetPolicy.PRO_RATA_IN_KIND)
        await deposit(fund, "alice", 1_000)
        clock.set(schedule.open_until)
        await fund.swap_tokens("manager", "USDC", "WETH", 500)
        await fund.swap_tokens("manager", "WETH", "USDC", 250)
        clock.set(schedule.matures_at)

        receipt = await fund.withdraw("alice")

        assert receipt.payouts == {"USDC": 1_000}

    @pytest.mark.asyncio
    async def test_base_frozen_at_first_withdrawal(
        self, make_fund, tokens: MockTokenLedger, clock, schedule, deposit
    ) -> None:
        """첫 출금 이후 잔고가 늘어도 지급액은 동결 기준"""
        fund = await make_fund(ResidualAssetPolicy.PRO_RATA_IN_KIND)
        await _swap_and_mature(fund, clock, schedule, deposit)

        await fund.withdraw("alice")
        # 펀드 주소로 직접 전송된 토큰은 보유 잔고에 반영되지 않음
        tokens.mint("USDC", fund.address, 10_000)
        bob = await fund.withdraw("bob")

        assert bob.payouts == {"USDC": 300, "WETH": 100}
        base = await fund.fund_store.get_distribution_base(fund.fund_id)
        assert base == {"USDC": 900, "WETH": 300}

    @pytest.mark.asyncio
    async def test_retry_after_partial_transfer_failure(
        self, make_fund, tokens: MockTokenLedger, clock, schedule, deposit
    ) -> None:
        """기준 자산 이체 후 다른 자산 이체가 실패해도 재시도 시 이미 받은 만큼 차감"""
        fund = await make_fund(ResidualAssetPolicy.PRO_RATA_IN_KIND)
        await _swap_and_mature(fund, clock, schedule, deposit)
        usdc_before = tokens.balance("USDC", "alice")

        failed_once = False

        async def fail_first_weth(token: str, sender: str, recipient: str, amount: int) -> None:
            nonlocal failed_once
            if token == "WETH" and not failed_once:
                failed_once = True
                raise RuntimeError("WETH transfer reverted")

        tokens.before_transfer = fail_first_weth

        with pytest.raises(TransferFailure) as exc_info:
            await fund.withdraw("alice")

        assert exc_info.value.token == "WETH"
        assert await fund.deposited_amount("alice") == 1_000
        assert tokens.balance("USDC", "alice") == usdc_before + 600
        assert await fund.holdings() == {"USDC": 300, "WETH": 300}

        receipt = await fund.withdraw("alice")

        assert receipt.payouts == {"USDC": 600, "WETH": 200}
        assert tokens.balance("USDC", "alice") == usdc_before + 600
        assert tokens.balance("WETH", "alice") == 200
        assert await fund.deposited_amount("alice") == 0
        assert await fund.holdings() == {"USDC": 300, "WETH": 100}
