"""
core/fund/accounting.py 테스트

내림 나눗셈, 토큰별 분배, dust 계산
"""

import pytest

from core.fund.accounting import distribution_for, dust, pro_rata_share


class TestProRataShare:
    """pro_rata_share 테스트"""

    def test_exact_division(self) -> None:
        """나누어떨어지는 경우"""
        assert pro_rata_share(500, 3000, 1500) == 1000

    def test_floor(self) -> None:
        """항상 내림"""
        assert pro_rata_share(1, 10, 3) == 3
        assert pro_rata_share(2, 10, 3) == 6

    def test_sole_depositor_gets_everything(self) -> None:
        """단독 입금자는 전액"""
        assert pro_rata_share(1000, 1234, 1000) == 1234

    def test_zero_base(self) -> None:
        """기준 잔고 0"""
        assert pro_rata_share(1000, 0, 1500) == 0

    def test_large_values(self) -> None:
        """64비트를 넘는 값도 정확"""
        entry = 10**30
        total = 3 * 10**30
        base = 10**40 + 1

        assert pro_rata_share(entry, base, total) == (10**40 + 1) // 3

    def test_zero_total_rejected(self) -> None:
        """total <= 0"""
        with pytest.raises(ValueError, match="total"):
            pro_rata_share(0, 100, 0)

    def test_negative_rejected(self) -> None:
        """음수 입력"""
        with pytest.raises(ValueError):
            pro_rata_share(-1, 100, 10)
        with pytest.raises(ValueError):
            pro_rata_share(1, -100, 10)

    def test_entry_above_total_rejected(self) -> None:
        """entry > total"""
        with pytest.raises(ValueError, match="entry"):
            pro_rata_share(11, 100, 10)


class TestDistributionFor:
    """distribution_for 테스트"""

    def test_per_token(self) -> None:
        """토큰별 내림 분배"""
        result = distribution_for(1000, {"USDC": 1501, "WETH": 7}, 1500)

        assert result == {"USDC": 1000, "WETH": 4}

    def test_two_to_one_ratio(self) -> None:
        """2:1 입금자 지급액은 2:1 (내림)"""
        base = {"USDC": 1507}
        a = distribution_for(1000, base, 1500)["USDC"]
        b = distribution_for(500, base, 1500)["USDC"]

        assert a == 1004
        assert b == 502
        assert a == 2 * b

    def test_total_never_exceeds_base(self) -> None:
        """지급 합계 <= 기준 잔고"""
        entries = [333, 333, 334]
        base = {"USDC": 1000, "WETH": 17}

        paid = [distribution_for(e, base, 1000) for e in entries]

        assert sum(p["USDC"] for p in paid) <= 1000
        assert sum(p["WETH"] for p in paid) <= 17


class TestDust:
    """dust 테스트"""

    def test_remainder(self) -> None:
        """분배 후 잔여"""
        assert dust(17, 15) == 2

    def test_overpaid_rejected(self) -> None:
        """지급 합계 초과"""
        with pytest.raises(ValueError):
            dust(10, 11)
