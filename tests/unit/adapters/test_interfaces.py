"""
Protocol 인터페이스 테스트

Protocol 타입 검증 및 Mock 구현 확인.
"""

from adapters.interfaces import IExchangeAdapter, IPositionAdapter, ITokenLedger
from adapters.mock.exchange_adapter import MockExchangeAdapter
from adapters.mock.position_adapter import MockPositionAdapter
from adapters.mock.token_ledger import MockTokenLedger


class TestITokenLedger:
    """ITokenLedger Protocol 테스트"""

    def test_mock_implements_protocol(self, tokens: MockTokenLedger) -> None:
        """Mock 토큰 원장이 Protocol을 구현하는지 확인"""
        assert isinstance(tokens, ITokenLedger)

    def test_protocol_has_required_methods(self, tokens: MockTokenLedger) -> None:
        """필수 메서드 확인"""
        for method_name in ("balance_of", "transfer", "approve", "allowance", "transfer_from"):
            assert callable(getattr(tokens, method_name)), f"Missing method: {method_name}"


class TestIExchangeAdapter:
    """IExchangeAdapter Protocol 테스트"""

    def test_mock_implements_protocol(self, exchange: MockExchangeAdapter) -> None:
        """Mock 교환 어댑터가 Protocol을 구현하는지 확인"""
        assert isinstance(exchange, IExchangeAdapter)
        assert exchange.address == "mock-exchange"


class TestIPositionAdapter:
    """IPositionAdapter Protocol 테스트"""

    def test_mock_implements_protocol(self, position_adapter: MockPositionAdapter) -> None:
        """Mock 포지션 어댑터가 Protocol을 구현하는지 확인"""
        assert isinstance(position_adapter, IPositionAdapter)
        assert position_adapter.address == "mock-position-manager"

    def test_protocol_has_required_methods(self, position_adapter: MockPositionAdapter) -> None:
        """필수 메서드 확인"""
        for method_name in ("mint", "collect_fees", "redeem"):
            assert callable(getattr(position_adapter, method_name)), f"Missing method: {method_name}"
