"""
펀드 패키지

Fund 상태 머신, FundRegistry, 에러 분류, 지분 계산
"""

from core.fund.accounting import distribution_for, dust, pro_rata_share
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
from core.fund.fund import Fund
from core.fund.registry import FundRegistry

__all__ = [
    "Fund",
    "FundRegistry",
    # 에러
    "FundError",
    "PhaseViolation",
    "Unauthorized",
    "TransferFailure",
    "ExternalCallFailure",
    "PartialRedemptionFailure",
    "NothingToWithdraw",
    "InvalidRequest",
    "PositionNotFound",
    # 계산
    "pro_rata_share",
    "distribution_for",
    "dust",
]
