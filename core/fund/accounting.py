"""
지분 비율 계산

모든 금액은 토큰 최소 단위 정수. 나눗셈은 항상 내림(floor)이며
나머지(dust)는 어떤 입금자에게도 분배되지 않고 펀드에 남음.
"""


def pro_rata_share(entry: int, base: int, total: int) -> int:
    """지분 비율 지급액 = entry * base // total

    Args:
        entry: 입금자 원장 금액
        base: 분배 기준 잔고
        total: 모집 마감 시점 원장 합계

    Returns:
        내림한 지급액

    Raises:
        ValueError: 음수 입력 또는 total <= 0, entry > total
    """
    if entry < 0 or base < 0:
        raise ValueError(f"음수 금액은 허용되지 않습니다: entry={entry}, base={base}")
    if total <= 0:
        raise ValueError(f"total은 양수여야 합니다: {total}")
    if entry > total:
        raise ValueError(f"entry가 total보다 큽니다: {entry} > {total}")
    return entry * base // total


def distribution_for(entry: int, base_balances: dict[str, int], total: int) -> dict[str, int]:
    """토큰별 지급액 계산

    Example:
        >>> distribution_for(1000, {"USDC": 1501, "WETH": 7}, 1500)
        {'USDC': 1000, 'WETH': 4}
    """
    return {
        token: pro_rata_share(entry, base, total)
        for token, base in base_balances.items()
    }


def dust(base: int, paid_out_total: int) -> int:
    """분배 후 남는 잔여 금액"""
    if paid_out_total > base:
        raise ValueError(f"지급 합계가 기준 잔고를 초과합니다: {paid_out_total} > {base}")
    return base - paid_out_total
