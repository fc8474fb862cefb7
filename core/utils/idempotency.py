"""
Idempotency 유틸리티

이벤트 dedup_key 생성 및 파싱 기능 제공
규칙: {fund_id}:{event_type}:{entity_id}[:{discriminator}]
"""

# dedup_key 구분자
DEDUP_SEPARATOR: str = ":"


def make_dedup_key(
    fund_id: str,
    event_type: str,
    entity_id: str,
    discriminator: str | None = None,
) -> str:
    """결정적 dedup_key 생성

    같은 입력이면 항상 같은 키를 반환하므로, 동일 사실의 이벤트가
    두 번 저장되지 않음.

    Args:
        fund_id: 펀드 ID
        event_type: 이벤트 타입 (예: DepositRecorded)
        entity_id: 엔티티 ID (deposit_id, handle 등)
        discriminator: 같은 엔티티의 반복 이벤트 구분값 (선택)

    Returns:
        dedup_key 문자열

    Example:
        >>> make_dedup_key("fund-1a2b3c", "PositionRedeemed", "pos-7")
        'fund-1a2b3c:PositionRedeemed:pos-7'
    """
    if not fund_id:
        raise ValueError("fund_id는 비어 있을 수 없습니다")
    if not event_type:
        raise ValueError("event_type은 비어 있을 수 없습니다")
    if not entity_id:
        raise ValueError("entity_id는 비어 있을 수 없습니다")

    parts = [fund_id, event_type, entity_id]
    if discriminator:
        parts.append(discriminator)
    return DEDUP_SEPARATOR.join(parts)


def parse_dedup_key(dedup_key: str) -> tuple[str, str, str] | None:
    """dedup_key에서 (fund_id, event_type, entity_id) 추출

    Returns:
        튜플 또는 None (형식 불일치 시)

    Example:
        >>> parse_dedup_key("fund-1a2b3c:DepositRecorded:dep-9")
        ('fund-1a2b3c', 'DepositRecorded', 'dep-9')
        >>> parse_dedup_key("garbage")
        None
    """
    if not dedup_key:
        return None

    parts = dedup_key.split(DEDUP_SEPARATOR)
    if len(parts) < 3 or not all(parts[:3]):
        return None

    return parts[0], parts[1], parts[2]
