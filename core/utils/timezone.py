"""
타임존 유틸리티

내부 저장은 UTC 원칙. DB에는 ISO 8601 문자열로 저장.
"""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """현재 UTC 시간 반환 (타임존 명시)

    datetime.now(timezone.utc)의 축약형.

    Returns:
        현재 UTC 시간 (tzinfo=timezone.utc)
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """datetime을 UTC aware로 정규화

    Args:
        dt: datetime 객체 (naive면 UTC로 간주)

    Returns:
        UTC 타임존의 datetime
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    """DB 저장용 ISO 8601 문자열 (UTC)"""
    return ensure_utc(dt).isoformat()


def from_iso(value: str) -> datetime:
    """DB의 ISO 8601 문자열 → UTC datetime"""
    return ensure_utc(datetime.fromisoformat(value))


def utc_from_timestamp(ts: int | float) -> datetime:
    """Unix 타임스탬프(초)를 UTC datetime으로 변환

    Example:
        >>> utc_from_timestamp(1708444800)
        datetime(2024, 2, 20, 16, 0, 0, tzinfo=timezone.utc)
    """
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def to_timestamp(dt: datetime) -> int:
    """datetime을 Unix 타임스탬프(초)로 변환"""
    return int(ensure_utc(dt).timestamp())
