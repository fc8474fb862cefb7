"""
core/utils/timezone.py 테스트

UTC 정규화, ISO 8601 변환
"""

from datetime import datetime, timedelta, timezone

from core.utils.timezone import (
    ensure_utc,
    from_iso,
    now_utc,
    to_iso,
    to_timestamp,
    utc_from_timestamp,
)


class TestNowUtc:
    """now_utc 테스트"""

    def test_timezone_aware(self) -> None:
        """UTC 타임존 명시"""
        assert now_utc().tzinfo == timezone.utc


class TestEnsureUtc:
    """ensure_utc 테스트"""

    def test_naive_is_treated_as_utc(self) -> None:
        """naive datetime은 UTC로 간주"""
        result = ensure_utc(datetime(2024, 1, 1, 9, 0))

        assert result == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    def test_other_timezone_converted(self) -> None:
        """다른 타임존은 UTC로 변환"""
        kst = timezone(timedelta(hours=9))
        result = ensure_utc(datetime(2024, 1, 1, 9, 0, tzinfo=kst))

        assert result == datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc


class TestIsoConversion:
    """to_iso / from_iso 테스트"""

    def test_roundtrip_preserves_instant(self) -> None:
        """ISO 문자열 왕복"""
        dt = datetime(2024, 2, 20, 16, 0, 0, tzinfo=timezone.utc)

        assert from_iso(to_iso(dt)) == dt

    def test_iso_has_utc_offset(self) -> None:
        """UTC 오프셋 포함"""
        assert to_iso(datetime(2024, 1, 1)).endswith("+00:00")


class TestTimestamps:
    """Unix 타임스탬프 변환 테스트"""

    def test_from_timestamp(self) -> None:
        """초 → datetime"""
        assert utc_from_timestamp(1708444800) == datetime(2024, 2, 20, 16, 0, tzinfo=timezone.utc)

    def test_to_timestamp(self) -> None:
        """datetime → 초"""
        assert to_timestamp(datetime(2024, 2, 20, 16, 0, tzinfo=timezone.utc)) == 1708444800
