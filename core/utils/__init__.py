"""
유틸리티 패키지

dedup_key 생성, 타임존 처리 등 공통 유틸리티
"""

from core.utils.idempotency import make_dedup_key, parse_dedup_key
from core.utils.timezone import (
    now_utc,
    ensure_utc,
    to_iso,
    from_iso,
    utc_from_timestamp,
    to_timestamp,
)

__all__ = [
    "make_dedup_key",
    "parse_dedup_key",
    "now_utc",
    "ensure_utc",
    "to_iso",
    "from_iso",
    "utc_from_timestamp",
    "to_timestamp",
]
