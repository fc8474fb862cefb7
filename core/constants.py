"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → poolfund/)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent


class Defaults:
    """기본값 상수"""

    # 유동성 포지션 수수료 등급 (3000 = 0.3%)
    FEE_TIER: int = 3000

    # 잔여 자산 처리 정책 (ResidualAssetPolicy 값)
    RESIDUAL_POLICY: str = "DENOMINATION_ONLY"

    LOG_LEVEL: str = "INFO"

    # Fund ID 접두사 (fund-<12 hex>)
    FUND_ID_PREFIX: str = "fund"


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    # 디렉토리
    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"

    # 설정 파일
    SETTINGS_FILE: Path = CONFIG_DIR / "settings.yaml"

    # DB 파일
    PROD_DB: Path = DATA_DIR / "poolfund_prod.db"
    TEST_DB: Path = DATA_DIR / "poolfund_test.db"

