"""
설정 로더

settings.yaml 로드 및 펀드 운영 설정 생성
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from adapters.db.sqlite_adapter import get_db_path
from core.constants import Defaults, Paths
from core.types import ResidualAssetPolicy, TradingMode


@dataclass(frozen=True)
class FundSettings:
    """운영 설정 (settings.yaml에서 로드)

    불변 데이터 구조로 설정 변경 방지
    """

    mode: TradingMode
    db_path: Path
    log_level: int
    default_fee_tier: int
    default_residual_policy: ResidualAssetPolicy


class SettingsLoadError(Exception):
    """Settings 로드 실패 예외"""

    pass


def load_settings(path: Path | None = None) -> FundSettings:
    """settings.yaml 파일 로드

    예시:
        mode: testnet
        database:
          path: data/custom.db   # 생략 시 모드별 기본 경로
        logging:
          level: INFO
        fund:
          default_fee_tier: 3000
          residual_policy: DENOMINATION_ONLY

    Args:
        path: settings.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        FundSettings 인스턴스

    Raises:
        SettingsLoadError: 파일이 없거나 형식이 잘못된 경우
        ValueError: 유효하지 않은 mode/정책인 경우
    """
    if path is None:
        path = Paths.SETTINGS_FILE

    if not path.exists():
        raise SettingsLoadError(f"settings.yaml 파일을 찾을 수 없습니다: {path}")

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SettingsLoadError(f"settings.yaml 파싱 실패: {e}") from e

    if data is None:
        raise SettingsLoadError("settings.yaml이 비어 있습니다")

    if not isinstance(data, dict):
        raise SettingsLoadError("settings.yaml 최상위는 매핑이어야 합니다")

    # mode 검증
    mode_str = data.get("mode")
    if mode_str is None:
        raise SettingsLoadError("settings.yaml에 'mode' 필드가 없습니다")

    try:
        mode = TradingMode(mode_str)
    except ValueError as e:
        valid_modes = [m.value for m in TradingMode]
        raise ValueError(
            f"유효하지 않은 mode입니다: '{mode_str}'. "
            f"유효한 값: {valid_modes}"
        ) from e

    # DB 경로 (상대 경로는 settings.yaml 위치 기준)
    database = data.get("database") or {}
    db_path_value = database.get("path")
    if db_path_value:
        db_path = Path(db_path_value)
        if not db_path.is_absolute():
            db_path = path.parent / db_path
    else:
        db_path = get_db_path(mode)

    # 로그 레벨
    logging_config = data.get("logging") or {}
    level_name = str(logging_config.get("level", Defaults.LOG_LEVEL)).upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        raise SettingsLoadError(f"유효하지 않은 로그 레벨입니다: '{level_name}'")

    # 펀드 기본값
    fund_config = data.get("fund") or {}
    fee_tier = fund_config.get("default_fee_tier", Defaults.FEE_TIER)
    if not isinstance(fee_tier, int) or isinstance(fee_tier, bool) or fee_tier <= 0:
        raise SettingsLoadError(
            f"fund.default_fee_tier는 양의 정수여야 합니다: {fee_tier!r}"
        )

    policy_str = fund_config.get("residual_policy", Defaults.RESIDUAL_POLICY)
    try:
        residual_policy = ResidualAssetPolicy(policy_str)
    except ValueError as e:
        valid_policies = [p.value for p in ResidualAssetPolicy]
        raise ValueError(
            f"유효하지 않은 residual_policy입니다: '{policy_str}'. "
            f"유효한 값: {valid_policies}"
        ) from e

    return FundSettings(
        mode=mode,
        db_path=db_path,
        log_level=log_level,
        default_fee_tier=fee_tier,
        default_residual_policy=residual_policy,
    )


class Settings:
    """애플리케이션 설정 (싱글턴 패턴)

    settings.yaml을 로드하고 관련 설정을 제공
    """

    _instance: "Settings | None" = None
    _settings: FundSettings | None = None

    def __new__(cls, settings_path: Path | None = None) -> "Settings":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, settings_path: Path | None = None) -> None:
        if self._settings is None:
            self._settings = load_settings(settings_path)

    @property
    def mode(self) -> TradingMode:
        """현재 운영 모드"""
        assert self._settings is not None
        return self._settings.mode

    @property
    def db_path(self) -> Path:
        """현재 모드의 DB 경로"""
        assert self._settings is not None
        return self._settings.db_path

    @property
    def log_level(self) -> int:
        """로그 레벨"""
        assert self._settings is not None
        return self._settings.log_level

    @property
    def default_fee_tier(self) -> int:
        """포지션 기본 수수료 등급"""
        assert self._settings is not None
        return self._settings.default_fee_tier

    @property
    def default_residual_policy(self) -> ResidualAssetPolicy:
        """기본 잔여 자산 정책"""
        assert self._settings is not None
        return self._settings.default_residual_policy

    @classmethod
    def reset(cls) -> None:
        """싱글턴 인스턴스 초기화 (테스트용)"""
        cls._instance = None
        cls._settings = None


def get_settings(settings_path: Path | None = None) -> Settings:
    """Settings 인스턴스 반환

    Args:
        settings_path: settings.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        Settings 싱글턴 인스턴스
    """
    return Settings(settings_path)
