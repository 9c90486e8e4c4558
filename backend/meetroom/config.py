"""회의실 서버 설정.

환경변수(backend/config/.env) 기반 설정값.
각 설정 클래스는 인스턴스 생성 시점에 환경변수를 읽으므로,
테스트에서는 필드를 직접 지정해 독립된 설정을 만들 수 있습니다.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# backend 디렉토리 경로 (모든 상대 경로의 기준)
BACKEND_DIR: Path = Path(__file__).parent.parent

_env_path = BACKEND_DIR / "config" / ".env"
load_dotenv(_env_path)


def _parse_bool(value: Optional[str], default: bool = True) -> bool:
    """문자열을 bool로 변환."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_list(value: Optional[str], default: List[str]) -> List[str]:
    """콤마로 구분된 문자열을 리스트로 변환."""
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8080",
    "https://*.railway.app",
    "https://*.up.railway.app",
]


# ============================================================
# 서버 설정
# ============================================================

@dataclass
class ServerConfig:
    """HTTP/WebSocket 서버 설정."""

    HOST: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    PORT: int = field(default_factory=lambda: int(os.getenv("PORT", "3001")))
    ENV: str = field(default_factory=lambda: os.getenv("ENV", "production"))

    # 콤마 구분, "*" 및 와일드카드 패턴(https://*.railway.app) 지원
    ALLOWED_ORIGINS: List[str] = field(
        default_factory=lambda: _parse_list(
            os.getenv("ALLOWED_ORIGINS"), DEFAULT_ALLOWED_ORIGINS
        )
    )

    @property
    def allow_all_origins(self) -> bool:
        return "*" in self.ALLOWED_ORIGINS


# ============================================================
# 로깅 설정
# ============================================================

@dataclass
class LoggingConfig:
    """로그 레벨 및 파일 보관 설정."""

    LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    LOG_DIR: str = field(default_factory=lambda: os.getenv("LOG_DIR", "logs"))
    # 로그 보관 기간 (일) - 기본 60일
    RETENTION_DAYS: int = field(
        default_factory=lambda: int(os.getenv("LOG_RETENTION_DAYS", "60"))
    )
    # 파일 로그 사용 여부 (테스트에서는 끔)
    FILE_ENABLED: bool = field(
        default_factory=lambda: _parse_bool(os.getenv("LOG_FILE_ENABLED"), default=True)
    )


# ============================================================
# 저장소 설정
# ============================================================

@dataclass
class StorageConfig:
    """PostgreSQL / Redis / 메모리 저장소 설정."""

    # 없으면 메모리 저장소만 사용
    DATABASE_URL: Optional[str] = field(default_factory=lambda: os.getenv("DATABASE_URL"))
    # 없으면 메모리 기반 속도 제한 사용
    REDIS_URL: Optional[str] = field(default_factory=lambda: os.getenv("REDIS_URL"))

    DB_POOL_MIN: int = field(default_factory=lambda: int(os.getenv("DB_POOL_MIN", "2")))
    DB_POOL_MAX: int = field(default_factory=lambda: int(os.getenv("DB_POOL_MAX", "10")))

    # 메시지 보관 기간 (일)
    MESSAGE_RETENTION_DAYS: int = field(
        default_factory=lambda: int(os.getenv("MESSAGE_RETENTION_DAYS", "30"))
    )
    # 메모리 저장소: 방별 메시지가 CAP 을 넘으면 최근 TRIM 개만 유지
    MEMORY_MESSAGE_CAP: int = field(
        default_factory=lambda: int(os.getenv("MEMORY_MESSAGE_CAP", "1000"))
    )
    MEMORY_MESSAGE_TRIM: int = field(
        default_factory=lambda: int(os.getenv("MEMORY_MESSAGE_TRIM", "800"))
    )

    @property
    def durable_configured(self) -> bool:
        return bool(self.DATABASE_URL)


# ============================================================
# 참가자 상태 설정
# ============================================================

@dataclass
class PresenceConfig:
    """참가자 상태 정리 주기 및 스냅샷 크기."""

    # 오프라인 정리 주기 (초) - 5분
    SWEEP_INTERVAL: float = field(
        default_factory=lambda: float(os.getenv("PRESENCE_SWEEP_INTERVAL", "300"))
    )
    # last_seen 이 이 시간(초)보다 오래되면 오프라인 처리
    STALE_AFTER: float = field(
        default_factory=lambda: float(os.getenv("PRESENCE_STALE_AFTER", "300"))
    )
    # 입장 시 전송하는 최근 메시지 수
    RECENT_MESSAGE_LIMIT: int = field(
        default_factory=lambda: int(os.getenv("RECENT_MESSAGE_LIMIT", "50"))
    )


# ============================================================
# 속도 제한 설정
# ============================================================

@dataclass
class RateLimitConfig:
    """연결(클라이언트 주소)별 이벤트 속도 제한."""

    POINTS: int = field(default_factory=lambda: int(os.getenv("RATE_LIMIT_POINTS", "100")))
    # 윈도우 길이 (초) - 15분
    DURATION: int = field(default_factory=lambda: int(os.getenv("RATE_LIMIT_DURATION", "900")))
    # 고빈도 스트리밍 이벤트는 제한에서 제외
    EXEMPT_EVENTS: Tuple[str, ...] = ("audio-chunk", "webrtc-ice-candidate", "typing")


# ============================================================
# iFlytek 실시간 음성 인식 설정
# ============================================================

@dataclass
class TranscriptionConfig:
    """iFlytek(科大讯飞) 스트리밍 음성 인식 설정."""

    APP_ID: Optional[str] = field(default_factory=lambda: os.getenv("IFLYTEK_APPID"))
    API_KEY: Optional[str] = field(default_factory=lambda: os.getenv("IFLYTEK_API_KEY"))
    API_SECRET: Optional[str] = field(
        default_factory=lambda: os.getenv("IFLYTEK_API_SECRET") or os.getenv("XFY_API_SECRET")
    )

    # "rtasr" (연속 전사) | "iat" (턴 단위 받아쓰기)
    MODE: str = field(default_factory=lambda: os.getenv("IFLYTEK_MODE", "rtasr").lower())

    LANGUAGE: str = field(default_factory=lambda: os.getenv("IFLYTEK_LANGUAGE", "zh_cn"))
    ACCENT: str = field(default_factory=lambda: os.getenv("IFLYTEK_ACCENT", "mandarin"))
    # IAT 끝점 검출 (ms)
    VAD_EOS: int = field(default_factory=lambda: int(os.getenv("IFLYTEK_VAD_EOS", "3000")))

    # 업스트림 연결 타임아웃 (초)
    CONNECT_TIMEOUT: float = 10.0

    # 오디오 포맷 (16kHz 16bit mono PCM)
    SAMPLE_RATE: int = 16000

    @property
    def is_configured(self) -> bool:
        """인증 설정 완료 여부.

        IAT 는 API_KEY 까지 필요하고, RTASR 는 APP_ID/API_SECRET 만 필요합니다.
        """
        if not (self.APP_ID and self.API_SECRET):
            return False
        if self.MODE == "iat":
            return bool(self.API_KEY)
        return True


# ============================================================
# WebRTC ICE 서버 설정
# ============================================================

@dataclass
class IceConfig:
    """음성 통화용 STUN/TURN 서버 설정 (클라이언트에 전달)."""

    STUN_SERVER_URL: Optional[str] = field(default_factory=lambda: os.getenv("STUN_SERVER_URL"))
    TURN_SERVER_URL: Optional[str] = field(default_factory=lambda: os.getenv("TURN_SERVER_URL"))
    TURN_USERNAME: Optional[str] = field(default_factory=lambda: os.getenv("TURN_USERNAME"))
    TURN_CREDENTIAL: Optional[str] = field(default_factory=lambda: os.getenv("TURN_CREDENTIAL"))

    # 커스텀 STUN 이 없을 때 사용하는 공개 STUN
    FALLBACK_STUN_URLS: Tuple[str, ...] = (
        "stun:stun.l.google.com:19302",
        "stun:stun1.l.google.com:19302",
    )

    @property
    def turn_configured(self) -> bool:
        return bool(self.TURN_SERVER_URL and self.TURN_USERNAME and self.TURN_CREDENTIAL)


# ============================================================
# 전체 설정
# ============================================================

@dataclass
class Settings:
    """애플리케이션 전체 설정 묶음."""

    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    presence: PresenceConfig = field(default_factory=PresenceConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    ice: IceConfig = field(default_factory=IceConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        """현재 환경변수로 설정을 만듭니다."""
        return cls()

    def log_summary(self) -> None:
        """설정 로드 확인 로그."""
        logger.info(f"[Config] .env 경로: {_env_path} (존재: {_env_path.exists()})")
        logger.info(f"[Config] 포트: {self.server.PORT}, 허용 Origin: {self.server.ALLOWED_ORIGINS}")
        logger.info(
            f"[Config] 저장소: {'PostgreSQL' if self.storage.durable_configured else '메모리'}, "
            f"Redis: {'설정됨' if self.storage.REDIS_URL else '미설정'}"
        )
        logger.info(
            f"[Config] 음성 인식: mode={self.transcription.MODE}, "
            f"설정 완료={self.transcription.is_configured}"
        )
