"""FastAPI Meeting Room Server.

이 모듈은 실시간 회의실 서버를 제공합니다. 클라이언트는 하나의 WebSocket
연결로 방에 입장하고, 채팅/참가자 상태/음성 통화 시그널링/실시간 음성 인식
결과를 주고받습니다.

주요 기능:
    - 방 자동 생성 및 생성자 기반 회의 종료
    - 참가자 온라인/오프라인 상태 추적
    - 채팅 메시지 기록 (PostgreSQL, 실패 시 메모리)
    - WebRTC offer/answer/ICE candidate 1:1 중계
    - iFlytek 스트리밍 음성 인식 결과 브로드캐스트

Architecture:
    - MeetingContext: 모든 구성 요소와 상태를 소유 (app.state.meeting)
    - MeetingCoordinator: WebSocket 이벤트 분배
    - PersistenceGateway: PostgreSQL + 메모리 대체 저장소

실행:
    python app.py
    uvicorn app:create_app --factory --host 0.0.0.0 --port 3001
"""
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Callable, List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meetroom.config import Settings
from meetroom.context import MeetingContext
from meetroom.logging_config import setup_logging
from routes import health_router, ice_router, realtime_router, rooms_router

logger = logging.getLogger(__name__)

SERVICE_NAME = "Meeting Room Server"


def build_origin_regex(origins: List[str]) -> str:
    """ALLOWED_ORIGINS 목록을 CORS origin 정규식으로 변환합니다.

    ``*`` 하나면 모든 origin 을 허용하고, ``https://*.railway.app`` 처럼
    호스트 일부에 쓰인 ``*`` 는 하나 이상의 서브도메인 라벨에 대응합니다.
    """
    if "*" in origins:
        return ".*"
    patterns = [re.escape(origin).replace(r"\*", r"[^/.]+(\.[^/.]+)*") for origin in origins]
    return "^(" + "|".join(patterns) + ")$"


def create_app(
    settings: Optional[Settings] = None,
    upstream_connect: Optional[Callable[..., Any]] = None,
) -> FastAPI:
    """FastAPI 애플리케이션을 만듭니다.

    Args:
        settings: 애플리케이션 설정 (없으면 환경변수에서 로드)
        upstream_connect: 음성 인식 업스트림 WebSocket 연결 함수 (테스트용 주입)

    Returns:
        FastAPI: 설정된 애플리케이션
    """
    settings = settings or Settings.from_env()
    setup_logging(settings.logging)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """서버 생명주기 관리.

        Note:
            - 시작: DB 연결/스키마, DB 로그 핸들러, Redis, 주기 정리 태스크
            - 종료: 시작의 역순으로 정리
        """
        logger.info("회의실 서버 시작 중...")
        settings.log_summary()

        meeting = MeetingContext.build(settings, upstream_connect=upstream_connect)
        await meeting.startup()
        app.state.meeting = meeting

        yield

        logger.info("서버 종료 중...")
        await meeting.shutdown()
        app.state.meeting = None

    app = FastAPI(title=SERVICE_NAME, lifespan=lifespan)
    app.state.meeting = None

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=build_origin_regex(settings.server.ALLOWED_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(rooms_router)
    app.include_router(ice_router)
    app.include_router(realtime_router)

    @app.get("/")
    async def root():
        """서버 상태 확인 엔드포인트.

        Returns:
            dict: status, service
        """
        return {"status": "ok", "service": SERVICE_NAME}

    return app


if __name__ == "__main__":
    import uvicorn

    _settings = Settings.from_env()
    uvicorn.run(
        create_app(_settings),
        host=_settings.server.HOST,
        port=_settings.server.PORT,
        log_level="info",
    )
