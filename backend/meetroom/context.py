"""애플리케이션 구성 요소 묶음.

서버 시작 시(또는 테스트마다) 한 번 만들어 ``app.state.meeting`` 에 보관합니다.
모든 상태(방 그룹, 바인딩, 음성 인식 세션, 메모리 저장소)는 이 객체가 소유합니다.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .config import Settings
from .coordinator import MeetingCoordinator
from .database import (
    DatabaseLogHandler,
    DatabaseManager,
    MemoryStore,
    PersistenceGateway,
    PostgresStore,
    RedisManager,
    SystemLogRepository,
    init_schema,
    setup_database_logging,
)
from .ratelimit import RateLimiter
from .room.messages import MessageLog
from .room.participants import ParticipantDirectory
from .room.registry import RoomRegistry
from .signaling import SignalingRelay, VoicePresence
from .transport import ConnectionHub

logger = logging.getLogger(__name__)


@dataclass
class MeetingContext:
    settings: Settings
    db: DatabaseManager
    redis: RedisManager
    gateway: PersistenceGateway
    messages: MessageLog
    participants: ParticipantDirectory
    registry: RoomRegistry
    hub: ConnectionHub
    voice: VoicePresence
    relay: SignalingRelay
    limiter: RateLimiter
    coordinator: MeetingCoordinator
    log_handler: Optional[DatabaseLogHandler] = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        upstream_connect: Optional[Callable[..., Any]] = None,
    ) -> "MeetingContext":
        """설정으로 구성 요소를 만들고 연결합니다. 외부 연결은 ``startup()`` 에서 엽니다."""
        storage = settings.storage
        db = DatabaseManager.from_config(storage)
        redis = RedisManager.from_config(storage)

        gateway = PersistenceGateway(
            MemoryStore(storage.MEMORY_MESSAGE_CAP, storage.MEMORY_MESSAGE_TRIM)
        )
        messages = MessageLog(gateway, storage.MESSAGE_RETENTION_DAYS)
        participants = ParticipantDirectory(gateway)
        registry = RoomRegistry(gateway, messages, participants)

        hub = ConnectionHub()
        voice = VoicePresence()
        relay = SignalingRelay(participants, hub)
        limiter = RateLimiter(settings.rate_limit.POINTS, settings.rate_limit.DURATION, redis)

        coordinator = MeetingCoordinator(
            settings, registry, participants, messages, hub, relay, voice, limiter,
            upstream_connect=upstream_connect,
        )
        return cls(
            settings=settings,
            db=db,
            redis=redis,
            gateway=gateway,
            messages=messages,
            participants=participants,
            registry=registry,
            hub=hub,
            voice=voice,
            relay=relay,
            limiter=limiter,
            coordinator=coordinator,
        )

    async def startup(self) -> None:
        """DB/Redis 연결, 스키마 생성, DB 로그 핸들러, 주기 정리 태스크를 시작합니다."""
        if await self.db.initialize() and await init_schema(self.db):
            self.gateway.durable = PostgresStore(self.db)
            self.log_handler = setup_database_logging(SystemLogRepository(self.db))
            await self.log_handler.start()
            logger.info("[DB] PostgreSQL 저장소 사용")
        else:
            logger.info("[DB] 메모리 저장소 사용")

        await self.redis.initialize()
        self.coordinator.start()

    async def shutdown(self) -> None:
        """시작 순서의 역순으로 정리합니다."""
        await self.coordinator.stop()
        await self.redis.close()

        if self.log_handler is not None:
            await self.log_handler.stop()
            logging.getLogger().removeHandler(self.log_handler)
            self.log_handler = None

        await self.db.close()
