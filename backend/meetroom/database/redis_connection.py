"""Redis 연결 관리 모듈.

속도 제한 카운터만 Redis 에 둡니다. REDIS_URL 이 없거나 연결 확인(PING)에
실패하면 클라이언트를 만들지 않고, RateLimiter 는 메모리 카운터로 동작합니다.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from ..config import StorageConfig
from ..shared.errors import PersistenceError

logger = logging.getLogger(__name__)


class RedisManager:
    """redis.asyncio 클라이언트 래퍼.

    Attributes:
        redis_url: 접속 URL (없으면 연결하지 않음)
        client: 연결 확인이 끝난 클라이언트 (그 전에는 None)
    """

    def __init__(self, redis_url: Optional[str]):
        self.redis_url = redis_url
        self.client: Optional[redis.Redis] = None

    @classmethod
    def from_config(cls, config: StorageConfig) -> "RedisManager":
        return cls(config.REDIS_URL)

    @property
    def is_initialized(self) -> bool:
        return self.client is not None

    async def initialize(self) -> bool:
        """클라이언트를 만들고 PING 으로 확인합니다.

        Returns:
            bool: Redis 사용 가능 여부
        """
        if self.client is not None:
            return True
        if not self.redis_url:
            logger.info("[Redis] REDIS_URL 미설정 - 속도 제한은 메모리 카운터 사용")
            return False

        client = None
        try:
            client = redis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
            await client.ping()
        except Exception as e:
            logger.error(f"[Redis] 연결 확인 실패, 메모리 카운터 사용: {e}")
            if client is not None:
                await client.aclose()
            return False

        self.client = client
        logger.info("[Redis] 연결 완료")
        return True

    async def close(self) -> None:
        client, self.client = self.client, None
        if client is not None:
            await client.aclose()
            logger.info("[Redis] 연결 종료")

    async def health(self) -> str:
        """헬스 체크용 상태 문자열: ``ok`` / ``error`` / ``not_initialized``."""
        if self.client is None:
            return "not_initialized"
        try:
            await self.client.ping()
        except Exception as e:
            logger.warning(f"[Redis] 헬스 체크 실패: {e}")
            return "error"
        return "ok"

    def _connected(self) -> redis.Redis:
        if self.client is None:
            raise PersistenceError("Redis client is not connected")
        return self.client

    async def incr(self, key: str) -> int:
        """카운터를 1 올리고 올린 뒤의 값을 돌려줍니다."""
        return await self._connected().incr(key)

    async def expire(self, key: str, seconds: int) -> bool:
        return await self._connected().expire(key, seconds)

    async def delete(self, key: str) -> int:
        return await self._connected().delete(key)
