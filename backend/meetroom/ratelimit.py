"""연결별 이벤트 속도 제한.

고정 윈도우 방식으로 ``duration`` 초 동안 ``points`` 번까지 허용합니다.
Redis 가 연결되어 있으면 INCR/EXPIRE 카운터를 쓰고, 없거나 Redis 호출이
실패하면 프로세스 메모리 카운터를 씁니다.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .database.redis_connection import RedisManager

logger = logging.getLogger(__name__)

KEY_PREFIX = "meetroom:ratelimit:"


@dataclass
class _Window:
    started_at: float
    count: int = 0


class RateLimiter:
    """키(클라이언트 주소)별 요청 수 제한기.

    Examples:
        >>> limiter = RateLimiter(points=100, duration=900)
        >>> await limiter.consume("127.0.0.1")
        True
    """

    def __init__(
        self,
        points: int,
        duration: int,
        redis: Optional[RedisManager] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.points = points
        self.duration = duration
        self.redis = redis
        self._clock = clock
        self._windows: Dict[str, _Window] = {}

    async def consume(self, key: str) -> bool:
        """요청 1회를 차감합니다.

        Returns:
            bool: 허용 여부 (한도를 넘으면 False)
        """
        if self.redis is not None and self.redis.is_initialized:
            try:
                return await self._consume_redis(key)
            except Exception as e:
                logger.warning(f"[RateLimit] Redis 카운터 실패, 메모리 카운터 사용: {e}")

        return self._consume_memory(key)

    async def _consume_redis(self, key: str) -> bool:
        redis_key = f"{KEY_PREFIX}{key}"
        count = await self.redis.incr(redis_key)
        if count == 1:
            await self.redis.expire(redis_key, self.duration)
        return count <= self.points

    def _consume_memory(self, key: str) -> bool:
        now = self._clock()
        window = self._windows.get(key)
        if window is None or now - window.started_at >= self.duration:
            window = self._windows[key] = _Window(started_at=now)

        window.count += 1
        return window.count <= self.points

    def prune(self) -> int:
        """만료된 메모리 윈도우를 정리합니다."""
        now = self._clock()
        expired = [k for k, w in self._windows.items() if now - w.started_at >= self.duration]
        for key in expired:
            del self._windows[key]
        return len(expired)
