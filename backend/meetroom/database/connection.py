"""PostgreSQL 연결 관리 모듈.

asyncpg 연결 풀 하나를 소유합니다. DATABASE_URL 이 비어 있거나 풀 생성에
실패하면 ``initialize()`` 가 False 를 돌려주고, 서버는 메모리 저장소만으로 동작합니다.

Examples:
    >>> db = DatabaseManager.from_config(settings.storage)
    >>> if await db.initialize():
    ...     rooms = await db.fetch("SELECT room_id FROM meeting_rooms")
    >>> await db.close()
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional

import asyncpg

from ..config import StorageConfig
from ..shared.errors import PersistenceError

logger = logging.getLogger(__name__)

# 연결마다 json.dumps / json.loads 로 변환할 PostgreSQL 타입
JSON_TYPES = ("json", "jsonb")


class DatabaseManager:
    """asyncpg 연결 풀 래퍼.

    Attributes:
        database_url: 접속 URL (없으면 연결하지 않음)
        pool: 연결 풀 (initialize 전에는 None)
    """

    def __init__(self, database_url: Optional[str], min_size: int = 2, max_size: int = 10):
        self.database_url = database_url
        self.min_size = min_size
        self.max_size = max_size
        self.pool: Optional[asyncpg.Pool] = None

    @classmethod
    def from_config(cls, config: StorageConfig) -> "DatabaseManager":
        return cls(config.DATABASE_URL, config.DB_POOL_MIN, config.DB_POOL_MAX)

    @property
    def is_initialized(self) -> bool:
        return self.pool is not None

    @staticmethod
    async def _register_json_codecs(conn: asyncpg.Connection) -> None:
        for type_name in JSON_TYPES:
            await conn.set_type_codec(
                type_name, encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
            )

    async def initialize(self) -> bool:
        """연결 풀을 만듭니다. 이미 열려 있으면 그대로 사용합니다.

        Returns:
            bool: PostgreSQL 사용 가능 여부
        """
        if self.pool is not None:
            return True
        if not self.database_url:
            logger.info("[DB] DATABASE_URL 미설정 - 메모리 저장소로 동작")
            return False

        try:
            self.pool = await asyncpg.create_pool(
                self.database_url,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=60,
                init=self._register_json_codecs,
            )
        except Exception as e:
            logger.error(f"[DB] 연결 풀 생성 실패, 메모리 저장소로 동작: {e}")
            self.pool = None
            return False

        logger.info(f"[DB] 연결 풀 준비 완료 (pool {self.min_size}~{self.max_size})")
        return True

    async def close(self) -> None:
        pool, self.pool = self.pool, None
        if pool is not None:
            await pool.close()
            logger.info("[DB] 연결 풀 종료")

    async def health(self) -> str:
        """헬스 체크용 상태 문자열: ``ok`` / ``error`` / ``not_initialized``."""
        if self.pool is None:
            return "not_initialized"
        try:
            await self.fetchval("SELECT 1")
        except Exception as e:
            logger.warning(f"[DB] 헬스 체크 실패: {e}")
            return "error"
        return "ok"

    @asynccontextmanager
    async def acquire(self):
        """풀에서 연결 하나를 빌립니다.

        Raises:
            PersistenceError: 풀이 열려 있지 않은 경우
        """
        if self.pool is None:
            raise PersistenceError("Database pool is not open")
        async with self.pool.acquire() as conn:
            yield conn

    # 단일 쿼리 헬퍼 (연결 획득 + 실행)

    async def execute(self, query: str, *args: Any) -> str:
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> List[asyncpg.Record]:
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> Optional[asyncpg.Record]:
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)
