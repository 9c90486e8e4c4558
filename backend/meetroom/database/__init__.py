"""Database module for meeting room persistence.

PostgreSQL (asyncpg) 저장소와 메모리 대체 저장소, Redis 연결을 제공합니다.
"""

from .connection import DatabaseManager
from .redis_connection import RedisManager
from .store import MeetingStore
from .memory_store import MemoryStore
from .repository import (
    RoomRepository,
    MessageRepository,
    ParticipantRepository,
    PostgresStore,
    SystemLogRepository,
)
from .gateway import PersistenceGateway
from .schema import init_schema
from .log_handler import DatabaseLogHandler, setup_database_logging

__all__ = [
    # Connection
    "DatabaseManager",
    "RedisManager",
    # Stores
    "MeetingStore",
    "MemoryStore",
    "PostgresStore",
    "PersistenceGateway",
    # Repositories
    "RoomRepository",
    "MessageRepository",
    "ParticipantRepository",
    "SystemLogRepository",
    # Schema / logging
    "init_schema",
    "DatabaseLogHandler",
    "setup_database_logging",
]
