"""PostgreSQL 저장소 모듈.

테이블별 SQL 을 담은 Repository 클래스와, 이들을 묶어 MeetingStore 인터페이스를
구현하는 PostgresStore 를 제공합니다.

쿼리 실패는 여기서 삼키지 않고 그대로 올립니다. 호출 단위 메모리 대체는
PersistenceGateway 가 담당합니다.

Classes:
    RoomRepository: meeting_rooms 테이블
    MessageRepository: meeting_messages 테이블
    ParticipantRepository: meeting_participants 테이블
    PostgresStore: 위 세 Repository 를 합친 MeetingStore 구현
    SystemLogRepository: system_logs 테이블 (DatabaseLogHandler 용)
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from ..room.models import Message, Participant, Room
from .connection import DatabaseManager
from .store import MeetingStore

logger = logging.getLogger(__name__)


def _affected_rows(status: str) -> int:
    """``"DELETE 3"`` 같은 명령 상태 문자열에서 처리 건수를 꺼냅니다."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class RoomRepository:
    """회의실 메타데이터 저장소."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def get_room(self, room_id: str) -> Optional[Room]:
        row = await self.db.fetchrow(
            "SELECT * FROM meeting_rooms WHERE room_id = $1",
            room_id,
        )
        return Room.from_record(row) if row else None

    async def create_room_if_absent(self, room: Room) -> Tuple[Room, bool]:
        """``ON CONFLICT DO NOTHING`` 으로 생성하고, 이미 있으면 기존 행을 돌려줍니다."""
        row = await self.db.fetchrow(
            """
            INSERT INTO meeting_rooms
                (room_id, creator_id, creator_name, created_at, last_activity, settings)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (room_id) DO NOTHING
            RETURNING *
            """,
            room.room_id,
            room.creator_id,
            room.creator_name,
            room.created_at,
            room.last_activity,
            room.settings.to_dict(),
        )
        if row:
            return Room.from_record(row), True

        existing = await self.get_room(room.room_id)
        return existing, False

    async def touch_room(self, room_id: str, at: datetime) -> None:
        await self.db.execute(
            "UPDATE meeting_rooms SET last_activity = $2 WHERE room_id = $1",
            room_id,
            at,
        )

    async def delete_room(self, room_id: str) -> bool:
        status = await self.db.execute(
            "DELETE FROM meeting_rooms WHERE room_id = $1",
            room_id,
        )
        return _affected_rows(status) > 0


class MessageRepository:
    """회의 메시지 저장소."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def save_message(self, message: Message) -> Message:
        row = await self.db.fetchrow(
            """
            INSERT INTO meeting_messages
                (room_id, type, text, author, user_id, time, timestamp,
                 file, is_ai_question, origin_user_id)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            RETURNING *
            """,
            message.room_id,
            message.type,
            message.text,
            message.author,
            message.user_id,
            message.time,
            message.timestamp,
            message.file.to_dict() if message.file else None,
            message.is_ai_question,
            message.origin_user_id,
        )
        return Message.from_record(row)

    async def recent_messages(self, room_id: str, limit: int) -> List[Message]:
        # 최신순으로 limit 개를 가져온 뒤 뒤집어서 오래된 순으로 반환
        rows = await self.db.fetch(
            """
            SELECT * FROM meeting_messages
            WHERE room_id = $1
            ORDER BY timestamp DESC, id DESC
            LIMIT $2
            """,
            room_id,
            limit,
        )
        return [Message.from_record(row) for row in reversed(rows)]

    async def messages_by_type(self, room_id: str, message_type: str, limit: int) -> List[Message]:
        rows = await self.db.fetch(
            """
            SELECT * FROM meeting_messages
            WHERE room_id = $1 AND type = $2
            ORDER BY timestamp DESC, id DESC
            LIMIT $3
            """,
            room_id,
            message_type,
            limit,
        )
        return [Message.from_record(row) for row in reversed(rows)]

    async def delete_messages(self, room_id: str) -> int:
        status = await self.db.execute(
            "DELETE FROM meeting_messages WHERE room_id = $1",
            room_id,
        )
        return _affected_rows(status)

    async def delete_messages_before(self, cutoff: datetime) -> int:
        status = await self.db.execute(
            "DELETE FROM meeting_messages WHERE timestamp < $1",
            cutoff,
        )
        return _affected_rows(status)


class ParticipantRepository:
    """회의 참가자 저장소."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def get_participant(self, room_id: str, user_id: str) -> Optional[Participant]:
        row = await self.db.fetchrow(
            "SELECT * FROM meeting_participants WHERE room_id = $1 AND user_id = $2",
            room_id,
            user_id,
        )
        return Participant.from_record(row) if row else None

    async def save_participant(self, participant: Participant) -> Participant:
        row = await self.db.fetchrow(
            """
            INSERT INTO meeting_participants
                (room_id, user_id, name, status, join_time, last_seen, connection_id)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (room_id, user_id) DO UPDATE SET
                name = EXCLUDED.name,
                status = EXCLUDED.status,
                join_time = EXCLUDED.join_time,
                last_seen = EXCLUDED.last_seen,
                connection_id = EXCLUDED.connection_id
            RETURNING *
            """,
            participant.room_id,
            participant.user_id,
            participant.name,
            participant.status,
            participant.join_time,
            participant.last_seen,
            participant.connection_id,
        )
        return Participant.from_record(row)

    async def touch_participant(self, room_id: str, user_id: str, at: datetime) -> bool:
        status = await self.db.execute(
            """
            UPDATE meeting_participants SET last_seen = $3
            WHERE room_id = $1 AND user_id = $2
            """,
            room_id,
            user_id,
            at,
        )
        return _affected_rows(status) > 0

    async def mark_offline(
        self, room_id: str, user_id: str, connection_id: Optional[str] = None
    ) -> Optional[Participant]:
        row = await self.db.fetchrow(
            """
            UPDATE meeting_participants
            SET status = 'offline', connection_id = NULL
            WHERE room_id = $1 AND user_id = $2
              AND ($3::text IS NULL OR connection_id = $3::text)
            RETURNING *
            """,
            room_id,
            user_id,
            connection_id,
        )
        return Participant.from_record(row) if row else None

    async def list_participants(self, room_id: str) -> List[Participant]:
        rows = await self.db.fetch(
            """
            SELECT * FROM meeting_participants
            WHERE room_id = $1
            ORDER BY join_time ASC
            """,
            room_id,
        )
        return [Participant.from_record(row) for row in rows]

    async def demote_name_collisions(
        self, room_id: str, user_id: str, name: str
    ) -> List[Participant]:
        rows = await self.db.fetch(
            """
            UPDATE meeting_participants
            SET status = 'offline', connection_id = NULL
            WHERE room_id = $1 AND name = $2 AND user_id <> $3 AND status = 'online'
            RETURNING *
            """,
            room_id,
            name,
            user_id,
        )
        return [Participant.from_record(row) for row in rows]

    async def delete_participants(self, room_id: str) -> int:
        status = await self.db.execute(
            "DELETE FROM meeting_participants WHERE room_id = $1",
            room_id,
        )
        return _affected_rows(status)

    async def demote_stale(
        self, cutoff: datetime, live_connections: Iterable[str]
    ) -> List[Participant]:
        rows = await self.db.fetch(
            """
            UPDATE meeting_participants
            SET status = 'offline', connection_id = NULL
            WHERE status = 'online'
              AND last_seen < $1
              AND (connection_id IS NULL OR NOT (connection_id = ANY($2::text[])))
            RETURNING *
            """,
            cutoff,
            list(live_connections),
        )
        return [Participant.from_record(row) for row in rows]


class PostgresStore(RoomRepository, MessageRepository, ParticipantRepository, MeetingStore):
    """PostgreSQL 기반 MeetingStore.

    Examples:
        >>> store = PostgresStore(db)
        >>> room, created = await store.create_room_if_absent(Room("r1", "u1", "Alice"))
    """


class SystemLogRepository:
    """system_logs 테이블. DatabaseLogHandler 가 배치마다 호출합니다."""

    COLUMNS = ("level", "message", "logger_name", "module", "func_name", "line_no", "exception", "extra")

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def add_log(self, level: str, message: str, **fields) -> bool:
        """로그 한 건을 저장합니다.

        Args:
            level: 레벨 이름 (INFO, WARNING ...)
            message: 포맷이 끝난 메시지
            **fields: ``COLUMNS`` 의 나머지 컬럼 값 (없으면 NULL, extra 는 빈 객체)

        Returns:
            bool: 저장 여부. 풀이 닫혀 있거나 쿼리가 실패하면 False
        """
        if not self.db.is_initialized:
            return False

        fields.update(level=level, message=message)
        fields["extra"] = fields.get("extra") or {}
        placeholders = ", ".join(f"${i}" for i in range(1, len(self.COLUMNS) + 1))
        try:
            await self.db.execute(
                f"INSERT INTO system_logs ({', '.join(self.COLUMNS)}) VALUES ({placeholders})",
                *(fields.get(column) for column in self.COLUMNS),
            )
        except Exception as e:
            # 이 모듈의 로그는 DatabaseLogHandler 가 저장하지 않음
            logger.warning(f"[DB] system_logs 저장 실패: {e}")
            return False
        return True
