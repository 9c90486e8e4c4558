"""프로세스 메모리 저장소.

PostgreSQL 을 쓸 수 없을 때(미설정, 연결 실패, 개별 쿼리 실패) 사용하는 저장소입니다.
프로세스가 살아있는 동안 유지되며 재시작 시 사라집니다.

방별 메시지가 ``message_cap`` 을 넘으면 가장 최근 ``message_trim`` 개만 남깁니다.
"""

import itertools
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from ..room.models import OFFLINE, ONLINE, Message, Participant, Room
from .store import MeetingStore

logger = logging.getLogger(__name__)


@dataclass
class _RoomBucket:
    room: Optional[Room] = None
    messages: List[Message] = field(default_factory=list)
    participants: Dict[str, Participant] = field(default_factory=dict)


class MemoryStore(MeetingStore):
    """dict 기반 저장소. 모든 메서드는 await 지점 없이 끝나므로 호출 단위로 원자적입니다."""

    def __init__(self, message_cap: int = 1000, message_trim: int = 800):
        self.message_cap = message_cap
        self.message_trim = message_trim
        self._rooms: Dict[str, _RoomBucket] = {}
        self._message_ids = itertools.count(1)

    def _bucket(self, room_id: str) -> _RoomBucket:
        bucket = self._rooms.get(room_id)
        if bucket is None:
            bucket = self._rooms[room_id] = _RoomBucket()
        return bucket

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def get_room(self, room_id: str) -> Optional[Room]:
        bucket = self._rooms.get(room_id)
        if bucket is None or bucket.room is None:
            return None
        return replace(bucket.room)

    async def create_room_if_absent(self, room: Room) -> Tuple[Room, bool]:
        bucket = self._bucket(room.room_id)
        if bucket.room is not None:
            return replace(bucket.room), False
        bucket.room = replace(room)
        return replace(room), True

    async def touch_room(self, room_id: str, at: datetime) -> None:
        bucket = self._rooms.get(room_id)
        if bucket and bucket.room:
            bucket.room.last_activity = at

    async def delete_room(self, room_id: str) -> bool:
        bucket = self._rooms.pop(room_id, None)
        return bool(bucket and bucket.room)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def save_message(self, message: Message) -> Message:
        stored = replace(message, id=next(self._message_ids))
        messages = self._bucket(message.room_id).messages
        messages.append(stored)

        if len(messages) > self.message_cap:
            del messages[: len(messages) - self.message_trim]
            logger.debug(f"[Memory] {message.room_id} 메시지 {self.message_trim}개로 정리")

        return replace(stored)

    async def recent_messages(self, room_id: str, limit: int) -> List[Message]:
        bucket = self._rooms.get(room_id)
        if bucket is None or limit <= 0:
            return []
        return [replace(m) for m in bucket.messages[-limit:]]

    async def messages_by_type(self, room_id: str, message_type: str, limit: int) -> List[Message]:
        bucket = self._rooms.get(room_id)
        if bucket is None or limit <= 0:
            return []
        matched = [m for m in bucket.messages if m.type == message_type]
        return [replace(m) for m in matched[-limit:]]

    async def delete_messages(self, room_id: str) -> int:
        bucket = self._rooms.get(room_id)
        if bucket is None:
            return 0
        count = len(bucket.messages)
        bucket.messages.clear()
        return count

    async def delete_messages_before(self, cutoff: datetime) -> int:
        deleted = 0
        for bucket in self._rooms.values():
            kept = [m for m in bucket.messages if m.timestamp is None or m.timestamp >= cutoff]
            deleted += len(bucket.messages) - len(kept)
            bucket.messages[:] = kept
        return deleted

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    async def get_participant(self, room_id: str, user_id: str) -> Optional[Participant]:
        bucket = self._rooms.get(room_id)
        participant = bucket.participants.get(user_id) if bucket else None
        return participant.copy() if participant else None

    async def save_participant(self, participant: Participant) -> Participant:
        self._bucket(participant.room_id).participants[participant.user_id] = participant.copy()
        return participant.copy()

    async def touch_participant(self, room_id: str, user_id: str, at: datetime) -> bool:
        bucket = self._rooms.get(room_id)
        participant = bucket.participants.get(user_id) if bucket else None
        if participant is None:
            return False
        participant.last_seen = at
        return True

    async def mark_offline(
        self, room_id: str, user_id: str, connection_id: Optional[str] = None
    ) -> Optional[Participant]:
        bucket = self._rooms.get(room_id)
        participant = bucket.participants.get(user_id) if bucket else None
        if participant is None:
            return None
        if connection_id is not None and participant.connection_id != connection_id:
            return None

        participant.status = OFFLINE
        participant.connection_id = None
        return participant.copy()

    async def list_participants(self, room_id: str) -> List[Participant]:
        bucket = self._rooms.get(room_id)
        if bucket is None:
            return []
        ordered = sorted(bucket.participants.values(), key=lambda p: p.join_time)
        return [p.copy() for p in ordered]

    async def demote_name_collisions(
        self, room_id: str, user_id: str, name: str
    ) -> List[Participant]:
        bucket = self._rooms.get(room_id)
        if bucket is None:
            return []

        demoted = []
        for participant in bucket.participants.values():
            if (
                participant.status == ONLINE
                and participant.name == name
                and participant.user_id != user_id
            ):
                participant.status = OFFLINE
                participant.connection_id = None
                demoted.append(participant.copy())
        return demoted

    async def delete_participants(self, room_id: str) -> int:
        bucket = self._rooms.get(room_id)
        if bucket is None:
            return 0
        count = len(bucket.participants)
        bucket.participants.clear()
        return count

    async def demote_stale(
        self, cutoff: datetime, live_connections: Iterable[str]
    ) -> List[Participant]:
        live = set(live_connections)
        demoted = []
        for bucket in self._rooms.values():
            for participant in bucket.participants.values():
                if participant.status != ONLINE or participant.last_seen >= cutoff:
                    continue
                if participant.connection_id is not None and participant.connection_id in live:
                    continue
                participant.status = OFFLINE
                participant.connection_id = None
                demoted.append(participant.copy())
        return demoted
