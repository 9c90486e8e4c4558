"""영속 저장소 게이트웨이.

PostgreSQL 저장소를 우선 사용하고, 설정되지 않았거나 개별 호출이 실패하면
그 호출만 메모리 저장소에서 다시 수행합니다. 실패는 로그로만 남기고
호출자에게는 드러내지 않습니다.

Note:
    대체는 호출 단위입니다. 같은 방이라도 일부 작업은 PostgreSQL 에,
    일부 작업은 메모리에 기록될 수 있습니다.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from ..room.models import Message, Participant, Room
from .memory_store import MemoryStore
from .store import MeetingStore

logger = logging.getLogger(__name__)


class PersistenceGateway(MeetingStore):
    """PostgreSQL + 메모리 대체 저장소.

    Attributes:
        durable: PostgreSQL 저장소 (없으면 None)
        memory: 프로세스 메모리 저장소
    """

    def __init__(self, memory: MemoryStore, durable: Optional[MeetingStore] = None):
        self.memory = memory
        self.durable = durable

    @property
    def mode(self) -> str:
        return "postgres" if self.durable is not None else "memory"

    async def _dispatch(self, operation: str, *args):
        if self.durable is not None:
            try:
                return await getattr(self.durable, operation)(*args)
            except Exception as e:
                logger.warning(f"[DB] {operation} 실패, 메모리 저장소로 대체: {e}")

        return await getattr(self.memory, operation)(*args)

    # Rooms

    async def get_room(self, room_id: str) -> Optional[Room]:
        return await self._dispatch("get_room", room_id)

    async def create_room_if_absent(self, room: Room) -> Tuple[Room, bool]:
        return await self._dispatch("create_room_if_absent", room)

    async def touch_room(self, room_id: str, at: datetime) -> None:
        await self._dispatch("touch_room", room_id, at)

    async def delete_room(self, room_id: str) -> bool:
        return await self._dispatch("delete_room", room_id)

    # Messages

    async def save_message(self, message: Message) -> Message:
        return await self._dispatch("save_message", message)

    async def recent_messages(self, room_id: str, limit: int) -> List[Message]:
        return await self._dispatch("recent_messages", room_id, limit)

    async def messages_by_type(self, room_id: str, message_type: str, limit: int) -> List[Message]:
        return await self._dispatch("messages_by_type", room_id, message_type, limit)

    async def delete_messages(self, room_id: str) -> int:
        return await self._dispatch("delete_messages", room_id)

    async def delete_messages_before(self, cutoff: datetime) -> int:
        deleted = await self._dispatch("delete_messages_before", cutoff)
        if self.durable is not None:
            # 대체 기록된 메시지도 같은 보관 기간을 따름
            deleted += await self.memory.delete_messages_before(cutoff)
        return deleted

    # Participants

    async def get_participant(self, room_id: str, user_id: str) -> Optional[Participant]:
        return await self._dispatch("get_participant", room_id, user_id)

    async def save_participant(self, participant: Participant) -> Participant:
        return await self._dispatch("save_participant", participant)

    async def touch_participant(self, room_id: str, user_id: str, at: datetime) -> bool:
        return await self._dispatch("touch_participant", room_id, user_id, at)

    async def mark_offline(
        self, room_id: str, user_id: str, connection_id: Optional[str] = None
    ) -> Optional[Participant]:
        return await self._dispatch("mark_offline", room_id, user_id, connection_id)

    async def list_participants(self, room_id: str) -> List[Participant]:
        return await self._dispatch("list_participants", room_id)

    async def demote_name_collisions(
        self, room_id: str, user_id: str, name: str
    ) -> List[Participant]:
        return await self._dispatch("demote_name_collisions", room_id, user_id, name)

    async def delete_participants(self, room_id: str) -> int:
        return await self._dispatch("delete_participants", room_id)

    async def demote_stale(
        self, cutoff: datetime, live_connections: Iterable[str]
    ) -> List[Participant]:
        live = list(live_connections)
        demoted = await self._dispatch("demote_stale", cutoff, live)
        if self.durable is not None:
            demoted += await self.memory.demote_stale(cutoff, live)
        return demoted
