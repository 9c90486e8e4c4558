"""방 레지스트리 모듈.

방 생성/조회/종료와 방 단위 잠금을 담당합니다.

방은 첫 입장 시 자동으로 만들어지고, 첫 입장자가 생성자(creator)가 됩니다.
생성자는 이후 바뀌지 않으며, 방은 생성자의 회의 종료 요청으로만 삭제됩니다.

Classes:
    RoomRegistry: 방 메타데이터와 방별 asyncio.Lock 관리
"""

import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, Optional, Tuple

from ..database.store import MeetingStore
from ..shared.errors import Forbidden
from .messages import MessageLog
from .models import Room, utcnow
from .participants import ParticipantDirectory

logger = logging.getLogger(__name__)

# 방 종료 직후 (잠금 안에서) 호출: (삭제된 메시지 수, 삭제된 참가자 수)
PurgedCallback = Callable[[int, int], Awaitable[None]]


class RoomRegistry:
    """방 메타데이터 관리 클래스.

    Attributes:
        store: 방 저장소
        messages: 방 종료 시 함께 비울 메시지 로그
        participants: 방 종료 시 함께 비울 참가자 디렉토리

    Note:
        입장 처리처럼 여러 단계로 이루어진 방 단위 변경은 ``lock(room_id)`` 안에서
        수행해야 합니다. 동시에 들어온 입장 요청이 반쯤 만들어진 방을 보지 않도록
        하기 위함입니다. ``end_meeting()`` 은 내부에서 잠금을 잡습니다.
    """

    def __init__(
        self,
        store: MeetingStore,
        messages: MessageLog,
        participants: ParticipantDirectory,
    ):
        self.store = store
        self.messages = messages
        self.participants = participants
        # 방 ID → 잠금 (재사용; 삭제하지 않음)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock(self, room_id: str) -> asyncio.Lock:
        """방 단위 잠금을 반환합니다."""
        return self._locks[room_id]

    async def get(self, room_id: str) -> Optional[Room]:
        return await self.store.get_room(room_id)

    async def resolve_or_create(self, room_id: str, user_id: str, name: str) -> Tuple[Room, bool]:
        """방을 조회하고, 없으면 입장자를 생성자로 하여 만듭니다.

        Args:
            room_id: 방 ID
            user_id: 입장자 ID
            name: 입장자 표시 이름

        Returns:
            (방, 입장자가 생성자인지 여부)
        """
        now = utcnow()
        room, created = await self.store.create_room_if_absent(
            Room(room_id=room_id, creator_id=user_id, creator_name=name,
                 created_at=now, last_activity=now)
        )

        if created:
            logger.info(f"[Room] 방 생성: {room_id} (creator={name}/{user_id})")
            return room, True

        await self.store.touch_room(room_id, now)
        room.last_activity = now
        return room, room.creator_id == user_id

    async def end_meeting(
        self, room_id: str, requester_id: str, on_purged: Optional[PurgedCallback] = None
    ) -> Tuple[int, int]:
        """회의를 종료하고 방의 메시지/참가자/메타데이터를 삭제합니다.

        Args:
            room_id: 방 ID
            requester_id: 요청자 ID
            on_purged: 삭제 후 잠금을 놓기 전에 실행할 정리 작업 (종료 알림, 연결 그룹 해제)

        Returns:
            (삭제된 메시지 수, 삭제된 참가자 수)

        Raises:
            Forbidden: 방이 없거나 요청자가 생성자가 아닌 경우
        """
        async with self.lock(room_id):
            room = await self.store.get_room(room_id)
            if room is None or room.creator_id != requester_id:
                logger.warning(f"[Room] 회의 종료 거부: {room_id} (requester={requester_id})")
                raise Forbidden("Only the meeting creator can end the meeting")

            deleted_messages = await self.messages.purge(room_id)
            deleted_participants = await self.participants.purge(room_id)
            await self.store.delete_room(room_id)
            if on_purged is not None:
                await on_purged(deleted_messages, deleted_participants)

        logger.info(
            f"[Room] 회의 종료: {room_id} "
            f"(메시지 {deleted_messages}건, 참가자 {deleted_participants}명 삭제)"
        )
        return deleted_messages, deleted_participants
