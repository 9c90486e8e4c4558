"""회의실 저장소 인터페이스.

PostgreSQL 저장소, 메모리 저장소, 그리고 둘을 묶는 PersistenceGateway 가
모두 같은 인터페이스를 구현합니다. 상위 모듈(room registry, directory,
message log)은 이 인터페이스에만 의존합니다.

반환되는 도메인 객체는 저장소 내부 상태와 분리된 사본입니다.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from ..room.models import Message, Participant, Room


class MeetingStore(ABC):
    """방/메시지/참가자 저장소."""

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_room(self, room_id: str) -> Optional[Room]:
        ...

    @abstractmethod
    async def create_room_if_absent(self, room: Room) -> Tuple[Room, bool]:
        """방이 없으면 생성합니다.

        Returns:
            (저장된 방, 새로 생성했는지 여부)
        """

    @abstractmethod
    async def touch_room(self, room_id: str, at: datetime) -> None:
        ...

    @abstractmethod
    async def delete_room(self, room_id: str) -> bool:
        ...

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    @abstractmethod
    async def save_message(self, message: Message) -> Message:
        """메시지를 저장하고 id 가 채워진 메시지를 반환합니다."""

    @abstractmethod
    async def recent_messages(self, room_id: str, limit: int) -> List[Message]:
        """최근 ``limit`` 개 메시지를 오래된 순으로 반환합니다."""

    @abstractmethod
    async def messages_by_type(self, room_id: str, message_type: str, limit: int) -> List[Message]:
        ...

    @abstractmethod
    async def delete_messages(self, room_id: str) -> int:
        ...

    @abstractmethod
    async def delete_messages_before(self, cutoff: datetime) -> int:
        """보관 기간이 지난 메시지를 삭제하고 삭제 건수를 반환합니다."""

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_participant(self, room_id: str, user_id: str) -> Optional[Participant]:
        ...

    @abstractmethod
    async def save_participant(self, participant: Participant) -> Participant:
        """(room_id, user_id) 기준 upsert."""

    @abstractmethod
    async def touch_participant(self, room_id: str, user_id: str, at: datetime) -> bool:
        ...

    @abstractmethod
    async def mark_offline(
        self, room_id: str, user_id: str, connection_id: Optional[str] = None
    ) -> Optional[Participant]:
        """참가자를 오프라인으로 바꾸고 바인딩을 해제합니다.

        connection_id 가 주어지면 현재 바인딩이 그 연결일 때만 적용합니다.

        Returns:
            변경된 참가자, 적용되지 않았으면 None
        """

    @abstractmethod
    async def list_participants(self, room_id: str) -> List[Participant]:
        """입장 시각 순 참가자 목록."""

    @abstractmethod
    async def demote_name_collisions(
        self, room_id: str, user_id: str, name: str
    ) -> List[Participant]:
        """같은 이름으로 온라인 중인 다른 사용자를 오프라인으로 바꾸고, 바뀐 참가자를 돌려줍니다."""

    @abstractmethod
    async def delete_participants(self, room_id: str) -> int:
        ...

    @abstractmethod
    async def demote_stale(
        self, cutoff: datetime, live_connections: Iterable[str]
    ) -> List[Participant]:
        """last_seen 이 cutoff 이전인 온라인 참가자를 오프라인으로 바꿉니다.

        live_connections 에 바인딩된 참가자는 제외합니다.

        Returns:
            오프라인으로 바뀐 참가자
        """
