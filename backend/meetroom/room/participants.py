"""방 참가자 디렉토리 모듈.

참가자 레코드는 저장소(PersistenceGateway)에 두고, 연결 바인딩은
프로세스 안의 양방향 인덱스로 추적합니다.

Architecture:
    - _by_connection: Dict[str, Tuple[str, str]] - 연결 ID → (room_id, user_id)
    - _by_member: Dict[Tuple[str, str], str] - (room_id, user_id) → 연결 ID

    두 인덱스는 바인딩/해제 시 항상 함께 갱신됩니다.
    _by_connection 은 연결 종료 시 참가자를 찾는 데,
    _by_member 는 시그널링 중계 대상 연결을 찾는 데 사용합니다.

Examples:
    >>> directory = ParticipantDirectory(store)
    >>> await directory.upsert("room-1", "u1", "Alice", "conn-1")
    >>> directory.membership("conn-1")
    ('room-1', 'u1')
    >>> await directory.mark_offline("room-1", "u1", connection_id="conn-1")
    True
"""

import logging
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..database.store import MeetingStore
from .models import ONLINE, Participant, utcnow

logger = logging.getLogger(__name__)

MemberKey = Tuple[str, str]


class ParticipantDirectory:
    """참가자 상태와 연결 바인딩을 관리하는 클래스.

    Attributes:
        store: 참가자 레코드 저장소

    Thread Safety:
        - asyncio 단일 스레드 전제
        - 같은 방의 입장 처리는 RoomRegistry 의 방 잠금 안에서 호출됨
    """

    def __init__(self, store: MeetingStore):
        self.store = store
        self._by_connection: Dict[str, MemberKey] = {}
        self._by_member: Dict[MemberKey, str] = {}

    # ------------------------------------------------------------------
    # 인덱스
    # ------------------------------------------------------------------

    def _bind(self, key: MemberKey, connection_id: str) -> None:
        self._unbind(key)

        # 연결 하나는 한 멤버십에만 바인딩됨
        previous = self._by_connection.pop(connection_id, None)
        if previous is not None:
            self._by_member.pop(previous, None)

        self._by_member[key] = connection_id
        self._by_connection[connection_id] = key

    def _unbind(self, key: MemberKey) -> Optional[str]:
        connection_id = self._by_member.pop(key, None)
        if connection_id is not None:
            self._by_connection.pop(connection_id, None)
        return connection_id

    def membership(self, connection_id: str) -> Optional[MemberKey]:
        """연결에 바인딩된 (room_id, user_id) 를 반환합니다."""
        return self._by_connection.get(connection_id)

    def connection_for(self, room_id: str, user_id: str) -> Optional[str]:
        """참가자의 현재 연결 ID. 오프라인이면 None."""
        return self._by_member.get((room_id, user_id))

    # ------------------------------------------------------------------
    # 참가자 상태
    # ------------------------------------------------------------------

    async def upsert(
        self, room_id: str, user_id: str, name: str, connection_id: str
    ) -> Participant:
        """참가자를 온라인으로 기록하고 연결을 바인딩합니다.

        기존 레코드가 있으면 이름, 입장 시각, 마지막 활동 시각, 바인딩을 모두 갱신합니다.

        Args:
            room_id: 방 ID
            user_id: 사용자 ID
            name: 표시 이름
            connection_id: 현재 연결 ID

        Returns:
            Participant: 저장된 참가자
        """
        now = utcnow()
        participant = Participant(
            room_id=room_id,
            user_id=user_id,
            name=name,
            status=ONLINE,
            join_time=now,
            last_seen=now,
            connection_id=connection_id,
        )
        saved = await self.store.save_participant(participant)
        self._bind((room_id, user_id), connection_id)
        logger.info(f"[Room] {name}({user_id}) → {room_id} 바인딩 (conn={connection_id})")
        return saved

    async def mark_offline(
        self, room_id: str, user_id: str, connection_id: Optional[str] = None
    ) -> bool:
        """참가자를 오프라인으로 바꾸고 바인딩을 해제합니다.

        connection_id 가 주어지면 그 연결이 아직 현재 바인딩일 때만 적용합니다.
        재입장으로 바인딩이 바뀐 뒤 도착한 이전 연결의 종료 처리가
        새 바인딩을 지우지 않도록 하기 위함입니다. 여러 번 호출해도 안전합니다.

        Returns:
            bool: 실제로 상태가 바뀌었는지 여부
        """
        key = (room_id, user_id)
        if connection_id is not None and self._by_member.get(key) != connection_id:
            logger.debug(f"[Room] {user_id}@{room_id} 바인딩 불일치, 오프라인 처리 생략")
            return False

        released = self._unbind(key) is not None
        updated = await self.store.mark_offline(room_id, user_id, connection_id)
        return released or updated is not None

    async def find_by_connection(self, connection_id: str) -> Optional[Participant]:
        key = self._by_connection.get(connection_id)
        if key is None:
            return None
        return await self.store.get_participant(*key)

    async def list(self, room_id: str) -> List[Participant]:
        """입장 시각 순 참가자 목록 (오프라인 포함)."""
        return await self.store.list_participants(room_id)

    async def demote_name_collisions(
        self, room_id: str, user_id: str, name: str
    ) -> List[Participant]:
        """같은 이름으로 다른 사용자 ID 가 들어온 경우 이전 참가자를 오프라인으로 바꿉니다."""
        demoted = await self.store.demote_name_collisions(room_id, user_id, name)
        for participant in demoted:
            self._unbind((participant.room_id, participant.user_id))
            logger.info(
                f"[Room] 이름 중복 '{name}': {participant.user_id} 오프라인 처리 ({room_id})"
            )
        return demoted

    async def touch(self, room_id: str, user_id: str) -> None:
        """활동 시 last_seen 을 갱신합니다."""
        await self.store.touch_participant(room_id, user_id, utcnow())

    async def sweep_stale(
        self, max_age: float, live_connections: Iterable[str]
    ) -> Set[str]:
        """오래 활동이 없는 온라인 참가자를 오프라인으로 정리합니다.

        이 프로세스에 살아있는 연결에 바인딩된 참가자는 건너뜁니다.

        Args:
            max_age: last_seen 기준 경과 시간 (초)
            live_connections: 현재 열려있는 연결 ID 목록

        Returns:
            Set[str]: 참가자가 정리된 방 ID 집합
        """
        live = set(live_connections)
        cutoff = utcnow() - timedelta(seconds=max_age)
        demoted = await self.store.demote_stale(cutoff, live)

        rooms = set()
        for participant in demoted:
            key = (participant.room_id, participant.user_id)
            if self._by_member.get(key) not in live:
                self._unbind(key)
            rooms.add(participant.room_id)

        if demoted:
            logger.info(f"[Room] 비활성 참가자 {len(demoted)}명 오프라인 처리 (방 {len(rooms)}개)")
        return rooms

    async def purge(self, room_id: str) -> int:
        """방의 모든 참가자 레코드와 바인딩을 삭제합니다."""
        for key in [k for k in self._by_member if k[0] == room_id]:
            self._unbind(key)
        return await self.store.delete_participants(room_id)
