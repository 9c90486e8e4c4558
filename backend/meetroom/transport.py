"""연결 전송 허브.

열린 WebSocket 연결과 방 단위 브로드캐스트 그룹을 관리합니다.
모든 아웃바운드 메시지는 ``{"type": <event>, "data": {...}}`` JSON 입니다.

Architecture:
    - _sockets: Dict[str, WebSocket] - 연결 ID → WebSocket
    - _groups: Dict[str, Set[str]] - 방 ID → 연결 ID 집합
    - _memberships: Dict[str, Set[str]] - 연결 ID → 방 ID 집합 (빠른 정리용)

    연결 자신에게 보내는 메시지는 그룹 없이 ``emit()`` 으로 직접 보냅니다.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionHub:
    """연결 및 방 그룹 관리 클래스.

    Examples:
        >>> hub = ConnectionHub()
        >>> hub.register("conn-1", websocket)
        >>> hub.join("conn-1", "room-1")
        >>> await hub.broadcast("room-1", "newMessage", message, exclude=["conn-1"])
    """

    def __init__(self):
        self._sockets: Dict[str, WebSocket] = {}
        self._groups: Dict[str, Set[str]] = defaultdict(set)
        self._memberships: Dict[str, Set[str]] = defaultdict(set)

    def register(self, connection_id: str, websocket: WebSocket) -> None:
        self._sockets[connection_id] = websocket

    def unregister(self, connection_id: str) -> Set[str]:
        """연결을 제거하고, 속해 있던 방 ID 집합을 반환합니다."""
        self._sockets.pop(connection_id, None)
        return self.leave_all(connection_id)

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._sockets

    @property
    def connection_ids(self) -> List[str]:
        return list(self._sockets)

    @property
    def connection_count(self) -> int:
        return len(self._sockets)

    # ------------------------------------------------------------------
    # 그룹
    # ------------------------------------------------------------------

    def join(self, connection_id: str, group: str) -> None:
        self._groups[group].add(connection_id)
        self._memberships[connection_id].add(group)

    def leave(self, connection_id: str, group: str) -> None:
        members = self._groups.get(group)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._groups[group]

        groups = self._memberships.get(connection_id)
        if groups is not None:
            groups.discard(group)
            if not groups:
                del self._memberships[connection_id]

    def leave_all(self, connection_id: str) -> Set[str]:
        """연결을 모든 방 그룹에서 제거합니다."""
        groups = set(self._memberships.get(connection_id, ()))
        for group in groups:
            self.leave(connection_id, group)
        return groups

    def clear_group(self, group: str) -> Set[str]:
        """그룹의 모든 연결을 제거하고 제거된 연결 ID 를 반환합니다."""
        members = set(self._groups.get(group, ()))
        for connection_id in members:
            self.leave(connection_id, group)
        return members

    def members(self, group: str) -> Set[str]:
        return set(self._groups.get(group, ()))

    def groups_of(self, connection_id: str) -> Set[str]:
        return set(self._memberships.get(connection_id, ()))

    # ------------------------------------------------------------------
    # 전송
    # ------------------------------------------------------------------

    async def emit(self, connection_id: str, event: str, data: Any = None) -> bool:
        """연결 하나에 이벤트를 보냅니다.

        Returns:
            bool: 전송 성공 여부 (연결이 없거나 실패하면 False)
        """
        websocket = self._sockets.get(connection_id)
        if websocket is None:
            return False

        try:
            await websocket.send_json({"type": event, "data": data})
            return True
        except Exception as e:
            logger.error(f"연결 {connection_id}에 {event} 전송 중 오류: {e}")
            return False

    async def broadcast(
        self,
        group: str,
        event: str,
        data: Any = None,
        exclude: Optional[Iterable[str]] = None,
    ) -> int:
        """방 그룹의 모든 연결에 이벤트를 보냅니다.

        Args:
            group: 방 ID
            event: 이벤트 이름
            data: 페이로드
            exclude: 받지 않을 연결 ID 목록

        Returns:
            int: 전송 성공한 연결 수
        """
        excluded = set(exclude or ())
        delivered = 0
        for connection_id in self.members(group):
            if connection_id in excluded:
                continue
            if await self.emit(connection_id, event, data):
                delivered += 1
        return delivered
