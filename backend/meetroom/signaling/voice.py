"""방별 음성 통화 참여자 집합 (프로세스 메모리)."""

from collections import defaultdict
from typing import Dict, List, Set


class VoicePresence:
    """방 ID → 음성 통화 중인 사용자 ID 집합."""

    def __init__(self):
        self._rooms: Dict[str, Set[str]] = defaultdict(set)

    def join(self, room_id: str, user_id: str) -> List[str]:
        """사용자를 추가하고 현재 통화 참여자 전체(본인 포함) 목록을 반환합니다."""
        members = self._rooms[room_id]
        members.add(user_id)
        return sorted(members)

    def leave(self, room_id: str, user_id: str) -> bool:
        members = self._rooms.get(room_id)
        if not members or user_id not in members:
            return False
        members.discard(user_id)
        if not members:
            del self._rooms[room_id]
        return True

    def contains(self, room_id: str, user_id: str) -> bool:
        return user_id in self._rooms.get(room_id, ())

    def members(self, room_id: str) -> List[str]:
        return sorted(self._rooms.get(room_id, ()))

    def clear(self, room_id: str) -> None:
        self._rooms.pop(room_id, None)
