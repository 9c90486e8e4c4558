"""WebRTC 시그널링 중계.

offer / answer / ICE candidate 를 대상 참가자의 현재 연결 하나에만 전달합니다.
대상이 오프라인이면 조용히 버리며 보낸 쪽에 확인 응답을 주지 않습니다.
"""

import logging
from typing import Any, Dict

from ..room.participants import ParticipantDirectory
from ..transport import ConnectionHub

logger = logging.getLogger(__name__)


class SignalingRelay:
    """참가자 간 1:1 시그널링 중계기."""

    def __init__(self, directory: ParticipantDirectory, hub: ConnectionHub):
        self.directory = directory
        self.hub = hub

    async def relay(
        self, room_id: str, target_user_id: str, event: str, payload: Dict[str, Any]
    ) -> bool:
        """대상 참가자에게 시그널링 메시지를 전달합니다.

        Returns:
            bool: 전달 여부 (예외를 던지지 않음)
        """
        connection_id = self.directory.connection_for(room_id, target_user_id)
        if connection_id is None:
            logger.debug(f"[Signal] {event} 대상 {target_user_id}@{room_id} 오프라인 - 버림")
            return False

        delivered = await self.hub.emit(connection_id, event, payload)
        if not delivered:
            logger.debug(f"[Signal] {event} → {target_user_id} 전송 실패 - 버림")
        return delivered
