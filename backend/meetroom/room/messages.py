"""방 메시지 로그."""

import logging
from datetime import timedelta
from typing import List, Optional

from ..database.store import MeetingStore
from .models import VOICE_TRANSCRIPTION_MESSAGE, Message, utcnow

logger = logging.getLogger(__name__)

# transcript.txt 로 내보내는 최대 줄 수
TRANSCRIPT_LIMIT = 5000


class MessageLog:
    """방별 메시지 기록.

    메시지는 추가 순서대로 저장되며 저장 후에는 바뀌지 않습니다.

    Attributes:
        store: 메시지 저장소
        retention_days: 메시지 보관 기간 (일)
    """

    def __init__(self, store: MeetingStore, retention_days: int = 30):
        self.store = store
        self.retention_days = retention_days

    async def append(self, message: Message) -> Message:
        """timestamp / 표시 시각을 채워서 저장합니다."""
        return await self.store.save_message(message.stamped())

    async def recent(self, room_id: str, limit: int = 50) -> List[Message]:
        """최근 limit 개 메시지 (오래된 것 → 최신)."""
        return await self.store.recent_messages(room_id, limit)

    async def purge(self, room_id: str) -> int:
        return await self.store.delete_messages(room_id)

    async def purge_expired(self, max_age_days: Optional[int] = None) -> int:
        """보관 기간이 지난 메시지를 삭제합니다."""
        days = self.retention_days if max_age_days is None else max_age_days
        deleted = await self.store.delete_messages_before(utcnow() - timedelta(days=days))
        if deleted:
            logger.info(f"[Room] 보관 기간({days}일) 지난 메시지 {deleted}건 삭제")
        return deleted

    async def transcript(self, room_id: str) -> str:
        """음성 인식 결과를 ``[HH:MM] 이름: 내용`` 형식의 텍스트로 만듭니다."""
        messages = await self.store.messages_by_type(
            room_id, VOICE_TRANSCRIPTION_MESSAGE, TRANSCRIPT_LIMIT
        )
        return "".join(f"[{m.time}] {m.author}: {m.text}\n" for m in messages)
