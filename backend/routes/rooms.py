"""방 조회 API 라우터.

메시지 기록, 참가자 목록, 음성 인식 기록(transcript.txt)을 제공합니다.
"""

from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from meetroom.context import MeetingContext
from .deps import get_meeting

router = APIRouter(prefix="/api/rooms", tags=["rooms"])


@router.get("/{room_id}/messages")
async def get_messages(
    room_id: str,
    limit: int = Query(50, ge=1, le=200),
    meeting: MeetingContext = Depends(get_meeting),
):
    """최근 메시지를 오래된 순으로 반환합니다."""
    messages = await meeting.messages.recent(room_id, limit)
    return [m.to_dict() for m in messages]


@router.get("/{room_id}/participants")
async def get_participants(room_id: str, meeting: MeetingContext = Depends(get_meeting)):
    participants = await meeting.participants.list(room_id)
    return [p.to_dict() for p in participants]


@router.get("/{room_id}/transcript.txt", response_class=PlainTextResponse)
async def get_transcript(room_id: str, meeting: MeetingContext = Depends(get_meeting)):
    """음성 인식 기록을 텍스트 파일로 내려줍니다."""
    text = await meeting.messages.transcript(room_id)
    return PlainTextResponse(
        text,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(room_id)}-transcript.txt"
        },
    )
