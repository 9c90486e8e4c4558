"""Health Check API 라우터."""

from fastapi import APIRouter, Depends

from meetroom.context import MeetingContext
from meetroom.room.models import utcnow
from .deps import get_meeting

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check(meeting: MeetingContext = Depends(get_meeting)):
    """서버와 저장소 상태를 알려줍니다.

    PostgreSQL/Redis 가 없어도 메모리로 동작하므로 ``status`` 는 항상 ok 이고,
    ``storage`` 는 현재 쓰고 있는 메시지/참가자 저장소(postgres | memory)입니다.
    """
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "database": await meeting.db.health(),
        "redis": await meeting.redis.health(),
        "storage": meeting.gateway.mode,
        "connections": meeting.hub.connection_count,
    }
