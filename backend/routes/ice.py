"""WebRTC ICE 서버 API 라우터.

음성 통화(P2P) 연결에 쓸 STUN/TURN 서버 목록을 제공합니다.
TURN credentials 는 서버 환경 변수에서만 관리합니다.
"""

import logging

from fastapi import APIRouter, Depends

from meetroom.context import MeetingContext
from .deps import get_meeting

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ice"])


@router.get("/ice-servers")
async def get_ice_servers(meeting: MeetingContext = Depends(get_meeting)):
    """ICE 서버 설정 목록을 반환합니다.

    Returns:
        list: RTCPeerConnection ``iceServers`` 형식의 목록

    Examples:
        [
            {"urls": "stun:stun.l.google.com:19302"},
            {"urls": "turn:turn.example.com:3478", "username": "u", "credential": "p"}
        ]
    """
    ice = meeting.settings.ice
    ice_servers = []

    if ice.STUN_SERVER_URL:
        ice_servers.append({"urls": ice.STUN_SERVER_URL})
    else:
        ice_servers.extend({"urls": url} for url in ice.FALLBACK_STUN_URLS)

    if ice.turn_configured:
        ice_servers.append({
            "urls": ice.TURN_SERVER_URL,
            "username": ice.TURN_USERNAME,
            "credential": ice.TURN_CREDENTIAL,
        })
        logger.debug("ICE 서버 제공: STUN + TURN")

    return ice_servers
