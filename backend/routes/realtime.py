"""회의실 실시간 WebSocket 라우터.

클라이언트는 ``/ws`` 에 연결한 뒤 ``{"type": <event>, "data": {...}}`` JSON 으로
이벤트를 주고받습니다. 이벤트 처리는 MeetingCoordinator 가 담당합니다.
"""

import json
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from meetroom.shared.errors import RateLimitExceeded
from .deps import client_address, get_ws_meeting

logger = logging.getLogger(__name__)

router = APIRouter()

# 정책 위반 (속도 제한 초과)
CLOSE_POLICY_VIOLATION = 1008


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """회의실 WebSocket 엔드포인트.

    연결 수락 후 ``connected`` 이벤트로 연결 ID 를 보내고,
    연결이 끊기면 참가자 오프라인 처리와 퇴장 알림을 수행합니다.
    """
    meeting = get_ws_meeting(websocket)
    if meeting is None:
        logger.error("MeetingContext 가 초기화되지 않음")
        await websocket.close(code=1011, reason="Server not ready")
        return

    await websocket.accept()

    coordinator = meeting.coordinator
    connection_id = str(uuid.uuid4())
    await coordinator.connect(connection_id, websocket, client_address(websocket))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                await meeting.hub.emit(connection_id, "error", {"message": "Invalid JSON"})
                continue

            if not isinstance(message, dict) or not isinstance(message.get("type"), str):
                await meeting.hub.emit(connection_id, "error", {"message": "Missing event type"})
                continue

            await coordinator.handle(connection_id, message["type"], message.get("data"))

    except WebSocketDisconnect:
        logger.info(f"연결 {connection_id} 끊김")
    except RateLimitExceeded:
        await websocket.close(code=CLOSE_POLICY_VIOLATION, reason="Rate limit exceeded")
    except Exception as e:
        logger.error(f"연결 {connection_id}의 WebSocket 처리 중 오류: {e}", exc_info=True)
    finally:
        await coordinator.disconnect(connection_id)
