"""공유 의존성 모듈.

라우터들이 공통으로 사용하는 의존성을 정의합니다.
구성 요소 묶음(MeetingContext)은 lifespan 에서 ``app.state.meeting`` 에 저장됩니다.
"""

from fastapi import HTTPException, Request, WebSocket

from meetroom.context import MeetingContext


def get_meeting(request: Request) -> MeetingContext:
    """HTTP 요청에서 MeetingContext 를 꺼냅니다.

    Raises:
        HTTPException: 서버가 아직 준비되지 않은 경우 (503)
    """
    meeting = getattr(request.app.state, "meeting", None)
    if meeting is None:
        raise HTTPException(status_code=503, detail="Server not ready")
    return meeting


def get_ws_meeting(websocket: WebSocket) -> MeetingContext:
    """WebSocket 연결에서 MeetingContext 를 꺼냅니다. 준비 전이면 None."""
    return getattr(websocket.app.state, "meeting", None)


def client_address(websocket: WebSocket) -> str:
    """속도 제한 키로 쓸 클라이언트 주소.

    프록시 뒤에서는 X-Forwarded-For 의 첫 번째 주소를 사용합니다.
    """
    forwarded = websocket.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if websocket.client:
        return websocket.client.host
    return "unknown"
