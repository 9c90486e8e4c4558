"""FastAPI 라우터 모듈.

app.py에서 분리된 API 엔드포인트들을 제공합니다.
"""

from .health import router as health_router
from .rooms import router as rooms_router
from .realtime import router as realtime_router
from .ice import router as ice_router
from .deps import get_meeting, get_ws_meeting, client_address

__all__ = [
    "health_router",
    "rooms_router",
    "realtime_router",
    "ice_router",
    "get_meeting",
    "get_ws_meeting",
    "client_address",
]
