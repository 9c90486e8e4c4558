"""WebSocket 이벤트 페이로드 DTO.

클라이언트가 보내는 이벤트별 요청 구조를 pydantic 모델로 정의합니다.
와이어 포맷은 camelCase(roomId, userId ...)이며, 파이썬 쪽에서는 snake_case 속성으로 접근합니다.
검증 실패는 코디네이터에서 InvalidRequest로 변환됩니다.
"""

import base64
import binascii
from datetime import datetime
from typing import Any, Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field


class EventPayload(BaseModel):
    """모든 인바운드 이벤트 페이로드의 기반 모델."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class JoinRoomRequest(EventPayload):
    room_id: str = Field(alias="roomId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    username: str = Field(min_length=1)


class FileAttachmentPayload(EventPayload):
    name: Optional[str] = None
    size: Optional[Union[int, str]] = None  # 바이트 수 또는 클라이언트 표시 문자열 (받은 그대로)
    type: Optional[str] = None
    url: Optional[str] = None


class SendMessageRequest(EventPayload):
    room_id: str = Field(alias="roomId", min_length=1)
    author: str = Field(min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    type: Optional[str] = None
    text: Optional[str] = None
    time: Optional[str] = None
    timestamp: Optional[datetime] = None
    file: Optional[FileAttachmentPayload] = None
    is_ai_question: bool = Field(default=False, alias="isAIQuestion")
    origin_user_id: Optional[str] = Field(default=None, alias="originUserId")


class TypingRequest(EventPayload):
    room_id: str = Field(alias="roomId", min_length=1)
    user_id: Optional[str] = Field(default=None, alias="userId")
    username: Optional[str] = None
    is_typing: bool = Field(default=False, alias="isTyping")


class LeaveRoomRequest(EventPayload):
    room_id: str = Field(alias="roomId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)


class EndMeetingRequest(EventPayload):
    room_id: str = Field(alias="roomId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)


class VoicePresenceRequest(EventPayload):
    room_id: str = Field(alias="roomId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)


class SignalRequest(EventPayload):
    """webrtc-offer / webrtc-answer / webrtc-ice-candidate 공통 구조.

    sdp, candidate 는 불투명 페이로드로 그대로 전달합니다.
    """

    room_id: str = Field(alias="roomId", min_length=1)
    from_user_id: str = Field(alias="fromUserId", min_length=1)
    to_user_id: str = Field(alias="toUserId", min_length=1)
    sdp: Optional[Any] = None
    candidate: Optional[Any] = None

    def forward_payload(self) -> Dict[str, Any]:
        payload = {"roomId": self.room_id, "fromUserId": self.from_user_id}
        if self.sdp is not None:
            payload["sdp"] = self.sdp
        if self.candidate is not None:
            payload["candidate"] = self.candidate
        return payload


class AsrControlRequest(EventPayload):
    room_id: str = Field(alias="roomId", min_length=1)


class AudioChunkRequest(EventPayload):
    room_id: str = Field(alias="roomId", min_length=1)
    chunk_base64: str = Field(default="", alias="chunkBase64")
    is_last: bool = Field(default=False, alias="isLast")

    def decode_chunk(self) -> bytes:
        """Base64 오디오 청크를 PCM bytes로 디코딩합니다.

        Raises:
            ValueError: Base64 형식이 아닌 경우
        """
        try:
            return base64.b64decode(self.chunk_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"invalid base64 audio chunk: {e}") from e


# 이벤트 이름 → 페이로드 모델
EVENT_PAYLOADS: Dict[str, Type[EventPayload]] = {
    "joinRoom": JoinRoomRequest,
    "sendMessage": SendMessageRequest,
    "typing": TypingRequest,
    "leaveRoom": LeaveRoomRequest,
    "endMeeting": EndMeetingRequest,
    "voice-join": VoicePresenceRequest,
    "voice-leave": VoicePresenceRequest,
    "webrtc-offer": SignalRequest,
    "webrtc-answer": SignalRequest,
    "webrtc-ice-candidate": SignalRequest,
    "asr-start": AsrControlRequest,
    "audio-chunk": AudioChunkRequest,
    "asr-stop": AsrControlRequest,
}
