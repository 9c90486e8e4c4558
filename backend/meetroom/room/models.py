"""회의실 도메인 데이터 클래스.

Classes:
    RoomSettings: 방 설정 (최대 인원, 파일 업로드, AI 보조)
    Room: 방 메타데이터 (생성자, 생성/활동 시각)
    Participant: 방 참가자 상태
    FileAttachment: 메시지 첨부 파일 정보
    Message: 채팅/이벤트 메시지

모든 시각은 timezone-aware UTC datetime 으로 다루고,
와이어로 나갈 때는 ISO 8601 문자열(camelCase 키)로 직렬화합니다.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

ONLINE = "online"
OFFLINE = "offline"

USER_MESSAGE = "user"
VOICE_TRANSCRIPTION_MESSAGE = "voice-transcription"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def display_time(ts: datetime) -> str:
    """메시지 표시용 시각 (HH:MM, 서버 로컬 시간)."""
    return ts.astimezone().strftime("%H:%M")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # asyncpg 는 timestamptz 를 aware 로 돌려주지만, 클라이언트 입력은 naive 일 수 있음
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class RoomSettings:
    max_participants: int = 50
    allow_file_upload: bool = True
    ai_enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maxParticipants": self.max_participants,
            "allowFileUpload": self.allow_file_upload,
            "aiEnabled": self.ai_enabled,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RoomSettings":
        data = data or {}
        return cls(
            max_participants=data.get("maxParticipants", 50),
            allow_file_upload=data.get("allowFileUpload", True),
            ai_enabled=data.get("aiEnabled", True),
        )


@dataclass
class Room:
    """방 메타데이터.

    creator_id 는 첫 입장 시 정해지며 이후 변경되지 않습니다.
    """

    room_id: str
    creator_id: str
    creator_name: str
    created_at: datetime = field(default_factory=utcnow)
    last_activity: datetime = field(default_factory=utcnow)
    settings: RoomSettings = field(default_factory=RoomSettings)

    def info(self) -> Dict[str, Any]:
        """roomData 이벤트의 roomInfo 부분."""
        return {
            "creatorId": self.creator_id,
            "creatorName": self.creator_name,
            "createdAt": _iso(self.created_at),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roomId": self.room_id,
            **self.info(),
            "lastActivity": _iso(self.last_activity),
            "settings": self.settings.to_dict(),
        }

    @classmethod
    def from_record(cls, record) -> "Room":
        return cls(
            room_id=record["room_id"],
            creator_id=record["creator_id"],
            creator_name=record["creator_name"],
            created_at=_aware(record["created_at"]),
            last_activity=_aware(record["last_activity"]),
            settings=RoomSettings.from_dict(record["settings"]),
        )


@dataclass
class Participant:
    """방 참가자.

    connection_id 는 온라인 상태일 때만 존재하는 연결 바인딩입니다.
    """

    room_id: str
    user_id: str
    name: str
    status: str = ONLINE
    join_time: datetime = field(default_factory=utcnow)
    last_seen: datetime = field(default_factory=utcnow)
    connection_id: Optional[str] = None

    @property
    def is_online(self) -> bool:
        return self.status == ONLINE and self.connection_id is not None

    def copy(self, **changes) -> "Participant":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roomId": self.room_id,
            "userId": self.user_id,
            "name": self.name,
            "status": self.status,
            "joinTime": _iso(self.join_time),
            "lastSeen": _iso(self.last_seen),
            "socketId": self.connection_id,
        }

    @classmethod
    def from_record(cls, record) -> "Participant":
        return cls(
            room_id=record["room_id"],
            user_id=record["user_id"],
            name=record["name"],
            status=record["status"],
            join_time=_aware(record["join_time"]),
            last_seen=_aware(record["last_seen"]),
            connection_id=record["connection_id"],
        )


@dataclass
class FileAttachment:
    name: Optional[str] = None
    size: Optional[Union[int, str]] = None
    type: Optional[str] = None
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "size": self.size, "type": self.type, "url": self.url}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["FileAttachment"]:
        if not data:
            return None
        return cls(
            name=data.get("name"),
            size=data.get("size"),
            type=data.get("type"),
            url=data.get("url"),
        )


@dataclass
class Message:
    """채팅/이벤트 메시지. 저장 후에는 변경하지 않습니다."""

    room_id: str
    author: str
    user_id: str
    text: str = ""
    type: str = USER_MESSAGE
    time: Optional[str] = None
    timestamp: Optional[datetime] = None
    file: Optional[FileAttachment] = None
    is_ai_question: bool = False
    origin_user_id: Optional[str] = None
    id: Optional[int] = None

    def stamped(self) -> "Message":
        """권위 있는 timestamp / 표시 시각이 채워진 사본을 반환합니다."""
        timestamp = _aware(self.timestamp) or utcnow()
        return replace(self, timestamp=timestamp, time=self.time or display_time(timestamp))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "roomId": self.room_id,
            "type": self.type,
            "text": self.text,
            "author": self.author,
            "userId": self.user_id,
            "time": self.time,
            "timestamp": _iso(self.timestamp),
            "file": self.file.to_dict() if self.file else None,
            "isAIQuestion": self.is_ai_question,
            "originUserId": self.origin_user_id,
        }

    @classmethod
    def from_record(cls, record) -> "Message":
        return cls(
            id=record["id"],
            room_id=record["room_id"],
            type=record["type"],
            text=record["text"],
            author=record["author"],
            user_id=record["user_id"],
            time=record["time"],
            timestamp=_aware(record["timestamp"]),
            file=FileAttachment.from_dict(record["file"]),
            is_ai_question=record["is_ai_question"],
            origin_user_id=record["origin_user_id"],
        )
