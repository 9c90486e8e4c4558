"""회의실 연결 세션 코디네이터.

WebSocket 연결에서 들어온 이벤트를 검증하고 각 구성 요소(방 레지스트리,
참가자 디렉토리, 메시지 로그, 시그널링 중계, 음성 인식 세션)로 보낸 뒤
결과를 방 그룹에 브로드캐스트합니다.

처리하는 이벤트:
    - joinRoom: 방 입장 (roomId, userId, username)
    - sendMessage: 채팅 메시지 전송
    - typing: 입력 중 표시
    - leaveRoom: 방 퇴장
    - endMeeting: 회의 종료 (방 생성자만)
    - voice-join / voice-leave: 음성 통화 참여/이탈
    - webrtc-offer / webrtc-answer / webrtc-ice-candidate: 1:1 시그널링 중계
    - asr-start / audio-chunk / asr-stop: 음성 인식 세션 제어 및 오디오 전달

오류 처리:
    - InvalidRequest, Forbidden: 요청한 연결에만 ``error`` 이벤트 전송
    - 속도 제한 초과: ``error`` 전송 후 RateLimitExceeded 를 올려 연결 종료
    - 그 밖의 예외: 로그(traceback) 후 일반 오류 메시지 전송, 다른 방에는 영향 없음
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from .config import Settings
from .room.messages import MessageLog
from .room.models import (
    OFFLINE,
    ONLINE,
    USER_MESSAGE,
    VOICE_TRANSCRIPTION_MESSAGE,
    FileAttachment,
    Message,
    Participant,
)
from .room.participants import ParticipantDirectory
from .room.registry import RoomRegistry
from .ratelimit import RateLimiter
from .shared.dto import (
    EVENT_PAYLOADS,
    AsrControlRequest,
    AudioChunkRequest,
    EndMeetingRequest,
    EventPayload,
    JoinRoomRequest,
    LeaveRoomRequest,
    SendMessageRequest,
    SignalRequest,
    TypingRequest,
    VoicePresenceRequest,
)
from .shared.errors import Forbidden, InvalidRequest, RateLimitExceeded
from .signaling.relay import SignalingRelay
from .signaling.voice import VoicePresence
from .transcription.session import TranscriptionManager
from .transport import ConnectionHub

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], Awaitable[None]]

# 음성 인식 결과를 메시지 로그에 남길 때의 작성자
TRANSCRIPT_AUTHOR = "transcription"
TRANSCRIPT_USER_ID = "system"


class MeetingCoordinator:
    """연결 이벤트 처리기.

    Attributes:
        settings: 애플리케이션 설정
        registry: 방 레지스트리
        participants: 참가자 디렉토리
        messages: 메시지 로그
        hub: 연결/그룹 전송 허브
        relay: 시그널링 중계기
        voice: 음성 통화 참여자 집합
        limiter: 속도 제한기
        transcription: 방별 음성 인식 세션 관리자
    """

    def __init__(
        self,
        settings: Settings,
        registry: RoomRegistry,
        participants: ParticipantDirectory,
        messages: MessageLog,
        hub: ConnectionHub,
        relay: SignalingRelay,
        voice: VoicePresence,
        limiter: RateLimiter,
        upstream_connect: Optional[Callable[..., Any]] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.participants = participants
        self.messages = messages
        self.hub = hub
        self.relay = relay
        self.voice = voice
        self.limiter = limiter
        self.transcription = TranscriptionManager(
            settings.transcription, self._publish_transcript, connect=upstream_connect
        )

        # 연결 ID → 속도 제한 키 (클라이언트 주소)
        self._client_keys: Dict[str, str] = {}
        self._sweep_task: Optional[asyncio.Task] = None

        self._handlers: Dict[str, Handler] = {
            "joinRoom": self._on_join_room,
            "sendMessage": self._on_send_message,
            "typing": self._on_typing,
            "leaveRoom": self._on_leave_room,
            "endMeeting": self._on_end_meeting,
            "voice-join": self._on_voice_join,
            "voice-leave": self._on_voice_leave,
            "webrtc-offer": self._on_webrtc_offer,
            "webrtc-answer": self._on_webrtc_answer,
            "webrtc-ice-candidate": self._on_webrtc_ice_candidate,
            "asr-start": self._on_asr_start,
            "audio-chunk": self._on_audio_chunk,
            "asr-stop": self._on_asr_stop,
        }

    # ------------------------------------------------------------------
    # 연결 수명
    # ------------------------------------------------------------------

    async def connect(self, connection_id: str, websocket, client_key: str) -> None:
        """새 연결을 등록하고 ``connected`` 이벤트로 연결 ID 를 알려줍니다."""
        self.hub.register(connection_id, websocket)
        self._client_keys[connection_id] = client_key
        await self.hub.emit(connection_id, "connected", {"connectionId": connection_id})
        logger.info(f"[Session] 연결: {connection_id} ({client_key})")

    async def disconnect(self, connection_id: str) -> None:
        """연결 종료 정리. 여러 번 호출해도 안전합니다."""
        self.hub.unregister(connection_id)
        self._client_keys.pop(connection_id, None)

        membership = self.participants.membership(connection_id)
        if membership is not None:
            try:
                await self._depart(connection_id, *membership)
            except Exception as e:
                logger.error(f"[Session] {connection_id} 종료 정리 중 오류: {e}", exc_info=True)

        logger.info(f"[Session] 연결 종료: {connection_id}")

    # ------------------------------------------------------------------
    # 이벤트 분배
    # ------------------------------------------------------------------

    async def handle(self, connection_id: str, event: str, data: Any) -> None:
        """인바운드 이벤트 하나를 처리합니다.

        Raises:
            RateLimitExceeded: 속도 제한 초과 (호출 측에서 연결을 닫아야 함)
        """
        if event not in self.settings.rate_limit.EXEMPT_EVENTS:
            key = self._client_keys.get(connection_id, connection_id)
            if not await self.limiter.consume(key):
                logger.warning(f"[Session] 속도 제한 초과: {key} ({event})")
                await self._send_error(connection_id, RateLimitExceeded.default_message)
                raise RateLimitExceeded()

        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(f"[Session] 알 수 없는 이벤트 타입: {event}")
            await self._send_error(connection_id, f"Unknown event: {event}")
            return

        try:
            payload = self._parse(event, data)
            await handler(connection_id, payload)
        except (InvalidRequest, Forbidden) as e:
            await self._send_error(connection_id, e.user_message)
        except Exception as e:
            logger.error(f"[Session] {event} 처리 중 오류 ({connection_id}): {e}", exc_info=True)
            await self._send_error(connection_id, f"{event} failed, please retry")

    @staticmethod
    def _parse(event: str, data: Any) -> EventPayload:
        if not isinstance(data, dict):
            raise InvalidRequest()
        try:
            return EVENT_PAYLOADS[event].model_validate(data)
        except ValidationError as e:
            logger.debug(f"[Session] {event} 검증 실패: {e.errors()}")
            raise InvalidRequest() from e

    async def _send_error(self, connection_id: str, message: str) -> None:
        await self.hub.emit(connection_id, "error", {"message": message})

    # ------------------------------------------------------------------
    # 방 입장/퇴장
    # ------------------------------------------------------------------

    @staticmethod
    def _participant_view(participant: Participant) -> Dict[str, Any]:
        view = participant.to_dict()
        view["status"] = ONLINE if participant.connection_id else OFFLINE
        return view

    async def _participant_views(self, room_id: str):
        return [self._participant_view(p) for p in await self.participants.list(room_id)]

    async def _on_join_room(self, connection_id: str, req: JoinRoomRequest) -> None:
        room_id, user_id, name = req.room_id, req.user_id, req.username

        # 이전에 들어가 있던 방 그룹은 모두 떠남
        previous = self.participants.membership(connection_id)
        self.hub.leave_all(connection_id)
        if previous is not None and previous != (room_id, user_id):
            await self._depart(connection_id, *previous)

        async with self.registry.lock(room_id):
            for demoted in await self.participants.demote_name_collisions(room_id, user_id, name):
                await self._announce_departure(room_id, demoted.user_id)
            room, is_creator = await self.registry.resolve_or_create(room_id, user_id, name)
            participant = await self.participants.upsert(room_id, user_id, name, connection_id)

            if not self.hub.is_connected(connection_id):
                # 입장 처리 중 연결이 끊긴 경우
                await self.participants.mark_offline(room_id, user_id, connection_id)
                return

            self.hub.join(connection_id, room_id)

            recent = await self.messages.recent(room_id, self.settings.presence.RECENT_MESSAGE_LIMIT)
            roster = await self._participant_views(room_id)

            await self.hub.emit(connection_id, "roomData", {
                "messages": [m.to_dict() for m in recent],
                "participants": roster,
                "roomInfo": room.info(),
                "isCreator": is_creator,
            })
            await self.hub.broadcast(
                room_id, "userJoined", self._participant_view(participant), exclude=[connection_id]
            )
            await self.hub.broadcast(room_id, "participantsUpdate", roster)

        logger.info(f"[Session] {name}({user_id}) 입장: {room_id} (creator={is_creator})")

    async def _on_leave_room(self, connection_id: str, req: LeaveRoomRequest) -> None:
        self.hub.leave(connection_id, req.room_id)
        if self.participants.membership(connection_id) != (req.room_id, req.user_id):
            return
        await self._depart(connection_id, req.room_id, req.user_id)

    async def _depart(self, connection_id: str, room_id: str, user_id: str) -> None:
        """참가자를 오프라인으로 바꾸고 방에 알립니다 (바인딩이 이 연결일 때만)."""
        if not await self.participants.mark_offline(room_id, user_id, connection_id):
            return

        await self._announce_departure(room_id, user_id, exclude=[connection_id])
        await self.hub.broadcast(room_id, "participantsUpdate", await self._participant_views(room_id))
        logger.info(f"[Session] {user_id} 퇴장: {room_id}")

    async def _announce_departure(
        self, room_id: str, user_id: str, exclude: Optional[List[str]] = None
    ) -> None:
        """``userLeft`` 를 알리고, 음성 통화 중이었다면 ``voice-user-left`` 도 알립니다."""
        await self.hub.broadcast(room_id, "userLeft", {"userId": user_id}, exclude=exclude)
        if self.voice.leave(room_id, user_id):
            await self.hub.broadcast(room_id, "voice-user-left", {"userId": user_id}, exclude=exclude)

    async def _on_end_meeting(self, connection_id: str, req: EndMeetingRequest) -> None:
        room_id = req.room_id

        async def close_room(deleted_messages: int, deleted_participants: int) -> None:
            # 방 잠금 안에서 실행됨
            await self.transcription.stop(room_id)
            self.voice.clear(room_id)
            await self.hub.broadcast(room_id, "meetingEnded", {
                "message": "The meeting was ended by its creator and the room data was cleared",
                "deletedMessages": deleted_messages,
                "deletedParticipants": deleted_participants,
            })
            self.hub.clear_group(room_id)

        deleted_messages, deleted_participants = await self.registry.end_meeting(
            room_id, req.user_id, on_purged=close_room
        )
        await self.hub.emit(connection_id, "endMeetingSuccess", {
            "message": "Meeting ended",
            "deletedMessages": deleted_messages,
            "deletedParticipants": deleted_participants,
        })

    # ------------------------------------------------------------------
    # 채팅
    # ------------------------------------------------------------------

    async def _on_send_message(self, connection_id: str, req: SendMessageRequest) -> None:
        file = None
        if req.file is not None:
            file = FileAttachment(
                name=req.file.name, size=req.file.size, type=req.file.type, url=req.file.url
            )

        stored = await self.messages.append(Message(
            room_id=req.room_id,
            author=req.author,
            user_id=req.user_id,
            text=req.text or "",
            type=req.type or USER_MESSAGE,
            time=req.time,
            timestamp=req.timestamp,
            file=file,
            is_ai_question=req.is_ai_question,
            origin_user_id=req.origin_user_id,
        ))

        await self.hub.broadcast(req.room_id, "newMessage", stored.to_dict())
        await self.participants.touch(req.room_id, req.user_id)

    async def _on_typing(self, connection_id: str, req: TypingRequest) -> None:
        await self.hub.broadcast(req.room_id, "userTyping", {
            "userId": req.user_id,
            "username": req.username,
            "isTyping": req.is_typing,
        }, exclude=[connection_id])

    # ------------------------------------------------------------------
    # 음성 통화 / 시그널링
    # ------------------------------------------------------------------

    async def _on_voice_join(self, connection_id: str, req: VoicePresenceRequest) -> None:
        members = self.voice.join(req.room_id, req.user_id)
        await self.hub.emit(connection_id, "voice-users", members)
        await self.hub.broadcast(
            req.room_id, "voice-user-joined", {"userId": req.user_id}, exclude=[connection_id]
        )

    async def _on_voice_leave(self, connection_id: str, req: VoicePresenceRequest) -> None:
        self.voice.leave(req.room_id, req.user_id)
        await self.hub.broadcast(
            req.room_id, "voice-user-left", {"userId": req.user_id}, exclude=[connection_id]
        )

    async def _on_webrtc_offer(self, connection_id: str, req: SignalRequest) -> None:
        await self.relay.relay(req.room_id, req.to_user_id, "webrtc-offer", req.forward_payload())

    async def _on_webrtc_answer(self, connection_id: str, req: SignalRequest) -> None:
        await self.relay.relay(req.room_id, req.to_user_id, "webrtc-answer", req.forward_payload())

    async def _on_webrtc_ice_candidate(self, connection_id: str, req: SignalRequest) -> None:
        await self.relay.relay(
            req.room_id, req.to_user_id, "webrtc-ice-candidate", req.forward_payload()
        )

    # ------------------------------------------------------------------
    # 음성 인식
    # ------------------------------------------------------------------

    async def _on_asr_start(self, connection_id: str, req: AsrControlRequest) -> None:
        self.transcription.ensure_session(req.room_id, explicit=True)

    async def _on_audio_chunk(self, connection_id: str, req: AudioChunkRequest) -> None:
        try:
            chunk = req.decode_chunk()
        except ValueError as e:
            raise InvalidRequest("Invalid audio chunk") from e
        await self.transcription.submit_audio(req.room_id, chunk, req.is_last)

    async def _on_asr_stop(self, connection_id: str, req: AsrControlRequest) -> None:
        await self.transcription.stop(req.room_id)

    async def _publish_transcript(self, room_id: str, text: str, is_final: bool) -> None:
        await self.hub.broadcast(room_id, "transcript", {"text": text, "isFinal": is_final})

        if is_final:
            await self.messages.append(Message(
                room_id=room_id,
                author=TRANSCRIPT_AUTHOR,
                user_id=TRANSCRIPT_USER_ID,
                text=text,
                type=VOICE_TRANSCRIPTION_MESSAGE,
            ))

    # ------------------------------------------------------------------
    # 주기 정리
    # ------------------------------------------------------------------

    async def sweep(self) -> None:
        """비활성 참가자와 보관 기간이 지난 메시지를 정리합니다."""
        rooms = await self.participants.sweep_stale(
            self.settings.presence.STALE_AFTER, self.hub.connection_ids
        )
        for room_id in rooms:
            await self.hub.broadcast(
                room_id, "participantsUpdate", await self._participant_views(room_id)
            )

        await self.messages.purge_expired()
        self.limiter.prune()

    async def _sweep_loop(self) -> None:
        interval = self.settings.presence.SWEEP_INTERVAL
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"[Session] 주기 정리 실패: {e}", exc_info=True)

    def start(self) -> None:
        """주기 정리 태스크를 시작합니다."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """주기 정리 태스크와 음성 인식 세션을 종료합니다."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        await self.transcription.close_all()
