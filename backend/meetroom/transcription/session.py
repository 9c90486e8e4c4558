"""방별 음성 인식 세션 관리 모듈.

방마다 최대 하나의 iFlytek 업스트림 연결을 유지하고, 클라이언트가 보낸
오디오 청크를 업스트림으로 전달하며, 인식 결과를 콜백으로 넘깁니다.

세션 상태:
    ABSENT → CONNECTING → READY → CLOSED
    인증 정보가 없으면 항상 DISABLED (오디오는 조용히 버림)

Architecture:
    - _sessions: Dict[str, TranscriptionSession] - 방 ID → 세션
    - 세션마다 백그라운드 태스크(_run) 하나가 업스트림 연결을 소유
    - 준비 전 도착한 오디오는 pending 큐(FIFO)에 쌓였다가 준비 시 순서대로 전송

Note:
    - 연결/인증 실패 시 세션은 ABSENT 로 돌아가고, 명시적인 ``asr-start``
      전까지 오디오 청크로 인한 자동 재연결을 하지 않습니다.
    - 큐 비우기가 끝나기 전에는 READY 로 바꾸지 않으므로
      새 청크가 큐에 남은 청크를 앞지르지 않습니다.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set, Tuple

import websockets

from ..config import TranscriptionConfig
from .iflytek import (
    EVENT_ERROR,
    EVENT_STARTED,
    EVENT_TRANSCRIPT,
    IflytekProtocol,
    build_protocol,
)

logger = logging.getLogger(__name__)

# (room_id, text, is_final)
TranscriptCallback = Callable[[str, str, bool], Awaitable[None]]


class SessionState(str, Enum):
    ABSENT = "absent"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"
    DISABLED = "disabled"


@dataclass
class TranscriptionSession:
    """방 하나의 업스트림 세션."""

    room_id: str
    state: SessionState = SessionState.CONNECTING
    pending: Deque[Tuple[bytes, bool]] = field(default_factory=deque)
    upstream: Any = None
    task: Optional[asyncio.Task] = None


class TranscriptionManager:
    """방별 음성 인식 세션 관리자.

    Attributes:
        config: iFlytek 설정
        protocol: 선택된 업스트림 프로토콜 (미설정이면 None)

    Examples:
        >>> manager = TranscriptionManager(settings.transcription, on_transcript)
        >>> manager.ensure_session("room-1", explicit=True)
        >>> await manager.submit_audio("room-1", pcm_bytes, is_final=False)
        >>> await manager.stop("room-1")
    """

    def __init__(
        self,
        config: TranscriptionConfig,
        on_transcript: TranscriptCallback,
        connect: Optional[Callable[..., Any]] = None,
    ):
        self.config = config
        self.protocol: Optional[IflytekProtocol] = (
            build_protocol(config) if config.is_configured else None
        )
        self._on_transcript = on_transcript
        self._connect = connect or websockets.connect
        self._sessions: Dict[str, TranscriptionSession] = {}
        # 업스트림 실패 후 명시적 재시작을 기다리는 방
        self._failed: Set[str] = set()

        if self.protocol is None:
            logger.warning("[ASR] iFlytek 인증 정보 미설정 - 음성 인식 비활성화")
        else:
            logger.info(f"[ASR] iFlytek 음성 인식 사용 (mode={self.protocol.name})")

    @property
    def enabled(self) -> bool:
        return self.protocol is not None

    def state(self, room_id: str) -> SessionState:
        if not self.enabled:
            return SessionState.DISABLED
        session = self._sessions.get(room_id)
        return session.state if session else SessionState.ABSENT

    def ensure_session(self, room_id: str, explicit: bool = False) -> SessionState:
        """세션이 없으면 업스트림 연결을 시작합니다 (멱등).

        Args:
            room_id: 방 ID
            explicit: ``asr-start`` 요청 여부. 실패 후 재시도는 명시적 요청으로만 합니다.

        Returns:
            SessionState: 호출 후 세션 상태
        """
        if not self.enabled:
            return SessionState.DISABLED

        session = self._sessions.get(room_id)
        if session is not None:
            return session.state

        if room_id in self._failed and not explicit:
            return SessionState.ABSENT

        self._failed.discard(room_id)
        session = TranscriptionSession(room_id=room_id)
        self._sessions[room_id] = session
        session.task = asyncio.create_task(self._run(session))
        logger.info(f"🔌 [ASR] {room_id} 업스트림 연결 시작")
        return session.state

    async def submit_audio(self, room_id: str, chunk: bytes, is_final: bool = False) -> bool:
        """오디오 청크를 전달하거나 큐에 넣습니다.

        Returns:
            bool: 전송 또는 큐잉 여부 (버려졌으면 False)
        """
        if not self.enabled:
            return False

        session = self._sessions.get(room_id)
        if session is None:
            if self.ensure_session(room_id) is SessionState.ABSENT:
                return False
            session = self._sessions[room_id]

        if session.state is SessionState.READY:
            await self._send_audio(session, chunk, is_final)
            return True
        if session.state is SessionState.CONNECTING:
            session.pending.append((chunk, is_final))
            return True
        return False

    async def stop(self, room_id: str) -> bool:
        """업스트림 연결을 닫고 세션을 제거합니다."""
        session = self._sessions.pop(room_id, None)
        if session is None:
            return False

        session.state = SessionState.CLOSED
        session.pending.clear()
        if session.task and not session.task.done():
            session.task.cancel()
            try:
                await session.task
            except asyncio.CancelledError:
                pass

        logger.info(f"[ASR] {room_id} 세션 종료")
        return True

    async def close_all(self) -> None:
        for room_id in list(self._sessions):
            await self.stop(room_id)

    # ------------------------------------------------------------------
    # 업스트림
    # ------------------------------------------------------------------

    async def _run(self, session: TranscriptionSession) -> None:
        """업스트림 연결을 열고 수신 루프를 돌립니다. 종료 시 세션을 제거합니다."""
        protocol = self.protocol
        room_id = session.room_id
        reached_ready = False
        upstream = None

        try:
            upstream = await asyncio.wait_for(
                self._connect(
                    protocol.build_url(),
                    additional_headers=protocol.headers(),
                    ping_interval=20,
                    ping_timeout=10,
                ),
                timeout=self.config.CONNECT_TIMEOUT,
            )
            session.upstream = upstream
            logger.info(f"✅ [ASR] {room_id} 업스트림 연결됨 ({protocol.name})")

            for frame in protocol.opening_frames():
                await upstream.send(frame)

            if protocol.ready_on_open:
                await self._mark_ready(session)
                reached_ready = True

            async for message in upstream:
                event = protocol.parse(message)

                if event.kind == EVENT_STARTED:
                    await self._mark_ready(session)
                    reached_ready = True
                elif event.kind == EVENT_TRANSCRIPT and event.text:
                    await self._emit(room_id, event.text, event.is_final)
                elif event.kind == EVENT_ERROR:
                    logger.error(f"❌ [ASR] {room_id} 업스트림 오류: {event.detail}")

        except asyncio.CancelledError:
            raise
        except websockets.exceptions.ConnectionClosed as e:
            logger.info(f"🔌 [ASR] {room_id} 업스트림 연결 닫힘: {e}")
        except Exception as e:
            logger.error(f"❌ [ASR] {room_id} 업스트림 연결 실패: {e}")
        finally:
            if upstream is not None:
                await self._close_upstream(upstream)
            session.state = SessionState.CLOSED
            session.pending.clear()
            if self._sessions.get(room_id) is session:
                del self._sessions[room_id]
                if not reached_ready:
                    self._failed.add(room_id)
                    logger.warning(f"[ASR] {room_id} 준비 전 종료 - asr-start 로만 재시도")

    async def _mark_ready(self, session: TranscriptionSession) -> None:
        # 큐가 빌 때까지 CONNECTING 유지 (그 사이 도착한 청크도 큐 뒤에 붙음)
        while session.pending:
            chunk, is_final = session.pending.popleft()
            await self._send_audio(session, chunk, is_final)

        if session.state is SessionState.CONNECTING:
            session.state = SessionState.READY
            logger.info(f"[ASR] {session.room_id} 준비 완료")

    async def _send_audio(self, session: TranscriptionSession, chunk: bytes, is_final: bool) -> None:
        try:
            for frame in self.protocol.frame_audio(chunk, is_final):
                await session.upstream.send(frame)
        except Exception as e:
            logger.warning(f"[ASR] {session.room_id} 오디오 전송 실패: {e}")

    async def _emit(self, room_id: str, text: str, is_final: bool) -> None:
        try:
            await self._on_transcript(room_id, text, is_final)
        except Exception as e:
            logger.error(f"[ASR] {room_id} 인식 결과 전달 실패: {e}", exc_info=True)

    @staticmethod
    async def _close_upstream(upstream) -> None:
        try:
            await upstream.close()
        except Exception as e:
            logger.debug(f"[ASR] 업스트림 종료 중 오류 무시: {e}")
