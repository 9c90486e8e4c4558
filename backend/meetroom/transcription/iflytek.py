"""iFlytek(科大讯飞) 스트리밍 음성 인식 프로토콜.

두 가지 업스트림 API 를 같은 인터페이스로 감쌉니다.

    - IAT (iat-api.xfyun.cn/v2/iat): 턴 단위 받아쓰기.
      HMAC-SHA256 서명 URL, JSON 프레임(Base64 오디오), 연결 즉시 준비 완료.
    - RTASR (rtasr.xfyun.cn/v1/ws): 연속 실시간 전사.
      HMAC-SHA1(md5(appid+ts)) 서명 URL, 바이너리 오디오 프레임,
      서버의 ``action=started`` 수신 후 준비 완료.

서명은 서버에서만 수행하며 API_SECRET 은 클라이언트로 나가지 않습니다.

Examples:
    >>> protocol = build_protocol(settings.transcription)
    >>> url = protocol.build_url()
    >>> frames = protocol.frame_audio(pcm_bytes, is_final=False)
"""

import base64
import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Dict, List, Optional, Union
from urllib.parse import urlencode

from ..config import TranscriptionConfig

logger = logging.getLogger(__name__)

Frame = Union[str, bytes]

# 업스트림 이벤트 종류
EVENT_STARTED = "started"
EVENT_TRANSCRIPT = "transcript"
EVENT_ERROR = "error"
EVENT_IGNORED = "ignored"


@dataclass
class UpstreamEvent:
    kind: str
    text: str = ""
    is_final: bool = False
    detail: str = ""


def _hmac_b64(secret: str, message: str, digestmod) -> str:
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), digestmod).digest()
    return base64.b64encode(digest).decode("ascii")


def _decode(message: Frame) -> Optional[dict]:
    if isinstance(message, (bytes, bytearray)):
        try:
            message = message.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        data = json.loads(message)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _join_words(ws_list) -> str:
    """``ws[].cw[].w`` 구조에서 단어를 이어 붙입니다."""
    return "".join(
        cw.get("w", "")
        for ws in ws_list or []
        for cw in ws.get("cw", []) or []
    )


class IflytekProtocol(ABC):
    """업스트림 프로토콜 공통 인터페이스.

    Attributes:
        name: 모드 이름 ("iat" | "rtasr")
        ready_on_open: 연결 직후 바로 오디오를 보낼 수 있는지 여부
    """

    name: str = ""
    ready_on_open: bool = True

    def __init__(self, config: TranscriptionConfig):
        self.config = config

    @abstractmethod
    def build_url(self, now: Optional[datetime] = None) -> str:
        """서명된 WebSocket URL 을 만듭니다."""

    def headers(self) -> Dict[str, str]:
        return {}

    def opening_frames(self) -> List[Frame]:
        """연결 직후 보낼 프레임."""
        return []

    @abstractmethod
    def frame_audio(self, chunk: bytes, is_final: bool) -> List[Frame]:
        """PCM 청크를 업스트림 프레임으로 변환합니다."""

    @abstractmethod
    def parse(self, message: Frame) -> UpstreamEvent:
        """업스트림 메시지를 해석합니다."""


class IatProtocol(IflytekProtocol):
    """IAT 받아쓰기 프로토콜."""

    name = "iat"
    ready_on_open = True

    HOST = "iat-api.xfyun.cn"
    PATH = "/v2/iat"

    @property
    def audio_format(self) -> str:
        return f"audio/L16;rate={self.config.SAMPLE_RATE}"

    def build_url(self, now: Optional[datetime] = None) -> str:
        date = format_datetime(now or datetime.now(timezone.utc), usegmt=True)
        signature_origin = f"host: {self.HOST}\ndate: {date}\nGET {self.PATH} HTTP/1.1"
        signature = _hmac_b64(self.config.API_SECRET, signature_origin, hashlib.sha256)

        authorization_origin = (
            f'api_key="{self.config.API_KEY}", algorithm="hmac-sha256", '
            f'headers="host date request-line", signature="{signature}"'
        )
        authorization = base64.b64encode(authorization_origin.encode("utf-8")).decode("ascii")

        query = urlencode({"authorization": authorization, "date": date, "host": self.HOST})
        return f"wss://{self.HOST}{self.PATH}?{query}"

    def opening_frames(self) -> List[Frame]:
        frame = {
            "common": {"app_id": self.config.APP_ID},
            "business": {
                "language": self.config.LANGUAGE,
                "domain": "iat",
                "accent": self.config.ACCENT,
                "dwa": "wpgs",
                "vad_eos": self.config.VAD_EOS,
                "ptt": 0,
            },
            "data": {
                "status": 0,
                "format": self.audio_format,
                "encoding": "raw",
                "audio": "",
            },
        }
        return [json.dumps(frame)]

    def frame_audio(self, chunk: bytes, is_final: bool) -> List[Frame]:
        frame = {
            "data": {
                "status": 2 if is_final else 1,
                "format": self.audio_format,
                "encoding": "raw",
                "audio": base64.b64encode(chunk).decode("ascii"),
            }
        }
        return [json.dumps(frame)]

    def parse(self, message: Frame) -> UpstreamEvent:
        data = _decode(message)
        if data is None:
            return UpstreamEvent(EVENT_IGNORED)

        code = data.get("code", 0)
        if code != 0:
            return UpstreamEvent(EVENT_ERROR, detail=f"code={code} message={data.get('message')}")

        payload = data.get("data") or {}
        result = payload.get("result")
        if not result:
            return UpstreamEvent(EVENT_IGNORED)

        return UpstreamEvent(
            EVENT_TRANSCRIPT,
            text=_join_words(result.get("ws")),
            is_final=payload.get("status") == 2,
        )


class RtasrProtocol(IflytekProtocol):
    """RTASR 실시간 전사 프로토콜."""

    name = "rtasr"
    ready_on_open = False

    HOST = "rtasr.xfyun.cn"
    PATH = "/v1/ws"
    END_FRAME = b'{"end": true}'

    def build_url(self, now: Optional[datetime] = None) -> str:
        ts = str(int((now or datetime.now(timezone.utc)).timestamp()))
        base_string = hashlib.md5((self.config.APP_ID + ts).encode("utf-8")).hexdigest()
        signa = _hmac_b64(self.config.API_SECRET, base_string, hashlib.sha1)

        query = urlencode({"appid": self.config.APP_ID, "ts": ts, "signa": signa})
        return f"wss://{self.HOST}{self.PATH}?{query}"

    def headers(self) -> Dict[str, str]:
        return {"Origin": f"https://{self.HOST}"}

    def frame_audio(self, chunk: bytes, is_final: bool) -> List[Frame]:
        frames: List[Frame] = [chunk] if chunk else []
        if is_final:
            frames.append(self.END_FRAME)
        return frames

    def parse(self, message: Frame) -> UpstreamEvent:
        data = _decode(message)
        if data is None:
            return UpstreamEvent(EVENT_IGNORED)

        action = data.get("action")
        if action == "started":
            return UpstreamEvent(EVENT_STARTED)
        if action == "error":
            return UpstreamEvent(
                EVENT_ERROR, detail=f"code={data.get('code')} desc={data.get('desc')}"
            )
        if action != "result":
            return UpstreamEvent(EVENT_IGNORED)

        # data 필드는 JSON 문자열
        body = data.get("data")
        if isinstance(body, str):
            body = _decode(body)
        if not isinstance(body, dict):
            return UpstreamEvent(EVENT_IGNORED)

        st = (body.get("cn") or {}).get("st") or {}
        text = "".join(_join_words(rt.get("ws")) for rt in st.get("rt", []) or [])
        # type "0" = 확정 결과, "1" = 중간 결과
        return UpstreamEvent(EVENT_TRANSCRIPT, text=text, is_final=str(st.get("type")) == "0")


def build_protocol(config: TranscriptionConfig) -> IflytekProtocol:
    """IFLYTEK_MODE 에 맞는 프로토콜을 반환합니다."""
    if config.MODE == "iat":
        return IatProtocol(config)
    if config.MODE != "rtasr":
        logger.warning(f"[ASR] 알 수 없는 IFLYTEK_MODE '{config.MODE}', rtasr 사용")
    return RtasrProtocol(config)
