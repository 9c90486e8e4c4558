"""회의실 서버 예외 정의.

코디네이터는 이 예외들을 잡아서 요청한 연결에만 ``error`` 이벤트로 전달합니다.
사용자에게 노출되는 메시지는 ``user_message``에 담기며 내부 정보는 포함하지 않습니다.
"""


class MeetingError(Exception):
    """모든 회의실 예외의 기반 클래스."""

    default_message = "Request failed"

    def __init__(self, message: str = None):
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


class InvalidRequest(MeetingError):
    """필수 필드 누락 또는 형식 오류."""

    default_message = "Missing required parameters"


class Forbidden(MeetingError):
    """방 생성자만 가능한 작업을 다른 사용자가 시도한 경우."""

    default_message = "Only the meeting creator can do this"


class UpstreamUnavailable(MeetingError):
    """음성 인식 업스트림 인증 정보 누락 또는 연결/인증 실패."""

    default_message = "Transcription service unavailable"


class PersistenceError(MeetingError):
    """영속 저장소 작업 실패. 사용자에게는 노출되지 않습니다."""

    default_message = "Storage operation failed"


class RateLimitExceeded(MeetingError):
    """연결별 요청 한도 초과."""

    default_message = "Too many requests, please retry later"
