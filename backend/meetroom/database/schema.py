"""데이터베이스 스키마 정의.

서버 시작 시 ``init_schema()`` 가 테이블과 인덱스를 생성합니다 (이미 있으면 그대로 둠).
"""

import logging

from .connection import DatabaseManager

logger = logging.getLogger(__name__)

# ==============================================================================
# DDL Statements
# ==============================================================================

CREATE_ROOMS_TABLE = """
CREATE TABLE IF NOT EXISTS meeting_rooms (
    room_id VARCHAR(200) PRIMARY KEY,
    creator_id VARCHAR(200) NOT NULL,
    creator_name VARCHAR(200) NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
    last_activity TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
    settings JSONB NOT NULL DEFAULT '{}'::jsonb
);

COMMENT ON TABLE meeting_rooms IS '회의실 메타데이터';
COMMENT ON COLUMN meeting_rooms.creator_id IS '첫 입장자 ID (변경 불가)';
"""

CREATE_MESSAGES_TABLE = """
CREATE TABLE IF NOT EXISTS meeting_messages (
    id BIGSERIAL PRIMARY KEY,
    room_id VARCHAR(200) NOT NULL,
    type VARCHAR(50) NOT NULL DEFAULT 'user',
    text TEXT NOT NULL DEFAULT '',
    author VARCHAR(200) NOT NULL,
    user_id VARCHAR(200) NOT NULL,
    time VARCHAR(20),
    timestamp TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
    file JSONB,
    is_ai_question BOOLEAN NOT NULL DEFAULT FALSE,
    origin_user_id VARCHAR(200)
);

CREATE INDEX IF NOT EXISTS idx_meeting_messages_room_ts
    ON meeting_messages(room_id, timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_meeting_messages_ts
    ON meeting_messages(timestamp);

COMMENT ON TABLE meeting_messages IS '회의 메시지 (보관 기간 경과 시 주기적으로 삭제)';
"""

CREATE_PARTICIPANTS_TABLE = """
CREATE TABLE IF NOT EXISTS meeting_participants (
    room_id VARCHAR(200) NOT NULL,
    user_id VARCHAR(200) NOT NULL,
    name VARCHAR(200) NOT NULL,
    status VARCHAR(20) NOT NULL DEFAULT 'online',
    join_time TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
    last_seen TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
    connection_id VARCHAR(100),
    PRIMARY KEY (room_id, user_id)
);

CREATE INDEX IF NOT EXISTS idx_meeting_participants_status_seen
    ON meeting_participants(status, last_seen);

COMMENT ON COLUMN meeting_participants.connection_id IS '온라인일 때만 존재하는 연결 ID';
"""

CREATE_SYSTEM_LOGS_TABLE = """
CREATE TABLE IF NOT EXISTS system_logs (
    id BIGSERIAL PRIMARY KEY,
    level VARCHAR(20) NOT NULL,
    message TEXT NOT NULL,
    logger_name VARCHAR(200),
    module VARCHAR(200),
    func_name VARCHAR(200),
    line_no INTEGER,
    exception TEXT,
    extra JSONB DEFAULT '{}'::jsonb,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_system_logs_created ON system_logs(created_at DESC);
"""

SCHEMA_STATEMENTS = (
    ("meeting_rooms", CREATE_ROOMS_TABLE),
    ("meeting_messages", CREATE_MESSAGES_TABLE),
    ("meeting_participants", CREATE_PARTICIPANTS_TABLE),
    ("system_logs", CREATE_SYSTEM_LOGS_TABLE),
)


async def init_schema(db: DatabaseManager) -> bool:
    """테이블과 인덱스를 생성합니다.

    Args:
        db: 초기화된 DatabaseManager

    Returns:
        bool: 성공 여부 (실패 시 호출 측에서 메모리 저장소로 전환)
    """
    if not db.is_initialized:
        return False

    try:
        async with db.acquire() as conn:
            for table_name, statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
                logger.debug(f"[DB] {table_name} 확인 완료")
        logger.info("[DB] 스키마 초기화 완료")
        return True
    except Exception as e:
        logger.error(f"[DB] 스키마 초기화 실패: {e}")
        return False
