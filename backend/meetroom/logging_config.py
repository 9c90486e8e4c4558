"""로깅 설정 모듈.

콘솔 + 일자별 파일 로그를 설정하고, 보관 기간이 지난 로그 파일을 정리합니다.

사용 예시:
    from meetroom.logging_config import setup_logging

    # 애플리케이션 시작 시 한 번 호출
    setup_logging(settings.logging)
"""

import glob
import logging
import os
import sys
from datetime import datetime, timedelta
from typing import Optional

from .config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_PREFIX = "server_"


def _log_file_date(path: str) -> Optional[datetime]:
    """``server_YYYYMMDD.log`` 파일명에서 날짜를 읽습니다. 형식이 다르면 None."""
    stem = os.path.splitext(os.path.basename(path))[0]
    try:
        return datetime.strptime(stem[len(LOG_FILE_PREFIX):], "%Y%m%d")
    except ValueError:
        return None


def cleanup_old_logs(log_dir: str, retention_days: int) -> int:
    """보관 기간이 지난 일자별 로그 파일을 지우고 지운 개수를 돌려줍니다.

    파일명에서 날짜를 읽을 수 없는 파일은 그대로 둡니다.
    """
    if not os.path.isdir(log_dir):
        return 0

    expires_before = datetime.now() - timedelta(days=retention_days)
    removed = 0
    for path in glob.glob(os.path.join(log_dir, f"{LOG_FILE_PREFIX}*.log")):
        file_date = _log_file_date(path)
        if file_date is None or file_date >= expires_before:
            continue
        try:
            os.remove(path)
        except OSError as e:
            logging.warning(f"로그 파일 삭제 실패: {path} ({e})")
            continue
        removed += 1
    return removed


def setup_logging(config: LoggingConfig) -> None:
    """루트 로거를 설정합니다.

    Args:
        config: 로깅 설정

    Note:
        기존 핸들러를 제거하고 다시 등록하므로 여러 번 호출해도 중복 출력되지 않습니다.
    """
    log_level = getattr(logging, config.LEVEL, logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]  # 콘솔 출력

    if config.FILE_ENABLED:
        os.makedirs(config.LOG_DIR, exist_ok=True)
        log_filename = os.path.join(
            config.LOG_DIR, f"{LOG_FILE_PREFIX}{datetime.now():%Y%m%d}.log"
        )
        handlers.append(logging.FileHandler(log_filename, encoding="utf-8"))  # 파일 저장

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    # 너무 상세한 로그 억제
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    if config.FILE_ENABLED:
        deleted = cleanup_old_logs(config.LOG_DIR, config.RETENTION_DAYS)
        if deleted > 0:
            logging.info(f"오래된 로그 파일 {deleted}개 정리 완료 ({config.RETENTION_DAYS}일 이상)")

    logging.info(f"로깅 초기화 완료: level={config.LEVEL}, file={config.FILE_ENABLED}")
