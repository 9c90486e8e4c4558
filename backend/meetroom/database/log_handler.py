"""system_logs 테이블 로그 핸들러.

PostgreSQL 을 쓸 수 있을 때만 lifespan 에서 루트 로거에 붙습니다.
``emit()`` 은 레코드를 큐에 넣기만 하고, 이벤트 루프의 백그라운드 태스크가
``batch_size`` 개씩 꺼내 ``SystemLogRepository.add_log`` 로 저장합니다.

Examples:
    >>> handler = setup_database_logging(SystemLogRepository(db))
    >>> await handler.start()
    >>> ...
    >>> await handler.stop()  # 남은 레코드까지 저장
"""

import asyncio
import logging
import traceback
from queue import Empty, SimpleQueue
from typing import Any, Dict, List, Optional

from .repository import SystemLogRepository

# 저장 경로에서 나오는 로그까지 다시 저장하면 끝없이 늘어남
EXCLUDED_LOGGERS = ("meetroom.database", "asyncpg")


class DatabaseLogHandler(logging.Handler):
    """로그 레코드를 모아 배치로 DB 에 저장하는 핸들러.

    Attributes:
        repository: system_logs 저장소
        batch_size: 한 번에 저장하는 최대 레코드 수
        flush_interval: 배치 사이 대기 시간 (초)
    """

    def __init__(
        self,
        repository: SystemLogRepository,
        level: int = logging.INFO,
        batch_size: int = 10,
        flush_interval: float = 5.0,
    ):
        super().__init__(level)
        self.repository = repository
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self._pending: SimpleQueue = SimpleQueue()
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def emit(self, record: logging.LogRecord) -> None:
        if record.name.startswith(EXCLUDED_LOGGERS):
            return
        try:
            self._pending.put(self._to_row(record))
        except Exception:
            self.handleError(record)

    @staticmethod
    def _to_row(record: logging.LogRecord) -> Dict[str, Any]:
        return {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger_name": record.name,
            "module": record.module,
            "func_name": record.funcName,
            "line_no": record.lineno,
            "exception": (
                "".join(traceback.format_exception(*record.exc_info)) if record.exc_info else None
            ),
            "extra": getattr(record, "extra", None),
        }

    def _take(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        rows = []
        while limit is None or len(rows) < limit:
            try:
                rows.append(self._pending.get_nowait())
            except Empty:
                break
        return rows

    async def _save(self, rows: List[Dict[str, Any]]) -> None:
        for row in rows:
            await self.repository.add_log(**row)

    async def _flush_loop(self) -> None:
        while not self._stopping.is_set():
            await self._save(self._take(self.batch_size))
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.flush_interval)
            except asyncio.TimeoutError:
                continue
        await self._save(self._take())

    async def start(self) -> None:
        if self._task is None:
            self._stopping.clear()
            self._task = asyncio.create_task(self._flush_loop())

    async def stop(self) -> None:
        """남은 레코드를 저장하고 백그라운드 태스크를 끝냅니다."""
        if self._task is None:
            return
        self._stopping.set()
        task, self._task = self._task, None
        await task


def setup_database_logging(
    repository: SystemLogRepository, level: int = logging.INFO
) -> DatabaseLogHandler:
    """루트 로거에 DatabaseLogHandler 를 붙이고 돌려줍니다."""
    handler = DatabaseLogHandler(repository, level=level)
    logging.getLogger().addHandler(handler)
    return handler
