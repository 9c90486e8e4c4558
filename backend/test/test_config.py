"""설정 / 로깅 테스트."""

import asyncio
import logging
import os
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from meetroom.config import RateLimitConfig, ServerConfig, StorageConfig, TranscriptionConfig
from meetroom.database import DatabaseLogHandler
from meetroom.logging_config import cleanup_old_logs


def test_server_config_parses_origin_list(monkeypatch):
    monkeypatch.setenv("ALLOWED_ORIGINS", "http://a.example.com, https://*.railway.app,")
    monkeypatch.setenv("PORT", "4000")

    config = ServerConfig()

    assert config.ALLOWED_ORIGINS == ["http://a.example.com", "https://*.railway.app"]
    assert config.PORT == 4000
    assert config.allow_all_origins is False


def test_storage_without_database_url_uses_memory(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert StorageConfig().durable_configured is False

    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/meetroom")
    assert StorageConfig().durable_configured is True


def test_transcription_reads_legacy_secret_name(monkeypatch):
    monkeypatch.setenv("IFLYTEK_APPID", "app")
    monkeypatch.delenv("IFLYTEK_API_SECRET", raising=False)
    monkeypatch.setenv("XFY_API_SECRET", "legacy")
    monkeypatch.setenv("IFLYTEK_MODE", "RTASR")

    config = TranscriptionConfig()

    assert config.API_SECRET == "legacy"
    assert config.MODE == "rtasr"
    assert config.is_configured is True


def test_high_frequency_events_are_exempt_from_rate_limit():
    assert set(RateLimitConfig().EXEMPT_EVENTS) == {
        "audio-chunk", "webrtc-ice-candidate", "typing"
    }


def test_cleanup_old_logs(tmp_path):
    old = datetime.now() - timedelta(days=90)
    recent = datetime.now() - timedelta(days=1)
    (tmp_path / f"server_{old.strftime('%Y%m%d')}.log").write_text("old")
    (tmp_path / f"server_{recent.strftime('%Y%m%d')}.log").write_text("recent")
    (tmp_path / "server_garbage.log").write_text("?")

    deleted = cleanup_old_logs(str(tmp_path), retention_days=60)

    assert deleted == 1
    assert sorted(os.listdir(tmp_path)) == sorted([
        f"server_{recent.strftime('%Y%m%d')}.log",
        "server_garbage.log",
    ])


def test_cleanup_missing_directory(tmp_path):
    assert cleanup_old_logs(str(tmp_path / "nope"), retention_days=1) == 0


def _record(name: str, message: str) -> logging.LogRecord:
    return logging.LogRecord(name, logging.WARNING, __file__, 10, message, None, None)


def test_database_log_handler_flushes_on_stop():
    repository = AsyncMock()

    async def scenario():
        handler = DatabaseLogHandler(repository, flush_interval=60)
        await handler.start()
        handler.emit(_record("meetroom.coordinator", "room r1 failed"))
        handler.emit(_record("meetroom.database.gateway", "skipped"))
        await handler.stop()

    asyncio.run(scenario())

    repository.add_log.assert_awaited_once()
    saved = repository.add_log.await_args.kwargs
    assert saved["level"] == "WARNING"
    assert saved["message"] == "room r1 failed"
    assert saved["logger_name"] == "meetroom.coordinator"
