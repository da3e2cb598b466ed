"""Tests for golfbuddy.logging_config."""

import logging

import pytest

from golfbuddy.logging_config import log_sync, log_sync_event, setup_golfbuddy_logging


@pytest.fixture(autouse=True)
def clean_golfbuddy_logger():
    """Remove all handlers from the golfbuddy logger before/after each test."""
    logger = logging.getLogger("golfbuddy")
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
    yield
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)


@pytest.fixture
def log_dir(golfbuddy_home):
    return golfbuddy_home / "logs"


def _console_handlers(logger):
    return [
        h
        for h in logger.handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]


class TestSetupLogging:
    def test_returns_package_logger(self, log_dir):
        logger = setup_golfbuddy_logging()
        assert logger.name == "golfbuddy"
        assert logger.level == logging.INFO

    def test_creates_dated_log_file(self, log_dir):
        assert not log_dir.exists()

        setup_golfbuddy_logging()

        log_files = list(log_dir.glob("local-*.log"))
        assert len(log_files) == 1

    def test_explicit_data_dir(self, tmp_path):
        setup_golfbuddy_logging(data_dir=tmp_path / "elsewhere")
        assert list((tmp_path / "elsewhere" / "logs").glob("local-*.log"))

    def test_level_is_case_insensitive(self, log_dir):
        assert setup_golfbuddy_logging(level="debug").level == logging.DEBUG

    def test_invalid_level_falls_back_to_info(self, log_dir):
        assert setup_golfbuddy_logging(level="LOUD").level == logging.INFO

    def test_console_only_at_debug(self, log_dir):
        logger = setup_golfbuddy_logging(level="INFO")
        assert _console_handlers(logger) == []

        setup_golfbuddy_logging(level="DEBUG")
        assert len(_console_handlers(logger)) == 1

    def test_no_duplicate_handlers(self, log_dir):
        logger = setup_golfbuddy_logging(level="DEBUG")
        setup_golfbuddy_logging(level="DEBUG")

        assert len([h for h in logger.handlers if isinstance(h, logging.FileHandler)]) == 1
        assert len(_console_handlers(logger)) == 1

    def test_child_loggers_write_to_file(self, log_dir):
        logger = setup_golfbuddy_logging()

        logging.getLogger("golfbuddy.sync.engine").info("Sync complete: pushed=4")
        for h in logger.handlers:
            h.flush()

        content = next(log_dir.glob("local-*.log")).read_text()
        assert " | INFO | golfbuddy.sync.engine | Sync complete: pushed=4" in content


class TestSyncEvents:
    def test_event_line_format(self, log_dir):
        log_sync_event("sync_error", "HTTP 500: Internal Server Error", device_id="dev-1")

        lines = next(log_dir.glob("sync-events-*.log")).read_text().splitlines()

        assert len(lines) == 1
        assert lines[0].endswith(" | sync_error | device=dev-1 | HTTP 500: Internal Server Error")

    def test_log_sync_counts(self, log_dir):
        log_sync("dev-1", "push", 4)
        log_sync("dev-1", "pull", 100, errors=1)

        content = next(log_dir.glob("sync-events-*.log")).read_text()

        assert "direction=push, count=4, errors=0" in content
        assert "direction=pull, count=100, errors=1" in content

    def test_unknown_device(self, log_dir):
        log_sync_event("sync_start", "full_snapshot=False")
        assert "device=unknown" in next(log_dir.glob("sync-events-*.log")).read_text()

    @pytest.mark.asyncio
    async def test_engine_writes_events(self, log_dir, seeded_store, engine):
        await engine.sync()

        content = next(log_dir.glob("sync-events-*.log")).read_text()

        assert "sync_start" in content
        assert "direction=push, count=4" in content
        assert "sync_complete" in content
