"""Tests for logging configuration and the in-memory log buffer."""

import pytest
import structlog

from bouncer.logs import MemoryLogs, configure_logging


class TestMemoryLogs:
    """Tests for MemoryLogs."""

    def test_keeps_most_recent_entries(self):
        memory = configure_logging(level="DEBUG", fmt="json", memory=MemoryLogs(max_logs=3))
        logger = structlog.get_logger(category="test")
        for i in range(5):
            logger.info("Step", index=i)

        assert len(memory) == 3
        entries = memory.flush()
        assert [entry["context"]["index"] for entry in entries] == [2, 3, 4]
        assert entries[0]["category"] == "test"
        assert entries[0]["level"] == "info"
        assert entries[0]["timestamp"] is not None
        assert len(memory) == 0

    def test_respects_level(self):
        memory = configure_logging(level="WARNING", fmt="json", memory=MemoryLogs(max_logs=10))
        logger = structlog.get_logger()
        logger.info("Quiet")
        logger.warning("Loud")
        assert [entry["event"] for entry in memory.entries()] == ["Loud"]
        assert "category" not in memory.entries()[0]


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            configure_logging(fmt="xml")

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            configure_logging(level="CHATTY", fmt="console")
