import json
import logging

import pytest
import structlog

from shared.logging import LOG_FILE_NAME, setup_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    root.setLevel(level)


class TestSetupLogging:
    def test_stdout_only_without_log_dir(self):
        assert setup_logging() is None

        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_file_handler_in_log_dir(self, tmp_path):
        log_file = setup_logging(tmp_path / "logs")

        assert log_file == tmp_path / "logs" / LOG_FILE_NAME
        file_handlers = [h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]
        assert len(file_handlers) == 1

    def test_events_reach_the_file(self, tmp_path):
        log_file = setup_logging(tmp_path)

        structlog.get_logger("arena.test").info("question armed", question_id=4)

        assert "question armed" in log_file.read_text()

    def test_stream_event_key_is_rendered(self, tmp_path):
        log_file = setup_logging(tmp_path, level="DEBUG", json_output=True)

        structlog.get_logger("arena.test").debug("phase transition", trigger="gameStarted")

        parsed = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert parsed["event"] == "phase transition"
        assert parsed["trigger"] == "gameStarted"

    def test_json_output_carries_context(self, tmp_path):
        log_file = setup_logging(tmp_path, json_output=True)

        structlog.contextvars.bind_contextvars(game_code="ABC123")
        structlog.get_logger("arena.test").info("joined", participant_id=7)

        parsed = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert parsed["game_code"] == "ABC123"
        assert parsed["participant_id"] == 7
        assert parsed["level"] == "info"

    def test_level_filters_debug(self, tmp_path):
        log_file = setup_logging(tmp_path, level="warning")

        logger = structlog.get_logger("arena.test")
        logger.debug("hidden")
        logger.warning("shown")

        text = log_file.read_text()
        assert "hidden" not in text
        assert "shown" in text

    def test_repeated_calls_replace_handlers(self, tmp_path):
        setup_logging(tmp_path)
        setup_logging()

        assert len(logging.getLogger().handlers) == 1

    def test_transport_loggers_are_quieted(self):
        setup_logging(level="DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("engineio.client").level == logging.WARNING
