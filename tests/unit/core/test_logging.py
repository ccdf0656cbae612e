"""
Unit tests for logging setup
"""

import logging

from loguru import logger

from scarlett.core.logging import InterceptHandler, setup_logging


class TestLogging:

    def test_stdlib_records_reach_loguru(self):
        messages = []
        setup_logging("DEBUG")
        sink_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
        try:
            logging.getLogger("scarlett.services.study_session").info("session started")
            logger.complete()
        finally:
            logger.remove(sink_id)

        assert "session started" in messages

    def test_records_carry_service_name(self):
        services = []
        setup_logging("INFO")
        sink_id = logger.add(lambda message: services.append(message.record["extra"].get("service")))
        try:
            logger.info("tagged")
        finally:
            logger.remove(sink_id)

        assert services == ["Scarlett Scheduler"]

    def test_root_logger_is_intercepted(self):
        setup_logging("INFO")

        assert any(isinstance(h, InterceptHandler) for h in logging.root.handlers)
        assert logging.root.level == logging.INFO

    def test_uvicorn_is_intercepted(self):
        setup_logging()

        handlers = logging.getLogger("uvicorn.access").handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], InterceptHandler)
