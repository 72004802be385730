import logging

import pytest
import structlog

from coffelist.config.logging import SERVICE_NAME, _add_service, setup_logging


@pytest.mark.unit
class TestLogging:
    def test_service_is_added(self) -> None:
        event = _add_service(None, "info", {"event": "user_created"})
        assert event["service"] == SERVICE_NAME

    def test_explicit_service_is_kept(self) -> None:
        event = _add_service(None, "info", {"event": "x", "service": "worker"})
        assert event["service"] == "worker"

    def test_noisy_loggers_are_quieted(self) -> None:
        setup_logging(log_level="DEBUG", json_output=True)
        assert logging.getLogger("aiosqlite").level == logging.WARNING
        assert structlog.is_configured()
