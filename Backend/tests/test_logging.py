from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from app.core.logging import configure_logging, get_logger
from services import metadata_extractor, ssrf_guard


@pytest.fixture
def restore_logging():
    yield
    configure_logging("api")


def test_level_applies_to_loggers_created_at_import(restore_logging):
    configure_logging("api", level="ERROR")

    with capture_logs() as logs:
        ssrf_guard.logger.warning("dns_lookup_timeout", host="example.com")
        ssrf_guard.logger.error("ssrf_blocked", host="internal.test")

    assert [entry["event"] for entry in logs] == ["ssrf_blocked"]
    assert logs[0]["module"] == "ssrf_guard"


def test_debug_events_can_be_enabled(restore_logging):
    configure_logging("cli", level="DEBUG")

    with capture_logs() as logs:
        metadata_extractor.logger.debug("oembed_fetch_failed", endpoint="https://example.com/oembed")

    assert len(logs) == 1
    assert logs[0]["event"] == "oembed_fetch_failed"
    assert logs[0]["module"] == "metadata_extractor"
    assert logs[0]["log_level"] == "debug"


def test_logger_taken_before_configuration_follows_it(restore_logging):
    early = get_logger(module="early")
    configure_logging("api", level="WARNING")

    with capture_logs() as logs:
        early.info("should_be_filtered")
        early.warning("kept")

    assert [entry["event"] for entry in logs] == ["kept"]
