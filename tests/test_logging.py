"""Tests for structured logging and the import ID context."""

import io
import json
import logging
from collections.abc import Generator

import pytest
import structlog

from packages.common.logging import (
    clear_import_id,
    configure_logging,
    get_import_id,
    get_logger,
    set_import_id,
)


@pytest.fixture
def log_stream() -> Generator[io.StringIO]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    stream = io.StringIO()
    configure_logging(json_output=True, log_stream=stream)
    yield stream
    clear_import_id()
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)


def _lines(stream: io.StringIO) -> list[dict[str, object]]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


class TestImportId:
    """Tests for the import ID context variable."""

    def test_generated_id(self) -> None:
        import_id = set_import_id()
        try:
            assert len(import_id) == 12
            assert get_import_id() == import_id
        finally:
            clear_import_id()

        assert get_import_id() is None

    def test_explicit_id(self) -> None:
        try:
            assert set_import_id("run-1") == "run-1"
            assert get_import_id() == "run-1"
        finally:
            clear_import_id()


class TestConfigureLogging:
    """Tests for rendered log output."""

    def test_json_event_carries_import_id(self, log_stream: io.StringIO) -> None:
        set_import_id("abc123")
        get_logger(component="test").info("cards_merged", logical_cards=3)

        [entry] = _lines(log_stream)
        assert entry["event"] == "cards_merged"
        assert entry["logical_cards"] == 3
        assert entry["component"] == "test"
        assert entry["import_id"] == "abc123"
        assert entry["level"] == "info"

    def test_no_import_id_outside_a_run(self, log_stream: io.StringIO) -> None:
        get_logger().warning("frequency_table_unavailable")

        [entry] = _lines(log_stream)
        assert "import_id" not in entry

    def test_stdlib_records_share_the_format(self, log_stream: io.StringIO) -> None:
        set_import_id("abc123")
        logging.getLogger("somelib").warning("plain %s", "message")

        [entry] = _lines(log_stream)
        assert entry["event"] == "plain message"
        assert entry["import_id"] == "abc123"

    def test_debug_hidden_by_default(self, log_stream: io.StringIO) -> None:
        get_logger().debug("media_missing", filename="x.mp3")

        assert _lines(log_stream) == []
