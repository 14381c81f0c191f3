import logging

import pytest

from engine_client.logger import LOGGER_NAME, TRACE_LEVEL, BoundLogger, create_logger


class RecordingLogger:
    def __init__(self) -> None:
        self.records: list[tuple[int, str]] = []

    def log(self, level: int, msg: str, *args: object) -> None:
        self.records.append((level, msg % args if args else msg))


class ExplodingLogger:
    def log(self, level: int, msg: str, *args: object) -> None:
        raise RuntimeError("sink unavailable")


def test_level_floor_filters_records() -> None:
    sink = RecordingLogger()
    logger = BoundLogger(sink, level="warn")
    logger.info("dropped")
    logger.warn("kept %s", 1)
    logger.error("also kept")
    assert sink.records == [(logging.WARNING, "kept 1"), (logging.ERROR, "also kept")]


def test_trace_level_is_below_debug() -> None:
    sink = RecordingLogger()
    BoundLogger(sink, level="trace").trace("dialing")
    assert sink.records == [(TRACE_LEVEL, "dialing")]
    assert logging.getLevelName(TRACE_LEVEL) == "TRACE"


def test_bound_fields_render_as_suffix() -> None:
    sink = RecordingLogger()
    logger = BoundLogger(sink).bind(endpoint="tcp://localhost:2375").bind(call="100%")
    logger.info("sent %s", "GET")
    assert sink.records == [(logging.INFO, "sent GET [endpoint=tcp://localhost:2375 call=100%]")]


def test_logging_failures_are_swallowed() -> None:
    BoundLogger(ExplodingLogger()).error("boom")


def test_child_logs_under_component_name(caplog: pytest.LogCaptureFixture) -> None:
    logger = create_logger(level="debug").child("dialer")
    with caplog.at_level(logging.DEBUG, logger=LOGGER_NAME):
        logger.debug("dialing %s", "unix.sock")
    assert [(record.name, record.getMessage()) for record in caplog.records] == [
        (f"{LOGGER_NAME}.dialer", "dialing unix.sock")
    ]


def test_create_logger_reuses_bound_logger() -> None:
    logger = BoundLogger(RecordingLogger())
    assert create_logger(logger=logger) is logger
