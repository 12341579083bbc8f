from __future__ import annotations

import logging

import smartroute.logging_utils as logging_utils


class _Collect(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def test_log_event_carries_fields_and_renames_reserved_keys() -> None:
    logger = logging_utils.configure_logging(level="debug", to_file=False)
    sink = _Collect()
    logger.addHandler(sink)
    try:
        logging_utils.log_event("route_built", route_id="r-1", name="clash", message="clash")
        logging_utils.log_warning("segment_degraded", reasons=["stop_missing"])
    finally:
        logger.removeHandler(sink)

    built, degraded = sink.records
    assert built.levelno == logging.INFO
    assert built.getMessage() == "route_built"
    assert built.event == "route_built"  # type: ignore[attr-defined]
    assert built.route_id == "r-1"  # type: ignore[attr-defined]
    assert built.field_name == "clash"  # type: ignore[attr-defined]
    assert built.field_message == "clash"  # type: ignore[attr-defined]
    assert built.name == "smartroute"
    assert degraded.levelno == logging.WARNING
    assert degraded.reasons == ["stop_missing"]  # type: ignore[attr-defined]


def test_configure_logging_replaces_handlers_and_parses_level() -> None:
    first = logging_utils.configure_logging(level="warning", to_file=False)
    second = logging_utils.configure_logging(level="nonsense", to_file=False)
    assert first is second
    assert len(second.handlers) == 1
    assert second.level == logging.INFO
    assert second.propagate is False
    assert logging_utils.get_logger() is second
