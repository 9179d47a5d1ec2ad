"""Tests for the JSON log formatter and structured event helper."""

import json
import logging

from logging_utils import LokiJSONFormatter, RosterLogger, log_event, set_request_id


class Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def capture_logger(name):
    logger = logging.getLogger(f"rosterintel.test.{name}")
    logger.setLevel(logging.DEBUG)
    handler = Capture()
    logger.addHandler(handler)
    return logger, handler


def test_formatter_emits_one_json_line_with_request_id():
    logger, handler = capture_logger("formatter")
    set_request_id("req-42")
    try:
        log_event(logger, "shifts_extracted", shifts=3)
        line = LokiJSONFormatter(service="rosterintel", env="test").format(handler.records[0])
    finally:
        set_request_id(None)

    payload = json.loads(line)
    assert "\n" not in line
    assert payload["message"] == "shifts_extracted"
    assert payload["event"] == "shifts_extracted"
    assert payload["shifts"] == 3
    assert payload["request_id"] == "req-42"
    assert (payload["service"], payload["env"]) == ("rosterintel", "test")


def test_reserved_fields_are_renamed():
    logger, handler = capture_logger("reserved")
    log_event(logger, "upload", filename="roster.png", module="x")
    record = handler.records[0]
    assert record.field_filename == "roster.png"
    assert record.field_module == "x"


def test_stage_timer_logs_duration():
    logger, handler = capture_logger("timer")
    timer = RosterLogger(logger)
    timer.start_timer("extract")
    assert timer.end_timer("extract") >= 0
    assert handler.records[-1].stage == "extract"
    assert timer.end_timer("never-started") == 0.0
