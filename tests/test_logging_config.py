import json
import logging

import pytest

from triage_engine.config import Settings
from triage_engine.logging_config import JSONFormatter, configure_logging


@pytest.fixture()
def root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(**extra):
    record = logging.LogRecord(
        "triage_engine.services.reorder", logging.WARNING, __file__, 1,
        "Reorder #%d failed", (3,), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_engine_context():
    entry = json.loads(JSONFormatter().format(make_record(group_key="sections", sequence=3)))

    assert entry["message"] == "Reorder #3 failed"
    assert entry["level"] == "WARNING"
    assert entry["group_key"] == "sections"
    assert entry["sequence"] == "3"
    assert "work_order_id" not in entry


def test_configure_logging_installs_one_handler(root_logger):
    configure_logging(Settings(_env_file=None, log_json=True, log_level="debug"))
    handler = configure_logging(Settings(_env_file=None, log_json=True, log_level="debug"))

    assert root_logger.handlers == [handler]
    assert isinstance(handler.formatter, JSONFormatter)
    assert root_logger.level == logging.DEBUG


def test_readable_format_is_one_line(root_logger):
    handler = configure_logging(Settings(_env_file=None))

    line = handler.formatter.format(make_record())

    assert not isinstance(handler.formatter, JSONFormatter)
    assert "WARNING" in line and "Reorder #3 failed" in line
    assert "\n" not in line
