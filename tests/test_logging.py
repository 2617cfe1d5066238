import json
import logging

import pytest
import structlog

from objstore.core.logging_config import configure_logging, get_logger


@pytest.fixture
def scoped_logging():
    yield "objstore.tests"
    target = logging.getLogger("objstore.tests")
    target.handlers.clear()
    target.propagate = True
    structlog.reset_defaults()


def test_json_output_carries_context(scoped_logging, capsys):
    configure_logging(logger_name=scoped_logging)

    get_logger("objstore.tests.upload").info("Part uploaded", upload_id="u-1", part_number=3)

    line = capsys.readouterr().err.strip().splitlines()[-1]
    event = json.loads(line)
    assert event["event"] == "Part uploaded"
    assert event["upload_id"] == "u-1"
    assert event["part_number"] == 3
    assert event["level"] == "info"
    assert event["logger"] == "objstore.tests.upload"


def test_stdlib_records_share_the_handler(scoped_logging, capsys):
    configure_logging(logger_name=scoped_logging, level=logging.WARNING)

    logging.getLogger("objstore.tests.retry").warning("Retrying in %s seconds", 0.5)
    logging.getLogger("objstore.tests.retry").info("not shown")

    lines = capsys.readouterr().err.strip().splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["event"] == "Retrying in 0.5 seconds"
