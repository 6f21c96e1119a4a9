import json
import logging

import pytest

from freyr.httplog import RequestRecord, format_latency

LOGGER_NAME = "freyr.test.httplog"


def test_format_latency_minutes():
    assert format_latency(90) == "1m30s"


def test_format_latency_milliseconds():
    assert format_latency(0.0015) == "1.5ms"


def test_format_latency_zero():
    assert format_latency(0) == "0s"


def test_format_latency_negative_is_signed():
    assert format_latency(-90) == "-" + format_latency(90)


def test_format_latency_hours_prefix_minutes_and_seconds():
    assert format_latency(7200 + 90).endswith(format_latency(90))
    assert format_latency(7200 + 90) != format_latency(90)


def test_fields_order():
    record = RequestRecord(method="GET", path="/", status_code=200)
    assert list(record.fields()) == [
        "client_id",
        "method",
        "status_code",
        "body_size",
        "path",
        "latency",
    ]


def test_fields_join_query():
    record = RequestRecord(method="GET", path="/docket", status_code=200, query="a=1")
    assert record.fields()["path"] == "/docket?a=1"


def test_fields_without_query_keep_path():
    record = RequestRecord(method="GET", path="/enlist", status_code=200)
    assert record.fields()["path"] == "/enlist"


def test_long_latency_truncated_to_seconds():
    record = RequestRecord(method="GET", path="/", status_code=200, latency=61.7)
    assert record.fields()["latency"] == format_latency(61.0)


def test_short_latency_kept():
    record = RequestRecord(method="GET", path="/", status_code=200, latency=1.5)
    assert record.fields()["latency"] == format_latency(1.5)


@pytest.mark.parametrize(
    "status, level",
    [(500, logging.ERROR), (503, logging.ERROR), (404, logging.INFO), (200, logging.INFO)],
)
def test_log_level_by_status(caplog, status, level):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    record = RequestRecord(method="GET", path="/", status_code=status, client_ip="10.0.0.1")
    record.log(logging.getLogger(LOGGER_NAME))
    assert len(caplog.records) == 1
    assert caplog.records[0].levelno == level


def test_log_message_is_json(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER_NAME)
    record = RequestRecord(
        method="POST",
        path="/enlist",
        status_code=500,
        client_ip="10.0.0.1",
        body_size=12,
        error_message="boom",
    )
    record.log(logging.getLogger(LOGGER_NAME))
    payload = json.loads(caplog.records[0].getMessage())
    assert payload["message"] == "boom"
    assert payload["client_id"] == "10.0.0.1"
    assert payload["status_code"] == 500
    assert payload["body_size"] == 12
    assert payload["method"] == "POST"