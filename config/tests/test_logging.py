import json
import logging
import sys

import pytest
from config.logging import JsonFormatter, SamplingFilter
from rest_framework.test import APIClient


def _record(msg="cart.item_added", level=logging.INFO, **extra):
    record = logging.LogRecord("nocturne.cart", level, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_merges_extras():
    out = json.loads(JsonFormatter().format(_record(event="cart.item_added", cart_id=7, guest=True)))

    assert out["level"] == "INFO"
    assert out["name"] == "nocturne.cart"
    assert out["message"] == "cart.item_added"
    assert out["event"] == "cart.item_added"
    assert out["cart_id"] == 7
    assert out["guest"] is True
    assert out["time"].endswith("Z")
    assert "lineno" not in out


def test_json_formatter_merges_dict_messages_and_stringifies_unserializable_extras():
    record = _record(msg=json.dumps({"event": "checkout_completed", "order_id": 3}), when=object())
    out = json.loads(JsonFormatter().format(record))

    assert out["event"] == "checkout_completed"
    assert out["order_id"] == 3
    assert isinstance(out["when"], str)


def test_json_formatter_includes_exception_text():
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord("nocturne.cart", logging.ERROR, __file__, 1, "cart.expire_failed", None, sys.exc_info())
    out = json.loads(JsonFormatter().format(record))
    assert "ValueError: boom" in out["exc_info"]


@pytest.mark.parametrize(
    "rate,level,extra,expected",
    [
        (0.0, logging.INFO, {}, False),
        (1.0, logging.INFO, {}, True),
        (0.0, logging.WARNING, {}, True),
        (0.0, logging.INFO, {"event": "checkout_completed"}, True),
    ],
)
def test_sampling_filter(rate, level, extra, expected):
    f = SamplingFilter(rate=rate, levels=["INFO"], allow_events=["checkout_completed", "order_status_changed"])
    assert f.filter(_record(level=level, **extra)) is expected


def test_sampling_filter_allows_by_message_and_tolerates_bad_rate():
    f = SamplingFilter(rate=0.0, allow_events=["order_status_changed"])
    assert f.filter(_record(msg="order_status_changed")) is True
    assert SamplingFilter(rate="oops").rate == 1.0


@pytest.mark.django_db
def test_health_endpoint():
    r = APIClient().get("/health/")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
