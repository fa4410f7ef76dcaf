from __future__ import annotations

import json
import logging

from route_pricing.logging_utils import _formatter, _parse_level, _writable_log_dir


def test_formatter_emits_one_json_object_per_event() -> None:
    record = logging.LogRecord("route_pricing", logging.WARNING, __file__, 1, "suggest_fallback", None, None)
    record.event = "suggest_fallback"
    record.cause = "no_cluster"

    payload = json.loads(_formatter().format(record))
    assert payload["message"] == "suggest_fallback"
    assert payload["event"] == "suggest_fallback"
    assert payload["cause"] == "no_cluster"
    assert payload["level"] == "WARNING"
    assert payload["logger"] == "route_pricing"
    assert payload["service"] == "route-pricing"
    assert "ts" in payload


def test_parse_level() -> None:
    assert _parse_level("debug") == logging.DEBUG
    assert _parse_level("nonsense") == logging.INFO
    assert _parse_level("") == logging.INFO


def test_log_dir_prefers_out_dir(tmp_path) -> None:
    assert _writable_log_dir(str(tmp_path)) == tmp_path / "logs"
