from __future__ import annotations

import json
import re

import pytest

from smartlog.formatter import format_line, prepare_message, strip_ansi, timestamp
from smartlog.models import EventRecord


def _record(**overrides) -> EventRecord:
    values = {"timestamp": "2024-01-02T03:04:05.678Z", "level": "info", "message": "hello"}
    values.update(overrides)
    return EventRecord(**values)


def test_timestamp_utc_is_iso_with_millis_and_z():
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", timestamp())


def test_timestamp_with_zone_has_no_offset_suffix():
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}", timestamp("Asia/Tokyo"))


def test_timestamp_unknown_zone_falls_back_to_utc():
    assert timestamp("Nowhere/Special").endswith("Z")


def test_prepare_message_single_mapping_becomes_context():
    assert prepare_message("user login", ({"id": 7},)) == ("user login", {"id": 7})


def test_prepare_message_joins_scalar_and_structured_args():
    message, context = prepare_message("values", (1, "two", {"k": 3}))

    assert message == 'values 1 two {"k": 3}'
    assert context is None


def test_prepare_message_exception_captures_stack_and_extra():
    try:
        raise ValueError("bad input")
    except ValueError as exc:
        message, context = prepare_message(exc, ("req-1",))

    assert message == "bad input"
    assert "ValueError: bad input" in context["stack"]
    assert context["extra"] == ["req-1"]


def test_format_line_json_omits_empty_label_and_context():
    line = format_line(_record(), json_output=True)

    assert json.loads(line) == {"timestamp": "2024-01-02T03:04:05.678Z", "level": "info", "message": "hello"}


def test_format_line_json_keeps_label_and_context():
    line = format_line(_record(label="api", context={"n": 1}), json_output=True)

    assert json.loads(line)["label"] == "api"
    assert json.loads(line)["context"] == {"n": 1}


def test_format_line_plain_without_colors():
    line = format_line(_record(level="warn", label="api", context={"n": 1}), colors=False)

    assert line == '2024-01-02T03:04:05.678Z WARN [api] - hello {\n  "n": 1\n}'


def test_format_line_plain_string_context_is_rendered_verbatim():
    assert format_line(_record(context="raw text"), colors=False).endswith("- hello raw text")


@pytest.mark.parametrize(("level", "code"), [("error", "31"), ("warn", "33"), ("info", "32"), ("debug", "36")])
def test_format_line_colors_by_level_and_strip(level: str, code: str):
    line = format_line(_record(level=level), colors=True)

    assert line.startswith(f"\x1b[{code}m")
    assert strip_ansi(line) == f"2024-01-02T03:04:05.678Z {level.upper()}  - hello"


def test_format_line_unserializable_context_falls_back_to_str():
    line = format_line(_record(context={"obj": object()}), colors=False)

    assert "object object" in line
