import math

import pytest

from pathlab.schemas.report import Parameter, PatientContext
from pathlab.services.ranges import (
    age_in_days,
    display_range,
    format_value,
    is_numeric_text,
    is_out_of_range,
    parse_leading_float,
    parse_numeric_range,
    parse_range_key,
    resolve_range,
)


def _bucketed(**buckets) -> Parameter:
    return Parameter.model_validate({
        "name": "Hemoglobin",
        "range": {
            gender: [{"rangeKey": key, "rangeValue": value} for key, value in items]
            for gender, items in buckets.items()
        },
    })


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        ("0-30d", (0, 30)),
        ("1-12m", (30, 360)),
        ("18-60y", (18 * 365, 60 * 365)),
        ("60-y", (60 * 365, math.inf)),
        ("18y", (18 * 365, math.inf)),
        ("abc-5y", (0, 5 * 365)),
    ],
)
def test_parse_range_key(key, expected):
    assert parse_range_key(key) == expected


def test_age_in_days_prefers_total_day_then_day_type():
    assert age_in_days(PatientContext(name="A", age=3, day_type="year", total_day=40)) == 40
    assert age_in_days(PatientContext(name="A", age=3, day_type="month")) == 90
    assert age_in_days(PatientContext(name="A", age=10, day_type="day")) == 10
    assert age_in_days(PatientContext(name="A", age=2)) == 730


def test_literal_range_is_returned_verbatim():
    param = Parameter(name="Glucose", range="70 - 110")
    assert resolve_range(param, 1000, "Female") == "70 - 110"
    assert resolve_range(Parameter(name="Note", range=None), 1000, "Male") == ""


def test_first_matching_bucket_wins():
    param = _bucketed(male=[("0-30d", "14 - 22"), ("1-12m", "10 - 14"), ("1-99y", "13 - 17")])
    assert resolve_range(param, 10, "Male") == "14 - 22"
    assert resolve_range(param, 30, "male") == "14 - 22"
    assert resolve_range(param, 200, "MALE") == "10 - 14"
    assert resolve_range(param, 40 * 365, "Male") == "13 - 17"


def test_unmatched_age_falls_back_to_last_bucket():
    param = _bucketed(female=[("0-30d", "14 - 22"), ("1-12m", "10 - 14")])
    assert resolve_range(param, 20 * 365, "Female") == "10 - 14"


def test_unknown_gender_or_empty_list_gives_blank_range():
    param = _bucketed(male=[("0-99y", "13 - 17")])
    assert resolve_range(param, 100, "Female") == ""
    assert resolve_range(param, 100, None) == ""
    assert resolve_range(param, 100, "Other") == ""


def test_display_range_turns_marker_into_newline():
    assert display_range("Adult: 10-20/nChild: 5-10") == "Adult: 10-20\nChild: 5-10"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("10 - 20", (10, 20)),
        ("10-20", (10, 20)),
        ("4.5 to 5.5", (4.5, 5.5)),
        ("Up to 40", (0, 40)),
        ("upto 5", (0, 5)),
        ("Negative", None),
        ("< 200", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_numeric_range(text, expected):
    assert parse_numeric_range(text) == expected


@pytest.mark.parametrize(
    ("value", "range_text", "expected"),
    [
        ("15", "10 - 12", True),
        ("9.9", "10 - 12", True),
        ("11", "10 - 12", False),
        ("10", "10 - 12", False),
        ("12", "10 - 12", False),
        ("41", "Up to 40", True),
        ("12.5 H", "10 - 12", True),
        ("abc", "10 - 12", False),
        ("15", "Negative", False),
        ("", "10 - 12", False),
    ],
)
def test_is_out_of_range(value, range_text, expected):
    assert is_out_of_range(value, range_text) is expected


def test_parse_leading_float():
    assert parse_leading_float("12.5 mg/dL") == 12.5
    assert parse_leading_float(".5") == 0.5
    assert parse_leading_float("-3") == -3
    assert parse_leading_float(7) == 7.0
    assert parse_leading_float("<5") is None
    assert parse_leading_float(None) is None
    assert parse_leading_float(True) is None


def test_is_numeric_text():
    assert is_numeric_text("12")
    assert is_numeric_text(" 4.2 ")
    assert is_numeric_text("")
    assert is_numeric_text(12.5)
    assert not is_numeric_text("12a")
    assert not is_numeric_text("Positive")


def test_format_value():
    assert format_value(12.0) == "12"
    assert format_value(12.5) == "12.5"
    assert format_value(3) == "3"
    assert format_value("Reactive") == "Reactive"
    assert format_value(None) == ""
