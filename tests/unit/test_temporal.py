from datetime import date, datetime, timedelta, timezone

import numpy as np
import pandas as pd
import pytest

from lookahead.temporal import (
    coerce_week,
    current_week_start,
    format_week,
    header_to_week,
    serial_to_date,
    week_start,
)


def test_serial_zero_is_the_epoch_week():
    # 1899-12-30 is a Saturday; its week starts on Monday 1899-12-25.
    assert serial_to_date(0) == date(1899, 12, 30)
    assert header_to_week(0) == "1899-12-25"


def test_known_serials_resolve_to_their_weeks():
    assert serial_to_date(44927) == date(2023, 1, 1)
    assert header_to_week(44927) == "2022-12-26"
    assert header_to_week(44928) == "2023-01-02"
    assert header_to_week(45292) == "2024-01-01"


def test_serial_halves_round_up():
    assert serial_to_date(44927.5) == date(2023, 1, 2)
    assert serial_to_date(44927.4) == date(2023, 1, 1)


def test_numeric_types_from_numpy_are_serials():
    assert header_to_week(np.int64(45292)) == "2024-01-01"
    assert header_to_week(np.float64(45299.0)) == "2024-01-08"


def test_quoted_serial_text_is_treated_as_serial():
    assert header_to_week("44928") == "2023-01-02"
    assert header_to_week(" 45292.25 ") == "2024-01-01"


def test_native_dates_are_used_directly():
    assert header_to_week(date(2024, 1, 3)) == "2024-01-01"
    assert header_to_week(datetime(2024, 1, 14, 18, 30)) == "2024-01-08"
    assert header_to_week(pd.Timestamp("2024-01-10")) == "2024-01-08"
    assert header_to_week(np.datetime64("2024-01-10")) == "2024-01-08"


def test_aware_datetimes_use_their_utc_day():
    # Monday 02:00 at +05:00 is still Sunday in UTC.
    value = datetime(2024, 1, 8, 2, 0, tzinfo=timezone(timedelta(hours=5)))
    assert header_to_week(value) == "2024-01-01"


@pytest.mark.parametrize(
    "header, expected",
    [
        ("2024-01-10", "2024-01-08"),
        ("2024-01-10 00:00:00", "2024-01-08"),
        ("10 Jan 2024 08:30:00", "2024-01-08"),
        ("Jan 7, 2024", "2024-01-01"),
    ],
)
def test_date_text_is_parsed(header, expected):
    assert header_to_week(header) == expected


@pytest.mark.parametrize(
    "header",
    ["notes", "Project", "", "   ", None, True, False, float("nan"), float("inf"), pd.NaT, object()],
)
def test_unrecognised_headers_are_rejected(header):
    assert header_to_week(header) is None


def test_out_of_range_serial_is_rejected():
    assert header_to_week(10**12) is None


def test_week_alignment_is_idempotent():
    start = date(2023, 12, 1)
    for offset in range(120):
        day = start + timedelta(days=offset)
        aligned = week_start(day)
        assert aligned.weekday() == 0
        assert week_start(aligned) == aligned
        assert 0 <= (day - aligned).days < 7


def test_format_week_zero_pads():
    assert format_week(date(987, 3, 4)) == "0987-03-04"


def test_coerce_week_does_not_realign():
    assert coerce_week("2024-01-03") == "2024-01-03"
    assert coerce_week(date(2024, 1, 3)) == "2024-01-03"
    with pytest.raises(ValueError):
        coerce_week("not a week")


def test_current_week_start_uses_reference_day():
    assert current_week_start(date(2024, 1, 10)) == "2024-01-08"
    assert current_week_start(date(2024, 1, 8)) == "2024-01-08"


@pytest.mark.parametrize("header", ["Jan", "Feb", "February", "Monday", "1850-06-03", "0001-01-08"])
def test_month_names_and_pre_epoch_text_are_not_weeks(header):
    assert header_to_week(header) is None


def test_coerce_week_rejects_month_names():
    with pytest.raises(ValueError):
        coerce_week("Jan")
