import pytest

from lookahead.aggregation import ProjectSummary
from lookahead.reconciliation import (
    Category,
    ProbabilityOverride,
    WeeklyBucket,
    backlog,
    chart_series,
    coerce_expected,
    overrides_from_records,
    overrides_to_records,
    parse_category,
    reconcile,
)

WINDOW = ["2024-01-01", "2024-01-08"]


def _assert_bucket_identity(bucket: WeeklyBucket) -> None:
    assert bucket.high + bucket.medium + bucket.low + bucket.unassigned == pytest.approx(bucket.expected)
    assert bucket.diff == pytest.approx(max(0.0, bucket.planned - bucket.expected))
    assert bucket.diff >= 0.0


def test_without_overrides_everything_is_unassigned():
    shop = {("Alpha", "2024-01-01"): 10.0, ("Alpha", "2024-01-08"): 5.0}

    result = reconcile(["Alpha"], WINDOW, shop)

    first, second = result.buckets
    assert first == WeeklyBucket("2024-01-01", unassigned=10.0, planned=10.0, expected=10.0, diff=0.0)
    assert second.unassigned == 5.0
    assert all(total.count == 0 for total in result.category_totals.values())


def test_high_override_with_expected_quantity():
    shop = {("Alpha", "2024-01-01"): 10.0}
    overrides = {("Alpha", "2024-01-01"): ProbabilityOverride(Category.HIGH, 6.0)}

    result = reconcile(["Alpha"], WINDOW, shop, overrides)

    bucket = result.buckets[0]
    assert bucket.high == 6.0
    assert bucket.unassigned == 0.0
    assert bucket.planned == 10.0
    assert bucket.expected == 6.0
    assert bucket.diff == 4.0
    assert result.category_totals[Category.HIGH].tons == 6.0
    assert result.category_totals[Category.HIGH].count == 1


def test_category_without_expected_uses_planned():
    shop = {("Alpha", "2024-01-08"): 5.0}
    overrides = {("Alpha", "2024-01-08"): ProbabilityOverride(Category.MEDIUM)}

    bucket = reconcile(["Alpha"], WINDOW, shop, overrides).buckets[1]

    assert bucket.medium == 5.0
    assert bucket.expected == 5.0
    assert bucket.diff == 0.0


def test_expected_above_planned_clamps_gap_to_zero():
    shop = {("Alpha", "2024-01-01"): 4.0}
    overrides = {("Alpha", "2024-01-01"): ProbabilityOverride(Category.LOW, 9.0)}

    bucket = reconcile(["Alpha"], WINDOW, shop, overrides).buckets[0]

    assert bucket.low == 9.0
    assert bucket.expected == 9.0
    assert bucket.diff == 0.0


def test_expected_without_category_counts_as_unassigned():
    shop = {("Alpha", "2024-01-01"): 10.0}
    overrides = {("Alpha", "2024-01-01"): ProbabilityOverride(Category.UNSET, 3.0)}

    bucket = reconcile(["Alpha"], WINDOW, shop, overrides).buckets[0]

    assert bucket.unassigned == 3.0
    assert bucket.diff == 7.0


def test_overrides_outside_window_are_ignored():
    shop = {("Alpha", "2024-01-01"): 10.0}
    overrides = {("Alpha", "2024-03-04"): ProbabilityOverride(Category.HIGH, 1.0)}

    result = reconcile(["Alpha"], WINDOW, shop, overrides)

    assert result.buckets[0].unassigned == 10.0
    assert result.category_totals[Category.HIGH].count == 0


def test_mixed_week_keeps_bucket_identity():
    shop = {
        ("Alpha", "2024-01-01"): 10.0,
        ("Beta", "2024-01-01"): 7.25,
        ("Gamma", "2024-01-01"): 3.0,
        ("Delta", "2024-01-08"): 1.1,
    }
    overrides = {
        ("Alpha", "2024-01-01"): ProbabilityOverride(Category.HIGH, 8.5),
        ("Beta", "2024-01-01"): ProbabilityOverride(Category.LOW),
        ("Delta", "2024-01-08"): ProbabilityOverride(Category.MEDIUM, 0.0),
        # Category on a cell with no planned tons still counts as a card.
        ("Gamma", "2024-01-08"): ProbabilityOverride(Category.HIGH),
    }

    result = reconcile(["Alpha", "Beta", "Delta", "Gamma"], WINDOW, shop, overrides)

    for bucket in result.buckets:
        _assert_bucket_identity(bucket)
    first, second = result.buckets
    assert first.planned == pytest.approx(20.25)
    assert first.expected == pytest.approx(18.75)
    assert first.diff == pytest.approx(1.5)
    assert second.medium == 0.0
    assert second.diff == pytest.approx(1.1)
    assert result.category_totals[Category.HIGH].count == 2


@pytest.mark.parametrize(
    "value, expected",
    [
        ("high", Category.HIGH),
        (" Medium ", Category.MEDIUM),
        ("LOW", Category.LOW),
        ("maybe", Category.UNSET),
        ("", Category.UNSET),
        (None, Category.UNSET),
        (Category.HIGH, Category.HIGH),
    ],
)
def test_parse_category(value, expected):
    assert parse_category(value) is expected


@pytest.mark.parametrize(
    "value, expected",
    [
        (7, 7.0),
        ("1,200", 1200.0),
        ("-5", 0.0),
        (-2.5, 0.0),
        ("", None),
        ("abc", None),
        (None, None),
        (float("nan"), None),
        (False, None),
        ("12 t", 12.0),
        ("\u0661\u0662", None),
        ("1_000", 1.0),
    ],
)
def test_coerce_expected(value, expected):
    assert coerce_expected(value) == expected


def test_unknown_category_text_still_applies_expected():
    override = ProbabilityOverride.from_raw("Maybe", "2")
    assert override.category is Category.UNSET
    assert override.expected == 2.0
    assert not override.is_empty


def test_later_records_win_and_empty_records_clear():
    records = [
        {"project": "Alpha", "week_start": "2024-01-01", "category": "High", "expected": 5},
        {"project": "Alpha", "week_start": "2024-01-01", "category": "Low", "expected": ""},
        {"project": "Beta", "week_start": "2024-01-01", "category": "Medium", "expected": None},
        {"project": "Beta", "week_start": "2024-01-01", "category": "", "expected": ""},
        {"project": "", "week_start": "2024-01-01", "category": "High"},
    ]

    snapshot = overrides_from_records(records)

    assert snapshot == {("Alpha", "2024-01-01"): ProbabilityOverride(Category.LOW, None)}
    assert overrides_to_records(snapshot) == [
        {"project": "Alpha", "week_start": "2024-01-01", "category": "Low", "expected": None}
    ]
    assert overrides_from_records(None) == {}


def test_backlog_can_go_negative():
    shop = [ProjectSummary("Alpha", (1.0,), 1.0)]
    delivery = [ProjectSummary("Alpha", (4.0,), 4.0)]
    assert backlog(shop, delivery) == -3.0


def test_chart_series_deltas_and_moving_average():
    buckets = [
        WeeklyBucket("2024-01-01", expected=10.0, planned=10.0, unassigned=10.0),
        WeeklyBucket("2024-01-08", expected=4.0, planned=4.0, unassigned=4.0),
        WeeklyBucket("2024-01-15"),
        WeeklyBucket("2024-01-22", expected=1.0, planned=1.0, unassigned=1.0),
    ]

    points = chart_series(buckets, [3.0, 0.0, 6.0, 9.0])

    assert [point.label for point in points] == [
        "W1 - 2024-01-01",
        "W2 - 2024-01-08",
        "W3 - 2024-01-15",
        "W4 - 2024-01-22",
    ]
    assert [point.delivery_delta for point in points] == [0.0, -3.0, 6.0, 3.0]
    assert [point.expected_delta for point in points] == [0.0, -6.0, -4.0, 1.0]
    assert [point.delivery_moving_average for point in points] == pytest.approx([3.0, 1.5, 3.0, 5.0])


def test_chart_series_pads_missing_delivery_weeks():
    points = chart_series([WeeklyBucket("2024-01-01"), WeeklyBucket("2024-01-08")], [2.0])
    assert [point.delivery for point in points] == [2.0, 0.0]
