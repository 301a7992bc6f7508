"""Planned vs. expected reconciliation for the shop stream.

Planners tag individual (project, week) cells with a probability category and,
optionally, the quantity they actually expect.  Each pass folds those tags
over the planned aggregates for the lookahead window and produces one bucket
per week, split by category, plus the uncovered planned gap.
"""
from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence, Tuple

from .aggregation import AggregationKey, ProjectSummary, stream_total
from .pivot import leading_number

LOGGER = logging.getLogger(__name__)


class Category(str, Enum):
    UNSET = ""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


CATEGORIES: tuple[Category, ...] = (Category.HIGH, Category.MEDIUM, Category.LOW)
MOVING_AVERAGE_POINTS = 3


def parse_category(value: object) -> Category:
    """Map free text onto a category; unknown values are ``UNSET``."""

    if isinstance(value, Category):
        return value
    text = str(value or "").strip().lower()
    for category in CATEGORIES:
        if category.value.lower() == text:
            return category
    return Category.UNSET


def coerce_expected(value: object) -> float | None:
    """Read an expected-quantity entry.

    Blank or non-numeric text means no expected quantity was supplied.
    Numbers are clamped at zero.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        number = leading_number(value)
        if number is None:
            return None
    elif isinstance(value, numbers.Real):
        number = float(value)
    else:
        return None
    if not math.isfinite(number):
        return None
    return max(0.0, number)


@dataclass(frozen=True)
class ProbabilityOverride:
    category: Category = Category.UNSET
    expected: float | None = None

    @classmethod
    def from_raw(cls, category: object = None, expected: object = None) -> "ProbabilityOverride":
        return cls(category=parse_category(category), expected=coerce_expected(expected))

    @property
    def is_empty(self) -> bool:
        return self.category is Category.UNSET and self.expected is None


OverrideKey = Tuple[str, str]
OverrideSnapshot = Mapping[OverrideKey, ProbabilityOverride]

_NO_OVERRIDE = ProbabilityOverride()


def overrides_from_records(records: Iterable[Mapping[str, Any]] | None) -> dict[OverrideKey, ProbabilityOverride]:
    """Build a snapshot from store records; later records win."""

    snapshot: dict[OverrideKey, ProbabilityOverride] = {}
    for record in records or ():
        project = str(record.get("project") or "").strip()
        week = str(record.get("week_start") or "").strip()
        if not project or not week:
            continue
        override = ProbabilityOverride.from_raw(record.get("category"), record.get("expected"))
        if override.is_empty:
            snapshot.pop((project, week), None)
        else:
            snapshot[(project, week)] = override
    return snapshot


def overrides_to_records(snapshot: OverrideSnapshot) -> list[dict[str, object]]:
    return [
        {
            "project": project,
            "week_start": week,
            "category": override.category.value,
            "expected": override.expected,
        }
        for (project, week), override in sorted(snapshot.items())
        if not override.is_empty
    ]


@dataclass(frozen=True)
class WeeklyBucket:
    week_start: str
    high: float = 0.0
    medium: float = 0.0
    low: float = 0.0
    unassigned: float = 0.0
    planned: float = 0.0
    expected: float = 0.0
    diff: float = 0.0

    def category_value(self, category: Category) -> float:
        return {
            Category.HIGH: self.high,
            Category.MEDIUM: self.medium,
            Category.LOW: self.low,
            Category.UNSET: self.unassigned,
        }[category]


@dataclass(frozen=True)
class CategoryTotal:
    tons: float = 0.0
    count: int = 0


@dataclass(frozen=True)
class Reconciliation:
    buckets: tuple[WeeklyBucket, ...]
    category_totals: Mapping[Category, CategoryTotal]


def reconcile(
    projects: Sequence[str],
    window: Sequence[str],
    shop_aggregation: Mapping[AggregationKey, float],
    overrides: OverrideSnapshot | None = None,
) -> Reconciliation:
    """Fold overrides over planned shop quantities for every window week.

    ``expected`` defaults to ``planned`` when no expected quantity is given.
    Categorised expectations go to their category bucket; everything else is
    unassigned.  ``diff`` is the planned quantity not covered by expectations
    and never goes below zero.
    """

    snapshot = overrides or {}
    category_tons = {category: 0.0 for category in CATEGORIES}
    category_counts = {category: 0 for category in CATEGORIES}
    buckets: list[WeeklyBucket] = []

    for week in window:
        sums = {category: 0.0 for category in CATEGORIES}
        unassigned = planned_total = expected_total = 0.0
        for project in projects:
            planned = float(shop_aggregation.get((project, week), 0.0))
            override = snapshot.get((project, week), _NO_OVERRIDE)
            expected = planned if override.expected is None else max(0.0, override.expected)
            if override.category in sums:
                sums[override.category] += expected
                category_tons[override.category] += expected
                category_counts[override.category] += 1
            else:
                unassigned += expected
            planned_total += planned
            expected_total += expected
        buckets.append(
            WeeklyBucket(
                week_start=week,
                high=sums[Category.HIGH],
                medium=sums[Category.MEDIUM],
                low=sums[Category.LOW],
                unassigned=unassigned,
                planned=planned_total,
                expected=expected_total,
                diff=max(0.0, planned_total - expected_total),
            )
        )

    totals = {
        category: CategoryTotal(tons=category_tons[category], count=category_counts[category])
        for category in CATEGORIES
    }
    LOGGER.debug(
        "Reconciled %d projects over %d weeks with %d overrides",
        len(projects),
        len(window),
        len(snapshot),
    )
    return Reconciliation(buckets=tuple(buckets), category_totals=totals)


def backlog(shop_summaries: Iterable[ProjectSummary], delivery_summaries: Iterable[ProjectSummary]) -> float:
    """Shop total minus delivery total; negative means over-delivered."""

    return stream_total(shop_summaries) - stream_total(delivery_summaries)


@dataclass(frozen=True)
class ChartPoint:
    label: str
    week_start: str
    unassigned: float
    high: float
    medium: float
    low: float
    planned: float
    expected: float
    diff: float
    delivery: float
    expected_delta: float
    delivery_delta: float
    delivery_moving_average: float


def chart_series(
    buckets: Sequence[WeeklyBucket],
    delivery_week_totals: Sequence[float],
) -> list[ChartPoint]:
    """Per-week chart rows with week-over-week deltas and a delivery average."""

    points: list[ChartPoint] = []
    for index, bucket in enumerate(buckets):
        delivery = float(delivery_week_totals[index]) if index < len(delivery_week_totals) else 0.0
        previous = points[index - 1] if index > 0 else None
        recent = [point.delivery for point in points[max(0, index - MOVING_AVERAGE_POINTS + 1):]]
        recent.append(delivery)
        points.append(
            ChartPoint(
                label=f"W{index + 1} - {bucket.week_start}",
                week_start=bucket.week_start,
                unassigned=bucket.unassigned,
                high=bucket.high,
                medium=bucket.medium,
                low=bucket.low,
                planned=bucket.planned,
                expected=bucket.expected,
                diff=bucket.diff,
                delivery=delivery,
                expected_delta=bucket.expected - previous.expected if previous else 0.0,
                delivery_delta=delivery - previous.delivery if previous else 0.0,
                delivery_moving_average=sum(recent) / len(recent),
            )
        )
    return points


__all__ = [
    "CATEGORIES",
    "Category",
    "CategoryTotal",
    "ChartPoint",
    "OverrideKey",
    "OverrideSnapshot",
    "ProbabilityOverride",
    "Reconciliation",
    "WeeklyBucket",
    "backlog",
    "chart_series",
    "coerce_expected",
    "overrides_from_records",
    "overrides_to_records",
    "parse_category",
    "reconcile",
]
