"""Aggregation of weekly observations into lookahead summaries."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, Mapping, Sequence, Tuple

import pandas as pd

from .pivot import Observation, observations_frame
from .temporal import format_week, parse_week

LOGGER = logging.getLogger(__name__)

AggregationKey = Tuple[str, str]
AggregationMap = Dict[AggregationKey, float]

TOTAL_COLUMN = "Next_Total"


@dataclass(frozen=True)
class ProjectSummary:
    project: str
    weeks: tuple[float, ...]
    total: float


def aggregate(observations: Iterable[Observation]) -> AggregationMap:
    """Sum quantities per ``(project, week_start)``; repeated keys add up."""

    frame = observations_frame(observations)
    if frame.empty:
        return {}
    grouped = frame.groupby(["project", "week_start"], sort=False)["quantity"].sum()
    result = {(str(project), str(week)): float(value) for (project, week), value in grouped.items()}
    LOGGER.debug("Aggregated %d observations into %d keys", len(frame), len(result))
    return result


def project_list(*maps: Mapping[AggregationKey, float]) -> list[str]:
    """Sorted union of every project seen in any of the given maps."""

    projects: set[str] = set()
    for mapping in maps:
        projects.update(project for project, _ in mapping.keys())
    return sorted(projects)


def lookahead_window(anchor: date | str, weeks: int) -> list[str]:
    """Return *weeks* consecutive week starts beginning at *anchor*.

    The anchor is taken as given; callers align it to a Monday beforehand.
    """

    start = parse_week(anchor)
    return [format_week(start + timedelta(days=7 * index)) for index in range(max(0, int(weeks)))]


def summarize(
    aggregation: Mapping[AggregationKey, float],
    projects: Sequence[str],
    window: Sequence[str],
) -> list[ProjectSummary]:
    """Per-project window quantities and totals, largest total first."""

    rows: list[ProjectSummary] = []
    for project in projects:
        weeks = tuple(float(aggregation.get((project, week), 0.0)) for week in window)
        rows.append(ProjectSummary(project=project, weeks=weeks, total=sum(weeks)))
    # sorted() is stable, so equal totals keep the incoming (alphabetical) order.
    return sorted(rows, key=lambda row: row.total, reverse=True)


def stream_total(summaries: Iterable[ProjectSummary]) -> float:
    return float(sum(row.total for row in summaries))


def active_project_count(summaries: Iterable[ProjectSummary]) -> int:
    """Number of projects with a positive total inside the window."""

    return sum(1 for row in summaries if row.total > 0)


def week_totals(summaries: Sequence[ProjectSummary], weeks: int) -> list[float]:
    """Column sums across all projects, one per window week."""

    totals = [0.0] * weeks
    for row in summaries:
        for index, value in enumerate(row.weeks[:weeks]):
            totals[index] += value
    return totals


def summaries_frame(
    summaries: Sequence[ProjectSummary],
    window: Sequence[str],
    *,
    hide_zero: bool = False,
) -> pd.DataFrame:
    """Tabular form: ``Project``, one column per week, then ``Next_Total``."""

    columns = ["Project", *window, TOTAL_COLUMN]
    rows = [
        [row.project, *row.weeks, row.total]
        for row in summaries
        if not (hide_zero and row.total == 0)
    ]
    return pd.DataFrame(rows, columns=columns)


__all__ = [
    "AggregationKey",
    "AggregationMap",
    "ProjectSummary",
    "TOTAL_COLUMN",
    "active_project_count",
    "aggregate",
    "lookahead_window",
    "project_list",
    "stream_total",
    "summaries_frame",
    "summarize",
    "week_totals",
]
