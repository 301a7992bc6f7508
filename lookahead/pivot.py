"""Wide planning table -> flat weekly observations.

A planning sheet carries one row per project and one column per period.  The
period columns are not known up front, so each header is classified once
(identifier, week, or ignored) before the rows are walked.
"""
from __future__ import annotations

import logging
import math
import numbers
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd

from .temporal import header_to_week

LOGGER = logging.getLogger(__name__)

DEFAULT_IDENTIFIER_COLUMN = "Project"
OBSERVATION_COLUMNS = ["project", "week_start", "quantity"]

_LEADING_NUMBER_RE = re.compile(r"\s*[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


class HeaderKind(Enum):
    IDENTIFIER = "identifier"
    WEEK = "week"
    IGNORED = "ignored"


@dataclass(frozen=True)
class HeaderClassification:
    """Outcome of inspecting one column label."""

    label: Any
    kind: HeaderKind
    week_start: str | None = None


@dataclass(frozen=True)
class RepeatedHeader:
    """Row key for a header value that already appeared earlier in the row.

    The raw value is kept so the column still classifies as its week.
    """

    value: Any
    occurrence: int

    def __str__(self) -> str:
        return f"{self.value}_{self.occurrence}"


@dataclass(frozen=True)
class Observation:
    project: str
    week_start: str
    quantity: float


@dataclass(frozen=True)
class NormalizedSheet:
    identifier_column: Any
    observations: tuple[Observation, ...]

    def __len__(self) -> int:
        return len(self.observations)


def find_identifier_column(columns: Iterable[Any]) -> Any:
    """Return the first column whose label mentions "project"."""

    for column in columns:
        if "project" in str(column).lower():
            return column
    return DEFAULT_IDENTIFIER_COLUMN


def classify_headers(columns: Sequence[Any], identifier_column: Any) -> list[HeaderClassification]:
    """Classify every column label once, ahead of row iteration."""

    classified: list[HeaderClassification] = []
    for column in columns:
        if column == identifier_column:
            classified.append(HeaderClassification(column, HeaderKind.IDENTIFIER))
            continue
        raw = column.value if isinstance(column, RepeatedHeader) else column
        week = header_to_week(raw)
        if week is None:
            classified.append(HeaderClassification(column, HeaderKind.IGNORED))
        else:
            classified.append(HeaderClassification(column, HeaderKind.WEEK, week))
    return classified


def leading_number(text: str) -> float | None:
    """Read the ASCII decimal number at the start of *text*.

    Thousands separators are dropped first and trailing units are ignored,
    so "1,250.5 t" reads as 1250.5.  Text without a leading number gives
    ``None``.
    """

    match = _LEADING_NUMBER_RE.match(text.replace(",", ""))
    if match is None:
        return None
    return float(match.group(0))


def parse_quantity(value: object) -> float:
    """Read a cell as a number; anything unusable becomes ``0.0``.

    Strings may carry thousands separators ("1,250.5").
    """

    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        number = leading_number(value)
        if number is None:
            return 0.0
    elif isinstance(value, numbers.Real):
        number = float(value)
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def _identifier_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def normalize_rows(rows: Sequence[Mapping[Any, Any]]) -> NormalizedSheet:
    """Flatten wide rows into ``(project, week_start, quantity)`` observations.

    Zero and unparseable quantities are dropped rather than recorded.  Several
    columns falling in the same week are kept as separate observations; the
    aggregator sums them.
    """

    if not rows:
        return NormalizedSheet(DEFAULT_IDENTIFIER_COLUMN, ())

    columns = list(rows[0].keys())
    identifier_column = find_identifier_column(columns)
    headers = classify_headers(columns, identifier_column)
    week_headers = [header for header in headers if header.kind is HeaderKind.WEEK]

    observations: list[Observation] = []
    skipped_rows = 0
    for row in rows:
        project = _identifier_text(row.get(identifier_column))
        if not project:
            skipped_rows += 1
            continue
        for header in week_headers:
            quantity = parse_quantity(row.get(header.label))
            if quantity == 0.0:
                continue
            observations.append(Observation(project, header.week_start, quantity))

    LOGGER.debug(
        "Normalized sheet: identifier=%r, week_columns=%d, ignored_columns=%d, "
        "skipped_rows=%d, observations=%d",
        identifier_column,
        len(week_headers),
        sum(1 for header in headers if header.kind is HeaderKind.IGNORED),
        skipped_rows,
        len(observations),
    )
    return NormalizedSheet(identifier_column, tuple(observations))


def normalize_frame(frame: pd.DataFrame) -> NormalizedSheet:
    """Normalize a wide DataFrame (columns are the sheet headers)."""

    if frame is None or frame.empty:
        return NormalizedSheet(DEFAULT_IDENTIFIER_COLUMN, ())
    records = frame.astype(object).where(frame.notna(), None).to_dict("records")
    return normalize_rows(records)


def observations_frame(observations: Iterable[Observation]) -> pd.DataFrame:
    """Long-form view of observations, one row each."""

    rows = [(obs.project, obs.week_start, obs.quantity) for obs in observations]
    return pd.DataFrame(rows, columns=OBSERVATION_COLUMNS)


def observations_to_records(observations: Iterable[Observation]) -> list[dict[str, object]]:
    """JSON-safe records for a browser-side store."""

    return [
        {"project": obs.project, "week_start": obs.week_start, "quantity": obs.quantity}
        for obs in observations
    ]


def observations_from_records(records: Iterable[Mapping[str, Any]] | None) -> tuple[Observation, ...]:
    """Rebuild observations from store records, dropping malformed entries."""

    observations: list[Observation] = []
    for record in records or ():
        project = _identifier_text(record.get("project"))
        week = record.get("week_start")
        quantity = parse_quantity(record.get("quantity"))
        if not project or not isinstance(week, str) or quantity == 0.0:
            continue
        observations.append(Observation(project, week, quantity))
    return tuple(observations)


__all__ = [
    "DEFAULT_IDENTIFIER_COLUMN",
    "HeaderClassification",
    "HeaderKind",
    "NormalizedSheet",
    "Observation",
    "RepeatedHeader",
    "classify_headers",
    "find_identifier_column",
    "leading_number",
    "normalize_frame",
    "normalize_rows",
    "observations_frame",
    "observations_from_records",
    "observations_to_records",
    "parse_quantity",
]
