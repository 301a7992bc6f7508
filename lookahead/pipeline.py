"""One-shot lookahead computation from observations to presentation data."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Mapping, Sequence

from openpyxl import Workbook

from .aggregation import (
    ProjectSummary,
    active_project_count,
    aggregate,
    lookahead_window,
    project_list,
    stream_total,
    summarize,
    week_totals,
)
from .config import AppConfig
from .pivot import NormalizedSheet, Observation, normalize_rows
from .reconciliation import (
    ChartPoint,
    OverrideKey,
    OverrideSnapshot,
    ProbabilityOverride,
    Reconciliation,
    backlog,
    chart_series,
    reconcile,
)
from .temporal import coerce_week
from .workbook import StreamTables, load_workbook_bytes, read_stream_tables

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LookaheadResult:
    anchor: str
    weeks: int
    window: tuple[str, ...]
    projects: tuple[str, ...]
    shop_summaries: tuple[ProjectSummary, ...]
    delivery_summaries: tuple[ProjectSummary, ...]
    reconciliation: Reconciliation
    chart: tuple[ChartPoint, ...]
    shop_total: float
    delivery_total: float
    backlog: float
    shop_active_projects: int
    delivery_active_projects: int
    overrides: Mapping[OverrideKey, ProbabilityOverride] = field(default_factory=dict)

    @property
    def buckets(self):
        return self.reconciliation.buckets


def build_lookahead(
    shop_observations: Iterable[Observation],
    delivery_observations: Iterable[Observation],
    anchor: date | str,
    weeks: Any,
    overrides: OverrideSnapshot | None = None,
    *,
    config: AppConfig | None = None,
) -> LookaheadResult:
    """Run aggregation and reconciliation for one anchor/window/override set.

    Every call rebuilds the maps, summaries and buckets from scratch.
    """

    active_config = config or AppConfig()
    weeks_value = active_config.clamp_weeks(weeks)
    anchor_iso = coerce_week(anchor)
    snapshot = dict(overrides or {})

    shop_map = aggregate(shop_observations)
    delivery_map = aggregate(delivery_observations)
    projects = project_list(shop_map, delivery_map)
    window = lookahead_window(anchor_iso, weeks_value)

    shop_summaries = summarize(shop_map, projects, window)
    delivery_summaries = summarize(delivery_map, projects, window)
    reconciliation = reconcile(projects, window, shop_map, snapshot)
    chart = chart_series(reconciliation.buckets, week_totals(delivery_summaries, len(window)))

    result = LookaheadResult(
        anchor=anchor_iso,
        weeks=weeks_value,
        window=tuple(window),
        projects=tuple(projects),
        shop_summaries=tuple(shop_summaries),
        delivery_summaries=tuple(delivery_summaries),
        reconciliation=reconciliation,
        chart=tuple(chart),
        shop_total=stream_total(shop_summaries),
        delivery_total=stream_total(delivery_summaries),
        backlog=backlog(shop_summaries, delivery_summaries),
        shop_active_projects=active_project_count(shop_summaries),
        delivery_active_projects=active_project_count(delivery_summaries),
        overrides=snapshot,
    )
    LOGGER.debug(
        "Lookahead built: anchor=%s weeks=%d projects=%d backlog=%.2f",
        result.anchor,
        result.weeks,
        len(result.projects),
        result.backlog,
    )
    return result


def build_lookahead_from_rows(
    shop_rows: Sequence[Mapping[Any, Any]],
    delivery_rows: Sequence[Mapping[Any, Any]],
    anchor: date | str,
    weeks: Any,
    overrides: OverrideSnapshot | None = None,
    *,
    config: AppConfig | None = None,
) -> LookaheadResult:
    """Normalize two wide tables, then build the lookahead."""

    shop = normalize_rows(shop_rows)
    delivery = normalize_rows(delivery_rows)
    return build_lookahead(
        shop.observations,
        delivery.observations,
        anchor,
        weeks,
        overrides,
        config=config,
    )


@dataclass(frozen=True)
class IngestedWorkbook:
    """Normalized shop and delivery observations read from one upload."""

    tables: StreamTables
    shop: NormalizedSheet
    delivery: NormalizedSheet


def ingest_workbook(workbook: Workbook) -> IngestedWorkbook:
    """Clean (when recognised), pick the stream sheets and normalize them."""

    tables = read_stream_tables(workbook)
    shop = normalize_rows(tables.shop_rows)
    delivery = normalize_rows(tables.delivery_rows)
    LOGGER.info(
        "Ingested workbook: shop_observations=%d delivery_observations=%d",
        len(shop),
        len(delivery),
    )
    return IngestedWorkbook(tables=tables, shop=shop, delivery=delivery)


def ingest_workbook_bytes(content: bytes) -> IngestedWorkbook:
    return ingest_workbook(load_workbook_bytes(content))


__all__ = [
    "IngestedWorkbook",
    "LookaheadResult",
    "build_lookahead",
    "build_lookahead_from_rows",
    "ingest_workbook",
    "ingest_workbook_bytes",
]
