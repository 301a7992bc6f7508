"""Plotly chart builders."""
from __future__ import annotations

import logging
from typing import Iterable, Sequence

import plotly.graph_objects as go

from .reconciliation import CATEGORIES, Category, ChartPoint

LOGGER = logging.getLogger(__name__)

COLORS = {
    Category.UNSET: "#9ca3af",
    Category.HIGH: "#16a34a",
    Category.MEDIUM: "#f59e0b",
    Category.LOW: "#ef4444",
    "delivery": "#2563eb",
    "moving_average": "#1e3a8a",
}
STACK_ORDER: tuple[Category, ...] = (Category.UNSET, *CATEGORIES)
VIEWS = ("both", "shop", "delivery")


def _empty_figure(height: int = 320) -> go.Figure:
    """Return an empty figure placeholder."""

    return go.Figure().update_layout(height=height, margin=dict(l=40, r=20, t=30, b=50))


def _category_label(category: Category) -> str:
    return "Unassigned" if category is Category.UNSET else category.value


def create_lookahead_chart(
    points: Sequence[ChartPoint],
    *,
    view: str = "both",
    visible_categories: Iterable[str] | None = None,
    show_moving_average: bool = False,
) -> go.Figure:
    """Stacked shop categories beside planned deliveries, one group per week.

    The shop segments share one offset group and are stacked with explicit
    bases so the delivery bar can sit next to them in grouped mode.
    """

    if not points:
        LOGGER.debug("Lookahead chart requested with no weeks")
        return _empty_figure()

    view = view if view in VIEWS else "both"
    if visible_categories is None:
        visible = set(STACK_ORDER)
    else:
        visible = {category for category in STACK_ORDER if _category_label(category) in set(visible_categories)}

    labels = [point.label for point in points]
    figure = go.Figure()

    if view != "delivery":
        base = [0.0] * len(points)
        for category in STACK_ORDER:
            if category not in visible:
                continue
            values = [
                point.unassigned if category is Category.UNSET else getattr(point, category.value.lower())
                for point in points
            ]
            figure.add_trace(
                go.Bar(
                    x=labels,
                    y=values,
                    base=list(base),
                    name=f"Shop - {_category_label(category)}",
                    offsetgroup="shop",
                    marker_color=COLORS[category],
                    customdata=[[point.planned, point.diff] for point in points],
                    hovertemplate=(
                        "%{x}<br>" + _category_label(category) + ": %{y:.2f}<br>"
                        "Planned: %{customdata[0]:.2f}<br>"
                        "Planned gap: %{customdata[1]:.2f}<extra></extra>"
                    ),
                )
            )
            base = [current + value for current, value in zip(base, values)]

    if view != "shop":
        figure.add_trace(
            go.Bar(
                x=labels,
                y=[point.delivery for point in points],
                name="Delivery (planned)",
                offsetgroup="delivery",
                marker_color=COLORS["delivery"],
                customdata=[[point.delivery_delta] for point in points],
                hovertemplate="%{x}<br>Delivery: %{y:.2f}<br>Change: %{customdata[0]:+.2f}<extra></extra>",
            )
        )
        if show_moving_average:
            figure.add_trace(
                go.Scatter(
                    x=labels,
                    y=[point.delivery_moving_average for point in points],
                    mode="lines+markers",
                    name="Delivery (3-wk avg)",
                    line=dict(color=COLORS["moving_average"], dash="dot"),
                )
            )

    figure.update_layout(
        barmode="group",
        height=320,
        margin=dict(l=40, r=20, t=30, b=50),
        yaxis_title="Tons",
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0),
        plot_bgcolor="#fafafa",
        paper_bgcolor="#ffffff",
    )
    LOGGER.debug("Lookahead chart built for %d weeks (view=%s)", len(points), view)
    return figure


__all__ = ["COLORS", "STACK_ORDER", "VIEWS", "create_lookahead_chart"]
