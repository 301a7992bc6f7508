"""Dash layout composition."""
from __future__ import annotations

from typing import Sequence

import dash_bootstrap_components as dbc
from dash import dash_table, dcc, html
from dash.dash_table.Format import Format, Scheme

from .aggregation import TOTAL_COLUMN
from .config import AppConfig
from .reconciliation import CATEGORIES
from .temporal import current_week_start

FIXED_2 = Format(precision=2, scheme=Scheme.fixed)

CATEGORY_OPTIONS = [
    {"label": "Unassigned", "value": "Unassigned"},
    *({"label": category.value, "value": category.value} for category in CATEGORIES),
]

_TABLE_STYLE = dict(
    style_table={"overflowX": "auto"},
    style_cell={"fontSize": 13, "padding": "4px 8px", "fontFamily": "inherit"},
    style_header={"fontWeight": "600", "backgroundColor": "#f8fafc"},
    style_cell_conditional=[{"if": {"column_id": "Project"}, "textAlign": "left", "minWidth": "160px"}],
)


def lookahead_columns(window: Sequence[str]) -> list[dict[str, object]]:
    """DataTable columns for a lookahead summary over *window*."""

    columns: list[dict[str, object]] = [{"name": "Project", "id": "Project"}]
    for index, week in enumerate(window):
        columns.append({"name": f"W{index + 1} {week}", "id": week, "type": "numeric", "format": FIXED_2})
    columns.append(
        {"name": f"Next {len(window)} Total", "id": TOTAL_COLUMN, "type": "numeric", "format": FIXED_2}
    )
    return columns


OVERRIDE_COLUMNS = [
    {"name": "Project", "id": "project", "editable": False},
    {"name": "Week", "id": "week_start", "editable": False},
    {"name": "Planned", "id": "planned", "type": "numeric", "format": FIXED_2, "editable": False},
    {"name": "Probability", "id": "category", "presentation": "dropdown", "editable": True},
    {"name": "Expected", "id": "expected", "editable": True},
]


def _kpi_card(label: str, value: str, tone: str, *, value_style: dict | None = None) -> dbc.Col:
    return dbc.Col(
        dbc.Card(
            dbc.CardBody(
                [
                    html.Div(label, className="kpi-label"),
                    html.Div(html.Span(value, className="kpi-value", style=value_style or {}), className="kpi-row"),
                ]
            ),
            className=f"kpi kpi--{tone}",
        ),
        md=3,
        className="mb-3",
    )


def build_kpi_cards(
    weeks: int,
    *,
    shop_total: float,
    delivery_total: float,
    backlog: float,
    shop_projects: int,
    delivery_projects: int,
    category_totals: Sequence[tuple[str, int, float]],
) -> list[dbc.Col]:
    """KPI card columns; backlog turns red when deliveries outrun the shop."""

    cards = [
        _kpi_card(f"Shop Planned (next {weeks})", f"{shop_total:.2f}", "blue"),
        _kpi_card(f"Deliveries (next {weeks})", f"{delivery_total:.2f}", "purple"),
        _kpi_card(
            "Backlog (Shop - Deliveries)",
            f"{backlog:.2f}",
            "red" if backlog < 0 else "green",
            value_style={"color": "#ef4444"} if backlog < 0 else None,
        ),
        _kpi_card(
            "Projects in window",
            f"Shop: {shop_projects} | Delivery: {delivery_projects}",
            "purple",
        ),
    ]
    tones = {"High": "green", "Medium": "amber", "Low": "red"}
    for name, count, tons in category_totals:
        cards.append(
            _kpi_card(f"{name} Probability (next {weeks})", f"{count} cards - {tons:.2f}", tones.get(name, "blue"))
        )
    return cards


def build_header(title: str) -> html.Div:
    return html.Div(
        [
            html.H2(title, className="mb-1"),
            html.Div(
                "Weekly shop issue and delivery plan, reconciled against probability estimates.",
                className="text-muted",
            ),
        ],
        className="mb-3",
    )


def build_controls(config: AppConfig) -> dbc.Card:
    """Anchor week, lookahead length, view and display toggles."""

    return dbc.Card(
        dbc.CardBody(
            [
                dbc.Row(
                    [
                        dbc.Col(
                            [
                                html.Label("Start week", className="fw-semibold mb-1"),
                                dcc.DatePickerSingle(
                                    id="f-anchor",
                                    date=current_week_start(),
                                    display_format="YYYY-MM-DD",
                                    first_day_of_week=1,
                                    persistence=True,
                                    persistence_type="session",
                                ),
                            ],
                            md=3,
                        ),
                        dbc.Col(
                            [
                                html.Label("Lookahead (weeks)", className="fw-semibold mb-1"),
                                dbc.Input(
                                    id="f-lookahead",
                                    type="number",
                                    min=config.min_lookahead_weeks,
                                    max=config.max_lookahead_weeks,
                                    step=1,
                                    value=config.default_lookahead_weeks,
                                    debounce=True,
                                ),
                            ],
                            md=2,
                        ),
                        dbc.Col(
                            [
                                html.Label("View", className="fw-semibold mb-1"),
                                dbc.RadioItems(
                                    id="f-view",
                                    options=[
                                        {"label": "Both", "value": "both"},
                                        {"label": "Shop", "value": "shop"},
                                        {"label": "Delivery", "value": "delivery"},
                                    ],
                                    value="both",
                                    inline=True,
                                ),
                            ],
                            md=3,
                        ),
                        dbc.Col(
                            [
                                dbc.Switch(id="f-hide-zero", label="Hide zeros", value=False),
                                dbc.Switch(id="f-moving-average", label="Delivery 3-wk average", value=False),
                            ],
                            md=2,
                        ),
                        dbc.Col(
                            [
                                html.Label("Shop categories", className="fw-semibold mb-1"),
                                dbc.Checklist(
                                    id="f-categories",
                                    options=CATEGORY_OPTIONS,
                                    value=[option["value"] for option in CATEGORY_OPTIONS],
                                    inline=True,
                                ),
                            ],
                            md=2,
                        ),
                    ],
                    className="g-3",
                ),
                html.Hr(),
                dcc.Upload(
                    id="upload-workbook",
                    children=html.Div(["Drop or ", html.A("select an Excel workbook"), " (.xlsx)"]),
                    accept=".xlsx,.xlsm",
                    multiple=False,
                    style={
                        "border": "1px dashed #cbd5e1",
                        "borderRadius": "12px",
                        "padding": "12px",
                        "textAlign": "center",
                    },
                ),
                html.Div(id="upload-status", className="mt-2"),
            ]
        ),
        className="mb-3 filter-card",
    )


def _table_card(title: str, table_id: str, export_id: str, *, extra_buttons: Sequence = ()) -> dbc.Card:
    return dbc.Card(
        [
            dbc.CardHeader(
                dbc.Row(
                    [
                        dbc.Col(html.Div(title, className="section-title"), align="center"),
                        dbc.Col(
                            [
                                dbc.Button("Export CSV", id=export_id, color="primary", size="sm", className="me-2"),
                                *extra_buttons,
                            ],
                            width="auto",
                        ),
                    ],
                    justify="between",
                )
            ),
            dbc.CardBody(dash_table.DataTable(id=table_id, columns=[], data=[], page_size=25, **_TABLE_STYLE)),
        ],
        className="mb-4 viz-card shadow-sm",
    )


def build_override_card() -> dbc.Card:
    return dbc.Card(
        [
            dbc.CardHeader(
                [
                    html.Div("Shop probability / expected", className="section-title"),
                    html.Div(
                        "Pick a probability and, optionally, the tons you expect. Blank expected keeps the planned value.",
                        className="section-sub",
                    ),
                ]
            ),
            dbc.CardBody(
                dash_table.DataTable(
                    id="tbl-overrides",
                    columns=OVERRIDE_COLUMNS,
                    data=[],
                    editable=True,
                    page_size=50,
                    dropdown={
                        "category": {
                            "options": [{"label": "-", "value": ""}]
                            + [{"label": category.value, "value": category.value} for category in CATEGORIES],
                            "clearable": True,
                        }
                    },
                    **_TABLE_STYLE,
                )
            ),
        ],
        className="mb-4 viz-card shadow-sm",
    )


def build_layout(config: AppConfig) -> dbc.Container:
    """Assemble the full Dash layout."""

    return dbc.Container(
        [
            build_header("Shop & Delivery Dashboard"),
            build_controls(config),
            dbc.Row(id="kpi-row", className="mb-2"),
            dbc.Card(
                dbc.CardBody(dcc.Graph(id="g-lookahead", config={"displayModeBar": False})),
                className="mb-4 viz-card shadow-sm",
            ),
            _table_card(
                "Shop Lookahead",
                "tbl-shop",
                "btn-export-shop",
                extra_buttons=(
                    dbc.Button("Export Excel", id="btn-export-xlsx", color="secondary", size="sm", className="me-2"),
                    dbc.Button(
                        "Download cleaned workbook",
                        id="btn-export-cleaned",
                        color="secondary",
                        outline=True,
                        size="sm",
                        disabled=True,
                    ),
                ),
            ),
            build_override_card(),
            _table_card("Delivery Lookahead", "tbl-delivery", "btn-export-delivery"),
            dcc.Download(id="dl-shop"),
            dcc.Download(id="dl-delivery"),
            dcc.Download(id="dl-xlsx"),
            dcc.Download(id="dl-cleaned"),
            dcc.Store(id="store-shop-obs", data=[]),
            dcc.Store(id="store-delivery-obs", data=[]),
            dcc.Store(id="store-overrides", data=[]),
            dcc.Store(id="store-upload-meta", data=None),
            dcc.Store(id="store-cleaned-workbook", data=None),
        ],
        fluid=True,
    )


__all__ = ["OVERRIDE_COLUMNS", "build_kpi_cards", "build_layout", "lookahead_columns"]
