"""Dash callbacks for the lookahead dashboard."""

from __future__ import annotations

import base64
import logging
from typing import Any, Sequence

import dash_bootstrap_components as dbc
from dash import Dash, Input, Output, State, dcc
from dash.dcc import send_bytes
from dash.exceptions import PreventUpdate

from .aggregation import summaries_frame
from .charts import create_lookahead_chart
from .config import AppConfig
from .layout import build_kpi_cards, lookahead_columns
from .pipeline import LookaheadResult, build_lookahead, ingest_workbook_bytes
from .pivot import observations_from_records, observations_to_records
from .reconciliation import (
    CATEGORIES,
    overrides_from_records,
    overrides_to_records,
)
from .temporal import current_week_start, format_week, parse_week, week_start
from .workbook import (
    WorkbookDecodeError,
    decode_upload,
    export_filename,
    make_lookahead_workbook_bytes,
    summaries_to_csv,
    workbook_to_bytes,
)

LOGGER = logging.getLogger(__name__)


def resolve_anchor(value: Any) -> str:
    """Align a picked date to its Monday; unusable input means this week."""

    if not value:
        return current_week_start()
    try:
        return format_week(week_start(parse_week(str(value)[:10])))
    except ValueError:
        LOGGER.debug("Ignoring unparseable anchor %r", value)
        return current_week_start()


def compute_result(
    shop_records: Sequence[dict] | None,
    delivery_records: Sequence[dict] | None,
    override_records: Sequence[dict] | None,
    anchor_value: Any,
    weeks_value: Any,
    config: AppConfig,
) -> LookaheadResult:
    """Rebuild the whole lookahead from the browser stores."""

    return build_lookahead(
        observations_from_records(shop_records),
        observations_from_records(delivery_records),
        resolve_anchor(anchor_value),
        weeks_value,
        overrides_from_records(override_records),
        config=config,
    )


def override_table_rows(result: LookaheadResult, *, hide_zero: bool = False) -> list[dict[str, object]]:
    """Editable rows for every shop cell with planned tons or an existing override."""

    rows: list[dict[str, object]] = []
    for summary in result.shop_summaries:
        if hide_zero and summary.total == 0:
            continue
        for week, planned in zip(result.window, summary.weeks):
            override = result.overrides.get((summary.project, week))
            if planned == 0 and override is None:
                continue
            rows.append(
                {
                    "project": summary.project,
                    "week_start": week,
                    "planned": planned,
                    "category": override.category.value if override else "",
                    "expected": "" if override is None or override.expected is None else override.expected,
                }
            )
    return rows


def merge_override_records(
    existing: Sequence[dict] | None,
    edited_rows: Sequence[dict] | None,
) -> list[dict[str, object]]:
    """Apply table edits on top of the stored overrides.

    Overrides for weeks outside the visible window are kept as they are.
    """

    combined = list(existing or []) + list(edited_rows or [])
    return overrides_to_records(overrides_from_records(combined))


def _category_kpis(result: LookaheadResult) -> list[tuple[str, int, float]]:
    totals = result.reconciliation.category_totals
    return [(category.value, totals[category].count, totals[category].tons) for category in CATEGORIES]


def register_callbacks(app: Dash, config: AppConfig) -> None:

    LOGGER.debug("Registering callbacks")

    @app.callback(
        Output("store-shop-obs", "data"),
        Output("store-delivery-obs", "data"),
        Output("store-upload-meta", "data"),
        Output("store-cleaned-workbook", "data"),
        Output("upload-status", "children"),
        Input("upload-workbook", "contents"),
        State("upload-workbook", "filename"),
        prevent_initial_call=True,
    )
    def _on_upload(contents: str | None, filename: str | None):
        if not contents:
            raise PreventUpdate
        try:
            ingested = ingest_workbook_bytes(decode_upload(contents))
        except WorkbookDecodeError as exc:
            LOGGER.warning("Upload %r rejected: %s", filename, exc)
            alert = dbc.Alert(f"Could not read {filename or 'the file'}: {exc}", color="warning")
            return [], [], None, None, alert
        except Exception as exc:
            LOGGER.exception("Unexpected failure while loading %r", filename)
            alert = dbc.Alert(
                ["Something went wrong while loading the workbook.", dcc.Markdown(f"```\n{exc}\n```")],
                color="danger",
            )
            return [], [], None, None, alert

        tables = ingested.tables
        meta = {
            "filename": filename,
            "shop_sheet": tables.shop_sheet,
            "delivery_sheet": tables.delivery_sheet,
            "cleaned": tables.cleaned,
            "shop_observations": len(ingested.shop),
            "delivery_observations": len(ingested.delivery),
        }
        cleaned_payload = (
            base64.b64encode(workbook_to_bytes(tables.cleaned_workbook)).decode("ascii")
            if tables.cleaned_workbook is not None
            else None
        )
        message = (
            f"Loaded {filename}: shop sheet '{tables.shop_sheet}' ({len(ingested.shop)} entries), "
            f"delivery sheet '{tables.delivery_sheet}' ({len(ingested.delivery)} entries)"
            + (" after cleaning the raw export." if tables.cleaned else ".")
        )
        LOGGER.info("upload", extra={"event": "upload", **meta})
        return (
            observations_to_records(ingested.shop.observations),
            observations_to_records(ingested.delivery.observations),
            meta,
            cleaned_payload,
            dbc.Alert(message, color="success", duration=8000),
        )

    @app.callback(
        Output("btn-export-cleaned", "disabled"),
        Input("store-cleaned-workbook", "data"),
    )
    def _toggle_cleaned_download(payload: str | None) -> bool:
        return not payload

    @app.callback(
        Output("kpi-row", "children"),
        Output("g-lookahead", "figure"),
        Output("tbl-shop", "columns"),
        Output("tbl-shop", "data"),
        Output("tbl-delivery", "columns"),
        Output("tbl-delivery", "data"),
        Input("store-shop-obs", "data"),
        Input("store-delivery-obs", "data"),
        Input("store-overrides", "data"),
        Input("f-anchor", "date"),
        Input("f-lookahead", "value"),
        Input("f-view", "value"),
        Input("f-hide-zero", "value"),
        Input("f-moving-average", "value"),
        Input("f-categories", "value"),
    )
    def _update_dashboard(
        shop_records,
        delivery_records,
        override_records,
        anchor_value,
        weeks_value,
        view,
        hide_zero,
        moving_average,
        categories,
    ):
        result = compute_result(shop_records, delivery_records, override_records, anchor_value, weeks_value, config)
        kpis = build_kpi_cards(
            result.weeks,
            shop_total=result.shop_total,
            delivery_total=result.delivery_total,
            backlog=result.backlog,
            shop_projects=result.shop_active_projects,
            delivery_projects=result.delivery_active_projects,
            category_totals=_category_kpis(result),
        )
        figure = create_lookahead_chart(
            result.chart,
            view=view or "both",
            visible_categories=categories,
            show_moving_average=bool(moving_average),
        )
        columns = lookahead_columns(result.window)
        shop_data = summaries_frame(result.shop_summaries, result.window, hide_zero=bool(hide_zero)).to_dict("records")
        delivery_data = summaries_frame(
            result.delivery_summaries, result.window, hide_zero=bool(hide_zero)
        ).to_dict("records")
        return kpis, figure, columns, shop_data, columns, delivery_data

    @app.callback(
        Output("tbl-overrides", "data"),
        Input("store-shop-obs", "data"),
        Input("store-delivery-obs", "data"),
        Input("f-anchor", "date"),
        Input("f-lookahead", "value"),
        Input("f-hide-zero", "value"),
        State("store-overrides", "data"),
    )
    def _populate_override_table(shop_records, delivery_records, anchor_value, weeks_value, hide_zero, override_records):
        result = compute_result(shop_records, delivery_records, override_records, anchor_value, weeks_value, config)
        return override_table_rows(result, hide_zero=bool(hide_zero))

    @app.callback(
        Output("store-overrides", "data"),
        Input("tbl-overrides", "data_timestamp"),
        State("tbl-overrides", "data"),
        State("store-overrides", "data"),
        prevent_initial_call=True,
    )
    def _capture_override_edits(_timestamp, rows, existing):
        if rows is None:
            raise PreventUpdate
        return merge_override_records(existing, rows)

    def _export_csv(stream: str, shop_records, delivery_records, override_records, anchor_value, weeks_value, hide_zero):
        result = compute_result(shop_records, delivery_records, override_records, anchor_value, weeks_value, config)
        summaries = result.shop_summaries if stream == "Shop" else result.delivery_summaries
        text = summaries_to_csv(summaries, result.window, hide_zero=bool(hide_zero))
        return dcc.send_string(text, export_filename(stream, result.anchor, result.weeks))

    _export_states = (
        State("store-shop-obs", "data"),
        State("store-delivery-obs", "data"),
        State("store-overrides", "data"),
        State("f-anchor", "date"),
        State("f-lookahead", "value"),
        State("f-hide-zero", "value"),
    )

    @app.callback(Output("dl-shop", "data"), Input("btn-export-shop", "n_clicks"), *_export_states, prevent_initial_call=True)
    def _download_shop_csv(n_clicks, *state):
        if not n_clicks:
            raise PreventUpdate
        return _export_csv("Shop", *state)

    @app.callback(
        Output("dl-delivery", "data"), Input("btn-export-delivery", "n_clicks"), *_export_states, prevent_initial_call=True
    )
    def _download_delivery_csv(n_clicks, *state):
        if not n_clicks:
            raise PreventUpdate
        return _export_csv("Delivery", *state)

    @app.callback(Output("dl-xlsx", "data"), Input("btn-export-xlsx", "n_clicks"), *_export_states, prevent_initial_call=True)
    def _download_xlsx(n_clicks, shop_records, delivery_records, override_records, anchor_value, weeks_value, hide_zero):
        if not n_clicks:
            raise PreventUpdate
        result = compute_result(shop_records, delivery_records, override_records, anchor_value, weeks_value, config)

        def _writer(buffer) -> None:
            buffer.write(make_lookahead_workbook_bytes(result, hide_zero=bool(hide_zero)))

        return send_bytes(_writer, export_filename("Shop_Delivery", result.anchor, result.weeks, "xlsx"))

    @app.callback(
        Output("dl-cleaned", "data"),
        Input("btn-export-cleaned", "n_clicks"),
        State("store-cleaned-workbook", "data"),
        State("store-upload-meta", "data"),
        prevent_initial_call=True,
    )
    def _download_cleaned(n_clicks, payload, meta):
        if not n_clicks or not payload:
            raise PreventUpdate
        content = base64.b64decode(payload)
        source = (meta or {}).get("filename") or "workbook.xlsx"
        stem = source.rsplit(".", 1)[0]

        def _writer(buffer) -> None:
            buffer.write(content)

        return send_bytes(_writer, f"{stem}_cleaned.xlsx")


__all__ = [
    "compute_result",
    "merge_override_records",
    "override_table_rows",
    "register_callbacks",
    "resolve_anchor",
]
