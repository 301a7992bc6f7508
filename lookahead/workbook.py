"""Excel workbook import/export helpers."""
from __future__ import annotations

import base64
import binascii
import logging
import re
import zipfile
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Sequence, TYPE_CHECKING

import pandas as pd
from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from .aggregation import ProjectSummary, summaries_frame
from .cleaning import clean_workbook
from .pivot import RepeatedHeader
from .reconciliation import CATEGORIES, overrides_to_records

if TYPE_CHECKING:
    from .pipeline import LookaheadResult

LOGGER = logging.getLogger(__name__)

_SHOP_SHEET_RE = re.compile(r"expected\s*issue|shop", re.I)
_DELIVERY_SHEET_RE = re.compile(r"load|deliver", re.I)

Row = dict[Any, Any]


class WorkbookDecodeError(ValueError):
    """Raised when uploaded content cannot be read as a workbook."""


@dataclass(frozen=True)
class StreamTables:
    """The two wide tables pulled out of one uploaded workbook."""

    shop_sheet: str | None
    delivery_sheet: str | None
    shop_rows: list[Row]
    delivery_rows: list[Row]
    cleaned_workbook: Workbook | None = None

    @property
    def cleaned(self) -> bool:
        return self.cleaned_workbook is not None


def _sanitize_sheet_name(value: str) -> str:
    """Return a value safe for use as an Excel sheet name."""

    sanitized = re.sub(r"[\[\]\:\*\?\/\\]", "_", str(value))
    return sanitized[:31]


def decode_upload(contents: str) -> bytes:
    """Decode a ``data:<mime>;base64,<payload>`` upload string."""

    if not contents:
        raise WorkbookDecodeError("No file content received.")
    _, _, payload = contents.partition(",")
    try:
        return base64.b64decode(payload or contents, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise WorkbookDecodeError(f"Upload is not valid base64: {exc}") from exc


def load_workbook_bytes(content: bytes) -> Workbook:
    """Open workbook bytes with cached cell values (formulas not evaluated)."""

    try:
        return load_workbook(BytesIO(content), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise WorkbookDecodeError(f"Unable to read workbook: {exc}") from exc


def workbook_to_bytes(workbook: Workbook) -> bytes:
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def resolve_stream_sheets(sheet_names: Sequence[str]) -> tuple[str | None, str | None]:
    """Pick the (shop, delivery) sheets by name, falling back to position."""

    names = list(sheet_names)
    if not names:
        return None, None
    shop = next((name for name in names if _SHOP_SHEET_RE.search(name)), None)
    if shop is None:
        shop = names[1] if len(names) > 1 else names[0]
    delivery = next((name for name in names if _DELIVERY_SHEET_RE.search(name)), names[0])
    return shop, delivery


def _header_labels(raw_header: Sequence[Any]) -> list[Any]:
    labels: list[Any] = []
    seen: dict[Any, int] = {}
    for index, value in enumerate(raw_header):
        label = value
        if label is None or (isinstance(label, str) and not label.strip()):
            label = f"Unnamed: {index}"
        if label in seen:
            seen[label] += 1
            label = RepeatedHeader(label, seen[label])
        else:
            seen[label] = 0
        labels.append(label)
    return labels


def sheet_rows(worksheet: Worksheet) -> list[Row]:
    """Read a sheet as row mappings keyed by its first-row headers.

    Header cells keep their raw values (numbers, datetimes, text) so the
    week classification sees exactly what the file holds; a repeated header
    is keyed by a :class:`RepeatedHeader` wrapping the same raw value.  Blank
    rows are skipped and short rows are padded with ``None``.
    """

    iterator = worksheet.iter_rows(values_only=True)
    try:
        raw_header = next(iterator)
    except StopIteration:
        return []
    labels = _header_labels(raw_header)

    rows: list[Row] = []
    for values in iterator:
        if all(value is None or (isinstance(value, str) and not value.strip()) for value in values):
            continue
        padded = list(values) + [None] * (len(labels) - len(values))
        rows.append(dict(zip(labels, padded)))
    return rows


def read_stream_tables(workbook: Workbook) -> StreamTables:
    """Clean a raw export if recognised, then read the shop and delivery sheets."""

    cleaned = clean_workbook(workbook)
    source = cleaned if cleaned is not None else workbook
    shop_name, delivery_name = resolve_stream_sheets(source.sheetnames)
    shop_rows = sheet_rows(source[shop_name]) if shop_name else []
    delivery_rows = sheet_rows(source[delivery_name]) if delivery_name else []
    LOGGER.info(
        "Read workbook: shop_sheet=%r rows=%d | delivery_sheet=%r rows=%d | cleaned=%s",
        shop_name,
        len(shop_rows),
        delivery_name,
        len(delivery_rows),
        cleaned is not None,
    )
    return StreamTables(
        shop_sheet=shop_name,
        delivery_sheet=delivery_name,
        shop_rows=shop_rows,
        delivery_rows=delivery_rows,
        cleaned_workbook=cleaned,
    )


def export_filename(stream: str, anchor: str, weeks: int, extension: str = "csv") -> str:
    return f"{stream}_Lookahead_{anchor}_w{weeks}.{extension}"


def summaries_to_csv(
    summaries: Sequence[ProjectSummary],
    window: Sequence[str],
    *,
    hide_zero: bool = False,
) -> str:
    """Delimited export; numbers are rounded to two decimals only here."""

    frame = summaries_frame(summaries, window, hide_zero=hide_zero)
    return frame.to_csv(index=False, float_format="%.2f", lineterminator="\n").rstrip("\n")


def make_lookahead_workbook_bytes(result: "LookaheadResult", *, hide_zero: bool = False) -> bytes:
    """Build the Excel export with both lookaheads, weekly buckets and KPIs."""

    LOGGER.info(
        "Building lookahead workbook (anchor=%s, weeks=%d, projects=%d)",
        result.anchor,
        result.weeks,
        len(result.projects),
    )
    window = list(result.window)
    shop_df = summaries_frame(result.shop_summaries, window, hide_zero=hide_zero).round(2)
    delivery_df = summaries_frame(result.delivery_summaries, window, hide_zero=hide_zero).round(2)

    buckets_df = pd.DataFrame(
        [
            {
                "week_start": bucket.week_start,
                "high": bucket.high,
                "medium": bucket.medium,
                "low": bucket.low,
                "unassigned": bucket.unassigned,
                "planned": bucket.planned,
                "expected": bucket.expected,
                "planned_gap": bucket.diff,
                "delivery": point.delivery,
            }
            for bucket, point in zip(result.reconciliation.buckets, result.chart)
        ],
        columns=[
            "week_start",
            "high",
            "medium",
            "low",
            "unassigned",
            "planned",
            "expected",
            "planned_gap",
            "delivery",
        ],
    ).round(2)

    kpi_df = pd.DataFrame(
        [
            {
                "category": category.value,
                "cards": result.reconciliation.category_totals[category].count,
                "tons": round(result.reconciliation.category_totals[category].tons, 2),
            }
            for category in CATEGORIES
        ]
    )

    context_df = pd.DataFrame(
        [
            {
                "anchor_week": result.anchor,
                "lookahead_weeks": result.weeks,
                "shop_planned": round(result.shop_total, 2),
                "deliveries": round(result.delivery_total, 2),
                "backlog": round(result.backlog, 2),
                "shop_projects": result.shop_active_projects,
                "delivery_projects": result.delivery_active_projects,
                "overrides": len(result.overrides),
            }
        ]
    )
    overrides_df = pd.DataFrame(
        overrides_to_records(result.overrides),
        columns=["project", "week_start", "category", "expected"],
    )

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        shop_df.to_excel(writer, sheet_name="ShopLookahead", index=False)
        delivery_df.to_excel(writer, sheet_name="DeliveryLookahead", index=False)
        buckets_df.to_excel(writer, sheet_name="WeeklyBuckets", index=False)
        kpi_df.to_excel(writer, sheet_name="ProbabilityKPIs", index=False)
        overrides_df.to_excel(writer, sheet_name=_sanitize_sheet_name("ProbabilityOverrides"), index=False)
        context_df.to_excel(writer, sheet_name="SelectionContext", index=False)

    buffer.seek(0)
    return buffer.getvalue()


__all__ = [
    "StreamTables",
    "WorkbookDecodeError",
    "decode_upload",
    "export_filename",
    "load_workbook_bytes",
    "make_lookahead_workbook_bytes",
    "read_stream_tables",
    "resolve_stream_sheets",
    "sheet_rows",
    "summaries_to_csv",
    "workbook_to_bytes",
]
