"""Raw planning export -> canonical two-sheet workbook.

The ERP pivot export ships the shop and loading plans on their own sheets,
interleaved with subtotal rows, category code rows and a "Grand Total"
column.  The rules below describe that layout as data; a workbook that does
not carry both raw sheets is left alone.
"""
from __future__ import annotations

import logging
import numbers
import re
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from openpyxl import Workbook
from openpyxl.worksheet.worksheet import Worksheet

LOGGER = logging.getLogger(__name__)

CANONICAL_SHOP_SHEET = "Expected Issue"
CANONICAL_DELIVERY_SHEET = "Loading"
HEADER_DATE_FORMAT = "yyyy-mm-dd"

Grid = list[list[Any]]


@dataclass(frozen=True)
class SheetRule:
    """How one raw sheet maps onto its canonical sheet."""

    source_sheet: str
    target_sheet: str
    grand_total_header: str = "Grand Total"
    # 1-based column holding the grand total; None searches the header row.
    grand_total_column: int | None = None


@dataclass(frozen=True)
class RawLayout:
    name: str
    shop: SheetRule
    delivery: SheetRule
    excluded_prefixes: tuple[str, ...]

    @property
    def rules(self) -> tuple[SheetRule, SheetRule]:
        return (self.shop, self.delivery)


RAW_LAYOUTS: tuple[RawLayout, ...] = (
    RawLayout(
        name="erp-pivot-export",
        shop=SheetRule(
            source_sheet="Expected Issue Raw",
            target_sheet=CANONICAL_SHOP_SHEET,
            grand_total_column=2,
        ),
        delivery=SheetRule(
            source_sheet="Loading Raw",
            target_sheet=CANONICAL_DELIVERY_SHEET,
        ),
        excluded_prefixes=(
            "Grand Total",
            "Total",
            "Sum of",
            "Row Labels",
            "(blank)",
            "ZZ-",
            "OH-",
            "STK-",
        ),
    ),
)


def _norm_sheet(name: object) -> str:
    """Lowercase and strip everything but ``[a-z0-9]`` for sheet matching."""

    return re.sub(r"[^a-z0-9]+", "", str(name).lower())


def _match_sheet(sheet_names: Iterable[str], desired: str) -> str | None:
    want = _norm_sheet(desired)
    for name in sheet_names:
        if _norm_sheet(name) == want:
            return name
    return None


def detect_raw_layout(
    sheet_names: Sequence[str],
    layouts: Sequence[RawLayout] = RAW_LAYOUTS,
) -> RawLayout | None:
    """Return the first layout whose two raw sheets are both present."""

    for layout in layouts:
        if all(_match_sheet(sheet_names, rule.source_sheet) for rule in layout.rules):
            return layout
    return None


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_excluded(label: object, prefixes: Sequence[str]) -> bool:
    if _is_blank(label):
        return False
    text = str(label).strip().lower()
    return any(text.startswith(prefix.lower()) for prefix in prefixes)


def _grand_total_index(header: Sequence[Any], rule: SheetRule) -> int | None:
    wanted = rule.grand_total_header.strip().lower()

    def _matches(value: object) -> bool:
        return isinstance(value, str) and value.strip().lower() == wanted

    if rule.grand_total_column is not None:
        index = rule.grand_total_column - 1
        if 0 <= index < len(header) and _matches(header[index]):
            return index
        return None
    for index, value in enumerate(header):
        if _matches(value):
            return index
    return None


def _trim_trailing(row: Sequence[Any]) -> list[Any]:
    values = list(row)
    while values and _is_blank(values[-1]):
        values.pop()
    return values


def clean_grid(grid: Sequence[Sequence[Any]], rule: SheetRule, excluded_prefixes: Sequence[str]) -> Grid:
    """Apply row filtering, grand-total removal and trailing trim to a grid.

    The first row is the header and is never filtered.
    """

    if not grid:
        return []
    header = list(grid[0])
    body = [list(row) for row in grid[1:] if not (row and _is_excluded(row[0], excluded_prefixes))]

    drop = _grand_total_index(header, rule)
    rows = [header, *body]
    if drop is not None:
        rows = [row[:drop] + row[drop + 1:] for row in rows]

    cleaned = [_trim_trailing(row) for row in rows]
    LOGGER.debug(
        "Cleaned sheet %r: rows %d -> %d, grand_total_column=%s",
        rule.source_sheet,
        len(grid),
        len(cleaned),
        None if drop is None else drop + 1,
    )
    return cleaned


def sheet_grid(worksheet: Worksheet) -> Grid:
    return [list(row) for row in worksheet.iter_rows(values_only=True)]


def _write_grid(worksheet: Worksheet, grid: Grid) -> None:
    for row in grid:
        worksheet.append(row)
    if not grid:
        return
    for cell in worksheet[1]:
        if isinstance(cell.value, numbers.Real) and not isinstance(cell.value, bool):
            cell.number_format = HEADER_DATE_FORMAT


def clean_workbook(
    workbook: Workbook,
    layouts: Sequence[RawLayout] = RAW_LAYOUTS,
) -> Workbook | None:
    """Rewrite a raw export into the canonical two-sheet workbook.

    Returns ``None`` when the workbook is not a recognised raw export; the
    input workbook is never modified.
    """

    layout = detect_raw_layout(workbook.sheetnames, layouts)
    if layout is None:
        LOGGER.debug("No raw layout matched sheets %s; cleaning skipped", workbook.sheetnames)
        return None

    cleaned = Workbook()
    for position, rule in enumerate(layout.rules):
        source_name = _match_sheet(workbook.sheetnames, rule.source_sheet)
        grid = clean_grid(sheet_grid(workbook[source_name]), rule, layout.excluded_prefixes)
        if position == 0:
            target = cleaned.active
            target.title = rule.target_sheet
        else:
            target = cleaned.create_sheet(rule.target_sheet)
        _write_grid(target, grid)

    LOGGER.info("Cleaned raw workbook using layout %r -> %s", layout.name, cleaned.sheetnames)
    return cleaned


__all__ = [
    "CANONICAL_DELIVERY_SHEET",
    "CANONICAL_SHOP_SHEET",
    "RAW_LAYOUTS",
    "RawLayout",
    "SheetRule",
    "clean_grid",
    "clean_workbook",
    "detect_raw_layout",
    "sheet_grid",
]
