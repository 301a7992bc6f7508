import copy

from lookahead.cleaning import (
    CANONICAL_DELIVERY_SHEET,
    CANONICAL_SHOP_SHEET,
    HEADER_DATE_FORMAT,
    RAW_LAYOUTS,
    SheetRule,
    clean_grid,
    clean_workbook,
    detect_raw_layout,
    sheet_grid,
)
from lookahead.pipeline import ingest_workbook
from lookahead.pivot import Observation

PREFIXES = RAW_LAYOUTS[0].excluded_prefixes


def test_layout_detection_tolerates_spacing_and_case():
    assert detect_raw_layout(["expected_issue RAW", "loading-raw"]) is RAW_LAYOUTS[0]
    assert detect_raw_layout(["Expected Issue Raw"]) is None
    assert detect_raw_layout(["Expected Issue", "Loading"]) is None


def test_raw_export_is_rewritten_to_canonical_sheets(make_workbook, raw_export_sheets):
    workbook = make_workbook(raw_export_sheets)

    cleaned = clean_workbook(workbook)

    assert cleaned is not None
    assert cleaned.sheetnames == [CANONICAL_SHOP_SHEET, CANONICAL_DELIVERY_SHEET]
    assert sheet_grid(cleaned[CANONICAL_SHOP_SHEET]) == [
        ["Project", 45292, 45299],
        ["Alpha", 10, 5],
        ["Beta", None, 2],
    ]
    assert sheet_grid(cleaned[CANONICAL_DELIVERY_SHEET]) == [
        ["Project", 45292, 45299],
        ["Alpha", 3, None],
    ]
    header = cleaned[CANONICAL_SHOP_SHEET][1]
    assert header[0].number_format != HEADER_DATE_FORMAT
    assert header[1].number_format == HEADER_DATE_FORMAT


def test_cleaning_leaves_the_source_workbook_alone(make_workbook, raw_export_sheets):
    workbook = make_workbook(raw_export_sheets)
    before = {name: sheet_grid(workbook[name]) for name in workbook.sheetnames}

    clean_workbook(workbook)

    assert {name: sheet_grid(workbook[name]) for name in workbook.sheetnames} == before


def test_canonical_workbook_is_not_cleaned(make_workbook):
    workbook = make_workbook(
        {
            "Loading": [["Project", "2024-01-01"], ["Alpha", 3]],
            "Expected Issue": [["Project", "2024-01-01"], ["Total", 10]],
        }
    )
    before = {name: sheet_grid(workbook[name]) for name in workbook.sheetnames}

    assert clean_workbook(workbook) is None
    assert workbook.sheetnames == ["Loading", "Expected Issue"]
    assert {name: sheet_grid(workbook[name]) for name in workbook.sheetnames} == before


def test_header_row_is_never_filtered():
    grid = [["Total", 45292], ["Total tons", 1], ["Alpha", 2]]
    assert clean_grid(grid, SheetRule("x", "y"), PREFIXES) == [["Total", 45292], ["Alpha", 2]]


def test_prefix_matching_is_case_insensitive():
    grid = [["Project", 45292], ["grand total", 9], ["stk-001", 1], ["(Blank)", 2], ["Alpha", 3]]
    assert clean_grid(grid, SheetRule("x", "y"), PREFIXES) == [["Project", 45292], ["Alpha", 3]]


def test_fixed_grand_total_column_is_only_dropped_when_labelled():
    rule = SheetRule("x", "y", grand_total_column=2)
    drifted = [["Project", 45292, "Grand Total"], ["Alpha", 1, 1]]
    assert clean_grid(drifted, rule, PREFIXES) == drifted


def test_clean_grid_is_pure():
    grid = [["Project", "Grand Total", 45292, None], ["Alpha", 4, 4, None], ["Total", 4, 4, None]]
    snapshot = copy.deepcopy(grid)
    rule = SheetRule("x", "y", grand_total_column=2)

    first = clean_grid(grid, rule, PREFIXES)
    second = clean_grid(grid, rule, PREFIXES)

    assert first == second == [["Project", 45292], ["Alpha", 4]]
    assert grid == snapshot
    assert clean_grid([], rule, PREFIXES) == []


def test_cleaned_export_feeds_the_normalizer(make_workbook, raw_export_sheets):
    ingested = ingest_workbook(make_workbook(raw_export_sheets))

    assert ingested.tables.cleaned
    assert ingested.tables.shop_sheet == CANONICAL_SHOP_SHEET
    assert ingested.tables.delivery_sheet == CANONICAL_DELIVERY_SHEET
    assert ingested.shop.observations == (
        Observation("Alpha", "2024-01-01", 10.0),
        Observation("Alpha", "2024-01-08", 5.0),
        Observation("Beta", "2024-01-08", 2.0),
    )
    assert ingested.delivery.observations == (Observation("Alpha", "2024-01-01", 3.0),)
