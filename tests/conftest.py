import pytest
from openpyxl import Workbook


def build_workbook(sheets):
    """Build an in-memory workbook from ``{sheet_name: [row, ...]}``."""
    workbook = Workbook()
    first = True
    for name, rows in sheets.items():
        if first:
            worksheet = workbook.active
            worksheet.title = name
            first = False
        else:
            worksheet = workbook.create_sheet(name)
        for row in rows:
            worksheet.append(list(row))
    return workbook


@pytest.fixture
def make_workbook():
    """Factory fixture wrapping :func:`build_workbook`."""
    return build_workbook


@pytest.fixture
def shop_rows():
    return [{"Project": "Alpha", "2024-01-01": 10, "2024-01-08": 5}]


@pytest.fixture
def delivery_rows():
    return [{"Project": "Alpha", "2024-01-01": 3}]


@pytest.fixture
def raw_export_sheets():
    """A raw ERP export: subtotal rows, code rows and Grand Total columns."""
    return {
        "Expected Issue Raw": [
            ["Project", "Grand Total", 45292, 45299],
            ["Alpha", 15, 10, 5],
            ["OH-Overheads", 4, 2, 2],
            ["Beta", 2, None, 2, None],
            ["Total", 17, 10, 7],
            ["Grand Total", 21, 12, 9],
        ],
        "Loading Raw": [
            ["Project", 45292, 45299, "Grand Total"],
            ["Alpha", 3, None, 3],
            ["Sum of Tons", 3, None, 3],
            ["ZZ-Unallocated", 1, 1, 2],
        ],
    }
