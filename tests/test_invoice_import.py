"""Spreadsheet rows -> invoices."""

from __future__ import annotations

from datetime import datetime

import pytest
from openpyxl import Workbook

from app_errors import SpreadsheetReadError, UnsupportedFileTypeError
from invoice_import import COLUMNS, import_file, parse, read_rows
from invoice_model import LineItem, grand_total, subtotal, tax_amount


SCENARIO_ROWS = [
    {"InvoiceNo": "A1", "Client": "Acme", "Date": "2024-01-01", "Description": "Widget", "Qty": 2, "Price": 10},
    {"InvoiceNo": "A1", "Description": "Gadget", "Qty": 1, "Price": 5},
]


def _create_excel(path, rows):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(list(COLUMNS))
    for row in rows:
        sheet.append(row)
    workbook.save(path)


def test_scenario_single_invoice_two_items():
    (inv,) = parse(SCENARIO_ROWS)
    assert inv.client == "Acme"
    assert inv.invoice_number == "A1"
    assert inv.date == "2024-01-01"
    assert inv.items == (LineItem("Widget", 2, 10), LineItem("Gadget", 1, 5))
    assert inv.tax_rate_percent == 18
    assert subtotal(inv.items) == 25
    assert tax_amount(inv) == 4.5
    assert grand_total(inv) == 29.5


def test_empty_import_gives_no_invoices():
    assert parse([]) == ()


def test_groups_follow_first_seen_order():
    rows = [
        {"InvoiceNo": "B", "Description": "b1"},
        {"InvoiceNo": "A", "Description": "a1"},
        {"InvoiceNo": "B", "Description": "b2"},
        {"InvoiceNo": "C", "Description": "c1"},
        {"InvoiceNo": "A", "Description": "a2"},
        {"InvoiceNo": "B", "Description": "b3"},
    ]
    invoices = parse(rows)
    assert [inv.invoice_number for inv in invoices] == ["B", "A", "C"]
    assert [len(inv.items) for inv in invoices] == [3, 2, 1]
    assert [it.description for it in invoices[0].items] == ["b1", "b2", "b3"]


def test_later_rows_do_not_override_client_or_date():
    rows = [
        {"InvoiceNo": "X", "Client": "First", "Date": "2024-02-01"},
        {"InvoiceNo": "X", "Client": "Second", "Date": "2024-03-01"},
    ]
    (inv,) = parse(rows)
    assert (inv.client, inv.date) == ("First", "2024-02-01")


def test_missing_key_forms_empty_group():
    rows = [
        {"Client": "NoKey", "Description": "a"},
        {"InvoiceNo": "", "Description": "b"},
        {"InvoiceNo": None, "Description": "c"},
        {"InvoiceNo": "K", "Description": "d"},
    ]
    invoices = parse(rows)
    assert [inv.invoice_number for inv in invoices] == ["", "K"]
    assert invoices[0].client == "NoKey"
    assert len(invoices[0].items) == 3


def test_bad_numbers_become_zero_and_row_is_kept():
    rows = [
        {"InvoiceNo": "Z", "Description": "no qty", "Price": 5},
        {"InvoiceNo": "Z", "Description": "text", "Qty": "lots", "Price": "cheap"},
    ]
    (inv,) = parse(rows)
    assert inv.items == (LineItem("no qty", 0, 5), LineItem("text", 0, 0))


def test_numeric_invoice_numbers_become_text():
    (inv,) = parse([{"InvoiceNo": 1001.0, "Description": "x", "Qty": 1, "Price": 1}])
    assert inv.invoice_number == "1001"


def test_read_workbook(tmp_path):
    path = tmp_path / "invoices.xlsx"
    _create_excel(path, [
        ["A1", "Acme", datetime(2024, 1, 1), "Widget", 2, 10],
        [None, None, None, None, None, None],
        ["A1", None, None, "Gadget", 1, 5.5],
        ["B2", "Beta", "2024-02-02", "Service", "x", 100],
    ])
    rows = read_rows(path)
    assert len(rows) == 3
    invoices = parse(rows)
    assert [inv.invoice_number for inv in invoices] == ["A1", "B2"]
    assert invoices[0].date == "2024-01-01"
    assert invoices[0].items[1] == LineItem("Gadget", 1, 5.5)
    assert invoices[1].items == (LineItem("Service", 0, 100),)


def test_read_csv(tmp_path):
    path = tmp_path / "invoices.csv"
    path.write_text(
        "InvoiceNo,Client,Date,Description,Qty,Price\n"
        "A1,Acme,2024-01-01,Widget,2,10\n"
        ",,,,,\n"
        "A1,,,Gadget,1,5\n",
        encoding="utf-8",
    )
    invoices = import_file(path)
    assert len(invoices) == 1
    assert subtotal(invoices[0].items) == 25


def test_csv_dates_match_workbook_dates(tmp_path):
    path = tmp_path / "us_dates.csv"
    path.write_text(
        "InvoiceNo,Client,Date,Description,Qty,Price\n"
        "A1,Acme,1/2/2024,Widget,2,10\n"
        "B2,Beta,sometime,Service,1,1\n",
        encoding="utf-8",
    )
    a1, b2 = import_file(path)
    assert a1.date == "2024-01-02"
    assert b2.date == "sometime"


def test_column_names_are_case_sensitive(tmp_path):
    path = tmp_path / "lower.csv"
    path.write_text("invoiceno,client,description,qty,price\nA1,Acme,Widget,2,10\n", encoding="utf-8")
    (inv,) = import_file(path)
    assert inv.invoice_number == ""
    assert inv.items == (LineItem("", 0, 0),)


def test_no_file_selected_is_noop():
    assert import_file(None) is None
    assert import_file("") is None


def test_unsupported_type(tmp_path):
    path = tmp_path / "invoices.txt"
    path.write_text("hello", encoding="utf-8")
    with pytest.raises(UnsupportedFileTypeError):
        read_rows(path)


def test_corrupt_workbook(tmp_path):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"this is not a zip file")
    with pytest.raises(SpreadsheetReadError):
        read_rows(path)


def test_missing_file(tmp_path):
    with pytest.raises(SpreadsheetReadError):
        read_rows(tmp_path / "nope.csv")
