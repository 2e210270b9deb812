# invoice_import.py
"""
Spreadsheet import: rows with InvoiceNo/Client/Date/Description/Qty/Price
columns become invoices, one per distinct InvoiceNo.

Import is destructive. The resulting collection replaces whatever the store
held before; callers decide whether to ask the user first.
"""
from __future__ import annotations

import csv
import zipfile
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app_errors import SpreadsheetReadError, UnsupportedFileTypeError
from app_logging import get_logger
from invoice_model import DEFAULT_TAX_RATE, Invoice, LineItem, normalize_date, to_number
from invoice_store import InvoiceCollection

logger = get_logger(__name__)

# Column names are matched exactly, case included.
COL_INVOICE_NO = "InvoiceNo"
COL_CLIENT = "Client"
COL_DATE = "Date"
COL_DESCRIPTION = "Description"
COL_QTY = "Qty"
COL_PRICE = "Price"
COLUMNS = (COL_INVOICE_NO, COL_CLIENT, COL_DATE, COL_DESCRIPTION, COL_QTY, COL_PRICE)

WORKBOOK_TYPES = (".xlsx", ".xlsm")
CSV_TYPES = (".csv",)
SUPPORTED_TYPES = WORKBOOK_TYPES + CSV_TYPES

# Fallback for missing or non-numeric Qty/Price cells. The row is kept.
NUMERIC_FALLBACK = 0.0


# ---------- Cell helpers ----------
def _cell_text(value: Any) -> str:
    """Cell -> trimmed text. Whole floats lose their '.0' so 1001 stays '1001'."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


# ---------- Parse ----------
def parse(rows: Iterable[Mapping[str, Any]]) -> InvoiceCollection:
    """
    Group rows by InvoiceNo, keeping the order in which keys first appear.
    The first row of a group supplies client and date; every row adds one
    line item. Rows without an InvoiceNo share the "" group.
    """
    groups: Dict[str, List[Mapping[str, Any]]] = {}
    for row in rows:
        key = _cell_text(row.get(COL_INVOICE_NO))
        groups.setdefault(key, []).append(row)

    invoices = []
    for key, group in groups.items():
        head = group[0]
        items = tuple(
            LineItem(
                description=_cell_text(r.get(COL_DESCRIPTION)),
                quantity=to_number(r.get(COL_QTY), NUMERIC_FALLBACK),
                unit_price=to_number(r.get(COL_PRICE), NUMERIC_FALLBACK),
            )
            for r in group
        )
        invoices.append(Invoice(
            client=_cell_text(head.get(COL_CLIENT)),
            invoice_number=key,
            date=normalize_date(_cell_text(head.get(COL_DATE))),
            tax_rate_percent=DEFAULT_TAX_RATE,  # the sheet carries no tax column
            items=items,
        ))
    return tuple(invoices)


# ---------- Read ----------
def _read_workbook(path: Path) -> List[Dict[str, Any]]:
    try:
        wb = load_workbook(path, read_only=True, data_only=True)
    except (OSError, zipfile.BadZipFile, InvalidFileException, KeyError, ValueError) as e:
        raise SpreadsheetReadError(str(path), str(e)) from e

    try:
        ws = wb.worksheets[0]
        rows = ws.iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            return []
        names = [_cell_text(h) for h in header]
        out: List[Dict[str, Any]] = []
        for values in rows:
            if all(v is None or _cell_text(v) == "" for v in values):
                continue
            out.append({name: value for name, value in zip(names, values) if name})
        return out
    finally:
        wb.close()


def _read_csv(path: Path) -> List[Dict[str, Any]]:
    try:
        with path.open("r", encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            return [
                dict(row) for row in reader
                if any((v or "").strip() for k, v in row.items() if k is not None and isinstance(v, str))
            ]
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise SpreadsheetReadError(str(path), str(e)) from e


def read_rows(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Flat row dicts keyed by the header row of a workbook or CSV file."""
    p = Path(path)
    ext = p.suffix.lower()
    if ext not in SUPPORTED_TYPES:
        raise UnsupportedFileTypeError(ext or p.name, SUPPORTED_TYPES)
    if not p.exists():
        raise SpreadsheetReadError(str(p), "file does not exist")
    if ext in WORKBOOK_TYPES:
        return _read_workbook(p)
    return _read_csv(p)


def import_file(path: Optional[Union[str, Path]]) -> Optional[InvoiceCollection]:
    """
    Read and parse a spreadsheet. No file selected (None or "") returns None
    and touches nothing.
    """
    if not path:
        return None
    rows = read_rows(path)
    invoices = parse(rows)
    logger.info("Imported %d row(s) as %d invoice(s) from %s", len(rows), len(invoices), path)
    return invoices
