# invoice_store.py
"""
The invoice store: one ordered collection of invoices, edited copy-on-write
and written through to a local key-value file after every change.

The module-level functions are pure: they take a collection (a tuple of
Invoice) and return a new one, never touching their input. InvoiceStore
owns the current collection, applies those functions, persists, and tells
subscribers about the new snapshot.
"""
from __future__ import annotations

import json
import os
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from app_errors import InvalidFieldError
from app_logging import get_logger
from invoice_model import (
    Invoice,
    LineItem,
    blank_item,
    coerce_tax_rate,
    default_invoice,
    new_invoice_id,
    to_number,
)

logger = get_logger(__name__)

InvoiceCollection = Tuple[Invoice, ...]
Listener = Callable[[InvoiceCollection], None]

INVOICES_KEY = "bulkinvoice.invoices"

INVOICE_FIELDS = ("client", "invoice_number", "date", "tax_rate_percent")
ITEM_FIELDS = ("description", "quantity", "unit_price")


# ---- durable key-value slot ---------------------------------------------------

class LocalStorage:
    """
    Flat {key: string} map kept in one JSON file, written atomically.
    An unreadable or corrupt file reads as empty.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Local storage %s unreadable, treating as empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Local storage %s is not a key-value map, treating as empty", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix="bi_storage_", suffix=".json", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        finally:
            if os.path.exists(tmp):
                os.remove(tmp)

    def get_item(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)


# ---- JSON codec -----------------------------------------------------------------

def _item_to_dict(item: LineItem) -> Dict[str, Any]:
    return {"description": item.description, "quantity": item.quantity, "unitPrice": item.unit_price}


def _invoice_to_dict(inv: Invoice) -> Dict[str, Any]:
    return {
        "id": inv.invoice_id,
        "client": inv.client,
        "invoiceNumber": inv.invoice_number,
        "date": inv.date,
        "taxRatePercent": inv.tax_rate_percent,
        "items": [_item_to_dict(it) for it in inv.items],
    }


def dumps(collection: InvoiceCollection) -> str:
    return json.dumps([_invoice_to_dict(inv) for inv in collection], ensure_ascii=False)


def _require(obj: Dict[str, Any], key: str, kinds) -> Any:
    if key not in obj:
        raise ValueError(f"missing '{key}'")
    value = obj[key]
    if isinstance(value, bool) or not isinstance(value, kinds):
        raise ValueError(f"'{key}' has the wrong type")
    return value


def _finite(obj: Dict[str, Any], key: str) -> float:
    value = _require(obj, key, (int, float))
    if value != value or value in (float("inf"), float("-inf")):
        raise ValueError(f"'{key}' is not finite")
    return value


def _item_from_dict(raw: Any) -> LineItem:
    if not isinstance(raw, dict):
        raise ValueError("item is not an object")
    return LineItem(
        description=_require(raw, "description", str),
        quantity=_finite(raw, "quantity"),
        unit_price=_finite(raw, "unitPrice"),
    )


def _invoice_from_dict(raw: Any) -> Invoice:
    if not isinstance(raw, dict):
        raise ValueError("invoice is not an object")
    raw_items = _require(raw, "items", list)
    items = tuple(_item_from_dict(it) for it in raw_items) or (blank_item(),)
    invoice_id = raw.get("id")
    if not isinstance(invoice_id, str) or not invoice_id:
        invoice_id = new_invoice_id()
    return Invoice(
        client=_require(raw, "client", str),
        invoice_number=_require(raw, "invoiceNumber", str),
        date=_require(raw, "date", str),
        tax_rate_percent=coerce_tax_rate(_require(raw, "taxRatePercent", (int, float))),
        items=items,
        invoice_id=invoice_id,
    )


def loads(text: str) -> InvoiceCollection:
    """Strict decode; any structural problem raises ValueError."""
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError("invoice collection is not a list")
    return tuple(_invoice_from_dict(raw) for raw in data)


# ---- load / persist ---------------------------------------------------------------

def load(storage: Optional[LocalStorage], key: str = INVOICES_KEY) -> InvoiceCollection:
    """
    Persisted collection, or a single default invoice when nothing usable is
    stored. Corrupt data is logged, never raised.
    """
    if storage is None:
        return (default_invoice(),)
    text = storage.get_item(key)
    if text is None:
        return (default_invoice(),)
    try:
        return loads(text)
    except ValueError as e:
        logger.warning("Stored invoices are malformed, starting fresh: %s", e)
        return (default_invoice(),)


def persist(storage: Optional[LocalStorage], collection: InvoiceCollection, key: str = INVOICES_KEY) -> bool:
    """Best-effort write of the whole collection. Returns False when the write failed."""
    if storage is None:
        return False
    try:
        storage.set_item(key, dumps(collection))
    except OSError as e:
        logger.error("Could not persist %d invoice(s) to %s: %s", len(collection), storage.path, e)
        return False
    return True


# ---- copy-on-write operations ------------------------------------------------------

def _in_range(index: int, size: int) -> bool:
    return 0 <= index < size


def _swap(collection: InvoiceCollection, index: int, inv: Invoice) -> InvoiceCollection:
    return collection[:index] + (inv,) + collection[index + 1:]


def index_of(collection: InvoiceCollection, invoice_id: str) -> int:
    """Position of the invoice with this id, -1 when absent."""
    for i, inv in enumerate(collection):
        if inv.invoice_id == invoice_id:
            return i
    return -1


def add_invoice(collection: InvoiceCollection) -> InvoiceCollection:
    return collection + (default_invoice(),)


def remove_invoice(collection: InvoiceCollection, index: int) -> InvoiceCollection:
    """Out-of-range index is a no-op. Removing the last invoice leaves an empty collection."""
    if not _in_range(index, len(collection)):
        return collection
    return collection[:index] + collection[index + 1:]


def update_invoice_field(collection: InvoiceCollection, index: int, field: str, value: Any) -> InvoiceCollection:
    if field not in INVOICE_FIELDS:
        raise InvalidFieldError(field, value, "not an invoice field")
    if not _in_range(index, len(collection)):
        return collection
    if field == "tax_rate_percent":
        try:
            value = coerce_tax_rate(value)
        except ValueError as e:
            raise InvalidFieldError(field, value, str(e)) from e
    else:
        value = "" if value is None else str(value)
    return _swap(collection, index, replace(collection[index], **{field: value}))


def add_item(collection: InvoiceCollection, invoice_index: int) -> InvoiceCollection:
    if not _in_range(invoice_index, len(collection)):
        return collection
    inv = collection[invoice_index]
    return _swap(collection, invoice_index, replace(inv, items=inv.items + (blank_item(),)))


def remove_item(collection: InvoiceCollection, invoice_index: int, item_index: int) -> InvoiceCollection:
    """Removing the only item puts one blank item back; invoices never hold zero items."""
    if not _in_range(invoice_index, len(collection)):
        return collection
    inv = collection[invoice_index]
    if not _in_range(item_index, len(inv.items)):
        return collection
    items = inv.items[:item_index] + inv.items[item_index + 1:]
    return _swap(collection, invoice_index, replace(inv, items=items or (blank_item(),)))


def update_item_field(
    collection: InvoiceCollection, invoice_index: int, item_index: int, field: str, value: Any
) -> InvoiceCollection:
    if field not in ITEM_FIELDS:
        raise InvalidFieldError(field, value, "not a line item field")
    if not _in_range(invoice_index, len(collection)):
        return collection
    inv = collection[invoice_index]
    if not _in_range(item_index, len(inv.items)):
        return collection
    if field == "description":
        value = "" if value is None else str(value)
    else:
        value = to_number(value, 0.0)
    item = replace(inv.items[item_index], **{field: value})
    items = inv.items[:item_index] + (item,) + inv.items[item_index + 1:]
    return _swap(collection, invoice_index, replace(inv, items=items))


# ---- owned store ------------------------------------------------------------------

class InvoiceStore:
    """
    Holder of the current collection. All edits go through here: each one
    builds the next collection, assigns it whole, writes it through to
    storage and notifies subscribers if anything changed.
    """

    def __init__(
        self,
        storage: Optional[LocalStorage] = None,
        invoices: Optional[InvoiceCollection] = None,
        key: str = INVOICES_KEY,
    ):
        self.storage = storage
        self.key = key
        self._invoices: InvoiceCollection = tuple(invoices) if invoices is not None else (default_invoice(),)
        self._listeners: List[Listener] = []

    @classmethod
    def open(cls, storage: Optional[LocalStorage], key: str = INVOICES_KEY) -> "InvoiceStore":
        return cls(storage, load(storage, key), key)

    @property
    def invoices(self) -> InvoiceCollection:
        return self._invoices

    def __len__(self) -> int:
        return len(self._invoices)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register for new snapshots; returns a function that unsubscribes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, new: InvoiceCollection) -> InvoiceCollection:
        changed = new is not self._invoices
        self._invoices = new
        persist(self.storage, new, self.key)
        if changed:
            for listener in list(self._listeners):
                listener(new)
        return new

    def persist(self) -> bool:
        return persist(self.storage, self._invoices, self.key)

    def index_of(self, invoice_id: str) -> int:
        return index_of(self._invoices, invoice_id)

    def add_invoice(self) -> InvoiceCollection:
        return self._commit(add_invoice(self._invoices))

    def remove_invoice(self, index: int) -> InvoiceCollection:
        return self._commit(remove_invoice(self._invoices, index))

    def update_invoice_field(self, index: int, field: str, value: Any) -> InvoiceCollection:
        return self._commit(update_invoice_field(self._invoices, index, field, value))

    def add_item(self, invoice_index: int) -> InvoiceCollection:
        return self._commit(add_item(self._invoices, invoice_index))

    def remove_item(self, invoice_index: int, item_index: int) -> InvoiceCollection:
        return self._commit(remove_item(self._invoices, invoice_index, item_index))

    def update_item_field(self, invoice_index: int, item_index: int, field: str, value: Any) -> InvoiceCollection:
        return self._commit(update_item_field(self._invoices, invoice_index, item_index, field, value))

    def replace_all(self, collection: InvoiceCollection) -> InvoiceCollection:
        """Wholesale replacement, used by spreadsheet import."""
        logger.info("Replacing %d invoice(s) with %d", len(self._invoices), len(collection))
        return self._commit(tuple(collection))
