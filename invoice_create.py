# invoice_create.py
"""
Invoice editor widgets. Every card edits one invoice through the store and
redraws itself from the store's snapshots, never from its own widget state.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from PySide6.QtCore import Qt, QBuffer, QByteArray, QIODevice, QUrl
from PySide6.QtGui import QDesktopServices
from PySide6.QtWidgets import (
    QWidget, QGroupBox, QVBoxLayout, QHBoxLayout, QFormLayout, QLabel, QLineEdit,
    QComboBox, QPushButton, QTableWidget, QTableWidgetItem, QMessageBox, QScrollArea,
    QHeaderView,
)

import settings
from app_errors import ExportTargetNotFoundError, InvoiceDeskError
from app_logging import get_logger
from invoice_export import Snapshot, export_invoice_snapshot
from invoice_model import (
    TAX_RATES, Invoice, format_money, grand_total, line_total, normalize_date,
    subtotal, tax_amount,
)
from invoice_store import InvoiceCollection, InvoiceStore

logger = get_logger(__name__)

ITEM_COLUMNS = ["Description", "Qty", "Unit Price", "Line Total"]


# ---------- Helpers ----------
def money_text(value: float) -> str:
    symbol = str(settings.get("ui.currency_symbol", ""))
    thousands = bool(settings.get("pdf.thousand_separators", True))
    return f"{symbol} {format_money(value, thousands)}".strip()


def export_dir() -> Path:
    try:
        return settings.get_export_dir(create=True)
    except OSError:
        return Path.home()


def show_saved(parent: QWidget, paths: List[Path]) -> None:
    """'Saved' box with buttons to open the file (single export) or its folder."""
    if not paths:
        return
    msg = QMessageBox(parent)
    msg.setIcon(QMessageBox.Information)
    msg.setWindowTitle("PDF saved")
    msg.setText("Saved to:\n" + "\n".join(str(p) for p in paths))
    btn_open = msg.addButton("Open PDF", QMessageBox.AcceptRole) if len(paths) == 1 else None
    btn_folder = msg.addButton("Open Folder", QMessageBox.ActionRole)
    msg.addButton("Close", QMessageBox.RejectRole)
    msg.exec()

    clicked = msg.clickedButton()
    target: Optional[Path] = None
    if btn_open is not None and clicked == btn_open:
        target = paths[0]
    elif clicked == btn_folder:
        target = paths[0].parent
    if target is None:
        return
    if sys.platform.startswith('win'):
        os.startfile(str(target))  # type: ignore[attr-defined]
    else:
        QDesktopServices.openUrl(QUrl.fromLocalFile(str(target)))


# ---------- One invoice ----------
class InvoiceCard(QGroupBox):
    def __init__(self, store: InvoiceStore, invoice_id: str, on_snapshot):
        super().__init__()
        self.store = store
        self.invoice_id = invoice_id
        self._suppress = False

        v = QVBoxLayout(self)
        form = QFormLayout()
        self.client_in = QLineEdit(); self.client_in.setPlaceholderText("Client Name")
        self.number_in = QLineEdit(); self.number_in.setPlaceholderText("Invoice Number")
        self.date_in = QLineEdit(); self.date_in.setPlaceholderText("YYYY-MM-DD")
        self.tax_in = QComboBox()
        for rate in TAX_RATES:
            self.tax_in.addItem(f"{rate}%", rate)
        form.addRow("Client:", self.client_in)
        form.addRow("Invoice No:", self.number_in)
        form.addRow("Date:", self.date_in)
        form.addRow("Tax rate:", self.tax_in)
        v.addLayout(form)

        self.table = QTableWidget(0, len(ITEM_COLUMNS))
        self.table.setHorizontalHeaderLabels(ITEM_COLUMNS)
        self.table.horizontalHeader().setSectionResizeMode(0, QHeaderView.Stretch)
        self.table.verticalHeader().setVisible(False)
        v.addWidget(self.table)

        row = QHBoxLayout()
        self.btn_add_item = QPushButton("+ Add Item")
        self.btn_remove_item = QPushButton("Remove Item")
        self.btn_snapshot = QPushButton("Export PDF (snapshot)")
        self.btn_remove = QPushButton("Remove Invoice")
        row.addWidget(self.btn_add_item)
        row.addWidget(self.btn_remove_item)
        row.addStretch(1)
        row.addWidget(self.btn_snapshot)
        row.addWidget(self.btn_remove)
        v.addLayout(row)

        self.totals_lbl = QLabel("")
        self.totals_lbl.setAlignment(Qt.AlignRight)
        v.addWidget(self.totals_lbl)

        # wiring
        self.client_in.editingFinished.connect(lambda: self._save_field("client", self.client_in.text()))
        self.number_in.editingFinished.connect(lambda: self._save_field("invoice_number", self.number_in.text()))
        self.date_in.editingFinished.connect(self._save_date)
        self.tax_in.currentIndexChanged.connect(self._save_tax)
        self.table.itemChanged.connect(self.on_item_changed)
        self.btn_add_item.clicked.connect(self.add_item)
        self.btn_remove_item.clicked.connect(self.remove_item)
        self.btn_remove.clicked.connect(self.remove_invoice)
        self.btn_snapshot.clicked.connect(lambda: on_snapshot(self.invoice_id))

    # --- store access ---
    @property
    def index(self) -> int:
        return self.store.index_of(self.invoice_id)

    def _save_field(self, field: str, value):
        if self._suppress or self.index < 0:
            return
        inv = self.store.invoices[self.index]
        if getattr(inv, field) == value:
            return
        self.store.update_invoice_field(self.index, field, value)

    def _save_date(self):
        self._save_field("date", normalize_date(self.date_in.text()))

    def _save_tax(self, *_):
        self._save_field("tax_rate_percent", self.tax_in.currentData())

    def add_item(self):
        self.store.add_item(self.index)

    def remove_item(self):
        rows = sorted({i.row() for i in self.table.selectedIndexes()}, reverse=True)
        if not rows:
            rows = [self.table.rowCount() - 1]
        for r in rows:
            self.store.remove_item(self.index, r)

    def remove_invoice(self):
        res = QMessageBox.question(
            self, "Remove invoice?", "Remove this invoice and all its items?",
            QMessageBox.Yes | QMessageBox.No, QMessageBox.No,
        )
        if res == QMessageBox.Yes:
            self.store.remove_invoice(self.index)

    def on_item_changed(self, item: QTableWidgetItem):
        if self._suppress or self.index < 0:
            return
        row, col = item.row(), item.column()
        inv = self.store.invoices[self.index]
        if row < 0 or row >= len(inv.items) or col > 2:
            return
        text = item.text().strip()
        if col == 0:
            self.store.update_item_field(self.index, row, "description", text)
            return
        field = "quantity" if col == 1 else "unit_price"
        try:
            val = float(text)
        except ValueError:
            label = "Quantity" if col == 1 else "Unit price"
            QMessageBox.warning(self, "Validation", f"{label} must be a number.")
            self.sync(self.index, inv)
            return
        self.store.update_item_field(self.index, row, field, val)

    # --- redraw ---
    def sync(self, position: int, inv: Invoice):
        self._suppress = True
        try:
            self.setTitle(f"Invoice {position + 1}")
            for w, text in ((self.client_in, inv.client), (self.number_in, inv.invoice_number),
                            (self.date_in, inv.date)):
                if w.text() != text:
                    w.setText(text)
            self.tax_in.setCurrentIndex(max(0, self.tax_in.findData(inv.tax_rate_percent)))

            self.table.setRowCount(len(inv.items))
            for r, it in enumerate(inv.items):
                cells = [it.description, f"{it.quantity:g}", f"{it.unit_price:g}",
                         format_money(line_total(it))]
                for c, text in enumerate(cells):
                    cell = QTableWidgetItem(text)
                    if c > 0:
                        cell.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)
                    if c == 3:
                        cell.setFlags(cell.flags() & ~Qt.ItemIsEditable)
                    self.table.setItem(r, c, cell)

            self.totals_lbl.setText(
                f"Subtotal: {money_text(subtotal(inv.items))}    |    "
                f"Tax: {money_text(tax_amount(inv))}    |    "
                f"Total: <b>{money_text(grand_total(inv))}</b>"
            )
        finally:
            self._suppress = False


# ---------- Rendering capability ----------
class WidgetSnapshotRenderer:
    """Grabs the card currently showing an invoice as a PNG snapshot."""

    def __init__(self, editor: "InvoiceEditor"):
        self.editor = editor

    def __call__(self, invoice_id: str) -> Snapshot:
        card = self.editor.cards.get(invoice_id)
        if card is None:
            raise ExportTargetNotFoundError(invoice_id)
        pixmap = card.grab()
        data = QByteArray()
        buf = QBuffer(data)
        buf.open(QIODevice.WriteOnly)
        pixmap.save(buf, "PNG")
        buf.close()
        return Snapshot(image=data.data(), width=pixmap.width(), height=pixmap.height())


# ---------- All invoices ----------
class InvoiceEditor(QWidget):
    def __init__(self, store: InvoiceStore):
        super().__init__()
        self.store = store
        self.cards: Dict[str, InvoiceCard] = {}
        self.renderer = WidgetSnapshotRenderer(self)

        outer = QVBoxLayout(self)
        outer.setContentsMargins(0, 0, 0, 0)
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        self.container = QWidget()
        self.list_layout = QVBoxLayout(self.container)
        self.list_layout.addStretch(1)
        scroll.setWidget(self.container)
        outer.addWidget(scroll)

        self.empty_lbl = QLabel("No invoices. Add one or import a spreadsheet.")
        self.empty_lbl.setAlignment(Qt.AlignCenter)
        self.list_layout.insertWidget(0, self.empty_lbl)

        self.store.subscribe(self.refresh)
        self.refresh(self.store.invoices)

    def refresh(self, invoices: InvoiceCollection):
        ids = [inv.invoice_id for inv in invoices]
        if ids != list(self.cards):
            self._rebuild(ids)
        for position, inv in enumerate(invoices):
            self.cards[inv.invoice_id].sync(position, inv)
        self.empty_lbl.setVisible(not invoices)

    def _rebuild(self, ids: List[str]):
        old = self.cards
        self.cards = {}
        for invoice_id in ids:
            card = old.pop(invoice_id, None)
            if card is None:
                card = InvoiceCard(self.store, invoice_id, self.export_snapshot)
            self.list_layout.removeWidget(card)
            self.cards[invoice_id] = card
        for card in old.values():
            self.list_layout.removeWidget(card)
            card.deleteLater()
        # stretch stays last
        for i, card in enumerate(self.cards.values()):
            self.list_layout.insertWidget(i + 1, card)

    def export_snapshot(self, invoice_id: str):
        try:
            out = export_invoice_snapshot(self.store.invoices, invoice_id, self.renderer, export_dir())
        except InvoiceDeskError as e:
            logger.error("Snapshot export failed: %s", e)
            QMessageBox.critical(self, "Error", f"Failed to generate PDF:\n{e.message}")
            return
        show_saved(self, [out])
