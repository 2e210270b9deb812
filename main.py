# main.py
import sys
from pathlib import Path

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
    QPushButton, QLabel, QStackedWidget, QFormLayout, QLineEdit,
    QCheckBox, QFileDialog, QComboBox, QMessageBox
)

# Modules
import settings
from app_errors import InvoiceDeskError
from app_logging import get_logger, setup_logger_from_settings
from invoice_create import InvoiceEditor, export_dir, money_text, show_saved
from invoice_export import export_all, export_snapshots
from invoice_import import SUPPORTED_TYPES, import_file
from invoice_model import summarize
from invoice_store import InvoiceStore, LocalStorage, INVOICES_KEY

logger = get_logger(__name__)


# ---------- Reusable header with Back ----------
class Header(QWidget):
    def __init__(self, title: str, on_back):
        super().__init__()
        h = QHBoxLayout(self)
        lbl = QLabel(title)
        lbl.setStyleSheet("font-size:18px; font-weight:600;")
        back = QPushButton("⟵ Back to Invoices")
        back.clicked.connect(on_back)
        h.addWidget(lbl, 1)
        h.addWidget(back, 0, Qt.AlignRight)


# ---------- Dashboard ----------
class Dashboard(QWidget):
    """Title, live count/revenue figures and the collection-wide actions."""

    def __init__(self, store: InvoiceStore, on_add, on_import, on_export_all, on_snapshots, on_settings):
        super().__init__()
        v = QVBoxLayout(self)

        title = QLabel("Bulk Invoice Handling System")
        title.setStyleSheet("font-size:22px; font-weight:700;")
        v.addWidget(title)

        stats = QHBoxLayout()
        self.count_lbl = QLabel("")
        self.revenue_lbl = QLabel("")
        for lbl in (self.count_lbl, self.revenue_lbl):
            lbl.setStyleSheet("font-size:16px;")
            stats.addWidget(lbl)
        stats.addStretch(1)
        v.addLayout(stats)
        v.addSpacing(8)

        row = QHBoxLayout()
        btn_add = QPushButton("➕  Add Invoice")
        btn_import = QPushButton("📥  Import Spreadsheet")
        btn_export = QPushButton("🖨️  Print / Download All")
        btn_snaps = QPushButton("🖼️  Snapshot Each")
        btn_settings = QPushButton("⚙️  Settings")
        for b in (btn_add, btn_import, btn_export, btn_snaps, btn_settings):
            b.setMinimumHeight(40)
            row.addWidget(b)
        v.addLayout(row)

        btn_add.clicked.connect(on_add)
        btn_import.clicked.connect(on_import)
        btn_export.clicked.connect(on_export_all)
        btn_snaps.clicked.connect(on_snapshots)
        btn_settings.clicked.connect(on_settings)

        store.subscribe(self.update_summary)
        self.update_summary(store.invoices)

    def update_summary(self, invoices):
        s = summarize(invoices)
        self.count_lbl.setText(f"Invoices: <b>{s.invoice_count}</b>")
        self.revenue_lbl.setText(f"    Total revenue: <b>{money_text(s.total_revenue)}</b>")


# ---------- Settings page (reads/writes settings.py) ----------
class SettingsPage(QWidget):
    def __init__(self, on_back):
        super().__init__()
        self._guard = False  # suppress feedback loops while initializing

        v = QVBoxLayout(self)
        v.addWidget(Header("Settings", on_back))
        v.addSpacing(8)

        form = QFormLayout()

        # General: export folder
        h = QHBoxLayout()
        self.in_export_dir = QLineEdit()
        self.in_export_dir.setReadOnly(True)
        btn_pick = QPushButton("Choose…")
        h.addWidget(self.in_export_dir, 1)
        h.addWidget(btn_pick)
        form.addRow("Export folder:", h)

        # PDF: batch file name
        self.in_batch_name = QLineEdit()
        form.addRow("Batch PDF name:", self.in_batch_name)

        # PDF: per-invoice file name
        self.sel_snapshot_template = QComboBox()
        self.sel_snapshot_template.addItems([
            "invoice_{position}.pdf",
            "invoice-{position}.pdf",
            "snapshot_{position}.pdf",
        ])
        form.addRow("Snapshot file name:", self.sel_snapshot_template)

        # PDF: page format
        self.sel_page_format = QComboBox()
        self.sel_page_format.addItems(["A4", "Letter", "Legal"])
        form.addRow("Page format:", self.sel_page_format)

        # PDF: thousand separators (money only)
        self.chk_thousands = QCheckBox("Use thousand separators for money")
        form.addRow("", self.chk_thousands)

        # UI: import replaces everything
        self.chk_confirm_import = QCheckBox("Ask before an import replaces the current invoices")
        form.addRow("", self.chk_confirm_import)

        v.addLayout(form)
        v.addStretch(1)

        self.load_into_controls()

        # Wire events (save immediately)
        btn_pick.clicked.connect(self._pick_export_dir)
        self.in_batch_name.editingFinished.connect(self._save_batch_name)
        self.sel_snapshot_template.currentTextChanged.connect(self._save_snapshot_template)
        self.sel_page_format.currentTextChanged.connect(self._save_page_format)
        self.chk_thousands.toggled.connect(self._save_thousands)
        self.chk_confirm_import.toggled.connect(self._save_confirm_import)

    # ---- load/save helpers ----
    def load_into_controls(self):
        self._guard = True
        try:
            self.in_export_dir.setText(str(settings.get("general.default_export_dir", "")))
            self.in_batch_name.setText(str(settings.get("pdf.batch_filename", "invoices.pdf")))
            # template: try match one of the options, else insert custom
            current_tpl = str(settings.get("pdf.snapshot_filename_template", "invoice_{position}.pdf"))
            idx = self.sel_snapshot_template.findText(current_tpl)
            if idx == -1:
                self.sel_snapshot_template.insertItem(0, current_tpl)
                idx = 0
            self.sel_snapshot_template.setCurrentIndex(idx)
            self.sel_page_format.setCurrentIndex(
                max(0, self.sel_page_format.findText(str(settings.get("pdf.page_format", "A4"))))
            )
            self.chk_thousands.setChecked(bool(settings.get("pdf.thousand_separators", True)))
            self.chk_confirm_import.setChecked(bool(settings.get("ui.confirm_destructive_import", True)))
        finally:
            self._guard = False

    def _pick_export_dir(self):
        start = self.in_export_dir.text() or str(Path.home())
        chosen = QFileDialog.getExistingDirectory(self, "Choose export folder", start)
        if not chosen:
            return
        self.in_export_dir.setText(chosen)
        settings.set_("general.default_export_dir", chosen)

    def _save_batch_name(self):
        if self._guard: return
        name = self.in_batch_name.text().strip() or "invoices.pdf"
        if not name.lower().endswith(".pdf"):
            name += ".pdf"
        self.in_batch_name.setText(name)
        settings.set_("pdf.batch_filename", name)

    def _save_snapshot_template(self):
        if self._guard: return
        settings.set_("pdf.snapshot_filename_template", self.sel_snapshot_template.currentText())

    def _save_page_format(self):
        if self._guard: return
        settings.set_("pdf.page_format", self.sel_page_format.currentText())

    def _save_thousands(self):
        if self._guard: return
        settings.set_("pdf.thousand_separators", bool(self.chk_thousands.isChecked()))

    def _save_confirm_import(self):
        if self._guard: return
        settings.set_("ui.confirm_destructive_import", bool(self.chk_confirm_import.isChecked()))


# ---------- Editor page ----------
class EditorPage(QWidget):
    def __init__(self, store: InvoiceStore, on_settings):
        super().__init__()
        self.store = store

        v = QVBoxLayout(self)
        v.setContentsMargins(0, 0, 0, 0)
        self.editor = InvoiceEditor(store)
        self.dashboard = Dashboard(
            store,
            on_add=lambda: self.store.add_invoice(),
            on_import=self.import_spreadsheet,
            on_export_all=self.export_all,
            on_snapshots=self.export_snapshots,
            on_settings=on_settings,
        )
        v.addWidget(self.dashboard)
        v.addWidget(self.editor, 1)

    def import_spreadsheet(self):
        patterns = " ".join(f"*{ext}" for ext in SUPPORTED_TYPES)
        path, _ = QFileDialog.getOpenFileName(
            self, "Import spreadsheet", str(Path.home()), f"Spreadsheets ({patterns})"
        )
        if not path:
            return

        if self.store.invoices and settings.get("ui.confirm_destructive_import", True):
            res = QMessageBox.question(
                self,
                "Replace invoices?",
                f"Importing replaces all {len(self.store.invoices)} current invoice(s). Continue?",
                QMessageBox.Yes | QMessageBox.No,
                QMessageBox.No,
            )
            if res != QMessageBox.Yes:
                return

        try:
            invoices = import_file(path)
        except InvoiceDeskError as e:
            logger.error("Import failed: %s", e)
            QMessageBox.critical(self, "Import failed", e.message)
            return
        if invoices is None:
            return
        self.store.replace_all(invoices)
        QMessageBox.information(self, "Imported", f"Imported {len(invoices)} invoice(s).")

    def export_all(self):
        try:
            out = export_all(self.store.invoices, export_dir())
        except InvoiceDeskError as e:
            QMessageBox.critical(self, "Error", f"Failed to generate PDF:\n{e.message}")
            return
        show_saved(self, [out])

    def export_snapshots(self):
        written, failed = export_snapshots(self.store.invoices, self.editor.renderer, export_dir())
        if failed:
            QMessageBox.warning(self, "Some exports failed",
                                "\n".join(e.message for e in failed.values()))
        show_saved(self, written)


# ---------- Shell ----------
class MainWindow(QMainWindow):
    def __init__(self, store: InvoiceStore):
        super().__init__()
        self.setWindowTitle("Bulk Invoice")
        self.resize(1100, 760)

        self.stack = QStackedWidget()
        self.setCentralWidget(self.stack)

        self.page_editor = EditorPage(store, on_settings=lambda: self.stack.setCurrentWidget(self.page_settings))
        self.page_settings = SettingsPage(on_back=lambda: self.stack.setCurrentWidget(self.page_editor))

        for p in (self.page_editor, self.page_settings):
            self.stack.addWidget(p)

        self.stack.setCurrentWidget(self.page_editor)


def open_store() -> InvoiceStore:
    storage = LocalStorage(settings.get_storage_path())
    return InvoiceStore.open(storage, str(settings.get("storage.invoices_key", INVOICES_KEY)))


def main():
    setup_logger_from_settings()
    app = QApplication(sys.argv)
    store = open_store()
    logger.info("Loaded %d invoice(s)", len(store))
    w = MainWindow(store)
    w.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
