# invoice_export.py
"""
PDF export, two ways:

* tabular: every invoice laid out from its data, one multi-page file for the
  whole collection, a fresh page per invoice;
* snapshot: a raster image of one rendered invoice scaled onto a single page,
  one file per invoice.
"""
from __future__ import annotations

import io
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from fpdf import FPDF, XPos, YPos

import settings
from app_errors import ExportError, ExportTargetNotFoundError, InvoiceDeskError
from app_logging import get_logger
from invoice_model import (
    Invoice,
    format_money,
    format_rate,
    grand_total,
    line_total,
    subtotal,
    tax_amount,
)
from invoice_store import InvoiceCollection, index_of

logger = get_logger(__name__)

FONT_FAMILY      = 'Helvetica'
MAX_FONT_PT      = 12
MIN_FONT_PT      = 8
LEFT_MARGIN_MM   = 15
TOP_MARGIN_MM    = 20
BOTTOM_MARGIN_MM = 15
PT_TO_MM         = 0.35

ITEM_HEADERS    = ["Description", "Qty", "Unit Price", "Line Total"]
ITEM_COL_WIDTHS = [90, 20, 35, 35]
ITEM_ALIGN      = ['L', 'R', 'R', 'R']


# ---------- Helpers ----------
def format_qty(qty: float) -> str:
    return f"{qty:g}"


def pdf_text(s: str) -> str:
    """Core fonts are latin-1 only; anything outside it prints as '?'."""
    return s.encode("latin-1", "replace").decode("latin-1")


def _new_pdf(page_format: Optional[str] = None) -> FPDF:
    pdf = FPDF(format=page_format or str(settings.get("pdf.page_format", "A4")))
    pdf.set_auto_page_break(False)
    pdf.set_margins(LEFT_MARGIN_MM, TOP_MARGIN_MM, LEFT_MARGIN_MM)
    return pdf


def _line_h(pt: float) -> float:
    return pt * PT_TO_MM * 1.4


def _choose_font_pt(row_count: int, page_h: float) -> float:
    """Largest size that fits header + items + totals on one page, else MIN_FONT_PT."""
    usable = page_h - TOP_MARGIN_MM - BOTTOM_MARGIN_MM
    for pt in range(MAX_FONT_PT, MIN_FONT_PT - 1, -1):
        if (row_count + 12) * _line_h(pt) < usable:
            return pt
    return MIN_FONT_PT


def _draw_header(pdf: FPDF, col_widths: Sequence[float], headers: Sequence[str], row_h: float, pt: float):
    pdf.set_x(LEFT_MARGIN_MM)
    pdf.set_font(FONT_FAMILY, 'B', pt)
    pdf.set_fill_color(200, 220, 255)
    for w, h in zip(col_widths, headers):
        pdf.cell(w, row_h, h, border=1, align='C', fill=True,
                 new_x=XPos.RIGHT, new_y=YPos.TOP)
    pdf.ln(row_h)
    pdf.set_font(FONT_FAMILY, '', pt)
    pdf.set_fill_color(245, 245, 245)


def _ensure_room_or_new_page(pdf: FPDF, needed_h: float, redraw_header_cb=None):
    """If not enough vertical space for needed_h, start a new page (and redraw header)."""
    if pdf.get_y() + needed_h > pdf.h - BOTTOM_MARGIN_MM:
        pdf.add_page()
        pdf.set_y(TOP_MARGIN_MM)
        if redraw_header_cb is not None:
            redraw_header_cb()


def paginate_table(pdf: FPDF, rows, col_widths, headers, pt: float, alignments=None):
    """
    Single-line cells with the header repeated on every continuation page.
    Text wider than its cell is shrunk down to MIN_FONT_PT.
    """
    row_h = _line_h(pt)
    if alignments is None:
        alignments = ['L'] * len(col_widths)

    def redraw_header():
        _draw_header(pdf, col_widths, headers, row_h, pt)

    redraw_header()
    fill = True
    for row in rows:
        _ensure_room_or_new_page(pdf, row_h, redraw_header)

        pdf.set_x(LEFT_MARGIN_MM)
        for w, cell, alg in zip(col_widths, row, alignments):
            text_w = pdf.get_string_width(cell)
            if text_w > w - 2:
                scale = (w - 2) / max(1e-6, text_w)
                pdf.set_font(FONT_FAMILY, '', max(MIN_FONT_PT, pt * scale))
            else:
                pdf.set_font(FONT_FAMILY, '', pt)
            pdf.cell(w, row_h, cell, border=1, align=alg, fill=fill,
                     new_x=XPos.RIGHT, new_y=YPos.TOP)
        pdf.set_font(FONT_FAMILY, '', pt)
        pdf.ln(row_h)
        fill = not fill


def uniquify_path(p: Path) -> Path:
    """
    If 'p' exists, return 'p' with ' (n)' inserted before the suffix,
    counting up until a free name is found.
    Example: foo.pdf -> foo.pdf, foo (1).pdf, foo (2).pdf, ...
    """
    parent, stem, suffix = p.parent, p.stem, p.suffix or ".pdf"
    candidate = parent / f"{stem}{suffix}"
    n = 1
    while candidate.exists():
        candidate = parent / f"{stem} ({n}){suffix}"
        n += 1
    return candidate


def _safe_name(name: str) -> str:
    # keep letters, numbers, dot, space, underscore, dash, brackets
    s = re.sub(r"[^A-Za-z0-9 ._\-\[\]()]", "", name).strip()
    return s or "invoice.pdf"


def batch_filename() -> str:
    return _safe_name(str(settings.get("pdf.batch_filename", "invoices.pdf")))


def snapshot_filename(position: int) -> str:
    """
    Applies settings.pdf.snapshot_filename_template.
    Supported vars: {position} (1-based place of the invoice in the list)
    """
    template = str(settings.get("pdf.snapshot_filename_template", "invoice_{position}.pdf"))
    try:
        name = template.format(position=position)
    except (KeyError, IndexError, ValueError):
        name = f"invoice_{position}.pdf"
    return _safe_name(name)


def _write_pdf(pdf: FPDF, out: Path) -> None:
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        pdf.output(str(out))
    except OSError as e:
        raise ExportError(f"Could not write {out}: {e}", {"path": str(out)}) from e


# ---------- Tabular export ----------
def _draw_invoice(pdf: FPDF, inv: Invoice, thousands: bool):
    pt = _choose_font_pt(len(inv.items), pdf.h)
    row_h = _line_h(pt)

    def money(v: float) -> str:
        return format_money(v, thousands)

    pdf.set_y(TOP_MARGIN_MM)
    pdf.set_font(FONT_FAMILY, 'B', pt + 6)
    pdf.cell(0, row_h * 2, "Invoice", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(row_h / 2)

    pdf.set_font(FONT_FAMILY, '', pt)
    for label, value in (
        ("Client:", inv.client),
        ("Invoice No:", inv.invoice_number),
        ("Date:", inv.date),
        ("Tax Rate:", format_rate(inv.tax_rate_percent)),
    ):
        pdf.set_font(FONT_FAMILY, 'B', pt)
        pdf.cell(30, row_h, label, new_x=XPos.RIGHT, new_y=YPos.TOP)
        pdf.set_font(FONT_FAMILY, '', pt)
        pdf.cell(0, row_h, pdf_text(value), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(row_h)

    rows = [
        [pdf_text(it.description), format_qty(it.quantity), money(it.unit_price), money(line_total(it))]
        for it in inv.items
    ]
    paginate_table(pdf, rows, ITEM_COL_WIDTHS, ITEM_HEADERS, pt, ITEM_ALIGN)
    pdf.ln(row_h / 2)

    # totals, right-aligned under the Line Total column
    w_label = sum(ITEM_COL_WIDTHS[:-1])
    w_value = ITEM_COL_WIDTHS[-1]
    totals = [
        ("Subtotal", money(subtotal(inv.items)), ''),
        (f"Tax ({format_rate(inv.tax_rate_percent)})", money(tax_amount(inv)), ''),
        ("GRAND TOTAL", money(grand_total(inv)), 'B'),
    ]
    _ensure_room_or_new_page(pdf, row_h * len(totals))
    for label, value, style in totals:
        pdf.set_font(FONT_FAMILY, style or 'B', pt)
        pdf.set_x(LEFT_MARGIN_MM)
        pdf.cell(w_label, row_h, label, border=1, align='R',
                 new_x=XPos.RIGHT, new_y=YPos.TOP)
        pdf.set_font(FONT_FAMILY, style, pt)
        pdf.cell(w_value, row_h, value, border=1, align='R',
                 new_x=XPos.LMARGIN, new_y=YPos.NEXT)


def build_tabular_pdf(invoices: InvoiceCollection, page_format: Optional[str] = None,
                      thousands: Optional[bool] = None) -> FPDF:
    if not invoices:
        raise ExportError("There are no invoices to export")
    if thousands is None:
        thousands = bool(settings.get("pdf.thousand_separators", True))
    pdf = _new_pdf(page_format)
    for inv in invoices:
        pdf.add_page()
        _draw_invoice(pdf, inv, thousands)
    return pdf


def export_tabular(invoices: InvoiceCollection, out_path: Union[str, Path],
                   page_format: Optional[str] = None, thousands: Optional[bool] = None) -> Path:
    """Write every invoice into one PDF, a new page per invoice. Returns the path."""
    out = Path(out_path)
    pdf = build_tabular_pdf(invoices, page_format, thousands)
    _write_pdf(pdf, out)
    logger.info("Exported %d invoice(s) over %d page(s) to %s", len(invoices), pdf.page_no(), out)
    return out


def export_all(invoices: InvoiceCollection, out_dir: Union[str, Path]) -> Path:
    """Batch export under the configured file name, never overwriting."""
    return export_tabular(invoices, uniquify_path(Path(out_dir) / batch_filename()))


# ---------- Snapshot export ----------
@dataclass(frozen=True)
class Snapshot:
    """PNG bytes of one rendered invoice plus its pixel size."""
    image: bytes
    width: int
    height: int


# Given an invoice id, returns that invoice's rendered snapshot. Raises
# ExportTargetNotFoundError when nothing on screen shows that invoice.
SnapshotRenderer = Callable[[str], Snapshot]


def fit_to_page(width_px: int, height_px: int, content_w: float, content_h: float) -> Tuple[float, float]:
    """
    Scale to the content width keeping the aspect ratio; shrink further if
    that makes the image taller than the page.
    """
    if width_px <= 0 or height_px <= 0:
        raise ExportError("Snapshot has no size", {"width": width_px, "height": height_px})
    w = content_w
    h = content_w * height_px / width_px
    if h > content_h:
        h = content_h
        w = content_h * width_px / height_px
    return w, h


def build_snapshot_pdf(snapshot: Snapshot, page_format: Optional[str] = None) -> FPDF:
    pdf = _new_pdf(page_format)
    pdf.add_page()
    content_w = pdf.w - 2 * LEFT_MARGIN_MM
    content_h = pdf.h - TOP_MARGIN_MM - BOTTOM_MARGIN_MM
    w, h = fit_to_page(snapshot.width, snapshot.height, content_w, content_h)
    try:
        pdf.image(io.BytesIO(snapshot.image), x=LEFT_MARGIN_MM, y=TOP_MARGIN_MM, w=w, h=h)
    except (OSError, ValueError) as e:
        # Pillow's UnidentifiedImageError is an OSError
        raise ExportError(f"Snapshot image could not be read: {e}", {"size": len(snapshot.image)}) from e
    return pdf


def export_snapshot(snapshot: Snapshot, out_path: Union[str, Path], page_format: Optional[str] = None) -> Path:
    out = Path(out_path)
    pdf = build_snapshot_pdf(snapshot, page_format)
    _write_pdf(pdf, out)
    return out


def export_invoice_snapshot(invoices: InvoiceCollection, invoice_id: str,
                            renderer: SnapshotRenderer, out_dir: Union[str, Path]) -> Path:
    """
    Render one invoice, then write it as invoice_<position>.pdf. The target
    is looked up by id; the position only names the file.
    """
    position = index_of(invoices, invoice_id)
    if position < 0:
        raise ExportTargetNotFoundError(invoice_id)
    snapshot = renderer(invoice_id)
    out = uniquify_path(Path(out_dir) / snapshot_filename(position + 1))
    export_snapshot(snapshot, out)
    logger.info("Exported snapshot of invoice %d to %s", position + 1, out)
    return out


def export_snapshots(invoices: InvoiceCollection, renderer: SnapshotRenderer,
                     out_dir: Union[str, Path]) -> Tuple[List[Path], Dict[str, InvoiceDeskError]]:
    """
    One snapshot PDF per invoice. A failure is recorded against that
    invoice's id and the rest carry on.
    """
    written: List[Path] = []
    failed: Dict[str, InvoiceDeskError] = {}
    for inv in invoices:
        try:
            written.append(export_invoice_snapshot(invoices, inv.invoice_id, renderer, out_dir))
        except InvoiceDeskError as e:
            logger.error("Snapshot export failed for invoice %s: %s", inv.invoice_id, e)
            failed[inv.invoice_id] = e
    return written, failed
