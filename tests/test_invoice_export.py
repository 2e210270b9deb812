from __future__ import annotations

import io

import pytest
from PIL import Image

import settings
from app_errors import ExportError, ExportTargetNotFoundError
from invoice_export import (
    Snapshot,
    build_snapshot_pdf,
    build_tabular_pdf,
    export_all,
    export_invoice_snapshot,
    export_snapshots,
    export_tabular,
    fit_to_page,
    snapshot_filename,
    uniquify_path,
)
from invoice_model import Invoice, LineItem


def _invoices(n=2, items_each=2):
    return tuple(
        Invoice(
            client=f"Client {i}",
            invoice_number=f"INV-{i}",
            date="2024-01-01",
            items=tuple(LineItem(f"Item {j}", j + 1, 9.99) for j in range(items_each)),
        )
        for i in range(n)
    )


def _png(width=400, height=200) -> Snapshot:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), "white").save(buf, format="PNG")
    return Snapshot(image=buf.getvalue(), width=width, height=height)


class FakeRenderer:
    def __init__(self, missing=()):
        self.missing = set(missing)
        self.calls = []

    def __call__(self, invoice_id):
        self.calls.append(invoice_id)
        if invoice_id in self.missing:
            raise ExportTargetNotFoundError(invoice_id)
        return _png()


# ---- tabular ----

def test_one_page_per_invoice():
    pdf = build_tabular_pdf(_invoices(3))
    assert pdf.page_no() == 3


def test_long_item_list_continues_on_next_page():
    pdf = build_tabular_pdf(_invoices(1, items_each=150))
    assert pdf.page_no() > 1


def test_non_latin_text_does_not_break_export():
    inv = Invoice(client="Société ₹ 株式会社", items=(LineItem("Ünïcødé ✓", 1, 1),))
    assert build_tabular_pdf((inv,)).page_no() == 1


def test_export_tabular_writes_file(tmp_path):
    out = export_tabular(_invoices(2), tmp_path / "out" / "all.pdf")
    assert out.exists()
    assert out.read_bytes().startswith(b"%PDF")


def test_export_empty_collection_fails(tmp_path):
    with pytest.raises(ExportError):
        export_tabular((), tmp_path / "all.pdf")


def test_export_all_uses_fixed_name_and_never_overwrites(tmp_path):
    first = export_all(_invoices(1), tmp_path)
    second = export_all(_invoices(1), tmp_path)
    assert first.name == "invoices.pdf"
    assert second.name == "invoices (1).pdf"


def test_batch_name_comes_from_settings(tmp_path):
    settings.set_("pdf.batch_filename", "march.pdf")
    assert export_all(_invoices(1), tmp_path).name == "march.pdf"


# ---- snapshot ----

def test_fit_to_page_keeps_aspect_ratio():
    w, h = fit_to_page(1000, 500, content_w=180, content_h=257)
    assert (w, h) == (180, 90)


def test_fit_to_page_shrinks_tall_images():
    w, h = fit_to_page(100, 1000, content_w=180, content_h=250)
    assert h == 250
    assert w == pytest.approx(25)


def test_fit_to_page_rejects_empty_image():
    with pytest.raises(ExportError):
        fit_to_page(0, 10, 180, 250)


def test_snapshot_pdf_is_single_page():
    assert build_snapshot_pdf(_png()).page_no() == 1


def test_snapshot_file_named_by_position(tmp_path):
    invoices = _invoices(3)
    renderer = FakeRenderer()
    out = export_invoice_snapshot(invoices, invoices[1].invoice_id, renderer, tmp_path)
    assert out.name == "invoice_2.pdf"
    assert out.exists()
    assert renderer.calls == [invoices[1].invoice_id]


def test_snapshot_unknown_invoice(tmp_path):
    renderer = FakeRenderer()
    with pytest.raises(ExportTargetNotFoundError):
        export_invoice_snapshot(_invoices(1), "nope", renderer, tmp_path)
    assert renderer.calls == []


def test_snapshot_unresolved_target(tmp_path):
    invoices = _invoices(1)
    with pytest.raises(ExportTargetNotFoundError):
        export_invoice_snapshot(invoices, invoices[0].invoice_id, FakeRenderer(missing=[invoices[0].invoice_id]), tmp_path)
    assert list(tmp_path.iterdir()) == []


def test_export_snapshots_isolates_failures(tmp_path):
    invoices = _invoices(3)
    bad = invoices[1].invoice_id
    written, failed = export_snapshots(invoices, FakeRenderer(missing=[bad]), tmp_path)
    assert [p.name for p in written] == ["invoice_1.pdf", "invoice_3.pdf"]
    assert list(failed) == [bad]


def test_snapshot_filename_template():
    assert snapshot_filename(4) == "invoice_4.pdf"
    settings.set_("pdf.snapshot_filename_template", "snap-{position}.pdf")
    assert snapshot_filename(4) == "snap-4.pdf"
    settings.set_("pdf.snapshot_filename_template", "broken-{nope}.pdf")
    assert snapshot_filename(4) == "invoice_4.pdf"


def test_uniquify_path(tmp_path):
    p = tmp_path / "a.pdf"
    assert uniquify_path(p) == p
    p.write_bytes(b"x")
    assert uniquify_path(p) == tmp_path / "a (1).pdf"


def test_tabular_page_shows_fields_items_and_totals():
    inv = Invoice(
        client="Acme",
        invoice_number="INV-7",
        date="2024-02-01",
        tax_rate_percent=18,
        items=(LineItem("Widget", 2, 10), LineItem("Bolt", 1, 5)),
    )
    pdf = build_tabular_pdf((inv,))
    pdf.compress = False
    data = bytes(pdf.output())
    for text in (b"Acme", b"INV-7", b"2024-02-01", b"18%", b"Widget", b"Bolt",
                 b"10.00", b"20.00", b"5.00", b"Subtotal", b"25.00", b"4.50",
                 b"GRAND TOTAL", b"29.50"):
        assert text in data


def test_export_tabular_unwritable_target(tmp_path):
    blocker = tmp_path / "taken"
    blocker.write_bytes(b"x")
    with pytest.raises(ExportError) as exc:
        export_tabular(_invoices(1), blocker / "out.pdf")
    assert exc.value.details["path"] == str(blocker / "out.pdf")


def test_snapshot_with_unreadable_image():
    with pytest.raises(ExportError):
        build_snapshot_pdf(Snapshot(image=b"not a png", width=10, height=10))


def test_export_snapshots_carries_on_after_bad_image(tmp_path):
    invoices = _invoices(3)
    bad = invoices[1].invoice_id

    def renderer(invoice_id):
        if invoice_id == bad:
            return Snapshot(image=b"not a png", width=10, height=10)
        return _png()

    written, failed = export_snapshots(invoices, renderer, tmp_path)
    assert [p.name for p in written] == ["invoice_1.pdf", "invoice_3.pdf"]
    assert list(failed) == [bad]
    assert isinstance(failed[bad], ExportError)
