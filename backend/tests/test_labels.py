import pytest

from edi_outbound.core.errors import ValidationError
from edi_outbound.services.labels import build_label, build_sscc_zpl, human_readable_sscc

SSCC = "376123450000000016"


def test_zpl_contains_barcode_and_text():
    zpl = build_sscc_zpl(SSCC)
    assert zpl.startswith("^XA")
    assert zpl.endswith("^XZ")
    assert f"^FD>;00{SSCC}^FS" in zpl
    assert f"(00) {SSCC}" in zpl


def test_label_description(make_order):
    order = make_order()
    label = build_label(f"(00) {SSCC}", order)
    assert label.container_id == SSCC
    assert label.human_readable == human_readable_sscc(SSCC)
    assert label.to_dict()["order_ref"] == "GX-1001"


def test_invalid_sscc_is_rejected():
    with pytest.raises(ValidationError):
        build_sscc_zpl("376123450000000017")
