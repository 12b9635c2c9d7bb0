"""
Tests for DELR (dispatch notification) rendering and file naming.
"""
import xml.etree.ElementTree as ET
from datetime import date, datetime, timezone

import pytest

from edi_outbound.core.config import SupplierParty
from edi_outbound.core.errors import ValidationError
from edi_outbound.models import Order, OrderLine, Shipment, ShipmentItem
from edi_outbound.services.documents import (
    OPENTRANS_NS,
    build_dispatch_document,
    build_dispatch_notification_id,
    build_doc_number,
    build_edi_filename,
    normalize_order_ref,
    resolve_carrier,
)

NS = {"o": OPENTRANS_NS}
SHIPPED = datetime(2026, 10, 19, 14, 25, 1, tzinfo=timezone.utc)


def _order():
    return Order(
        id=1,
        order_ref="GX-1001",
        order_date=date(2026, 10, 1),
        customer_name="Digitec Galaxus AG",
        recipient_name="Max Muster",
        recipient_address1="Pfingstweidstrasse 60b",
        recipient_postal_code="8005",
        recipient_city="Zurich",
        recipient_country="CH",
    )


def _shipment(**overrides):
    fields = dict(
        id=7,
        order_id=1,
        sequence_index=0,
        container_id="376123450000000016",
        dispatch_notification_id="GDN-20261019-142501-GX1001-P1",
        shipped_at=SHIPPED,
        total_quantity=12,
    )
    fields.update(overrides)
    return Shipment(**fields)


def _items(**overrides):
    fields = dict(
        shipment_id=7,
        order_id=1,
        order_line_id=1,
        line_number=1,
        supplier_item_id="SKU-A",
        gtin="7612345000011",
        quantity=12,
    )
    fields.update(overrides)
    return [ShipmentItem(**fields)]


def _lines():
    return [OrderLine(id=1, order_id=1, line_number=1, supplier_item_id="SKU-A", gtin="7612345000011",
                      product_name="Air Max 90", quantity=14)]


class TestNaming:
    def test_doc_number(self):
        assert build_doc_number("GDN", SHIPPED) == "GDN-20261019-142501"

    def test_dispatch_notification_id(self):
        assert build_dispatch_notification_id("GDN-20261019-142501", "GX-1001", 0) == (
            "GDN-20261019-142501-GX1001-P1"
        )
        assert build_dispatch_notification_id("GDN-20261019-142501", "GX-1001", 1, revision=2) == (
            "GDN-20261019-142501-GX1001-P2-R2"
        )

    def test_order_ref_without_usable_characters(self):
        with pytest.raises(ValidationError):
            normalize_order_ref("--//")

    def test_filename(self):
        assert build_edi_filename("DELR", "SUP1", "GDN-20261019-142501-GX1001-P1") == (
            "GDELR_SUP1_GDN-20261019-142501-GX1001-P1.xml"
        )

    def test_filename_sanitizes_and_requires_supplier(self):
        assert build_edi_filename("DELR", "SUP 1/x", "A:B") == "GDELR_SUP_1_x_A_B.xml"
        with pytest.raises(ValidationError):
            build_edi_filename("DELR", "", "X")


class TestResolveCarrier:
    def test_allowed(self):
        assert resolve_carrier(" Post ", ["Post", "DPD"]) == "Post"

    def test_not_allowed_or_no_list(self):
        assert resolve_carrier("eurosender", ["Post"]) is None
        assert resolve_carrier("Post", []) is None
        assert resolve_carrier(None, ["Post"]) is None


class TestBuildDispatchDocument:
    def test_filename_and_package_id(self):
        payload = build_dispatch_document(_order(), _lines(), _shipment(), _items(), "SUP1")
        assert payload.doc_type == "DELR"
        assert payload.filename == "GDELR_SUP1_GDN-20261019-142501-GX1001-P1.xml"

        root = ET.fromstring(payload.data)
        assert root.tag == f"{{{OPENTRANS_NS}}}DISPATCHNOTIFICATION"
        info = root.find("o:DISPATCHNOTIFICATION_HEADER/o:DISPATCHNOTIFICATION_INFO", NS)
        assert info.findtext("o:DISPATCHNOTIFICATION_ID", namespaces=NS) == "GDN-20261019-142501-GX1001-P1"
        assert info.findtext("o:DISPATCHNOTIFICATION_DATE", namespaces=NS) == "2026-10-19T14:25:01Z"
        assert info.findtext("o:SHIPMENT/o:PACKAGE_ID", namespaces=NS) == "376123450000000016"

        items = root.findall("o:DISPATCHNOTIFICATION_ITEM_LIST/o:DISPATCHNOTIFICATION_ITEM", NS)
        assert len(items) == 1
        item = items[0]
        assert item.findtext("o:PRODUCT_ID/o:SUPPLIER_PID", namespaces=NS) == "SKU-A"
        assert item.findtext("o:PRODUCT_ID/o:INTERNATIONAL_PID", namespaces=NS) == "7612345000011"
        assert item.findtext("o:QUANTITY", namespaces=NS) == "12"
        assert item.findtext("o:DESCRIPTION_SHORT", namespaces=NS) == "Air Max 90"
        assert item.findtext(
            "o:LOGISTIC_DETAILS/o:PACKAGE_INFO/o:PACKAGE/o:PACKAGE_ID", namespaces=NS
        ) == "376123450000000016"

    def test_rebuild_is_identical(self):
        first = build_dispatch_document(_order(), _lines(), _shipment(), _items(), "SUP1")
        second = build_dispatch_document(_order(), _lines(), _shipment(), _items(), "SUP1")
        assert first == second

    def test_carrier_and_supplier(self):
        supplier = SupplierParty(name="Sneaker Supply AG", street="Bahnhofstrasse 1", postal_code="8001",
                                 city="Zurich", country="CH")
        payload = build_dispatch_document(
            _order(), _lines(), _shipment(tracking_number="99.00.123"), _items(), "SUP1",
            supplier=supplier, carrier="Post",
        )
        root = ET.fromstring(payload.data)
        shipment = root.find("o:DISPATCHNOTIFICATION_HEADER/o:DISPATCHNOTIFICATION_INFO/o:SHIPMENT", NS)
        assert shipment.findtext("o:CARRIER", namespaces=NS) == "Post"
        assert shipment.findtext("o:TRACKING_NUMBER", namespaces=NS) == "99.00.123"
        names = [n.text for n in root.iter(f"{{{OPENTRANS_NS}}}NAME")]
        assert "Sneaker Supply AG" in names

    def test_no_carrier_element_when_unresolved(self):
        payload = build_dispatch_document(_order(), _lines(), _shipment(), _items(), "SUP1", carrier=None)
        assert "<CARRIER>" not in payload.content

    def test_missing_gtin(self):
        with pytest.raises(ValidationError) as exc:
            build_dispatch_document(_order(), _lines(), _shipment(), _items(gtin=""), "SUP1")
        assert exc.value.line_number == 1

    def test_missing_container_id(self):
        with pytest.raises(ValidationError):
            build_dispatch_document(_order(), _lines(), _shipment(container_id=""), _items(), "SUP1")

    def test_no_items(self):
        with pytest.raises(ValidationError):
            build_dispatch_document(_order(), _lines(), _shipment(), [], "SUP1")
