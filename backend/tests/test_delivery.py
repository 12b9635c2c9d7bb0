"""
Tests for the delivery state tracker.
"""
import pytest
from sqlmodel import select

from edi_outbound.core.errors import NotFoundError
from edi_outbound.models import DocumentStatus, OutboundDocument
from edi_outbound.services.delivery import (
    deliver_shipment_document,
    get_document,
    should_skip,
    upsert_document,
)
from edi_outbound.services.pipeline import create_shipments_for_order
from edi_outbound.services.transfer import LocalDirectoryClient


class TestUpsertDocument:
    def test_one_row_per_filename(self, session):
        upsert_document(session, filename="a.xml", status=DocumentStatus.PENDING, new_attempt=True)
        upsert_document(session, filename="a.xml", status=DocumentStatus.ERROR, error_message="boom")
        upsert_document(session, filename="a.xml", status=DocumentStatus.PENDING, new_attempt=True)

        rows = session.exec(select(OutboundDocument)).all()
        assert len(rows) == 1
        assert rows[0].status == "PENDING"
        assert rows[0].attempts == 2
        assert rows[0].error_message is None

    def test_keeps_links_when_not_given(self, session, make_order):
        order = make_order()
        upsert_document(session, filename="a.xml", status=DocumentStatus.PENDING,
                        order_ref=order.order_ref, order_id=order.id)
        upsert_document(session, filename="a.xml", status=DocumentStatus.UPLOADED)
        doc = get_document(session, "a.xml")
        assert (doc.order_ref, doc.order_id, doc.status) == ("GX-1001", order.id, "UPLOADED")

    def test_should_skip(self, session):
        assert not should_skip(session, "a.xml")
        upsert_document(session, filename="a.xml", status=DocumentStatus.ERROR)
        assert not should_skip(session, "a.xml")
        upsert_document(session, filename="a.xml", status=DocumentStatus.UPLOADED)
        assert should_skip(session, "a.xml")
        assert not should_skip(session, "a.xml", force=True)


class TestDeliverShipmentDocument:
    def test_unknown_shipment(self, session, settings):
        with pytest.raises(NotFoundError):
            deliver_shipment_document(session, 999, LocalDirectoryClient, settings)

    def test_mirrors_state_on_shipment(self, session, settings, outbox, make_order):
        order = make_order(lines=[("SKU-A", "7612345000011", 3)])
        shipment = create_shipments_for_order(session, order.id, settings).shipments[0]

        result = deliver_shipment_document(session, shipment.id, LocalDirectoryClient, settings)

        session.refresh(shipment)
        assert result.to_dict() == {
            "shipment_id": shipment.id,
            "status": "uploaded",
            "filename": shipment.document_filename,
            "message": None,
        }
        assert shipment.delivery_status == "UPLOADED"
        assert shipment.sent_at is not None
        assert (outbox / shipment.document_filename).exists()
