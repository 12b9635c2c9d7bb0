"""
Delivery state of outbound documents.

One ``outbound_document`` row per file name, written with an upsert, so a
crashed-and-retried run updates the row it already created instead of
adding a second message.  State per document::

    PENDING ──ok──▶ UPLOADED
       │
       └──fail──▶ ERROR ──retry──▶ PENDING …

An ``UPLOADED`` document is skipped unless the caller forces a resend.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, select

from edi_outbound.core.config import Settings
from edi_outbound.core.errors import NotFoundError, TransportError
from edi_outbound.models import (
    DocumentStatus,
    Order,
    OrderLine,
    OutboundDocument,
    Shipment,
    ShipmentItem,
)
from edi_outbound.models.order import utcnow
from edi_outbound.services.documents import OutboundPayload, build_dispatch_document, resolve_carrier
from edi_outbound.services.transfer import ClientFactory, deliver, target_directory

logger = logging.getLogger(__name__)

UPLOADED = "uploaded"
SKIPPED = "skipped"
ERROR = "error"


@dataclass
class DeliveryResult:
    shipment_id: int
    status: str
    filename: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


# --------------------------------------------------------------------------- #
# document rows                                                               #
# --------------------------------------------------------------------------- #
def get_document(session: Session, filename: str) -> OutboundDocument | None:
    return session.exec(select(OutboundDocument).where(OutboundDocument.filename == filename)).first()


def upsert_document(
    session: Session,
    *,
    filename: str,
    status: DocumentStatus,
    doc_type: str = "DELR",
    order_ref: str | None = None,
    order_id: int | None = None,
    shipment_id: int | None = None,
    error_message: str | None = None,
    sent_at: datetime | None = None,
    new_attempt: bool = False,
) -> None:
    """Insert or update the row keyed by *filename* (commits)."""
    now = utcnow()
    values = {
        "filename": filename,
        "doc_type": doc_type,
        "direction": "OUT",
        "order_ref": order_ref,
        "order_id": order_id,
        "shipment_id": shipment_id,
        "status": status.value,
        "attempts": 1 if new_attempt else 0,
        "error_message": error_message,
        "sent_at": sent_at,
        "created_at": now,
        "updated_at": now,
    }
    update_set = {
        "status": status.value,
        "error_message": error_message,
        "updated_at": now,
    }
    if sent_at is not None:
        update_set["sent_at"] = sent_at
    if new_attempt:
        update_set["attempts"] = OutboundDocument.attempts + 1
    for key in ("order_ref", "order_id", "shipment_id"):
        if values[key] is not None:
            update_set[key] = values[key]

    dialect = session.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert(OutboundDocument).values(**values).on_conflict_do_update(
            index_elements=["filename"], set_=update_set
        )
        session.execute(stmt)
    else:
        # Other dialects: read-modify-write inside the caller's transaction
        row = get_document(session, filename)
        if row is None:
            session.add(OutboundDocument(**values))
        else:
            for key, value in update_set.items():
                if key == "attempts":
                    value = (row.attempts or 0) + 1
                setattr(row, key, value)
            session.add(row)
    session.commit()


def should_skip(session: Session, filename: str, force: bool = False) -> bool:
    if force:
        return False
    doc = get_document(session, filename)
    return doc is not None and doc.status == DocumentStatus.UPLOADED.value


# --------------------------------------------------------------------------- #
# state transitions (document row + shipment mirror)                          #
# --------------------------------------------------------------------------- #
def _mirror(session: Session, shipment: Shipment, **fields) -> None:
    for key, value in fields.items():
        setattr(shipment, key, value)
    session.add(shipment)


def record_pending(session: Session, shipment: Shipment, order: Order, payload: OutboundPayload) -> None:
    _mirror(session, shipment, document_filename=payload.filename, delivery_status=DocumentStatus.PENDING.value)
    upsert_document(
        session,
        filename=payload.filename,
        doc_type=payload.doc_type,
        status=DocumentStatus.PENDING,
        order_ref=order.order_ref,
        order_id=order.id,
        shipment_id=shipment.id,
        new_attempt=True,
    )


def record_uploaded(session: Session, shipment: Shipment, order: Order, payload: OutboundPayload) -> None:
    sent_at = utcnow()
    _mirror(
        session,
        shipment,
        document_filename=payload.filename,
        delivery_status=DocumentStatus.UPLOADED.value,
        delivery_error=None,
        sent_at=sent_at,
    )
    upsert_document(
        session,
        filename=payload.filename,
        doc_type=payload.doc_type,
        status=DocumentStatus.UPLOADED,
        order_ref=order.order_ref,
        order_id=order.id,
        shipment_id=shipment.id,
        sent_at=sent_at,
    )


def record_error(
    session: Session, shipment: Shipment, order: Order, payload: OutboundPayload, message: str
) -> None:
    _mirror(session, shipment, delivery_status=DocumentStatus.ERROR.value, delivery_error=message)
    upsert_document(
        session,
        filename=payload.filename,
        doc_type=payload.doc_type,
        status=DocumentStatus.ERROR,
        order_ref=order.order_ref,
        order_id=order.id,
        shipment_id=shipment.id,
        error_message=message,
    )


# --------------------------------------------------------------------------- #
# one shipment                                                                #
# --------------------------------------------------------------------------- #
def load_shipment_bundle(
    session: Session, shipment_id: int
) -> tuple[Shipment, Order, list[OrderLine], list[ShipmentItem]]:
    shipment = session.get(Shipment, shipment_id)
    if shipment is None:
        raise NotFoundError(f"Shipment {shipment_id} not found")
    order = session.get(Order, shipment.order_id)
    if order is None:
        raise NotFoundError(f"Order {shipment.order_id} of shipment {shipment_id} not found")
    lines = list(
        session.exec(
            select(OrderLine).where(OrderLine.order_id == order.id).order_by(OrderLine.line_number)
        ).all()
    )
    items = list(
        session.exec(
            select(ShipmentItem).where(ShipmentItem.shipment_id == shipment.id).order_by(ShipmentItem.id)
        ).all()
    )
    return shipment, order, lines, items


def _render(settings: Settings, shipment, order, lines, items) -> OutboundPayload:
    return build_dispatch_document(
        order,
        lines,
        shipment,
        items,
        settings.supplier_id,
        supplier=settings.supplier,
        carrier=resolve_carrier(shipment.carrier, settings.carrier_allowlist),
    )


def deliver_shipment_document(
    session: Session,
    shipment_id: int,
    client_factory: ClientFactory,
    settings: Settings,
    *,
    force: bool = False,
) -> DeliveryResult:
    """Build and upload the DELR of one shipment.

    ``ValidationError`` / ``NotFoundError`` propagate.  Transport failures are
    recorded as ``ERROR`` and returned as an ``error`` result.
    """
    shipment, order, lines, items = load_shipment_bundle(session, shipment_id)
    payload = _render(settings, shipment, order, lines, items)

    if should_skip(session, payload.filename, force):
        logger.info("DELR %s for shipment %s already sent; skipping", payload.filename, shipment_id)
        return DeliveryResult(shipment_id, SKIPPED, payload.filename, "already sent")

    record_pending(session, shipment, order, payload)
    try:
        with client_factory() as client:
            deliver(client, target_directory(settings), payload.filename, payload.content)
    except TransportError as exc:
        logger.warning("DELR upload failed for shipment %s (%s): %s", shipment_id, payload.filename, exc)
        record_error(session, shipment, order, payload, str(exc))
        return DeliveryResult(shipment_id, ERROR, payload.filename, str(exc))

    record_uploaded(session, shipment, order, payload)
    logger.info("DELR %s uploaded for shipment %s", payload.filename, shipment_id)
    return DeliveryResult(shipment_id, UPLOADED, payload.filename)


__all__ = [
    "DeliveryResult",
    "UPLOADED",
    "SKIPPED",
    "ERROR",
    "deliver_shipment_document",
    "get_document",
    "load_shipment_bundle",
    "record_error",
    "record_pending",
    "record_uploaded",
    "should_skip",
    "upsert_document",
]
