"""
Outbound pipeline: order -> shipments -> SSCCs -> DELR -> exchange.

Usage
-----
    from edi_outbound.services.pipeline import run_order_pipeline
    from edi_outbound.services.transfer import transport_factory

    results = run_order_pipeline(session, order_id, transport_factory(settings), settings)

Ordering inside one order:

1. order lines are validated and packed, nothing is allocated before this
   step succeeds;
2. one SSCC per shipment is allocated, then all shipments of the order are
   written in a single transaction;
3. every shipment gets its own DELR, uploaded independently.  A transport
   failure on one shipment is recorded and the loop moves on.

Running the pipeline again for an order that already has shipments reuses
them (no new SSCCs) and only uploads what has not been sent yet.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from edi_outbound.core.config import Settings
from edi_outbound.core.errors import NotFoundError, PipelineError, ValidationError
from edi_outbound.models import DocumentStatus, Order, OrderLine, Shipment, ShipmentItem
from edi_outbound.models.order import utcnow
from edi_outbound.services.delivery import ERROR, DeliveryResult, deliver_shipment_document
from edi_outbound.services.documents import (
    DISPATCH_DOC_PREFIX,
    build_dispatch_notification_id,
    build_doc_number,
)
from edi_outbound.services.labels import build_sscc_zpl
from edi_outbound.services.packing import assert_conservation, pack_order_lines
from edi_outbound.services.sscc import AllocatorConfig, allocate_container_id
from edi_outbound.services.transfer import ClientFactory

logger = logging.getLogger(__name__)

PACKAGE_TYPES = ("PARCEL", "PALLET")


@dataclass
class PackResult:
    order_id: int
    status: str  # "created" | "skipped"
    shipments: list[Shipment] = field(default_factory=list)

    @property
    def shipment_ids(self) -> list[int]:
        return [s.id for s in self.shipments]


# --------------------------------------------------------------------------- #
# lookups                                                                     #
# --------------------------------------------------------------------------- #
def get_order(session: Session, order_key: int | str) -> Order:
    """Resolve an order: an ``int`` is the row id, a ``str`` the partner order reference.

    A reference is never read as an id, even when it is all digits.
    """
    if isinstance(order_key, int):
        order = session.get(Order, order_key)
    else:
        order = session.exec(select(Order).where(Order.order_ref == order_key)).first()
    if order is None:
        raise NotFoundError(f"Order {order_key!r} not found")
    return order


def get_order_lines(session: Session, order_id: int) -> list[OrderLine]:
    return list(
        session.exec(
            select(OrderLine).where(OrderLine.order_id == order_id).order_by(OrderLine.line_number)
        ).all()
    )


def latest_shipments(session: Session, order_id: int) -> list[Shipment]:
    """Shipments of the newest packing revision of *order_id*, in parcel order."""
    revision = session.exec(
        select(func.max(Shipment.revision)).where(Shipment.order_id == order_id)
    ).one()
    if revision is None:
        return []
    return list(
        session.exec(
            select(Shipment)
            .where(Shipment.order_id == order_id, Shipment.revision == revision)
            .order_by(Shipment.sequence_index)
        ).all()
    )


def shipment_items(session: Session, shipment_id: int) -> list[ShipmentItem]:
    return list(
        session.exec(
            select(ShipmentItem).where(ShipmentItem.shipment_id == shipment_id).order_by(ShipmentItem.id)
        ).all()
    )


def validate_order_lines(order: Order, lines: Sequence[OrderLine]) -> None:
    if not lines:
        raise ValidationError(f"Order {order.order_ref} has no lines")
    for line in lines:
        if not line.supplier_item_id:
            raise ValidationError(
                f"Missing supplier item id on line {line.line_number}", line_number=line.line_number
            )
        if not line.gtin:
            raise ValidationError(f"Missing GTIN on line {line.line_number}", line_number=line.line_number)
        if not isinstance(line.quantity, int) or line.quantity <= 0:
            raise ValidationError(
                f"Invalid quantity {line.quantity!r} on line {line.line_number}",
                line_number=line.line_number,
            )


# --------------------------------------------------------------------------- #
# packing + allocation                                                        #
# --------------------------------------------------------------------------- #
def create_shipments_for_order(
    session: Session,
    order_key: int | str,
    settings: Settings,
    *,
    capacity: int | None = None,
    allow_split: bool = True,
    carrier: str | None = None,
    tracking_numbers: Sequence[str] | None = None,
    package_type: str = "PARCEL",
    delivery_type: str | None = None,
    repack: bool = False,
    now: datetime | None = None,
) -> PackResult:
    """Pack an order into shipments and give each one an SSCC.

    Existing shipments are returned unchanged unless *repack* is set, in
    which case a new revision is written next to the old one.
    """
    order = get_order(session, order_key)
    existing = latest_shipments(session, order.id)
    if existing and not repack:
        logger.info("order %s already packed into %d shipment(s)", order.order_ref, len(existing))
        return PackResult(order.id, "skipped", existing)

    package_type = (package_type or "PARCEL").upper()
    if package_type not in PACKAGE_TYPES:
        raise ValidationError(f"package type must be one of {PACKAGE_TYPES}, got {package_type!r}")

    lines = get_order_lines(session, order.id)
    validate_order_lines(order, lines)
    packed = pack_order_lines(lines, capacity or settings.parcel_capacity, allow_split)
    assert_conservation(lines, packed)
    config = AllocatorConfig.from_settings(settings)

    # ---- allocate (each serial commits on its own) ---- #
    container_ids = [allocate_container_id(session, config) for _ in packed]

    # ---- persist all shipments of the revision together ---- #
    revision = existing[0].revision + 1 if existing else 1
    created_at = now or utcnow()
    doc_number = build_doc_number(DISPATCH_DOC_PREFIX, created_at)
    tracking_numbers = list(tracking_numbers or [])
    shipments: list[Shipment] = []
    try:
        for index, (group, sscc) in enumerate(zip(packed, container_ids)):
            shipment = Shipment(
                order_id=order.id,
                revision=revision,
                sequence_index=index,
                container_id=sscc,
                dispatch_notification_id=build_dispatch_notification_id(
                    doc_number, order.order_ref, index, revision
                ),
                carrier=carrier or settings.default_carrier,
                tracking_number=tracking_numbers[index] if index < len(tracking_numbers) else None,
                package_type=package_type,
                delivery_type=delivery_type or order.delivery_type or "warehouse_delivery",
                shipped_at=created_at,
                total_quantity=group.total_quantity,
                label_zpl=build_sscc_zpl(sscc),
                delivery_status=DocumentStatus.PENDING.value,
            )
            session.add(shipment)
            session.flush()
            for packed_item in group.items:
                line = packed_item.line
                session.add(
                    ShipmentItem(
                        shipment_id=shipment.id,
                        order_id=order.id,
                        order_line_id=line.id,
                        line_number=line.line_number,
                        supplier_item_id=line.supplier_item_id,
                        gtin=line.gtin,
                        buyer_item_id=line.buyer_item_id,
                        quantity=packed_item.quantity,
                    )
                )
            shipments.append(shipment)
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        stored = latest_shipments(session, order.id)
        if stored and stored[0].revision == revision:
            # another worker wrote this revision first; its SSCCs win
            logger.warning("order %s packed concurrently; using the stored shipments", order.order_ref)
            return PackResult(order.id, "skipped", stored)
        logger.error("order %s: shipments rejected by the store: %s", order.order_ref, exc.orig)
        raise ValidationError(
            f"Shipments of order {order.order_ref} conflict with stored records: {exc.orig}"
        ) from exc

    for shipment in shipments:
        session.refresh(shipment)
    logger.info(
        "order %s packed into %d shipment(s), revision %d: %s",
        order.order_ref, len(shipments), revision, ", ".join(container_ids),
    )
    return PackResult(order.id, "created", shipments)


# --------------------------------------------------------------------------- #
# end-to-end                                                                  #
# --------------------------------------------------------------------------- #
def run_order_pipeline(
    session: Session,
    order_key: int | str,
    client_factory: ClientFactory,
    settings: Settings,
    *,
    capacity: int | None = None,
    allow_split: bool = True,
    carrier: str | None = None,
    tracking_numbers: Sequence[str] | None = None,
    package_type: str = "PARCEL",
    force: bool = False,
    repack: bool = False,
) -> list[DeliveryResult]:
    """Pack, allocate, render and upload everything for one order.

    Validation, not-found and exhaustion errors propagate before anything is
    uploaded.  Transport problems end up in the per-shipment results.
    """
    settings.validate_transfer()
    pack = create_shipments_for_order(
        session,
        order_key,
        settings,
        capacity=capacity,
        allow_split=allow_split,
        carrier=carrier,
        tracking_numbers=tracking_numbers,
        package_type=package_type,
        repack=repack,
    )
    results = [
        deliver_shipment_document(session, shipment_id, client_factory, settings, force=force)
        for shipment_id in pack.shipment_ids
    ]
    failed = sum(1 for r in results if r.status == ERROR)
    logger.info(
        "pipeline order=%s shipments=%d failed=%d", order_key, len(results), failed
    )
    return results


def resend_failed(
    session: Session,
    client_factory: ClientFactory,
    settings: Settings,
    *,
    limit: int = 100,
) -> list[DeliveryResult]:
    """Retry every shipment whose DELR is in ``ERROR``.

    Shipments belong to different orders here, so a shipment that no longer
    validates is reported as an error result instead of aborting the batch.
    """
    settings.validate_transfer()
    shipment_ids = list(
        session.exec(
            select(Shipment.id)
            .where(Shipment.delivery_status == DocumentStatus.ERROR.value)
            .order_by(Shipment.id)
            .limit(limit)
        ).all()
    )
    results: list[DeliveryResult] = []
    for shipment_id in shipment_ids:
        try:
            results.append(deliver_shipment_document(session, shipment_id, client_factory, settings))
        except PipelineError as exc:
            logger.error("resend of shipment %s failed: %s", shipment_id, exc)
            session.rollback()
            results.append(DeliveryResult(shipment_id, ERROR, message=str(exc)))
    logger.info("resend_failed: %d shipment(s) retried", len(results))
    return results


__all__ = [
    "PackResult",
    "create_shipments_for_order",
    "get_order",
    "get_order_lines",
    "latest_shipments",
    "resend_failed",
    "run_order_pipeline",
    "shipment_items",
    "validate_order_lines",
]
