"""
Outbound partner documents (openTRANS 2.1).

Only the dispatch notification (``DELR``) is produced by the pipeline.  The
builder is a pure function of its inputs: it never reads the clock or any
counter, so rebuilding the document for an existing shipment yields the same
file name and the same bytes.  That is what lets the delivery tracker treat a
rebuild as a retry of the same message rather than a new one.

File name layout::

    GDELR_<supplier id>_<dispatch notification id>.xml
    dispatch notification id = GDN-<yyyymmdd-HHMMSS>-<order ref>-P<n>

The ``GDN-…`` document number is taken once, when the shipment is created,
and stored on the shipment.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterable, Sequence

from edi_outbound.core.config import SupplierParty
from edi_outbound.core.errors import ValidationError
from edi_outbound.models import Order, OrderLine, Shipment, ShipmentItem

OPENTRANS_NS = "http://www.opentrans.org/XMLSchema/2.1"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"

DOC_TYPE_DELR = "DELR"
DISPATCH_DOC_PREFIX = "GDN"

_FORBIDDEN_CHARS_RE = re.compile(r'[\\/:*?"<>|\s]')
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")


@dataclass(frozen=True)
class OutboundPayload:
    doc_type: str
    filename: str
    content: str

    @property
    def data(self) -> bytes:
        return self.content.encode("utf-8")


# --------------------------------------------------------------------------- #
# document numbers & file names                                               #
# --------------------------------------------------------------------------- #
def build_doc_number(prefix: str, when: datetime) -> str:
    """``GDN-20261019-142501`` – second resolution, monotonic per prefix."""
    return f"{prefix}-{when.strftime('%Y%m%d-%H%M%S')}"


def normalize_order_ref(order_ref: str) -> str:
    normalized = _NON_ALNUM_RE.sub("", order_ref or "")
    if not normalized:
        raise ValidationError(f"order reference {order_ref!r} has no usable characters")
    return normalized


def build_dispatch_notification_id(
    doc_number: str, order_ref: str, sequence_index: int, revision: int = 1
) -> str:
    """``{docNumber}-{orderRef}-P{n}`` with a 1-based parcel number.

    Shipments of a forced re-pack (revision > 1) get an ``R{revision}``
    marker so they never reuse a name of an earlier revision.
    """
    doc_id = f"{doc_number}-{normalize_order_ref(order_ref)}-P{sequence_index + 1}"
    if revision > 1:
        doc_id = f"{doc_id}-R{revision}"
    return doc_id


def sanitize_filename_part(value: str) -> str:
    return _FORBIDDEN_CHARS_RE.sub("_", value)


def build_edi_filename(doc_type: str, supplier_id: str, doc_id: str, extension: str = "xml") -> str:
    if not supplier_id:
        raise ValidationError("supplier id is required to name a partner document")
    parts = [f"G{doc_type}", sanitize_filename_part(supplier_id), sanitize_filename_part(doc_id)]
    return f"{'_'.join(parts)}.{extension}"


def resolve_carrier(value: str | None, allowlist: Iterable[str]) -> str | None:
    """Return *value* when it is on the partner's carrier allow-list, else None."""
    if not value:
        return None
    allowed = {c.strip() for c in allowlist if c and c.strip()}
    if not allowed:
        return None
    value = value.strip()
    return value if value in allowed else None


# --------------------------------------------------------------------------- #
# validation                                                                  #
# --------------------------------------------------------------------------- #
def validate_shipment(shipment: Shipment, items: Sequence[ShipmentItem]) -> None:
    if not shipment.container_id:
        raise ValidationError(f"Shipment {shipment.id} has no SSCC container id")
    if not shipment.dispatch_notification_id:
        raise ValidationError(f"Shipment {shipment.id} has no dispatch notification id")
    if not items:
        raise ValidationError(f"Shipment {shipment.id} has no items")
    for item in items:
        if not item.supplier_item_id:
            raise ValidationError(
                f"Missing supplier item id on line {item.line_number}", line_number=item.line_number
            )
        if not item.gtin:
            raise ValidationError(f"Missing GTIN on line {item.line_number}", line_number=item.line_number)
        if not isinstance(item.quantity, int) or item.quantity <= 0:
            raise ValidationError(
                f"Invalid quantity {item.quantity!r} on line {item.line_number}",
                line_number=item.line_number,
            )


# --------------------------------------------------------------------------- #
# XML helpers                                                                 #
# --------------------------------------------------------------------------- #
def _format_date(value: date) -> str:
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def _format_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _text(parent: ET.Element, tag: str, value: object, attrib: dict[str, str] | None = None) -> ET.Element:
    node = ET.SubElement(parent, tag, attrib or {})
    node.text = str(value)
    return node


def _opt(parent: ET.Element, tag: str, value: object | None) -> None:
    if value not in (None, ""):
        _text(parent, tag, value)


def _party(
    parent: ET.Element,
    role: str,
    party_id: str,
    *,
    name: str,
    street: str,
    street2: str | None,
    postal_code: str,
    city: str,
    country: str,
    vat_id: str | None = None,
    email: str | None = None,
    phone: str | None = None,
) -> None:
    node = ET.SubElement(parent, "PARTY")
    _text(node, "PARTY_ID", party_id, {"type": role})
    _text(node, "PARTY_ROLE", role)
    address = ET.SubElement(node, "ADDRESS")
    _text(address, "NAME", name)
    _text(address, "STREET", street)
    _opt(address, "STREET2", street2)
    _text(address, "ZIP", postal_code)
    _text(address, "CITY", city)
    _text(address, "COUNTRY", country)
    _opt(address, "VAT_ID", vat_id)
    _opt(address, "PHONE", phone)
    _opt(address, "EMAIL", email)


def _add_parties(info: ET.Element, order: Order, supplier: SupplierParty, supplier_id: str) -> None:
    parties = ET.SubElement(info, "PARTIES")
    _party(
        parties, "buyer", order.customer_name or order.recipient_name or "buyer",
        name=order.customer_name or order.recipient_name,
        street=order.recipient_address1,
        street2=order.recipient_address2,
        postal_code=order.recipient_postal_code,
        city=order.recipient_city,
        country=order.recipient_country,
        vat_id=order.customer_vat_id,
    )
    _party(
        parties, "supplier", supplier_id,
        name=supplier.name,
        street=supplier.street,
        street2=None,
        postal_code=supplier.postal_code,
        city=supplier.city,
        country=supplier.country,
        vat_id=supplier.vat_id,
        email=supplier.email,
        phone=supplier.phone,
    )
    _party(
        parties, "delivery", "delivery",
        name=order.recipient_name,
        street=order.recipient_address1,
        street2=order.recipient_address2,
        postal_code=order.recipient_postal_code,
        city=order.recipient_city,
        country=order.recipient_country,
        email=order.recipient_email,
        phone=order.recipient_phone,
    )


def _serialize(root: ET.Element) -> str:
    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'


# --------------------------------------------------------------------------- #
# dispatch notification                                                       #
# --------------------------------------------------------------------------- #
def build_dispatch_document(
    order: Order,
    lines: Sequence[OrderLine],
    shipment: Shipment,
    items: Sequence[ShipmentItem],
    supplier_id: str,
    *,
    supplier: SupplierParty | None = None,
    carrier: str | None = None,
) -> OutboundPayload:
    """Render the DELR for one shipment.

    *carrier* is the already allow-list-resolved carrier; None omits the
    element.  Raises ``ValidationError`` when the shipment is incomplete.
    """
    validate_shipment(shipment, items)
    supplier = supplier or SupplierParty()
    doc_id = shipment.dispatch_notification_id
    filename = build_edi_filename(DOC_TYPE_DELR, supplier_id, doc_id)

    names_by_supplier_pid = {
        line.supplier_item_id: line.product_name for line in lines if line.supplier_item_id
    }

    root = ET.Element(
        "DISPATCHNOTIFICATION",
        {"xmlns": OPENTRANS_NS, "xmlns:xsi": XSI_NS, "version": "2.1"},
    )
    header = ET.SubElement(root, "DISPATCHNOTIFICATION_HEADER")
    info = ET.SubElement(header, "DISPATCHNOTIFICATION_INFO")
    _text(info, "DISPATCHNOTIFICATION_ID", doc_id)
    _text(info, "DISPATCHNOTIFICATION_DATE", _format_datetime(shipment.shipped_at))
    _text(info, "ORDER_ID", order.order_ref)
    _opt(info, "ORDER_NUMBER", order.order_number)
    _text(info, "ORDER_DATE", _format_date(order.order_date))
    _text(info, "CURRENCY", order.currency)
    _add_parties(info, order, supplier, supplier_id)

    shipment_node = ET.SubElement(info, "SHIPMENT")
    _text(shipment_node, "SHIPMENT_ID", shipment.tracking_number or doc_id)
    _opt(shipment_node, "CARRIER", carrier)
    _opt(shipment_node, "TRACKING_NUMBER", shipment.tracking_number)
    _text(shipment_node, "PACKAGE_TYPE", shipment.package_type)
    _text(shipment_node, "PACKAGE_ID", shipment.container_id)

    item_list = ET.SubElement(root, "DISPATCHNOTIFICATION_ITEM_LIST")
    for item in items:
        node = ET.SubElement(item_list, "DISPATCHNOTIFICATION_ITEM")
        _text(node, "LINE_ITEM_ID", item.line_number)
        product = ET.SubElement(node, "PRODUCT_ID")
        _text(product, "SUPPLIER_PID", item.supplier_item_id)
        _text(product, "INTERNATIONAL_PID", item.gtin, {"type": "gtin"})
        _opt(product, "BUYER_PID", item.buyer_item_id)
        _text(node, "DESCRIPTION_SHORT", names_by_supplier_pid.get(item.supplier_item_id) or "Item")
        _text(node, "QUANTITY", item.quantity)
        _text(node, "ORDER_UNIT", "C62")
        reference = ET.SubElement(node, "ORDER_REFERENCE")
        _text(reference, "ORDER_ID", order.order_ref)
        _text(reference, "LINE_ITEM_ID", item.line_number)
        package = ET.SubElement(ET.SubElement(ET.SubElement(node, "LOGISTIC_DETAILS"), "PACKAGE_INFO"), "PACKAGE")
        _text(package, "PACKAGE_ID", shipment.container_id)
        _text(package, "PACKAGE_ORDER_UNIT_QUANTITY", item.quantity)

    summary = ET.SubElement(root, "DISPATCHNOTIFICATION_SUMMARY")
    _text(summary, "TOTAL_ITEM_NUM", len(items))

    return OutboundPayload(doc_type=DOC_TYPE_DELR, filename=filename, content=_serialize(root))


__all__ = [
    "DOC_TYPE_DELR",
    "DISPATCH_DOC_PREFIX",
    "OutboundPayload",
    "build_dispatch_document",
    "build_dispatch_notification_id",
    "build_doc_number",
    "build_edi_filename",
    "normalize_order_ref",
    "resolve_carrier",
    "sanitize_filename_part",
    "validate_shipment",
]
