"""Physical shipments (parcels / pallets) produced by packing an order."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

from .order import utcnow


class Shipment(SQLModel, table=True):
    __tablename__ = "outbound_shipment"
    __table_args__ = (
        UniqueConstraint("order_id", "revision", "sequence_index", name="uq_shipment_order_seq"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="outbound_order.id", index=True)

    # a forced re-pack writes a new revision; earlier revisions are kept
    revision: int = Field(default=1)
    # 0-based position within the order's packing result
    sequence_index: int = Field(description="0-based parcel index")

    container_id: str = Field(unique=True, max_length=18, description="SSCC (18 digits)")
    dispatch_notification_id: str = Field(unique=True, description="DELR document number")

    carrier: Optional[str] = Field(default=None)
    tracking_number: Optional[str] = Field(default=None)
    package_type: str = Field(default="PARCEL")
    delivery_type: str = Field(default="warehouse_delivery")
    shipped_at: datetime = Field(default_factory=utcnow)
    total_quantity: int = Field(default=0)

    label_zpl: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    # mirror of the DELR document state for quick listing
    document_filename: Optional[str] = Field(default=None)
    delivery_status: str = Field(default="PENDING", index=True)
    delivery_error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    sent_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)


class ShipmentItem(SQLModel, table=True):
    __tablename__ = "outbound_shipment_item"

    id: Optional[int] = Field(default=None, primary_key=True)
    shipment_id: int = Field(foreign_key="outbound_shipment.id", index=True)
    order_id: int = Field(foreign_key="outbound_order.id", index=True)
    order_line_id: int = Field(foreign_key="outbound_order_line.id")

    # snapshot of the order line identifiers at packing time
    line_number: int
    supplier_item_id: str
    gtin: str
    buyer_item_id: Optional[str] = Field(default=None)
    quantity: int
