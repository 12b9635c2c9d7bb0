"""Purchase orders received from the trading partner.

Orders and their lines are written by ingestion and treated as read-only by
the packing / dispatch pipeline.
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Column, Numeric, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(SQLModel, table=True):
    __tablename__ = "outbound_order"

    id: Optional[int] = Field(default=None, primary_key=True)
    # partner order id (e.g. "GX-1001"); unique per partner
    order_ref: str = Field(index=True, unique=True, description="Partner order number")
    order_number: Optional[str] = Field(default=None)
    order_date: date = Field(description="Order date from the partner")
    currency: str = Field(default="CHF", max_length=3)
    delivery_type: Optional[str] = Field(default=None)

    # customer (buyer) address
    customer_name: str = Field(default="")
    customer_vat_id: Optional[str] = Field(default=None)

    # recipient (delivery) address
    recipient_name: str = Field(default="")
    recipient_address1: str = Field(default="")
    recipient_address2: Optional[str] = Field(default=None)
    recipient_postal_code: str = Field(default="")
    recipient_city: str = Field(default="")
    recipient_country: str = Field(default="")
    recipient_email: Optional[str] = Field(default=None)
    recipient_phone: Optional[str] = Field(default=None)

    line_count: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class OrderLine(SQLModel, table=True):
    __tablename__ = "outbound_order_line"
    __table_args__ = (
        UniqueConstraint("order_id", "line_number", name="uq_order_line_number"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="outbound_order.id", index=True)
    line_number: int = Field(description="1-based line number from the partner order")

    # both must be present before the line can be packed
    supplier_item_id: Optional[str] = Field(default=None, description="Supplier PID")
    gtin: Optional[str] = Field(default=None, description="GTIN-8/12/13/14")
    buyer_item_id: Optional[str] = Field(default=None, description="Buyer PID")

    product_name: str = Field(default="")
    quantity: int = Field(description="Ordered quantity")
    unit_price: float = Field(
        default=0.0,
        sa_column=Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0),
    )
