"""create outbound dispatch tables

Revision ID: 3c1e9b7d2a10
Revises:
Create Date: 2026-10-19 09:12:04.518230

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1e9b7d2a10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema: orders, shipments, SSCC counter, outbound documents."""
    op.create_table(
        "outbound_order",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_ref", sa.String(), nullable=False),
        sa.Column("order_number", sa.String(), nullable=True),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="CHF"),
        sa.Column("delivery_type", sa.String(), nullable=True),
        sa.Column("customer_name", sa.String(), nullable=False, server_default=""),
        sa.Column("customer_vat_id", sa.String(), nullable=True),
        sa.Column("recipient_name", sa.String(), nullable=False, server_default=""),
        sa.Column("recipient_address1", sa.String(), nullable=False, server_default=""),
        sa.Column("recipient_address2", sa.String(), nullable=True),
        sa.Column("recipient_postal_code", sa.String(), nullable=False, server_default=""),
        sa.Column("recipient_city", sa.String(), nullable=False, server_default=""),
        sa.Column("recipient_country", sa.String(), nullable=False, server_default=""),
        sa.Column("recipient_email", sa.String(), nullable=True),
        sa.Column("recipient_phone", sa.String(), nullable=True),
        sa.Column("line_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_outbound_order_order_ref", "outbound_order", ["order_ref"], unique=True)

    op.create_table(
        "outbound_order_line",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("outbound_order.id"), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("supplier_item_id", sa.String(), nullable=True),
        sa.Column("gtin", sa.String(), nullable=True),
        sa.Column("buyer_item_id", sa.String(), nullable=True),
        sa.Column("product_name", sa.String(), nullable=False, server_default=""),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.UniqueConstraint("order_id", "line_number", name="uq_order_line_number"),
    )
    op.create_index("ix_outbound_order_line_order_id", "outbound_order_line", ["order_id"])

    op.create_table(
        "outbound_shipment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("outbound_order.id"), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("sequence_index", sa.Integer(), nullable=False),
        sa.Column("container_id", sa.String(length=18), nullable=False, unique=True),
        sa.Column("dispatch_notification_id", sa.String(), nullable=False, unique=True),
        sa.Column("carrier", sa.String(), nullable=True),
        sa.Column("tracking_number", sa.String(), nullable=True),
        sa.Column("package_type", sa.String(), nullable=False, server_default="PARCEL"),
        sa.Column("delivery_type", sa.String(), nullable=False, server_default="warehouse_delivery"),
        sa.Column("shipped_at", sa.DateTime(), nullable=False),
        sa.Column("total_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("label_zpl", sa.Text(), nullable=True),
        sa.Column("document_filename", sa.String(), nullable=True),
        sa.Column("delivery_status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("delivery_error", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("order_id", "revision", "sequence_index", name="uq_shipment_order_seq"),
    )
    op.create_index("ix_outbound_shipment_order_id", "outbound_shipment", ["order_id"])
    op.create_index("ix_outbound_shipment_delivery_status", "outbound_shipment", ["delivery_status"])

    op.create_table(
        "outbound_shipment_item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("shipment_id", sa.Integer(), sa.ForeignKey("outbound_shipment.id"), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("outbound_order.id"), nullable=False),
        sa.Column("order_line_id", sa.Integer(), sa.ForeignKey("outbound_order_line.id"), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("supplier_item_id", sa.String(), nullable=False),
        sa.Column("gtin", sa.String(), nullable=False),
        sa.Column("buyer_item_id", sa.String(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
    )
    op.create_index("ix_outbound_shipment_item_shipment_id", "outbound_shipment_item", ["shipment_id"])
    op.create_index("ix_outbound_shipment_item_order_id", "outbound_shipment_item", ["order_id"])

    op.create_table(
        "sscc_counter",
        sa.Column("scope", sa.String(), primary_key=True),
        sa.Column("last_serial", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "outbound_document",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("filename", sa.String(), nullable=False),
        sa.Column("doc_type", sa.String(), nullable=False, server_default="DELR"),
        sa.Column("direction", sa.String(), nullable=False, server_default="OUT"),
        sa.Column("order_ref", sa.String(), nullable=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("outbound_order.id"), nullable=True),
        sa.Column("shipment_id", sa.Integer(), sa.ForeignKey("outbound_shipment.id"), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_outbound_document_filename", "outbound_document", ["filename"], unique=True)
    op.create_index("ix_outbound_document_doc_type", "outbound_document", ["doc_type"])
    op.create_index("ix_outbound_document_order_ref", "outbound_document", ["order_ref"])
    op.create_index("ix_outbound_document_status", "outbound_document", ["status"])


def downgrade() -> None:
    """Downgrade schema: drop every outbound table (documents first)."""
    op.drop_table("outbound_document")
    op.drop_table("sscc_counter")
    op.drop_table("outbound_shipment_item")
    op.drop_table("outbound_shipment")
    op.drop_table("outbound_order_line")
    op.drop_table("outbound_order")
