"""
Aggregate export for all SQLModel table classes.

Having each model re-exported here guarantees that
`import edi_outbound.models` will register every table in
`SQLModel.metadata`, so Alembic can discover them
during `--autogenerate`.
"""

# --- Orders (read-only to the pipeline) ------------------------------------
from .order import Order, OrderLine  # noqa: F401

# --- Packing result ---------------------------------------------------------
from .shipment import Shipment, ShipmentItem  # noqa: F401

# --- SSCC serial counter ----------------------------------------------------
from .counter import ContainerIdCounter  # noqa: F401

# --- Outbound documents -----------------------------------------------------
from .document import DocumentStatus, OutboundDocument  # noqa: F401

__all__ = [
    "Order",
    "OrderLine",
    "Shipment",
    "ShipmentItem",
    "ContainerIdCounter",
    "DocumentStatus",
    "OutboundDocument",
]
