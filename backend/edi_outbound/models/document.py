"""Outbound partner documents and their upload state."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Text
from sqlmodel import Field, SQLModel

from .order import utcnow


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    UPLOADED = "UPLOADED"
    ERROR = "ERROR"


class OutboundDocument(SQLModel, table=True):
    __tablename__ = "outbound_document"

    id: Optional[int] = Field(default=None, primary_key=True)
    # upsert key: one row per file name, ever
    filename: str = Field(unique=True, index=True)
    doc_type: str = Field(default="DELR", index=True)
    direction: str = Field(default="OUT")

    order_ref: Optional[str] = Field(default=None, index=True)
    order_id: Optional[int] = Field(default=None, foreign_key="outbound_order.id")
    shipment_id: Optional[int] = Field(default=None, foreign_key="outbound_shipment.id")

    status: str = Field(default=DocumentStatus.PENDING.value, index=True)
    attempts: int = Field(default=0)
    error_message: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    sent_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
