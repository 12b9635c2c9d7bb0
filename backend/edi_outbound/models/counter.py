from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Column
from sqlmodel import Field, SQLModel


class ContainerIdCounter(SQLModel, table=True):
    """Last SSCC serial handed out per allocation scope.

    Only ever incremented through a single ``UPDATE … RETURNING`` statement so
    that concurrent workers never receive the same serial.
    """

    __tablename__ = "sscc_counter"

    scope: str = Field(default="default", primary_key=True)
    last_serial: int = Field(
        default=0,
        sa_column=Column(BigInteger, nullable=False, default=0),
    )
    updated_at: Optional[datetime] = Field(default=None)
