from __future__ import annotations

from functools import lru_cache
from typing import Generator

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from edi_outbound.core.config import get_settings


def make_engine(url: str, *, echo: bool = False) -> Engine:
    # Alembic and the workers use the sync driver
    url = url.replace("+asyncpg", "")
    connect_args: dict = {}
    if url.startswith("sqlite"):
        # workers and the web process share the file; wait on locks instead of failing
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, echo=echo, connect_args=connect_args)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return make_engine(get_settings().database_url)


def init_db(engine: Engine | None = None) -> None:
    """Create missing tables (dev / tests; production uses Alembic)."""
    import edi_outbound.models  # noqa: F401  registers every table

    SQLModel.metadata.create_all(engine or get_engine())


def get_session() -> Generator[Session, None, None]:  # dependency
    with Session(get_engine()) as ses:
        yield ses
