import os
from datetime import date

import pytest
from sqlmodel import Session

# the app reads these on first get_settings(); tests pass explicit settings
os.environ.setdefault("GS1_COMPANY_PREFIX", "7612345")
os.environ.setdefault("EDI_TRANSPORT", "local")
os.environ.setdefault("EDI_SUPPLIER_ID", "SUP1")

from edi_outbound.core.config import load_settings  # noqa: E402
from edi_outbound.core.database import init_db, make_engine  # noqa: E402
from edi_outbound.models import Order, OrderLine  # noqa: E402


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'edi_test.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as ses:
        yield ses


@pytest.fixture
def outbox(tmp_path):
    path = tmp_path / "outbox"
    path.mkdir()
    return path


@pytest.fixture
def settings(outbox):
    return load_settings(
        {
            "EDI_TRANSPORT": "local",
            "EDI_LOCAL_OUT_DIR": str(outbox),
            "EDI_SUPPLIER_ID": "SUP1",
            "GS1_COMPANY_PREFIX": "7612345",
            "GS1_EXTENSION_DIGIT": "3",
            "PARCEL_CAPACITY": "12",
            "CARRIER_ALLOWLIST": "Post,DPD",
            "SUPPLIER_NAME": "Sneaker Supply AG",
            "SUPPLIER_ADDRESS_LINES": "Bahnhofstrasse 1|8001 Zurich|CH",
        }
    )


@pytest.fixture
def make_order(session):
    """Insert an order; *lines* is a list of (supplier_item_id, gtin, quantity)."""

    def _make(ref="GX-1001", lines=(("SKU-A", "7612345000011", 14),), **fields):
        order = Order(
            order_ref=ref,
            order_date=date(2026, 10, 1),
            customer_name="Digitec Galaxus AG",
            recipient_name="Max Muster",
            recipient_address1="Pfingstweidstrasse 60b",
            recipient_postal_code="8005",
            recipient_city="Zurich",
            recipient_country="CH",
            line_count=len(lines),
            **fields,
        )
        session.add(order)
        session.flush()
        for number, (supplier_item_id, gtin, quantity) in enumerate(lines, start=1):
            session.add(
                OrderLine(
                    order_id=order.id,
                    line_number=number,
                    supplier_item_id=supplier_item_id,
                    gtin=gtin,
                    product_name=f"Sneaker {number}",
                    quantity=quantity,
                    unit_price=89.9,
                )
            )
        session.commit()
        session.refresh(order)
        return order

    return _make
