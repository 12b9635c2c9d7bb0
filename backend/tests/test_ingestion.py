import pandas as pd
import pytest
from sqlmodel import select

from edi_outbound.models import Order, OrderLine
from edi_outbound.services.ingestion import ingest_orders
from edi_outbound.services.pipeline import create_shipments_for_order


def _rows(**overrides):
    base = {
        "order_ref": ["GX-1", "GX-1", "GX-2"],
        "order_date": ["2026-10-01", "2026-10-01", "01.10.2026"],
        "customer_name": ["Galaxus", "Galaxus", "Galaxus"],
        "recipient_city": ["Zurich", "Zurich", "Bern"],
        "line_number": ["1", "2", ""],
        "supplier_item_id": ["SKU-A", "SKU-B", "SKU-C"],
        "gtin": ["7612345000011", "7612345000028", ""],
        "quantity": ["14", "2", "1"],
        "unit_price": ["89,90", "1,234.50", ""],
    }
    base.update(overrides)
    return pd.DataFrame(base)


def test_ingest_orders(session):
    summary = ingest_orders(_rows(), session)

    assert summary["total_rows"] == 3
    assert summary["success_rows"] == 3
    assert summary["error_rows"] == 0
    assert summary["orders"] == {"GX-1": "created", "GX-2": "created"}

    gx1 = session.exec(select(Order).where(Order.order_ref == "GX-1")).one()
    lines = session.exec(select(OrderLine).where(OrderLine.order_id == gx1.id).order_by(OrderLine.line_number)).all()
    assert [(l.line_number, l.quantity, l.unit_price) for l in lines] == [(1, 14, 89.9), (2, 2, 1234.5)]
    assert gx1.line_count == 2
    assert gx1.currency == "CHF"

    gx2 = session.exec(select(Order).where(Order.order_ref == "GX-2")).one()
    assert gx2.order_date.isoformat() == "2026-10-01"
    line = session.exec(select(OrderLine).where(OrderLine.order_id == gx2.id)).one()
    # missing GTIN is stored; packing rejects it later
    assert (line.line_number, line.gtin) == (1, None)


def test_bad_row_rejects_its_order_only(session):
    summary = ingest_orders(_rows(quantity=["14", "zwei", "1"]), session)

    assert summary["orders"] == {"GX-2": "created"}
    assert summary["success_rows"] == 1
    assert summary["error_rows"] == 2
    assert summary["errors"][0]["row"] == 3
    assert summary["errors"][0]["order_ref"] == "GX-1"
    assert session.exec(select(Order).where(Order.order_ref == "GX-1")).first() is None


def test_reupload_replaces_lines(session):
    ingest_orders(_rows(), session)
    summary = ingest_orders(
        _rows(order_ref=["GX-1", "GX-1", "GX-1"], quantity=["5", "6", "7"], line_number=["1", "2", "3"]),
        session,
    )
    assert summary["orders"] == {"GX-1": "updated"}
    order = session.exec(select(Order).where(Order.order_ref == "GX-1")).one()
    lines = session.exec(select(OrderLine).where(OrderLine.order_id == order.id)).all()
    assert sorted(l.quantity for l in lines) == [5, 6, 7]


def test_packed_order_is_not_touched(session, settings):
    ingest_orders(_rows(), session)
    create_shipments_for_order(session, "GX-1", settings)

    summary = ingest_orders(_rows(quantity=["1", "1", "1"]), session)

    assert "GX-1" not in summary["orders"]
    assert any(e["order_ref"] == "GX-1" and "already packed" in e["message"] for e in summary["errors"])
    order = session.exec(select(Order).where(Order.order_ref == "GX-1")).one()
    lines = session.exec(select(OrderLine).where(OrderLine.order_id == order.id)).all()
    assert sorted(l.quantity for l in lines) == [2, 14]


def test_missing_required_column(session):
    with pytest.raises(ValueError):
        ingest_orders(pd.DataFrame({"order_ref": ["GX-1"], "quantity": ["1"]}), session)
