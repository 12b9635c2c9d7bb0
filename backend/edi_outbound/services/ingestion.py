"""
Order ingestion from partner CSV / Excel exports.

One row per order line; the order header columns are repeated on every row
of the same order.  Rows are grouped by ``order_ref`` and each order is
written in its own transaction:

* an unknown order is inserted with all of its lines;
* a known order that has not been packed yet gets its header updated and
  its lines replaced;
* a known order that already has shipments is left untouched, because the
  shipments reference its lines.

A row that cannot be parsed rejects its whole order (a partial order would
ship the wrong quantities).  Errors are collected per row and returned in the
summary; they never abort the upload.
"""

from __future__ import annotations

import logging
import math
import unicodedata
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd
from fastapi import UploadFile
from sqlalchemy import delete
from sqlmodel import Session, select

from edi_outbound.models import Order, OrderLine, Shipment
from edi_outbound.models.order import utcnow
from edi_outbound.utils.file_parser import read_dataframe

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("order_ref", "order_date", "quantity")

ORDER_FIELDS = (
    "order_number",
    "currency",
    "delivery_type",
    "customer_name",
    "customer_vat_id",
    "recipient_name",
    "recipient_address1",
    "recipient_address2",
    "recipient_postal_code",
    "recipient_city",
    "recipient_country",
    "recipient_email",
    "recipient_phone",
)


# --------------------------------------------------------------------------- #
# value cleaning                                                              #
# --------------------------------------------------------------------------- #
def _blank(val: Any) -> bool:
    if val is None:
        return True
    if isinstance(val, float) and math.isnan(val):
        return True
    return isinstance(val, str) and val.strip() == ""


def _opt_str(val: Any) -> str | None:
    return None if _blank(val) else str(val).strip()


def _safe_int(val: Any, field: str) -> int:
    """``"1'234"``, ``"１２"``, ``"3.0"`` -> int; blank raises ``ValueError``."""
    if _blank(val):
        raise ValueError(f"{field} is required")
    if isinstance(val, int):
        return val
    cleaned = unicodedata.normalize("NFKC", str(val)).replace(",", "").replace("'", "").strip()
    try:
        return int(cleaned)
    except ValueError:
        try:
            as_float = float(cleaned)
        except ValueError as exc:
            raise ValueError(f"Cannot convert {field}={val!r} to int") from exc
        if not as_float.is_integer():
            raise ValueError(f"{field} must be a whole number, got {val!r}")
        return int(as_float)


def _safe_float(val: Any) -> float:
    if _blank(val):
        return 0.0
    cleaned = str(val).strip().replace("'", "")
    # "12,50" (decimal comma) vs "1,234.50" (thousands separator)
    if "," in cleaned and "." not in cleaned:
        cleaned = cleaned.replace(",", ".")
    else:
        cleaned = cleaned.replace(",", "")
    try:
        return float(cleaned)
    except ValueError as exc:
        raise ValueError(f"Cannot convert {val!r} to a price") from exc


def _safe_date(val: Any) -> date:
    """Accepts ``2026-10-19``, ``19.10.2026``, ``20261019`` and date objects."""
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    if _blank(val):
        raise ValueError("order_date is required")
    text = str(val).strip()
    if text.isdigit() and len(text) == 8:
        parsed = pd.to_datetime(text, format="%Y%m%d", errors="coerce")
    else:
        parsed = pd.to_datetime(text, errors="coerce", dayfirst="." in text)
    if pd.isna(parsed):
        raise ValueError(f"Cannot parse date: {val!r}")
    return parsed.date()


# --------------------------------------------------------------------------- #
# row mapping                                                                 #
# --------------------------------------------------------------------------- #
def _order_values(row: pd.Series) -> dict[str, Any]:
    values: dict[str, Any] = {"order_date": _safe_date(row.get("order_date"))}
    for name in ORDER_FIELDS:
        values[name] = _opt_str(row.get(name))
    values["currency"] = (values["currency"] or "CHF").upper()
    for name in ("customer_name", "recipient_name", "recipient_address1",
                 "recipient_postal_code", "recipient_city", "recipient_country"):
        values[name] = values[name] or ""
    return values


def _line_values(row: pd.Series, fallback_number: int) -> dict[str, Any]:
    raw_number = row.get("line_number")
    line_number = fallback_number if _blank(raw_number) else _safe_int(raw_number, "line_number")
    quantity = _safe_int(row.get("quantity"), "quantity")
    if quantity <= 0:
        raise ValueError(f"quantity must be positive, got {quantity}")
    return {
        "line_number": line_number,
        # identifiers may be missing here; packing refuses such lines later
        "supplier_item_id": _opt_str(row.get("supplier_item_id")),
        "gtin": _opt_str(row.get("gtin")),
        "buyer_item_id": _opt_str(row.get("buyer_item_id")),
        "product_name": _opt_str(row.get("product_name")) or "",
        "quantity": quantity,
        "unit_price": _safe_float(row.get("unit_price")),
    }


# --------------------------------------------------------------------------- #
# persistence                                                                 #
# --------------------------------------------------------------------------- #
def _has_shipments(session: Session, order_id: int) -> bool:
    return session.exec(select(Shipment.id).where(Shipment.order_id == order_id).limit(1)).first() is not None


def _save_order(session: Session, order_ref: str, header: dict[str, Any], lines: list[dict[str, Any]]) -> str:
    """Insert or replace one order; returns ``created`` / ``updated`` / ``locked``."""
    order = session.exec(select(Order).where(Order.order_ref == order_ref)).first()
    if order is not None and _has_shipments(session, order.id):
        return "locked"

    status = "updated" if order is not None else "created"
    if order is None:
        order = Order(order_ref=order_ref, **header)
    else:
        for key, value in header.items():
            setattr(order, key, value)
        order.updated_at = utcnow()
        session.execute(delete(OrderLine).where(OrderLine.order_id == order.id))
    order.line_count = len(lines)
    session.add(order)
    session.flush()
    for values in lines:
        session.add(OrderLine(order_id=order.id, **values))
    session.commit()
    return status


def ingest_orders(src: pd.DataFrame | UploadFile | str | Path | bytes, session: Session) -> dict:
    """Load partner orders from *src* into ``outbound_order`` / ``outbound_order_line``.

    Returns ``{total_rows, success_rows, error_rows, orders, errors}`` where
    ``orders`` maps each accepted order reference to ``created`` or
    ``updated``.  ``ValueError`` is raised only for a file that cannot be
    read at all or lacks a required column.
    """
    df = src if isinstance(src, pd.DataFrame) else read_dataframe(src)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required column(s): {', '.join(missing)}; got {list(df.columns)[:10]!r}")

    errors: list[dict] = []
    orders: dict[str, str] = {}
    success_rows = 0

    # keep file order; rows without an order reference cannot be grouped
    refs = df["order_ref"].map(_opt_str)
    for idx in df.index[refs.isna()]:
        errors.append({"row": int(idx) + 2, "order_ref": None, "message": "order_ref is required"})

    for order_ref, group in df[refs.notna()].groupby(refs[refs.notna()], sort=False):
        header: dict[str, Any] | None = None
        lines: list[dict[str, Any]] = []
        row_errors: list[dict] = []
        for position, (idx, row) in enumerate(group.iterrows(), start=1):
            try:
                if header is None:
                    header = _order_values(row)
                lines.append(_line_values(row, position))
            except ValueError as exc:
                row_errors.append({"row": int(idx) + 2, "order_ref": order_ref, "message": str(exc)})

        numbers = [line["line_number"] for line in lines]
        if len(numbers) != len(set(numbers)):
            row_errors.append({"row": None, "order_ref": order_ref, "message": "duplicate line_number"})

        if row_errors or header is None:
            errors.extend(row_errors)
            logger.warning("ingest_orders: order %s rejected (%d row error(s))", order_ref, len(row_errors))
            continue

        status = _save_order(session, order_ref, header, lines)
        if status == "locked":
            errors.append({
                "row": None,
                "order_ref": order_ref,
                "message": "order already packed into shipments; not updated",
            })
            continue
        orders[order_ref] = status
        success_rows += len(lines)

    summary = {
        "total_rows": int(len(df)),
        "success_rows": success_rows,
        "error_rows": int(len(df)) - success_rows,
        "orders": orders,
        "errors": errors,
    }
    logger.info(
        "ingest_orders: total=%s success=%s orders=%s errors=%s",
        summary["total_rows"], success_rows, len(orders), len(errors),
    )
    return summary


__all__ = ["ingest_orders"]
