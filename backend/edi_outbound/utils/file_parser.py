"""
file_parser.py
==============

Turn an uploaded **CSV / Excel** order export into a ``pandas.DataFrame``.

* file type from MIME type and extension
* CSV encoding guessed with **chardet**, then a list of fallbacks is tried
* header cells are NFKC-normalised, BOM / stray spaces removed, and
  synonymous headers folded onto the canonical order column names
* every value is read as **string** (``dtype=str``, ``keep_default_na=False``)
* empty files and unsupported formats raise ``ValueError``

Accepts a FastAPI ``UploadFile``, a ``str`` / ``Path`` or raw bytes, so the
same call works from the router and from pytest.
"""

from __future__ import annotations

import io
import mimetypes
import unicodedata
from pathlib import Path
from typing import Final, Iterable

import chardet
import pandas as pd
from fastapi import UploadFile

ENCODINGS: Final[list[str]] = [
    "utf-8",
    "utf-8-sig",
    "utf-16",
    "utf-16-le",
    "utf-16-be",
    "cp1252",
    "iso8859-1",
]

# canonical column -> accepted header spellings (compared after normalisation)
ORDER_COLUMN_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "order_ref": ("order_ref", "orderid", "order_id", "galaxusorderid", "partnerorderid", "orderreference"),
    "order_number": ("order_number", "ordernumber", "orderno"),
    "order_date": ("order_date", "orderdate", "date"),
    "currency": ("currency", "currencycode"),
    "delivery_type": ("delivery_type", "deliverytype"),
    "customer_name": ("customer_name", "customername", "buyername"),
    "customer_vat_id": ("customer_vat_id", "customervatid", "vatid"),
    "recipient_name": ("recipient_name", "recipientname", "shiptoname"),
    "recipient_address1": ("recipient_address1", "recipientaddress1", "address1", "street"),
    "recipient_address2": ("recipient_address2", "recipientaddress2", "address2"),
    "recipient_postal_code": ("recipient_postal_code", "recipientpostalcode", "postalcode", "zip"),
    "recipient_city": ("recipient_city", "recipientcity", "city"),
    "recipient_country": ("recipient_country", "recipientcountry", "country"),
    "recipient_email": ("recipient_email", "recipientemail", "email"),
    "recipient_phone": ("recipient_phone", "recipientphone", "phone"),
    "line_number": ("line_number", "linenumber", "lineitemid", "line"),
    "supplier_item_id": ("supplier_item_id", "supplieritemid", "supplierpid", "suppliersku", "sku"),
    "gtin": ("gtin", "ean", "internationalpid"),
    "buyer_item_id": ("buyer_item_id", "buyeritemid", "buyerpid", "productid"),
    "product_name": ("product_name", "productname", "description", "name"),
    "quantity": ("quantity", "qty", "orderedquantity"),
    "unit_price": ("unit_price", "unitprice", "unitnetprice", "price"),
}


# --------------------------------------------------------------------------- #
# public API                                                                  #
# --------------------------------------------------------------------------- #
def read_dataframe(file: UploadFile | str | Path | bytes | bytearray) -> pd.DataFrame:
    """
    Parameters
    ----------
    file :
        * **FastAPI UploadFile** – upload from the API
        * **str / Path** – path on disk (tests, scripts)
        * **bytes / bytearray** – content already in memory

    Returns
    -------
    pandas.DataFrame
        First row is the header; all values are strings; known order
        headers are renamed to their canonical names.

    Raises
    ------
    ValueError
        empty file, unsupported type, or undecodable CSV
    """
    raw, filename = _get_raw_and_name(file)

    if not raw:
        raise ValueError("File is empty")

    mime, _ = mimetypes.guess_type(filename)
    lower_name = filename.lower()

    # ----------------------------- Excel ----------------------------------
    if lower_name.endswith((".xlsx", ".xls")):
        df = pd.read_excel(io.BytesIO(raw), dtype=str, keep_default_na=False)

    # ----------------------------- CSV ------------------------------------
    elif mime in ("text/csv", None) or lower_name.endswith(".csv"):
        df = _read_csv(raw)

    else:
        raise ValueError("Unsupported file type (only .csv/.xlsx/.xls accepted)")

    df.columns = [normalize_header(c) for c in df.columns.astype(str)]
    df = fold_aliases(df)

    if df.empty:
        raise ValueError("File has no data rows")

    return df


def normalize_header(name: str) -> str:
    """``" Order ID "`` -> ``"orderid"``: NFKC, no BOM, no whitespace, lower-case."""
    name = unicodedata.normalize("NFKC", name).replace("\ufeff", "")
    name = name.strip().strip("'\"")
    return "".join(name.split()).lower()


def fold_aliases(df: pd.DataFrame) -> pd.DataFrame:
    """Rename the first column matching each alias list to its canonical name."""
    renames: dict[str, str] = {}
    for canonical, aliases in ORDER_COLUMN_ALIASES.items():
        if canonical in df.columns:
            continue
        for alias in aliases:
            key = alias.replace("_", "")
            hit = next(
                (c for c in df.columns if c.replace("_", "") == key and c not in renames),
                None,
            )
            if hit is not None:
                renames[hit] = canonical
                break
    return df.rename(columns=renames)


__all__ = ["ORDER_COLUMN_ALIASES", "fold_aliases", "normalize_header", "read_dataframe"]


# --------------------------------------------------------------------------- #
# helpers (private)                                                           #
# --------------------------------------------------------------------------- #
def _read_csv(raw: bytes) -> pd.DataFrame:
    # Many NUL bytes in the first KB means UTF-16
    might_be_utf16 = b"\x00" in raw[:1024]
    enc_guess: str = (chardet.detect(raw[:4096]).get("encoding") or "").lower()
    enc_try_order = (
        ["utf-16", "utf-16-le", "utf-16-be"] if might_be_utf16 else []
    ) + ([enc_guess] if enc_guess else []) + ENCODINGS

    for enc in _unique(enc_try_order):
        try:
            df = pd.read_csv(io.BytesIO(raw), encoding=enc, dtype=str, keep_default_na=False, sep=",")
        except (UnicodeDecodeError, UnicodeError):
            continue
        except pd.errors.ParserError:
            # "12,50" decimals in a semicolon export break the comma parse
            df = None
        # Single column: the export used another delimiter (semicolon is common in CH/DE)
        if df is None or df.shape[1] == 1:
            for sep in (";", "\t", "|"):
                try:
                    alt = pd.read_csv(io.BytesIO(raw), encoding=enc, dtype=str, keep_default_na=False, sep=sep)
                except pd.errors.ParserError:
                    continue
                if alt.shape[1] > 1:
                    return alt
        if df is None:
            raise ValueError("Cannot parse CSV – unknown delimiter")
        return df
    raise ValueError("Cannot decode CSV – unknown encoding")


def _get_raw_and_name(file: UploadFile | str | Path | bytes | bytearray) -> tuple[bytes, str]:
    if isinstance(file, (bytes, bytearray)):
        return bytes(file), ""

    if isinstance(file, (str, Path)):
        p = Path(file)
        return p.read_bytes(), p.name

    # FastAPI / Starlette UploadFile, or anything shaped like one
    if isinstance(file, UploadFile) or (hasattr(file, "file") and hasattr(file, "filename")):
        return file.file.read(), file.filename or ""

    raise TypeError(
        "file must be UploadFile | str | Path | bytes | bytearray; "
        f"got {type(file)}"
    )


def _unique(seq: Iterable[str]) -> list[str]:
    """Drop duplicates, keep order."""
    seen: set[str] = set()
    out: list[str] = []
    for item in seq:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out
