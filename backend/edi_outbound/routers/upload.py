"""
File-upload router.

* POST /v1/upload/orders – partner order export (CSV / Excel, one row per line)

Rows are grouped into orders and upserted; row errors are returned in the
summary instead of failing the upload.
"""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlmodel import Session

from edi_outbound.core.database import get_session
from edi_outbound.services.ingestion import ingest_orders

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/upload", tags=["upload"])

UploadDep = Annotated[UploadFile, File(...)]
SesDep = Annotated[Session, Depends(get_session)]


@router.post("/orders")
def upload_orders(file: UploadDep, ses: SesDep):
    """Upload partner orders (upsert by order reference)."""
    t0 = perf_counter()
    logger.info(
        "upload_orders: start filename=%s content_type=%s",
        getattr(file, "filename", None),
        getattr(file, "content_type", None),
    )
    try:
        summary = ingest_orders(file, ses)
    except ValueError as e:
        logger.exception("order upload failed: invalid file")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("order upload failed")
        raise HTTPException(status_code=500, detail=str(e))
    summary["sample_errors"] = summary["errors"][:5]
    logger.info("upload_orders: done elapsed=%.3fs", perf_counter() - t0)
    return summary
