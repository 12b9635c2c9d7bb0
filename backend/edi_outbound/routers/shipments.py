"""
Outbound dispatch API.

* POST /v1/orders/{order_id}/pipeline       – pack + allocate + send (sync or Celery)
* POST /v1/orders/{order_id}/shipments      – pack + allocate only
* GET  /v1/orders/{order_id}/shipments      – shipments of the latest revision
* POST /v1/shipments/{shipment_id}/dispatch – (re)send one DELR
* GET  /v1/shipments/{shipment_id}/label    – SSCC label (ZPL)
* GET  /v1/documents                        – outbound document log

``order_id`` is the partner order reference; it is never read as a row id.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlmodel import Session, select

from edi_outbound.core.config import Settings, get_settings
from edi_outbound.core.database import get_session
from edi_outbound.core.errors import ExhaustionError, NotFoundError, ValidationError
from edi_outbound.models import DocumentStatus, OutboundDocument, Shipment
from edi_outbound.services.delivery import deliver_shipment_document
from edi_outbound.services.labels import build_label
from edi_outbound.services.pipeline import (
    create_shipments_for_order,
    get_order,
    latest_shipments,
    run_order_pipeline,
    shipment_items,
)
from edi_outbound.services.transfer import ClientFactory, transport_factory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["dispatch"])


def get_client_factory(settings: Settings = Depends(get_settings)) -> ClientFactory:
    return transport_factory(settings)


SesDep = Annotated[Session, Depends(get_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
FactoryDep = Annotated[ClientFactory, Depends(get_client_factory)]


class PackRequest(BaseModel):
    capacity: Optional[int] = Field(None, ge=1, description="units per shipment; default PARCEL_CAPACITY")
    allow_split: bool = True
    carrier: Optional[str] = None
    tracking_numbers: List[str] = Field(default_factory=list)
    package_type: str = "PARCEL"
    repack: bool = False


class PipelineRequest(PackRequest):
    force: bool = False
    background: bool = False


# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #
def _http_error(exc: Exception, what: str) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        detail: dict[str, Any] = {"message": str(exc)}
        if exc.line_number is not None:
            detail["line_number"] = exc.line_number
        return HTTPException(status_code=422, detail=detail)
    if isinstance(exc, ExhaustionError):
        return HTTPException(status_code=409, detail=str(exc))
    logger.exception("%s failed", what)
    return HTTPException(status_code=500, detail=str(exc))


def _shipment_out(session: Session, shipment: Shipment) -> dict:
    data = shipment.model_dump(mode="json", exclude={"label_zpl"})
    data["items"] = [i.model_dump(mode="json") for i in shipment_items(session, shipment.id)]
    return data


# --------------------------------------------------------------------------- #
# orders                                                                      #
# --------------------------------------------------------------------------- #
@router.post("/orders/{order_id}/pipeline")
def run_pipeline(
    order_id: str,
    ses: SesDep,
    settings: SettingsDep,
    factory: FactoryDep,
    body: Optional[PipelineRequest] = None,
):
    body = body or PipelineRequest()
    if body.background:
        from edi_outbound.services.dispatch_tasks import run_order_pipeline as pipeline_task

        task = pipeline_task.delay(
            order_id,
            capacity=body.capacity,
            allow_split=body.allow_split,
            carrier=body.carrier,
            tracking_numbers=body.tracking_numbers,
            package_type=body.package_type,
            force=body.force,
            repack=body.repack,
        )
        logger.info("pipeline for order %s queued as %s", order_id, task.id)
        return {"status": "queued", "task_id": task.id}
    try:
        results = run_order_pipeline(
            ses,
            order_id,
            factory,
            settings,
            capacity=body.capacity,
            allow_split=body.allow_split,
            carrier=body.carrier,
            tracking_numbers=body.tracking_numbers,
            package_type=body.package_type,
            force=body.force,
            repack=body.repack,
        )
    except Exception as e:
        raise _http_error(e, "pipeline")
    return {"status": "done", "results": [r.to_dict() for r in results]}


@router.post("/orders/{order_id}/shipments")
def pack_order(order_id: str, ses: SesDep, settings: SettingsDep, body: Optional[PackRequest] = None):
    body = body or PackRequest()
    try:
        pack = create_shipments_for_order(
            ses,
            order_id,
            settings,
            capacity=body.capacity,
            allow_split=body.allow_split,
            carrier=body.carrier,
            tracking_numbers=body.tracking_numbers,
            package_type=body.package_type,
            repack=body.repack,
        )
        return {
            "status": pack.status,
            "order_id": pack.order_id,
            "shipments": [_shipment_out(ses, s) for s in pack.shipments],
        }
    except Exception as e:
        raise _http_error(e, "pack")


@router.get("/orders/{order_id}/shipments")
def list_shipments(order_id: str, ses: SesDep):
    try:
        order = get_order(ses, order_id)
    except NotFoundError as e:
        raise _http_error(e, "list shipments")
    rows = latest_shipments(ses, order.id)
    return {"order_ref": order.order_ref, "shipments": [_shipment_out(ses, s) for s in rows]}


# --------------------------------------------------------------------------- #
# shipments                                                                   #
# --------------------------------------------------------------------------- #
@router.post("/shipments/{shipment_id}/dispatch")
def dispatch_shipment(
    shipment_id: int,
    ses: SesDep,
    settings: SettingsDep,
    factory: FactoryDep,
    force: bool = Query(False, description="resend even if already uploaded"),
):
    try:
        settings.validate_transfer()
        result = deliver_shipment_document(ses, shipment_id, factory, settings, force=force)
    except Exception as e:
        raise _http_error(e, "dispatch")
    return result.to_dict()


@router.get("/shipments/{shipment_id}/label")
def shipment_label(shipment_id: int, ses: SesDep):
    shipment = ses.get(Shipment, shipment_id)
    if shipment is None:
        raise HTTPException(status_code=404, detail=f"Shipment {shipment_id} not found")
    try:
        order = get_order(ses, shipment.order_id)
        return build_label(shipment.container_id, order).to_dict()
    except Exception as e:
        raise _http_error(e, "label")


# --------------------------------------------------------------------------- #
# documents                                                                   #
# --------------------------------------------------------------------------- #
@router.get("/documents")
def list_documents(
    ses: SesDep,
    status: Optional[DocumentStatus] = Query(None),
    order_ref: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    conds = []
    if status is not None:
        conds.append(OutboundDocument.status == status.value)
    if order_ref:
        conds.append(OutboundDocument.order_ref == order_ref)
    total = ses.exec(select(func.count()).select_from(OutboundDocument).where(*conds)).one()
    rows = ses.exec(
        select(OutboundDocument)
        .where(*conds)
        .order_by(OutboundDocument.created_at.desc(), OutboundDocument.id.desc())
        .offset(offset)
        .limit(limit)
    ).all()
    return {"rows": [r.model_dump(mode="json") for r in rows], "total": int(total)}
