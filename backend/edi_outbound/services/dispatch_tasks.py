"""
Celery background tasks for the outbound dispatch workflow.

Exposed tasks (all routed to the ``dispatch`` queue):

* ``dispatch.run_order_pipeline(order_id, ...)`` – pack, allocate and send
  everything for one order.
* ``dispatch.send_dispatch_notification(shipment_id, force=False)`` – (re)send
  the DELR of one shipment; retried with back-off on transport errors.
* ``dispatch.resend_failed(limit=100)`` – periodic retry of documents in
  ``ERROR`` (scheduled by beat, see ``core.celery_app``).

Results are plain JSON dicts so they can be read back through the Celery
result backend.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from celery.exceptions import SoftTimeLimitExceeded
from sqlmodel import Session

from edi_outbound.core.celery_app import celery_app
from edi_outbound.core.config import get_settings
from edi_outbound.core.database import get_engine
from edi_outbound.core.errors import PipelineError
from edi_outbound.services.delivery import ERROR, deliver_shipment_document
from edi_outbound.services.pipeline import resend_failed as resend_failed_documents
from edi_outbound.services.pipeline import run_order_pipeline as run_pipeline
from edi_outbound.services.transfer import transport_factory

logger = logging.getLogger(__name__)

RETRY_BACKOFF_SEC = 60


def _failure(exc: PipelineError) -> dict[str, Any]:
    return {"status": "failed", "error": str(exc), "error_type": exc.__class__.__name__}


# Hard timeout 5 minutes, soft timeout 4.5 minutes: one order is a handful of
# small files, anything longer is a hung connection.
@celery_app.task(
    bind=True,
    name="dispatch.run_order_pipeline",
    time_limit=300,
    soft_time_limit=270,
    acks_late=True,
)
def run_order_pipeline(
    self,
    order_id: int | str,
    *,
    capacity: int | None = None,
    allow_split: bool = True,
    carrier: str | None = None,
    tracking_numbers: list[str] | None = None,
    package_type: str = "PARCEL",
    force: bool = False,
    repack: bool = False,
) -> dict[str, Any]:
    started = time.perf_counter()
    settings = get_settings()
    logger.info("[dispatch.run_order_pipeline] order=%s task=%s", order_id, self.request.id)
    try:
        with Session(get_engine()) as ses:
            results = run_pipeline(
                ses,
                order_id,
                transport_factory(settings),
                settings,
                capacity=capacity,
                allow_split=allow_split,
                carrier=carrier,
                tracking_numbers=tracking_numbers,
                package_type=package_type,
                force=force,
                repack=repack,
            )
    except PipelineError as exc:
        logger.error("[dispatch.run_order_pipeline] order=%s failed: %s", order_id, exc)
        return _failure(exc)
    except SoftTimeLimitExceeded:
        logger.error("[dispatch.run_order_pipeline] order=%s hit the soft time limit", order_id)
        raise
    return {
        "status": "done",
        "order_id": order_id,
        "results": [r.to_dict() for r in results],
        "errors": sum(1 for r in results if r.status == ERROR),
        "elapsed_sec": round(time.perf_counter() - started, 3),
    }


@celery_app.task(
    bind=True,
    name="dispatch.send_dispatch_notification",
    time_limit=120,
    soft_time_limit=100,
    acks_late=True,
    max_retries=5,
)
def send_dispatch_notification(self, shipment_id: int, force: bool = False) -> dict[str, Any]:
    settings = get_settings()
    try:
        with Session(get_engine()) as ses:
            result = deliver_shipment_document(
                ses, shipment_id, transport_factory(settings), settings, force=force
            )
    except PipelineError as exc:
        logger.error("[dispatch.send_dispatch_notification] shipment=%s failed: %s", shipment_id, exc)
        return _failure(exc)

    if result.status == ERROR and self.request.retries < self.max_retries:
        countdown = RETRY_BACKOFF_SEC * (2 ** self.request.retries)
        logger.info(
            "[dispatch.send_dispatch_notification] shipment=%s retry %d in %ds",
            shipment_id, self.request.retries + 1, countdown,
        )
        raise self.retry(countdown=countdown)
    return result.to_dict()


@celery_app.task(name="dispatch.resend_failed", time_limit=600, soft_time_limit=540)
def resend_failed(limit: int = 100) -> dict[str, Any]:
    settings = get_settings()
    with Session(get_engine()) as ses:
        results = resend_failed_documents(ses, transport_factory(settings), settings, limit=limit)
    return {
        "retried": len(results),
        "errors": sum(1 for r in results if r.status == ERROR),
        "results": [r.to_dict() for r in results],
    }
