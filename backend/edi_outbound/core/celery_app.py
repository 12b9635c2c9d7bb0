"""
Central Celery application object for the outbound EDI backend.

Usage
-----
* **Worker**: ``celery -A edi_outbound.core.celery_app worker -Q dispatch --loglevel=info``
* **Beat (scheduled resend of failed documents)**:
  ``celery -A edi_outbound.core.celery_app beat --loglevel=info``

The broker/result backend URLs can be overridden via environment variables:

    CELERY_BROKER_URL   (default: redis://localhost:6379/0)
    CELERY_RESULT_BACKEND (default: same as broker)
"""

from __future__ import annotations

import os
from datetime import timedelta

from celery import Celery
from kombu import Exchange, Queue

# --------------------------------------------------------------------------- #
# Configuration via environment variables                                     #
# --------------------------------------------------------------------------- #

BROKER_URL: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
RESULT_BACKEND: str = os.getenv("CELERY_RESULT_BACKEND", BROKER_URL)
TIMEZONE: str = os.getenv("APP_TIMEZONE", "Europe/Zurich")
RESEND_INTERVAL_MINUTES: int = int(os.getenv("EDI_RESEND_INTERVAL_MINUTES", "15"))

# --------------------------------------------------------------------------- #
# Celery application                                                          #
# --------------------------------------------------------------------------- #

celery_app = Celery(
    "edi_outbound",
    broker=BROKER_URL,
    backend=RESULT_BACKEND,
    include=[
        "edi_outbound.services.dispatch_tasks",
    ],
)

# --------------------------------------------------------------------------- #
# Default settings                                                            #
# --------------------------------------------------------------------------- #

celery_app.conf.update(
    # Serialisation
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # Reliability: a pipeline run is idempotent (filename upsert), so a
    # redelivered message after a worker crash is safe
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # one order per worker slot; transfers are blocking I/O
    worker_prefetch_multiplier=1,
    # Time
    timezone=TIMEZONE,
    enable_utc=True,
    # Queues / routing
    task_default_queue="default",
    task_default_exchange="default",
    task_default_routing_key="default",
    task_queues=(
        Queue("default", Exchange("default"), routing_key="default"),
        Queue("dispatch", Exchange("dispatch"), routing_key="dispatch"),
    ),
    task_routes={"dispatch.*": {"queue": "dispatch"}},
    # Result expiry
    result_expires=timedelta(days=1),
    beat_schedule={
        "resend-failed-dispatch-notifications": {
            "task": "dispatch.resend_failed",
            "schedule": timedelta(minutes=RESEND_INTERVAL_MINUTES),
        },
    },
)

# --------------------------------------------------------------------------- #
# Helper for FastAPI integration                                              #
# --------------------------------------------------------------------------- #


def init_celery() -> None:  # called from FastAPI startup
    """
    Import all celery tasks so they are registered when the web API
    process (uvicorn) starts and ``.delay`` can be called from a router.
    """
    from importlib import import_module

    for module in celery_app.conf.include:
        import_module(module)
