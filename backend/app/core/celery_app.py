from __future__ import annotations
from celery import Celery
from celery.signals import worker_ready
import logging
from app.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "reseller_ledger",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["app.tasks.ledger_audit"],
)

celery_app.conf.timezone = "UTC"

audit_every = max(300, min(86400, int(settings.LEDGER_AUDIT_SECONDS or 3600)))

celery_app.conf.beat_schedule = {
    "audit_ledgers_every_interval": {
        "task": "app.tasks.ledger_audit.audit_ledgers",
        "schedule": float(audit_every),
    },
}


@worker_ready.connect
def _kickoff_audit(sender=None, **kwargs):
    app = getattr(sender, "app", celery_app)
    try:
        app.send_task("app.tasks.ledger_audit.audit_ledgers")
    except Exception as e:
        logger.warning("celery startup task dispatch failed task=%s err=%s", "audit_ledgers", str(e)[:220])
