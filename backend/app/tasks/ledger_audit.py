from __future__ import annotations
import asyncio
import logging

from app.core.celery_app import celery_app
from app.core.config import settings
from app.core.db import AsyncSessionLocal
from app.services.ledger_audit import audit_ledgers as run_audit
from app.services.locks import redis_lock

logger = logging.getLogger(__name__)

@celery_app.task(name="app.tasks.ledger_audit.audit_ledgers")
def audit_ledgers():
    lock_ttl = max(600, int(settings.LEDGER_AUDIT_SECONDS or 3600))
    with redis_lock("audit_ledgers", ttl_seconds=lock_ttl) as ok:
        if not ok:
            logger.info("audit_ledgers skipped: lock not acquired")
            return None
        return asyncio.run(_audit_ledgers_async())


# internal

async def _audit_ledgers_async() -> dict:
    async with AsyncSessionLocal() as db:
        stats, findings = await run_audit(db)
    if findings:
        logger.warning("audit_ledgers found %s inconsistencies across %s resellers", stats.findings, stats.inconsistent_resellers)
    return stats.as_dict()
