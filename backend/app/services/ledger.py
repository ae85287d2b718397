"""Balance ledger.

``append_entry`` is the only code path that changes ``Reseller.balance``.
It issues a single conditional UPDATE (balance and ledger sequence bumped
together, debits guarded by ``balance + amount >= 0``) and writes the
matching ledger row in the same database transaction. The row lock taken by
the UPDATE is held until the caller commits, so concurrent entries against
one reseller serialize in sequence order.

``run_ledger_unit`` wraps a unit of work: commit on success, rollback on any
error, bounded retry on deadlock / serialization failures.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import (
    ConcurrencyConflict,
    DependencyUnavailable,
    DuplicateRequest,
    InsufficientBalance,
    NotFound,
    ValidationError,
)
from app.models.ledger import ResellerTransaction, TransactionType
from app.models.reseller import Reseller

logger = logging.getLogger(__name__)

T = TypeVar("T")

# deadlock_detected / serialization_failure
_RETRYABLE_SQLSTATES = {"40P01", "40001"}
_RETRYABLE_MESSAGES = ("deadlock detected", "could not serialize", "database is locked")


async def ensure_new_idempotency_key(db: AsyncSession, reseller_id: int, idempotency_key: str) -> None:
    q = await db.execute(
        select(ResellerTransaction.id).where(
            ResellerTransaction.reseller_id == reseller_id,
            ResellerTransaction.idempotency_key == idempotency_key,
        )
    )
    if q.first() is not None:
        raise DuplicateRequest("Request already processed", details={"idempotency_key": idempotency_key})


async def append_entry(
    db: AsyncSession,
    *,
    tenant_id: int,
    reseller_id: int,
    type: TransactionType,
    amount: int,
    customer_id: int | None = None,
    from_reseller_id: int | None = None,
    to_reseller_id: int | None = None,
    reference_id: str | None = None,
    reference_type: str | None = None,
    description: str | None = None,
    idempotency_key: str | None = None,
    created_by: str | None = None,
) -> ResellerTransaction:
    """Apply ``amount`` to the reseller balance and record it.

    Does not commit. Raises NotFound for a missing, inactive or foreign
    reseller and InsufficientBalance when a debit would go below zero; in
    both cases nothing has been written.
    """
    amount = int(amount)
    if amount == 0:
        raise ValidationError("Ledger amount must not be zero")
    if idempotency_key:
        await ensure_new_idempotency_key(db, reseller_id, idempotency_key)

    stmt = update(Reseller).where(
        Reseller.id == reseller_id,
        Reseller.tenant_id == tenant_id,
        Reseller.is_active.is_(True),
    )
    if amount < 0:
        stmt = stmt.where(Reseller.balance + amount >= 0)
    stmt = stmt.values(
        balance=Reseller.balance + amount,
        version=Reseller.version + 1,
    ).execution_options(synchronize_session=False)

    res = await db.execute(stmt)
    if res.rowcount != 1:
        q = await db.execute(
            select(Reseller.balance).where(
                Reseller.id == reseller_id,
                Reseller.tenant_id == tenant_id,
                Reseller.is_active.is_(True),
            )
        )
        current = q.scalar_one_or_none()
        if current is None:
            raise NotFound("Reseller not found")
        raise InsufficientBalance(
            f"Insufficient balance. Need {-amount}, have {current}",
            details={"reseller_id": reseller_id, "required": -amount, "available": current},
        )

    q = await db.execute(
        select(Reseller).where(Reseller.id == reseller_id).execution_options(populate_existing=True)
    )
    reseller = q.scalar_one()

    tx = ResellerTransaction(
        tenant_id=tenant_id,
        reseller_id=reseller_id,
        type=type,
        amount=amount,
        balance_before=reseller.balance - amount,
        balance_after=reseller.balance,
        sequence=reseller.version,
        customer_id=customer_id,
        from_reseller_id=from_reseller_id,
        to_reseller_id=to_reseller_id,
        reference_id=reference_id,
        reference_type=reference_type,
        description=description,
        idempotency_key=idempotency_key,
        created_by=created_by,
    )
    db.add(tx)
    await db.flush()
    logger.info(
        "ledger append reseller_id=%s type=%s amount=%s balance_after=%s seq=%s",
        reseller_id, type.value, amount, tx.balance_after, tx.sequence,
    )
    return tx


async def get_transactions(
    db: AsyncSession,
    tenant_id: int,
    reseller_id: int,
    *,
    limit: int = 200,
    offset: int = 0,
    type: TransactionType | None = None,
) -> tuple[list[ResellerTransaction], int]:
    """Ledger rows of one reseller, newest first."""
    q = await db.execute(select(Reseller.id).where(Reseller.id == reseller_id, Reseller.tenant_id == tenant_id))
    if q.scalar_one_or_none() is None:
        raise NotFound("Reseller not found")

    stmt = select(ResellerTransaction).where(
        ResellerTransaction.reseller_id == reseller_id,
        ResellerTransaction.tenant_id == tenant_id,
    )
    if type is not None:
        stmt = stmt.where(ResellerTransaction.type == type)
    total_q = await db.execute(select(func.count()).select_from(stmt.subquery()))
    total = int(total_q.scalar_one())
    q = await db.execute(stmt.order_by(desc(ResellerTransaction.sequence)).limit(limit).offset(offset))
    return list(q.scalars().all()), total


# unit of work

def _sqlstate(e: DBAPIError) -> str | None:
    orig = getattr(e, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _driver_message(e: DBAPIError) -> str:
    # str(e) also carries the SQL text, which names every column
    return str(getattr(e, "orig", None) or e).lower()


def _is_retryable(e: DBAPIError) -> bool:
    if _sqlstate(e) in _RETRYABLE_SQLSTATES:
        return True
    msg = _driver_message(e)
    return any(m in msg for m in _RETRYABLE_MESSAGES)


def _is_idempotency_violation(e: IntegrityError) -> bool:
    return "idempotency" in _driver_message(e)


def _is_sequence_violation(e: IntegrityError) -> bool:
    msg = _driver_message(e)
    return "uq_reseller_tx_sequence" in msg or "reseller_transactions.sequence" in msg


async def run_ledger_unit(
    db: AsyncSession,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    attempts: int | None = None,
) -> T:
    """Run ``work(db)`` and commit it as one transaction.

    ``work`` must load everything it needs from ``db`` itself: a retry starts
    from a rolled-back session.
    """
    attempts = max(1, int(attempts or settings.LEDGER_RETRY_ATTEMPTS))
    backoff = max(0, settings.LEDGER_RETRY_BACKOFF_MS) / 1000.0

    for attempt in range(1, attempts + 1):
        try:
            result = await work(db)
            await db.commit()
            return result
        except IntegrityError as e:
            await db.rollback()
            if _is_idempotency_violation(e):
                raise DuplicateRequest("Request already processed") from e
            if not _is_sequence_violation(e):
                raise
            reason = "sequence"
        except DBAPIError as e:
            await db.rollback()
            if not _is_retryable(e):
                if isinstance(e, (OperationalError, InterfaceError)):
                    raise DependencyUnavailable("Database unavailable") from e
                raise
            reason = _sqlstate(e) or "locked"
        except (ConnectionError, asyncio.TimeoutError) as e:
            await db.rollback()
            raise DependencyUnavailable("Database unavailable") from e
        except Exception:
            await db.rollback()
            raise

        logger.warning("ledger unit conflict attempt=%s/%s reason=%s", attempt, attempts, reason)
        if attempt < attempts and backoff:
            await asyncio.sleep(backoff * attempt)

    raise ConcurrencyConflict("Ledger is busy, please retry")
