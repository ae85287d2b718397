"""Error taxonomy for the reseller ledger.

Services raise these; the API layer turns them into JSON responses with
``{"detail": ..., "code": ...}``. HTTPException stays reserved for
authentication failures in ``app.api.deps``.
"""
from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class LedgerError(Exception):
    code: str = "ledger_error"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "", *, details: dict | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details


class ValidationError(LedgerError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDenied(LedgerError):
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(LedgerError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class LimitExceeded(LedgerError):
    code = "limit_exceeded"
    status_code = status.HTTP_409_CONFLICT


class InsufficientBalance(LedgerError):
    code = "insufficient_balance"
    status_code = status.HTTP_400_BAD_REQUEST


class ConcurrencyConflict(LedgerError):
    code = "concurrency_conflict"
    status_code = status.HTTP_409_CONFLICT


class DuplicateRequest(LedgerError):
    code = "duplicate_request"
    status_code = status.HTTP_409_CONFLICT


class DependencyUnavailable(LedgerError):
    code = "dependency_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def _ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    body: dict = {"detail": exc.message, "code": exc.code}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerError, _ledger_error_handler)
