"""
Error taxonomy for the donation/inventory core, plus the FastAPI handlers that
render it.

Every domain failure is a ``BloodChainError`` subclass carrying a stable
``kind`` string and a ``context`` dict (entity ids, quantities, reasons) so a
caller can build a message without parsing text.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class BloodChainError(Exception):
    kind = "BloodChainError"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "message": self.message,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if hasattr(value, "value"):  # enums
        return value.value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


class InvalidField(BloodChainError):
    """A value outside a closed set, e.g. an unknown blood group or urgency."""
    kind = "InvalidField"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, field: str, value: Any):
        super().__init__(f"Invalid {field}: {value!r}", field=field, value=value)


# Donor registry

class NotRegistered(BloodChainError):
    kind = "NotRegistered"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, identity: str):
        super().__init__(f"Donor {identity} is not registered", identity=identity)


class AlreadyRegistered(BloodChainError):
    kind = "AlreadyRegistered"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, identity: str):
        super().__init__(f"Donor {identity} is already registered", identity=identity)


# Scheduling

class InvalidSchedule(BloodChainError):
    kind = "InvalidSchedule"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class EligibilityWindowViolation(BloodChainError):
    kind = "EligibilityWindowViolation"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class DuplicateSchedule(BloodChainError):
    kind = "DuplicateSchedule"
    status_code = status.HTTP_409_CONFLICT


class ScheduleNotFound(BloodChainError):
    kind = "ScheduleNotFound"
    status_code = status.HTTP_404_NOT_FOUND


class AlreadyCompleted(BloodChainError):
    kind = "AlreadyCompleted"
    status_code = status.HTTP_409_CONFLICT


# Inventory

class InsufficientInventory(BloodChainError):
    kind = "InsufficientInventory"
    status_code = status.HTTP_409_CONFLICT


class InvalidQuantity(BloodChainError):
    kind = "InvalidQuantity"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


# Request lifecycle

class RequestNotFound(BloodChainError):
    kind = "RequestNotFound"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, request_id: Any):
        super().__init__(f"Blood request {request_id} not found", request_id=request_id)


class InvalidTransition(BloodChainError):
    kind = "InvalidTransition"
    status_code = status.HTTP_409_CONFLICT


class MissingReason(BloodChainError):
    kind = "MissingReason"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


# Collaborator

class ConcurrentUpdate(BloodChainError):
    """A guarded ledger write found the record changed since it was read (or already present)."""
    kind = "ConcurrentUpdate"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, entity: str, key: Any):
        super().__init__(f"{entity} {key} was changed by another writer", entity=entity, key=key)
        self.entity = entity


class LedgerFailure(BloodChainError):
    """Wraps any error raised by the ledger collaborator; the original is kept as __cause__."""
    kind = "LedgerFailure"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, operation: str, detail: Optional[str] = None):
        super().__init__(
            f"Ledger operation '{operation}' failed" + (f": {detail}" if detail else ""),
            operation=operation,
        )


# FastAPI handlers

async def bloodchain_exception_handler(request: Request, exc: BloodChainError):
    request_id = getattr(request.state, "request_id", "N/A")
    if isinstance(exc, LedgerFailure):
        logger.error(f"{exc.kind}: {exc.message}", extra={"request_id": request_id})
    else:
        logger.warning(f"{exc.kind}: {exc.message}", extra={"request_id": request_id})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "HTTPError", "message": exc.detail, "context": {}},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "context": {"errors": [
                {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()
            ]},
        },
    )


async def general_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", "N/A")
    logger.exception(f"Unhandled error: {exc}", extra={"request_id": request_id})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "InternalError", "message": "Internal server error", "context": {}},
    )
