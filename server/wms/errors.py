"""Error taxonomy of the fulfillment engine.

Every failure the engine reports is a ``FulfillmentError``. Routers turn them into
``HTTPException`` responses with a ``{"code", "message", "details"}`` body so the
presentation layer can map them to operator-facing messages.
"""

from decimal import Decimal
from typing import Any
import logging

from fastapi import HTTPException


logger = logging.getLogger(__name__)


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: _json_value(inner) for key, inner in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_value(inner) for inner in value]
    return value


class FulfillmentError(ValueError):
    code = "FULFILLMENT_ERROR"
    http_status = 400
    retryable = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": _json_value(self.details),
        }


class ValidationError(FulfillmentError):
    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(FulfillmentError):
    code = "NOT_FOUND"
    http_status = 404


class StateConflictError(FulfillmentError):
    code = "STATE_CONFLICT"
    http_status = 409


class InsufficientStockError(FulfillmentError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, message: str, *, item_id: int, requested: Decimal, available: Decimal, **details: Any):
        super().__init__(message, item_id=item_id, requested=requested, available=available, **details)
        self.item_id = item_id
        self.requested = requested
        self.available = available

    @property
    def shortfall(self) -> Decimal:
        return Decimal(self.requested) - Decimal(self.available)


class InsufficientCapacityError(FulfillmentError):
    code = "INSUFFICIENT_CAPACITY"
    http_status = 409

    def __init__(self, message: str, *, location_id: int, requested: Decimal, available: Decimal, **details: Any):
        super().__init__(message, location_id=location_id, requested=requested, available=available, **details)
        self.location_id = location_id
        self.requested = requested
        self.available = available


class ConcurrencyConflictError(FulfillmentError):
    code = "CONCURRENCY_CONFLICT"
    http_status = 409
    retryable = True


def http_exception(exc: FulfillmentError) -> HTTPException:
    logger.warning("Rejected with %s: %s", exc.code, exc.message)
    return HTTPException(status_code=exc.http_status, detail=exc.to_dict())
