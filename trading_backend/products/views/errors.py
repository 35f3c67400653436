# products/views/errors.py

"""
API ERROR NORMALIZATION

Canonical error body shared by every staff endpoint:

    {"error": {"code": "INSUFFICIENT_STOCK", "message": "...", ...context}}

Domain errors carry their own `code` and `context()`; this module only maps
them onto HTTP status codes.
"""

from django.core.exceptions import ObjectDoesNotExist, ValidationError
from rest_framework import status
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response

from products.services.exceptions import (
    BatchInUseError,
    DuplicateBatchNumberError,
    InsufficientStockError,
    QuantityBelowSoldError,
)

CONFLICT_ERRORS = (
    InsufficientStockError,
    QuantityBelowSoldError,
    DuplicateBatchNumberError,
    BatchInUseError,
)


def error_response(*, code: str, message: str, http_status: int, **context):
    """
    Canonical API error response.
    """
    body = {"code": code, "message": message}
    body.update({k: v for k, v in context.items() if v is not None})
    return Response({"error": body}, status=http_status)


def _validation_message(exc: ValidationError) -> str:
    if hasattr(exc, "message_dict"):
        return "; ".join(f"{field}: {' '.join(msgs)}" for field, msgs in exc.message_dict.items())
    return " ".join(exc.messages)


def domain_error_response(exc: Exception, *, conflict=()):
    """
    Map a domain exception onto the canonical body.

    conflict: extra exception classes (workflow state errors) answered with 409.
    Anything not recognised is re-raised for DRF / Django to handle.
    """
    if isinstance(exc, ObjectDoesNotExist):
        return error_response(
            code="NOT_FOUND",
            message=str(exc) or "Referenced object does not exist",
            http_status=status.HTTP_404_NOT_FOUND,
        )

    if isinstance(exc, ValidationError):
        return error_response(
            code="VALIDATION_ERROR",
            message=_validation_message(exc),
            http_status=status.HTTP_400_BAD_REQUEST,
        )

    code = getattr(exc, "code", None)
    context_fn = getattr(exc, "context", None)
    if not code or not callable(context_fn):
        raise exc

    if isinstance(exc, CONFLICT_ERRORS) or isinstance(exc, tuple(conflict)):
        http_status = status.HTTP_409_CONFLICT
    else:
        # workflow validation errors stay 400s
        http_status = status.HTTP_400_BAD_REQUEST

    return error_response(
        code=code.upper(),
        message=str(exc),
        http_status=http_status,
        **context_fn(),
    )


def raise_drf_validation(exc: ValidationError):
    """Re-raise a model ValidationError as a DRF one (400 with field messages)."""
    detail = exc.message_dict if hasattr(exc, "message_dict") else exc.messages
    raise DRFValidationError(detail) from exc
