"""
Utility functions for the contact-form API: turning pydantic errors into
user-facing field messages, and building enveloped responses.
"""

import logging
from typing import Any, List, Optional, Tuple, Type, TypeVar

from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.schemas import APIResponse, ValidatedRequest

logger = logging.getLogger(__name__)

VALIDATION_PREFIX = "Некорректные данные: "
INVALID_BODY_MESSAGE = "Ожидался JSON-объект"

FieldErrors = List[Tuple[str, str]]
M = TypeVar("M", bound=ValidatedRequest)


def validation_error_catalog(exc: ValidationError, model: Type[ValidatedRequest]) -> FieldErrors:
    """
    Map a pydantic ValidationError to ``(field, message)`` pairs.

    One entry per failing field, in the order pydantic reported them.
    """
    catalog: FieldErrors = []
    seen = set()
    for error in exc.errors():
        loc = error.get("loc") or ()
        field = str(loc[0]) if loc else "body"
        if field in seen:
            continue
        seen.add(field)
        message = model.field_messages.get(
            (field, error.get("type")),
            model.field_messages.get(field, error.get("msg", "")),
        )
        catalog.append((field, message))
    return catalog


def validate_payload(model: Type[M], payload: Any) -> Tuple[Optional[M], FieldErrors]:
    """
    Validate raw input against ``model`` without raising.

    Returns:
        (instance, []) on success, (None, catalog) on failure.
    """
    if not isinstance(payload, dict):
        return None, [("body", INVALID_BODY_MESSAGE)]
    try:
        return model.model_validate(payload), []
    except ValidationError as e:
        catalog = validation_error_catalog(e, model)
        logger.debug(f"Validation failed for {model.__name__}: {catalog}")
        return None, catalog


def format_validation_errors(catalog: FieldErrors) -> str:
    """Join every failing field's message into one human-readable string."""
    return VALIDATION_PREFIX + ", ".join(message for _, message in catalog)


def envelope_response(
    status_code: int,
    data: Any = None,
    error: Optional[str] = None,
) -> JSONResponse:
    """
    Build a JSONResponse wrapped in the ``{success, data?, error?}`` envelope.

    ``success`` is derived from the status code so the two always agree.
    Absent fields are omitted rather than sent as null.
    """
    envelope = APIResponse[Any](
        success=200 <= status_code < 300,
        data=data,
        error=error,
    )
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
