"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation, each carrying its own
  catalog of user-facing field messages
- Response models, wrapped in the uniform ``APIResponse`` envelope
"""

from enum import Enum
from typing import ClassVar, Generic, List, Optional, TypeVar

import email_validator
from pydantic import BaseModel, Field, field_validator


MESSAGE_MIN_LENGTH = 50
MESSAGE_MAX_LENGTH = 1000

# Reserved names (.test, .local, .localhost, ...) are still well-formed addresses
for _reserved in ("local", "localhost", "test", "onion", "invalid", "arpa"):
    if _reserved in email_validator.SPECIAL_USE_DOMAIN_NAMES:
        email_validator.SPECIAL_USE_DOMAIN_NAMES.remove(_reserved)


class Subject(str, Enum):
    """The four subjects a contact-form submission may carry."""
    GENERAL_INQUIRY = "Общий запрос"
    BUG_REPORT = "Сообщение об ошибке"
    FEATURE_REQUEST = "Запрос функции"
    BILLING_QUESTION = "Вопрос о выставлении счета"


# =============================================================================
# Pydantic Request Models
# =============================================================================

class ValidatedRequest(BaseModel):
    """
    Base for request models.

    ``field_messages`` maps a field name to the message shown when that
    field fails. A ``(field, error_type)`` key overrides it for one
    specific pydantic error type.
    """
    field_messages: ClassVar[dict] = {}


class ContactFormRequest(ValidatedRequest):
    """
    Contact-form submission.

    Validates:
    - name: non-empty string
    - email: standard email syntax
    - subject: one of the four Subject values
    - message: 50 to 1000 characters inclusive, kept verbatim
    """
    name: str = Field(..., min_length=1, description="Free-text user name")
    email: str = Field(..., description="Contact email, stored as typed")
    subject: Subject = Field(..., description="Subject of the request")
    message: str = Field(
        ...,
        min_length=MESSAGE_MIN_LENGTH,
        max_length=MESSAGE_MAX_LENGTH,
        description="Message text",
    )

    field_messages: ClassVar[dict] = {
        "name": "Имя обязательно",
        "email": "Некорректный email",
        "subject": "Выберите тему обращения",
        "message": f"Сообщение должно содержать минимум {MESSAGE_MIN_LENGTH} символов",
        ("message", "string_too_long"): f"Сообщение не должно превышать {MESSAGE_MAX_LENGTH} символов",
    }

    @field_validator("email")
    @classmethod
    def validate_email_syntax(cls, v: str) -> str:
        """Check syntax only: no DNS lookups, and the address is kept exactly as typed."""
        email_validator.validate_email(v, check_deliverability=False)
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Ann",
                    "email": "ann@x.com",
                    "subject": "Общий запрос",
                    "message": "Здравствуйте! Не могу найти, где поменять адрес доставки в профиле.",
                }
            ]
        }
    }


class AIImproveRequest(ValidatedRequest):
    """
    Request to rewrite a message. Only non-emptiness is checked here;
    the length bounds apply again when the result is submitted.
    """
    message: str = Field(..., min_length=1)
    user_name: str = Field(..., min_length=1, alias="userName")

    field_messages: ClassVar[dict] = {
        "message": "Сообщение не может быть пустым",
        "userName": "Имя пользователя обязательно",
    }

    model_config = {"populate_by_name": True}


class UserNameQuery(ValidatedRequest):
    """Query parameters of the list-submissions and usage endpoints."""
    name: str = Field(..., min_length=1)

    field_messages: ClassVar[dict] = {
        "name": "Имя пользователя обязательно",
    }


# =============================================================================
# Pydantic Response Models
# =============================================================================

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """Uniform envelope. ``success`` is False exactly when ``error`` is set."""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None


class SubmitData(BaseModel):
    id: str


class SubmissionResponse(BaseModel):
    """A stored submission as returned by the history endpoint."""
    id: str
    user_name: str
    email: str
    subject: str
    message: str
    created_at: str

    model_config = {"from_attributes": True}


class SubmissionsData(BaseModel):
    submissions: List[SubmissionResponse] = Field(default_factory=list)


class UsageData(BaseModel):
    count: int = Field(..., ge=0)


class AIImproveData(BaseModel):
    improved_message: str = Field(..., serialization_alias="improvedMessage")
    tokens_used: Optional[int] = Field(None, serialization_alias="tokensUsed")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
