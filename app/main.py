import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any, Optional

from fastapi import FastAPI, Response, Request, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.storage import (
    init_db,
    check_db_health,
    get_db,
    create_submission,
    list_submissions,
    get_usage_count,
    increment_usage_count,
)
from app.logging_utils import setup_logging, RequestLoggingMiddleware, log_request_data
from app.metrics import (
    record_ai_improve_outcome,
    record_submission_outcome,
    get_metrics,
    get_metrics_content_type,
)
from app.schemas import (
    AIImproveData,
    AIImproveRequest,
    ContactFormRequest,
    HealthResponse,
    SubmissionResponse,
    SubmissionsData,
    SubmitData,
    UsageData,
    UserNameQuery,
)
from app.text_improver import GeminiTextImprover, TextImprovementError, get_text_improver
from app.utils import envelope_response, format_validation_errors, validate_payload


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

AI_UNAVAILABLE_MESSAGE = "AI сервис временно недоступен"
AI_FAILED_MESSAGE = "Не удалось улучшить сообщение. Попробуйте позже."
INTERNAL_ERROR_MESSAGE = "Внутренняя ошибка сервера"
MISSING_NAME_PARAM_MESSAGE = "Параметр name обязателен"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="Contact Form API",
    description="Contact-form submissions with optional AI rewriting of the message",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return envelope_response(exc.status_code, error=str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return envelope_response(status.HTTP_500_INTERNAL_SERVER_ERROR, error=INTERNAL_ERROR_MESSAGE)


async def read_json_body(request: Request) -> Any:
    """Parsed JSON body, or None when the body is not valid JSON."""
    try:
        return await request.json()
    except ValueError as e:
        logger.debug(f"Invalid JSON body: {e}")
        return None


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness check - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness check - returns 200 only if the DB is reachable and both
    tables exist, otherwise 503.

    A missing GEMINI_API_KEY does not make the service unready: only the
    improve endpoint depends on it.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# AI Routes
# =============================================================================

def bump_usage_count(db: Session, user_name: str) -> None:
    """
    Best-effort counter increment after a successful rewrite.

    Failures are logged and swallowed: the rewrite already happened.
    """
    try:
        new_count = increment_usage_count(db, user_name)
    except SQLAlchemyError as e:
        logger.error(f"Error updating AI usage count for {user_name}: {e}")
        return

    if new_count is None:
        logger.warning(f"AI usage not counted, no user row for: {user_name}")
    else:
        logger.debug(f"AI usage count for {user_name} is now {new_count}")


@app.post("/api/ai/improve")
async def improve_message(
    request: Request,
    improver: GeminiTextImprover = Depends(get_text_improver),
    db: Session = Depends(get_db),
) -> Response:
    """
    Rewrite a message through the generative-language provider.

    Body: ``{"message": str, "userName": str}``

    Statuses:
        - 200 ``{improvedMessage, tokensUsed?}``
        - 400 validation error
        - 429 provider rate limit / quota
        - 500 provider not configured, auth failure, or generic failure
        - 504 provider timeout
    """
    # Credential first: no point parsing a body we cannot act on
    if not settings.GEMINI_API_KEY:
        logger.error("GEMINI_API_KEY is not configured")
        record_ai_improve_outcome("not_configured")
        log_request_data(request, result="not_configured")
        return envelope_response(status.HTTP_500_INTERNAL_SERVER_ERROR, error=AI_UNAVAILABLE_MESSAGE)

    payload = await read_json_body(request)
    improve_request, errors = validate_payload(AIImproveRequest, payload)
    if errors:
        record_ai_improve_outcome("validation_error")
        log_request_data(request, result="validation_error")
        return envelope_response(status.HTTP_400_BAD_REQUEST, error=format_validation_errors(errors))

    user_name = improve_request.user_name

    try:
        result = await improver.improve(improve_request.message)
    except TextImprovementError as e:
        logger.error(f"Message improvement failed for {user_name}: {type(e).__name__}: {e}")
        record_ai_improve_outcome(e.result)
        log_request_data(request, user_name=user_name, result=e.result)
        return envelope_response(e.status_code, error=e.user_message)
    except Exception as e:
        logger.exception(f"Unexpected error improving message for {user_name}: {e}")
        record_ai_improve_outcome("error")
        log_request_data(request, user_name=user_name, result="error")
        return envelope_response(status.HTTP_500_INTERNAL_SERVER_ERROR, error=AI_FAILED_MESSAGE)

    bump_usage_count(db, user_name)

    record_ai_improve_outcome("success")
    log_request_data(request, user_name=user_name, result="success")
    return envelope_response(
        status.HTTP_200_OK,
        data=AIImproveData(improved_message=result.improved_message, tokens_used=result.tokens_used),
    )


@app.get("/api/ai/usage")
def get_ai_usage(
    request: Request,
    name: Annotated[Optional[str], Query(description="User name")] = None,
    db: Session = Depends(get_db),
) -> Response:
    """
    Return how many times ``name`` has used the AI rewrite.

    Unknown names are a 404, unlike the submissions listing.
    """
    query, errors = validate_payload(UserNameQuery, {"name": name})
    if errors:
        return envelope_response(status.HTTP_400_BAD_REQUEST, error=format_validation_errors(errors))

    log_request_data(request, user_name=query.name)

    try:
        count = get_usage_count(db, query.name)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching AI usage count for {query.name}: {e}")
        return envelope_response(status.HTTP_500_INTERNAL_SERVER_ERROR, error="Ошибка при получении данных")

    if count is None:
        return envelope_response(status.HTTP_404_NOT_FOUND, error="Пользователь не найден")

    return envelope_response(status.HTTP_200_OK, data=UsageData(count=count))


# =============================================================================
# Submission Routes
# =============================================================================

@app.get("/api/submissions")
def get_submissions(
    request: Request,
    name: Annotated[Optional[str], Query(description="User name")] = None,
    db: Session = Depends(get_db),
) -> Response:
    """
    List the submissions of ``name``, newest first.

    An unknown name yields an empty list, not an error.
    """
    if name is None:
        return envelope_response(status.HTTP_400_BAD_REQUEST, error=MISSING_NAME_PARAM_MESSAGE)

    query, errors = validate_payload(UserNameQuery, {"name": name})
    if errors:
        return envelope_response(status.HTTP_400_BAD_REQUEST, error=format_validation_errors(errors))

    log_request_data(request, user_name=query.name)

    try:
        submissions = list_submissions(db, query.name)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching submissions for {query.name}: {e}")
        return envelope_response(status.HTTP_500_INTERNAL_SERVER_ERROR, error="Ошибка при получении отправок")

    data = SubmissionsData(
        submissions=[SubmissionResponse.model_validate(s) for s in submissions]
    )
    logger.info(f"GET /api/submissions: returned {len(data.submissions)} submissions")
    return envelope_response(status.HTTP_200_OK, data=data)


@app.post("/api/submit")
async def submit_form(
    request: Request,
    db: Session = Depends(get_db),
) -> Response:
    """
    Store a contact-form submission.

    Body: ``{"name", "email", "subject", "message"}``. The user row for
    ``name`` is created on first contact.
    """
    payload = await read_json_body(request)
    form, errors = validate_payload(ContactFormRequest, payload)
    if errors:
        record_submission_outcome("validation_error")
        log_request_data(request, result="validation_error")
        return envelope_response(status.HTTP_400_BAD_REQUEST, error=format_validation_errors(errors))

    submission = create_submission(
        db=db,
        name=form.name,
        email=form.email,
        subject=form.subject.value,
        message=form.message,
    )

    if submission is None:
        record_submission_outcome("error")
        log_request_data(request, user_name=form.name, result="error")
        return envelope_response(status.HTTP_500_INTERNAL_SERVER_ERROR, error="Ошибка при сохранении отправки")

    record_submission_outcome("created")
    log_request_data(request, user_name=form.name, result="created")
    return envelope_response(status.HTTP_200_OK, data=SubmitData(id=submission.id))


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
