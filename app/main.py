import json
import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

from app.auth import (
    SESSION_MAX_AGE,
    SessionContext,
    end_session,
    require_auth,
    start_session,
    verify_pin,
)
from app.config import settings
from app.errors import MissingPhoneNumbers, SendError
from app.lines import LineRegistry, get_line_registry
from app.logging_utils import RequestLoggingMiddleware, attach_log_data, setup_logging
from app.metrics import get_metrics, get_metrics_content_type, record_send_outcome, record_webhook_outcome
from app.models import ActionStatus
from app.provider import TelnyxGateway, get_gateway
from app.schemas import (
    ActionLogResponse,
    BusinessLineResponse,
    ContactRequest,
    ContactResponse,
    DashboardContact,
    DashboardResponse,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    MessageResponse,
    SendRequest,
    SendResponse,
    SuccessResponse,
    WebhookEnvelope,
)
from app.sender import send_sms
from app.storage import (
    check_db_health,
    delete_contact,
    get_conversation,
    get_db,
    get_recent_logs,
    init_db,
    list_contacts,
    log_action,
    save_contact,
)
from app.utils import is_e164
from app.webhooks import classify_event, handle_event


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

API_LOG_LIMIT = 100
DASHBOARD_LOG_LIMIT = 50
DASHBOARD_CONTACT_LIMIT = 100


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    lines = get_line_registry().lines
    logger.info(f"Business lines: {', '.join(f'{line.name} ({line.number})' for line in lines)}")
    yield


app = FastAPI(
    title="SMS Console",
    description="Multi-line SMS operator console on top of the Telnyx messaging API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    max_age=SESSION_MAX_AGE,
    https_only=settings.SESSION_COOKIE_SECURE,
    same_site="lax",
)
app.add_middleware(RequestLoggingMiddleware)


def error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error})


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if:
    1. TELNYX_API_KEY is set (non-empty)
    2. DB is reachable and schema is applied

    Otherwise returns 503 (Service Unavailable).
    """
    if not settings.TELNYX_API_KEY:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="TELNYX_API_KEY not configured")

    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="Database not reachable or schema not applied")

    return HealthResponse(status="ready")


# =============================================================================
# Session Routes
# =============================================================================

@app.post("/login", response_model=SuccessResponse, responses={401: {"model": ErrorResponse}})
async def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)):
    """Verify the operator PIN and open a session."""
    if not verify_pin(body.pin, settings.SEND_PIN):
        log_action(db, "LOGIN", "Failed PIN attempt", ActionStatus.ERROR.value)
        return error_response(status.HTTP_401_UNAUTHORIZED, "Invalid PIN. Access denied.")

    start_session(request)
    log_action(db, "LOGIN", "User authenticated successfully", ActionStatus.SUCCESS.value)
    return SuccessResponse(message="Authentication successful")


@app.post("/logout", response_model=SuccessResponse)
async def logout(request: Request, db: Session = Depends(get_db)) -> SuccessResponse:
    log_action(db, "LOGOUT", "User logged out", ActionStatus.SUCCESS.value)
    end_session(request)
    return SuccessResponse()


# =============================================================================
# Send Route
# =============================================================================

@app.post(
    "/send",
    response_model=SendResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Validation error"},
        401: {"description": "Authentication required"},
        500: {"model": ErrorResponse, "description": "Provider or internal error"},
    },
)
async def send(
    request: Request,
    body: SendRequest,
    _: SessionContext = Depends(require_auth),
    db: Session = Depends(get_db),
    gateway: TelnyxGateway = Depends(get_gateway),
    registry: LineRegistry = Depends(get_line_registry),
):
    """
    Send one SMS from a business line.

    Body:
        - from_number: business line number (E.164)
        - to_number: destination number (E.164)
        - message_content: SMS text

    Errors carry `error`, `reason` and, for provider failures, `details`,
    `from` and `to`.
    """
    attach_log_data(request, from_number=body.from_number, to_number=body.to_number)

    try:
        message = await send_sms(
            db,
            gateway,
            registry,
            body.from_number,
            body.to_number,
            body.message_content,
        )
    except SendError as e:
        record_send_outcome(e.reason)
        attach_log_data(request, result=e.reason)
        return JSONResponse(status_code=e.status_code, content=e.to_response())
    except Exception as e:
        logger.exception("Unexpected error while sending SMS")
        log_action(
            db,
            "SEND_SMS",
            f"Failed to send SMS from {body.from_number} to {body.to_number}: Error: {e}",
            ActionStatus.ERROR.value,
        )
        record_send_outcome("internal_error")
        attach_log_data(request, result="internal_error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Failed to send SMS",
                "reason": "internal_error",
                "from": body.from_number,
                "to": body.to_number,
            },
        )

    record_send_outcome("sent")
    attach_log_data(request, result="sent")
    return SendResponse(message_id=message.id if message is not None else None)


# =============================================================================
# Webhook Route
# =============================================================================

@app.post("/webhook", response_class=PlainTextResponse)
async def webhook(
    request: Request,
    db: Session = Depends(get_db),
    registry: LineRegistry = Depends(get_line_registry),
) -> PlainTextResponse:
    """
    Telnyx callback for inbound SMS and delivery status updates.

    Always answers 200 "OK", except:
        - 400 for message.received without phone numbers or a body that is
          not a JSON object
        - 500 on unexpected processing faults, so Telnyx retries
    """
    raw_body = await request.body()
    logger.debug(f"Webhook body size: {len(raw_body)} bytes")

    try:
        envelope = WebhookEnvelope.model_validate(json.loads(raw_body))
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
        logger.error(f"Invalid webhook body: {e}")
        log_action(db, "WEBHOOK", "Invalid webhook payload - malformed body", ActionStatus.ERROR.value)
        record_webhook_outcome("invalid", "malformed_body")
        attach_log_data(request, result="malformed_body")
        return PlainTextResponse("Invalid payload", status_code=status.HTTP_400_BAD_REQUEST)

    event = classify_event(envelope)
    event_type = envelope.data.event_type if envelope.data else None
    logger.info(f"Webhook event received: {event_type} ({event.kind})")

    try:
        result = handle_event(db, registry, event)
    except MissingPhoneNumbers:
        record_webhook_outcome(event.kind, "missing_phone_numbers")
        attach_log_data(request, event_type=event_type, result="missing_phone_numbers")
        return PlainTextResponse("Invalid payload", status_code=status.HTTP_400_BAD_REQUEST)
    except Exception as e:
        logger.exception("Webhook processing error")
        log_action(db, "WEBHOOK", f"Webhook processing error: {e}", ActionStatus.ERROR.value)
        record_webhook_outcome(event.kind, "error")
        attach_log_data(request, event_type=event_type, result="error")
        return PlainTextResponse(
            "Error processing webhook",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    record_webhook_outcome(event.kind, result)
    attach_log_data(request, event_type=event_type, result=result)
    return PlainTextResponse("OK")


# =============================================================================
# Conversation & Log Routes
# =============================================================================

@app.get("/api/messages/{phone}", response_model=list[MessageResponse])
async def conversation(phone: str, db: Session = Depends(get_db)) -> list[MessageResponse]:
    """Messages sent to or received from a phone number, oldest first."""
    messages = get_conversation(db, phone)
    logger.info(f"GET /api/messages: {len(messages)} messages for {phone}")
    return [MessageResponse.model_validate(m) for m in messages]


@app.get("/api/logs", response_model=list[ActionLogResponse])
async def action_logs(
    limit: Annotated[int, Query(ge=1, le=API_LOG_LIMIT, description="Maximum entries to return")] = API_LOG_LIMIT,
    db: Session = Depends(get_db),
) -> list[ActionLogResponse]:
    """Most recent action log entries first."""
    return [ActionLogResponse.model_validate(entry) for entry in get_recent_logs(db, limit)]


@app.get("/api/dashboard", response_model=DashboardResponse)
async def dashboard(
    contact: Annotated[Optional[str], Query(description="Phone of the conversation to show")] = None,
    _: SessionContext = Depends(require_auth),
    db: Session = Depends(get_db),
    registry: LineRegistry = Depends(get_line_registry),
) -> DashboardResponse:
    """
    Operator console data in one call.

    The selected conversation is the `contact` query value, otherwise the
    most recently active contact.
    """
    contacts = list_contacts(db, DASHBOARD_CONTACT_LIMIT)
    selected_phone = contact or (contacts[0].phone if contacts else None)

    contact_rows = []
    for c in contacts:
        line = registry.recommended_line(c.phone)
        contact_rows.append(
            DashboardContact(
                phone=c.phone,
                name=c.name,
                last_active=c.last_active,
                recommended_line=line.name,
                recommended_line_number=line.number,
            )
        )

    messages = get_conversation(db, selected_phone) if selected_phone else []

    return DashboardResponse(
        contacts=contact_rows,
        selected_phone=selected_phone,
        messages=[MessageResponse.model_validate(m) for m in messages],
        logs=[ActionLogResponse.model_validate(e) for e in get_recent_logs(db, DASHBOARD_LOG_LIMIT)],
        business_lines=[BusinessLineResponse.model_validate(line) for line in registry.lines],
    )


# =============================================================================
# Contact Routes
# =============================================================================

@app.post(
    "/api/contact",
    response_model=ContactResponse,
    responses={400: {"model": ErrorResponse}, 401: {"description": "Authentication required"}},
)
async def upsert_contact(
    body: ContactRequest,
    _: SessionContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Create a contact or rename an existing one."""
    if not body.phone:
        return error_response(status.HTTP_400_BAD_REQUEST, "Phone number is required")

    if not is_e164(body.phone):
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "Invalid phone number format. Must include country code (e.g., +36201234567)",
        )

    try:
        stored = save_contact(db, body.phone, body.name)
    except Exception as e:
        logger.exception("Error saving contact")
        log_action(db, "SAVE_CONTACT", f"Error saving contact: {e}", ActionStatus.ERROR.value)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to save contact")

    log_action(
        db,
        "SAVE_CONTACT",
        f"Saved/Updated contact: {body.phone} ({body.name or 'No name'})",
        ActionStatus.SUCCESS.value,
    )
    return ContactResponse.model_validate(stored)


@app.delete(
    "/api/contact/{phone}",
    response_model=SuccessResponse,
    responses={404: {"model": ErrorResponse}, 401: {"description": "Authentication required"}},
)
async def remove_contact(
    phone: str,
    _: SessionContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Delete a contact together with its whole conversation."""
    try:
        deleted = delete_contact(db, phone)
    except Exception as e:
        logger.exception("Error deleting contact")
        log_action(db, "DELETE_CONTACT", f"Error deleting contact: {e}", ActionStatus.ERROR.value)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to delete contact")

    if not deleted:
        return error_response(status.HTTP_404_NOT_FOUND, "Contact not found")

    log_action(
        db,
        "DELETE_CONTACT",
        f"Deleted contact: {phone} and all associated messages",
        ActionStatus.SUCCESS.value,
    )
    return SuccessResponse(message="Contact deleted successfully")


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)
