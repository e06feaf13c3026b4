"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses
- The Telnyx webhook envelope
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Pydantic Request Models
# =============================================================================

class SendRequest(BaseModel):
    """
    Body of POST /send.

    Fields are optional here so that the send pipeline can report missing
    fields with its own error instead of a generic 422.
    """
    from_number: Optional[str] = Field(None, description="Business line to send from (E.164)")
    to_number: Optional[str] = Field(None, description="Destination number (E.164)")
    message_content: Optional[str] = Field(None, description="SMS body")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "from_number": "+36204515510",
                    "to_number": "+16692856302",
                    "message_content": "Hello",
                }
            ]
        }
    }


class ContactRequest(BaseModel):
    """Body of POST /api/contact."""
    phone: Optional[str] = Field(None, description="Contact phone number (E.164)")
    name: Optional[str] = Field(None, description="Display name, defaults to the phone")


class LoginRequest(BaseModel):
    pin: Optional[str] = Field(None, description="Operator PIN")


class WebhookData(BaseModel):
    """
    The `data` object of a Telnyx callback.

    Fields are left untyped: the payload shape depends on the event type and
    is only inspected for the events this service handles.
    """
    event_type: Any = None
    payload: Any = None

    model_config = ConfigDict(extra="allow")


class WebhookEnvelope(BaseModel):
    """Top-level Telnyx callback body: {"data": {"event_type", "payload"}}."""
    data: Optional[WebhookData] = None

    model_config = ConfigDict(extra="allow")


# =============================================================================
# Pydantic Response Models
# =============================================================================

class SendResponse(BaseModel):
    success: bool = True
    message: str = "SMS sent successfully"
    message_id: Optional[int] = Field(None, description="Local id of the stored message")


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    error: str = Field(..., description="Error description")
    reason: Optional[str] = Field(None, description="Machine-checkable failure tag")
    details: Optional[str] = None
    from_number: Optional[str] = Field(None, alias="from", serialization_alias="from")
    to: Optional[str] = None

    model_config = {"populate_by_name": True}


class ContactResponse(BaseModel):
    phone: str
    name: str
    last_active: str

    model_config = {"from_attributes": True}


class DashboardContact(ContactResponse):
    recommended_line: str
    recommended_line_number: str


class MessageResponse(BaseModel):
    """
    A stored SMS. Maps database fields to API response format.
    """
    id: int
    from_number: str = Field(..., serialization_alias="from")
    to_number: str = Field(..., serialization_alias="to")
    text: str
    direction: str
    sender_line: str
    timestamp: str
    provider_message_id: Optional[str] = None
    status: str
    status_updated: Optional[str] = None

    model_config = {"from_attributes": True}


class ActionLogResponse(BaseModel):
    id: int
    action: str
    details: str
    status: str
    timestamp: str

    model_config = {"from_attributes": True}


class BusinessLineResponse(BaseModel):
    name: str
    number: str
    provider_profile_id: Optional[str] = None

    model_config = {"from_attributes": True}


class DashboardResponse(BaseModel):
    """
    Everything the operator console shows on one screen:
    - contacts: most recently active first, with their recommended line
    - selected_phone: the conversation being shown
    - messages: that conversation, oldest first
    - logs: newest action log entries
    - business_lines: configured lines
    """
    contacts: list[DashboardContact] = Field(default_factory=list)
    selected_phone: Optional[str] = None
    messages: list[MessageResponse] = Field(default_factory=list)
    logs: list[ActionLogResponse] = Field(default_factory=list)
    business_lines: list[BusinessLineResponse] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
