"""
Pydantic schemas for domain records and request/response validation.

This module contains:
- Domain records as returned by the backend (orders, shipments, events, chat)
- Request models for incoming data validation
- Response models for API responses
"""

from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# Domain Records
# =============================================================================

class ShippingOrder(BaseModel):
    """Order row as stored by the backend."""
    id: str
    order_number: str
    status: str = "pending"
    origin_city: str
    origin_country: str
    destination_city: str
    destination_country: str
    shipping_method: str
    quoted_price: float
    weight_kg: float
    created_at: str

    model_config = {"extra": "ignore"}


class Shipment(BaseModel):
    """Shipment as exposed to tracking and admin views."""
    id: str
    tracking_number: str
    status: str
    origin_city: str
    origin_country: str
    destination_city: str
    destination_country: str
    sender_name: Optional[str] = None
    recipient_name: Optional[str] = None
    weight_kg: Optional[float] = None
    estimated_delivery: Optional[str] = None
    actual_delivery: Optional[str] = None
    created_at: Optional[str] = None

    model_config = {"extra": "ignore"}


class ShipmentEvent(BaseModel):
    """One entry of a shipment's history."""
    id: str
    status: str
    location: str
    description: Optional[str] = None
    occurred_at: str

    model_config = {"extra": "ignore"}


class ChatMessage(BaseModel):
    id: str
    role: str = Field(..., description="user or assistant")
    content: str
    created_at: str

    model_config = {"extra": "ignore"}


# =============================================================================
# Pydantic Request Models
# =============================================================================

class QuoteRequest(BaseModel):
    """Package attributes for a price quote."""
    weight_kg: float = Field(..., description="Actual weight in kg")
    length_cm: Optional[float] = Field(None, description="Package length in cm")
    width_cm: Optional[float] = Field(None, description="Package width in cm")
    height_cm: Optional[float] = Field(None, description="Package height in cm")
    shipping_method: str = Field(default="standard", description="express, standard, ocean or ground")
    insurance: bool = Field(default=False, description="Insure for 2% of declared value")
    declared_value: Optional[float] = Field(None, ge=0, description="Declared value in USD")


class OrderForm(BaseModel):
    """
    Ship-now form. Every field defaults to empty so that partially filled
    forms can be validated step by step.
    """
    origin_name: str = ""
    origin_address: str = ""
    origin_city: str = ""
    origin_country: str = "USA"
    origin_phone: str = ""
    origin_email: str = ""

    destination_name: str = ""
    destination_address: str = ""
    destination_city: str = ""
    destination_country: str = ""
    destination_phone: str = ""
    destination_email: str = ""

    weight_kg: Optional[float] = None
    length_cm: Optional[float] = None
    width_cm: Optional[float] = None
    height_cm: Optional[float] = None
    package_description: str = ""
    declared_value: Optional[float] = Field(None, ge=0)

    shipping_method: str = "standard"
    insurance: bool = False


class StepValidationRequest(BaseModel):
    step: int = Field(..., ge=1, le=3)
    form: OrderForm
    quoted_price: Optional[float] = None


class TrackingRequest(BaseModel):
    tracking_number: str = Field(..., description="e.g. SWL-2026-0118-7890")


class StatusUpdateRequest(BaseModel):
    status: str


class EventCreateRequest(BaseModel):
    status: str
    location: str = ""
    description: Optional[str] = None


class ChatSendRequest(BaseModel):
    content: str = Field(..., max_length=2000)


class SignInRequest(BaseModel):
    email: str
    password: str


class SignUpRequest(BaseModel):
    email: str
    password: str
    confirm_password: str


class ContactRequest(BaseModel):
    name: str = ""
    email: str = ""
    company: str = ""
    phone: str = ""
    service: str = ""
    message: str = ""


# =============================================================================
# Pydantic Response Models
# =============================================================================

class ShippingMethodResponse(BaseModel):
    id: str
    name: str
    days: str
    multiplier: float
    description: str


class QuoteResponse(BaseModel):
    quoted_price: float = Field(..., description="Price in USD")
    currency: str = "USD"
    chargeable_weight_kg: float
    shipping_method: str


class StepValidationResponse(BaseModel):
    valid: bool
    missing: list[str] = Field(default_factory=list)


class OrderConfirmation(BaseModel):
    order_number: str
    quoted_price: float
    tracking_number: Optional[str] = Field(
        None, description="Set when the shipment was created alongside the order"
    )


class DashboardStats(BaseModel):
    total: int = 0
    pending: int = 0
    in_transit: int = 0
    delivered: int = 0


class DashboardResponse(BaseModel):
    orders: list[ShippingOrder] = Field(default_factory=list)
    stats: DashboardStats


class TrackingResponse(BaseModel):
    shipment: Shipment
    events: list[ShipmentEvent] = Field(default_factory=list)
    session_token: Optional[str] = None


class EventsResponse(BaseModel):
    events: list[ShipmentEvent] = Field(default_factory=list)


class ChatTranscriptResponse(BaseModel):
    session_id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    quick_replies: list[str] = Field(default_factory=list)


class ChatReplyResponse(BaseModel):
    session_id: str
    user_message: ChatMessage
    assistant_message: ChatMessage


class UserResponse(BaseModel):
    id: str
    email: Optional[str] = None


class SessionResponse(BaseModel):
    user: Optional[UserResponse] = None
    is_admin: bool = False


class StatusResponse(BaseModel):
    status: str = Field(default="ok", description="Operation status")
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
