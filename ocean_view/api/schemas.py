"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from typing import List, Optional

from ocean_view.domain.enums import PaymentMethod


# ============================================================================
# GUEST & ROOM SCHEMAS
# ============================================================================

class RegisterGuestRequest(BaseModel):
    """Register guest request DTO"""
    guest_name: str
    email: str
    address: Optional[str] = None
    contact_number: Optional[str] = None


class GuestResponse(BaseModel):
    """Guest response DTO"""
    guest_id: UUID
    guest_name: str
    email: str
    address: Optional[str] = None
    contact_number: Optional[str] = None


class CreateRoomRequest(BaseModel):
    """Create room request DTO"""
    room_number: int
    room_type: str
    price_per_night: Decimal = Field(max_digits=10, decimal_places=2)


class UpdateRoomPriceRequest(BaseModel):
    """Update room price request DTO"""
    price_per_night: Decimal = Field(max_digits=10, decimal_places=2)


class RoomResponse(BaseModel):
    """Room response DTO"""
    room_id: UUID
    room_number: int
    room_type: str
    price_per_night: Decimal
    status: str


class AvailabilityResponse(BaseModel):
    """Availability check response DTO"""
    room_id: UUID
    check_in: date
    check_out: date
    available: bool


# ============================================================================
# RESERVATION SCHEMAS
# ============================================================================

class CreateReservationRequest(BaseModel):
    """Create reservation request DTO"""
    guest_id: UUID
    room_id: UUID
    check_in: date
    check_out: date


class ReservationResponse(BaseModel):
    """Reservation response DTO"""
    reservation_id: UUID
    guest_id: UUID
    room_id: UUID
    user_id: Optional[UUID] = None
    check_in: date
    check_out: date
    nights: int
    status: str
    created_at: datetime
    modified_at: datetime
    version: int


class NotificationResponse(BaseModel):
    """Notification log entry DTO"""
    notification_id: UUID
    reservation_id: UUID
    recipient_email: Optional[str] = None
    sent_date: datetime
    status: str
    detail: Optional[str] = None


# ============================================================================
# BILLING SCHEMAS
# ============================================================================

class AddExtraChargeRequest(BaseModel):
    """Add extra charge request DTO"""
    item_name: str
    unit_price: Decimal = Field(max_digits=10, decimal_places=2)
    quantity: int


class RecordPaymentRequest(BaseModel):
    """Record payment request DTO"""
    method: PaymentMethod
    amount: Decimal = Field(max_digits=10, decimal_places=2)


class ExtraChargeResponse(BaseModel):
    """Extra charge response DTO"""
    charge_id: UUID
    bill_id: UUID
    item_name: str
    price: Decimal
    quantity: int
    subtotal: Decimal


class PaymentResponse(BaseModel):
    """Payment response DTO"""
    payment_id: UUID
    bill_id: UUID
    payment_method: str
    amount_paid: Decimal
    status: str
    payment_date: datetime


class BillResponse(BaseModel):
    """Bill response DTO"""
    bill_id: UUID
    reservation_id: UUID
    number_of_nights: int
    room_charge: Decimal
    extra_charges_total: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    bill_date: datetime
    extra_charges: List[ExtraChargeResponse] = []
    payments: List[PaymentResponse] = []


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    access_token: str
    token_type: str


class TokenData(BaseModel):
    username: Optional[str] = None


class UserResponse(BaseModel):
    user_id: UUID
    username: str
    role: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    disabled: bool = False
