import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm

from ocean_view.config import settings
from ocean_view.api.schemas import (
    # Guests & rooms
    RegisterGuestRequest, GuestResponse, CreateRoomRequest, UpdateRoomPriceRequest,
    RoomResponse, AvailabilityResponse,
    # Reservations
    CreateReservationRequest, ReservationResponse, NotificationResponse,
    # Billing
    AddExtraChargeRequest, RecordPaymentRequest, ExtraChargeResponse, PaymentResponse, BillResponse,
    # Auth
    Token, UserResponse
)
from ocean_view.api.dependencies import (
    get_current_active_user, get_directory_service, get_availability_service,
    get_billing_service, get_notification_service, get_reservation_service
)
from ocean_view.application.services import (
    DirectoryService, AvailabilityService, BillingService, NotificationService, ReservationService
)
from ocean_view.domain.auth import User
from ocean_view.domain.exceptions import (
    ValidationError, ConflictError, NotFoundError, InvalidStateError,
    TransientStoreError, StoreUnavailableError
)
from ocean_view.infrastructure.security import verify_password, create_access_token
from ocean_view.infrastructure.seed import seed_sample_data

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.SEED_SAMPLE_DATA:
        await seed_sample_data(get_directory_service(), settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    description="Reservation lifecycle and billing API for Ocean View Resort",
    version="1.0.0",
    lifespan=lifespan
)


# ============================================================================
# ERROR MAPPING
# ============================================================================

def _error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error_response(400, exc)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(404, exc)


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return _error_response(409, exc)


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    return _error_response(409, exc)


@app.exception_handler(StoreUnavailableError)
@app.exception_handler(TransientStoreError)
async def store_unavailable_handler(request: Request, exc: Exception):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return _error_response(503, exc)


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}


# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    directory: DirectoryService = Depends(get_directory_service)
):
    user = await directory.find_user_by_username(form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token = create_access_token(data={"sub": user.username})
    return {"access_token": access_token, "token_type": "bearer"}


@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user


# ============================================================================
# GUEST & ROOM ENDPOINTS
# ============================================================================

@app.post("/api/guests", response_model=GuestResponse, status_code=201, tags=["Guests"])
async def register_guest(
    request: RegisterGuestRequest,
    directory: DirectoryService = Depends(get_directory_service)
):
    """Register a guest"""
    guest = await directory.register_guest(
        guest_name=request.guest_name,
        email=request.email,
        address=request.address,
        contact_number=request.contact_number
    )
    return GuestResponse(**guest.model_dump())


@app.get("/api/guests/{guest_id}", response_model=GuestResponse, tags=["Guests"])
async def get_guest(
    guest_id: UUID,
    directory: DirectoryService = Depends(get_directory_service)
):
    """Get guest by ID"""
    guest = await directory.get_guest(guest_id)
    return GuestResponse(**guest.model_dump())


@app.post("/api/rooms", response_model=RoomResponse, status_code=201, tags=["Rooms"])
async def add_room(
    request: CreateRoomRequest,
    directory: DirectoryService = Depends(get_directory_service),
    current_user: User = Depends(get_current_active_user)
):
    """Add a room"""
    room = await directory.add_room(request.room_number, request.room_type, request.price_per_night)
    return _room_to_response(room)


@app.get("/api/rooms", response_model=List[RoomResponse], tags=["Rooms"])
async def list_rooms(
    room_type: Optional[str] = None,
    directory: DirectoryService = Depends(get_directory_service)
):
    """List rooms, optionally of one type"""
    return [_room_to_response(r) for r in await directory.list_rooms(room_type)]


@app.get("/api/rooms/{room_id}", response_model=RoomResponse, tags=["Rooms"])
async def get_room(
    room_id: UUID,
    directory: DirectoryService = Depends(get_directory_service)
):
    """Get room by ID"""
    return _room_to_response(await directory.get_room(room_id))


@app.put("/api/rooms/{room_id}/price", response_model=RoomResponse, tags=["Rooms"])
async def update_room_price(
    room_id: UUID,
    request: UpdateRoomPriceRequest,
    directory: DirectoryService = Depends(get_directory_service),
    current_user: User = Depends(get_current_active_user)
):
    """Change a room's nightly rate"""
    room = await directory.update_room_price(room_id, request.price_per_night)
    return _room_to_response(room)


@app.get("/api/rooms/{room_id}/availability", response_model=AvailabilityResponse, tags=["Rooms"])
async def check_availability(
    room_id: UUID,
    check_in: date,
    check_out: date,
    directory: DirectoryService = Depends(get_directory_service),
    availability: AvailabilityService = Depends(get_availability_service)
):
    """Check whether a room is free for [check_in, check_out)"""
    await directory.get_room(room_id)
    available = await availability.is_available(room_id, check_in, check_out)
    return AvailabilityResponse(room_id=room_id, check_in=check_in, check_out=check_out, available=available)


# ============================================================================
# RESERVATION ENDPOINTS
# ============================================================================

@app.post("/api/reservations", response_model=ReservationResponse, status_code=201, tags=["Reservations"])
async def create_reservation(
    request: CreateReservationRequest,
    service: ReservationService = Depends(get_reservation_service)
):
    """Create new pending reservation"""
    reservation = await service.create_reservation(
        guest_id=request.guest_id,
        room_id=request.room_id,
        check_in=request.check_in,
        check_out=request.check_out
    )
    return _reservation_to_response(reservation)


@app.get("/api/reservations", response_model=List[ReservationResponse], tags=["Reservations"])
async def list_reservations(
    guest_id: Optional[UUID] = None,
    room_id: Optional[UUID] = None,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """List reservations"""
    reservations = await service.list_reservations(guest_id=guest_id, room_id=room_id)
    return [_reservation_to_response(r) for r in reservations]


@app.get("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get reservation by ID"""
    return _reservation_to_response(await service.get_reservation(reservation_id))


@app.post("/api/reservations/{reservation_id}/confirm", response_model=BillResponse, tags=["Reservations"])
async def confirm_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Confirm reservation as the authenticated staff member and return its bill"""
    bill = await service.confirm_reservation(reservation_id, staff_user_id=current_user.user_id)
    return _bill_to_response(bill)


@app.post("/api/reservations/{reservation_id}/cancel", response_model=ReservationResponse, tags=["Reservations"])
async def cancel_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Cancel reservation"""
    return _reservation_to_response(await service.cancel_reservation(reservation_id))


@app.post("/api/reservations/{reservation_id}/check-in", response_model=ReservationResponse, tags=["Reservations"])
async def check_in_guest(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check in guest"""
    return _reservation_to_response(await service.check_in(reservation_id))


@app.post("/api/reservations/{reservation_id}/check-out", response_model=ReservationResponse, tags=["Reservations"])
async def check_out_guest(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check out guest"""
    return _reservation_to_response(await service.check_out(reservation_id))


@app.delete("/api/reservations/{reservation_id}", status_code=204, tags=["Reservations"])
async def purge_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Delete a cancelled or checked-out reservation with its bill and notifications"""
    await service.purge_reservation(reservation_id)


@app.get("/api/reservations/{reservation_id}/bill", response_model=BillResponse, tags=["Reservations"])
async def get_reservation_bill(
    reservation_id: UUID,
    billing: BillingService = Depends(get_billing_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get the bill of a reservation"""
    return _bill_to_response(await billing.get_bill_for_reservation(reservation_id))


@app.get("/api/reservations/{reservation_id}/notifications", response_model=List[NotificationResponse], tags=["Reservations"])
async def get_reservation_notifications(
    reservation_id: UUID,
    notifications: NotificationService = Depends(get_notification_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get the notification log of a reservation"""
    records = await notifications.list_for_reservation(reservation_id)
    return [
        NotificationResponse(**{**n.model_dump(), "status": n.status.value})
        for n in records
    ]


# ============================================================================
# BILLING ENDPOINTS
# ============================================================================

@app.get("/api/bills/{bill_id}", response_model=BillResponse, tags=["Billing"])
async def get_bill(
    bill_id: UUID,
    billing: BillingService = Depends(get_billing_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get bill with charges and payments"""
    return _bill_to_response(await billing.get_bill(bill_id))


@app.post("/api/bills/{bill_id}/extra-charges", response_model=ExtraChargeResponse, status_code=201, tags=["Billing"])
async def add_extra_charge(
    bill_id: UUID,
    request: AddExtraChargeRequest,
    billing: BillingService = Depends(get_billing_service),
    current_user: User = Depends(get_current_active_user)
):
    """Add an extra charge to a bill"""
    charge = await billing.add_extra_charge(bill_id, request.item_name, request.unit_price, request.quantity)
    return ExtraChargeResponse(**charge.model_dump())


@app.post("/api/bills/{bill_id}/payments", response_model=PaymentResponse, status_code=201, tags=["Billing"])
async def record_payment(
    bill_id: UUID,
    request: RecordPaymentRequest,
    billing: BillingService = Depends(get_billing_service),
    current_user: User = Depends(get_current_active_user)
):
    """Record a payment against a bill"""
    payment = await billing.record_payment(bill_id, request.method, request.amount)
    return _payment_to_response(payment)


@app.post("/api/payments/{payment_id}/refund", response_model=PaymentResponse, tags=["Billing"])
async def refund_payment(
    payment_id: UUID,
    billing: BillingService = Depends(get_billing_service),
    current_user: User = Depends(get_current_active_user)
):
    """Mark a payment as refunded"""
    return _payment_to_response(await billing.refund_payment(payment_id))


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _room_to_response(room) -> RoomResponse:
    """Convert Room entity to RoomResponse"""
    return RoomResponse(
        room_id=room.room_id,
        room_number=room.room_number,
        room_type=room.room_type,
        price_per_night=room.price_per_night,
        status=room.status.value
    )


def _reservation_to_response(reservation) -> ReservationResponse:
    """Convert Reservation entity to ReservationResponse"""
    return ReservationResponse(
        reservation_id=reservation.reservation_id,
        guest_id=reservation.guest_id,
        room_id=reservation.room_id,
        user_id=reservation.user_id,
        check_in=reservation.date_range.check_in,
        check_out=reservation.date_range.check_out,
        nights=reservation.get_nights(),
        status=reservation.status.value,
        created_at=reservation.created_at,
        modified_at=reservation.modified_at,
        version=reservation.version
    )


def _payment_to_response(payment) -> PaymentResponse:
    """Convert Payment entity to PaymentResponse"""
    return PaymentResponse(
        payment_id=payment.payment_id,
        bill_id=payment.bill_id,
        payment_method=payment.payment_method.value,
        amount_paid=payment.amount_paid,
        status=payment.status.value,
        payment_date=payment.payment_date
    )


def _bill_to_response(bill) -> BillResponse:
    """Convert Bill entity to BillResponse"""
    return BillResponse(
        bill_id=bill.bill_id,
        reservation_id=bill.reservation_id,
        number_of_nights=bill.number_of_nights,
        room_charge=bill.room_charge,
        extra_charges_total=bill.extra_charges_total,
        total_amount=bill.total_amount,
        amount_paid=bill.amount_paid,
        balance_due=bill.balance_due,
        bill_date=bill.bill_date,
        extra_charges=[ExtraChargeResponse(**c.model_dump()) for c in bill.extra_charges],
        payments=[_payment_to_response(p) for p in bill.payments]
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
