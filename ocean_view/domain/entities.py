"""Domain Entities - Aggregates"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from datetime import datetime, date, timezone
from typing import Optional, List, Iterable
from decimal import Decimal

from ocean_view.domain.enums import (
    ReservationStatus, RoomStatus, PaymentMethod, PaymentStatus, NotificationStatus,
    ACTIVE_STATUSES, TERMINAL_STATUSES
)
from ocean_view.domain.exceptions import InvalidStateError, ValidationError
from ocean_view.domain.value_objects import DateRange, to_money


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Guest(BaseModel):
    """Guest Entity (shared reference, never owned by a reservation)"""
    guest_id: UUID = Field(default_factory=uuid4)
    guest_name: str = Field(min_length=1, max_length=100)
    address: Optional[str] = Field(None, max_length=255)
    contact_number: Optional[str] = Field(None, max_length=20)
    email: str = Field(min_length=3, max_length=100)

    class Config:
        from_attributes = True


class Room(BaseModel):
    """Room Entity

    ``status`` is a cached view of whether a guest is checked in; it is only
    rewritten inside the room's critical section.
    """
    room_id: UUID = Field(default_factory=uuid4)
    room_number: int = Field(ge=1)
    room_type: str = Field(min_length=1, max_length=50)
    price_per_night: Decimal = Field(ge=0)
    status: RoomStatus = RoomStatus.AVAILABLE

    class Config:
        from_attributes = True

    def change_price(self, new_price: Decimal) -> None:
        """Set a new nightly rate"""
        price = to_money(new_price)
        if new_price < 0:
            raise ValidationError("Price per night cannot be negative")
        self.price_per_night = price


class Reservation(BaseModel):
    """Reservation Aggregate Root Entity"""

    # Identity
    reservation_id: UUID = Field(default_factory=uuid4)

    # References
    guest_id: UUID
    room_id: UUID
    user_id: Optional[UUID] = None  # staff member who confirmed

    date_range: DateRange
    status: ReservationStatus = ReservationStatus.PENDING

    # Metadata
    created_at: datetime = Field(default_factory=utcnow)
    modified_at: datetime = Field(default_factory=utcnow)
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(guest_id: UUID, room_id: UUID, date_range: DateRange) -> "Reservation":
        """Create new pending reservation"""
        if date_range.nights() < 1:
            raise ValidationError("Minimum stay is 1 night")

        return Reservation(
            guest_id=guest_id,
            room_id=room_id,
            date_range=date_range,
            status=ReservationStatus.PENDING
        )

    # ==================== STATE TRANSITION METHODS ====================
    def confirm(self, staff_user_id: UUID) -> None:
        """Confirm reservation on behalf of a staff member"""
        self._transition(
            {ReservationStatus.PENDING}, ReservationStatus.CONFIRMED, "confirm"
        )
        self.user_id = staff_user_id

    def cancel(self) -> None:
        """Cancel reservation"""
        self._transition(
            {ReservationStatus.PENDING, ReservationStatus.CONFIRMED},
            ReservationStatus.CANCELLED,
            "cancel"
        )

    def check_in(self) -> None:
        """Mark guest as checked in"""
        self._transition(
            {ReservationStatus.CONFIRMED}, ReservationStatus.CHECKED_IN, "check in"
        )

    def check_out(self) -> None:
        """Mark guest as checked out"""
        self._transition(
            {ReservationStatus.CHECKED_IN}, ReservationStatus.CHECKED_OUT, "check out"
        )

    def _transition(self, allowed: Iterable[ReservationStatus], target: ReservationStatus, action: str) -> None:
        if self.status not in allowed:
            raise InvalidStateError(
                f"Cannot {action} reservation with status {self.status.value}"
            )
        self.status = target
        self.modified_at = utcnow()
        self.version += 1

    # ==================== QUERY METHODS ====================
    def is_active(self) -> bool:
        """Check if reservation blocks its room for availability"""
        return self.status in ACTIVE_STATUSES

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def accepts_extra_charges(self) -> bool:
        return self.status in (ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN)

    def get_nights(self) -> int:
        """Get number of nights"""
        return self.date_range.nights()

    def occupies(self, day: date) -> bool:
        return self.date_range.contains(day)


class ExtraCharge(BaseModel):
    """Child Entity for an item billed on top of the room"""
    charge_id: UUID = Field(default_factory=uuid4)
    bill_id: UUID
    item_name: str = Field(min_length=1, max_length=100)
    price: Decimal
    quantity: int
    subtotal: Decimal

    class Config:
        from_attributes = True


class Payment(BaseModel):
    """Child Entity for money received against a bill"""
    payment_id: UUID = Field(default_factory=uuid4)
    bill_id: UUID
    payment_method: PaymentMethod
    amount_paid: Decimal
    status: PaymentStatus = PaymentStatus.PAID
    payment_date: datetime = Field(default_factory=utcnow)

    class Config:
        from_attributes = True


class Bill(BaseModel):
    """Bill Aggregate Root Entity (exactly one per reservation)"""

    bill_id: UUID = Field(default_factory=uuid4)
    reservation_id: UUID

    number_of_nights: int = Field(ge=1)
    room_charge: Decimal
    extra_charges_total: Decimal = Decimal("0.00")
    total_amount: Decimal
    bill_date: datetime = Field(default_factory=utcnow)

    extra_charges: List[ExtraCharge] = []
    payments: List[Payment] = []

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def generate(reservation: Reservation, price_per_night: Decimal) -> "Bill":
        """Price the stay at the given nightly rate"""
        nights = reservation.get_nights()
        room_charge = to_money(price_per_night * nights)
        return Bill(
            reservation_id=reservation.reservation_id,
            number_of_nights=nights,
            room_charge=room_charge,
            extra_charges_total=to_money(0),
            total_amount=room_charge
        )

    # ==================== MODIFICATION METHODS ====================
    def add_extra_charge(self, item_name: str, unit_price: Decimal, quantity: int) -> ExtraCharge:
        """Append a charge and refresh the bill totals"""
        # Malformed input is a ValidationError; InvalidStateError is kept for lifecycle state
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")
        price = to_money(unit_price)
        if unit_price < 0:
            raise ValidationError("Unit price cannot be negative")
        if not item_name or not item_name.strip():
            raise ValidationError("Item name is required")

        charge = ExtraCharge(
            bill_id=self.bill_id,
            item_name=item_name.strip(),
            price=price,
            quantity=quantity,
            subtotal=to_money(price * quantity)
        )
        self.extra_charges.append(charge)
        self._recalculate_totals()
        return charge

    def record_payment(self, method: PaymentMethod, amount: Decimal) -> Payment:
        """Record money received; status reflects whether the bill is covered"""
        paid = to_money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than 0")

        covered = self.amount_paid + paid >= self.total_amount
        payment = Payment(
            bill_id=self.bill_id,
            payment_method=method,
            amount_paid=paid,
            status=PaymentStatus.PAID if covered else PaymentStatus.PARTIAL
        )
        self.payments.append(payment)
        return payment

    def refund_payment(self, payment_id: UUID) -> Payment:
        """Mark a payment as refunded"""
        payment = self.find_payment(payment_id)
        if payment is None:
            raise ValidationError(f"Payment {payment_id} does not belong to bill {self.bill_id}")
        if payment.status == PaymentStatus.REFUNDED:
            raise InvalidStateError("Payment is already refunded")
        payment.status = PaymentStatus.REFUNDED
        return payment

    def _recalculate_totals(self) -> None:
        # The stored aggregate is a cache of the charge lines
        self.extra_charges_total = to_money(sum((c.subtotal for c in self.extra_charges), Decimal("0")))
        self.total_amount = to_money(self.room_charge + self.extra_charges_total)

    # ==================== QUERY METHODS ====================
    def find_payment(self, payment_id: UUID) -> Optional[Payment]:
        for payment in self.payments:
            if payment.payment_id == payment_id:
                return payment
        return None

    @property
    def amount_paid(self) -> Decimal:
        """Sum of payments that were not refunded"""
        return to_money(sum(
            (p.amount_paid for p in self.payments if p.status != PaymentStatus.REFUNDED),
            Decimal("0")
        ))

    @property
    def balance_due(self) -> Decimal:
        return to_money(self.total_amount - self.amount_paid)


class EmailNotification(BaseModel):
    """Append-only record of a confirmation email attempt"""
    notification_id: UUID = Field(default_factory=uuid4)
    reservation_id: UUID
    recipient_email: Optional[str] = None
    sent_date: datetime = Field(default_factory=utcnow)
    status: NotificationStatus
    detail: Optional[str] = None

    class Config:
        from_attributes = True
