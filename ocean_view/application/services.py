"""Application Services - Business use cases"""
import logging
from uuid import UUID
from datetime import date
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from ocean_view.domain.auth import User, UserInDB
from ocean_view.domain.entities import (
    Guest, Room, Reservation, Bill, ExtraCharge, Payment, EmailNotification
)
from ocean_view.domain.enums import RoomStatus, ReservationStatus, PaymentMethod, NotificationStatus
from ocean_view.domain.exceptions import (
    ValidationError, ConflictError, NotFoundError, InvalidStateError, DuplicateError,
    TransientStoreError, StoreUnavailableError
)
from ocean_view.domain.notifications import EmailSender
from ocean_view.domain.repositories import (
    GuestRepository, RoomRepository, UserRepository, ReservationRepository,
    BillRepository, NotificationRepository, TransactionManager
)
from ocean_view.domain.value_objects import DateRange, to_money

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _date_range(check_in: date, check_out: date) -> DateRange:
    if check_out <= check_in:
        raise ValidationError("Check-out must be after check-in")
    return DateRange(check_in=check_in, check_out=check_out)


class _TransactionalService:
    """Base for services that run critical sections through the store"""

    def __init__(self, transactions: TransactionManager, max_retries: int = 3):
        self.transactions = transactions
        self.max_retries = max(0, max_retries)

    async def _run_atomic(
        self,
        room_id: Optional[UUID],
        operation: Callable[[], Awaitable[T]],
        description: str
    ) -> T:
        """Run ``operation`` in one transaction, retrying transient store failures.

        The operation must do all of its reads inside the transaction so that
        a retry starts from fresh state; a failed attempt leaves no writes
        behind.
        """
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                async with self.transactions.atomic(room_id):
                    return await operation()
            except TransientStoreError as e:
                logger.warning(f"{description}: transient store failure (attempt {attempt}/{attempts}): {e}")
        logger.error(f"{description}: giving up after {attempts} attempts")
        raise StoreUnavailableError(f"{description} failed after {attempts} attempts")


class DirectoryService(_TransactionalService):
    """Lookup and insert operations for guests, rooms and staff users"""

    def __init__(self,
                 guests: GuestRepository,
                 rooms: RoomRepository,
                 users: UserRepository,
                 transactions: TransactionManager,
                 max_retries: int = 3):
        super().__init__(transactions, max_retries)
        self.guests = guests
        self.rooms = rooms
        self.users = users

    async def register_guest(
        self,
        guest_name: str,
        email: str,
        address: Optional[str] = None,
        contact_number: Optional[str] = None
    ) -> Guest:
        """Register a guest"""
        try:
            guest = Guest(
                guest_name=guest_name,
                email=email,
                address=address,
                contact_number=contact_number
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid guest: {e}")
        return await self.guests.save(guest)

    async def get_guest(self, guest_id: UUID) -> Guest:
        guest = await self.guests.find_by_id(guest_id)
        if guest is None:
            raise NotFoundError(f"Guest {guest_id} not found")
        return guest

    async def add_room(self, room_number: int, room_type: str, price_per_night: Decimal) -> Room:
        """Add a room; room numbers are unique"""
        if await self.rooms.find_by_number(room_number) is not None:
            raise DuplicateError(f"Room number {room_number} already exists")
        try:
            room = Room(
                room_number=room_number,
                room_type=room_type,
                price_per_night=to_money(price_per_night)
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid room: {e}")
        logger.info(f"Room {room_number} ({room_type}) added at {room.price_per_night}/night")
        return await self.rooms.save(room)

    async def get_room(self, room_id: UUID) -> Room:
        room = await self.rooms.find_by_id(room_id)
        if room is None:
            raise NotFoundError(f"Room {room_id} not found")
        return room

    async def list_rooms(self, room_type: Optional[str] = None) -> List[Room]:
        """List rooms ordered by number, optionally of one type"""
        return await self.rooms.find_all(room_type)

    async def update_room_price(self, room_id: UUID, price_per_night: Decimal) -> Room:
        """Change the nightly rate; confirmations after this bill the new rate"""
        await self.get_room(room_id)

        async def operation() -> Room:
            room = await self.get_room(room_id)
            old_price = room.price_per_night
            room.change_price(price_per_night)
            await self.rooms.update(room)
            logger.info(f"Room {room.room_number} price changed from {old_price} to {room.price_per_night}")
            return room

        return await self._run_atomic(room_id, operation, "Update room price")

    async def add_staff_user(
        self,
        username: str,
        hashed_password: str,
        role: str = "Staff",
        full_name: Optional[str] = None,
        email: Optional[str] = None
    ) -> User:
        """Store a staff account"""
        if await self.users.find_by_username(username) is not None:
            raise DuplicateError(f"Username {username} already exists")
        user = UserInDB(
            username=username,
            hashed_password=hashed_password,
            role=role,
            full_name=full_name,
            email=email
        )
        await self.users.save(user)
        return User(**user.model_dump(exclude={"hashed_password"}))

    async def get_user(self, user_id: UUID) -> User:
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return User(**user.model_dump(exclude={"hashed_password"}))

    async def find_user_by_username(self, username: str) -> Optional[UserInDB]:
        return await self.users.find_by_username(username)


class AvailabilityService:
    """Decides whether a room is free for a date range"""

    def __init__(self, reservations: ReservationRepository, rooms: RoomRepository):
        self.reservations = reservations
        self.rooms = rooms

    async def find_conflicts(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[UUID] = None
    ) -> List[Reservation]:
        """Active reservations on the room that overlap [check_in, check_out)"""
        requested = _date_range(check_in, check_out)
        return [
            r for r in await self.reservations.find_by_room_id(room_id)
            if r.is_active()
            and r.reservation_id != exclude_reservation_id
            and r.date_range.overlaps(requested)
        ]

    async def is_available(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[UUID] = None
    ) -> bool:
        """Check room availability.

        Only a read: callers that insert based on the answer must hold the
        room's transaction while doing both.
        """
        conflicts = await self.find_conflicts(room_id, check_in, check_out, exclude_reservation_id)
        return not conflicts

    async def current_room_status(self, room_id: UUID) -> RoomStatus:
        """Occupancy derived from reservations: a checked-in guest occupies the room"""
        for reservation in await self.reservations.find_by_room_id(room_id):
            if reservation.status == ReservationStatus.CHECKED_IN:
                return RoomStatus.OCCUPIED
        return RoomStatus.AVAILABLE

    async def sync_room_status(self, room_id: UUID) -> Room:
        """Rewrite the cached Room.status from reservation state"""
        room = await self.rooms.find_by_id(room_id)
        if room is None:
            raise NotFoundError(f"Room {room_id} not found")
        status = await self.current_room_status(room_id)
        if room.status != status:
            room.status = status
            await self.rooms.update(room)
        return room


class BillingService(_TransactionalService):
    """Creates bills and records extra charges and payments against them"""

    def __init__(self,
                 bills: BillRepository,
                 reservations: ReservationRepository,
                 rooms: RoomRepository,
                 transactions: TransactionManager,
                 max_retries: int = 3):
        super().__init__(transactions, max_retries)
        self.bills = bills
        self.reservations = reservations
        self.rooms = rooms

    async def create_bill(self, reservation: Reservation) -> Bill:
        """Price a reservation at the room's current rate.

        Must run inside the transaction that confirms the reservation.
        """
        if await self.bills.find_by_reservation_id(reservation.reservation_id) is not None:
            raise DuplicateError(f"Reservation {reservation.reservation_id} already has a bill")
        room = await self.rooms.find_by_id(reservation.room_id)
        if room is None:
            raise NotFoundError(f"Room {reservation.room_id} not found")

        bill = Bill.generate(reservation, room.price_per_night)
        await self.bills.save(bill)
        logger.info(
            f"Bill {bill.bill_id} generated for reservation {reservation.reservation_id}: "
            f"{bill.number_of_nights} nights x {room.price_per_night} = {bill.room_charge}"
        )
        return bill

    async def generate_bill(self, reservation_id: UUID) -> Bill:
        """Bill a confirmed reservation that has no bill yet"""
        reservation = await self._get_reservation(reservation_id)

        async def operation() -> Bill:
            current = await self._get_reservation(reservation_id)
            if await self.bills.find_by_reservation_id(reservation_id) is not None:
                raise DuplicateError(f"Reservation {reservation_id} already has a bill")
            if not current.accepts_extra_charges():
                raise InvalidStateError(
                    f"Cannot bill reservation with status {current.status.value}"
                )
            return await self.create_bill(current)

        return await self._run_atomic(reservation.room_id, operation, "Generate bill")

    async def get_bill(self, bill_id: UUID) -> Bill:
        bill = await self.bills.find_by_id(bill_id)
        if bill is None:
            raise NotFoundError(f"Bill {bill_id} not found")
        return bill

    async def get_bill_for_reservation(self, reservation_id: UUID) -> Bill:
        bill = await self.bills.find_by_reservation_id(reservation_id)
        if bill is None:
            raise NotFoundError(f"Reservation {reservation_id} has no bill")
        return bill

    async def add_extra_charge(
        self,
        bill_id: UUID,
        item_name: str,
        unit_price: Decimal,
        quantity: int
    ) -> ExtraCharge:
        """Add a charge line and recompute the bill totals"""
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")
        to_money(unit_price * quantity)
        if unit_price < 0:
            raise ValidationError("Unit price cannot be negative")
        room_id = await self._room_of_bill(bill_id)

        async def operation() -> ExtraCharge:
            bill = await self.get_bill(bill_id)
            reservation = await self._get_reservation(bill.reservation_id)
            if not reservation.accepts_extra_charges():
                raise InvalidStateError(
                    f"Cannot add charges to reservation with status {reservation.status.value}"
                )
            charge = bill.add_extra_charge(item_name, unit_price, quantity)
            await self.bills.update(bill)
            logger.info(
                f"Extra charge {charge.item_name} x{charge.quantity} = {charge.subtotal} "
                f"added to bill {bill_id}; total now {bill.total_amount}"
            )
            return charge

        return await self._run_atomic(room_id, operation, "Add extra charge")

    async def record_payment(self, bill_id: UUID, method: PaymentMethod, amount: Decimal) -> Payment:
        """Record a payment against a bill"""
        to_money(amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than 0")
        room_id = await self._room_of_bill(bill_id)

        async def operation() -> Payment:
            bill = await self.get_bill(bill_id)
            payment = bill.record_payment(method, amount)
            await self.bills.update(bill)
            logger.info(
                f"Payment {payment.payment_id} of {payment.amount_paid} ({method.value}) "
                f"recorded on bill {bill_id} as {payment.status.value}"
            )
            return payment

        return await self._run_atomic(room_id, operation, "Record payment")

    async def refund_payment(self, payment_id: UUID) -> Payment:
        """Mark a payment as refunded"""
        bill = await self.bills.find_by_payment_id(payment_id)
        if bill is None:
            raise NotFoundError(f"Payment {payment_id} not found")
        room_id = await self._room_of_bill(bill.bill_id)

        async def operation() -> Payment:
            current = await self.get_bill(bill.bill_id)
            payment = current.refund_payment(payment_id)
            await self.bills.update(current)
            logger.info(f"Payment {payment_id} on bill {current.bill_id} refunded")
            return payment

        return await self._run_atomic(room_id, operation, "Refund payment")

    async def delete_bill_for_reservation(self, reservation_id: UUID) -> bool:
        """Delete a reservation's bill with its charges and payments.

        Must run inside the transaction that purges the reservation.
        """
        bill = await self.bills.find_by_reservation_id(reservation_id)
        if bill is None:
            return False
        return await self.bills.delete(bill.bill_id)

    async def _room_of_bill(self, bill_id: UUID) -> UUID:
        bill = await self.get_bill(bill_id)
        reservation = await self._get_reservation(bill.reservation_id)
        return reservation.room_id

    async def _get_reservation(self, reservation_id: UUID) -> Reservation:
        reservation = await self.reservations.find_by_id(reservation_id)
        if reservation is None:
            raise NotFoundError(f"Reservation {reservation_id} not found")
        return reservation


class NotificationService:
    """Sends confirmation emails and keeps the append-only delivery log"""

    def __init__(self,
                 notifications: NotificationRepository,
                 reservations: ReservationRepository,
                 rooms: RoomRepository,
                 bills: BillRepository,
                 sender: EmailSender):
        self.notifications = notifications
        self.reservations = reservations
        self.rooms = rooms
        self.bills = bills
        self.sender = sender

    async def notify_confirmation(self, reservation_id: UUID, recipient_email: str) -> EmailNotification:
        """Attempt delivery and record the outcome; never raises on compose or transport failure"""
        detail = None
        try:
            subject, content = await self._compose_confirmation(reservation_id)
            delivered = await self.sender.send(recipient_email, subject, content)
        except Exception as e:
            logger.exception(f"Confirmation for reservation {reservation_id} to {recipient_email} could not be sent")
            delivered = False
            detail = str(e)

        status = NotificationStatus.SENT if delivered else NotificationStatus.FAILED
        if not delivered and detail is None:
            detail = "Transport reported delivery failure"
        record = EmailNotification(
            reservation_id=reservation_id,
            recipient_email=recipient_email,
            status=status,
            detail=detail
        )
        await self.notifications.save(record)
        if delivered:
            logger.info(f"Confirmation for reservation {reservation_id} sent to {recipient_email}")
        else:
            logger.warning(f"Confirmation for reservation {reservation_id} to {recipient_email} failed: {detail}")
        return record

    async def record_failure(
        self,
        reservation_id: UUID,
        reason: str,
        recipient_email: Optional[str] = None
    ) -> EmailNotification:
        """Log a notification that could not be attempted"""
        record = EmailNotification(
            reservation_id=reservation_id,
            recipient_email=recipient_email,
            status=NotificationStatus.FAILED,
            detail=reason
        )
        await self.notifications.save(record)
        logger.warning(f"Confirmation for reservation {reservation_id} skipped: {reason}")
        return record

    async def list_for_reservation(self, reservation_id: UUID) -> List[EmailNotification]:
        return await self.notifications.find_by_reservation_id(reservation_id)

    async def purge_for_reservation(self, reservation_id: UUID) -> int:
        return await self.notifications.delete_by_reservation_id(reservation_id)

    async def _compose_confirmation(self, reservation_id: UUID):
        reservation = await self.reservations.find_by_id(reservation_id)
        subject = "Your Ocean View Resort reservation is confirmed"
        if reservation is None:
            return subject, f"Reservation {reservation_id} has been confirmed."

        room = await self.rooms.find_by_id(reservation.room_id)
        bill = await self.bills.find_by_reservation_id(reservation_id)
        lines = [
            f"Reservation: {reservation.reservation_id}",
            f"Check-in: {reservation.date_range.check_in.isoformat()}",
            f"Check-out: {reservation.date_range.check_out.isoformat()}",
            f"Nights: {reservation.get_nights()}",
        ]
        if room is not None:
            lines.append(f"Room: {room.room_number} ({room.room_type})")
        if bill is not None:
            lines.append(f"Total amount: {bill.total_amount}")
        return subject, "\n".join(lines)


class ReservationService(_TransactionalService):
    """Reservation lifecycle: create, confirm, cancel, check in, check out"""

    def __init__(self,
                 reservations: ReservationRepository,
                 guests: GuestRepository,
                 rooms: RoomRepository,
                 users: UserRepository,
                 availability: AvailabilityService,
                 billing: BillingService,
                 notifications: NotificationService,
                 transactions: TransactionManager,
                 max_retries: int = 3):
        super().__init__(transactions, max_retries)
        self.reservations = reservations
        self.guests = guests
        self.rooms = rooms
        self.users = users
        self.availability = availability
        self.billing = billing
        self.notifications = notifications

    async def create_reservation(
        self,
        guest_id: UUID,
        room_id: UUID,
        check_in: date,
        check_out: date
    ) -> Reservation:
        """Create a pending reservation if the room is free"""
        date_range = _date_range(check_in, check_out)
        if await self.guests.find_by_id(guest_id) is None:
            raise ValidationError(f"Guest {guest_id} does not exist")
        if await self.rooms.find_by_id(room_id) is None:
            raise ValidationError(f"Room {room_id} does not exist")

        async def operation() -> Reservation:
            # Check and insert under the same room lock
            conflicts = await self.availability.find_conflicts(room_id, check_in, check_out)
            if conflicts:
                logger.info(
                    f"Room {room_id} unavailable for {check_in}..{check_out}: "
                    f"overlaps reservation {conflicts[0].reservation_id}"
                )
                raise ConflictError("Room is already booked for the selected dates")
            reservation = Reservation.create(guest_id, room_id, date_range)
            return await self.reservations.save(reservation)

        reservation = await self._run_atomic(room_id, operation, "Create reservation")
        logger.info(
            f"Reservation {reservation.reservation_id} created for guest {guest_id}, "
            f"room {room_id}, {check_in}..{check_out}"
        )
        return reservation

    async def get_reservation(self, reservation_id: UUID) -> Reservation:
        reservation = await self.reservations.find_by_id(reservation_id)
        if reservation is None:
            raise NotFoundError(f"Reservation {reservation_id} not found")
        return reservation

    async def list_reservations(
        self,
        guest_id: Optional[UUID] = None,
        room_id: Optional[UUID] = None
    ) -> List[Reservation]:
        """List reservations, optionally narrowed to a guest and/or a room"""
        if guest_id is not None:
            found = await self.reservations.find_by_guest_id(guest_id)
        elif room_id is not None:
            found = await self.reservations.find_by_room_id(room_id)
        else:
            found = await self.reservations.find_all()
        if room_id is not None:
            found = [r for r in found if r.room_id == room_id]
        return sorted(found, key=lambda r: (r.date_range.check_in, r.created_at))

    async def confirm_reservation(self, reservation_id: UUID, staff_user_id: UUID) -> Bill:
        """Confirm a pending reservation, bill it, then notify the guest.

        Status change and bill are one transaction. The notification runs
        after commit and its failure is only recorded.
        """
        reservation = await self.get_reservation(reservation_id)
        staff = await self.users.find_by_id(staff_user_id)
        if staff is None or staff.disabled:
            raise ValidationError(f"Staff user {staff_user_id} does not exist or is disabled")

        async def operation() -> Bill:
            current = await self.get_reservation(reservation_id)
            current.confirm(staff_user_id)
            await self.reservations.update(current)
            return await self.billing.create_bill(current)

        bill = await self._run_atomic(reservation.room_id, operation, "Confirm reservation")
        logger.info(f"Reservation {reservation_id} confirmed by {staff.username}")

        await self._notify_confirmation(reservation)
        return bill

    async def cancel_reservation(self, reservation_id: UUID) -> Reservation:
        """Cancel a pending or confirmed reservation; any bill is left untouched"""
        return await self._transition(reservation_id, Reservation.cancel, "Cancel reservation")

    async def check_in(self, reservation_id: UUID) -> Reservation:
        """Check a confirmed reservation in and mark the room occupied"""
        return await self._transition(
            reservation_id, Reservation.check_in, "Check in", sync_room=True
        )

    async def check_out(self, reservation_id: UUID) -> Reservation:
        """Check a guest out and release the room"""
        return await self._transition(
            reservation_id, Reservation.check_out, "Check out", sync_room=True
        )

    async def purge_reservation(self, reservation_id: UUID) -> None:
        """Delete a finished reservation with its bill and notifications"""
        reservation = await self.get_reservation(reservation_id)

        async def operation() -> None:
            current = await self.get_reservation(reservation_id)
            if not current.is_terminal():
                raise InvalidStateError(
                    f"Cannot purge reservation with status {current.status.value}"
                )
            await self.billing.delete_bill_for_reservation(reservation_id)
            await self.notifications.purge_for_reservation(reservation_id)
            await self.reservations.delete(reservation_id)

        await self._run_atomic(reservation.room_id, operation, "Purge reservation")
        logger.info(f"Reservation {reservation_id} purged")

    async def _transition(
        self,
        reservation_id: UUID,
        apply: Callable[[Reservation], None],
        description: str,
        sync_room: bool = False
    ) -> Reservation:
        reservation = await self.get_reservation(reservation_id)

        async def operation() -> Reservation:
            current = await self.get_reservation(reservation_id)
            previous = current.status
            apply(current)
            await self.reservations.update(current)
            if sync_room:
                await self.availability.sync_room_status(current.room_id)
            logger.info(
                f"{description}: reservation {reservation_id} "
                f"{previous.value} -> {current.status.value}"
            )
            return current

        return await self._run_atomic(reservation.room_id, operation, description)

    async def _notify_confirmation(self, reservation: Reservation) -> None:
        try:
            guest = await self.guests.find_by_id(reservation.guest_id)
            if guest is None or not guest.email:
                await self.notifications.record_failure(
                    reservation.reservation_id, "Guest email could not be found"
                )
                return
            await self.notifications.notify_confirmation(reservation.reservation_id, guest.email)
        except Exception:
            # The confirmation is already committed
            logger.exception(f"Notification for reservation {reservation.reservation_id} failed")
