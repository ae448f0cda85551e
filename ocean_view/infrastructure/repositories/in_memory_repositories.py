"""In-Memory Repository Implementations

Entities are copied on the way in and out, so a caller mutating an entity
never touches stored state until it calls save/update. Writes made inside
``InMemoryTransactionManager.atomic`` are journaled and undone if the block
raises.
"""
import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Optional, List, Dict, Callable, Any, AsyncIterator
from uuid import UUID

from ocean_view.domain.repositories import (
    GuestRepository, RoomRepository, UserRepository, ReservationRepository,
    BillRepository, NotificationRepository, TransactionManager
)
from ocean_view.domain.auth import UserInDB
from ocean_view.domain.entities import Guest, Room, Reservation, Bill, EmailNotification
from ocean_view.domain.exceptions import TransientStoreError

_journal: ContextVar[Optional[List[Callable[[], None]]]] = ContextVar("in_memory_journal", default=None)
_MISSING = object()


class _InMemoryStorage:
    """Keyed storage shared by the repositories below"""

    def __init__(self):
        self._storage: Dict[Any, Any] = {}

    def _read(self, key):
        entity = self._storage.get(key)
        return entity.model_copy(deep=True) if entity is not None else None

    def _values(self) -> list:
        return [entity.model_copy(deep=True) for entity in self._storage.values()]

    def _write(self, key, entity) -> None:
        self._remember(key)
        self._storage[key] = entity.model_copy(deep=True)

    def _remove(self, key) -> bool:
        if key not in self._storage:
            return False
        self._remember(key)
        del self._storage[key]
        return True

    def _remember(self, key) -> None:
        journal = _journal.get()
        if journal is None:
            return
        previous = self._storage.get(key, _MISSING)

        def undo():
            if previous is _MISSING:
                self._storage.pop(key, None)
            else:
                self._storage[key] = previous

        journal.append(undo)


class InMemoryGuestRepository(_InMemoryStorage, GuestRepository):
    """In-memory implementation of GuestRepository"""

    async def save(self, guest: Guest) -> Guest:
        """Save guest to memory"""
        self._write(guest.guest_id, guest)
        return guest

    async def find_by_id(self, guest_id: UUID) -> Optional[Guest]:
        """Find guest by ID"""
        return self._read(guest_id)

    async def find_all(self) -> List[Guest]:
        """Find all guests"""
        return self._values()


class InMemoryRoomRepository(_InMemoryStorage, RoomRepository):
    """In-memory implementation of RoomRepository"""

    async def save(self, room: Room) -> Room:
        """Save room to memory"""
        self._write(room.room_id, room)
        return room

    async def find_by_id(self, room_id: UUID) -> Optional[Room]:
        """Find room by ID"""
        return self._read(room_id)

    async def find_by_number(self, room_number: int) -> Optional[Room]:
        """Find room by its unique number"""
        for room in self._storage.values():
            if room.room_number == room_number:
                return room.model_copy(deep=True)
        return None

    async def find_all(self, room_type: Optional[str] = None) -> List[Room]:
        """Find all rooms, optionally of one type"""
        rooms = sorted(self._values(), key=lambda r: r.room_number)
        if room_type is None:
            return rooms
        return [r for r in rooms if r.room_type.lower() == room_type.lower()]

    async def update(self, room: Room) -> Room:
        """Update room"""
        if room.room_id in self._storage:
            self._write(room.room_id, room)
            return room
        raise ValueError("Room not found")


class InMemoryUserRepository(_InMemoryStorage, UserRepository):
    """In-memory implementation of UserRepository"""

    async def save(self, user: UserInDB) -> UserInDB:
        """Save user to memory"""
        self._write(user.user_id, user)
        return user

    async def find_by_id(self, user_id: UUID) -> Optional[UserInDB]:
        """Find user by ID"""
        return self._read(user_id)

    async def find_by_username(self, username: str) -> Optional[UserInDB]:
        """Find user by username"""
        for user in self._storage.values():
            if user.username == username:
                return user.model_copy(deep=True)
        return None


class InMemoryReservationRepository(_InMemoryStorage, ReservationRepository):
    """In-memory implementation of ReservationRepository"""

    async def save(self, reservation: Reservation) -> Reservation:
        """Save reservation to memory"""
        self._write(reservation.reservation_id, reservation)
        return reservation

    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        return self._read(reservation_id)

    async def find_by_guest_id(self, guest_id: UUID) -> List[Reservation]:
        """Find reservations by guest ID"""
        return [r for r in self._values() if r.guest_id == guest_id]

    async def find_by_room_id(self, room_id: UUID) -> List[Reservation]:
        """Find reservations by room ID"""
        return [r for r in self._values() if r.room_id == room_id]

    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        return self._values()

    async def update(self, reservation: Reservation) -> Reservation:
        """Update reservation"""
        if reservation.reservation_id in self._storage:
            self._write(reservation.reservation_id, reservation)
            return reservation
        raise ValueError("Reservation not found")

    async def delete(self, reservation_id: UUID) -> bool:
        """Delete reservation"""
        return self._remove(reservation_id)


class InMemoryBillRepository(_InMemoryStorage, BillRepository):
    """In-memory implementation of BillRepository"""

    async def save(self, bill: Bill) -> Bill:
        """Save bill to memory"""
        self._write(bill.bill_id, bill)
        return bill

    async def find_by_id(self, bill_id: UUID) -> Optional[Bill]:
        """Find bill by ID"""
        return self._read(bill_id)

    async def find_by_reservation_id(self, reservation_id: UUID) -> Optional[Bill]:
        """Find the bill of a reservation"""
        for bill in self._storage.values():
            if bill.reservation_id == reservation_id:
                return bill.model_copy(deep=True)
        return None

    async def find_by_payment_id(self, payment_id: UUID) -> Optional[Bill]:
        """Find the bill holding a payment"""
        for bill in self._storage.values():
            if bill.find_payment(payment_id) is not None:
                return bill.model_copy(deep=True)
        return None

    async def update(self, bill: Bill) -> Bill:
        """Update bill"""
        if bill.bill_id in self._storage:
            self._write(bill.bill_id, bill)
            return bill
        raise ValueError("Bill not found")

    async def delete(self, bill_id: UUID) -> bool:
        """Delete bill with its charges and payments"""
        return self._remove(bill_id)


class InMemoryNotificationRepository(_InMemoryStorage, NotificationRepository):
    """In-memory implementation of NotificationRepository"""

    async def save(self, notification: EmailNotification) -> EmailNotification:
        """Append notification record"""
        self._write(notification.notification_id, notification)
        return notification

    async def find_by_reservation_id(self, reservation_id: UUID) -> List[EmailNotification]:
        """Find notifications of a reservation, oldest first"""
        records = [n for n in self._values() if n.reservation_id == reservation_id]
        return sorted(records, key=lambda n: n.sent_date)

    async def delete_by_reservation_id(self, reservation_id: UUID) -> int:
        """Delete notifications of a reservation"""
        keys = [key for key, n in self._storage.items() if n.reservation_id == reservation_id]
        for key in keys:
            self._remove(key)
        return len(keys)


class InMemoryTransactionManager(TransactionManager):
    """Per-room asyncio locks plus an undo journal for in-memory writes"""

    def __init__(self, lock_timeout: float = 5.0):
        self._lock_timeout = lock_timeout
        self._room_locks: Dict[UUID, asyncio.Lock] = {}

    def _room_lock(self, room_id: UUID) -> asyncio.Lock:
        lock = self._room_locks.get(room_id)
        if lock is None:
            lock = self._room_locks[room_id] = asyncio.Lock()
        return lock

    async def _acquire(self, lock: asyncio.Lock, room_id: UUID) -> None:
        acquiring = asyncio.ensure_future(lock.acquire())
        try:
            done, _ = await asyncio.wait({acquiring}, timeout=self._lock_timeout)
        except BaseException:
            self._abandon(lock, acquiring)
            raise
        if not done:
            self._abandon(lock, acquiring)
            raise TransientStoreError(f"Timed out waiting for lock on room {room_id}")

    @staticmethod
    def _abandon(lock: asyncio.Lock, acquiring: "asyncio.Future[bool]") -> None:
        # An acquire that wins the race with cancel still owns the lock
        def release_if_acquired(task):
            if not task.cancelled() and task.exception() is None:
                lock.release()

        acquiring.cancel()
        acquiring.add_done_callback(release_if_acquired)

    @asynccontextmanager
    async def atomic(self, room_id: Optional[UUID] = None) -> AsyncIterator[None]:
        if _journal.get() is not None:
            # Nested block joins the enclosing transaction and its lock
            yield
            return

        lock = self._room_lock(room_id) if room_id is not None else None
        if lock is not None:
            await self._acquire(lock, room_id)

        journal: List[Callable[[], None]] = []
        token = _journal.set(journal)
        try:
            yield
        except BaseException:
            for undo in reversed(journal):
                undo()
            raise
        finally:
            _journal.reset(token)
            if lock is not None:
                lock.release()
