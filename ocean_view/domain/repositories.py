"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import Optional, List, AsyncContextManager
from uuid import UUID

from ocean_view.domain.auth import UserInDB
from ocean_view.domain.entities import Guest, Room, Reservation, Bill, EmailNotification


class GuestRepository(ABC):
    """Repository interface for Guest"""

    @abstractmethod
    async def save(self, guest: Guest) -> Guest:
        """Save guest"""
        pass

    @abstractmethod
    async def find_by_id(self, guest_id: UUID) -> Optional[Guest]:
        """Find guest by ID"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Guest]:
        """Find all guests"""
        pass


class RoomRepository(ABC):
    """Repository interface for Room"""

    @abstractmethod
    async def save(self, room: Room) -> Room:
        """Save room"""
        pass

    @abstractmethod
    async def find_by_id(self, room_id: UUID) -> Optional[Room]:
        """Find room by ID"""
        pass

    @abstractmethod
    async def find_by_number(self, room_number: int) -> Optional[Room]:
        """Find room by its unique number"""
        pass

    @abstractmethod
    async def find_all(self, room_type: Optional[str] = None) -> List[Room]:
        """Find all rooms, optionally of one type"""
        pass

    @abstractmethod
    async def update(self, room: Room) -> Room:
        """Update room"""
        pass


class UserRepository(ABC):
    """Repository interface for staff users"""

    @abstractmethod
    async def save(self, user: UserInDB) -> UserInDB:
        """Save user"""
        pass

    @abstractmethod
    async def find_by_id(self, user_id: UUID) -> Optional[UserInDB]:
        """Find user by ID"""
        pass

    @abstractmethod
    async def find_by_username(self, username: str) -> Optional[UserInDB]:
        """Find user by username"""
        pass


class ReservationRepository(ABC):
    """Repository interface for Reservation Aggregate"""

    @abstractmethod
    async def save(self, reservation: Reservation) -> Reservation:
        """Save reservation"""
        pass

    @abstractmethod
    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        pass

    @abstractmethod
    async def find_by_guest_id(self, guest_id: UUID) -> List[Reservation]:
        """Find reservations by guest ID"""
        pass

    @abstractmethod
    async def find_by_room_id(self, room_id: UUID) -> List[Reservation]:
        """Find reservations by room ID"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        pass

    @abstractmethod
    async def update(self, reservation: Reservation) -> Reservation:
        """Update reservation"""
        pass

    @abstractmethod
    async def delete(self, reservation_id: UUID) -> bool:
        """Delete reservation"""
        pass


class BillRepository(ABC):
    """Repository interface for Bill Aggregate (owns charges and payments)"""

    @abstractmethod
    async def save(self, bill: Bill) -> Bill:
        """Save bill"""
        pass

    @abstractmethod
    async def find_by_id(self, bill_id: UUID) -> Optional[Bill]:
        """Find bill by ID"""
        pass

    @abstractmethod
    async def find_by_reservation_id(self, reservation_id: UUID) -> Optional[Bill]:
        """Find the bill of a reservation"""
        pass

    @abstractmethod
    async def find_by_payment_id(self, payment_id: UUID) -> Optional[Bill]:
        """Find the bill holding a payment"""
        pass

    @abstractmethod
    async def update(self, bill: Bill) -> Bill:
        """Update bill"""
        pass

    @abstractmethod
    async def delete(self, bill_id: UUID) -> bool:
        """Delete bill with its charges and payments"""
        pass


class NotificationRepository(ABC):
    """Repository interface for the notification log"""

    @abstractmethod
    async def save(self, notification: EmailNotification) -> EmailNotification:
        """Append notification record"""
        pass

    @abstractmethod
    async def find_by_reservation_id(self, reservation_id: UUID) -> List[EmailNotification]:
        """Find notifications of a reservation"""
        pass

    @abstractmethod
    async def delete_by_reservation_id(self, reservation_id: UUID) -> int:
        """Delete notifications of a reservation"""
        pass


class TransactionManager(ABC):
    """Runs a block of repository calls as one atomic unit"""

    @abstractmethod
    def atomic(self, room_id: Optional[UUID] = None) -> AsyncContextManager[None]:
        """Open a transaction, serialized per room when ``room_id`` is given.

        Every write made inside the block is rolled back if the block raises.
        Raises TransientStoreError when the transaction cannot start.
        """
        pass
