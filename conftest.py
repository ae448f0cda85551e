"""
Shared fixtures: in-memory repositories, services and a recording email transport
"""
import itertools
from datetime import date
from decimal import Decimal
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient

from ocean_view.application.services import (
    DirectoryService, AvailabilityService, BillingService, NotificationService, ReservationService
)
from ocean_view.domain.notifications import EmailSender
from ocean_view.infrastructure.repositories.in_memory_repositories import (
    InMemoryGuestRepository, InMemoryRoomRepository, InMemoryUserRepository,
    InMemoryReservationRepository, InMemoryBillRepository, InMemoryNotificationRepository,
    InMemoryTransactionManager
)


class RecordingEmailSender(EmailSender):
    """Email transport that keeps sent messages in memory"""

    def __init__(self, deliver: bool = True):
        self.deliver = deliver
        self.sent: List[Tuple[str, str, str]] = []

    async def send(self, address: str, subject: str, content: str) -> bool:
        self.sent.append((address, subject, content))
        return self.deliver


# ============================================================================
# REPOSITORIES
# ============================================================================

@pytest.fixture
def guest_repository():
    return InMemoryGuestRepository()


@pytest.fixture
def room_repository():
    return InMemoryRoomRepository()


@pytest.fixture
def user_repository():
    return InMemoryUserRepository()


@pytest.fixture
def reservation_repository():
    return InMemoryReservationRepository()


@pytest.fixture
def bill_repository():
    return InMemoryBillRepository()


@pytest.fixture
def notification_repository():
    return InMemoryNotificationRepository()


@pytest.fixture
def transaction_manager():
    return InMemoryTransactionManager(lock_timeout=1.0)


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


# ============================================================================
# SERVICES
# ============================================================================

@pytest.fixture
def directory_service(guest_repository, room_repository, user_repository, transaction_manager):
    return DirectoryService(guest_repository, room_repository, user_repository, transaction_manager)


@pytest.fixture
def availability_service(reservation_repository, room_repository):
    return AvailabilityService(reservation_repository, room_repository)


@pytest.fixture
def billing_service(bill_repository, reservation_repository, room_repository, transaction_manager):
    return BillingService(bill_repository, reservation_repository, room_repository, transaction_manager)


@pytest.fixture
def notification_service(notification_repository, reservation_repository, room_repository,
                         bill_repository, email_sender):
    return NotificationService(
        notification_repository, reservation_repository, room_repository, bill_repository, email_sender
    )


@pytest.fixture
def reservation_service(reservation_repository, guest_repository, room_repository, user_repository,
                        availability_service, billing_service, notification_service, transaction_manager):
    return ReservationService(
        reservation_repository, guest_repository, room_repository, user_repository,
        availability_service, billing_service, notification_service, transaction_manager
    )


# ============================================================================
# SAMPLE DATA
# ============================================================================

@pytest.fixture
async def guest(directory_service):
    return await directory_service.register_guest(
        guest_name="Nimal Perera",
        email="nimal@example.com",
        address="12 Beach Road, Galle",
        contact_number="0771234567"
    )


@pytest.fixture
async def room(directory_service):
    return await directory_service.add_room(101, "Double", Decimal("100.00"))


@pytest.fixture
async def staff(directory_service):
    return await directory_service.add_staff_user(
        username="frontdesk",
        hashed_password="not-a-real-hash",
        role="Receptionist"
    )


@pytest.fixture
def june_stay():
    """Three nights: 2024-06-01 .. 2024-06-04"""
    return date(2024, 6, 1), date(2024, 6, 4)


# ============================================================================
# API
# ============================================================================

_room_numbers = itertools.count(5000)


@pytest.fixture
def next_room_number():
    return lambda: next(_room_numbers)


@pytest.fixture
def client():
    """FastAPI test client (runs start-up seeding)"""
    from ocean_view.main import app
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client):
    """Get authentication headers for the seeded admin"""
    response = client.post("/token", data={"username": "admin", "password": "admin123"})
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}
