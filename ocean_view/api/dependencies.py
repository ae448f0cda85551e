"""API Dependencies - service wiring and staff authentication"""
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from ocean_view.config import settings
from ocean_view.domain.auth import User
from ocean_view.application.services import (
    DirectoryService, AvailabilityService, BillingService, NotificationService, ReservationService
)
from ocean_view.infrastructure.mailer import build_email_sender
from ocean_view.infrastructure.repositories.in_memory_repositories import (
    InMemoryGuestRepository, InMemoryRoomRepository, InMemoryUserRepository,
    InMemoryReservationRepository, InMemoryBillRepository, InMemoryNotificationRepository,
    InMemoryTransactionManager
)
from ocean_view.infrastructure.security import decode_access_token
from ocean_view.api.schemas import TokenData

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

# Initialize repositories
guest_repo = InMemoryGuestRepository()
room_repo = InMemoryRoomRepository()
user_repo = InMemoryUserRepository()
reservation_repo = InMemoryReservationRepository()
bill_repo = InMemoryBillRepository()
notification_repo = InMemoryNotificationRepository()
transactions = InMemoryTransactionManager(lock_timeout=settings.LOCK_TIMEOUT_SECONDS)

# Initialize services
directory_service = DirectoryService(
    guest_repo, room_repo, user_repo, transactions, settings.MAX_TRANSACTION_RETRIES
)
availability_service = AvailabilityService(reservation_repo, room_repo)
billing_service = BillingService(
    bill_repo, reservation_repo, room_repo, transactions, settings.MAX_TRANSACTION_RETRIES
)
notification_service = NotificationService(
    notification_repo, reservation_repo, room_repo, bill_repo, build_email_sender(settings)
)
reservation_service = ReservationService(
    reservation_repo, guest_repo, room_repo, user_repo,
    availability_service, billing_service, notification_service,
    transactions, settings.MAX_TRANSACTION_RETRIES
)


def get_directory_service() -> DirectoryService:
    return directory_service


def get_availability_service() -> AvailabilityService:
    return availability_service


def get_billing_service() -> BillingService:
    return billing_service


def get_notification_service() -> NotificationService:
    return notification_service


def get_reservation_service() -> ReservationService:
    return reservation_service


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    directory: DirectoryService = Depends(get_directory_service)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
        username: str = payload.get("sub")
        if username is None:
            raise credentials_exception
        token_data = TokenData(username=username)
    except JWTError:
        raise credentials_exception

    user = await directory.find_user_by_username(token_data.username)
    if user is None:
        raise credentials_exception
    return User(**user.model_dump(exclude={"hashed_password"}))


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if current_user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user
