import logging
from decimal import Decimal

from ocean_view.application.services import DirectoryService
from ocean_view.infrastructure.security import get_password_hash

logger = logging.getLogger(__name__)

SAMPLE_ROOMS = [
    (101, "Single", Decimal("5000.00")),
    (102, "Double", Decimal("8000.00")),
    (103, "Suite", Decimal("15000.00")),
]


async def seed_sample_data(directory: DirectoryService, admin_username: str, admin_password: str) -> None:
    """Create the admin account and sample rooms (safe & idempotent)"""
    if await directory.find_user_by_username(admin_username) is None:
        await directory.add_staff_user(
            username=admin_username,
            hashed_password=get_password_hash(admin_password),
            role="Admin",
            full_name="Administrator"
        )
        logger.info(f"Seeded staff user {admin_username}")

    existing = {room.room_number for room in await directory.list_rooms()}
    for room_number, room_type, price in SAMPLE_ROOMS:
        if room_number not in existing:
            await directory.add_room(room_number, room_type, price)
