#!/usr/bin/env python3
"""
Concurrency tests: competing requests against the same room
"""

import asyncio
import random
import pytest
from datetime import date, timedelta
from decimal import Decimal

from ocean_view.domain.enums import ReservationStatus
from ocean_view.domain.exceptions import ConflictError, InvalidStateError
from ocean_view.infrastructure.repositories.in_memory_repositories import InMemoryReservationRepository


class SlowReservationRepository(InMemoryReservationRepository):
    """Yields to the event loop on every read, widening check-then-insert races"""

    async def find_by_id(self, reservation_id):
        await asyncio.sleep(0)
        return await super().find_by_id(reservation_id)

    async def find_by_room_id(self, room_id):
        await asyncio.sleep(0)
        return await super().find_by_room_id(room_id)


@pytest.fixture
def reservation_repository():
    return SlowReservationRepository()


def _outcomes(results):
    successes = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    return successes, failures


class TestConcurrentReservations:
    """Test per-room atomicity of create and confirm"""

    @pytest.mark.concurrency
    async def test_overlapping_creates_single_winner(self, reservation_service, reservation_repository,
                                                     guest, room):
        stays = [
            (date(2024, 7, 1), date(2024, 7, 5)),
            (date(2024, 7, 3), date(2024, 7, 6)),
            (date(2024, 7, 4), date(2024, 7, 8)),
            (date(2024, 6, 29), date(2024, 7, 5)),
        ]
        results = await asyncio.gather(
            *(reservation_service.create_reservation(guest.guest_id, room.room_id, *stay) for stay in stays),
            return_exceptions=True
        )

        successes, failures = _outcomes(results)
        assert len(successes) == 1
        assert len(failures) == 3
        assert all(isinstance(f, ConflictError) for f in failures)
        assert len(await reservation_repository.find_by_room_id(room.room_id)) == 1

    @pytest.mark.concurrency
    async def test_identical_creates_single_winner(self, reservation_service, guest, room, june_stay):
        results = await asyncio.gather(
            *(reservation_service.create_reservation(guest.guest_id, room.room_id, *june_stay) for _ in range(10)),
            return_exceptions=True
        )

        successes, failures = _outcomes(results)
        assert len(successes) == 1
        assert all(isinstance(f, ConflictError) for f in failures)

    @pytest.mark.concurrency
    async def test_different_rooms_do_not_block(self, reservation_service, directory_service, guest, june_stay):
        rooms = [
            await directory_service.add_room(200 + i, "Single", Decimal("80.00"))
            for i in range(5)
        ]
        results = await asyncio.gather(
            *(reservation_service.create_reservation(guest.guest_id, r.room_id, *june_stay) for r in rooms),
            return_exceptions=True
        )

        successes, failures = _outcomes(results)
        assert failures == []
        assert {r.room_id for r in successes} == {r.room_id for r in rooms}

    @pytest.mark.concurrency
    async def test_concurrent_confirms_one_bill(self, reservation_service, billing_service, bill_repository,
                                                guest, room, staff, june_stay):
        reservation = await reservation_service.create_reservation(guest.guest_id, room.room_id, *june_stay)

        results = await asyncio.gather(
            reservation_service.confirm_reservation(reservation.reservation_id, staff.user_id),
            reservation_service.confirm_reservation(reservation.reservation_id, staff.user_id),
            return_exceptions=True
        )

        successes, failures = _outcomes(results)
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidStateError)
        assert len(bill_repository._storage) == 1

        bill = await billing_service.get_bill_for_reservation(reservation.reservation_id)
        assert bill.bill_id == successes[0].bill_id
        stored = await reservation_service.get_reservation(reservation.reservation_id)
        assert stored.status == ReservationStatus.CONFIRMED
        assert stored.version == 2

    @pytest.mark.concurrency
    async def test_cancel_races_check_in(self, reservation_service, guest, room, staff, june_stay):
        reservation = await reservation_service.create_reservation(guest.guest_id, room.room_id, *june_stay)
        await reservation_service.confirm_reservation(reservation.reservation_id, staff.user_id)

        results = await asyncio.gather(
            reservation_service.cancel_reservation(reservation.reservation_id),
            reservation_service.check_in(reservation.reservation_id),
            return_exceptions=True
        )

        successes, failures = _outcomes(results)
        assert len(successes) == 1
        assert isinstance(failures[0], InvalidStateError)
        stored = await reservation_service.get_reservation(reservation.reservation_id)
        assert stored.status == successes[0].status

    @pytest.mark.concurrency
    async def test_concurrent_extra_charges_all_counted(self, reservation_service, billing_service,
                                                        guest, room, staff, june_stay):
        reservation = await reservation_service.create_reservation(guest.guest_id, room.room_id, *june_stay)
        bill = await reservation_service.confirm_reservation(reservation.reservation_id, staff.user_id)

        await asyncio.gather(*(
            billing_service.add_extra_charge(bill.bill_id, f"Item {i}", Decimal("2.50"), 2)
            for i in range(8)
        ))

        stored = await billing_service.get_bill(bill.bill_id)
        assert len(stored.extra_charges) == 8
        assert stored.extra_charges_total == Decimal("40.00")
        assert stored.total_amount == Decimal("340.00")

    @pytest.mark.concurrency
    @pytest.mark.edge_case
    async def test_random_requests_never_overlap(self, reservation_service, reservation_repository,
                                                 guest, room):
        rng = random.Random(42)
        base = date(2025, 1, 1)
        requests = []
        for _ in range(40):
            start = base + timedelta(days=rng.randint(0, 60))
            requests.append((start, start + timedelta(days=rng.randint(1, 6))))

        results = await asyncio.gather(
            *(reservation_service.create_reservation(guest.guest_id, room.room_id, *r) for r in requests),
            return_exceptions=True
        )

        successes, failures = _outcomes(results)
        assert successes
        assert all(isinstance(f, ConflictError) for f in failures)

        stored = [r for r in await reservation_repository.find_by_room_id(room.room_id) if r.is_active()]
        assert len(stored) == len(successes)
        for i, first in enumerate(stored):
            for second in stored[i + 1:]:
                assert not first.date_range.overlaps(second.date_range)
