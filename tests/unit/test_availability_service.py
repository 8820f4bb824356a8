"""Tests for AvailabilityService."""
import uuid
from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from studiobook.core.google_calendar import BusyInterval
from studiobook.domains.bookings.availability import AvailabilityService
from studiobook.domains.bookings.exceptions import NotFoundError
from studiobook.domains.bookings.slots import generate_slots
from studiobook.domains.users.models import UserRole
from tests.factories import TODAY, TOMORROW, fixed_clock


@pytest.fixture
def availability(db_session: AsyncSession, fake_calendar) -> AvailabilityService:
    return AvailabilityService(db_session, calendar=fake_calendar, clock=fixed_clock)


class TestListAvailableSlots:
    """Tests for list_available_slots."""

    async def test_empty_day_returns_full_grid(self, availability):
        slots = await availability.list_available_slots(TOMORROW, UserRole.CLIENT)

        assert slots == generate_slots()

    async def test_idempotent(self, availability, booking_service, make_user, make_package):
        anna = await make_user(name="Anna")
        package = await make_package([anna])
        await booking_service.create_booking(anna["id"], package["id"], TOMORROW, "10:00")

        first = await availability.list_available_slots(TOMORROW, UserRole.CLIENT)
        second = await availability.list_available_slots(TOMORROW, UserRole.CLIENT)

        assert first == second

    async def test_booking_blocks_probe_overlaps(self, availability, booking_service, make_user, make_package):
        anna = await make_user(name="Anna")
        package = await make_package([anna])
        await booking_service.create_booking(anna["id"], package["id"], TOMORROW, "10:00")

        slots = await availability.list_available_slots(TOMORROW, UserRole.CLIENT)

        # 60-minute probe: 09:30 reaches 10:00-11:00, 10:30 starts inside it
        assert "09:00" in slots
        assert "09:30" not in slots
        assert "10:00" not in slots
        assert "10:30" not in slots
        assert "11:00" in slots

    async def test_admin_sees_co_bookable_slot(self, availability, booking_service, make_user, make_package):
        anna = await make_user(name="Anna")
        luca = await make_user(name="Luca")
        anna_package = await make_package([anna])
        luca_package = await make_package([luca])
        await booking_service.create_booking(anna["id"], anna_package["id"], TOMORROW, "10:00")

        client_slots = await availability.list_available_slots(TOMORROW, UserRole.CLIENT, luca_package["id"])
        admin_slots = await availability.list_available_slots(TOMORROW, UserRole.ADMIN, luca_package["id"])
        admin_unknown = await availability.list_available_slots(TOMORROW, UserRole.ADMIN)

        assert "10:00" not in client_slots
        assert "10:00" in admin_slots
        assert "10:00" not in admin_unknown

    async def test_external_busy_blocks_even_admin(self, availability, fake_calendar, make_user, make_package):
        anna = await make_user(name="Anna")
        package = await make_package([anna])
        fake_calendar.list_busy_intervals.return_value = [BusyInterval(12 * 60, 13 * 60, "external-1")]

        slots = await availability.list_available_slots(TOMORROW, UserRole.ADMIN, package["id"])

        assert "11:30" not in slots
        assert "12:00" not in slots
        assert "12:30" not in slots
        assert "11:00" in slots
        assert "13:00" in slots

    async def test_own_mirrored_event_does_not_double_block(
        self, availability, booking_service, fake_calendar, make_user, make_package
    ):
        anna = await make_user(name="Anna")
        luca = await make_user(name="Luca")
        anna_package = await make_package([anna])
        luca_package = await make_package([luca])
        await booking_service.create_booking(anna["id"], anna_package["id"], TOMORROW, "10:00")
        fake_calendar.list_busy_intervals.return_value = [BusyInterval(600, 660, "evt-123")]

        slots = await availability.list_available_slots(TOMORROW, UserRole.ADMIN, luca_package["id"])

        assert "10:00" in slots

    async def test_calendar_failure_falls_back_to_store(self, availability, fake_calendar):
        fake_calendar.list_busy_intervals.side_effect = TimeoutError("calendar down")

        slots = await availability.list_available_slots(TOMORROW, UserRole.CLIENT)

        assert slots == generate_slots()

    async def test_today_drops_past_slots(self, availability):
        slots = await availability.list_available_slots(TODAY, UserRole.CLIENT)

        # The fixed clock reads 08:00
        assert "08:00" not in slots
        assert slots[0] == "08:30"

    async def test_past_day_is_empty(self, db_session, fake_calendar):
        service = AvailabilityService(
            db_session, calendar=fake_calendar, clock=lambda: datetime(2026, 3, 4, 9, 0)
        )

        assert await service.list_available_slots(TOMORROW, UserRole.CLIENT) == []

    async def test_unknown_package(self, availability):
        with pytest.raises(NotFoundError):
            await availability.list_available_slots(TOMORROW, UserRole.CLIENT, uuid.uuid4())

    async def test_shared_booking_blocks_admin(self, availability, booking_service, make_user, make_package):
        anna = await make_user(name="Anna")
        luca = await make_user(name="Luca")
        paolo = await make_user(name="Paolo")
        shared = await make_package([anna, luca])
        single = await make_package([paolo])
        await booking_service.create_booking(anna["id"], shared["id"], TOMORROW, "18:00")

        slots = await availability.list_available_slots(TOMORROW, UserRole.ADMIN, single["id"])

        assert "18:00" not in slots
