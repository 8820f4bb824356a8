"""Integration tests for the booking API."""
import uuid

from httpx import AsyncClient

from studiobook.domains.users.models import UserRole
from tests.factories import TOMORROW, auth_headers

API = "/api/v1"


class TestIdentity:
    async def test_missing_headers(self, client: AsyncClient):
        response = await client.get(f"{API}/bookings")

        assert response.status_code == 401

    async def test_invalid_user_id(self, client: AsyncClient):
        response = await client.get(
            f"{API}/bookings", headers={"X-User-Id": "nope", "X-User-Role": "CLIENT"}
        )

        assert response.status_code == 401

    async def test_invalid_role(self, client: AsyncClient):
        response = await client.get(
            f"{API}/bookings", headers={"X-User-Id": str(uuid.uuid4()), "X-User-Role": "ROOT"}
        )

        assert response.status_code == 401

    async def test_client_cannot_use_admin_routes(self, client: AsyncClient, client_user):
        response = await client.get(f"{API}/admin/bookings", headers=auth_headers(client_user))

        assert response.status_code == 403


class TestAvailableSlots:
    async def test_lists_slots(self, client: AsyncClient, client_user):
        response = await client.get(
            f"{API}/available-slots",
            params={"date": TOMORROW.isoformat()},
            headers=auth_headers(client_user),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["date"] == TOMORROW.isoformat()
        assert data["slots"][0] == "06:00"
        assert "14:00" not in data["slots"]

    async def test_unknown_package(self, client: AsyncClient, client_user):
        response = await client.get(
            f"{API}/available-slots",
            params={"date": TOMORROW.isoformat(), "package_id": str(uuid.uuid4())},
            headers=auth_headers(client_user),
        )

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


class TestBookingFlow:
    """Create, list and cancel over HTTP."""

    async def test_create_list_cancel(self, client: AsyncClient, client_user, make_package, used_sessions):
        package = await make_package([client_user], used_sessions=2)
        headers = auth_headers(client_user)

        created = await client.post(
            f"{API}/bookings",
            json={"date": TOMORROW.isoformat(), "time": "10:00", "package_id": str(package["id"])},
            headers=headers,
        )
        assert created.status_code == 201
        booking = created.json()
        assert booking["status"] == "CONFIRMED"
        assert booking["time"] == "10:00"
        assert booking["google_event_id"] == "evt-123"
        assert await used_sessions(package["id"]) == {client_user["id"]: 3}

        listed = await client.get(f"{API}/bookings", headers=headers)
        assert [b["id"] for b in listed.json()] == [booking["id"]]

        slots = await client.get(
            f"{API}/available-slots", params={"date": TOMORROW.isoformat()}, headers=headers
        )
        assert "10:00" not in slots.json()["slots"]

        cancelled = await client.delete(f"{API}/bookings/{booking['id']}", headers=headers)
        assert cancelled.status_code == 200
        assert cancelled.json() == {"success": True}
        assert await used_sessions(package["id"]) == {client_user["id"]: 2}

        listed = await client.get(f"{API}/bookings", headers=headers)
        assert listed.json() == []

    async def test_conflict_reports_reason(self, client: AsyncClient, make_user, make_package):
        anna = await make_user(name="Anna")
        luca = await make_user(name="Luca")
        shared = await make_package([anna, luca])
        await client.post(
            f"{API}/bookings",
            json={"date": TOMORROW.isoformat(), "time": "10:00", "package_id": str(shared["id"])},
            headers=auth_headers(anna),
        )
        paolo = await make_user(name="Paolo")
        single = await make_package([paolo])

        response = await client.post(
            f"{API}/bookings",
            json={"date": TOMORROW.isoformat(), "time": "10:30", "package_id": str(single["id"])},
            headers=auth_headers(paolo),
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "slot_conflict"
        assert body["reason"] == "shared_conflict"

    async def test_quota_exhausted(self, client: AsyncClient, client_user, make_package):
        package = await make_package([client_user], total_sessions=10, used_sessions=10)

        response = await client.post(
            f"{API}/bookings",
            json={"date": TOMORROW.isoformat(), "time": "10:00", "package_id": str(package["id"])},
            headers=auth_headers(client_user),
        )

        assert response.status_code == 409
        assert response.json()["code"] == "quota_exhausted"

    async def test_off_grid_time(self, client: AsyncClient, client_user, make_package):
        package = await make_package([client_user])

        response = await client.post(
            f"{API}/bookings",
            json={"date": TOMORROW.isoformat(), "time": "10:15", "package_id": str(package["id"])},
            headers=auth_headers(client_user),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    async def test_cancel_unknown_booking(self, client: AsyncClient, client_user):
        response = await client.delete(f"{API}/bookings/{uuid.uuid4()}", headers=auth_headers(client_user))

        assert response.status_code == 404


class TestAdminRoutes:
    async def test_admin_books_for_client_and_reschedules(
        self, client: AsyncClient, admin_user, client_user, make_package
    ):
        package = await make_package([client_user])
        admin_headers = auth_headers(admin_user)

        created = await client.post(
            f"{API}/bookings",
            json={
                "date": TOMORROW.isoformat(),
                "time": "09:00",
                "package_id": str(package["id"]),
                "user_id": str(client_user["id"]),
            },
            headers=admin_headers,
        )
        assert created.status_code == 201
        booking = created.json()
        assert booking["user_id"] == str(client_user["id"])

        moved = await client.put(
            f"{API}/admin/bookings/{booking['id']}",
            json={"time": "11:00", "duration_minutes": 90},
            headers=admin_headers,
        )
        assert moved.status_code == 200
        assert moved.json()["time"] == "11:00"
        assert moved.json()["duration_minutes"] == 90

        listed = await client.get(
            f"{API}/admin/bookings",
            params={"start_date": TOMORROW.isoformat(), "end_date": TOMORROW.isoformat()},
            headers=admin_headers,
        )
        assert [b["id"] for b in listed.json()] == [booking["id"]]

    async def test_reschedule_rejects_short_duration(
        self, client: AsyncClient, admin_user, client_user, make_package
    ):
        package = await make_package([client_user])
        created = await client.post(
            f"{API}/bookings",
            json={"date": TOMORROW.isoformat(), "time": "09:00", "package_id": str(package["id"])},
            headers=auth_headers(client_user),
        )

        response = await client.put(
            f"{API}/admin/bookings/{created.json()['id']}",
            json={"duration_minutes": 10},
            headers=auth_headers(admin_user),
        )

        assert response.status_code == 422

    async def test_reschedule_requires_admin(self, client: AsyncClient, client_user, make_package):
        package = await make_package([client_user])
        created = await client.post(
            f"{API}/bookings",
            json={"date": TOMORROW.isoformat(), "time": "09:00", "package_id": str(package["id"])},
            headers=auth_headers(client_user),
        )

        response = await client.put(
            f"{API}/admin/bookings/{created.json()['id']}",
            json={"time": "11:00"},
            headers=auth_headers(client_user),
        )

        assert response.status_code == 403


class TestPackages:
    async def test_lists_caller_balances(self, client: AsyncClient, client_user, make_user, make_package):
        partner = await make_user(name="Luca", role=UserRole.CLIENT)
        await make_package([client_user], total_sessions=10, used_sessions=4, name="Solo")
        await make_package([client_user, partner], total_sessions=5, used_sessions=[1, 1], name="Coppia")

        response = await client.get(f"{API}/packages", headers=auth_headers(client_user))

        assert response.status_code == 200
        balances = {p["name"]: p for p in response.json()}
        assert balances["Solo"]["remaining_sessions"] == 6
        assert balances["Solo"]["is_shared"] is False
        assert balances["Coppia"]["is_shared"] is True
        assert balances["Coppia"]["participant_count"] == 2


class TestHealth:
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
