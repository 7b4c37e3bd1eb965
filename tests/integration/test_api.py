"""
HTTP-level tests: auth, error mapping, webhook signature and cron guard.
Runs the FastAPI app in-process via httpx.ASGITransport.
"""
import base64
import hashlib
import hmac
import json
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from govcar.database import get_db
from govcar.exceptions import StoreError
from govcar.main import app
from govcar.middleware.auth import create_access_token
from govcar.redis_client import get_redis
from govcar.repositories.booking_repo import BookingRepository
from govcar.repositories.driver_repo import DriverRepository
from govcar.services.assignment import AssignmentService
from govcar.services.notifier import get_notifier

CHANNEL_SECRET = "test-channel-secret"
CRON_SECRET = "test-cron-secret"


def _auth(sub: str, role: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': sub, 'role': role})}"}


ADMIN = _auth("admin-1", "admin")


def _signed(payload: dict) -> tuple[bytes, dict]:
    body = json.dumps(payload).encode()
    digest = hmac.new(CHANNEL_SECRET.encode(), body, hashlib.sha256).digest()
    return body, {"X-Line-Signature": base64.b64encode(digest).decode(), "Content-Type": "application/json"}


@pytest.fixture
def redis():
    client = AsyncMock()
    client.set.return_value = True
    client.get.return_value = None
    return client


@pytest_asyncio.fixture
async def client(db, notifier, redis):
    async def _db():
        yield db

    async def _redis():
        return redis

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_redis] = _redis
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.mark.asyncio
class TestAdminRoutes:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    async def test_requires_token(self, client):
        resp = await client.post("/v1/admin/assign-next", json={"booking_id": "b1"})
        assert resp.status_code == 401

    async def test_requires_admin_role(self, client):
        resp = await client.post("/v1/admin/assign-next", json={"booking_id": "b1"}, headers=_auth("d1", "driver"))
        assert resp.status_code == 403

    async def test_no_driver_available(self, client, add_booking):
        await add_booking("b1")

        resp = await client.post("/v1/admin/assign-next", json={"booking_id": "b1"}, headers=ADMIN)

        assert resp.status_code == 409
        assert resp.json()["error"] == "NO_DRIVER_AVAILABLE"

    async def test_assign_next(self, client, add_driver, add_booking):
        await add_driver("d1", 1, full_name="Somchai")
        await add_driver("d2", 2)
        await add_booking("b1")

        resp = await client.post("/v1/admin/assign-next", json={"bookingId": "b1"}, headers=ADMIN)

        assert resp.status_code == 200
        body = resp.json()
        assert body["driver_id"] == "d1"
        assert body["driver_name"] == "Somchai"
        assert body["queue_order"] == 3

        queue = await client.get("/v1/admin/queue/next", headers=ADMIN)
        assert queue.json()["driver"]["id"] == "d2"

    async def test_manual_without_driver(self, client, add_booking):
        await add_booking("b1")

        resp = await client.post("/v1/admin/assign-manual", json={"booking_ids": ["b1"]}, headers=ADMIN)

        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_ARGUMENT"

    async def test_manual_unknown_booking(self, client, add_driver):
        await add_driver("d1", 1)

        resp = await client.post(
            "/v1/admin/assign-manual", json={"booking_ids": ["ghost"], "driver_id": "d1"}, headers=ADMIN
        )

        assert resp.status_code == 404

    async def test_register_driver_at_tail(self, client, add_driver):
        await add_driver("d1", 6)

        resp = await client.post("/v1/drivers", json={"full_name": "Somsak", "phone": "0812345678"}, headers=ADMIN)

        assert resp.status_code == 201
        assert resp.json()["queue_order"] == 7

    async def test_register_with_linked_channel_relinks(self, client, db, add_driver):
        await add_driver("d1", 1, chat_channel_id="U-shared")

        resp = await client.post(
            "/v1/drivers", json={"full_name": "Somsak", "chat_channel_id": "U-shared"}, headers=ADMIN
        )

        assert resp.status_code == 201
        assert resp.json()["chat_channel_id"] == "U-shared"
        assert (await DriverRepository(db).get("d1")).chat_channel_id is None

    async def test_link_line_account(self, client, db, add_driver):
        await add_driver("d1", 1, chat_channel_id="U-shared")
        await add_driver("d2", 2, status="OFF", active=False, chat_channel_id=None)

        resp = await client.post("/v1/drivers/d2/link-line", json={"line_user_id": "U-shared"}, headers=ADMIN)

        assert resp.status_code == 200
        body = resp.json()
        assert body["chat_channel_id"] == "U-shared"
        assert body["active"] is True
        assert body["status"] == "AVAILABLE"
        assert (await DriverRepository(db).get("d1")).chat_channel_id is None

    async def test_link_line_unknown_driver(self, client, db, add_driver):
        await add_driver("d1", 1, chat_channel_id="U-shared")

        resp = await client.post("/v1/drivers/ghost/link-line", json={"chat_channel_id": "U-shared"}, headers=ADMIN)

        assert resp.status_code == 404
        assert (await DriverRepository(db).get("d1")).chat_channel_id == "U-shared"


@pytest.mark.asyncio
class TestLineWebhook:
    async def test_bad_signature(self, client):
        resp = await client.post(
            "/v1/webhooks/line",
            content=b'{"events": []}',
            headers={"X-Line-Signature": "bm9wZQ==", "Content-Type": "application/json"},
        )
        assert resp.status_code == 403

    async def test_accept_job_postback(self, client, db, line, add_driver, add_booking):
        await add_driver("d1", 1)
        await add_booking("b1", status="ASSIGNED", driver_id="d1")
        body, headers = _signed(
            {
                "events": [
                    {
                        "type": "postback",
                        "source": {"userId": "U-d1"},
                        "postback": {"data": json.dumps({"type": "ACCEPT_JOB", "booking_id": "b1"})},
                    },
                    {"type": "message", "source": {"userId": "U-d1"}, "message": {"type": "text", "text": "hi"}},
                ]
            }
        )

        resp = await client.post("/v1/webhooks/line", content=body, headers=headers)

        assert resp.status_code == 200
        assert resp.json()["handled"] == [{"booking_id": "b1", "outcome": "accepted"}]
        assert (await BookingRepository(db).get("b1")).status == "ACCEPTED"
        line.push.assert_awaited_once()

    async def test_unlinked_user_is_ignored(self, client, db, add_booking):
        await add_booking("b1", status="ASSIGNED")
        body, headers = _signed(
            {
                "events": [
                    {
                        "type": "postback",
                        "source": {"userId": "U-stranger"},
                        "postback": {"data": json.dumps({"type": "ACCEPT_JOB", "booking_id": "b1"})},
                    }
                ]
            }
        )

        resp = await client.post("/v1/webhooks/line", content=body, headers=headers)

        assert resp.status_code == 200
        assert resp.json()["handled"] == []
        assert (await BookingRepository(db).get("b1")).status == "ASSIGNED"

    async def test_failed_event_does_not_drop_the_rest(self, client, db, add_driver, add_booking, monkeypatch):
        await add_driver("d1", 1)
        await add_booking("b1", status="ASSIGNED", driver_id="d1")
        await add_booking("b2", status="ASSIGNED", driver_id="d1")
        original = AssignmentService.accept_job

        async def flaky(self, booking_id, driver_id):
            if booking_id == "b1":
                raise StoreError("Data store operation failed: OperationalError")
            return await original(self, booking_id, driver_id)

        monkeypatch.setattr(AssignmentService, "accept_job", flaky)
        body, headers = _signed(
            {
                "events": [
                    {
                        "type": "postback",
                        "source": {"userId": "U-d1"},
                        "postback": {"data": json.dumps({"type": "ACCEPT_JOB", "booking_id": bid})},
                    }
                    for bid in ("b1", "b2")
                ]
            }
        )

        resp = await client.post("/v1/webhooks/line", content=body, headers=headers)

        assert resp.status_code == 200
        assert resp.json()["handled"] == [
            {"booking_id": "b1", "outcome": "error", "error": "STORE_ERROR"},
            {"booking_id": "b2", "outcome": "accepted"},
        ]
        assert (await BookingRepository(db).get("b2")).status == "ACCEPTED"


@pytest.mark.asyncio
class TestCronRoutes:
    async def test_requires_secret(self, client):
        resp = await client.post("/v1/cron/sweep")
        assert resp.status_code == 401

    async def test_sweep(self, client, redis):
        resp = await client.post("/v1/cron/sweep", headers={"X-Cron-Secret": CRON_SECRET})

        assert resp.status_code == 200
        assert resp.json()["expired_count"] == 0
        redis.set.assert_awaited_once()

    async def test_sweep_skipped_while_locked(self, client, redis):
        redis.set.return_value = None

        resp = await client.post("/v1/cron/sweep", headers={"X-Cron-Secret": CRON_SECRET})

        assert resp.status_code == 200
        assert resp.json()["message"] == "Another sweep is already running"

    async def test_reset_drivers(self, client, add_driver):
        await add_driver("d1", 1, status="BUSY")

        resp = await client.post("/v1/cron/reset-drivers", headers={"X-Cron-Secret": CRON_SECRET})

        assert resp.json() == {"reset_count": 1}
