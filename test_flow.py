import httpx
import asyncio
import uuid
from datetime import datetime, timedelta, timezone

from govcar.middleware.auth import create_access_token


BASE_URL = "http://localhost:8000"


async def safe_request(resp: httpx.Response, step: str):
    """Print response + fail loudly if error"""
    print(f"{step}: {resp.status_code}")

    try:
        print(resp.json())
    except ValueError:
        print(resp.text)

    resp.raise_for_status()


async def main():

    admin_headers = {"Authorization": f"Bearer {create_access_token({'sub': 'admin', 'role': 'admin'})}"}
    staff_headers = {"Authorization": f"Bearer {create_access_token({'sub': str(uuid.uuid4())})}"}

    async with httpx.AsyncClient(timeout=30.0) as client:

        # ---------------------------------------------------
        print("\n1️⃣ Checking Health...")
        resp = await client.get(f"{BASE_URL}/health")
        await safe_request(resp, "Health")

        # ---------------------------------------------------
        print("\n2️⃣ Registering Driver...")
        resp = await client.post(
            f"{BASE_URL}/v1/drivers",
            json={"full_name": "Test Driver", "phone": f"08{uuid.uuid4().int % 100000000:08d}"},
            headers=admin_headers,
        )
        await safe_request(resp, "Register Driver")
        driver_id = resp.json()["id"]
        driver_headers = {"Authorization": f"Bearer {create_access_token({'sub': driver_id})}"}

        # ---------------------------------------------------
        print("\n3️⃣ Creating Booking...")
        start_at = datetime.now(timezone.utc) + timedelta(hours=2)
        resp = await client.post(
            f"{BASE_URL}/v1/bookings",
            json={
                "requester_name": "Provincial Office",
                "purpose": "Smoke test",
                "destination": "City Hall",
                "start_at": start_at.isoformat(),
                "end_at": (start_at + timedelta(hours=3)).isoformat(),
            },
            headers=staff_headers,
        )
        await safe_request(resp, "Create Booking")
        booking_id = resp.json()["id"]

        # ---------------------------------------------------
        print("\n4️⃣ Peeking queue head...")
        resp = await client.get(f"{BASE_URL}/v1/admin/queue/next", headers=admin_headers)
        await safe_request(resp, "Queue Next")

        # ---------------------------------------------------
        print("\n5️⃣ Assigning next driver...")
        resp = await client.post(
            f"{BASE_URL}/v1/admin/assign-next",
            json={"booking_id": booking_id},
            headers={**admin_headers, "Idempotency-Key": str(uuid.uuid4())},
        )
        await safe_request(resp, "Assign Next")
        assigned_driver = resp.json()["driver_id"]
        if assigned_driver != driver_id:
            print(f"Booking went to {assigned_driver}; remaining steps need that driver's token")
            return

        # ---------------------------------------------------
        print("\n6️⃣ Driver accepts job...")
        resp = await client.post(
            f"{BASE_URL}/v1/drivers/{driver_id}/accept",
            json={"booking_id": booking_id},
            headers=driver_headers,
        )
        await safe_request(resp, "Accept Job")

        # ---------------------------------------------------
        print("\n7️⃣ Starting trip...")
        resp = await client.post(
            f"{BASE_URL}/v1/bookings/{booking_id}/start",
            json={"mileage": 15200},
            headers=driver_headers,
        )
        await safe_request(resp, "Start Trip")

        # ---------------------------------------------------
        print("\n8️⃣ Completing trip...")
        resp = await client.post(
            f"{BASE_URL}/v1/bookings/{booking_id}/complete",
            json={"mileage": 15342},
            headers=driver_headers,
        )
        await safe_request(resp, "Complete Trip")

        print("\n✅ FLOW COMPLETED SUCCESSFULLY")


if __name__ == "__main__":
    asyncio.run(main())
