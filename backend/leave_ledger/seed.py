"""Seed script for development data.

Run with:  python -m leave_ledger.seed   (from backend/, with the API running)
"""

from __future__ import annotations

import asyncio
import sys
from datetime import date, timedelta

import httpx

BASE_URL = "http://localhost:8000"
ADMIN_USER_ID = "00000000-0000-0000-0000-000000000001"

HEADERS = {
    "Content-Type": "application/json",
    "X-User-Id": ADMIN_USER_ID,
    "X-Role": "admin",
}

# Well-known employee UUIDs
ALICE_ID = "00000000-0000-0000-0000-000000000002"
BOB_ID = "00000000-0000-0000-0000-000000000003"
CAROL_ID = "00000000-0000-0000-0000-000000000004"

EMPLOYEES = [
    {
        "id": ALICE_ID,
        "first_name": "Alice",
        "last_name": "Johnson",
        "email": "alice.johnson@example.com",
        "manager_id": None,
        "hire_date": "2022-01-10",
    },
    {
        "id": BOB_ID,
        "first_name": "Bob",
        "last_name": "Smith",
        "email": "bob.smith@example.com",
        "manager_id": ALICE_ID,
        "hire_date": "2023-06-01",
    },
    {
        "id": CAROL_ID,
        "first_name": "Carol",
        "last_name": "Williams",
        "email": "carol.williams@example.com",
        "manager_id": ALICE_ID,
        "hire_date": "2024-03-01",
    },
]

LEAVE_TYPES = [
    {
        "name": "Casual",
        "description": "Short personal leave",
        "default_annual_days": 12,
        "carry_forward_policy": {"max_days": 5, "expiry_months": 3},
    },
    {
        "name": "Sick",
        "description": "Illness and medical appointments",
        "default_annual_days": 10,
        "carry_forward_policy": None,
    },
    {
        "name": "Earned",
        "description": "Earned leave, carried forward without expiry",
        "default_annual_days": 15,
        "carry_forward_policy": {"max_days": 10, "expiry_months": None},
    },
]


def _headers_for(user_id: str, role: str) -> dict[str, str]:
    return {**HEADERS, "X-User-Id": user_id, "X-Role": role}


async def _safe_post(
    client: httpx.AsyncClient,
    url: str,
    json: dict,
    label: str,
    headers: dict[str, str] | None = None,
) -> dict | None:
    """POST with 409-conflict tolerance for idempotency."""
    resp = await client.post(url, json=json, headers=headers or HEADERS)
    if resp.status_code in (200, 201):
        print(f"  [OK] {label}")
        return resp.json()
    if resp.status_code == 409:
        print(f"  [SKIP] {label} ({resp.json().get('error', 'conflict')})")
        return None
    print(f"  [ERROR] {label}: {resp.status_code} {resp.text[:200]}")
    return None


async def _safe_put(client: httpx.AsyncClient, url: str, json: dict, label: str) -> dict | None:
    """PUT (upsert), naturally idempotent."""
    resp = await client.put(url, json=json, headers=HEADERS)
    if resp.status_code in (200, 201):
        print(f"  [OK] {label}")
        return resp.json()
    print(f"  [ERROR] {label}: {resp.status_code} {resp.text[:200]}")
    return None


async def seed_employees(client: httpx.AsyncClient) -> None:
    """Seed employees into the directory via PUT (upsert)."""
    print("\n--- Seeding employees ---")
    for emp in EMPLOYEES:
        body = {k: v for k, v in emp.items() if k != "id"}
        await _safe_put(
            client,
            f"{BASE_URL}/employees/{emp['id']}",
            body,
            f"{emp['first_name']} {emp['last_name']}",
        )


async def seed_leave_types(client: httpx.AsyncClient) -> dict[str, str]:
    """Seed leave types and return a name->id mapping."""
    print("\n--- Seeding leave types ---")
    type_ids: dict[str, str] = {}

    for leave_type in LEAVE_TYPES:
        result = await _safe_post(client, f"{BASE_URL}/leave-types", leave_type, f"Leave type: {leave_type['name']}")
        if result:
            type_ids[result["name"]] = result["id"]

    # Some already existed (409); fetch them by listing
    if len(type_ids) < len(LEAVE_TYPES):
        resp = await client.get(f"{BASE_URL}/leave-types", headers=HEADERS, params={"limit": 100})
        if resp.status_code == 200:
            for item in resp.json().get("items", []):
                type_ids.setdefault(item["name"], item["id"])

    return type_ids


async def seed_balances(client: httpx.AsyncClient, year: int) -> None:
    """Allocate every active type's default days for the year."""
    print("\n--- Initialising balances ---")
    resp = await client.post(f"{BASE_URL}/balances/initialize-year", json={"year": year}, headers=HEADERS)
    if resp.status_code == 200:
        body = resp.json()
        print(f"  [OK] {year}: created={body['created']} skipped={body['skipped']}")
    else:
        print(f"  [ERROR] Initialising {year}: {resp.status_code} {resp.text[:200]}")


def _next_business_day(start: date, days_ahead: int = 1) -> date:
    """Find a business day (Mon-Fri) at least days_ahead days from start."""
    candidate = start + timedelta(days=days_ahead)
    while candidate.weekday() >= 5:
        candidate += timedelta(days=1)
    return candidate


async def seed_requests(client: httpx.AsyncClient, type_ids: dict[str, str]) -> None:
    """Seed leave requests."""
    print("\n--- Seeding requests ---")
    today = date.today()

    # Bob: 3 days of casual leave next week, stays pending
    casual_id = type_ids.get("Casual")
    if casual_id:
        bob_start = _next_business_day(today, days_ahead=7)
        await _safe_post(
            client,
            f"{BASE_URL}/leave-requests",
            {
                "employee_id": BOB_ID,
                "leave_type_id": casual_id,
                "start_date": bob_start.isoformat(),
                "end_date": (bob_start + timedelta(days=2)).isoformat(),
                "comments": "Family trip",
                "idempotency_key": "seed-bob-casual",
            },
            "Request: Bob casual leave (pending)",
            headers=_headers_for(BOB_ID, "employee"),
        )

    # Carol: 1 day of sick leave, approved by Alice
    sick_id = type_ids.get("Sick")
    if sick_id:
        carol_day = _next_business_day(today, days_ahead=14)
        result = await _safe_post(
            client,
            f"{BASE_URL}/leave-requests",
            {
                "employee_id": CAROL_ID,
                "leave_type_id": sick_id,
                "start_date": carol_day.isoformat(),
                "end_date": carol_day.isoformat(),
                "comments": "Doctor appointment",
                "idempotency_key": "seed-carol-sick",
            },
            "Request: Carol sick leave",
            headers=_headers_for(CAROL_ID, "employee"),
        )
        if result and result["status"] == "pending":
            await _safe_post(
                client,
                f"{BASE_URL}/leave-requests/{result['id']}/decision",
                {"decision": "approve", "comments": "Feel better!"},
                "Approve Carol's sick leave",
                headers=_headers_for(ALICE_ID, "manager"),
            )


async def main() -> None:
    print("=" * 60)
    print("  Leave Ledger: Development Seed Script")
    print("=" * 60)

    async with httpx.AsyncClient(timeout=30.0) as client:
        # Health check
        try:
            resp = await client.get(f"{BASE_URL}/health")
            if resp.status_code != 200:
                print(f"API health check failed: {resp.status_code}")
                sys.exit(1)
            print("\n[OK] API is healthy")
        except httpx.ConnectError:
            print("ERROR: Cannot connect to API at", BASE_URL)
            print("Make sure the API is running")
            sys.exit(1)

        await seed_employees(client)
        type_ids = await seed_leave_types(client)
        await seed_balances(client, date.today().year)
        await seed_requests(client, type_ids)

    print("\n" + "=" * 60)
    print("  Seeding complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
