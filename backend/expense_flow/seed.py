"""Seed script for development data.

Run with:  python -m expense_flow.seed
Drives the public HTTP API, so the server must be running at BASE_URL.
"""

from __future__ import annotations

import asyncio
import base64
import sys

import httpx

BASE_URL = "http://localhost:8000"
PASSWORD = "password123"

# 1x1 transparent PNG used as the sample receipt.
SAMPLE_RECEIPT = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

USERS = [
    {"username": "admin", "first_name": "Admin", "last_name": "User", "role": "admin", "manager": None},
    {"username": "manager", "first_name": "Maria", "last_name": "Lopez", "role": "manager", "manager": None},
    {"username": "manager2", "first_name": "Sam", "last_name": "Okafor", "role": "manager", "manager": None},
    {"username": "employee", "first_name": "Eli", "last_name": "Turner", "role": "employee", "manager": "manager"},
    {"username": "employee2", "first_name": "Priya", "last_name": "Shah", "role": "employee", "manager": "manager"},
    {"username": "employee3", "first_name": "Noah", "last_name": "Berg", "role": "employee", "manager": "manager2"},
]

# (owner, amount, category, description, decision, comment)
EXPENSES = [
    ("employee", "125.50", "travel", "Client meeting travel expenses", None, None),
    ("employee", "75.25", "meals", "Team lunch with clients", "approved", None),
    ("employee", "349.99", "software", "Software license renewal", "rejected", "Use the company-wide license"),
    ("employee2", "42.00", "office", "Printer paper and toner", None, None),
    ("employee3", "899.00", "conference", "PyCon registration", "approved", "Enjoy the conference"),
]


async def _login_or_register(client: httpx.AsyncClient, user: dict, manager_id: str | None) -> dict | None:
    """Register the user, or log in if the account already exists."""
    payload = {
        "username": user["username"],
        "password": PASSWORD,
        "email": f"{user['username']}@example.com",
        "first_name": user["first_name"],
        "last_name": user["last_name"],
        "role": user["role"],
        "manager_id": manager_id,
    }
    resp = await client.post("/api/auth/register", json=payload)
    if resp.status_code == 201:
        print(f"  [OK] User: {user['username']} ({user['role']})")
        return resp.json()
    if resp.status_code == 409:
        resp = await client.post("/api/auth/login", json={"username": user["username"], "password": PASSWORD})
        if resp.status_code == 200:
            print(f"  [SKIP] User: {user['username']} (already exists)")
            return resp.json()
    print(f"  [ERROR] User {user['username']}: {resp.status_code} {resp.text[:200]}")
    return None


async def seed_users(client: httpx.AsyncClient) -> dict[str, dict]:
    """Create every seed user; managers first so reports can reference them."""
    print("\n--- Seeding users ---")
    accounts: dict[str, dict] = {}
    for user in USERS:
        manager = accounts.get(user["manager"]) if user["manager"] else None
        manager_id = manager["user"]["id"] if manager else None
        account = await _login_or_register(client, user, manager_id)
        if account is not None:
            accounts[user["username"]] = account
    return accounts


def _auth(account: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {account['token']}"}


async def seed_expenses(client: httpx.AsyncClient, accounts: dict[str, dict]) -> int:
    """File sample expenses and apply the planned decisions. Returns how many were created."""
    print("\n--- Seeding expenses ---")
    created = 0
    for owner, amount, category, description, decision, comment in EXPENSES:
        account = accounts.get(owner)
        if account is None:
            print(f"  [SKIP] {owner} not available")
            continue

        existing = await client.get(f"/api/expenses/search/{description}", headers=_auth(account))
        if existing.status_code == 200 and existing.json():
            print(f"  [SKIP] Expense: {description} (already exists)")
            continue

        resp = await client.post(
            "/api/expenses",
            data={"amount": amount, "category": category, "description": description},
            files={"receipt": ("receipt.png", SAMPLE_RECEIPT, "image/png")},
            headers=_auth(account),
        )
        if resp.status_code != 201:
            print(f"  [ERROR] Expense {description}: {resp.status_code} {resp.text[:200]}")
            continue
        created += 1
        expense = resp.json()
        print(f"  [OK] Expense: {description} (${amount})")

        if decision is None:
            continue
        manager_id = account["user"]["manager_id"]
        reviewer = next((a for a in accounts.values() if a["user"]["id"] == manager_id), accounts.get("admin"))
        if reviewer is None:
            continue
        body = {"status": decision}
        if comment:
            body["comment"] = comment
        resp = await client.patch(f"/api/expenses/{expense['id']}/status", json=body, headers=_auth(reviewer))
        if resp.status_code == 200:
            print(f"  [OK] {decision.capitalize()} by {reviewer['user']['username']}")
        else:
            print(f"  [ERROR] Deciding {description}: {resp.status_code}")
    return created


async def seed(client: httpx.AsyncClient) -> dict[str, dict]:
    """Seed users and expenses through ``client``; returns the user accounts."""
    accounts = await seed_users(client)
    await seed_expenses(client, accounts)
    return accounts


async def main() -> None:
    print("=" * 60)
    print("  ExpenseFlow Development Seed Script")
    print("=" * 60)

    async with httpx.AsyncClient(base_url=BASE_URL, timeout=30.0) as client:
        try:
            resp = await client.get("/health")
            if resp.status_code != 200:
                print(f"API health check failed: {resp.status_code}")
                sys.exit(1)
            print("\n[OK] API is healthy")
        except httpx.ConnectError:
            print("ERROR: Cannot connect to API at", BASE_URL)
            sys.exit(1)

        await seed(client)

    print("\n" + "=" * 60)
    print("  Seeding complete!")
    print(f"  Every account uses the password {PASSWORD!r}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
