#!/usr/bin/env python3
"""
Demo Data Generator Script for the StokStak Purchasing API

Creates one user per workflow role, a few projects and inventory items,
then prints a bearer token for every demo user.
"""

import asyncio
import random
import sys
from datetime import date, timedelta
from pathlib import Path

# Add parent directory to path so we can import from the main application
sys.path.append(str(Path(__file__).parent.parent))

from database.db import init_db
from database.operations import (
    create_user,
    get_user_by_username,
    create_project,
    add_inventory_item,
    add_stock_verification
)
from models.user import UserRole
from routers.auth import create_access_token

# Demo data
DEMO_USERS = [
    {"username": "requester1", "display_name": "Riley Requester", "role": UserRole.REQUESTER},
    {"username": "pm1", "display_name": "Pat Manager", "role": UserRole.PM},
    {"username": "president1", "display_name": "Morgan President", "role": UserRole.PRESIDENT},
    {"username": "purchaser1", "display_name": "Casey Purchaser", "role": UserRole.PURCHASER, "can_purchase": True},
    {"username": "receiver1", "display_name": "Jordan Receiver", "role": UserRole.REQUESTER, "can_receive": True},
    {"username": "admin1", "display_name": "Alex Admin", "role": UserRole.ADMIN, "can_purchase": True, "can_receive": True},
]

DEMO_PROJECTS = [
    {"name": "Riverside Clinic", "code": "RC-01"},
    {"name": "Harbour Warehouse Fit-out", "code": "HW-07"},
    {"name": "Maple Street Apartments", "code": None},
]

INVENTORY_ITEMS = [
    {"name": "Cordless drill", "category": "Power tools", "unit": "ea", "purchase_price": 189.0},
    {"name": "Rotary hammer", "category": "Power tools", "unit": "ea", "purchase_price": 640.0},
    {"name": "Laser level", "category": "Measuring", "unit": "ea", "purchase_price": 310.0},
    {"name": "Extension lead 25m", "category": "Electrical", "unit": "ea", "purchase_price": 42.5},
    {"name": "Safety harness", "category": "PPE", "unit": "ea", "purchase_price": 120.0},
]

LOCATIONS = ["Main yard", "Van 2", "Site container", "Office store"]

async def create_demo_users():
    """Create one user per role, reusing existing usernames."""
    users = []
    print("Creating users...")
    for entry in DEMO_USERS:
        existing = await get_user_by_username(entry["username"])
        if existing:
            users.append(existing)
            print(f"  Reusing user: {entry['username']}")
            continue
        user_data = {**entry, "role": entry["role"].value}
        user_id = await create_user(user_data)
        users.append({**user_data, "id": user_id})
        print(f"  Created user: {entry['username']} ({entry['role'].value})")
    return users

async def create_demo_projects(users):
    projects = []
    admin = next(u for u in users if u["role"] == UserRole.ADMIN.value)
    print("Creating projects...")
    for entry in DEMO_PROJECTS:
        project_id = await create_project({**entry, "created_by": admin["id"]})
        projects.append({**entry, "id": project_id})
        print(f"  Created project: {entry['name']}")
    return projects

async def create_demo_inventory(users):
    items = []
    admin = next(u for u in users if u["role"] == UserRole.ADMIN.value)
    print("Creating inventory items...")
    for entry in INVENTORY_ITEMS:
        quantity = random.randint(1, 6)
        purchase_date = date.today() - timedelta(days=random.randint(30, 720))
        item_data = {
            **entry,
            "description": None,
            "location": random.choice(LOCATIONS),
            "te_number": f"TE-{random.randint(1000, 9999)}",
            "quantity": quantity,
            "purchase_date": purchase_date.isoformat(),
            "created_by": admin["id"],
        }
        item_id = await add_inventory_item(item_data)
        await add_stock_verification({
            "item_id": item_id,
            "verified_at": date.today().isoformat(),
            "verified_qty": quantity,
            "notes": "Initial stock on creation",
            "verified_by": admin["id"],
        })
        items.append({"id": item_id, "name": entry["name"]})
        print(f"  Created inventory item: {entry['name']} x{quantity} at {item_data['location']}")
    return items

async def main():
    """Main function to create all demo data."""
    print("Initializing database connection...")
    await init_db()

    print("\n=== STOKSTAK DEMO DATA GENERATOR ===\n")

    users = await create_demo_users()
    projects = await create_demo_projects(users)
    items = await create_demo_inventory(users)

    print("\n=== DEMO DATA GENERATION COMPLETE ===\n")
    print(f"Created {len(projects)} projects and {len(items)} inventory items")

    print("\nDemo bearer tokens:")
    for user in users:
        token = create_access_token({"sub": user["username"], "user_id": user["id"]})
        print(f"  {user['username']} ({user['role']}): {token}")

if __name__ == "__main__":
    asyncio.run(main())
