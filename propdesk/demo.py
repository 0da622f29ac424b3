"""Demonstration records written to empty storage on first start."""
from __future__ import annotations

import logging
from typing import Dict, List

from .storage import IMAGES_KEY, REQUESTS_KEY, USERS_KEY, KeyValueStore

logger = logging.getLogger("propdesk.demo")

DEMO_EMAILS = {
    "tenant": "tenant@example.com",
    "admin": "admin@example.com",
    "property_manager": "manager@example.com",
}

DEMO_USERS: List[Dict[str, object]] = [
    {
        "id": "1",
        "email": "tenant@example.com",
        "name": "John Tenant",
        "role": "tenant",
        "createdAt": "2024-01-01T00:00:00+00:00",
    },
    {
        "id": "2",
        "email": "admin@example.com",
        "name": "Sarah Admin",
        "role": "admin",
        "createdAt": "2024-01-01T00:00:00+00:00",
    },
    {
        "id": "3",
        "email": "manager@example.com",
        "name": "Mike Manager",
        "role": "property_manager",
        "createdAt": "2024-01-01T00:00:00+00:00",
    },
]

DEMO_REQUESTS: List[Dict[str, object]] = [
    {
        "id": "1",
        "tenantId": "1",
        "tenantName": "John Tenant",
        "title": "AC Unit Leaking Water",
        "description": (
            "The AC unit in the living room is leaking water onto the floor. "
            "It started yesterday and is getting worse."
        ),
        "category": "HVAC",
        "priority": "high",
        "status": "pending",
        "images": [],
        "createdAt": "2024-12-07T10:00:00+00:00",
    },
    {
        "id": "2",
        "tenantId": "1",
        "tenantName": "John Tenant",
        "title": "Broken Kitchen Faucet",
        "description": "Kitchen faucet handle is loose and water pressure is very low.",
        "category": "Plumbing",
        "priority": "medium",
        "status": "assigned",
        "images": [],
        "createdAt": "2024-12-06T14:30:00+00:00",
        "assignedTo": "3",
        "assignedBy": "2",
        "assignedAt": "2024-12-06T15:00:00+00:00",
    },
]


def seed_demo_data(storage: KeyValueStore) -> bool:
    """Populate each absent region with demo content; return ``True`` if anything was written."""

    seeded = False
    if not storage.contains(USERS_KEY):
        storage.save_json(USERS_KEY, DEMO_USERS)
        seeded = True
    if not storage.contains(REQUESTS_KEY):
        storage.save_json(REQUESTS_KEY, DEMO_REQUESTS)
        seeded = True
    if not storage.contains(IMAGES_KEY):
        storage.save_json(IMAGES_KEY, {})
        seeded = True
    if seeded:
        logger.info("Seeded demo data into %s", storage.path)
    return seeded


__all__ = ["DEMO_EMAILS", "DEMO_REQUESTS", "DEMO_USERS", "seed_demo_data"]
