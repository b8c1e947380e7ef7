"""
Demo datastore contents used by the CLI, the API when no seed file is
configured, and the tests.
"""

import copy
from typing import Any, Dict, Optional

from .datastore import InMemoryCardDatastore

DEMO_SEED: Dict[str, Any] = {
    "businesses": [
        {
            "id": "biz-brew",
            "name": "Brew & Bean Cafe",
            "contact_email": "hello@brewandbean.example",
            "description": "Neighbourhood coffee roasters",
            "address": "12 Harbour Street",
            "phone": "+1 555 0100",
        },
        {
            "id": "biz-peak",
            "name": "Peak Fitness",
            "contact_email": "members@peakfitness.example",
            "description": "Strength and conditioning studio",
        },
        {
            "id": "biz-crumb",
            "name": "Crumb Bakery",
            "contact_email": "",
        },
    ],
    "stamp_cards": [
        {
            "id": "card-coffee",
            "business_id": "biz-brew",
            "card_name": "Coffee Club",
            "stamps_required": 10,
            "reward_description": "Free large coffee",
            "card_color": "#8B5CF6",
            "status": "active",
            "created_at": "2025-01-15T09:00:00.000Z",
            "updated_at": "2025-02-01T12:30:00.000Z",
        },
        {
            "id": "card-bread",
            "business_id": "biz-crumb",
            "card_name": "Loaf Rewards",
            "stamps_required": 8,
            "reward_description": "Free sourdough loaf",
            "status": "active",
            "created_at": "2025-03-01T08:00:00.000Z",
        },
    ],
    "membership_cards": [
        {
            "id": "card-gym",
            "business_id": "biz-peak",
            "name": "Peak Premium",
            "membership_type": "premium",
            "total_sessions": 20,
            "cost": 99.99,
            "duration_days": 30,
            "status": "active",
            "created_at": "2025-01-20T07:00:00.000Z",
        },
    ],
    "customers": [
        {
            "id": "cust-alex",
            "name": "Alex Rivera",
            "email": "alex@example.com",
            "created_at": "2025-01-16T10:00:00.000Z",
        },
        {
            "id": "cust-sam",
            "name": "Sam Lee",
            "email": "sam@example.com",
            "created_at": "2025-01-21T18:00:00.000Z",
        },
    ],
    "customer_cards": [
        {"customer_id": "cust-alex", "stamp_card_id": "card-coffee", "current_stamps": 5},
        {"customer_id": "cust-alex", "membership_card_id": "card-gym", "sessions_used": 3},
        {
            "customer_id": "cust-sam",
            "membership_card_id": "card-gym",
            "sessions_used": 12,
            "expiry_date": "2030-01-01T00:00:00.000Z",
        },
    ],
}


def demo_seed() -> Dict[str, Any]:
    return copy.deepcopy(DEMO_SEED)


def demo_datastore(latency: float = 0.0) -> InMemoryCardDatastore:
    return InMemoryCardDatastore.from_dict(demo_seed(), latency=latency)


def stamp_card_record(business: Optional[Dict[str, Any]] = None, **overrides) -> Dict[str, Any]:
    """A stamp card row with its business joined, as the datastore returns it"""
    record = copy.deepcopy(DEMO_SEED["stamp_cards"][0])
    record.update(overrides)
    record["business"] = copy.deepcopy(business if business is not None else DEMO_SEED["businesses"][0])
    return record


def membership_card_record(business: Optional[Dict[str, Any]] = None, **overrides) -> Dict[str, Any]:
    record = copy.deepcopy(DEMO_SEED["membership_cards"][0])
    record.update(overrides)
    record["business"] = copy.deepcopy(business if business is not None else DEMO_SEED["businesses"][1])
    return record


def customer_progress(customer: Optional[Dict[str, Any]] = None, **fields) -> Dict[str, Any]:
    progress = {"customer": copy.deepcopy(customer if customer is not None else DEMO_SEED["customers"][0])}
    progress.update(fields)
    return progress
