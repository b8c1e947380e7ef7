#!/usr/bin/env python3
"""
Tests for the canonical card model: datastore lookups, stamp/membership
transforms and card validation.

Usage:
    python -m unittest loyalty_wallet.services.wallet_chain.test_unified_card
"""

import dataclasses
import random
import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from loyalty_wallet.services.wallet_chain.datastore import InMemoryCardDatastore
from loyalty_wallet.services.wallet_chain.exceptions import NotFoundError
from loyalty_wallet.services.wallet_chain.fixtures import (
    DEMO_SEED,
    customer_progress,
    demo_datastore,
    membership_card_record,
    stamp_card_record,
)
from loyalty_wallet.services.wallet_chain.models import CardStatus, CardType, parse_timestamp
from loyalty_wallet.services.wallet_chain.unified_card import (
    MEMBERSHIP_BACKGROUND,
    UnifiedCardBuilder,
    normalize_color,
    transform_membership_card_data,
    transform_stamp_card_data,
    validate_card_data,
)

FROZEN_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def random_card(rng: random.Random):
    """Build a random valid stamp or membership card"""
    if rng.random() < 0.5:
        total = rng.randint(1, 30)
        return transform_stamp_card_data(
            stamp_card_record(id=f"card-{rng.randint(1, 10**6)}", stamps_required=total),
            customer_progress(current_stamps=rng.randint(0, total)) if rng.random() < 0.5 else None,
            now=FROZEN_NOW,
        )
    total = rng.randint(1, 50)
    return transform_membership_card_data(
        membership_card_record(id=f"card-{rng.randint(1, 10**6)}", total_sessions=total,
                               duration_days=rng.randint(1, 365), cost=round(rng.uniform(0, 500), 2)),
        customer_progress(sessions_used=rng.randint(0, total)) if rng.random() < 0.5 else None,
        now=FROZEN_NOW,
    )


class TestUnifiedCardBuilder(unittest.IsolatedAsyncioTestCase):
    """Building canonical cards from the datastore"""

    def setUp(self):
        self.builder = UnifiedCardBuilder(demo_datastore(), clock=lambda: FROZEN_NOW)

    async def test_stamp_card_with_customer_progress(self):
        card = await self.builder.build("card-coffee", "cust-alex")

        self.assertEqual(card.type, CardType.STAMP)
        self.assertIsNone(card.membership_card)
        self.assertEqual(card.stamp_card.total_stamps, 10)
        self.assertEqual(card.stamp_card.current_stamps, 5)
        self.assertEqual(card.stamp_card.progress, 0.5)
        self.assertEqual(card.customer.id, "cust-alex")
        self.assertEqual(card.customer.email, "alex@example.com")
        self.assertEqual(card.business.email, "hello@brewandbean.example")
        self.assertEqual(card.barcode.value, "LOYALTYWALLET-STAMP-card-coffee-cust-alex")
        self.assertEqual(card.card.background_color, "rgb(139, 92, 246)")
        self.assertTrue(card.serial_number.startswith("STAMP-card-coffee-"))

    async def test_membership_expiry_defaults_to_now_plus_duration(self):
        card = await self.builder.build("card-gym", "cust-alex")
        membership = card.membership_card

        self.assertEqual(card.type, CardType.MEMBERSHIP)
        self.assertIsNone(card.stamp_card)
        self.assertEqual(membership.total_sessions, 20)
        self.assertEqual(membership.sessions_used, 3)
        self.assertEqual(membership.cost, 99.99)
        self.assertEqual(parse_timestamp(membership.expiry_date), FROZEN_NOW + timedelta(days=30))
        self.assertEqual(card.expires_at, membership.expiry_date)
        self.assertEqual(membership.benefits, (
            "20 total sessions", "Valid for 30 days", "Access to all facilities",
        ))
        self.assertEqual(card.card.background_color, MEMBERSHIP_BACKGROUND)
        self.assertEqual(card.status, CardStatus.ACTIVE)

    async def test_membership_uses_customer_expiry(self):
        card = await self.builder.build("card-gym", "cust-sam")

        self.assertEqual(card.membership_card.expiry_date, "2030-01-01T00:00:00.000Z")
        self.assertEqual(card.membership_card.sessions_used, 12)
        self.assertEqual(card.barcode.value, "LOYALTYWALLET-MEMBER-card-gym-cust-sam")

    async def test_template_card_without_customer(self):
        card = await self.builder.build("card-coffee")

        self.assertTrue(card.is_template)
        self.assertEqual(card.stamp_card.current_stamps, 0)
        self.assertEqual(card.stamp_card.progress, 0.0)
        self.assertTrue(card.barcode.value.endswith("-TEMPLATE"))

    async def test_customer_without_progress_yields_template(self):
        card = await self.builder.build("card-coffee", "cust-sam")

        self.assertIsNone(card.customer)
        self.assertEqual(card.barcode.value, "LOYALTYWALLET-STAMP-card-coffee-TEMPLATE")

    async def test_unknown_card_raises_not_found(self):
        with self.assertRaises(NotFoundError) as ctx:
            await self.builder.build("card-missing")
        self.assertEqual(ctx.exception.message, "Card not found: card-missing")
        self.assertEqual(ctx.exception.kind, "not_found")

    async def test_card_without_business_is_not_found(self):
        seed = {"stamp_cards": [dict(DEMO_SEED["stamp_cards"][0], business_id="biz-gone")]}
        builder = UnifiedCardBuilder(InMemoryCardDatastore.from_dict(seed))
        with self.assertRaises(NotFoundError):
            await builder.build("card-coffee")

    async def test_serial_numbers_unique_within_process(self):
        first = await self.builder.build("card-coffee", "cust-alex")
        second = await self.builder.build("card-coffee", "cust-alex")

        self.assertNotEqual(first.serial_number, second.serial_number)
        self.assertEqual(first.barcode.value, second.barcode.value)


class TestTransforms(unittest.TestCase):
    """Pure stamp and membership transforms"""

    def test_stamps_above_total_are_capped(self):
        card = transform_stamp_card_data(stamp_card_record(), customer_progress(current_stamps=14), now=FROZEN_NOW)
        self.assertEqual(card.stamp_card.current_stamps, 10)
        self.assertEqual(card.stamp_card.progress, 1.0)

    def test_past_expiry_marks_membership_expired(self):
        card = transform_membership_card_data(
            membership_card_record(),
            customer_progress(sessions_used=1, expiry_date="2020-01-01T00:00:00Z"),
            now=FROZEN_NOW,
        )
        self.assertEqual(card.status, CardStatus.EXPIRED)

    def test_record_benefits_override_defaults(self):
        card = transform_membership_card_data(
            membership_card_record(benefits=["Sauna access", "Towel service"]), now=FROZEN_NOW
        )
        self.assertEqual(card.membership_card.benefits, ("Sauna access", "Towel service"))

    def test_custom_namespace(self):
        card = transform_stamp_card_data(stamp_card_record(), namespace="ACME", now=FROZEN_NOW)
        self.assertEqual(card.barcode.value, "ACME-STAMP-card-coffee-TEMPLATE")

    def test_normalize_color(self):
        self.assertEqual(normalize_color("#22C55E", "x"), "rgb(34, 197, 94)")
        self.assertEqual(normalize_color("rgb(1, 2, 3)", "x"), "rgb(1, 2, 3)")
        self.assertEqual(normalize_color("purple", "fallback"), "fallback")
        self.assertEqual(normalize_color(None, "fallback"), "fallback")

    def test_exactly_one_sub_object_for_random_cards(self):
        rng = random.Random(20250601)
        for _ in range(200):
            card = random_card(rng)
            has_stamp = card.stamp_card is not None
            has_membership = card.membership_card is not None
            self.assertNotEqual(has_stamp, has_membership)
            self.assertEqual(has_stamp, card.type == CardType.STAMP)
            self.assertEqual(validate_card_data(card), (True, []))


class TestValidateCardData(unittest.TestCase):
    """validate_card_data is total: it reports problems and never raises"""

    def setUp(self):
        self.card = transform_stamp_card_data(stamp_card_record(), customer_progress(current_stamps=5),
                                              now=FROZEN_NOW)

    def test_valid_card(self):
        self.assertEqual(validate_card_data(self.card), (True, []))

    def test_missing_business_email(self):
        card = dataclasses.replace(self.card, business=dataclasses.replace(self.card.business, email=""))
        valid, errors = validate_card_data(card)
        self.assertFalse(valid)
        self.assertIn("Business email is required", errors)

    def test_missing_type_specific_block(self):
        valid, errors = validate_card_data(dataclasses.replace(self.card, stamp_card=None))
        self.assertFalse(valid)
        self.assertIn("Stamp card data is required for stamp cards", errors)

    def test_barcode_outside_namespace(self):
        barcode = dataclasses.replace(self.card.barcode, value="OTHER-STAMP-card-coffee-cust-alex")
        valid, errors = validate_card_data(dataclasses.replace(self.card, barcode=barcode))
        self.assertFalse(valid)
        self.assertTrue(any("namespace" in error for error in errors))

    def test_out_of_range_stamps(self):
        stamp = dataclasses.replace(self.card.stamp_card, current_stamps=11)
        valid, errors = validate_card_data(dataclasses.replace(self.card, stamp_card=stamp))
        self.assertFalse(valid)
        self.assertIn("Current stamps must be between 0 and total stamps", errors)

    def test_customer_without_email(self):
        customer = dataclasses.replace(self.card.customer, email="")
        valid, errors = validate_card_data(dataclasses.replace(self.card, customer=customer))
        self.assertFalse(valid)
        self.assertIn("Customer email is required", errors)

    def test_malformed_inputs_never_raise(self):
        malformed = [
            None,
            {},
            "card",
            42,
            object(),
            SimpleNamespace(type="bogus"),
            SimpleNamespace(type=["stamp"], id="x", barcode=SimpleNamespace(value=7)),
            SimpleNamespace(type="membership", membership_card=SimpleNamespace(total_sessions="many")),
        ]
        for value in malformed:
            with self.subTest(value=value):
                valid, errors = validate_card_data(value)
                self.assertFalse(valid)
                self.assertTrue(errors)


if __name__ == "__main__":
    unittest.main()
