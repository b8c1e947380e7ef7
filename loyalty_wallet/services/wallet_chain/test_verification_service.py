#!/usr/bin/env python3
"""
Tests for the wallet chain verification battery.

Usage:
    python -m unittest loyalty_wallet.services.wallet_chain.test_verification_service
"""

import unittest

from loyalty_wallet.config import WalletSettings
from loyalty_wallet.services.wallet_chain.artifact_store import InMemoryArtifactStore
from loyalty_wallet.services.wallet_chain.fixtures import demo_datastore
from loyalty_wallet.services.wallet_chain.generation_service import WalletGenerationService
from loyalty_wallet.services.wallet_chain.models import Platform, Severity
from loyalty_wallet.services.wallet_chain.verification_service import (
    VERIFICATION_TESTS,
    WalletVerificationService,
)

TEST_IDS = [
    "data_consistency",
    "business_data_integrity",
    "customer_data_integrity",
    "apple_pass_structure",
    "google_object_structure",
    "web_pass_structure",
    "apple_wallet_compatibility",
    "google_wallet_compatibility",
    "barcode_consistency",
    "generation_pipeline",
    "queue_processing",
]


class BrokenEncoder:
    def encode(self, card):
        raise KeyError("logo")


class OfflineDatastore:
    async def fetch_stamp_card(self, card_id):
        raise RuntimeError("datastore offline")

    async def fetch_membership_card(self, card_id):
        raise RuntimeError("datastore offline")

    async def fetch_customer_progress(self, card_id, customer_id):
        raise RuntimeError("datastore offline")


def results_by_id(verification):
    return {result.test.id: result for result in verification.results}


class TestWalletVerificationService(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.service = WalletVerificationService(demo_datastore())

    def test_catalog(self):
        self.assertEqual([test.id for test in VERIFICATION_TESTS], TEST_IDS)
        critical = {test.id for test in VERIFICATION_TESTS if test.severity == Severity.CRITICAL}
        self.assertEqual(critical, {
            "data_consistency", "apple_pass_structure", "google_object_structure", "generation_pipeline",
        })

    async def test_healthy_cards_pass_every_check(self):
        for card_id, customer_id in [("card-coffee", "cust-alex"), ("card-gym", "cust-alex"),
                                     ("card-gym", "cust-sam"), ("card-coffee", None)]:
            with self.subTest(card_id=card_id, customer_id=customer_id):
                verification = await self.service.verify_wallet_chain(card_id, customer_id)

                failures = [(r.test.id, r.message) for r in verification.results if not r.passed]
                self.assertEqual(failures, [])
                self.assertEqual([r.test.id for r in verification.results], TEST_IDS)
                self.assertEqual(verification.status, "completed")
                self.assertEqual(verification.summary.to_dict(),
                                 {"total": 11, "passed": 11, "failed": 0, "critical": 0, "warnings": 0})
                self.assertIsNotNone(verification.completed_at)

    async def test_missing_business_email_is_critical(self):
        verification = await self.service.verify_wallet_chain("card-bread")
        results = results_by_id(verification)

        self.assertEqual(verification.status, "failed")
        self.assertFalse(results["data_consistency"].passed)
        self.assertIn("Business email is required", results["data_consistency"].message)
        self.assertFalse(results["business_data_integrity"].passed)
        self.assertEqual(verification.summary.critical, 1)
        self.assertEqual(verification.summary.warnings, 1)

    async def test_quick_verify_reports_critical_issues(self):
        valid, issues = await self.service.quick_verify_wallet_chain("card-bread")
        self.assertFalse(valid)
        self.assertEqual(len(issues), 1)
        self.assertIn("Business email is required", issues[0])

        valid, issues = await self.service.quick_verify_wallet_chain("card-coffee", "cust-alex")
        self.assertTrue(valid)
        self.assertEqual(issues, [])

    async def test_unknown_card_yields_single_error_result(self):
        verification = await self.service.verify_wallet_chain("card-missing")

        self.assertEqual(verification.status, "failed")
        self.assertEqual(len(verification.results), 1)
        result = verification.results[0]
        self.assertEqual(result.test.id, "verification_error")
        self.assertEqual(result.message, "Card not found: card-missing")
        self.assertEqual(verification.summary.to_dict(),
                         {"total": 1, "passed": 0, "failed": 1, "critical": 1, "warnings": 0})

    async def test_datastore_errors_still_produce_a_report(self):
        service = WalletVerificationService(OfflineDatastore())

        verification = await service.verify_wallet_chain("card-coffee")

        self.assertEqual(verification.status, "failed")
        self.assertEqual(verification.results[0].test.id, "verification_error")
        self.assertEqual(verification.results[0].message, "datastore offline")

    async def test_broken_encoder_fails_only_its_own_checks(self):
        self.service.encoders[Platform.APPLE] = BrokenEncoder()

        verification = await self.service.verify_wallet_chain("card-coffee", "cust-alex")
        results = results_by_id(verification)

        self.assertEqual(len(verification.results), 11)
        failed = {r.test.id for r in verification.results if not r.passed}
        self.assertEqual(failed, {"apple_pass_structure", "apple_wallet_compatibility", "barcode_consistency"})
        self.assertEqual(results["apple_pass_structure"].message, "apple encoding failed: 'logo'")
        self.assertTrue(results["google_object_structure"].passed)
        self.assertTrue(results["web_pass_structure"].passed)
        self.assertTrue(results["business_data_integrity"].passed)
        self.assertEqual(verification.summary.critical, 1)
        self.assertEqual(verification.status, "failed")

    async def test_repeated_runs_agree(self):
        first = await self.service.verify_wallet_chain("card-bread")
        second = await self.service.verify_wallet_chain("card-bread")

        self.assertNotEqual(first.verification_id, second.verification_id)
        self.assertEqual(
            [(r.test.id, r.passed, r.message) for r in first.results],
            [(r.test.id, r.passed, r.message) for r in second.results],
        )
        self.assertEqual(first.summary, second.summary)

    async def test_placeholder_team_id_is_a_warning(self):
        service = WalletVerificationService(demo_datastore(), WalletSettings(apple_team_id="YOUR_TEAM_ID"))

        verification = await service.verify_wallet_chain("card-coffee", "cust-alex")
        results = results_by_id(verification)

        self.assertTrue(results["apple_pass_structure"].passed)
        self.assertFalse(results["apple_wallet_compatibility"].passed)
        self.assertIn("teamIdentifier", results["apple_wallet_compatibility"].message)
        self.assertEqual(verification.summary.warnings, 1)
        self.assertEqual(verification.status, "completed")

    async def test_customer_without_progress_is_flagged(self):
        verification = await self.service.verify_wallet_chain("card-coffee", "cust-sam")
        results = results_by_id(verification)

        self.assertFalse(results["customer_data_integrity"].passed)
        self.assertEqual(verification.status, "completed")

    async def test_attached_queue_is_checked(self):
        datastore = demo_datastore()
        generation = WalletGenerationService(datastore, InMemoryArtifactStore())
        service = WalletVerificationService(datastore, generation_service=generation)

        await generation.enqueue_generation("card-coffee", "cust-alex", types=["web"])
        await generation.wait_until_idle(5)
        verification = await service.verify_wallet_chain("card-coffee", "cust-alex")
        queue = results_by_id(verification)["queue_processing"]

        self.assertTrue(queue.passed)
        self.assertEqual(queue.details["counts"]["completed"], 1)

    async def test_unattached_queue_passes(self):
        verification = await self.service.verify_wallet_chain("card-coffee")
        self.assertEqual(results_by_id(verification)["queue_processing"].details, {"attached": False})

    async def test_disabled_generation_fails_pipeline_check(self):
        service = WalletVerificationService(demo_datastore(), WalletSettings(generation_enabled=False))

        verification = await service.verify_wallet_chain("card-coffee", "cust-alex")

        self.assertFalse(results_by_id(verification)["generation_pipeline"].passed)
        self.assertEqual(verification.status, "failed")

    async def test_report_serialises(self):
        verification = await self.service.verify_wallet_chain("card-gym", "cust-sam")
        data = verification.to_dict()

        self.assertEqual(data["cardId"], "card-gym")
        self.assertEqual(data["customerId"], "cust-sam")
        self.assertEqual(len(data["results"]), 11)
        self.assertEqual(data["results"][0]["test"]["category"], "data_integrity")


if __name__ == "__main__":
    unittest.main()
