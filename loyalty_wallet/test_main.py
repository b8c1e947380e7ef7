#!/usr/bin/env python3
"""
API tests for the wallet generation and verification endpoints.

Usage:
    python -m unittest loyalty_wallet.test_main
"""

import tempfile
import time
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from loyalty_wallet.config import WalletSettings
from loyalty_wallet.main import create_app
from loyalty_wallet.services.wallet_chain.artifact_store import InMemoryArtifactStore
from loyalty_wallet.services.wallet_chain.fixtures import demo_datastore


def poll_result(client, request_id, timeout=5.0):
    deadline = time.monotonic() + timeout
    while True:
        response = client.get(f"/api/wallet/results/{request_id}")
        if response.status_code != 202 or time.monotonic() > deadline:
            return response
        time.sleep(0.02)


class TestWalletAPI(unittest.TestCase):

    def make_client(self, **settings):
        app = create_app(WalletSettings(**settings), demo_datastore(), InMemoryArtifactStore())
        return TestClient(app)

    def test_health(self):
        with self.make_client() as client:
            response = client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "healthy")
        self.assertTrue(body["services"]["generation"])
        self.assertFalse(body["services"]["apple_signing"])

    def test_generate_and_fetch_result(self):
        with self.make_client() as client:
            response = client.post("/api/wallet/generate", json={"cardId": "card-coffee", "customerId": "cust-alex"})
            self.assertEqual(response.status_code, 202)
            request_id = response.json()["requestId"]

            response = poll_result(client, request_id)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "completed")
        result = body["result"]
        self.assertTrue(result["success"])
        self.assertEqual(set(result["results"]), {"apple", "google", "web"})
        self.assertEqual(result["unifiedData"]["barcode"]["value"], "LOYALTYWALLET-STAMP-card-coffee-cust-alex")

    def test_failed_request_reports_failure(self):
        with self.make_client() as client:
            request_id = client.post("/api/wallet/generate", json={"cardId": "card-missing"}).json()["requestId"]
            response = poll_result(client, request_id)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "failed")
        self.assertEqual(body["failure"]["errorKind"], "not_found")
        self.assertEqual(body["failure"]["error"], "Card not found: card-missing")

    def test_invalid_wallet_type_is_rejected(self):
        with self.make_client() as client:
            response = client.post("/api/wallet/generate", json={"cardId": "card-coffee", "types": ["fax"]})
        self.assertEqual(response.status_code, 400)
        self.assertIn("fax", response.json()["detail"]["error"])

    def test_missing_card_id_is_rejected(self):
        with self.make_client() as client:
            response = client.post("/api/wallet/generate", json={"cardId": ""})
        self.assertEqual(response.status_code, 422)

    def test_disabled_generation_returns_503(self):
        with self.make_client(generation_enabled=False) as client:
            response = client.post("/api/wallet/generate", json={"cardId": "card-coffee"})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["detail"], {"ok": False, "error": "Wallet generation is disabled"})

    def test_unknown_request(self):
        with self.make_client() as client:
            self.assertEqual(client.get("/api/wallet/results/nope").status_code, 404)
            self.assertEqual(client.post("/api/wallet/queue/nope/cancel").status_code, 404)

    def test_queue_status_and_history(self):
        with self.make_client() as client:
            request_id = client.post("/api/wallet/generate",
                                     json={"cardId": "card-gym", "customerId": "cust-sam", "types": ["web"]}
                                     ).json()["requestId"]
            poll_result(client, request_id)

            queue = client.get("/api/wallet/queue").json()["queue"]
            self.assertEqual(queue["counts"]["completed"], 1)
            self.assertEqual(queue["completed"][0]["requestId"], request_id)

            cleared = client.delete("/api/wallet/queue/history").json()
            self.assertEqual(cleared["cleared"], {"completed": 1, "failed": 0})
            self.assertEqual(client.get(f"/api/wallet/results/{request_id}").status_code, 404)

    def test_verify(self):
        with self.make_client() as client:
            response = client.get("/api/wallet/verify/card-coffee", params={"customerId": "cust-alex"})
        self.assertEqual(response.status_code, 200)
        verification = response.json()["verification"]
        self.assertEqual(verification["status"], "completed")
        self.assertEqual(verification["summary"]["passed"], 11)

    def test_quick_verify(self):
        with self.make_client() as client:
            response = client.get("/api/wallet/verify/card-bread/quick")
        body = response.json()
        self.assertFalse(body["valid"])
        self.assertIn("Business email is required", body["issues"][0])

    def test_download(self):
        with tempfile.TemporaryDirectory() as directory:
            (Path(directory) / "STAMP-card-coffee-1.web.json").write_text('{"id": "card-coffee"}', encoding="utf-8")
            with self.make_client(artifact_dir=Path(directory)) as client:
                found = client.get("/api/wallet/download/STAMP-card-coffee-1.web.json")
                missing = client.get("/api/wallet/download/STAMP-card-coffee-2.web.json")

        self.assertEqual(found.status_code, 200)
        self.assertEqual(found.json(), {"id": "card-coffee"})
        self.assertEqual(missing.status_code, 404)


if __name__ == "__main__":
    unittest.main()
