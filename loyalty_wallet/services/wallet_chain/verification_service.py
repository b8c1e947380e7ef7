"""
Wallet chain verification.

Runs a fixed battery of checks against a card's canonical data and the three
encoder outputs to prove the Apple, Google and web artifacts agree. A run
always returns a report; it never raises.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ...config import WalletSettings
from .datastore import CardDatastore
from .encoders import ENCODERS, PassEncoder, WEB_PASS_ACTIONS
from .exceptions import EncodingError
from .generation_service import WalletGenerationService
from .models import (
    CardType,
    Platform,
    Severity,
    UnifiedCardData,
    VerificationCategory,
    VerificationResult,
    VerificationSummary,
    VerificationTest,
    WalletChainVerification,
    isoformat,
    utc_now,
)
from .schemas import (
    APPLE_PASS_SCHEMA,
    APPLE_PASS_STRICT_SCHEMA,
    GOOGLE_OBJECT_SCHEMA,
    GOOGLE_OBJECT_STRICT_SCHEMA,
    WEB_PASS_SCHEMA,
    contract_errors,
)
from .unified_card import UnifiedCardBuilder, validate_card_data

logger = logging.getLogger(__name__)

# (passed, message, details)
CheckOutcome = Tuple[bool, str, Optional[Dict[str, Any]]]


def _test(test_id: str, name: str, description: str,
          category: VerificationCategory, severity: Severity) -> VerificationTest:
    return VerificationTest(test_id, name, description, category, severity)


VERIFICATION_TESTS: Tuple[VerificationTest, ...] = (
    _test("data_consistency", "Data Consistency Check",
          "Verify that card data is complete and carries exactly the sub-object matching its type",
          VerificationCategory.DATA_INTEGRITY, Severity.CRITICAL),
    _test("business_data_integrity", "Business Data Integrity",
          "Verify business information is present and propagated to every wallet format",
          VerificationCategory.DATA_INTEGRITY, Severity.HIGH),
    _test("customer_data_integrity", "Customer Data Integrity",
          "Verify customer-specific data is accurate",
          VerificationCategory.DATA_INTEGRITY, Severity.HIGH),
    _test("apple_pass_structure", "Apple Pass Structure",
          "Validate Apple Wallet pass structure and required fields",
          VerificationCategory.FORMAT_VALIDATION, Severity.CRITICAL),
    _test("google_object_structure", "Google Object Structure",
          "Validate Google Wallet object structure and required fields",
          VerificationCategory.FORMAT_VALIDATION, Severity.CRITICAL),
    _test("web_pass_structure", "Web Pass Structure",
          "Validate web pass data structure",
          VerificationCategory.FORMAT_VALIDATION, Severity.HIGH),
    _test("apple_wallet_compatibility", "Apple Wallet Compatibility",
          "Check the Apple pass against the strict pass.json contract",
          VerificationCategory.PLATFORM_COMPATIBILITY, Severity.HIGH),
    _test("google_wallet_compatibility", "Google Wallet Compatibility",
          "Check the Google object against the strict Wallet object contract",
          VerificationCategory.PLATFORM_COMPATIBILITY, Severity.HIGH),
    _test("barcode_consistency", "Barcode Consistency",
          "Verify barcode data is identical across platforms",
          VerificationCategory.PLATFORM_COMPATIBILITY, Severity.MEDIUM),
    _test("generation_pipeline", "Generation Pipeline",
          "Check that wallet generation can accept requests",
          VerificationCategory.END_TO_END, Severity.CRITICAL),
    _test("queue_processing", "Queue Processing",
          "Verify the generation queue snapshot is well-formed",
          VerificationCategory.END_TO_END, Severity.HIGH),
)

VERIFICATION_ERROR_TEST = _test(
    "verification_error", "Verification Error", "Critical error during verification",
    VerificationCategory.END_TO_END, Severity.CRITICAL,
)


@dataclass
class VerificationContext:
    """Inputs shared by every check in one run"""

    card: UnifiedCardData
    customer_id: Optional[str]
    descriptors: Dict[Platform, Dict[str, Any]] = field(default_factory=dict)
    encoding_errors: Dict[Platform, str] = field(default_factory=dict)


class WalletVerificationService:
    def __init__(self, datastore: CardDatastore,
                 settings: Optional[WalletSettings] = None,
                 generation_service: Optional[WalletGenerationService] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.settings = settings or WalletSettings()
        self.builder = UnifiedCardBuilder(datastore, self.settings, clock)
        self.generation_service = generation_service
        self.clock = clock
        self.encoders: Dict[Platform, PassEncoder] = {
            platform: encoder_cls(self.settings) for platform, encoder_cls in ENCODERS.items()
        }
        self._checks: Dict[str, Callable[[VerificationContext], CheckOutcome]] = {
            "data_consistency": self._check_data_consistency,
            "business_data_integrity": self._check_business_data,
            "customer_data_integrity": self._check_customer_data,
            "apple_pass_structure": self._check_apple_structure,
            "google_object_structure": self._check_google_structure,
            "web_pass_structure": self._check_web_structure,
            "apple_wallet_compatibility": self._check_apple_compatibility,
            "google_wallet_compatibility": self._check_google_compatibility,
            "barcode_consistency": self._check_barcode_consistency,
            "generation_pipeline": self._check_generation_pipeline,
            "queue_processing": self._check_queue_processing,
        }

    @property
    def tests(self) -> Tuple[VerificationTest, ...]:
        return VERIFICATION_TESTS

    async def verify_wallet_chain(self, card_id: str, customer_id: Optional[str] = None) -> WalletChainVerification:
        """
        Run the full battery for one card (and optional customer).

        Returns:
            WalletChainVerification with one result per catalog test, or a single
            synthetic "verification_error" failure when the run itself could not proceed
        """
        verification = WalletChainVerification(
            card_id=card_id,
            customer_id=customer_id,
            verification_id=str(uuid.uuid4()),
            started_at=isoformat(self.clock()),
        )
        started = time.perf_counter()
        logger.info(f"🔍 Verifying wallet chain for card {card_id}")

        try:
            card = await self.builder.build(card_id, customer_id)
            context = self._encode_all(card, customer_id)
            for test in VERIFICATION_TESTS:
                verification.results.append(self._run_check(test, context))
        except Exception as e:
            logger.error(f"❌ Verification of card {card_id} aborted: {e}")
            verification.results.append(VerificationResult(
                test=VERIFICATION_ERROR_TEST,
                passed=False,
                message=getattr(e, "message", None) or str(e) or e.__class__.__name__,
                duration=round((time.perf_counter() - started) * 1000, 3),
                timestamp=isoformat(self.clock()),
            ))

        verification.summary = self._summarize(verification.results)
        verification.status = "failed" if verification.summary.critical > 0 else "completed"
        verification.completed_at = isoformat(self.clock())

        summary = verification.summary
        logger.info(
            f"{'✅' if verification.status == 'completed' else '❌'} Verification {verification.verification_id}: "
            f"{summary.passed}/{summary.total} passed, {summary.critical} critical, {summary.warnings} warnings"
        )
        return verification

    async def quick_verify_wallet_chain(self, card_id: str,
                                        customer_id: Optional[str] = None) -> Tuple[bool, List[str]]:
        """(valid, issues) where issues are the messages of failed critical tests"""
        verification = await self.verify_wallet_chain(card_id, customer_id)
        issues = [
            result.message for result in verification.results
            if not result.passed and result.test.severity == Severity.CRITICAL
        ]
        return verification.summary.critical == 0, issues

    # ------------------------------------------------------------------

    def _encode_all(self, card: UnifiedCardData, customer_id: Optional[str]) -> VerificationContext:
        context = VerificationContext(card=card, customer_id=customer_id)
        for platform, encoder in self.encoders.items():
            try:
                context.descriptors[platform] = encoder.encode(card)
            except EncodingError as e:
                context.encoding_errors[platform] = e.message
            except Exception as e:
                logger.exception(f"❌ {platform.value} encoder crashed for {card.serial_number}")
                reason = str(e) or e.__class__.__name__
                context.encoding_errors[platform] = f"{platform.value} encoding failed: {reason}"
        return context

    def _run_check(self, test: VerificationTest, context: VerificationContext) -> VerificationResult:
        started = time.perf_counter()
        try:
            passed, message, details = self._checks[test.id](context)
        except Exception as e:
            logger.warning(f"Check {test.id} raised: {e}")
            passed, message, details = False, f"{test.name} raised an error: {e}", None
        return VerificationResult(
            test=test,
            passed=passed,
            message=message,
            details=details,
            duration=round((time.perf_counter() - started) * 1000, 3),
            timestamp=isoformat(self.clock()),
        )

    @staticmethod
    def _summarize(results: List[VerificationResult]) -> VerificationSummary:
        summary = VerificationSummary(total=len(results))
        for result in results:
            if result.passed:
                summary.passed += 1
                continue
            summary.failed += 1
            if result.test.severity == Severity.CRITICAL:
                summary.critical += 1
            elif result.test.severity == Severity.HIGH:
                summary.warnings += 1
        return summary

    @staticmethod
    def _contract_outcome(context: VerificationContext, platform: Platform,
                          schema: Dict[str, Any], label: str) -> CheckOutcome:
        if platform in context.encoding_errors:
            return False, context.encoding_errors[platform], None
        errors = contract_errors(context.descriptors[platform], schema)
        if errors:
            return False, f"{label} is invalid: {'; '.join(errors)}", {"errors": errors}
        return True, f"{label} is valid", None

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_data_consistency(self, context: VerificationContext) -> CheckOutcome:
        card = context.card
        valid, errors = validate_card_data(card, self.settings.barcode_namespace)
        has_stamp = card.stamp_card is not None
        has_membership = card.membership_card is not None
        if has_stamp == has_membership:
            errors.append("Card must carry exactly one of stamp or membership data")
        elif (card.type == CardType.STAMP) != has_stamp:
            errors.append(f"Card data does not match card type {card.type.value}")
        if errors:
            return False, f"Card data validation failed: {', '.join(errors)}", {"errors": errors}
        return True, "Card data is valid and consistent", None

    def _check_business_data(self, context: VerificationContext) -> CheckOutcome:
        business = context.card.business
        problems = []
        if not business.name:
            problems.append("business name is missing")
        if not business.email:
            problems.append("business email is missing")
        elif "@" not in business.email:
            problems.append(f"business email {business.email!r} is not an email address")

        apple = context.descriptors.get(Platform.APPLE)
        if apple is not None and apple.get("organizationName") != business.name:
            problems.append("Apple organizationName does not match business name")

        google = context.descriptors.get(Platform.GOOGLE)
        if google is not None:
            if context.card.type == CardType.STAMP:
                shown = next((m.get("body") for m in google.get("textModulesData", [])
                              if m.get("id") == "business-info"), None)
            else:
                shown = google.get("header", {}).get("defaultValue", {}).get("value")
            if shown != business.name:
                problems.append("Google object does not show the business name")

        web = context.descriptors.get(Platform.WEB)
        if web is not None and web.get("business", {}).get("name") != business.name:
            problems.append("Web pass business does not match")

        if problems:
            return False, f"Business data problems: {', '.join(problems)}", {"problems": problems}
        return True, f"Business data for {business.name} is consistent", None

    def _check_customer_data(self, context: VerificationContext) -> CheckOutcome:
        card = context.card
        if not context.customer_id:
            if card.customer is not None:
                return False, "Template card unexpectedly carries customer data", None
            return True, "No customer requested; template card", None

        if card.customer is None:
            return False, f"Customer {context.customer_id} has no progress on card {card.id}", None
        problems = []
        if card.customer.id != str(context.customer_id):
            problems.append(f"customer id {card.customer.id} does not match {context.customer_id}")
        if not card.customer.email:
            problems.append("customer email is missing")
        if not card.barcode.value.endswith(f"-{card.customer.id}"):
            problems.append("barcode does not identify the customer")
        if problems:
            return False, f"Customer data problems: {', '.join(problems)}", {"problems": problems}
        return True, f"Customer {card.customer.id} data is accurate", None

    def _check_apple_structure(self, context: VerificationContext) -> CheckOutcome:
        return self._contract_outcome(context, Platform.APPLE, APPLE_PASS_SCHEMA, "Apple pass")

    def _check_google_structure(self, context: VerificationContext) -> CheckOutcome:
        return self._contract_outcome(context, Platform.GOOGLE, GOOGLE_OBJECT_SCHEMA, "Google object")

    def _check_web_structure(self, context: VerificationContext) -> CheckOutcome:
        passed, message, details = self._contract_outcome(context, Platform.WEB, WEB_PASS_SCHEMA, "Web pass")
        if not passed:
            return passed, message, details
        action_ids = [action.get("id") for action in context.descriptors[Platform.WEB].get("actions", [])]
        expected = [action["id"] for action in WEB_PASS_ACTIONS]
        if action_ids != expected:
            return False, f"Web pass actions {action_ids} do not match {expected}", None
        return True, message, None

    def _check_apple_compatibility(self, context: VerificationContext) -> CheckOutcome:
        return self._contract_outcome(context, Platform.APPLE, APPLE_PASS_STRICT_SCHEMA, "Apple pass (strict)")

    def _check_google_compatibility(self, context: VerificationContext) -> CheckOutcome:
        passed, message, details = self._contract_outcome(
            context, Platform.GOOGLE, GOOGLE_OBJECT_STRICT_SCHEMA, "Google object (strict)"
        )
        if not passed:
            return passed, message, details
        google = context.descriptors[Platform.GOOGLE]
        expected_id = f"{self.settings.google_issuer_id}.{context.card.serial_number}"
        if google["id"] != expected_id:
            return False, f"Google object id {google['id']} does not match {expected_id}", None
        if not google["classId"].startswith(f"{self.settings.google_issuer_id}."):
            return False, f"Google class {google['classId']} is not owned by the issuer", None
        return True, message, None

    def _check_barcode_consistency(self, context: VerificationContext) -> CheckOutcome:
        if context.encoding_errors:
            failed = ", ".join(p.value for p in context.encoding_errors)
            return False, f"Cannot compare barcodes, encoding failed for: {failed}", None

        values = {
            platform.value: self.encoders[platform].extract_barcode(descriptor)
            for platform, descriptor in context.descriptors.items()
        }
        expected = context.card.barcode.value
        if any(value != expected for value in values.values()):
            return False, "Barcode values differ across platforms", {"expected": expected, "values": values}
        if not expected.startswith(f"{self.settings.barcode_namespace}-"):
            return False, f"Barcode value {expected} is not in the {self.settings.barcode_namespace} namespace", None
        return True, f"All platforms carry barcode {expected}", {"value": expected}

    def _check_generation_pipeline(self, context: VerificationContext) -> CheckOutcome:
        if not self.settings.generation_enabled:
            return False, "Wallet generation is disabled", None
        missing = [platform.value for platform in Platform if platform not in self.encoders]
        if missing:
            return False, f"No encoder registered for: {', '.join(missing)}", None
        if self.generation_service is not None and not callable(
                getattr(self.generation_service, "enqueue_generation", None)):
            return False, "Generation service cannot accept requests", None
        return True, "Generation pipeline can accept requests", None

    def _check_queue_processing(self, context: VerificationContext) -> CheckOutcome:
        if self.generation_service is None:
            return True, "No generation queue attached", {"attached": False}

        service = self.generation_service
        status = service.get_queue_status()
        counts = status.counts()
        problems = []
        for bucket in ("pending", "processing", "completed", "failed"):
            if not isinstance(getattr(status, bucket), tuple):
                problems.append(f"{bucket} is not a snapshot")
        if counts["processing"] > service.max_concurrent:
            problems.append(f"{counts['processing']} processing exceeds limit {service.max_concurrent}")
        if counts["completed"] > service.settings.completed_history:
            problems.append("completed history exceeds its cap")
        if counts["failed"] > service.settings.failed_history:
            problems.append("failed history exceeds its cap")
        ids = [r.id for r in status.pending + status.processing]
        if len(ids) != len(set(ids)):
            problems.append("a request appears in more than one active bucket")

        if problems:
            return False, f"Queue problems: {', '.join(problems)}", {"counts": counts}
        return True, "Queue snapshot is well-formed", {"counts": counts}
