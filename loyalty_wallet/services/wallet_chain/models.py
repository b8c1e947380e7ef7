"""
Data models for the wallet chain: the unified card, generation requests/results
and verification reports.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: datetime) -> str:
    """ISO-8601 with millisecond precision and a Z suffix"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO timestamp as stored by the datastore (trailing Z allowed)"""
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


class CardType(str, Enum):
    STAMP = "stamp"
    MEMBERSHIP = "membership"


class CardStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class Platform(str, Enum):
    """Target wallet platforms. APPLE is native pass A, GOOGLE native pass B."""

    APPLE = "apple"
    GOOGLE = "google"
    WEB = "web"


class Priority(str, Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 0, "normal": 1, "low": 2}[self.value]


# ---------------------------------------------------------------------------
# Unified card
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BusinessInfo:
    id: str
    name: str
    email: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "description": self.description,
            "logoUrl": self.logo_url,
            "address": self.address,
            "phone": self.phone,
        })


@dataclass(frozen=True)
class CardDisplay:
    name: str
    description: str
    background_color: str
    foreground_color: str
    label_color: str
    logo_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "name": self.name,
            "description": self.description,
            "backgroundColor": self.background_color,
            "foregroundColor": self.foreground_color,
            "labelColor": self.label_color,
            "logoText": self.logo_text,
        })


@dataclass(frozen=True)
class StampCardDetails:
    total_stamps: int
    current_stamps: int
    reward_description: str
    progress: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalStamps": self.total_stamps,
            "currentStamps": self.current_stamps,
            "rewardDescription": self.reward_description,
            "progress": self.progress,
        }


@dataclass(frozen=True)
class MembershipCardDetails:
    membership_type: str
    total_sessions: int
    sessions_used: int
    cost: float
    duration_days: int
    expiry_date: str
    benefits: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "membershipType": self.membership_type,
            "totalSessions": self.total_sessions,
            "sessionsUsed": self.sessions_used,
            "cost": self.cost,
            "durationDays": self.duration_days,
            "expiryDate": self.expiry_date,
            "benefits": list(self.benefits),
        }


@dataclass(frozen=True)
class CustomerInfo:
    id: str
    email: str
    member_since: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "memberSince": self.member_since,
        })


@dataclass(frozen=True)
class BarcodeData:
    value: str
    alternate_text: str
    type: str = "QR_CODE"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "value": self.value, "alternateText": self.alternate_text}


@dataclass(frozen=True)
class UnifiedCardData:
    """Platform-agnostic projection of one card (template or customer instance)"""

    id: str
    type: CardType
    serial_number: str
    business: BusinessInfo
    card: CardDisplay
    barcode: BarcodeData
    created_at: str
    updated_at: str
    stamp_card: Optional[StampCardDetails] = None
    membership_card: Optional[MembershipCardDetails] = None
    customer: Optional[CustomerInfo] = None
    expires_at: Optional[str] = None
    version: int = 1
    status: CardStatus = CardStatus.ACTIVE

    @property
    def details(self) -> Union[StampCardDetails, MembershipCardDetails, None]:
        """The type-specific sub-object selected by `type`"""
        if self.type == CardType.STAMP:
            return self.stamp_card
        return self.membership_card

    @property
    def is_template(self) -> bool:
        return self.customer is None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "type": self.type.value,
            "serialNumber": self.serial_number,
            "business": self.business.to_dict(),
            "card": self.card.to_dict(),
            "barcode": self.barcode.to_dict(),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "expiresAt": self.expires_at,
            "version": self.version,
            "status": self.status.value,
        }
        if self.stamp_card is not None:
            data["stampCard"] = self.stamp_card.to_dict()
        if self.membership_card is not None:
            data["membershipCard"] = self.membership_card.to_dict()
        if self.customer is not None:
            data["customer"] = self.customer.to_dict()
        return _compact(data)


# ---------------------------------------------------------------------------
# Generation queue
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WalletGenerationRequest:
    id: str
    card_id: str
    types: Tuple[Platform, ...]
    priority: Priority
    created_at: str
    customer_id: Optional[str] = None
    metadata: Optional[Mapping[str, Any]] = None

    def __post_init__(self):
        # Detached from the caller's dict and read-only
        if self.metadata is not None:
            object.__setattr__(self, "metadata", MappingProxyType(copy.deepcopy(dict(self.metadata))))

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "id": self.id,
            "cardId": self.card_id,
            "customerId": self.customer_id,
            "types": [platform.value for platform in self.types],
            "priority": self.priority.value,
            "metadata": dict(self.metadata) if self.metadata is not None else None,
            "createdAt": self.created_at,
        })


@dataclass(frozen=True)
class PlatformResult:
    platform: Platform
    success: bool
    reference: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "success": self.success,
            "reference": self.reference,
            "error": self.error,
            "errorKind": self.error_kind,
        })


@dataclass(frozen=True)
class WalletGenerationResult:
    request_id: str
    success: bool
    results: Mapping[Platform, PlatformResult]
    unified_data: UnifiedCardData
    generated_at: str
    processing_time: float

    def __post_init__(self):
        object.__setattr__(self, "results", MappingProxyType(dict(self.results)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "success": self.success,
            "results": {platform.value: result.to_dict() for platform, result in self.results.items()},
            "unifiedData": self.unified_data.to_dict(),
            "generatedAt": self.generated_at,
            "processingTime": self.processing_time,
        }


@dataclass(frozen=True)
class FailedGeneration:
    request: WalletGenerationRequest
    error: str
    error_kind: str
    failed_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request": self.request.to_dict(),
            "error": self.error,
            "errorKind": self.error_kind,
            "failedAt": self.failed_at,
        }


@dataclass(frozen=True)
class QueueStatus:
    """Read-only snapshot of the four queue buckets"""

    pending: Tuple[WalletGenerationRequest, ...]
    processing: Tuple[WalletGenerationRequest, ...]
    completed: Tuple[WalletGenerationResult, ...]
    failed: Tuple[FailedGeneration, ...]

    def counts(self) -> Dict[str, int]:
        return {
            "pending": len(self.pending),
            "processing": len(self.processing),
            "completed": len(self.completed),
            "failed": len(self.failed),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "counts": self.counts(),
            "pending": [request.to_dict() for request in self.pending],
            "processing": [request.to_dict() for request in self.processing],
            "completed": [result.to_dict() for result in self.completed],
            "failed": [failure.to_dict() for failure in self.failed],
        }


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

class VerificationCategory(str, Enum):
    DATA_INTEGRITY = "data_integrity"
    FORMAT_VALIDATION = "format_validation"
    PLATFORM_COMPATIBILITY = "platform_compatibility"
    END_TO_END = "end_to_end"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class VerificationTest:
    id: str
    name: str
    description: str
    category: VerificationCategory
    severity: Severity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class VerificationResult:
    test: VerificationTest
    passed: bool
    message: str
    duration: float
    timestamp: str
    details: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "test": self.test.to_dict(),
            "passed": self.passed,
            "message": self.message,
            "details": self.details,
            "duration": self.duration,
            "timestamp": self.timestamp,
        })


@dataclass
class VerificationSummary:
    total: int = 0
    passed: int = 0
    failed: int = 0
    critical: int = 0
    warnings: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "critical": self.critical,
            "warnings": self.warnings,
        }


@dataclass
class WalletChainVerification:
    card_id: str
    verification_id: str
    started_at: str
    customer_id: Optional[str] = None
    completed_at: Optional[str] = None
    status: str = "running"
    results: List[VerificationResult] = field(default_factory=list)
    summary: VerificationSummary = field(default_factory=VerificationSummary)

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "cardId": self.card_id,
            "customerId": self.customer_id,
            "verificationId": self.verification_id,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "status": self.status,
            "results": [result.to_dict() for result in self.results],
            "summary": self.summary.to_dict(),
        })
