"""
Canonical card model.

Turns stamp-card and membership-card rows from the datastore into one
UnifiedCardData that every wallet encoder reads. Built fresh on every call,
never cached or persisted.
"""

import logging
import re
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Tuple

from ...config import WalletSettings
from .datastore import CardDatastore, Record
from .exceptions import NotFoundError
from .models import (
    BarcodeData,
    BusinessInfo,
    CardDisplay,
    CardStatus,
    CardType,
    CustomerInfo,
    MembershipCardDetails,
    StampCardDetails,
    UnifiedCardData,
    isoformat,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

STAMP_BACKGROUND = "rgb(139, 92, 246)"
MEMBERSHIP_BACKGROUND = "rgb(34, 197, 94)"
WHITE = "rgb(255, 255, 255)"
DEFAULT_DURATION_DAYS = 30
TEMPLATE_CUSTOMER = "TEMPLATE"

BARCODE_TYPE_TOKENS = {
    CardType.STAMP: "STAMP",
    CardType.MEMBERSHIP: "MEMBER",
}

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")
_RGB_COLOR = re.compile(r"^rgb\(\s*\d{1,3}\s*,\s*\d{1,3}\s*,\s*\d{1,3}\s*\)$")


class SerialNumberGenerator:
    """Issues <PREFIX>-<cardId>-<epochMillis> serials with a strictly increasing millisecond stamp"""

    def __init__(self):
        self._lock = threading.Lock()
        self._last_millis = 0

    def next(self, card_type: CardType, card_id: str, now: datetime) -> str:
        millis = int(now.timestamp() * 1000)
        with self._lock:
            if millis <= self._last_millis:
                millis = self._last_millis + 1
            self._last_millis = millis
        return f"{BARCODE_TYPE_TOKENS[card_type]}-{card_id}-{millis}"


serial_numbers = SerialNumberGenerator()


def normalize_color(value: Optional[str], default: str) -> str:
    """Accept '#RRGGBB' or 'rgb(r, g, b)' and return the rgb() form wallets expect"""
    if not value:
        return default
    value = value.strip()
    if _RGB_COLOR.match(value):
        return value
    match = _HEX_COLOR.match(value)
    if not match:
        logger.warning(f"Unrecognised card color {value!r}, using {default}")
        return default
    digits = match.group(1)
    r, g, b = (int(digits[i:i + 2], 16) for i in (0, 2, 4))
    return f"rgb({r}, {g}, {b})"


def build_barcode(namespace: str, card_type: CardType, card_id: str,
                  customer_id: Optional[str]) -> BarcodeData:
    token = BARCODE_TYPE_TOKENS[card_type]
    label = "Stamp Card" if card_type == CardType.STAMP else "Membership"
    return BarcodeData(
        value=f"{namespace}-{token}-{card_id}-{customer_id or TEMPLATE_CUSTOMER}",
        alternate_text=f"{label} {card_id}",
    )


def _business_from_record(record: Record) -> BusinessInfo:
    business = record.get("business") or {}
    return BusinessInfo(
        id=str(business.get("id") or ""),
        name=business.get("name") or "",
        email=business.get("contact_email") or business.get("email") or "",
        description=business.get("description"),
        logo_url=business.get("logo_url"),
        address=business.get("address"),
        phone=business.get("phone"),
    )


def _customer_from_progress(progress: Optional[Record]) -> Optional[CustomerInfo]:
    if not progress or not progress.get("customer"):
        return None
    customer = progress["customer"]
    return CustomerInfo(
        id=str(customer.get("id")),
        name=customer.get("name") or None,
        email=customer.get("email") or "",
        member_since=customer.get("created_at") or "",
    )


def _status_from_record(record: Record) -> CardStatus:
    raw = (record.get("status") or CardStatus.ACTIVE.value).lower()
    try:
        return CardStatus(raw)
    except ValueError:
        logger.warning(f"Card {record.get('id')} has unknown status {raw!r}, treating as active")
        return CardStatus.ACTIVE


def _clamp(value: int, upper: int) -> int:
    if upper <= 0:
        return max(0, value)
    return max(0, min(value, upper))


def transform_stamp_card_data(record: Record, progress: Optional[Record] = None, *,
                              namespace: str = WalletSettings.barcode_namespace,
                              now: Optional[datetime] = None) -> UnifiedCardData:
    """
    Map a stamp card row (with joined business) to the unified format.

    Args:
        record: stamp card row with its business under "business"
        progress: per-customer progress from the datastore, None for a template card
        namespace: barcode namespace prefix
        now: generation time, defaults to the current UTC time

    Returns:
        UnifiedCardData of type stamp
    """
    now = now or utc_now()
    card_id = str(record["id"])
    business = _business_from_record(record)
    customer = _customer_from_progress(progress)

    total_stamps = int(record.get("stamps_required") or record.get("total_stamps") or 0)
    current_stamps = int((progress or {}).get("current_stamps") or 0)
    if total_stamps > 0 and current_stamps > total_stamps:
        logger.warning(f"Stamp card {card_id}: {current_stamps} stamps exceed {total_stamps}, capping")
    current_stamps = _clamp(current_stamps, total_stamps)
    progress_ratio = current_stamps / total_stamps if total_stamps > 0 else 0.0

    created_at = record.get("created_at") or isoformat(now)
    reward = record.get("reward_description")

    return UnifiedCardData(
        id=card_id,
        type=CardType.STAMP,
        serial_number=serial_numbers.next(CardType.STAMP, card_id, now),
        business=business,
        card=CardDisplay(
            name=record.get("card_name") or record.get("name") or "",
            description=reward or "Loyalty Card",
            background_color=normalize_color(record.get("card_color"), STAMP_BACKGROUND),
            foreground_color=WHITE,
            label_color=WHITE,
            logo_text=business.name or None,
        ),
        stamp_card=StampCardDetails(
            total_stamps=total_stamps,
            current_stamps=current_stamps,
            reward_description=reward or "Reward available!",
            progress=progress_ratio,
        ),
        customer=customer,
        barcode=build_barcode(namespace, CardType.STAMP, card_id, customer.id if customer else None),
        created_at=created_at,
        updated_at=record.get("updated_at") or created_at,
        version=1,
        status=_status_from_record(record),
    )


def transform_membership_card_data(record: Record, progress: Optional[Record] = None, *,
                                   namespace: str = WalletSettings.barcode_namespace,
                                   now: Optional[datetime] = None) -> UnifiedCardData:
    """
    Map a membership card row (with joined business) to the unified format.

    The expiry date comes from the customer's progress record; without one it
    defaults to `now + duration_days`.
    """
    now = now or utc_now()
    card_id = str(record["id"])
    business = _business_from_record(record)
    customer = _customer_from_progress(progress)
    progress = progress or {}

    total_sessions = int(record.get("total_sessions") or 0)
    sessions_used = _clamp(int(progress.get("sessions_used") or 0), total_sessions)
    duration_days = int(record.get("duration_days") or DEFAULT_DURATION_DAYS)

    if progress.get("expiry_date"):
        expiry = parse_timestamp(progress["expiry_date"])
    else:
        expiry = now + timedelta(days=duration_days)
    expiry_date = isoformat(expiry)

    benefits = record.get("benefits") or [
        f"{total_sessions} total sessions",
        f"Valid for {duration_days} days",
        "Access to all facilities",
    ]

    status = _status_from_record(record)
    if status == CardStatus.ACTIVE and expiry < now:
        status = CardStatus.EXPIRED

    created_at = record.get("created_at") or isoformat(now)

    return UnifiedCardData(
        id=card_id,
        type=CardType.MEMBERSHIP,
        serial_number=serial_numbers.next(CardType.MEMBERSHIP, card_id, now),
        business=business,
        card=CardDisplay(
            name=record.get("name") or record.get("card_name") or "",
            description=f"{total_sessions} sessions membership",
            background_color=normalize_color(record.get("card_color"), MEMBERSHIP_BACKGROUND),
            foreground_color=WHITE,
            label_color=WHITE,
            logo_text=business.name or None,
        ),
        membership_card=MembershipCardDetails(
            membership_type=record.get("membership_type") or "standard",
            total_sessions=total_sessions,
            sessions_used=sessions_used,
            cost=float(record.get("cost") or 0),
            duration_days=duration_days,
            expiry_date=expiry_date,
            benefits=tuple(str(benefit) for benefit in benefits),
        ),
        customer=customer,
        barcode=build_barcode(namespace, CardType.MEMBERSHIP, card_id, customer.id if customer else None),
        created_at=created_at,
        updated_at=record.get("updated_at") or created_at,
        expires_at=expiry_date,
        version=1,
        status=status,
    )


class UnifiedCardBuilder:
    """Builds UnifiedCardData from the datastore: stamp card first, then membership card"""

    def __init__(self, datastore: CardDatastore, settings: Optional[WalletSettings] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.datastore = datastore
        self.settings = settings or WalletSettings()
        self.clock = clock

    async def build(self, card_id: str, customer_id: Optional[str] = None) -> UnifiedCardData:
        namespace = self.settings.barcode_namespace

        stamp_card = await self.datastore.fetch_stamp_card(card_id)
        if stamp_card is not None:
            progress = await self._fetch_progress(card_id, customer_id)
            return transform_stamp_card_data(stamp_card, progress, namespace=namespace, now=self.clock())

        membership_card = await self.datastore.fetch_membership_card(card_id)
        if membership_card is not None:
            progress = await self._fetch_progress(card_id, customer_id)
            return transform_membership_card_data(membership_card, progress, namespace=namespace, now=self.clock())

        raise NotFoundError(card_id)

    async def _fetch_progress(self, card_id: str, customer_id: Optional[str]) -> Optional[Record]:
        if not customer_id:
            return None
        progress = await self.datastore.fetch_customer_progress(card_id, customer_id)
        if progress is None:
            logger.info(f"No progress for customer {customer_id} on card {card_id}, building template card")
        return progress


async def build_canonical_card(datastore: CardDatastore, card_id: str,
                               customer_id: Optional[str] = None,
                               settings: Optional[WalletSettings] = None) -> UnifiedCardData:
    return await UnifiedCardBuilder(datastore, settings).build(card_id, customer_id)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_stamp(details: Any, errors: List[str]) -> None:
    total = getattr(details, "total_stamps", None)
    current = getattr(details, "current_stamps", None)
    if not _is_number(total) or total <= 0:
        errors.append("Total stamps must be greater than zero")
    elif not _is_number(current) or not 0 <= current <= total:
        errors.append("Current stamps must be between 0 and total stamps")
    if not getattr(details, "reward_description", None):
        errors.append("Reward description is required")


def _validate_membership(details: Any, errors: List[str]) -> None:
    total = getattr(details, "total_sessions", None)
    used = getattr(details, "sessions_used", None)
    if not _is_number(total) or total <= 0:
        errors.append("Total sessions must be greater than zero")
    elif not _is_number(used) or not 0 <= used <= total:
        errors.append("Sessions used must be between 0 and total sessions")
    cost = getattr(details, "cost", None)
    if not _is_number(cost) or cost < 0:
        errors.append("Membership cost must not be negative")
    duration = getattr(details, "duration_days", None)
    if not _is_number(duration) or duration <= 0:
        errors.append("Membership duration must be greater than zero")
    if not getattr(details, "expiry_date", None):
        errors.append("Membership expiry date is required")


def validate_card_data(data: Any,
                       namespace: str = WalletSettings.barcode_namespace) -> Tuple[bool, List[str]]:
    """
    Check a unified card for completeness. Never raises.

    Returns:
        (valid, errors) where errors lists every problem found
    """
    if data is None:
        return False, ["Card data is required"]

    errors: List[str] = []

    if not getattr(data, "id", None):
        errors.append("Card ID is required")
    if not getattr(data, "serial_number", None):
        errors.append("Serial number is required")

    if not getattr(getattr(data, "card", None), "name", None):
        errors.append("Card name is required")

    barcode_value = getattr(getattr(data, "barcode", None), "value", None)
    if not barcode_value or not isinstance(barcode_value, str):
        errors.append("Barcode value is required")
    elif not barcode_value.startswith(f"{namespace}-"):
        errors.append(f"Barcode value must start with the {namespace} namespace")

    business = getattr(data, "business", None)
    if not getattr(business, "name", None):
        errors.append("Business name is required")
    if not getattr(business, "email", None):
        errors.append("Business email is required")

    stamp_card = getattr(data, "stamp_card", None)
    membership_card = getattr(data, "membership_card", None)
    raw_type = getattr(data, "type", None)
    try:
        card_type = CardType(raw_type)
    except (TypeError, ValueError):
        card_type = None
        errors.append(f"Unknown card type: {raw_type!r}")

    if card_type == CardType.STAMP:
        if stamp_card is None:
            errors.append("Stamp card data is required for stamp cards")
        else:
            _validate_stamp(stamp_card, errors)
        if membership_card is not None:
            errors.append("Stamp cards must not carry membership data")
    elif card_type == CardType.MEMBERSHIP:
        if membership_card is None:
            errors.append("Membership card data is required for membership cards")
        else:
            _validate_membership(membership_card, errors)
        if stamp_card is not None:
            errors.append("Membership cards must not carry stamp data")

    customer = getattr(data, "customer", None)
    if customer is not None:
        if not getattr(customer, "id", None):
            errors.append("Customer ID is required")
        if not getattr(customer, "email", None):
            errors.append("Customer email is required")

    return len(errors) == 0, errors
