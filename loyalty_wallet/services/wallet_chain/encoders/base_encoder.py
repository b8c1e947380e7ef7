"""
Base encoder shared by the Apple, Google and web pass encoders.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from ....config import WalletSettings
from ..exceptions import EncodingError
from ..models import CardType, Platform, UnifiedCardData, parse_timestamp
from ..schemas import check_contract

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CardFieldSet:
    """
    The semantic fields every wallet shows, derived once from a unified card.

    Encoders render these values and never recompute them, so the three
    artifacts cannot drift apart.
    """

    card_type: CardType
    title: str
    business_name: str
    barcode_value: str
    barcode_text: str

    # Stamp cards
    stamps: Optional[str] = None
    reward: Optional[str] = None
    progress_percent: Optional[int] = None
    terms: Optional[str] = None

    # Membership cards
    membership_label: Optional[str] = None
    sessions: Optional[str] = None
    expiry_date: Optional[str] = None
    expiry_display: Optional[str] = None
    benefits: Tuple[str, ...] = ()
    cost: Optional[str] = None

    @property
    def progress_text(self) -> str:
        return f"{self.progress_percent}%"

    @property
    def benefits_text(self) -> str:
        return ", ".join(self.benefits)


def format_display_date(value: datetime) -> str:
    return value.strftime("%b %d, %Y")


def derive_field_set(card: UnifiedCardData, platform: Platform) -> CardFieldSet:
    """Derive the shared field set; raises EncodingError when the type-specific block is missing"""
    common = dict(
        card_type=card.type,
        title=card.card.name,
        business_name=card.business.name,
        barcode_value=card.barcode.value,
        barcode_text=card.barcode.alternate_text,
    )

    if card.type == CardType.STAMP:
        stamp = card.stamp_card
        if stamp is None:
            raise EncodingError(platform.value, "stamp card data is missing")
        return CardFieldSet(
            stamps=f"{stamp.current_stamps} of {stamp.total_stamps}",
            reward=stamp.reward_description,
            progress_percent=int(stamp.progress * 100 + 0.5),
            terms=f"Collect {stamp.total_stamps} stamps to earn: {stamp.reward_description}",
            **common,
        )

    membership = card.membership_card
    if membership is None:
        raise EncodingError(platform.value, "membership card data is missing")
    try:
        expiry = parse_timestamp(membership.expiry_date)
    except (TypeError, ValueError, AttributeError):
        raise EncodingError(platform.value, f"invalid expiry date {membership.expiry_date!r}")

    membership_type = membership.membership_type or ""
    return CardFieldSet(
        membership_label=membership_type[:1].upper() + membership_type[1:],
        sessions=f"{membership.sessions_used}/{membership.total_sessions}",
        expiry_date=membership.expiry_date,
        expiry_display=format_display_date(expiry),
        benefits=tuple(membership.benefits),
        cost=f"${membership.cost:,.2f}",
        **common,
    )


class PassEncoder(ABC):
    """Renders a unified card into one platform's descriptor and checks its contract."""

    platform: ClassVar[Platform]
    contract: ClassVar[Dict[str, Any]]

    def __init__(self, settings: Optional[WalletSettings] = None):
        self.settings = settings or WalletSettings()

    def encode(self, card: UnifiedCardData) -> Dict[str, Any]:
        fields = derive_field_set(card, self.platform)
        descriptor = self.render(card, fields)
        check_contract(self.platform.value, descriptor, self.contract)
        logger.debug(f"Encoded {self.platform.value} descriptor for {card.serial_number}")
        return descriptor

    @abstractmethod
    def render(self, card: UnifiedCardData, fields: CardFieldSet) -> Dict[str, Any]:
        """Build the platform descriptor from the card and its field set"""

    @staticmethod
    @abstractmethod
    def extract_barcode(descriptor: Dict[str, Any]) -> Optional[str]:
        """Read the scan code value back out of a rendered descriptor"""

    @staticmethod
    def create_barcode_structure(fields: CardFieldSet) -> List[Dict[str, Any]]:
        return [{
            "format": "PKBarcodeFormatQR",
            "message": fields.barcode_value,
            "messageEncoding": "iso-8859-1",
            "altText": fields.barcode_text,
        }]
