"""
Google Wallet object encoder. Stamp cards become loyalty objects,
memberships generic objects.
"""

import logging
from typing import Any, Dict, Optional

from ....config import WalletSettings
from ..models import CardType, Platform, UnifiedCardData
from ..schemas import GOOGLE_OBJECT_SCHEMA
from .base_encoder import CardFieldSet, PassEncoder

logger = logging.getLogger(__name__)

STAMP_CLASS_SUFFIX = "stamp-card-class"
MEMBERSHIP_CLASS_SUFFIX = "membership-card-class"


def _localized(value: str) -> Dict[str, Any]:
    return {"defaultValue": {"language": "en-US", "value": value}}


class GoogleWalletEncoder(PassEncoder):
    platform = Platform.GOOGLE
    contract = GOOGLE_OBJECT_SCHEMA

    def class_id(self, card_type: CardType) -> str:
        suffix = STAMP_CLASS_SUFFIX if card_type == CardType.STAMP else MEMBERSHIP_CLASS_SUFFIX
        return f"{self.settings.google_issuer_id}.{suffix}"

    def render(self, card: UnifiedCardData, fields: CardFieldSet) -> Dict[str, Any]:
        wallet_object = {
            "id": f"{self.settings.google_issuer_id}.{card.serial_number}",
            "classId": self.class_id(card.type),
            "state": "ACTIVE",
            "barcode": {
                "type": "QR_CODE",
                "value": fields.barcode_value,
                "alternateText": fields.barcode_text,
            },
        }
        hex_color = _rgb_to_hex(card.card.background_color)
        if hex_color:
            wallet_object["hexBackgroundColor"] = hex_color

        if card.type == CardType.STAMP:
            wallet_object.update({
                "accountId": card.customer.id if card.customer else "template-account",
                "accountName": (card.customer.name if card.customer else None) or "Valued Customer",
                "loyaltyPoints": {
                    "balance": {"string": f"{fields.stamps} stamps"},
                    "label": "Stamps Collected",
                },
                "textModulesData": [
                    {"id": "reward-info", "header": "Reward", "body": fields.reward},
                    {"id": "progress-info", "header": "Progress", "body": f"{fields.progress_text} complete"},
                    {"id": "business-info", "header": "Business", "body": fields.business_name},
                ],
            })
        else:
            wallet_object.update({
                "cardTitle": _localized(f"{fields.membership_label} Membership"),
                "header": _localized(fields.business_name),
                "textModulesData": [
                    {"id": "sessions-info", "header": "Sessions", "body": f"{fields.sessions} used"},
                    {"id": "expiry-info", "header": "Expires", "body": fields.expiry_display},
                    {"id": "benefits-info", "header": "Benefits", "body": fields.benefits_text},
                ],
            })
        return wallet_object

    @staticmethod
    def extract_barcode(descriptor: Dict[str, Any]) -> Optional[str]:
        return (descriptor.get("barcode") or {}).get("value")


def _rgb_to_hex(color: str) -> Optional[str]:
    """'rgb(139, 92, 246)' -> '#8b5cf6'; None for anything else"""
    if not color or not color.startswith("rgb("):
        return None
    try:
        r, g, b = (int(part) for part in color[4:-1].split(","))
    except ValueError:
        return None
    return f"#{r:02x}{g:02x}{b:02x}"


def encode_google_object(card: UnifiedCardData, settings: Optional[WalletSettings] = None) -> Dict[str, Any]:
    """
    Encode a unified card as a Google Wallet object.

    Raises:
        EncodingError: when the object id, class id, state or barcode is missing
    """
    return GoogleWalletEncoder(settings).encode(card)
