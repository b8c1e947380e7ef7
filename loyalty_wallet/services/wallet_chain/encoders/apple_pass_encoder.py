"""
Apple Wallet pass.json encoder. Stamp cards render as storeCard passes,
memberships as generic passes.
"""

import logging
from typing import Any, Dict, List, Optional

from ....config import WalletSettings
from ..models import CardType, Platform, UnifiedCardData
from ..schemas import APPLE_PASS_SCHEMA
from .base_encoder import CardFieldSet, PassEncoder

logger = logging.getLogger(__name__)


class ApplePassEncoder(PassEncoder):
    platform = Platform.APPLE
    contract = APPLE_PASS_SCHEMA

    def create_base_pass_structure(self, card: UnifiedCardData, fields: CardFieldSet) -> Dict[str, Any]:
        """Create the base Apple Wallet pass structure."""
        base = {
            "formatVersion": 1,
            "passTypeIdentifier": self.settings.apple_pass_type_id,
            "teamIdentifier": self.settings.apple_team_id,
            "serialNumber": card.serial_number,
            "organizationName": fields.business_name or self.settings.organization_name or "",
            "description": card.card.description,
            "backgroundColor": card.card.background_color,
            "foregroundColor": card.card.foreground_color,
            "labelColor": card.card.label_color,
            "barcodes": self.create_barcode_structure(fields),
        }
        if card.card.logo_text:
            base["logoText"] = card.card.logo_text
        if card.expires_at:
            base["expirationDate"] = card.expires_at
        return base

    @staticmethod
    def _common_back_fields(card: UnifiedCardData, fields: CardFieldSet) -> List[Dict[str, Any]]:
        back_fields = [
            {"key": "business-info", "label": "Business", "value": fields.business_name},
            {"key": "created", "label": "Created", "value": card.created_at, "dateStyle": "PKDateStyleMedium"},
        ]
        if card.customer is not None:
            back_fields.append({
                "key": "member-since",
                "label": "Member Since",
                "value": card.customer.member_since,
                "dateStyle": "PKDateStyleMedium",
            })
        return back_fields

    def render(self, card: UnifiedCardData, fields: CardFieldSet) -> Dict[str, Any]:
        pass_data = self.create_base_pass_structure(card, fields)
        back_fields = self._common_back_fields(card, fields)

        if card.type == CardType.STAMP:
            pass_data["storeCard"] = {
                "primaryFields": [{"key": "stamps", "label": "Stamps", "value": fields.stamps}],
                "secondaryFields": [{"key": "reward", "label": "Reward", "value": fields.reward}],
                "auxiliaryFields": [{"key": "progress", "label": "Progress", "value": fields.progress_text}],
                "backFields": back_fields + [
                    {"key": "terms", "label": "Terms & Conditions", "value": fields.terms},
                ],
            }
        else:
            pass_data["generic"] = {
                "primaryFields": [{"key": "membership", "label": "Membership", "value": fields.membership_label}],
                "secondaryFields": [
                    {"key": "sessions", "label": "Sessions", "value": fields.sessions},
                    {"key": "expires", "label": "Expires", "value": fields.expiry_date,
                     "dateStyle": "PKDateStyleMedium"},
                ],
                "backFields": back_fields + [
                    {"key": "benefits", "label": "Benefits", "value": fields.benefits_text},
                    {"key": "cost", "label": "Cost", "value": fields.cost},
                ],
            }
        return pass_data

    @staticmethod
    def extract_barcode(descriptor: Dict[str, Any]) -> Optional[str]:
        barcodes = descriptor.get("barcodes") or []
        return barcodes[0].get("message") if barcodes else None


def encode_apple_pass(card: UnifiedCardData, settings: Optional[WalletSettings] = None) -> Dict[str, Any]:
    """
    Encode a unified card as an Apple Wallet pass.json descriptor.

    Raises:
        EncodingError: when a required pass.json field is absent or empty
    """
    return ApplePassEncoder(settings).encode(card)
