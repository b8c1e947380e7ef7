"""
Web pass encoder: the browser-hosted representation of a card.
"""

from typing import Any, Dict, Optional

from ....config import WalletSettings
from ..models import Platform, UnifiedCardData
from ..schemas import WEB_PASS_SCHEMA
from .base_encoder import CardFieldSet, PassEncoder

WEB_PASS_ACTIONS = (
    {"id": "scan", "label": "Scan QR Code", "icon": "qr-code", "primary": True},
    {"id": "share", "label": "Share", "icon": "share"},
    {"id": "details", "label": "View Details", "icon": "info"},
)


class WebPassEncoder(PassEncoder):
    platform = Platform.WEB
    contract = WEB_PASS_SCHEMA

    def render(self, card: UnifiedCardData, fields: CardFieldSet) -> Dict[str, Any]:
        meta = {
            "version": card.version,
            "status": card.status.value,
            "createdAt": card.created_at,
            "updatedAt": card.updated_at,
        }
        if card.expires_at:
            meta["expiresAt"] = card.expires_at

        return {
            "id": card.id,
            "type": card.type.value,
            "serialNumber": card.serial_number,
            "title": fields.title,
            "subtitle": fields.business_name,
            "description": card.card.description,
            "theme": {
                "backgroundColor": card.card.background_color,
                "foregroundColor": card.card.foreground_color,
                "labelColor": card.card.label_color,
            },
            "business": card.business.to_dict(),
            "cardData": card.details.to_dict(),
            "barcode": {
                "type": "qr",
                "value": fields.barcode_value,
                "displayValue": fields.barcode_text,
            },
            "actions": [dict(action) for action in WEB_PASS_ACTIONS],
            "meta": meta,
        }

    @staticmethod
    def extract_barcode(descriptor: Dict[str, Any]) -> Optional[str]:
        return (descriptor.get("barcode") or {}).get("value")


def encode_web_pass(card: UnifiedCardData, settings: Optional[WalletSettings] = None) -> Dict[str, Any]:
    return WebPassEncoder(settings).encode(card)
