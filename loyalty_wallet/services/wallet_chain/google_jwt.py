"""
Google Wallet "Save to Google Wallet" links.

The object is embedded in an RS256 JWT signed with the issuer's service
account key; the link is https://pay.google.com/gp/v/save/<jwt>.
"""

import logging
import time
from typing import Any, Dict, Optional

import jwt

from ...config import WalletSettings

logger = logging.getLogger(__name__)

SAVE_URL_PREFIX = "https://pay.google.com/gp/v/save/"
TOKEN_LIFETIME = 3600


class GoogleSaveLinkSigner:
    """Signs Google Wallet objects into save links with a service account key."""

    def __init__(self, service_account_email: str, private_key: str, origins: Optional[list] = None):
        if not service_account_email or not private_key:
            raise ValueError("Google Wallet service account email and private key are required")
        self.service_account_email = service_account_email
        self.private_key = private_key
        self.origins = origins or []

    @classmethod
    def from_settings(cls, settings: WalletSettings) -> Optional["GoogleSaveLinkSigner"]:
        """None when no service account is configured"""
        if not settings.google_signing_configured:
            return None
        return cls(settings.google_service_account_email, settings.google_private_key)

    @staticmethod
    def payload_key(wallet_object: Dict[str, Any]) -> str:
        # Loyalty objects carry loyaltyPoints; memberships are generic objects
        return "loyaltyObjects" if "loyaltyPoints" in wallet_object else "genericObjects"

    def build_claims(self, wallet_object: Dict[str, Any], issued_at: Optional[int] = None) -> Dict[str, Any]:
        iat = int(issued_at if issued_at is not None else time.time())
        claims = {
            "iss": self.service_account_email,
            "aud": "google",
            "typ": "savetowallet",
            "iat": iat,
            "exp": iat + TOKEN_LIFETIME,
            "payload": {self.payload_key(wallet_object): [wallet_object]},
        }
        if self.origins:
            claims["origins"] = list(self.origins)
        return claims

    def sign(self, wallet_object: Dict[str, Any]) -> str:
        """Return the signed JWT for one wallet object"""
        return jwt.encode(self.build_claims(wallet_object), self.private_key, algorithm="RS256")

    def save_url(self, wallet_object: Dict[str, Any]) -> str:
        token = self.sign(wallet_object)
        logger.debug(f"Signed Google Wallet save link for {wallet_object.get('id')}")
        return f"{SAVE_URL_PREFIX}{token}"
