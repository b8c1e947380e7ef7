"""
Platform encoders for the wallet chain.

Each encoder renders the same UnifiedCardData into one wallet's descriptor and
checks the result against that platform's required-field contract.
"""

from typing import Dict, Type

from ..models import Platform
from .base_encoder import CardFieldSet, PassEncoder, derive_field_set
from .apple_pass_encoder import ApplePassEncoder, encode_apple_pass
from .google_wallet_encoder import GoogleWalletEncoder, encode_google_object
from .web_pass_encoder import WebPassEncoder, WEB_PASS_ACTIONS, encode_web_pass

ENCODERS: Dict[Platform, Type[PassEncoder]] = {
    Platform.APPLE: ApplePassEncoder,
    Platform.GOOGLE: GoogleWalletEncoder,
    Platform.WEB: WebPassEncoder,
}

__all__ = [
    'CardFieldSet',
    'PassEncoder',
    'derive_field_set',
    'ApplePassEncoder',
    'GoogleWalletEncoder',
    'WebPassEncoder',
    'WEB_PASS_ACTIONS',
    'ENCODERS',
    'encode_apple_pass',
    'encode_google_object',
    'encode_web_pass',
]
