"""
Wallet chain: canonical card model, platform encoders, generation queue and
verification battery for Apple Wallet, Google Wallet and web passes.
"""

from .artifact_store import ArtifactStore, FileSystemArtifactStore, InMemoryArtifactStore
from .datastore import CardDatastore, InMemoryCardDatastore
from .encoders import encode_apple_pass, encode_google_object, encode_web_pass
from .exceptions import (
    ArtifactPackagingError,
    EncodingError,
    GenerationDisabledError,
    NotFoundError,
    PersistenceError,
    RequestCancelledError,
    ValidationError,
    WalletChainError,
)
from .generation_service import WalletGenerationService
from .models import Platform, Priority, UnifiedCardData
from .retry import RetryPolicy
from .unified_card import (
    UnifiedCardBuilder,
    build_canonical_card,
    transform_membership_card_data,
    transform_stamp_card_data,
    validate_card_data,
)
from .verification_service import VERIFICATION_TESTS, WalletVerificationService

__all__ = [
    'ArtifactStore',
    'FileSystemArtifactStore',
    'InMemoryArtifactStore',
    'CardDatastore',
    'InMemoryCardDatastore',
    'encode_apple_pass',
    'encode_google_object',
    'encode_web_pass',
    'ArtifactPackagingError',
    'EncodingError',
    'GenerationDisabledError',
    'NotFoundError',
    'PersistenceError',
    'RequestCancelledError',
    'ValidationError',
    'WalletChainError',
    'WalletGenerationService',
    'Platform',
    'Priority',
    'UnifiedCardData',
    'RetryPolicy',
    'UnifiedCardBuilder',
    'build_canonical_card',
    'transform_membership_card_data',
    'transform_stamp_card_data',
    'validate_card_data',
    'VERIFICATION_TESTS',
    'WalletVerificationService',
]
