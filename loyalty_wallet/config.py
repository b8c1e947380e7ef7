"""
Configuration for the wallet chain services.

Values come from environment variables, optionally loaded from a .env file.
Signing material is referenced here and never fetched per request.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = _env_str(name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass
class WalletSettings:
    """Settings shared by the encoders, the generation queue and the artifact store"""

    # Apple Wallet
    apple_pass_type_id: str = "pass.com.loyaltywallet.card"
    apple_team_id: str = "LOYALTY123"
    organization_name: Optional[str] = None
    pkpass_certificate_path: Optional[str] = None
    pkpass_certificate_password: Optional[str] = None
    apple_wwdr_cert_path: Optional[str] = None
    assets_dir: Optional[str] = None

    # Google Wallet
    google_issuer_id: str = "3388000000022940702"
    google_service_account_email: Optional[str] = None
    google_private_key: Optional[str] = None

    # Canonical card
    barcode_namespace: str = "LOYALTYWALLET"

    # Generation queue
    generation_enabled: bool = True
    max_concurrent: int = 3
    completed_history: int = 100
    failed_history: int = 50
    priority_ordering: bool = True
    request_timeout: Optional[float] = None
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 8.0

    # Artifact storage
    artifact_dir: Path = field(default_factory=lambda: Path("generated_passes"))
    artifact_base_url: str = "/api/wallet/download"
    seed_file: Optional[str] = None

    log_level: str = "INFO"

    def __post_init__(self):
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if self.completed_history < 1 or self.failed_history < 1:
            raise ValueError("history limits must be at least 1")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        if self.request_timeout is not None and self.request_timeout <= 0:
            self.request_timeout = None

    @property
    def apple_signing_configured(self) -> bool:
        return bool(
            self.pkpass_certificate_path
            and self.pkpass_certificate_password is not None
            and self.apple_wwdr_cert_path
        )

    @property
    def google_signing_configured(self) -> bool:
        return bool(self.google_service_account_email and self.google_private_key)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "WalletSettings":
        """
        Build settings from the environment.

        Args:
            env_file: Optional path to a .env file; the default lookup is used when omitted

        Returns:
            WalletSettings populated from environment variables
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        private_key = _env_str("GOOGLE_WALLET_PRIVATE_KEY")
        if private_key:
            # Keys pasted into .env files usually carry escaped newlines
            private_key = private_key.replace("\\n", "\n").strip("'\"")

        settings = cls(
            apple_pass_type_id=_env_str("WALLET_PASS_TYPE_ID", cls.apple_pass_type_id),
            apple_team_id=_env_str("WALLET_TEAM_ID", cls.apple_team_id),
            organization_name=_env_str("WALLET_ORGANIZATION"),
            pkpass_certificate_path=_env_str("PKPASS_CERTIFICATE_PATH"),
            pkpass_certificate_password=os.getenv("PKPASS_CERTIFICATE_PASSWORD"),
            apple_wwdr_cert_path=_env_str("APPLE_WWDR_CERT_PATH"),
            assets_dir=_env_str("WALLET_ASSETS_DIR"),
            google_issuer_id=_env_str("GOOGLE_WALLET_ISSUER_ID", cls.google_issuer_id),
            google_service_account_email=_env_str("GOOGLE_WALLET_SERVICE_ACCOUNT_EMAIL"),
            google_private_key=private_key,
            barcode_namespace=_env_str("WALLET_BARCODE_NAMESPACE", cls.barcode_namespace),
            generation_enabled=_env_bool("ENABLE_WALLET_GENERATION", True),
            max_concurrent=_env_int("WALLET_QUEUE_MAX_CONCURRENT", cls.max_concurrent),
            completed_history=_env_int("WALLET_QUEUE_COMPLETED_HISTORY", cls.completed_history),
            failed_history=_env_int("WALLET_QUEUE_FAILED_HISTORY", cls.failed_history),
            priority_ordering=_env_bool("WALLET_QUEUE_PRIORITY_ORDERING", True),
            request_timeout=_env_float("WALLET_REQUEST_TIMEOUT", 0.0) or None,
            retry_attempts=_env_int("WALLET_RETRY_ATTEMPTS", cls.retry_attempts),
            retry_base_delay=_env_float("WALLET_RETRY_BASE_DELAY", cls.retry_base_delay),
            retry_max_delay=_env_float("WALLET_RETRY_MAX_DELAY", cls.retry_max_delay),
            artifact_dir=Path(_env_str("WALLET_ARTIFACT_DIR", "generated_passes")),
            artifact_base_url=_env_str("WALLET_STORAGE_URL", cls.artifact_base_url),
            seed_file=_env_str("WALLET_SEED_FILE"),
            log_level=_env_str("WALLET_LOG_LEVEL", "INFO").upper(),
        )

        if not settings.apple_signing_configured:
            logger.warning("PKPass signing certificates not configured - .pkpass files will be unsigned")
        if not settings.google_signing_configured:
            logger.warning("Google Wallet service account not configured - save links will not be signed")
        return settings
