"""
Exceptions raised by the wallet chain services.
"""

from typing import List, Optional


class WalletChainError(Exception):
    """Base class for wallet chain failures. `kind` is recorded on failed requests."""

    kind = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(WalletChainError):
    """The card id matches neither a stamp card nor a membership card"""

    kind = "not_found"

    def __init__(self, card_id: str):
        super().__init__(f"Card not found: {card_id}")
        self.card_id = card_id


class ValidationError(WalletChainError):
    """The canonical card failed validation"""

    kind = "validation"

    def __init__(self, errors: List[str]):
        super().__init__(f"Invalid card data: {', '.join(errors)}")
        self.errors = list(errors)


class EncodingError(WalletChainError):
    """A platform encoder could not produce a required field"""

    kind = "encoding"

    def __init__(self, platform: str, message: str):
        super().__init__(f"{platform} encoding failed: {message}")
        self.platform = platform


class PersistenceError(WalletChainError):
    """Writing an artifact to the artifact store failed"""

    kind = "persistence"

    def __init__(self, platform: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{platform} artifact could not be stored: {message}")
        self.platform = platform
        self.cause = cause


class ArtifactPackagingError(WalletChainError):
    """The artifact itself could not be packaged or signed. Not retried."""

    kind = "packaging"

    def __init__(self, platform: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{platform} artifact could not be packaged: {message}")
        self.platform = platform
        self.cause = cause


class RequestCancelledError(WalletChainError):
    """A generation request was cancelled before reaching a terminal state"""

    kind = "cancelled"

    def __init__(self, request_id: str):
        super().__init__(f"Request cancelled: {request_id}")
        self.request_id = request_id


class GenerationDisabledError(WalletChainError):
    """Wallet generation is switched off by configuration"""

    kind = "disabled"

    def __init__(self):
        super().__init__("Wallet generation is disabled")
