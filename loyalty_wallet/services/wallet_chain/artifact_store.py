"""
Artifact stores: where generated wallet artifacts are written. The generation
queue records the returned reference, never the raw bytes.
"""

import asyncio
import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from ...config import WalletSettings
from .exceptions import ArtifactPackagingError, PersistenceError
from .google_jwt import GoogleSaveLinkSigner
from .models import Platform
from .pkpass_creator import PKPassCreator

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9_.-]")


class ArtifactStore(Protocol):
    async def store(self, serial_number: str, platform: Platform, artifact: Dict[str, Any]) -> str:
        """Persist one artifact and return a reference (URL or token) to it"""
        ...


class InMemoryArtifactStore:
    """Keeps artifacts in a dict keyed by reference"""

    def __init__(self):
        self.artifacts: Dict[str, Dict[str, Any]] = {}

    async def store(self, serial_number: str, platform: Platform, artifact: Dict[str, Any]) -> str:
        reference = f"memory://{platform.value}/{serial_number}"
        self.artifacts[reference] = copy.deepcopy(artifact)
        return reference


class FileSystemArtifactStore:
    """
    Writes artifacts under `artifact_dir`:
    Apple as a .pkpass archive, Google as a signed save link (or the object JSON
    when no service account is configured), web passes as JSON.
    """

    def __init__(self, settings: WalletSettings,
                 pkpass_creator: Optional[PKPassCreator] = None,
                 link_signer: Optional[GoogleSaveLinkSigner] = None):
        self.directory = Path(settings.artifact_dir)
        self.base_url = settings.artifact_base_url.rstrip("/")
        self.pkpass_creator = pkpass_creator or PKPassCreator(settings)
        self.link_signer = link_signer or GoogleSaveLinkSigner.from_settings(settings)

    def path_for(self, serial_number: str, platform: Platform) -> Path:
        stem = _UNSAFE_FILENAME.sub("_", serial_number)
        if platform == Platform.APPLE:
            return self.directory / f"{stem}.pkpass"
        return self.directory / f"{stem}.{platform.value}.json"

    def _write(self, serial_number: str, platform: Platform, artifact: Dict[str, Any]) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(serial_number, platform)

        if platform == Platform.APPLE:
            path.write_bytes(self.pkpass_creator.create_pkpass(artifact))
        else:
            path.write_text(json.dumps(artifact, ensure_ascii=False, indent=2), encoding="utf-8")

        if platform == Platform.GOOGLE and self.link_signer is not None:
            return self.link_signer.save_url(artifact)
        return f"{self.base_url}/{path.name}"

    async def store(self, serial_number: str, platform: Platform, artifact: Dict[str, Any]) -> str:
        try:
            reference = await asyncio.to_thread(self._write, serial_number, platform, artifact)
        except OSError as e:
            logger.error(f"❌ Failed to store {platform.value} artifact {serial_number}: {e}")
            raise PersistenceError(platform.value, str(e), e)
        except Exception as e:
            logger.error(f"❌ Failed to package {platform.value} artifact {serial_number}: {e}")
            raise ArtifactPackagingError(platform.value, str(e), e)
        logger.info(f"✅ Stored {platform.value} artifact for {serial_number}")
        return reference
