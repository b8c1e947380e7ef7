"""
PKPass Creator - packages an Apple Wallet pass.json into a .pkpass archive

Builds manifest.json (SHA-1 of every pass file), signs it with OpenSSL when
certificates are configured and zips the result. Without certificates the
archive is produced unsigned so it can still be inspected and tested.

Settings used:
    - PKPASS_CERTIFICATE_PATH: Path to the P12 certificate file
    - PKPASS_CERTIFICATE_PASSWORD: Password for the P12 certificate
    - APPLE_WWDR_CERT_PATH: Path to Apple WWDR certificate (PEM format)
    - WALLET_ASSETS_DIR: Directory with icon.png / logo.png etc. (optional)
"""

import hashlib
import io
import json
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from zipfile import ZipFile, ZIP_DEFLATED

from PIL import Image

from ...config import WalletSettings

logger = logging.getLogger(__name__)

REQ_JSON_KEYS = [
    "formatVersion", "passTypeIdentifier", "teamIdentifier",
    "serialNumber", "organizationName", "description"
]

REQUIRED_ASSETS = {"icon.png": 29, "icon@2x.png": 58}
OPTIONAL_ASSETS = [
    "logo.png", "logo@2x.png",
    "strip.png", "strip@2x.png",
    "thumbnail.png", "thumbnail@2x.png",
]

DEFAULT_ICON_COLOR = (0, 0, 0)


def run(cmd: List[str], cwd: Optional[str] = None) -> str:
    """Run an external command, raising RuntimeError with its output on failure."""
    shown = " ".join("pass:***" if part.startswith("pass:") else part for part in cmd)
    logger.debug(f"$ {shown}")
    try:
        proc = subprocess.run(cmd, cwd=cwd, text=True,
                              stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
    except FileNotFoundError as e:
        raise RuntimeError(f"Command not available: {cmd[0]}") from e
    if proc.returncode != 0:
        raise RuntimeError(f"Command failed: {shown}\n{proc.stdout}")
    return proc.stdout


def rgb_tuple(rgb_str: Optional[str]) -> Tuple[int, int, int]:
    """Parse "rgb(r, g, b)" into a tuple, black when the value cannot be read"""
    if not rgb_str or not rgb_str.strip().startswith("rgb("):
        return DEFAULT_ICON_COLOR
    try:
        r, g, b = (int(x) for x in rgb_str.strip()[4:-1].split(","))
    except ValueError:
        return DEFAULT_ICON_COLOR
    return (r, g, b)


def draw_placeholder_icon(path: Path, size: int, color: Tuple[int, int, int]) -> None:
    image = Image.new("RGBA", (size, size), color + (255,))
    image.save(path, format="PNG")


def stage_assets(build_dir: Path, assets_dir: Optional[Path], background_color: Optional[str]) -> None:
    """Copy pass images into the build directory, drawing any missing required icon."""
    for name, size in REQUIRED_ASSETS.items():
        src = assets_dir / name if assets_dir else None
        if src is not None and src.is_file():
            shutil.copy2(src, build_dir / name)
        else:
            draw_placeholder_icon(build_dir / name, size, rgb_tuple(background_color))
            logger.debug(f"Drew placeholder {name}")

    if not assets_dir:
        return
    for name in OPTIONAL_ASSETS:
        src = assets_dir / name
        if src.is_file():
            shutil.copy2(src, build_dir / name)

    # Localization directories *.lproj (if any)
    for item in assets_dir.glob("*.lproj"):
        if item.is_dir():
            shutil.copytree(item, build_dir / item.name, dirs_exist_ok=True)


def build_manifest(build_dir: Path) -> Dict[str, str]:
    """Write manifest.json for all files in the pass (root and *.lproj), excluding manifest/signature/hidden files."""
    manifest = {}
    for base, dirs, files in os.walk(build_dir):
        rel_base = Path(base).relative_to(build_dir)
        if str(rel_base) != "." and not str(rel_base).endswith(".lproj"):
            continue
        dirs[:] = [d for d in dirs if not d.startswith(".") and (d.endswith(".lproj") or str(rel_base) == ".")]
        for fn in files:
            if fn in ("manifest.json", "signature") or fn.startswith("."):
                continue
            path = Path(base) / fn
            rel = path.relative_to(build_dir).as_posix()
            manifest[rel] = hashlib.sha1(path.read_bytes()).hexdigest()
    if "pass.json" not in manifest:
        raise ValueError("manifest.json has no pass.json entry")
    (build_dir / "manifest.json").write_text(json.dumps(manifest, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.debug(f"manifest.json created ({len(manifest)} items)")
    return manifest


def sign_manifest(build_dir: Path, signer_cert_pem: Path, signer_key_pem: Path, wwdr_pem: Path) -> Path:
    """Write a detached PKCS#7 signature of manifest.json."""
    sig_path = build_dir / "signature"
    run([
        "openssl", "smime", "-binary", "-sign",
        "-signer", str(signer_cert_pem),
        "-inkey", str(signer_key_pem),
        "-certfile", str(wwdr_pem),
        "-in", str(build_dir / "manifest.json"),
        "-out", str(sig_path),
        "-outform", "DER"
    ])
    return sig_path


def zip_pkpass(build_dir: Path) -> bytes:
    """Zip the build directory into .pkpass bytes with relative file paths."""
    buffer = io.BytesIO()
    with ZipFile(buffer, "w", ZIP_DEFLATED) as zf:
        for p in sorted(build_dir.rglob("*")):
            if p.is_dir():
                continue
            rel = p.relative_to(build_dir)
            if rel.name.startswith("."):
                continue
            zf.write(p, arcname=rel.as_posix())
    return buffer.getvalue()


class PKPassCreator:
    """Creates .pkpass archives from pass.json descriptors."""

    def __init__(self, settings: WalletSettings):
        self.cert_path = settings.pkpass_certificate_path
        self.cert_password = settings.pkpass_certificate_password
        self.wwdr_cert_path = settings.apple_wwdr_cert_path
        self.assets_dir = Path(settings.assets_dir) if settings.assets_dir else None
        self.signing_enabled = settings.apple_signing_configured

        if self.signing_enabled:
            if not Path(self.cert_path).exists():
                raise ValueError(f"Certificate file not found: {self.cert_path}")
            if not Path(self.wwdr_cert_path).exists():
                raise ValueError(f"WWDR certificate file not found: {self.wwdr_cert_path}")

    def _extract_pem(self, out_path: Path, *flags: str) -> None:
        cmd = ["openssl", "pkcs12", "-passin", f"pass:{self.cert_password}",
               "-in", str(self.cert_path), *flags, "-out", str(out_path)]
        try:
            run(cmd)
        except RuntimeError:
            # OpenSSL 3.x needs -legacy for older P12 bundles
            logger.info("OpenSSL command failed, retrying with -legacy flag...")
            run(cmd[:2] + ["-legacy"] + cmd[2:])

    def create_pkpass(self, pass_data: Dict[str, Any]) -> bytes:
        """
        Package pass data as a .pkpass archive.

        Args:
            pass_data: pass.json descriptor

        Returns:
            The .pkpass archive bytes
        """
        missing = [k for k in REQ_JSON_KEYS if k not in pass_data]
        if missing:
            raise ValueError(f"Missing required keys in pass.json: {', '.join(missing)}")

        with tempfile.TemporaryDirectory() as temp_dir:
            build_dir = Path(temp_dir) / "build_pkpass"
            build_dir.mkdir(parents=True)

            (build_dir / "pass.json").write_text(
                json.dumps(pass_data, ensure_ascii=False, indent=2), encoding="utf-8"
            )
            stage_assets(build_dir, self.assets_dir, pass_data.get("backgroundColor"))
            build_manifest(build_dir)

            if self.signing_enabled:
                signer_cert_pem = Path(temp_dir) / "signerCert.pem"
                signer_key_pem = Path(temp_dir) / "signerKey.pem"
                self._extract_pem(signer_cert_pem, "-clcerts", "-nokeys")
                self._extract_pem(signer_key_pem, "-nocerts", "-nodes")
                sign_manifest(build_dir, signer_cert_pem, signer_key_pem, Path(self.wwdr_cert_path))
            else:
                logger.warning(f"Creating unsigned pkpass for {pass_data['serialNumber']}")

            archive = zip_pkpass(build_dir)

        logger.info(f"✅ PKPass created for {pass_data['serialNumber']} ({len(archive)} bytes)")
        return archive
