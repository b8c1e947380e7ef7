"""
Command line entry point: generate wallet artifacts, verify a card's wallet
chain, or serve the API.
"""

import asyncio
import dataclasses
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from .config import WalletSettings
from .main import configure_logging, load_datastore, run
from .services.wallet_chain.artifact_store import FileSystemArtifactStore
from .services.wallet_chain.exceptions import WalletChainError
from .services.wallet_chain.generation_service import WalletGenerationService
from .services.wallet_chain.verification_service import WalletVerificationService

logger = logging.getLogger(__name__)


def _load_settings(env_file: Optional[str], seed: Optional[str], **overrides) -> WalletSettings:
    settings = WalletSettings.from_env(env_file)
    if seed:
        overrides["seed_file"] = seed
    if overrides:
        settings = dataclasses.replace(settings, **overrides)
    configure_logging(settings)
    return settings


@click.group()
@click.option("--env-file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Load settings from this .env file.")
@click.option("--seed", type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON datastore seed file (defaults to WALLET_SEED_FILE, then demo data).")
@click.pass_context
def main(ctx, env_file, seed):
    """Loyalty wallet chain tools."""
    ctx.ensure_object(dict)
    ctx.obj["env_file"] = env_file
    ctx.obj["seed"] = seed


@main.command()
@click.option("--card-id", required=True, help="Stamp or membership card id.")
@click.option("--customer-id", default=None, help="Customer id; omit for a template card.")
@click.option("--type", "types", multiple=True, default=("apple", "google", "web"), show_default=True,
              help="Wallet type to generate (repeatable).")
@click.option("--priority", type=click.Choice(["high", "normal", "low"]), default="normal", show_default=True)
@click.option("--out", "out_dir", default=None, help="Artifact output directory (defaults to WALLET_ARTIFACT_DIR).")
@click.option("--timeout", default=60.0, show_default=True, help="Seconds to wait for the request to finish.")
@click.pass_context
def generate(ctx, card_id: str, customer_id: Optional[str], types: Tuple[str, ...],
             priority: str, out_dir: Optional[str], timeout: float):
    """Generate wallet artifacts for one card."""
    overrides = {"artifact_dir": Path(out_dir)} if out_dir else {}

    async def _generate(settings: WalletSettings):
        service = WalletGenerationService(load_datastore(settings), FileSystemArtifactStore(settings), settings)
        request_id = await service.enqueue_generation(card_id, customer_id, types, priority)
        if not await service.wait_until_idle(timeout):
            logger.warning(f"Request {request_id} did not finish within {timeout}s, cancelling")
            await service.cancel_request(request_id)
        return service.get_result(request_id), service.get_failure(request_id)

    try:
        settings = _load_settings(ctx.obj["env_file"], ctx.obj["seed"], **overrides)
        result, failure = asyncio.run(_generate(settings))
    except (OSError, ValueError, WalletChainError) as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(2)

    if result is None:
        reason = f"({failure.error_kind}): {failure.error}" if failure else "with no result"
        click.echo(f"❌ Generation failed {reason}", err=True)
        sys.exit(1)

    click.echo(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    if not result.success:
        click.echo("❌ Some wallet types failed", err=True)
        sys.exit(1)
    click.echo(f"✅ Created wallet artifacts for {result.unified_data.serial_number}", err=True)


@main.command()
@click.option("--card-id", required=True, help="Stamp or membership card id.")
@click.option("--customer-id", default=None, help="Customer id; omit to verify the template card.")
@click.option("--quick", is_flag=True, help="Only report critical issues.")
@click.pass_context
def verify(ctx, card_id: str, customer_id: Optional[str], quick: bool):
    """Run the verification battery for one card."""
    try:
        settings = _load_settings(ctx.obj["env_file"], ctx.obj["seed"])
        service = WalletVerificationService(load_datastore(settings), settings)
    except (OSError, ValueError) as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(2)

    if quick:
        valid, issues = asyncio.run(service.quick_verify_wallet_chain(card_id, customer_id))
        click.echo(json.dumps({"valid": valid, "issues": issues}, indent=2))
        sys.exit(0 if valid else 1)

    verification = asyncio.run(service.verify_wallet_chain(card_id, customer_id))
    click.echo(json.dumps(verification.to_dict(), ensure_ascii=False, indent=2))
    sys.exit(0 if verification.status == "completed" else 1)


@main.command()
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Restart on code changes.")
@click.pass_context
def serve(ctx, host: str, port: int, reload: bool):
    """Serve the HTTP API with uvicorn."""
    if ctx.obj["env_file"]:
        WalletSettings.from_env(ctx.obj["env_file"])
    if ctx.obj["seed"]:
        os.environ["WALLET_SEED_FILE"] = ctx.obj["seed"]
    run(host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
