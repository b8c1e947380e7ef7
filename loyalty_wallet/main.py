"""
FastAPI backend for wallet pass generation and verification.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from .config import WalletSettings
from .services.wallet_chain.artifact_store import ArtifactStore, FileSystemArtifactStore
from .services.wallet_chain.datastore import CardDatastore, InMemoryCardDatastore
from .services.wallet_chain.exceptions import GenerationDisabledError
from .services.wallet_chain.fixtures import demo_datastore
from .services.wallet_chain.generation_service import WalletGenerationService
from .services.wallet_chain.verification_service import WalletVerificationService

logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    ".pkpass": "application/vnd.apple.pkpass",
    ".json": "application/json",
}


class GenerateRequest(BaseModel):
    cardId: str = Field(..., min_length=1)
    customerId: Optional[str] = None
    types: List[str] = Field(default_factory=lambda: ["apple", "google", "web"])
    priority: str = "normal"
    metadata: Optional[Dict[str, Any]] = None


def configure_logging(settings: WalletSettings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def load_datastore(settings: WalletSettings) -> CardDatastore:
    if settings.seed_file:
        return InMemoryCardDatastore.from_json_file(settings.seed_file)
    logger.warning("WALLET_SEED_FILE not set - serving the demo datastore")
    return demo_datastore()


def create_app(settings: Optional[WalletSettings] = None,
               datastore: Optional[CardDatastore] = None,
               artifact_store: Optional[ArtifactStore] = None) -> FastAPI:
    """
    Build the API around one generation queue and one verification service.

    Args:
        settings: defaults to WalletSettings.from_env()
        datastore: defaults to the seed file named by WALLET_SEED_FILE, or demo data
        artifact_store: defaults to a FileSystemArtifactStore under WALLET_ARTIFACT_DIR
    """
    settings = settings or WalletSettings.from_env()
    datastore = datastore or load_datastore(settings)
    artifact_store = artifact_store or FileSystemArtifactStore(settings)

    generation_service = WalletGenerationService(datastore, artifact_store, settings)
    verification_service = WalletVerificationService(datastore, settings, generation_service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await generation_service.shutdown()

    app = FastAPI(
        title="Loyalty Wallet API",
        description="Generate and verify Apple Wallet, Google Wallet and web passes for loyalty cards",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.generation_service = generation_service
    app.state.verification_service = verification_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health_check():
        """Detailed health check"""
        return {
            "status": "healthy",
            "services": {
                "generation": settings.generation_enabled,
                "apple_signing": settings.apple_signing_configured,
                "google_signing": settings.google_signing_configured,
                "queue": generation_service.get_queue_status().counts(),
            }
        }

    @app.post("/api/wallet/generate", status_code=202)
    async def generate_wallets(body: GenerateRequest):
        """Queue wallet generation for a card and return the request id"""
        try:
            request_id = await generation_service.enqueue_generation(
                card_id=body.cardId,
                customer_id=body.customerId,
                types=body.types,
                priority=body.priority,
                metadata=body.metadata,
            )
        except GenerationDisabledError as e:
            raise HTTPException(
                status_code=503,
                detail={"ok": False, "error": e.message}
            )
        except ValueError as e:
            raise HTTPException(
                status_code=400,
                detail={"ok": False, "error": str(e)}
            )
        return {"ok": True, "requestId": request_id}

    @app.get("/api/wallet/results/{request_id}")
    async def get_result(request_id: str):
        result = generation_service.get_result(request_id)
        if result is not None:
            return {"ok": True, "status": "completed", "result": result.to_dict()}

        failure = generation_service.get_failure(request_id)
        if failure is not None:
            return {"ok": True, "status": "failed", "failure": failure.to_dict()}

        status = generation_service.get_queue_status()
        for bucket in ("pending", "processing"):
            if any(request.id == request_id for request in getattr(status, bucket)):
                return JSONResponse(status_code=202, content={"ok": True, "status": bucket})

        raise HTTPException(
            status_code=404,
            detail={"ok": False, "error": f"No result for request {request_id}"}
        )

    @app.get("/api/wallet/queue")
    async def get_queue_status():
        return {"ok": True, "queue": generation_service.get_queue_status().to_dict()}

    @app.post("/api/wallet/queue/{request_id}/cancel")
    async def cancel_request(request_id: str):
        if not await generation_service.cancel_request(request_id):
            raise HTTPException(
                status_code=404,
                detail={"ok": False, "error": f"Request {request_id} is not pending or processing"}
            )
        return {"ok": True, "cancelled": request_id}

    @app.delete("/api/wallet/queue/history")
    async def clear_history():
        return {"ok": True, "cleared": await generation_service.clear_history()}

    @app.get("/api/wallet/verify/{card_id}")
    async def verify_wallet_chain(card_id: str, customerId: Optional[str] = None):
        verification = await verification_service.verify_wallet_chain(card_id, customerId)
        return {"ok": True, "verification": verification.to_dict()}

    @app.get("/api/wallet/verify/{card_id}/quick")
    async def quick_verify_wallet_chain(card_id: str, customerId: Optional[str] = None):
        valid, issues = await verification_service.quick_verify_wallet_chain(card_id, customerId)
        return {"ok": True, "valid": valid, "issues": issues}

    @app.get("/api/wallet/download/{filename}")
    async def download_artifact(filename: str):
        """Serve a stored artifact written by the file system store"""
        safe_name = Path(filename).name
        path = Path(settings.artifact_dir) / safe_name
        if safe_name != filename or not path.is_file():
            raise HTTPException(
                status_code=404,
                detail={"ok": False, "error": f"Artifact not found: {filename}"}
            )
        media_type = MEDIA_TYPES.get(path.suffix, "application/octet-stream")
        return FileResponse(path, media_type=media_type, filename=safe_name)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"Unexpected error handling {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "Internal server error. Please try again later."}
        )

    return app


def run(host: str = "0.0.0.0", port: int = 8000, reload: bool = False) -> None:
    settings = WalletSettings.from_env()
    configure_logging(settings)
    if reload:
        uvicorn.run("loyalty_wallet.main:create_app", factory=True, host=host, port=port,
                    reload=True, log_level=settings.log_level.lower())
    else:
        uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
