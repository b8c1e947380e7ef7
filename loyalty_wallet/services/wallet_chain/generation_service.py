"""
Wallet Generation Service

Bounded-concurrency queue that turns generation requests into wallet
artifacts. Each request moves pending -> processing -> completed | failed and
its terminal state is set exactly once.
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple, Union

from ...config import WalletSettings
from .artifact_store import ArtifactStore
from .datastore import CardDatastore
from .encoders import ENCODERS, PassEncoder
from .exceptions import (
    EncodingError,
    GenerationDisabledError,
    PersistenceError,
    RequestCancelledError,
    ValidationError,
    WalletChainError,
)
from .models import (
    FailedGeneration,
    Platform,
    PlatformResult,
    Priority,
    QueueStatus,
    UnifiedCardData,
    WalletGenerationRequest,
    WalletGenerationResult,
    isoformat,
    utc_now,
)
from .retry import RetryPolicy
from .unified_card import UnifiedCardBuilder, validate_card_data

logger = logging.getLogger(__name__)

# Older clients still ask for "pwa"
PLATFORM_ALIASES = {"pwa": Platform.WEB}


def parse_platforms(types: Iterable[Union[str, Platform]]) -> Tuple[Platform, ...]:
    """Normalise requested wallet types, keeping order and dropping duplicates"""
    platforms: List[Platform] = []
    for value in types or ():
        raw = value.value if isinstance(value, Platform) else str(value).strip().lower()
        platform = PLATFORM_ALIASES.get(raw)
        if platform is None:
            try:
                platform = Platform(raw)
            except ValueError:
                raise ValueError(f"Unknown wallet type: {value!r}")
        if platform not in platforms:
            platforms.append(platform)
    if not platforms:
        raise ValueError("At least one wallet type is required")
    return tuple(platforms)


def _cancellation(request_id: str) -> Tuple[str, str]:
    error = RequestCancelledError(request_id)
    return error.message, error.kind


def parse_priority(priority: Union[str, Priority]) -> Priority:
    try:
        return Priority(priority)
    except ValueError:
        raise ValueError(f"Unknown priority: {priority!r}")


class WalletGenerationService:
    """
    In-memory generation queue.

    Up to `max_concurrent` requests run at once; the next request taken is the
    oldest one in the highest priority band unless priority ordering is
    switched off, in which case the queue is plain FIFO.
    """

    def __init__(self,
                 datastore: CardDatastore,
                 artifact_store: ArtifactStore,
                 settings: Optional[WalletSettings] = None,
                 clock: Callable[[], datetime] = utc_now,
                 retry_policy: Optional[RetryPolicy] = None):
        self.settings = settings or WalletSettings()
        self.clock = clock
        self.builder = UnifiedCardBuilder(datastore, self.settings, clock)
        self.artifact_store = artifact_store
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)
        self.encoders: Dict[Platform, PassEncoder] = {
            platform: encoder_cls(self.settings) for platform, encoder_cls in ENCODERS.items()
        }

        self._lock = asyncio.Lock()
        self._idle = asyncio.Event()
        self._idle.set()
        self._pending: List[WalletGenerationRequest] = []
        self._processing: Dict[str, WalletGenerationRequest] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._completed: Deque[WalletGenerationResult] = deque(maxlen=self.settings.completed_history)
        self._failed: Deque[FailedGeneration] = deque(maxlen=self.settings.failed_history)

        # Highest number of simultaneously processing requests seen so far
        self.peak_processing = 0

    @property
    def max_concurrent(self) -> int:
        return self.settings.max_concurrent

    # ------------------------------------------------------------------
    # Caller-facing operations
    # ------------------------------------------------------------------

    async def enqueue_generation(self,
                                 card_id: str,
                                 customer_id: Optional[str] = None,
                                 types: Iterable[Union[str, Platform]] = (Platform.APPLE, Platform.GOOGLE, Platform.WEB),
                                 priority: Union[str, Priority] = Priority.NORMAL,
                                 metadata: Optional[Dict[str, Any]] = None) -> str:
        """
        Queue a generation request and return its id immediately.

        Raises:
            GenerationDisabledError: generation is switched off
            ValueError: empty card id, unknown wallet type or priority
        """
        if not self.settings.generation_enabled:
            raise GenerationDisabledError()
        if not card_id or not str(card_id).strip():
            raise ValueError("card_id is required")

        request = WalletGenerationRequest(
            id=str(uuid.uuid4()),
            card_id=str(card_id).strip(),
            customer_id=str(customer_id) if customer_id else None,
            types=parse_platforms(types),
            priority=parse_priority(priority),
            metadata=dict(metadata) if metadata else None,
            created_at=isoformat(self.clock()),
        )

        async with self._lock:
            self._pending.append(request)
            self._idle.clear()
            self._dispatch()

        logger.info(f"📥 Queued request {request.id} for card {request.card_id} "
                    f"({', '.join(p.value for p in request.types)}, {request.priority.value})")
        return request.id

    def get_result(self, request_id: str) -> Optional[WalletGenerationResult]:
        """Completed result for the request, None while pending/processing, failed or evicted"""
        for result in reversed(self._completed):
            if result.request_id == request_id:
                return result
        return None

    def get_failure(self, request_id: str) -> Optional[FailedGeneration]:
        for failure in reversed(self._failed):
            if failure.request.id == request_id:
                return failure
        return None

    def get_queue_status(self) -> QueueStatus:
        return QueueStatus(
            pending=tuple(self._pending),
            processing=tuple(self._processing.values()),
            completed=tuple(self._completed),
            failed=tuple(self._failed),
        )

    async def cancel_request(self, request_id: str) -> bool:
        """
        Cancel a pending or processing request. It ends in failed with kind
        "cancelled". Returns False when the request is unknown or already terminal.
        """
        async with self._lock:
            for index, request in enumerate(self._pending):
                if request.id == request_id:
                    del self._pending[index]
                    self._record_failure(request, *_cancellation(request_id))
                    self._dispatch()
                    logger.info(f"🛑 Cancelled pending request {request_id}")
                    return True

            request = self._processing.pop(request_id, None)
            if request is None:
                return False
            task = self._tasks.pop(request_id, None)
            self._record_failure(request, *_cancellation(request_id))
            self._dispatch()

        if task is not None:
            task.cancel()
        logger.info(f"🛑 Cancelled processing request {request_id}")
        return True

    async def clear_history(self) -> Dict[str, int]:
        """Drop completed and failed records; returns how many of each were removed"""
        async with self._lock:
            cleared = {"completed": len(self._completed), "failed": len(self._failed)}
            self._completed.clear()
            self._failed.clear()
        logger.info(f"🧹 Cleared queue history: {cleared}")
        return cleared

    async def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait until nothing is pending or processing. False when the timeout expires first."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def shutdown(self) -> None:
        """Cancel in-flight work; used when the hosting app stops"""
        async with self._lock:
            tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _next_pending_index(self) -> int:
        if not self.settings.priority_ordering:
            return 0
        best = 0
        for index, request in enumerate(self._pending):
            if request.priority.rank < self._pending[best].priority.rank:
                best = index
        return best

    def _dispatch(self) -> None:
        """Start pending requests while capacity allows. Caller holds the lock."""
        while self._pending and len(self._processing) < self.max_concurrent:
            request = self._pending.pop(self._next_pending_index())
            self._processing[request.id] = request
            self._tasks[request.id] = asyncio.create_task(
                self._run(request), name=f"wallet-generation-{request.id}"
            )
            self.peak_processing = max(self.peak_processing, len(self._processing))
            logger.debug(f"Started request {request.id} ({len(self._processing)}/{self.max_concurrent} processing)")

        if not self._pending and not self._processing:
            self._idle.set()

    def _record_failure(self, request: WalletGenerationRequest, error: str, kind: str) -> None:
        self._failed.append(FailedGeneration(
            request=request,
            error=error,
            error_kind=kind,
            failed_at=isoformat(self.clock()),
        ))

    async def _finish(self, request: WalletGenerationRequest,
                      result: Optional[WalletGenerationResult] = None,
                      error: Optional[str] = None,
                      kind: str = "internal") -> bool:
        """Move a processing request to its terminal bucket; no-op if it already left processing"""
        async with self._lock:
            if self._processing.pop(request.id, None) is None:
                return False
            self._tasks.pop(request.id, None)
            if result is not None:
                self._completed.append(result)
            else:
                self._record_failure(request, error or "Unknown error", kind)
            self._dispatch()
        return True

    async def _run(self, request: WalletGenerationRequest) -> None:
        started = time.perf_counter()
        timeout = self.settings.request_timeout
        logger.info(f"🎫 Processing request {request.id}")
        try:
            if timeout:
                result = await asyncio.wait_for(self._process(request, started), timeout)
            else:
                result = await self._process(request, started)
        except asyncio.TimeoutError:
            logger.error(f"❌ Request {request.id} timed out after {timeout}s")
            await self._finish(request, error=f"Request timed out after {timeout}s", kind="timeout")
        except asyncio.CancelledError:
            error, kind = _cancellation(request.id)
            await self._finish(request, error=error, kind=kind)
        except WalletChainError as e:
            logger.error(f"❌ Request {request.id} failed: {e.message}")
            await self._finish(request, error=e.message, kind=e.kind)
        except Exception as e:
            logger.exception(f"❌ Request {request.id} failed unexpectedly")
            await self._finish(request, error=str(e) or e.__class__.__name__, kind="internal")
        else:
            if await self._finish(request, result=result):
                logger.info(f"✅ Completed request {request.id} in {result.processing_time:.1f}ms")

    async def _process(self, request: WalletGenerationRequest, started: float) -> WalletGenerationResult:
        card = await self.builder.build(request.card_id, request.customer_id)

        valid, errors = validate_card_data(card, self.settings.barcode_namespace)
        if not valid:
            raise ValidationError(errors)

        results: Dict[Platform, PlatformResult] = {}
        for platform in request.types:
            results[platform] = await self._generate_platform(card, platform)

        return WalletGenerationResult(
            request_id=request.id,
            success=all(result.success for result in results.values()),
            results=results,
            unified_data=card,
            generated_at=isoformat(self.clock()),
            processing_time=round((time.perf_counter() - started) * 1000, 3),
        )

    async def _generate_platform(self, card: UnifiedCardData, platform: Platform) -> PlatformResult:
        try:
            descriptor = self.encoders[platform].encode(card)
        except EncodingError as e:
            logger.warning(f"{platform.value} encoding failed for {card.serial_number}: {e.message}")
            return PlatformResult(platform, success=False, error=e.message, error_kind=e.kind)
        except Exception as e:
            message = f"{platform.value} encoding failed: {str(e) or e.__class__.__name__}"
            logger.exception(f"❌ {platform.value} encoder crashed for {card.serial_number}")
            return PlatformResult(platform, success=False, error=message, error_kind=EncodingError.kind)

        try:
            reference = await self.retry_policy.run(
                lambda: self.artifact_store.store(card.serial_number, platform, descriptor),
                retry_on=(PersistenceError,),
                description=f"Storing {platform.value} artifact for {card.serial_number}",
            )
        except WalletChainError as e:
            # PersistenceError after the last attempt, or ArtifactPackagingError straight away
            return PlatformResult(platform, success=False, error=e.message, error_kind=e.kind)

        return PlatformResult(platform, success=True, reference=reference)
