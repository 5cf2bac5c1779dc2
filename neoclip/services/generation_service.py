"""
Generation Service

Orchestrates a video generation end to end: input validation, quota
reservation, provider submission with fallback, task persistence, and
client-driven polling until the task reaches a terminal state.
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from traceback import format_exc
from typing import Callable, List, Optional

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, Field

from neoclip.config import get_settings
from neoclip.models.firestore import GENERATIONS_COLLECTION
from neoclip.models.generations import MAX_PROMPT_LENGTH, GenerationTask
from neoclip.models.shared import FailureReason, GenerationStatus, Tier
from neoclip.services.errors import (
    AllProvidersFailedError,
    GenerationNotFoundError,
    InvalidInputError,
    QuotaExceededError,
    UserNotFoundError,
)
from neoclip.services.firestore_service import get_firestore_service
from neoclip.services.quota_ledger import QuotaLedger
from neoclip.services.video.poller import PollOutcome, TaskPoller
from neoclip.services.video.registry import (
    FallbackChainSelector,
    build_adapters,
    tier_parameters,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TRACKING_WARNING = (
    "Generation started but could not be saved; status updates may be unavailable"
)
POLL_SAVE_WARNING = "Status could not be saved; it will be refreshed on the next poll"


class SubmitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: Optional[str] = None
    user_id: Optional[str] = Field(None, alias="userId")
    tier: str = "free"
    length: int = 10


class SubmitResponse(BaseModel):
    generation_id: str
    provider_task_id: str
    provider: str
    provider_name: str
    status: GenerationStatus = GenerationStatus.PROCESSING
    poll_url: str
    tier: Tier
    duration: int
    resolution: str
    remaining_free: Optional[int] = None
    warning: Optional[str] = None
    message: str = "Video generation started. Poll poll_url for status."


class PollResponse(BaseModel):
    generation_id: str
    status: GenerationStatus
    progress: int = 0
    video_url: Optional[str] = None
    error: Optional[str] = None
    error_reason: Optional[FailureReason] = None
    warning: Optional[str] = None
    provider_name: Optional[str] = None
    tier: Optional[Tier] = None
    duration: Optional[int] = None
    generation_time: Optional[str] = None
    message: Optional[str] = None


class GenerationSummary(BaseModel):
    generation_id: str
    prompt: str
    status: GenerationStatus
    tier: Tier
    provider_name: str
    video_url: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime


class UserStatusResponse(BaseModel):
    user_id: str
    free_used: int
    free_limit: Optional[int]
    free_remaining: Optional[int]
    paid_used: int
    paid_limit: Optional[int]
    resets_at: datetime
    days_until_reset: int
    total_videos_generated: int
    generations: List[GenerationSummary]


def poll_url_for(generation_id: str) -> str:
    return f"/generation/poll/{generation_id}"


class GenerationService:
    """Submits generations, polls their providers, and reports user status."""

    def __init__(
        self,
        selector: FallbackChainSelector,
        ledger: QuotaLedger,
        firestore_service=None,
        poller: Optional[TaskPoller] = None,
        clock: Optional[Callable[[], datetime]] = None,
        history_limit: int = 20,
    ):
        self.selector = selector
        self.ledger = ledger
        self.firestore_service = firestore_service or ledger.firestore_service
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.poller = poller or TaskPoller(selector, clock=self.clock)
        self.history_limit = history_limit

    # Submission
    def _validate(self, request: SubmitRequest) -> Tier:
        if not request.prompt or not request.prompt.strip():
            raise InvalidInputError("Prompt is required")
        if len(request.prompt) > MAX_PROMPT_LENGTH:
            raise InvalidInputError(
                f"Prompt must be at most {MAX_PROMPT_LENGTH} characters"
            )
        if not request.user_id:
            raise InvalidInputError("User ID is required")
        if request.length <= 0:
            raise InvalidInputError("Length must be a positive number of seconds")
        try:
            return Tier(request.tier)
        except ValueError:
            raise InvalidInputError(f"Unknown tier: {request.tier}")

    async def submit(self, request: SubmitRequest) -> SubmitResponse:
        """
        Start a generation.

        Raises:
            InvalidInputError: missing or malformed input, nothing consumed
            UserNotFoundError: the user has no quota record
            QuotaExceededError: the tier's monthly limit is reached
            AllProvidersFailedError: no provider accepted the job
        """
        tier = self._validate(request)
        prompt = request.prompt.strip()
        user_id = request.user_id
        duration, resolution = tier_parameters(tier.value, request.length)
        generation_id = str(uuid.uuid4())

        logger.info(
            f"New generation {generation_id}: user={user_id}, tier={tier.value}, "
            f"duration={duration}s, resolution={resolution}"
        )

        decision = await self.ledger.check_and_reserve(user_id, tier, generation_id)
        if not decision.allowed:
            if tier == Tier.FREE:
                message = (
                    f"You've used all {decision.limit} free clips this month. "
                    "Upgrade to Pro for more HD clips!"
                )
            else:
                message = f"You've used all {decision.limit} clips this month."
            raise QuotaExceededError(
                message,
                {
                    "used": decision.used,
                    "limit": decision.limit,
                    "resets_at": decision.resets_at.isoformat(),
                },
            )

        try:
            submission = await run_in_threadpool(
                self.selector.submit_with_fallback,
                prompt,
                tier.value,
                duration,
                resolution,
            )
        except AllProvidersFailedError:
            await self.ledger.rollback(user_id, tier, generation_id)
            raise

        now = self.clock()
        task = GenerationTask(
            generation_id=generation_id,
            user_id=user_id,
            provider_task_id=submission.provider_task_id,
            provider=submission.provider,
            provider_name=submission.provider_name,
            prompt=prompt,
            tier=tier,
            duration=duration,
            resolution=resolution,
            status=GenerationStatus.PROCESSING,
            cost=submission.cost,
            created_at=now,
            started_at=now,
        )

        warning = None
        try:
            await self.firestore_service.create_document(
                collection_name=GENERATIONS_COLLECTION,
                document_data=task.model_dump(exclude_none=True),
                document_id=generation_id,
            )
        except Exception as e:
            # The provider job keeps running; only status tracking is lost
            logger.error(
                f"Failed to save generation {generation_id} "
                f"({submission.provider}:{submission.provider_task_id}): "
                f"{str(e)}\n{format_exc()}"
            )
            warning = TRACKING_WARNING
        else:
            await self.ledger.commit(user_id, tier, generation_id)

        logger.info(
            f"Generation {generation_id} started with {submission.provider_name}"
        )
        return SubmitResponse(
            generation_id=generation_id,
            provider_task_id=submission.provider_task_id,
            provider=submission.provider,
            provider_name=submission.provider_name,
            poll_url=poll_url_for(generation_id),
            tier=tier,
            duration=duration,
            resolution=resolution,
            remaining_free=decision.remaining if tier == Tier.FREE else None,
            warning=warning,
        )

    # Polling
    def _poll_response(
        self, task: GenerationTask, outcome: Optional[PollOutcome] = None
    ) -> PollResponse:
        status = GenerationStatus(outcome.status if outcome else task.status)
        response = PollResponse(
            generation_id=task.generation_id,
            status=status,
            provider_name=task.provider_name,
            tier=task.tier,
            duration=task.duration,
        )

        if status == GenerationStatus.COMPLETED:
            response.progress = 100
            response.video_url = outcome.video_url if outcome else task.video_url
            if task.total_time_ms is not None:
                response.generation_time = f"{task.total_time_ms / 1000:.1f}s"
            return response

        if status == GenerationStatus.FAILED:
            response.error = (outcome.error if outcome else task.error) or "Generation failed"
            reason = outcome.error_reason if outcome else task.error_reason
            response.error_reason = FailureReason(reason) if reason else None
            return response

        elapsed = max(0, int((self.clock() - task.created_at).total_seconds()))
        response.progress = outcome.progress if outcome else task.progress
        response.warning = outcome.warning if outcome else None
        if status == GenerationStatus.QUEUED:
            response.message = "Video is queued for processing..."
        else:
            response.message = f"Generating video... ({elapsed}s elapsed)"
        return response

    async def _load_task(self, generation_id: str) -> Optional[GenerationTask]:
        return await self.firestore_service.get_document(
            collection_name=GENERATIONS_COLLECTION,
            document_id=generation_id,
            model_class=GenerationTask,
        )

    async def _finalize(self, task: GenerationTask, outcome: PollOutcome):
        """
        Move the task to its terminal state unless another poll already did.

        Returns:
            (terminal task, whether this call performed the transition)
        """
        now = self.clock()

        def mutate(current):
            if current is None:
                return None
            if GenerationStatus(current["status"]).is_terminal:
                return None

            started_at = current.get("started_at") or current.get("created_at")
            updates = {
                "status": outcome.status.value,
                "completed_at": now,
                "total_time_ms": max(0, int((now - started_at).total_seconds() * 1000)),
            }
            if outcome.status == GenerationStatus.COMPLETED:
                updates.update(progress=100, video_url=outcome.video_url)
            else:
                updates.update(
                    progress=0,
                    error=outcome.error,
                    error_reason=outcome.error_reason.value if outcome.error_reason else None,
                )
            return updates

        updated = await self.firestore_service.update_in_transaction(
            GENERATIONS_COLLECTION, task.generation_id, mutate
        )
        if updated is None:
            return await self._load_task(task.generation_id), False
        return GenerationTask(**updated), True

    async def _release_quota(self, task: GenerationTask) -> None:
        # False means an earlier attempt already released it; either way the
        # reservation is settled
        await self.ledger.rollback(task.user_id, task.tier, task.generation_id)
        await self.firestore_service.update_document(
            collection_name=GENERATIONS_COLLECTION,
            document_id=task.generation_id,
            update_data={"quota_rolled_back": True},
        )

    async def _record_progress(self, task: GenerationTask, outcome: PollOutcome) -> None:
        if outcome.status == task.status and outcome.progress == task.progress:
            return

        def mutate(current):
            if current is None or GenerationStatus(current["status"]).is_terminal:
                return None
            return {"status": outcome.status.value, "progress": outcome.progress}

        await self.firestore_service.update_in_transaction(
            GENERATIONS_COLLECTION, task.generation_id, mutate
        )

    async def poll(self, generation_id: str) -> PollResponse:
        """
        Report a generation's status, contacting its provider only while the
        task is still running.

        Raises:
            GenerationNotFoundError: unknown generation id
        """
        task = await self._load_task(generation_id)
        if task is None:
            raise GenerationNotFoundError(
                "Generation not found", {"generation_id": generation_id}
            )

        if task.is_terminal:
            if task.status == GenerationStatus.FAILED and not task.quota_rolled_back:
                # A previous poll failed between finalizing and releasing quota
                try:
                    await self._release_quota(task)
                except Exception as e:
                    logger.error(
                        f"Failed to release quota for {generation_id}: {str(e)}\n{format_exc()}"
                    )
            logger.info(f"Returning stored {task.status} generation {generation_id}")
            return self._poll_response(task)

        outcome = await run_in_threadpool(self.poller.check, task)

        if not outcome.is_terminal:
            if outcome.warning:
                # Transient provider failure: nothing changes
                return self._poll_response(task, outcome)
            try:
                await self._record_progress(task, outcome)
            except Exception as e:
                logger.error(
                    f"Failed to save progress for {generation_id}: {str(e)}\n{format_exc()}"
                )
            return self._poll_response(task, outcome)

        try:
            final_task, transitioned = await self._finalize(task, outcome)
            if final_task is None:
                raise GenerationNotFoundError(
                    "Generation not found", {"generation_id": generation_id}
                )

            if final_task.status == GenerationStatus.FAILED:
                await self._release_quota(final_task)
            elif transitioned:
                await self.ledger.record_completion(final_task.user_id)
        except GenerationNotFoundError:
            raise
        except Exception as e:
            logger.error(
                f"Failed to save result for {generation_id}: {str(e)}\n{format_exc()}"
            )
            response = self._poll_response(task, outcome)
            response.warning = POLL_SAVE_WARNING
            return response

        if transitioned:
            logger.info(f"Generation {generation_id} finished: {final_task.status}")
        return self._poll_response(final_task)

    # Status
    async def get_status(self, user_id: str) -> UserStatusResponse:
        """
        Get the user's remaining quota and recent generation history.

        Raises:
            UserNotFoundError: the user has no quota record
        """
        quota = await self.ledger.maybe_reset_period(user_id)
        if quota is None:
            raise UserNotFoundError("User not found", {"user_id": user_id})

        generations = await self.firestore_service.query_collection(
            collection_name=GENERATIONS_COLLECTION,
            filters=[("user_id", "==", user_id)],
            model_class=GenerationTask,
        )
        # Sort in Python to avoid needing a composite index
        generations.sort(key=lambda x: x.created_at, reverse=True)

        free_limit = self.ledger.policy.limit_for(Tier.FREE.value)
        seconds_left = (quota.resets_at - self.clock()).total_seconds()

        return UserStatusResponse(
            user_id=user_id,
            free_used=quota.free_used,
            free_limit=free_limit,
            free_remaining=(
                max(0, free_limit - quota.free_used) if free_limit is not None else None
            ),
            paid_used=quota.paid_used,
            paid_limit=self.ledger.policy.limit_for(Tier.PAID.value),
            resets_at=quota.resets_at,
            days_until_reset=max(0, math.ceil(seconds_left / 86400)),
            total_videos_generated=quota.total_videos_generated,
            generations=[
                GenerationSummary(
                    generation_id=generation.generation_id,
                    prompt=generation.prompt,
                    status=generation.status,
                    tier=generation.tier,
                    provider_name=generation.provider_name,
                    video_url=generation.video_url,
                    error=generation.error,
                    created_at=generation.created_at,
                )
                for generation in generations[: self.history_limit]
            ],
        )


@lru_cache()
def get_generation_service() -> GenerationService:
    """Build the service graph once from the immutable settings."""
    settings = get_settings()
    selector = FallbackChainSelector(build_adapters(settings), settings.provider_chains)
    ledger = QuotaLedger(get_firestore_service(), settings.quota)
    return GenerationService(selector, ledger)
