import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import BaseModel

from neoclip.models.generations import GenerationTask
from neoclip.models.shared import FailureReason, GenerationStatus
from neoclip.services.video.common import (
    ProviderAuthError,
    ProviderError,
    ProviderNotConfiguredError,
)
from neoclip.services.video.registry import FallbackChainSelector

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

RESULT_NOT_FOUND_MESSAGE = (
    "Video completed but result not found in provider response"
)


class PollOutcome(BaseModel):
    """Result of checking one generation task against its provider."""

    status: GenerationStatus
    progress: int = 0
    video_url: Optional[str] = None
    error: Optional[str] = None
    error_reason: Optional[FailureReason] = None
    # Set when the provider could not be reached; the status is the last known one
    warning: Optional[str] = None
    # True when the provider was not contacted because the task was already terminal
    cached: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


def estimate_progress(created_at: datetime, now: datetime) -> int:
    """Elapsed-time progress guess used when the provider gives none."""
    elapsed_seconds = max(0, int((now - created_at).total_seconds()))
    return min(20 + elapsed_seconds // 5, 90)


class TaskPoller:
    """Checks a single generation task's provider status."""

    def __init__(
        self,
        selector: FallbackChainSelector,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.selector = selector
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _failed(self, message: str, reason: FailureReason) -> PollOutcome:
        return PollOutcome(
            status=GenerationStatus.FAILED, error=message, error_reason=reason
        )

    def check(self, task: GenerationTask) -> PollOutcome:
        """
        Poll the task's provider once.

        Terminal tasks are answered from the stored record. Network failures
        and unexpected provider responses keep the last known status and
        carry a warning instead of changing state.
        """
        status = GenerationStatus(task.status)
        if status.is_terminal:
            return PollOutcome(
                status=status,
                progress=100 if status == GenerationStatus.COMPLETED else 0,
                video_url=task.video_url,
                error=task.error,
                error_reason=task.error_reason,
                cached=True,
            )

        adapter = self.selector.get_adapter(task.provider)
        if adapter is None:
            return self._failed(
                f"Unknown provider: {task.provider}", FailureReason.PROVIDER_UNKNOWN
            )

        try:
            result = adapter.poll_status(task.provider_task_id)
        except ProviderNotConfiguredError as e:
            return self._failed(e.message, FailureReason.PROVIDER_AUTH)
        except ProviderAuthError as e:
            logger.error(f"[{adapter.name}] Authentication error while polling: {e.message}")
            return self._failed("Authentication error", FailureReason.PROVIDER_AUTH)
        except ProviderError as e:
            logger.warning(f"[{adapter.name}] Poll error: {e.message}")
            return PollOutcome(
                status=status,
                progress=max(task.progress, estimate_progress(task.created_at, self.clock())),
                warning=e.message,
            )

        logger.info(
            f"[{adapter.name}] Parsed status: {result.status.value}, progress: {result.progress}"
        )

        if result.status == GenerationStatus.COMPLETED:
            if result.video_url:
                return PollOutcome(
                    status=GenerationStatus.COMPLETED,
                    progress=100,
                    video_url=result.video_url,
                )
            logger.error(f"[{adapter.name}] Video completed but URL not found")
            return self._failed(RESULT_NOT_FOUND_MESSAGE, FailureReason.RESULT_NOT_FOUND)

        if result.status == GenerationStatus.FAILED:
            return self._failed(
                result.error or "Generation failed", FailureReason.PROVIDER_FAILED
            )

        # Reported progress never goes backwards
        return PollOutcome(status=result.status, progress=max(task.progress, result.progress))
