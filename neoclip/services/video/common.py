"""
Video Provider Adapters

Each adapter maps one vendor's API onto a common contract: build the
request body, extract the task id, normalize the status, and extract the
result URL or error message. Response paths are declared per adapter as
ordered tuples of known response shapes, most-recent-first, so that a new
vendor shape is added to the front of the list instead of replacing the
old one.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from neoclip.models.shared import GenerationStatus
from neoclip.services.http_client import (
    HttpResponse,
    HttpTransportError,
    make_request,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ResponsePath = Tuple[Union[str, int], ...]


class ProviderError(Exception):
    """Raised when a provider cannot accept or report on a generation."""

    def __init__(
        self, provider: str, message: str, status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.status_code = status_code


class ProviderNotConfiguredError(ProviderError):
    """No API key is configured for the provider."""


class ProviderAuthError(ProviderError):
    """The provider rejected our credentials (HTTP 401/403)."""


class ProviderValidationError(ProviderError):
    """The provider rejected the request body (HTTP 422)."""


class ProviderRateLimitError(ProviderError):
    """The provider is rate limiting us (HTTP 429)."""


class ProviderUnavailableError(ProviderError):
    """Network failure, timeout, unexpected status, or malformed response."""


class ProviderSubmission(BaseModel):
    """A task accepted by a provider."""

    provider_task_id: str
    provider: str
    provider_name: str
    cost: float
    status_url: str


class ProviderPollResult(BaseModel):
    """Normalized view of a provider status response."""

    status: GenerationStatus
    progress: int = 0
    video_url: Optional[str] = None
    error: Optional[str] = None


def dig(data: Any, path: ResponsePath) -> Any:
    """Follow a path of dict keys and list indexes, returning None on a miss."""
    current = data
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
        elif not isinstance(current, dict):
            return None
        current = current[step] if isinstance(step, int) else current.get(step)
        if current is None:
            return None
    return current


def first_string(data: Any, paths: Sequence[ResponsePath]) -> Optional[str]:
    """Return the first non-empty string found along the given paths."""
    for path in paths:
        value = dig(data, path)
        if isinstance(value, str) and value.strip():
            return value
    return None


def first_message(data: Any, paths: Sequence[ResponsePath]) -> Optional[str]:
    """Like first_string, but also accepts nested {"message": ...} error objects."""
    for path in paths:
        value = dig(data, path)
        if isinstance(value, dict):
            value = value.get("message") or value.get("detail") or value.get("raw_message")
        if isinstance(value, str) and value.strip():
            return value
    return None


class VideoProviderAdapter(ABC):
    """Abstract base class for video generation provider adapters."""

    key: str
    name: str
    cost: float
    create_url: str
    auth_scheme: str = "Bearer"

    # Vendor status string (lower-case) -> normalized status
    status_map: Dict[str, GenerationStatus] = {}

    task_id_paths: Tuple[ResponsePath, ...] = (("id",),)
    status_paths: Tuple[ResponsePath, ...] = (("status",),)
    # Known response shapes, most-recent-first
    result_paths: Tuple[ResponsePath, ...] = ()
    error_paths: Tuple[ResponsePath, ...] = (("error",), ("message",))

    def __init__(
        self,
        api_key: Optional[str],
        submit_timeout: float = 30.0,
        poll_timeout: float = 15.0,
    ):
        self.api_key = api_key
        self.submit_timeout = submit_timeout
        self.poll_timeout = poll_timeout

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"{self.auth_scheme} {self.api_key}"}

    @abstractmethod
    def build_body(self, prompt: str, duration: int, resolution: str) -> Dict[str, Any]:
        """Build the provider-specific create-task request body."""
        pass

    @abstractmethod
    def status_url(self, provider_task_id: str) -> str:
        """URL of the provider's get-task-status endpoint."""
        pass

    def result_url(self, provider_task_id: str) -> Optional[str]:
        """URL of a separate result endpoint, for providers that have one."""
        return None

    # Extraction
    def extract_task_id(self, data: Dict[str, Any]) -> Optional[str]:
        for path in self.task_id_paths:
            value = dig(data, path)
            if value is not None and str(value).strip():
                return str(value)
        return None

    def normalize_status(self, raw_status: Optional[str]) -> GenerationStatus:
        """Map a vendor status string, defaulting to processing when unknown."""
        if not raw_status:
            return GenerationStatus.PROCESSING
        return self.status_map.get(raw_status.strip().lower(), GenerationStatus.PROCESSING)

    def extract_status(self, data: Dict[str, Any]) -> GenerationStatus:
        return self.normalize_status(first_string(data, self.status_paths))

    def extract_result(self, data: Dict[str, Any]) -> Optional[str]:
        return first_string(data, self.result_paths)

    def extract_error(self, data: Dict[str, Any]) -> Optional[str]:
        return first_message(data, self.error_paths)

    def extract_progress(self, data: Dict[str, Any], status: GenerationStatus) -> int:
        if status == GenerationStatus.COMPLETED:
            return 100
        if status == GenerationStatus.QUEUED:
            return 15
        return 50

    # Requests
    def _raise_for_status(self, response: HttpResponse, action: str) -> None:
        if response.ok:
            return

        status_code = response.status_code
        detail = (
            f"{self.name} {action} failed with HTTP {status_code}: "
            f"{response.error} | response: {response.snippet}"
        )
        if status_code in (401, 403):
            raise ProviderAuthError(self.key, f"Auth error: {detail}", status_code)
        if status_code == 422:
            raise ProviderValidationError(
                self.key, f"Validation error: {detail}", status_code
            )
        if status_code == 429:
            raise ProviderRateLimitError(self.key, f"Rate limited: {detail}", status_code)
        raise ProviderUnavailableError(self.key, detail, status_code)

    def _send(self, method: str, url: str, body=None, timeout: float = 30.0) -> HttpResponse:
        try:
            return make_request(
                method, url, headers=self.auth_headers(), json_body=body, timeout=timeout
            )
        except HttpTransportError as e:
            raise ProviderUnavailableError(self.key, f"{self.name}: {str(e)}") from e

    def submit(self, prompt: str, duration: int, resolution: str) -> ProviderSubmission:
        """Create a generation task with the provider."""
        if not self.is_configured():
            raise ProviderNotConfiguredError(self.key, f"No API key for {self.name}")

        logger.info(
            f"[{self.name}] Creating task with duration={duration}s, resolution={resolution}"
        )
        body = self.build_body(prompt, duration, resolution)
        response = self._send("POST", self.create_url, body, self.submit_timeout)
        logger.info(f"[{self.name}] Response: HTTP {response.status_code}")
        self._raise_for_status(response, "create task")

        provider_task_id = self.extract_task_id(response.data)
        if not provider_task_id:
            raise ProviderUnavailableError(
                self.key,
                f"No task ID from {self.name} (HTTP {response.status_code}): "
                f"{response.snippet}",
                response.status_code,
            )

        logger.info(f"[{self.name}] Task created: {provider_task_id}")
        return ProviderSubmission(
            provider_task_id=provider_task_id,
            provider=self.key,
            provider_name=self.name,
            cost=self.cost,
            status_url=self.status_url(provider_task_id),
        )

    def poll_status(self, provider_task_id: str) -> ProviderPollResult:
        """
        Query the provider for the task's current status.

        A completed result may carry no video_url; deciding what that means
        is left to the caller.

        Raises:
            ProviderNotConfiguredError: when no API key is configured
            ProviderAuthError: on HTTP 401/403
            ProviderUnavailableError: on network errors and other failures
        """
        if not self.is_configured():
            raise ProviderNotConfiguredError(self.key, f"No API key for {self.name}")

        response = self._send(
            "GET", self.status_url(provider_task_id), timeout=self.poll_timeout
        )
        logger.info(f"[{self.name}] Status: HTTP {response.status_code}")
        self._raise_for_status(response, "status check")

        data = response.data
        status = self.extract_status(data)
        progress = self.extract_progress(data, status)

        if status == GenerationStatus.COMPLETED:
            video_url = self.extract_result(data)
            separate_url = self.result_url(provider_task_id)
            if not video_url and separate_url:
                logger.info(f"[{self.name}] Fetching result separately: {separate_url}")
                result = self._send("GET", separate_url, timeout=self.poll_timeout)
                self._raise_for_status(result, "result fetch")
                video_url = self.extract_result(result.data)
            if not video_url:
                logger.error(
                    f"[{self.name}] Completed but no video URL in response: "
                    f"{response.snippet}"
                )
            return ProviderPollResult(status=status, progress=100, video_url=video_url)

        if status == GenerationStatus.FAILED:
            return ProviderPollResult(
                status=status,
                progress=0,
                error=self.extract_error(data) or "Generation failed",
            )

        return ProviderPollResult(status=status, progress=progress)

    def describe(self) -> Dict[str, Any]:
        """Configuration summary with the API key masked."""
        return {
            "key": self.key,
            "name": self.name,
            "configured": self.is_configured(),
            "key_prefix": f"{self.api_key[:8]}..." if self.api_key else None,
            "endpoint": self.create_url,
            "cost": self.cost,
        }

    def check_connection(self, prompt: str) -> Dict[str, Any]:
        """
        Send a single create-task request and report what came back.

        The response is returned whatever its status so that auth and
        request-shape problems can be inspected.

        Raises:
            ProviderNotConfiguredError: when no API key is configured
            ProviderUnavailableError: on network errors
        """
        if not self.is_configured():
            raise ProviderNotConfiguredError(self.key, f"No API key for {self.name}")

        logger.info(f"[{self.name}] Sending test create request")
        body = self.build_body(prompt, 10, "768p")
        response = self._send("POST", self.create_url, body, self.submit_timeout)
        logger.info(f"[{self.name}] Test response: HTTP {response.status_code}")

        return {
            "provider": self.key,
            "test": "create_task",
            "success": response.ok,
            "status": response.status_code,
            "data": response.data or response.snippet,
            "analysis": {
                "has_task_id": bool(self.extract_task_id(response.data)),
                "has_error": not response.ok or bool(self.extract_error(response.data)),
            },
        }
