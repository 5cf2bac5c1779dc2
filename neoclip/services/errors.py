from typing import Any, Dict, List, Optional, Tuple


class GenerationError(Exception):
    """Base class for errors surfaced to API callers with an HTTP status."""

    status_code = 500

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    @property
    def detail(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class InvalidInputError(GenerationError):
    status_code = 400


class QuotaExceededError(GenerationError):
    status_code = 402


class UserNotFoundError(GenerationError):
    status_code = 404


class GenerationNotFoundError(GenerationError):
    status_code = 404


class AllProvidersFailedError(GenerationError):
    """Every provider in the fallback chain was unconfigured or failed."""

    status_code = 500

    def __init__(
        self,
        tier: str,
        attempts: List[Tuple[str, str]],
        last_error: Optional[Exception] = None,
    ):
        if last_error is not None:
            message = f"All providers failed for tier {tier}: {str(last_error)}"
        else:
            message = f"No configured providers for tier {tier}"
        super().__init__(
            message,
            {
                "attempts": [
                    {"provider": provider, "error": error} for provider, error in attempts
                ]
            },
        )
        self.tier = tier
        self.attempts = attempts
        self.last_error = last_error
