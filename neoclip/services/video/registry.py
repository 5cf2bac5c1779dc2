import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from neoclip.config import Settings
from neoclip.models.shared import Tier
from neoclip.services.errors import AllProvidersFailedError
from neoclip.services.video.common import (
    ProviderError,
    ProviderSubmission,
    VideoProviderAdapter,
)
from neoclip.services.video.fal import FalMinimaxAdapter
from neoclip.services.video.piapi import PiapiLumaAdapter
from neoclip.services.video.replicate import ReplicateWanAdapter

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Cost optimized: cheapest provider first within each tier
FALLBACK_CHAINS: Dict[str, Tuple[str, ...]] = {
    Tier.FREE.value: ("wan", "luma"),
    Tier.PAID.value: ("luma", "fal"),
}

# Duration cap in seconds and output resolution per tier
TIER_PARAMETERS: Dict[str, Tuple[int, str]] = {
    Tier.FREE.value: (10, "768p"),
    Tier.PAID.value: (30, "1080p"),
}


def tier_parameters(tier: str, length: int) -> Tuple[int, str]:
    """Clamp the requested length and pick the resolution for a tier."""
    max_seconds, resolution = TIER_PARAMETERS.get(tier, TIER_PARAMETERS[Tier.FREE.value])
    return max(1, min(length, max_seconds)), resolution


def build_adapters(settings: Settings) -> Dict[str, VideoProviderAdapter]:
    """Create the static adapter table from the immutable settings."""
    credentials = settings.credentials
    timeouts = {
        "submit_timeout": settings.submit_timeout_seconds,
        "poll_timeout": settings.poll_timeout_seconds,
    }
    adapters = [
        ReplicateWanAdapter(credentials.replicate_api_key, **timeouts),
        PiapiLumaAdapter(credentials.piapi_api_key, **timeouts),
        FalMinimaxAdapter(credentials.fal_api_key, **timeouts),
    ]
    return {adapter.key: adapter for adapter in adapters}


class FallbackChainSelector:
    """Tries the providers of a tier's chain in order until one accepts the job."""

    def __init__(
        self,
        adapters: Mapping[str, VideoProviderAdapter],
        chains: Optional[Mapping[str, Sequence[str]]] = None,
    ):
        self.adapters = dict(adapters)
        self.chains = {
            tier: tuple(chain) for tier, chain in (chains or FALLBACK_CHAINS).items()
        }
        for tier, chain in self.chains.items():
            unknown = [key for key in chain if key not in self.adapters]
            if unknown:
                raise ValueError(f"Unknown providers in {tier} chain: {unknown}")

    def chain_for(self, tier: str) -> List[str]:
        return list(self.chains.get(tier, self.chains.get(Tier.FREE.value, ())))

    def get_adapter(self, key: str) -> Optional[VideoProviderAdapter]:
        return self.adapters.get(key)

    def submit_with_fallback(
        self, prompt: str, tier: str, duration: int, resolution: str
    ) -> ProviderSubmission:
        """
        Submit to the first provider in the tier's chain that accepts the job.

        Providers without an API key are skipped and not counted as failures.

        Raises:
            AllProvidersFailedError: when the chain is exhausted
        """
        chain = self.chain_for(tier)
        logger.info(
            f"Creating task: tier={tier}, duration={duration}s, "
            f"resolution={resolution}, chain=[{', '.join(chain)}]"
        )

        attempts: List[Tuple[str, str]] = []
        last_error: Optional[ProviderError] = None

        for key in chain:
            adapter = self.adapters[key]
            if not adapter.is_configured():
                logger.warning(f"[{adapter.name}] Skipping - no API key")
                continue

            try:
                return adapter.submit(prompt, duration, resolution)
            except ProviderError as e:
                logger.error(f"[{adapter.name}] Failed: {e.message}")
                attempts.append((key, e.message))
                last_error = e

        raise AllProvidersFailedError(tier, attempts, last_error)

    def describe(self) -> Dict[str, Any]:
        """Provider configuration and fallback chains, for diagnostics."""
        return {
            "providers": {
                key: adapter.describe() for key, adapter in self.adapters.items()
            },
            "fallback_chains": {
                tier: [
                    f"{self.adapters[key].name} (${self.adapters[key].cost})"
                    for key in chain
                ]
                for tier, chain in self.chains.items()
            },
        }
