import os
from functools import lru_cache
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

# Load environment variables from .env file
load_dotenv()

# Environment configuration
ENV = os.getenv("NEOCLIP_ENV", "p").lower()
if ENV not in ["d", "p"]:
    raise ValueError("NEOCLIP_ENV must be either 'd' (development) or 'p' (production)")

# Storage backend: "firestore" in production, "memory" for local development
STORAGE_BACKEND = os.getenv(
    "NEOCLIP_STORAGE_BACKEND", "memory" if ENV == "d" else "firestore"
).lower()
if STORAGE_BACKEND not in ["firestore", "memory"]:
    raise ValueError("NEOCLIP_STORAGE_BACKEND must be either 'firestore' or 'memory'")

FIRESTORE_DATABASE = os.getenv("NEOCLIP_FIRESTORE_DATABASE", "(default)")

# API Keys
# NOTE: Provider keys are optional - providers without a key are skipped
REPLICATE_API_KEY = os.getenv("NEOCLIP_REPLICATE_API_KEY")
PIAPI_API_KEY = os.getenv("NEOCLIP_PIAPI_API_KEY")
FAL_API_KEY = os.getenv("NEOCLIP_FAL_API_KEY")

# Fallback chains (comma-separated provider keys, cheapest first)
FREE_PROVIDER_CHAIN = os.getenv("NEOCLIP_FREE_PROVIDER_CHAIN", "wan,luma")
PAID_PROVIDER_CHAIN = os.getenv("NEOCLIP_PAID_PROVIDER_CHAIN", "luma,fal")

# Quota limits per month
FREE_MONTHLY_LIMIT = int(os.getenv("NEOCLIP_FREE_MONTHLY_LIMIT", "10"))
PAID_MONTHLY_LIMIT = os.getenv("NEOCLIP_PAID_MONTHLY_LIMIT")

# Outbound request timeouts in seconds
SUBMIT_TIMEOUT_SECONDS = float(os.getenv("NEOCLIP_SUBMIT_TIMEOUT_SECONDS", "30"))
POLL_TIMEOUT_SECONDS = float(os.getenv("NEOCLIP_POLL_TIMEOUT_SECONDS", "15"))

# Allowed CORS origins
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "NEOCLIP_CORS_ORIGINS", "http://localhost:8080,http://localhost:8081"
    ).split(",")
    if origin.strip()
]


class ProviderCredentials(BaseModel):
    """API keys for the video generation providers."""

    model_config = ConfigDict(frozen=True)

    replicate_api_key: Optional[str] = None
    piapi_api_key: Optional[str] = None
    fal_api_key: Optional[str] = None


class QuotaPolicy(BaseModel):
    """Monthly generation limits per tier. None means the tier is unmetered."""

    model_config = ConfigDict(frozen=True)

    free_monthly_limit: Optional[int] = Field(10, ge=0)
    paid_monthly_limit: Optional[int] = Field(None, ge=0)

    def limit_for(self, tier: str) -> Optional[int]:
        if tier == "paid":
            return self.paid_monthly_limit
        return self.free_monthly_limit


class Settings(BaseModel):
    """Immutable runtime configuration, built once at startup."""

    model_config = ConfigDict(frozen=True)

    env: str = "p"
    storage_backend: str = "firestore"
    firestore_database: str = "(default)"
    credentials: ProviderCredentials = Field(default_factory=ProviderCredentials)
    quota: QuotaPolicy = Field(default_factory=QuotaPolicy)
    provider_chains: Dict[str, Tuple[str, ...]] = Field(
        default_factory=lambda: {"free": ("wan", "luma"), "paid": ("luma", "fal")}
    )
    submit_timeout_seconds: float = Field(30.0, gt=0)
    poll_timeout_seconds: float = Field(15.0, gt=0)


def _parse_chain(value: str) -> Tuple[str, ...]:
    return tuple(key.strip().lower() for key in value.split(",") if key.strip())


@lru_cache()
def get_settings() -> Settings:
    """Build the settings object from the environment."""
    return Settings(
        env=ENV,
        storage_backend=STORAGE_BACKEND,
        firestore_database=FIRESTORE_DATABASE,
        credentials=ProviderCredentials(
            replicate_api_key=REPLICATE_API_KEY,
            piapi_api_key=PIAPI_API_KEY,
            fal_api_key=FAL_API_KEY,
        ),
        quota=QuotaPolicy(
            free_monthly_limit=FREE_MONTHLY_LIMIT,
            paid_monthly_limit=int(PAID_MONTHLY_LIMIT) if PAID_MONTHLY_LIMIT else None,
        ),
        provider_chains={
            "free": _parse_chain(FREE_PROVIDER_CHAIN),
            "paid": _parse_chain(PAID_PROVIDER_CHAIN),
        },
        submit_timeout_seconds=SUBMIT_TIMEOUT_SECONDS,
        poll_timeout_seconds=POLL_TIMEOUT_SECONDS,
    )
