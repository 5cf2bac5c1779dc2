import logging
from traceback import format_exc
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from neoclip.config import Settings, get_settings
from neoclip.services.generation_service import (
    GenerationService,
    get_generation_service,
)
from neoclip.services.video.common import ProviderError, ProviderNotConfiguredError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Create a router for diagnostics
debug_router = APIRouter()


class ProviderTestRequest(BaseModel):
    prompt: str = "A beautiful sunset over mountains"


@debug_router.get("/providers")
async def get_providers(
    service: Annotated[GenerationService, Depends(get_generation_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Dict[str, Any]:
    """Show which providers are configured (key prefixes only) and the fallback chains."""
    return {
        "environment": settings.env,
        "storage_backend": settings.storage_backend,
        "quota": settings.quota.model_dump(),
        **service.selector.describe(),
    }


@debug_router.post("/providers/{provider_key}/test")
async def check_provider(
    provider_key: str,
    service: Annotated[GenerationService, Depends(get_generation_service)],
    request: Optional[ProviderTestRequest] = None,
) -> Dict[str, Any]:
    """Send one create-task request to a provider and return its raw response."""
    request = request or ProviderTestRequest()
    adapter = service.selector.get_adapter(provider_key)
    if adapter is None:
        raise HTTPException(
            status_code=400,
            detail={
                "error": f"Unknown provider: {provider_key}",
                "providers": sorted(service.selector.adapters),
            },
        )

    try:
        return await run_in_threadpool(adapter.check_connection, request.prompt)
    except ProviderNotConfiguredError as e:
        raise HTTPException(status_code=400, detail={"error": e.message})
    except ProviderError as e:
        logger.error(f"Provider test for {provider_key} failed: {e.message}\n{format_exc()}")
        raise HTTPException(
            status_code=500, detail={"provider": provider_key, "error": e.message}
        )
