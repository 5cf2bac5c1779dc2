import logging
from traceback import format_exc
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from neoclip.services.errors import GenerationError
from neoclip.services.generation_service import (
    GenerationService,
    PollResponse,
    SubmitRequest,
    SubmitResponse,
    get_generation_service,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Create a router for video generation operations
generation_router = APIRouter()


@generation_router.post("/submit", response_model=SubmitResponse)
async def submit_generation(
    request: SubmitRequest,
    service: Annotated[GenerationService, Depends(get_generation_service)],
) -> SubmitResponse:
    """Reserve quota and start a video generation with the tier's provider chain."""
    try:
        return await service.submit(request)
    except GenerationError as e:
        logger.warning(f"Submission rejected ({e.status_code}): {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Failed to submit generation: {str(e)}\n{format_exc()}")
        raise HTTPException(
            status_code=500, detail={"error": f"Failed to submit generation: {str(e)}"}
        )


@generation_router.get("/poll/{generation_id}", response_model=PollResponse)
async def poll_generation(
    generation_id: str,
    service: Annotated[GenerationService, Depends(get_generation_service)],
) -> PollResponse:
    """Get the current status of a generation, refreshing it from the provider."""
    try:
        return await service.poll(generation_id)
    except GenerationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Failed to poll generation {generation_id}: {str(e)}\n{format_exc()}")
        raise HTTPException(
            status_code=500, detail={"error": f"Failed to poll generation: {str(e)}"}
        )
