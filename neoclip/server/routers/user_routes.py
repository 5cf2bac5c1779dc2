import logging
from traceback import format_exc
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from neoclip.services.errors import GenerationError
from neoclip.services.generation_service import (
    GenerationService,
    UserStatusResponse,
    get_generation_service,
)
from neoclip.services.user_service import (
    RegisterRequest,
    RegisterResponse,
    UpdateUserRequest,
    UserResponse,
    UserService,
    get_user_service,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Create a router for user operations
user_router = APIRouter()


@user_router.post("/register", response_model=RegisterResponse)
async def register_user(
    request: RegisterRequest,
    service: Annotated[UserService, Depends(get_user_service)],
) -> RegisterResponse:
    """Register a user by device id or email, returning the existing user if any."""
    try:
        return await service.register(request)
    except GenerationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Failed to register user: {str(e)}\n{format_exc()}")
        raise HTTPException(
            status_code=500, detail={"error": f"Failed to register user: {str(e)}"}
        )


@user_router.get("/{user_id}/status", response_model=UserStatusResponse)
async def get_user_status(
    user_id: str,
    service: Annotated[GenerationService, Depends(get_generation_service)],
) -> UserStatusResponse:
    """Get a user's quota usage and recent generations."""
    try:
        return await service.get_status(user_id)
    except GenerationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Failed to get status for user {user_id}: {str(e)}\n{format_exc()}")
        raise HTTPException(
            status_code=500, detail={"error": f"Failed to get user status: {str(e)}"}
        )


@user_router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    service: Annotated[UserService, Depends(get_user_service)],
) -> UserResponse:
    try:
        return await service.get_user(user_id)
    except GenerationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Failed to get user {user_id}: {str(e)}\n{format_exc()}")
        raise HTTPException(
            status_code=500, detail={"error": f"Failed to get user: {str(e)}"}
        )


@user_router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    service: Annotated[UserService, Depends(get_user_service)],
) -> UserResponse:
    """Update a user's email, display name or tier."""
    try:
        return await service.update_user(user_id, request)
    except GenerationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    except Exception as e:
        logger.error(f"Failed to update user {user_id}: {str(e)}\n{format_exc()}")
        raise HTTPException(
            status_code=500, detail={"error": f"Failed to update user: {str(e)}"}
        )
