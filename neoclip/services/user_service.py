"""
User Service

Registers anonymous (device) or email users and looks up their profile
together with their quota record.
"""

import logging
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from neoclip.models.firestore import USERS_PROFILES_COLLECTION
from neoclip.models.shared import Tier
from neoclip.models.users import UserProfile, UserQuota
from neoclip.services.errors import InvalidInputError, UserNotFoundError
from neoclip.services.generation_service import get_generation_service
from neoclip.services.quota_ledger import QuotaLedger

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_id: Optional[str] = Field(None, alias="deviceId")
    email: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    auth_provider: str = Field("anonymous", alias="authProvider")


class UpdateUserRequest(BaseModel):
    """Profile fields a client may change. Unknown fields are ignored."""

    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    tier: Optional[Tier] = None


class UserResponse(BaseModel):
    user_id: str
    device_id: Optional[str] = None
    email: Optional[str] = None
    display_name: Optional[str] = None
    auth_provider: str
    tier: str
    free_used: int = 0
    paid_used: int = 0
    total_videos_generated: int = 0
    resets_at: Optional[datetime] = None
    created_at: datetime


class RegisterResponse(BaseModel):
    is_new_user: bool
    user: UserResponse


def _user_response(profile: UserProfile, quota: Optional[UserQuota]) -> UserResponse:
    return UserResponse(
        user_id=profile.user_id,
        device_id=profile.device_id,
        email=profile.email,
        display_name=profile.display_name,
        auth_provider=profile.auth_provider,
        tier=Tier(profile.tier).value,
        free_used=quota.free_used if quota else 0,
        paid_used=quota.paid_used if quota else 0,
        total_videos_generated=quota.total_videos_generated if quota else 0,
        resets_at=quota.resets_at if quota else None,
        created_at=profile.created_at,
    )


class UserService:
    """Creates and retrieves user profiles."""

    def __init__(
        self,
        ledger: QuotaLedger,
        firestore_service=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.ledger = ledger
        self.firestore_service = firestore_service or ledger.firestore_service
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def _find_profile(self, field: str, value: str) -> Optional[UserProfile]:
        profiles = await self.firestore_service.query_collection(
            collection_name=USERS_PROFILES_COLLECTION,
            filters=[(field, "==", value)],
            limit=1,
            model_class=UserProfile,
        )
        return profiles[0] if profiles else None

    async def register(self, request: RegisterRequest) -> RegisterResponse:
        """
        Register a user, or return the existing one.

        An email match takes precedence over a device id match.

        Raises:
            InvalidInputError: neither device_id nor email was given
        """
        if not request.device_id and not request.email:
            raise InvalidInputError("Either device_id or email is required")

        existing = None
        if request.email:
            existing = await self._find_profile("email", request.email)
        if existing is None and request.device_id:
            existing = await self._find_profile("device_id", request.device_id)

        now = self.clock()

        if existing is not None:
            await self.firestore_service.update_document(
                collection_name=USERS_PROFILES_COLLECTION,
                document_id=existing.user_id,
                update_data={"last_active_at": now},
            )
            # Older profiles may predate their quota record
            quota = await self.ledger.create_quota_record(existing.user_id)
            logger.info(f"Returning existing user {existing.user_id}")
            return RegisterResponse(
                is_new_user=False, user=_user_response(existing, quota)
            )

        user_id = str(uuid.uuid4())
        profile = UserProfile(
            user_id=user_id,
            device_id=request.device_id,
            email=request.email,
            display_name=request.display_name,
            auth_provider=request.auth_provider,
            tier=Tier.FREE,
            created_at=now,
            last_active_at=now,
        )
        await self.firestore_service.create_document(
            collection_name=USERS_PROFILES_COLLECTION,
            document_data=profile.model_dump(exclude_none=True),
            document_id=user_id,
        )
        quota = await self.ledger.create_quota_record(user_id)

        logger.info(f"Registered new {request.auth_provider} user {user_id}")
        return RegisterResponse(is_new_user=True, user=_user_response(profile, quota))

    async def get_user(self, user_id: str) -> UserResponse:
        """
        Get a user's profile and current usage.

        Raises:
            UserNotFoundError: unknown user id
        """
        profile = await self.firestore_service.get_document(
            collection_name=USERS_PROFILES_COLLECTION,
            document_id=user_id,
            model_class=UserProfile,
        )
        if profile is None:
            raise UserNotFoundError("User not found", {"user_id": user_id})

        quota = await self.ledger.maybe_reset_period(user_id)
        return _user_response(profile, quota)

    async def update_user(self, user_id: str, request: UpdateUserRequest) -> UserResponse:
        """
        Change a user's editable profile fields.

        Raises:
            UserNotFoundError: unknown user id
            InvalidInputError: no editable field was given, or the email
                belongs to another user
        """
        update_data = request.model_dump(mode="json", exclude_none=True)
        if not update_data:
            raise InvalidInputError("No valid update fields provided")

        profile = await self.firestore_service.get_document(
            collection_name=USERS_PROFILES_COLLECTION,
            document_id=user_id,
            model_class=UserProfile,
        )
        if profile is None:
            raise UserNotFoundError("User not found", {"user_id": user_id})

        if request.email and request.email != profile.email:
            owner = await self._find_profile("email", request.email)
            if owner is not None and owner.user_id != user_id:
                raise InvalidInputError(
                    "Email already registered", {"email": request.email}
                )

        update_data["last_active_at"] = self.clock()
        await self.firestore_service.update_document(
            collection_name=USERS_PROFILES_COLLECTION,
            document_id=user_id,
            update_data=update_data,
        )
        logger.info(f"Updated user {user_id}: {sorted(update_data)}")

        return await self.get_user(user_id)


@lru_cache()
def get_user_service() -> UserService:
    return UserService(get_generation_service().ledger)
