"""
User Data Models

This module contains models related to users, their profiles, and usage quotas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from neoclip.models.shared import FirestoreBaseModel, Tier


class BaseUserProfile(BaseModel):
    """Base user profile model shared between Firestore and API."""

    user_id: str = Field(..., description="Unique user identifier")
    device_id: Optional[str] = Field(None, description="Device identifier")
    email: Optional[str] = Field(None, description="User email address")
    display_name: Optional[str] = Field(None, description="Display name")
    auth_provider: str = Field("anonymous", description="How the user signed up")
    tier: Tier = Field(Tier.FREE, description="Subscribed service tier")
    created_at: datetime = Field(..., description="Profile creation timestamp")
    last_active_at: Optional[datetime] = Field(None, description="Last activity")


class BaseUserQuota(BaseModel):
    """Base user quota model shared between Firestore and API."""

    user_id: str = Field(..., description="Associated user ID")
    free_used: int = Field(0, ge=0, description="Free-tier generations this period")
    paid_used: int = Field(0, ge=0, description="Paid-tier generations this period")
    resets_at: datetime = Field(..., description="When the counters next reset")
    total_videos_generated: int = Field(
        0, ge=0, description="Completed generations over the account lifetime"
    )
    created_at: Optional[datetime] = Field(None, description="Record creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")


class BaseQuotaTransaction(BaseModel):
    """Base quota ledger entry shared between Firestore and API."""

    transaction_id: str = Field(..., description="Unique transaction identifier")
    user_id: str = Field(..., description="Associated user ID")
    tier: Tier = Field(..., description="Tier whose counter was affected")
    type: str = Field(..., description="Entry type (reserve, commit, rollback)")
    amount: int = Field(..., description="Counter change (+1, 0, -1)")
    reference_id: Optional[str] = Field(None, description="Related generation ID")
    period_resets_at: Optional[datetime] = Field(
        None, description="Reset date of the period a reservation was charged to"
    )
    created_at: datetime = Field(..., description="Entry timestamp")


class UserProfile(BaseUserProfile, FirestoreBaseModel):
    """User profile document model for users_profiles collection."""

    pass


class UserQuota(BaseUserQuota, FirestoreBaseModel):
    """User quota document model for users_quotas collection."""

    pass


class QuotaTransaction(BaseQuotaTransaction, FirestoreBaseModel):
    """Quota ledger document model for quota_transactions collection."""

    pass
