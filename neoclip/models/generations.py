"""
Generation Data Models

This module contains models related to video generation tasks.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from neoclip.models.shared import FirestoreBaseModel, GenerationStatus, Tier

MAX_PROMPT_LENGTH = 500


class BaseGenerationTask(BaseModel):
    """Base generation task model shared between Firestore and API."""

    generation_id: str = Field(..., description="Unique generation identifier")
    user_id: str = Field(..., description="User who requested the generation")
    provider_task_id: str = Field(..., description="Task identifier from the provider")
    provider: str = Field(..., description="Provider key (wan, luma, fal)")
    provider_name: str = Field(..., description="Provider display name")
    prompt: str = Field(
        ..., min_length=1, max_length=MAX_PROMPT_LENGTH, description="Prompt text"
    )
    tier: Tier = Field(..., description="Service tier (free, paid)")
    duration: int = Field(..., gt=0, description="Requested duration in seconds")
    resolution: str = Field(..., description="Requested resolution")
    status: GenerationStatus = Field(
        ...,
        description="Task status (pending, queued, processing, completed, failed)",
    )
    progress: int = Field(0, ge=0, le=100, description="Progress estimate")
    video_url: Optional[str] = Field(None, description="Result URL once completed")
    error: Optional[str] = Field(None, description="Error message once failed")
    error_reason: Optional[str] = Field(None, description="Machine-readable reason")
    cost: float = Field(0.0, ge=0, description="Estimated cost in USD")
    quota_rolled_back: bool = Field(
        False, description="Whether the quota reservation was released"
    )
    created_at: datetime = Field(..., description="Task creation timestamp")
    started_at: Optional[datetime] = Field(None, description="Provider start timestamp")
    completed_at: Optional[datetime] = Field(None, description="Terminal timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")
    total_time_ms: Optional[int] = Field(None, ge=0, description="Wall time to finish")

    @model_validator(mode="after")
    def check_result_matches_status(self):
        completed = self.status == GenerationStatus.COMPLETED
        if completed and not self.video_url:
            raise ValueError("completed generations must have a video_url")
        if self.video_url and not completed:
            raise ValueError("video_url is only set on completed generations")
        return self

    @property
    def is_terminal(self) -> bool:
        return GenerationStatus(self.status).is_terminal


class GenerationTask(BaseGenerationTask, FirestoreBaseModel):
    """Generation task document model for the generations collection."""

    pass
