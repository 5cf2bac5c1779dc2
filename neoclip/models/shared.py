"""
Shared Data Models

This module contains shared Pydantic models, base classes, and enumerations
that are used across multiple collections or for API responses.
"""

from datetime import datetime
from enum import Enum

from google.cloud.firestore import DocumentReference
from pydantic import BaseModel, ConfigDict


class FirestoreBaseModel(BaseModel):
    """Base model for all Firestore documents with common configuration."""

    model_config = ConfigDict(
        # Allow population by field name or alias
        populate_by_name=True,
        # Convert datetime objects to timestamps for Firestore
        json_encoders={
            datetime: lambda dt: dt,  # Firestore handles datetime conversion
            DocumentReference: lambda ref: ref.path,  # Convert refs to paths
        },
        # Validate assignments
        validate_assignment=True,
        # Use enum values instead of names
        use_enum_values=True,
    )


# Enums
class Tier(str, Enum):
    """Service level enumeration."""

    FREE = "free"
    PAID = "paid"


class GenerationStatus(str, Enum):
    """Generation task status enumeration."""

    PENDING = "pending"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.COMPLETED, GenerationStatus.FAILED)


class FailureReason(str, Enum):
    """Machine-readable reason attached to failed generations."""

    PROVIDER_FAILED = "provider_failed"
    RESULT_NOT_FOUND = "result_not_found"
    PROVIDER_AUTH = "provider_auth"
    PROVIDER_UNKNOWN = "provider_unknown"


class QuotaTransactionType(str, Enum):
    """Quota ledger entry type enumeration."""

    RESERVE = "reserve"
    COMMIT = "commit"
    ROLLBACK = "rollback"
