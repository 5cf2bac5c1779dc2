"""
Models Package

This package contains database schema models organized by domain:
- generations.py: Video generation task models
- users.py: User profile, quota, and quota ledger models
- shared.py: Common base models and enumerations
- firestore.py: Collection names and their document models
"""

# Import all models for easy access
from neoclip.models.firestore import COLLECTION_MODELS
from neoclip.models.generations import (
    MAX_PROMPT_LENGTH,
    BaseGenerationTask,
    GenerationTask,
)
from neoclip.models.shared import (
    FailureReason,
    FirestoreBaseModel,
    GenerationStatus,
    QuotaTransactionType,
    Tier,
)
from neoclip.models.users import (
    BaseQuotaTransaction,
    BaseUserProfile,
    BaseUserQuota,
    QuotaTransaction,
    UserProfile,
    UserQuota,
)

__all__ = [
    # Base models
    "FirestoreBaseModel",
    # Enums
    "FailureReason",
    "GenerationStatus",
    "QuotaTransactionType",
    "Tier",
    # Generation models
    "MAX_PROMPT_LENGTH",
    "BaseGenerationTask",
    "GenerationTask",
    # User models
    "BaseQuotaTransaction",
    "BaseUserProfile",
    "BaseUserQuota",
    "QuotaTransaction",
    "UserProfile",
    "UserQuota",
    # Collection mappings
    "COLLECTION_MODELS",
]
