"""
Firestore Collection Mapping

Collection Mapping:
- generations -> GenerationTask
- users_profiles -> UserProfile
- users_quotas -> UserQuota
- quota_transactions -> QuotaTransaction
"""

from neoclip.models.generations import GenerationTask
from neoclip.models.shared import FirestoreBaseModel
from neoclip.models.users import QuotaTransaction, UserProfile, UserQuota

GENERATIONS_COLLECTION = "generations"
USERS_PROFILES_COLLECTION = "users_profiles"
USERS_QUOTAS_COLLECTION = "users_quotas"
QUOTA_TRANSACTIONS_COLLECTION = "quota_transactions"

# Model mappings for easy reference
COLLECTION_MODELS = {
    GENERATIONS_COLLECTION: GenerationTask,
    USERS_PROFILES_COLLECTION: UserProfile,
    USERS_QUOTAS_COLLECTION: UserQuota,
    QUOTA_TRANSACTIONS_COLLECTION: QuotaTransaction,
}

__all__ = [
    "COLLECTION_MODELS",
    "FirestoreBaseModel",
    "GENERATIONS_COLLECTION",
    "QUOTA_TRANSACTIONS_COLLECTION",
    "USERS_PROFILES_COLLECTION",
    "USERS_QUOTAS_COLLECTION",
]
