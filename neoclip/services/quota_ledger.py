"""
Quota Ledger

This module tracks per-user monthly generation usage. Reservations are a
single atomic read-modify-write against the user's quota document, so two
concurrent submissions cannot both slip under the limit. A reservation is
released at most once per generation; the rollback ledger entry, keyed by
generation id, is written in the same transaction as the decrement and
doubles as the idempotency guard.
"""

import logging
from datetime import datetime, timezone
from traceback import format_exc
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from neoclip.config import QuotaPolicy
from neoclip.models.firestore import (
    QUOTA_TRANSACTIONS_COLLECTION,
    USERS_QUOTAS_COLLECTION,
)
from neoclip.models.shared import QuotaTransactionType, Tier
from neoclip.models.users import QuotaTransaction, UserQuota
from neoclip.services.errors import UserNotFoundError
from neoclip.services.firestore_service import get_firestore_service

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def next_reset_date(now: datetime) -> datetime:
    """First day of the month following now, at midnight UTC."""
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)


def counter_field(tier: str) -> str:
    return "paid_used" if tier == Tier.PAID else "free_used"


class QuotaDecision(BaseModel):
    """Outcome of a quota reservation attempt."""

    allowed: bool
    tier: Tier
    used: int
    limit: Optional[int] = None
    resets_at: datetime

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(0, self.limit - self.used)


class QuotaLedger:
    """Manages monthly usage counters: reserve, commit, rollback, and reset."""

    def __init__(
        self,
        firestore_service=None,
        policy: Optional[QuotaPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.firestore_service = firestore_service or get_firestore_service()
        self.policy = policy or QuotaPolicy()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _period_updates(self, current: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        """Fields that reset the counters if the stored reset date has passed."""
        resets_at = current.get("resets_at")
        if resets_at is not None and now < resets_at:
            return {}
        return {"free_used": 0, "paid_used": 0, "resets_at": next_reset_date(now)}

    async def create_quota_record(self, user_id: str) -> UserQuota:
        """
        Create the quota record for a newly registered user.

        Args:
            user_id: The user ID to create a quota record for

        Returns:
            The new record, or the existing one if the user already has one
        """
        now = self.clock()

        def mutate(current):
            if current is not None:
                return None
            return {
                "user_id": user_id,
                "free_used": 0,
                "paid_used": 0,
                "total_videos_generated": 0,
                "resets_at": next_reset_date(now),
                "created_at": now,
            }

        created = await self.firestore_service.update_in_transaction(
            USERS_QUOTAS_COLLECTION, user_id, mutate
        )
        if created is None:
            return await self.get_quota(user_id)

        logger.info(f"Created quota record for user {user_id}")
        return UserQuota(**created)

    async def get_quota(self, user_id: str) -> Optional[UserQuota]:
        """Get the user's quota record without applying a reset."""
        return await self.firestore_service.get_document(
            collection_name=USERS_QUOTAS_COLLECTION,
            document_id=user_id,
            model_class=UserQuota,
        )

    async def maybe_reset_period(self, user_id: str) -> Optional[UserQuota]:
        """
        Reset both counters if the stored reset date has passed.

        Args:
            user_id: The user ID to check

        Returns:
            The (possibly reset) quota record, or None if the user has none
        """
        now = self.clock()

        def mutate(current):
            if current is None:
                return None
            return self._period_updates(current, now) or None

        updated = await self.firestore_service.update_in_transaction(
            USERS_QUOTAS_COLLECTION, user_id, mutate
        )
        if updated is None:
            return await self.get_quota(user_id)

        logger.info(
            f"Reset monthly usage for user {user_id}, next reset {updated['resets_at']}"
        )
        return UserQuota(**updated)

    async def check_and_reserve(
        self, user_id: str, tier: str, reference_id: str
    ) -> QuotaDecision:
        """
        Atomically apply a due reset, check the tier limit, and reserve one use.

        Args:
            user_id: The user requesting a generation
            tier: Tier whose counter is charged
            reference_id: Generation ID the reservation belongs to

        Returns:
            QuotaDecision; allowed is False when the limit is reached

        Raises:
            UserNotFoundError: if the user has no quota record
        """
        now = self.clock()
        tier = Tier(tier).value
        limit = self.policy.limit_for(tier)
        field = counter_field(tier)
        outcome: Dict[str, Any] = {}

        def mutate(current):
            outcome.clear()
            if current is None:
                outcome["missing"] = True
                return None

            updates = self._period_updates(current, now)
            used = updates.get(field, current.get(field, 0))
            resets_at = updates.get("resets_at", current.get("resets_at"))

            if limit is not None and used >= limit:
                outcome.update(allowed=False, used=used, resets_at=resets_at)
                # A due reset is still persisted even though nothing is reserved
                return updates or None

            updates[field] = used + 1
            outcome.update(allowed=True, used=used + 1, resets_at=resets_at)
            return updates

        await self.firestore_service.update_in_transaction(
            USERS_QUOTAS_COLLECTION, user_id, mutate
        )

        if outcome.get("missing"):
            raise UserNotFoundError("User not found", {"user_id": user_id})

        decision = QuotaDecision(
            allowed=outcome["allowed"],
            tier=tier,
            used=outcome["used"],
            limit=limit,
            resets_at=outcome["resets_at"],
        )

        if decision.allowed:
            logger.info(
                f"Reserved {tier} quota for user {user_id} "
                f"({decision.used}/{limit if limit is not None else 'unmetered'})"
            )
            await self._record_transaction(
                user_id,
                tier,
                QuotaTransactionType.RESERVE,
                1,
                reference_id,
                {"period_resets_at": decision.resets_at},
            )
        else:
            logger.warning(
                f"Quota exceeded for user {user_id}: {decision.used}/{limit} {tier}"
            )

        return decision

    async def commit(self, user_id: str, tier: str, reference_id: str) -> None:
        """Record that a reservation now belongs to a persisted generation."""
        await self._record_transaction(
            user_id, tier, QuotaTransactionType.COMMIT, 0, reference_id
        )

    async def rollback(self, user_id: str, tier: str, reference_id: str) -> bool:
        """
        Release the reservation made for a generation.

        The rollback ledger entry and the counter decrement are written in
        one transaction, so a failed attempt leaves nothing behind and can be
        retried. Only the first successful call per reference_id decrements;
        the counter never goes below zero, and nothing is released if the
        period has been reset since the reservation was made.

        Returns:
            True if this call performed the rollback
        """
        now = self.clock()
        tier = Tier(tier).value
        field = counter_field(tier)
        transaction_id = f"{reference_id}_{QuotaTransactionType.ROLLBACK.value}"

        reservation = await self.firestore_service.get_document(
            collection_name=QUOTA_TRANSACTIONS_COLLECTION,
            document_id=f"{reference_id}_{QuotaTransactionType.RESERVE.value}",
            model_class=QuotaTransaction,
        )
        period = reservation.period_resets_at if reservation else None
        outcome: Dict[str, Any] = {}

        def release(currents):
            claim, quota = currents
            if claim is not None:
                return None

            quota_update = None
            if (
                quota is not None
                and (period is None or quota.get("resets_at") == period)
                and quota.get(field, 0) > 0
            ):
                quota_update = {field: quota[field] - 1}
            outcome["released"] = quota_update is not None

            claim_data = {
                "transaction_id": transaction_id,
                "user_id": user_id,
                "tier": tier,
                "type": QuotaTransactionType.ROLLBACK.value,
                "amount": -1 if quota_update is not None else 0,
                "reference_id": reference_id,
                "created_at": now,
            }
            return [claim_data, quota_update]

        applied = await self.firestore_service.update_many_in_transaction(
            [
                (QUOTA_TRANSACTIONS_COLLECTION, transaction_id),
                (USERS_QUOTAS_COLLECTION, user_id),
            ],
            release,
        )
        if applied is None:
            logger.info(f"Quota for generation {reference_id} already rolled back")
            return False

        if outcome["released"]:
            logger.info(f"Rolled back {field} for user {user_id} ({reference_id})")
        return True

    async def record_completion(self, user_id: str) -> None:
        """Count a completed generation towards the user's lifetime total."""

        def mutate(current):
            if current is None:
                return None
            return {"total_videos_generated": current.get("total_videos_generated", 0) + 1}

        await self.firestore_service.update_in_transaction(
            USERS_QUOTAS_COLLECTION, user_id, mutate
        )

    async def _record_transaction(
        self,
        user_id: str,
        tier: str,
        transaction_type: QuotaTransactionType,
        amount: int,
        reference_id: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Record a quota ledger entry.

        Args:
            user_id: The user ID for the entry
            tier: Tier whose counter was affected
            transaction_type: Type of entry
            amount: Counter change
            reference_id: Generation ID the entry belongs to
            extra: Additional fields to store
        """
        transaction_id = f"{reference_id}_{transaction_type.value}"
        transaction_data = {
            "transaction_id": transaction_id,
            "user_id": user_id,
            "tier": Tier(tier).value,
            "type": transaction_type.value,
            "amount": amount,
            "reference_id": reference_id,
            "created_at": self.clock(),
            **(extra or {}),
        }

        try:
            await self.firestore_service.create_document(
                collection_name=QUOTA_TRANSACTIONS_COLLECTION,
                document_data=transaction_data,
                document_id=transaction_id,
            )
        except Exception as e:
            # Counters are authoritative; a missing ledger entry only affects history
            logger.error(
                f"Failed to record {transaction_type.value} entry for {reference_id}: "
                f"{str(e)}\n{format_exc()}"
            )
