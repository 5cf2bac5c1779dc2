"""Tests for the in-memory document service."""

import pytest

from neoclip.models.firestore import USERS_QUOTAS_COLLECTION
from neoclip.models.users import UserQuota


class TestInMemoryFirestoreService:
    """Tests for InMemoryFirestoreService."""

    @pytest.mark.asyncio
    async def test_documents_are_copied(self, store):
        data = {"name": "a", "tags": ["x"]}
        await store.create_document("things", data, "doc-1")
        data["tags"].append("y")

        fetched = await store.get_document("things", "doc-1")
        fetched["tags"].append("z")

        assert (await store.get_document("things", "doc-1"))["tags"] == ["x"]
        assert fetched["id"] == "doc-1"

    @pytest.mark.asyncio
    async def test_generated_document_id(self, store):
        document_id = await store.create_document("things", {"name": "a"})

        assert await store.get_document("things", document_id) is not None

    @pytest.mark.asyncio
    async def test_collection_model_is_inferred(self, store, ledger):
        await ledger.create_quota_record("user-1")

        quota = await store.get_document(USERS_QUOTAS_COLLECTION, "user-1")

        assert isinstance(quota, UserQuota)

    @pytest.mark.asyncio
    async def test_update_missing_document_raises(self, store):
        with pytest.raises(KeyError):
            await store.update_document("things", "missing", {"name": "b"})

    @pytest.mark.asyncio
    async def test_update_in_transaction(self, store):
        await store.create_document("counters", {"value": 1}, "c-1")

        updated = await store.update_in_transaction(
            "counters", "c-1", lambda current: {"value": current["value"] + 1}
        )

        assert updated["value"] == 2
        assert (await store.get_document("counters", "c-1"))["value"] == 2

    @pytest.mark.asyncio
    async def test_update_in_transaction_abort(self, store):
        await store.create_document("counters", {"value": 1}, "c-1")

        assert await store.update_in_transaction("counters", "c-1", lambda c: None) is None
        assert (await store.get_document("counters", "c-1"))["value"] == 1

    @pytest.mark.asyncio
    async def test_update_in_transaction_creates_missing(self, store):
        created = await store.update_in_transaction(
            "counters", "c-2", lambda current: {"value": 0} if current is None else None
        )

        assert created["value"] == 0
        assert "created_at" in created

    @pytest.mark.asyncio
    async def test_query_filters_order_and_limit(self, store):
        for name, score in (("a", 3), ("b", 1), ("c", 2), ("d", 5)):
            await store.create_document("scores", {"name": name, "score": score}, name)

        results = await store.query_collection(
            "scores", filters=[("score", ">=", 2)], order_by="score", limit=2
        )

        assert [result["name"] for result in results] == ["c", "a"]

    @pytest.mark.asyncio
    async def test_query_in_operator(self, store):
        for name in ("a", "b", "c"):
            await store.create_document("things", {"name": name}, name)

        results = await store.query_collection(
            "things", filters=[("name", "in", ["a", "c"])]
        )

        assert sorted(result["name"] for result in results) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_update_many_in_transaction(self, store):
        await store.create_document("counters", {"value": 1}, "c-1")

        def mutate(currents):
            counter, marker = currents
            assert marker is None
            return [{"value": counter["value"] - 1}, {"seen": True}]

        results = await store.update_many_in_transaction(
            [("counters", "c-1"), ("markers", "m-1")], mutate
        )

        assert results[0]["value"] == 0
        assert (await store.get_document("counters", "c-1"))["value"] == 0
        assert (await store.get_document("markers", "m-1"))["seen"] is True

    @pytest.mark.asyncio
    async def test_update_many_in_transaction_skips_untouched(self, store):
        await store.create_document("counters", {"value": 1}, "c-1")

        results = await store.update_many_in_transaction(
            [("counters", "c-1"), ("markers", "m-1")],
            lambda currents: [{"value": 5}, None],
        )

        assert results[1] is None
        assert await store.get_document("markers", "m-1") is None

    @pytest.mark.asyncio
    async def test_update_many_in_transaction_writes_nothing_on_error(self, store):
        await store.create_document("counters", {"value": 1}, "c-1")

        def mutate(currents):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await store.update_many_in_transaction(
                [("markers", "m-1"), ("counters", "c-1")], mutate
            )

        assert await store.get_document("markers", "m-1") is None
        assert (await store.get_document("counters", "c-1"))["value"] == 1
