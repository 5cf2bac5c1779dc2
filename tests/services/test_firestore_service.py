"""Tests for the Firestore service against a mocked SDK client."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from neoclip.services.firestore_service import FirestoreService

MODULE = "neoclip.services.firestore_service"


def run_inline(fn, *args, **kwargs):
    return fn(*args, **kwargs)


def snapshot(data=None):
    doc = MagicMock()
    doc.exists = data is not None
    doc.to_dict.return_value = data
    return doc


@pytest.fixture
def refs():
    return {"c-1": MagicMock(), "m-1": MagicMock()}


@pytest.fixture
def firestore_service(refs):
    service = FirestoreService()
    service._client = MagicMock()
    service._client.collection.return_value.document.side_effect = refs.__getitem__
    return service


@pytest.fixture
def threadpool():
    with patch(f"{MODULE}.run_in_threadpool", AsyncMock(side_effect=run_inline)) as mock:
        yield mock


class TestFirestoreService:
    """Tests for FirestoreService."""

    @pytest.mark.asyncio
    async def test_create_runs_on_threadpool(self, firestore_service, refs, threadpool):
        await firestore_service.create_document("counters", {"value": 1}, "c-1")

        threadpool.assert_awaited_once()
        written = refs["c-1"].set.call_args.args[0]
        assert written["value"] == 1
        assert "created_at" in written

    @pytest.mark.asyncio
    async def test_get_missing_document(self, firestore_service, refs, threadpool):
        refs["c-1"].get.return_value = snapshot()

        assert await firestore_service.get_document("counters", "c-1") is None
        threadpool.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_query_streams_on_threadpool(self, firestore_service, threadpool):
        doc = snapshot({"name": "a"})
        doc.id = "doc-1"
        collection = firestore_service._client.collection.return_value
        collection.where.return_value.stream.return_value = iter([doc])

        results = await firestore_service.query_collection(
            "things", filters=[("name", "==", "a")]
        )

        assert results == [{"name": "a", "id": "doc-1"}]
        threadpool.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_many_writes_in_one_transaction(
        self, firestore_service, refs, threadpool
    ):
        refs["c-1"].get.return_value = snapshot({"value": 1})
        refs["m-1"].get.return_value = snapshot()
        transaction = firestore_service._client.transaction.return_value

        def mutate(currents):
            counter, marker = currents
            assert marker is None
            return [{"value": counter["value"] - 1}, {"seen": True}]

        with patch(f"{MODULE}.transactional", lambda fn: fn):
            results = await firestore_service.update_many_in_transaction(
                [("counters", "c-1"), ("markers", "m-1")], mutate
            )

        assert results[0]["value"] == 0
        assert results[1]["seen"] is True
        update_ref, update_data = transaction.update.call_args.args
        assert update_ref is refs["c-1"]
        assert update_data["value"] == 0
        set_ref, set_data = transaction.set.call_args.args
        assert set_ref is refs["m-1"]
        assert "created_at" in set_data
        threadpool.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_aborted_writes_nothing(
        self, firestore_service, refs, threadpool
    ):
        refs["c-1"].get.return_value = snapshot({"value": 1})
        transaction = firestore_service._client.transaction.return_value

        with patch(f"{MODULE}.transactional", lambda fn: fn):
            result = await firestore_service.update_in_transaction(
                "counters", "c-1", lambda current: None
            )

        assert result is None
        transaction.update.assert_not_called()
        transaction.set.assert_not_called()
