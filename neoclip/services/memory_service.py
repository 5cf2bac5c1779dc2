"""
In-Memory Document Service

A process-local stand-in for FirestoreService with the same async
interface. Used for local development (NEOCLIP_STORAGE_BACKEND=memory)
and by the test suite. Documents are deep-copied on the way in and out so
callers never share mutable state with the store.
"""

import copy
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from neoclip.services.firestore_service import (
    DocumentKey,
    MultiMutation,
    Mutation,
    _single,
    _to_model,
)

logger = logging.getLogger(__name__)

_OPERATORS = {
    "==": lambda left, right: left == right,
    "!=": lambda left, right: left != right,
    "<": lambda left, right: left is not None and left < right,
    "<=": lambda left, right: left is not None and left <= right,
    ">": lambda left, right: left is not None and left > right,
    ">=": lambda left, right: left is not None and left >= right,
    "in": lambda left, right: left in right,
}


class InMemoryFirestoreService:
    """Dictionary-backed document store mirroring FirestoreService."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _collection(self, collection_name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection_name, {})

    async def create_document(
        self,
        collection_name: str,
        document_data: Dict[str, Any],
        document_id: Optional[str] = None,
    ) -> str:
        if document_id is None:
            document_id = str(uuid.uuid4())

        now = datetime.now(timezone.utc)
        document_data.setdefault("created_at", now)
        document_data.setdefault("updated_at", now)

        with self._lock:
            self._collection(collection_name)[document_id] = copy.deepcopy(
                document_data
            )

        logger.info(f"Created document {document_id} in {collection_name}")
        return document_id

    async def get_document(
        self, collection_name: str, document_id: str, model_class=None
    ):
        with self._lock:
            stored = self._collection(collection_name).get(document_id)
            if stored is None:
                return None
            data = copy.deepcopy(stored)

        data["id"] = document_id
        return _to_model(data, collection_name, model_class)

    async def update_document(
        self, collection_name: str, document_id: str, update_data: Dict[str, Any]
    ) -> bool:
        update_data["updated_at"] = datetime.now(timezone.utc)

        with self._lock:
            documents = self._collection(collection_name)
            if document_id not in documents:
                raise KeyError(f"No document {document_id} in {collection_name}")
            documents[document_id].update(copy.deepcopy(update_data))

        logger.info(f"Updated document {document_id} in {collection_name}")
        return True

    async def update_in_transaction(
        self, collection_name: str, document_id: str, mutate: Mutation
    ) -> Optional[Dict[str, Any]]:
        results = await self.update_many_in_transaction(
            [(collection_name, document_id)], _single(mutate)
        )
        return results[0] if results is not None else None

    async def update_many_in_transaction(
        self, documents: List[DocumentKey], mutate: MultiMutation
    ) -> Optional[List[Optional[Dict[str, Any]]]]:
        with self._lock:
            currents = [
                copy.deepcopy(self._collection(collection_name).get(document_id))
                for collection_name, document_id in documents
            ]

            # Nothing is written until every update has been computed
            updates = mutate(copy.deepcopy(currents))
            if updates is None:
                return None

            now = datetime.now(timezone.utc)
            results = []
            for (collection_name, document_id), current, update_data in zip(
                documents, currents, updates
            ):
                if update_data is None:
                    results.append(current)
                    continue

                update_data["updated_at"] = now
                if current is None:
                    update_data.setdefault("created_at", now)
                    merged = copy.deepcopy(update_data)
                else:
                    merged = {**current, **copy.deepcopy(update_data)}
                results.append(merged)

            for (collection_name, document_id), merged in zip(documents, results):
                if merged is not None:
                    self._collection(collection_name)[document_id] = merged

            return copy.deepcopy(results)

    async def query_collection(
        self,
        collection_name: str,
        filters: Optional[List[tuple]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        model_class=None,
    ) -> List[Any]:
        with self._lock:
            items = [
                (document_id, copy.deepcopy(data))
                for document_id, data in self._collection(collection_name).items()
            ]

        for field, operator, value in filters or []:
            compare = _OPERATORS[operator]
            items = [item for item in items if compare(item[1].get(field), value)]

        if order_by:
            items.sort(key=lambda item: item[1].get(order_by))

        if offset:
            items = items[offset:]
        if limit:
            items = items[:limit]

        results = []
        for document_id, data in items:
            data["id"] = document_id
            results.append(_to_model(data, collection_name, model_class))
        return results
