"""
Firestore Service Layer

This module provides a service layer for interacting with Firestore.
It uses the Firebase Admin SDK and provides type-safe operations
using the Pydantic models defined in neoclip.models.firestore.

Conditional updates (quota reservation, terminal task transitions) go
through update_in_transaction so that concurrent requests cannot both
pass a read-then-write check. The SDK is synchronous, so every call that
touches the network runs on the threadpool.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar

from fastapi.concurrency import run_in_threadpool
from firebase_admin import firestore, initialize_app
from google.cloud.firestore import Client, DocumentReference, transactional

from neoclip.config import get_settings
from neoclip.models.firestore import COLLECTION_MODELS, FirestoreBaseModel

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Type variable for generic model operations
T = TypeVar("T", bound=FirestoreBaseModel)

# (collection name, document ID)
DocumentKey = Tuple[str, str]

# Receives the current document data (None if missing) and returns the fields
# to write, or None to leave the document untouched
Mutation = Callable[[Optional[Dict[str, Any]]], Optional[Dict[str, Any]]]

# Receives the current data of several documents and returns the fields to
# write for each (None skips that document), or None to abort
MultiMutation = Callable[
    [List[Optional[Dict[str, Any]]]], Optional[List[Optional[Dict[str, Any]]]]
]


def _single(mutate: Mutation) -> MultiMutation:
    def _apply(currents):
        update_data = mutate(currents[0])
        return None if update_data is None else [update_data]

    return _apply


def _to_model(data: Dict[str, Any], collection_name: str, model_class=None):
    if model_class:
        return model_class(**data)
    if collection_name in COLLECTION_MODELS:
        return COLLECTION_MODELS[collection_name](**data)
    return data


class FirestoreService:
    """
    Service class for Firestore operations with type safety and Pydantic integration.
    """

    def __init__(self, database_name: str = "(default)"):
        """
        Initialize the Firestore service.

        Args:
            database_name: Name of the Firestore database to connect to
        """
        self.database_name = database_name
        self._client: Optional[Client] = None

    @property
    def client(self) -> Client:
        """Get or create the Firestore client."""
        if self._client is None:
            # Initialize Firebase Admin SDK if not already initialized
            try:
                app = initialize_app()
            except ValueError:
                # App already exists, get it
                import firebase_admin

                app = firebase_admin.get_app()

            self._client = firestore.client(app, database=self.database_name)

        return self._client

    def get_collection_ref(self, collection_name: str):
        """Get a reference to a Firestore collection."""
        return self.client.collection(collection_name)

    def get_document_ref(
        self, collection_name: str, document_id: str
    ) -> DocumentReference:
        """Get a reference to a specific document."""
        return self.client.collection(collection_name).document(document_id)

    # Generic CRUD operations
    async def create_document(
        self,
        collection_name: str,
        document_data: Dict[str, Any],
        document_id: Optional[str] = None,
    ) -> str:
        """
        Create a new document in the specified collection.

        Args:
            collection_name: Name of the collection
            document_data: Data to store in the document
            document_id: Optional document ID, will generate UUID if not provided

        Returns:
            The document ID of the created document
        """
        try:
            if document_id is None:
                document_id = str(uuid.uuid4())

            now = datetime.now(timezone.utc)
            document_data.setdefault("created_at", now)
            document_data.setdefault("updated_at", now)

            doc_ref = self.get_document_ref(collection_name, document_id)
            await run_in_threadpool(doc_ref.set, document_data)

            logger.info(f"Created document {document_id} in {collection_name}")
            return document_id

        except Exception as e:
            logger.error(f"Failed to create document in {collection_name}: {str(e)}")
            raise

    async def get_document(
        self,
        collection_name: str,
        document_id: str,
        model_class: Optional[Type[T]] = None,
    ) -> Optional[T]:
        """
        Get a document by ID.

        Args:
            collection_name: Name of the collection
            document_id: ID of the document to retrieve
            model_class: Optional Pydantic model class to validate the data

        Returns:
            Document data as Pydantic model instance or None if not found
        """
        try:
            doc_ref = self.get_document_ref(collection_name, document_id)
            doc = await run_in_threadpool(doc_ref.get)

            if not doc.exists:
                return None

            data = doc.to_dict()
            data["id"] = doc.id
            return _to_model(data, collection_name, model_class)

        except Exception as e:
            logger.error(
                f"Failed to get document {document_id} from {collection_name}: {str(e)}"
            )
            raise

    async def update_document(
        self, collection_name: str, document_id: str, update_data: Dict[str, Any]
    ) -> bool:
        """
        Update a document.

        Args:
            collection_name: Name of the collection
            document_id: ID of the document to update
            update_data: Data to update

        Returns:
            True if successful
        """
        try:
            update_data["updated_at"] = datetime.now(timezone.utc)

            doc_ref = self.get_document_ref(collection_name, document_id)
            await run_in_threadpool(doc_ref.update, update_data)

            logger.info(f"Updated document {document_id} in {collection_name}")
            return True

        except Exception as e:
            logger.error(
                f"Failed to update document {document_id} in {collection_name}: {str(e)}"
            )
            raise

    async def update_in_transaction(
        self, collection_name: str, document_id: str, mutate: Mutation
    ) -> Optional[Dict[str, Any]]:
        """
        Atomically read a document, compute an update, and write it.

        Args:
            collection_name: Name of the collection
            document_id: ID of the document
            mutate: Callable returning the fields to write (or None to abort)

        Returns:
            The document data after the update, or None if mutate aborted
        """
        results = await self.update_many_in_transaction(
            [(collection_name, document_id)], _single(mutate)
        )
        return results[0] if results is not None else None

    async def update_many_in_transaction(
        self, documents: List[DocumentKey], mutate: MultiMutation
    ) -> Optional[List[Optional[Dict[str, Any]]]]:
        """
        Atomically read several documents, compute their updates, and write
        them all in one transaction.

        The mutation may run more than once if Firestore retries the
        transaction, so it must not have side effects outside its closure.

        Args:
            documents: (collection name, document ID) pairs
            mutate: Callable receiving the current data of each document
                (None if missing) and returning one update per document
                (None to leave it untouched), or None to abort

        Returns:
            The data of each document after the update, or None if mutate aborted
        """
        doc_refs = [
            self.get_document_ref(collection_name, document_id)
            for collection_name, document_id in documents
        ]

        @transactional
        def _apply(transaction) -> Optional[List[Optional[Dict[str, Any]]]]:
            # Firestore requires every read to happen before the first write
            currents = []
            for doc_ref in doc_refs:
                snapshot = doc_ref.get(transaction=transaction)
                currents.append(snapshot.to_dict() if snapshot.exists else None)

            updates = mutate(currents)
            if updates is None:
                return None

            now = datetime.now(timezone.utc)
            results = []
            for doc_ref, current, update_data in zip(doc_refs, currents, updates):
                if update_data is None:
                    results.append(current)
                    continue

                update_data["updated_at"] = now
                if current is None:
                    update_data.setdefault("created_at", now)
                    transaction.set(doc_ref, update_data)
                    results.append(dict(update_data))
                else:
                    transaction.update(doc_ref, update_data)
                    results.append({**current, **update_data})
            return results

        try:
            return await run_in_threadpool(_apply, self.client.transaction())
        except Exception as e:
            logger.error(f"Transaction on {documents} failed: {str(e)}")
            raise

    async def query_collection(
        self,
        collection_name: str,
        filters: Optional[List[tuple]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        model_class: Optional[Type[T]] = None,
    ) -> List[T]:
        """
        Query a collection with filters, ordering, and pagination.

        Args:
            collection_name: Name of the collection to query
            filters: List of filter tuples (field, operator, value)
            order_by: Field to order by
            limit: Maximum number of results
            offset: Number of results to skip
            model_class: Optional Pydantic model class

        Returns:
            List of documents as model instances
        """
        try:
            query = self.get_collection_ref(collection_name)

            if filters:
                for field, operator, value in filters:
                    query = query.where(field, operator, value)

            if order_by:
                query = query.order_by(order_by)

            if offset:
                query = query.offset(offset)
            if limit:
                query = query.limit(limit)

            results = []
            for doc in await run_in_threadpool(lambda: list(query.stream())):
                data = doc.to_dict()
                data["id"] = doc.id
                results.append(_to_model(data, collection_name, model_class))

            return results

        except Exception as e:
            logger.error(f"Failed to query collection {collection_name}: {str(e)}")
            raise


# Global service instance
_firestore_service = None


def get_firestore_service():
    """
    Get a singleton document service for the configured storage backend.

    Returns:
        FirestoreService, or InMemoryFirestoreService when
        NEOCLIP_STORAGE_BACKEND is "memory"
    """
    global _firestore_service
    if _firestore_service is None:
        settings = get_settings()
        if settings.storage_backend == "memory":
            from neoclip.services.memory_service import InMemoryFirestoreService

            logger.info("Using in-memory document storage")
            _firestore_service = InMemoryFirestoreService()
        else:
            _firestore_service = FirestoreService(settings.firestore_database)
    return _firestore_service
