import asyncio
from functools import lru_cache

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import And, FieldFilter, Or
from google.cloud.firestore_v1.field_path import FieldPath
from google.oauth2 import service_account

from objectrepo.config import logger, settings
from objectrepo.models.conditions import DNF, drop_unsatisfiable, is_collection
from objectrepo.services.object_store.object_store import ObjectStoreInterface, Page

# Firestore caps the number of writes in one batch.
MAX_BATCH_WRITES = 500


def to_firestore_filter(query: DNF):
    """
    Compile a non-empty DNF into a Firestore filter.

    Returns None when one of the condition maps is empty, since that map matches every document.
    Firestore rejects an empty `in` array, so maps with an empty membership target must be
    removed beforehand with `drop_unsatisfiable`.
    """
    clauses = []
    for conditions in query:
        filters = [
            FieldFilter(field, "in", list(value)) if is_collection(value) else FieldFilter(field, "==", value)
            for field, value in conditions.items()
        ]
        if not filters:
            return None
        clauses.append(filters[0] if len(filters) == 1 else And(filters=filters))
    if len(clauses) == 1:
        return clauses[0]
    return Or(filters=clauses)


@lru_cache(maxsize=None)
def get_firestore_client() -> firestore.Client:
    """Shared Firestore client built from the configured service account."""
    logger.info("Initializing Firestore client for database '%s'", settings.FIRESTOREDB)
    creds = service_account.Credentials.from_service_account_file(settings.GOOGLE_APPLICATION_CREDENTIALS)
    return firestore.Client(project=settings.GCLOUD_PROJECT_ID, database=settings.FIRESTOREDB, credentials=creds)


def _to_document(doc) -> dict:
    return {"id": doc.id, **doc.to_dict()}


def _drain(docs) -> list:
    try:
        return list(docs)
    finally:
        docs.close()


class FirestoreStore(ObjectStoreInterface):
    def __init__(self, collection: str, client: firestore.Client = None):
        """Bind the store to a collection, using the shared client unless one is given."""
        self.db = client or get_firestore_client()
        self.collection = collection

    def _query(self, query: DNF, collection: str):
        collection_ref = self.db.collection(collection)
        firestore_filter = to_firestore_filter(query)
        if firestore_filter is None:
            return collection_ref
        return collection_ref.where(filter=firestore_filter)

    def _read_page(self, query: DNF, collection: str, after, limit: int) -> list:
        firestore_query = self._query(query, collection).order_by(FieldPath.document_id())
        if after is not None:
            firestore_query = firestore_query.start_after(after)
        return _drain(firestore_query.limit(limit).stream())

    async def find(self, query: DNF, collection: str = None, after=None, limit: int = 100) -> Page:
        """Read one page of matching documents, ordered by document id."""
        collection = collection or self.collection
        query = drop_unsatisfiable(query)
        logger.debug("Finding documents in collection '%s' with query: %s", collection, query)
        if not query:
            return Page([])
        try:
            docs = await asyncio.to_thread(self._read_page, query, collection, after, limit)
        except Exception as e:
            logger.error("Error finding documents in collection '%s': %s", collection, e)
            raise
        logger.info("Found %d documents in collection '%s'", len(docs), collection)
        return Page([_to_document(doc) for doc in docs], docs[-1] if len(docs) == limit else None)

    async def find_one(self, query: DNF, collection: str = None) -> dict:
        """Find a single document in the Firestore collection."""
        collection = collection or self.collection
        query = drop_unsatisfiable(query)
        logger.debug("Finding one document in collection '%s' with query: %s", collection, query)
        if not query:
            return None
        try:
            docs = await asyncio.to_thread(_drain, self._query(query, collection).limit(1).stream())
            if docs:
                logger.info("Document found in collection '%s': %s", collection, docs[0].id)
                return _to_document(docs[0])
            logger.info("No document found in collection '%s' with query: %s", collection, query)
            return None
        except Exception as e:
            logger.error("Error finding document in collection '%s': %s", collection, e)
            raise

    async def count(self, query: DNF, collection: str = None) -> int:
        """Count matching documents with a Firestore aggregation query."""
        collection = collection or self.collection
        query = drop_unsatisfiable(query)
        logger.debug("Counting documents in collection '%s' with query: %s", collection, query)
        if not query:
            return 0
        try:
            aggregation = await asyncio.to_thread(self._query(query, collection).count().get)
            result = int(aggregation[0][0].value)
            logger.info("Counted %d documents in collection '%s'", result, collection)
            return result
        except Exception as e:
            logger.error("Error counting documents in collection '%s': %s", collection, e)
            raise

    async def delete(self, query: DNF, collection: str = None) -> int:
        """Delete every matching document, committing in batches."""
        collection = collection or self.collection
        query = drop_unsatisfiable(query)
        logger.debug("Deleting documents from collection '%s' with query: %s", collection, query)
        if not query:
            return 0
        try:
            return await asyncio.to_thread(self._delete_matching, query, collection)
        except Exception as e:
            logger.error("Error deleting documents from collection '%s': %s", collection, e)
            raise

    def _delete_matching(self, query: DNF, collection: str) -> int:
        deleted = 0
        batch = self.db.batch()
        pending = 0
        for doc in self._query(query, collection).stream():
            batch.delete(doc.reference)
            pending += 1
            if pending == MAX_BATCH_WRITES:
                batch.commit()
                deleted += pending
                batch = self.db.batch()
                pending = 0
        if pending:
            batch.commit()
            deleted += pending
        if deleted:
            logger.info("Deleted %d documents from collection '%s'", deleted, collection)
        else:
            logger.warning("No document matched query %s in collection '%s'", query, collection)
        return deleted

    async def insert(self, document: dict, collection: str = None) -> dict:
        """Insert a single document into the Firestore collection."""
        logger.debug("Inserting document into collection '%s': %s", collection, document)
        collection = collection or self.collection
        try:
            _, doc_ref = await asyncio.to_thread(self.db.collection(collection).add, document)
            logger.info("Document inserted into collection '%s' with ID: %s", collection, doc_ref.id)
            return {"success": True, "id": doc_ref.id}
        except Exception as e:
            logger.error("Error inserting document into collection '%s': %s", collection, e)
            raise

    async def insert_many(self, documents: list[dict], collection: str = None) -> dict:
        """Insert multiple documents into the Firestore collection."""
        logger.debug("Inserting multiple documents into collection '%s': %s", collection, documents)
        collection = collection or self.collection
        inserted_ids = []
        try:
            for document in documents:
                _, doc_ref = await asyncio.to_thread(self.db.collection(collection).add, document)
                inserted_ids.append(doc_ref.id)
            logger.info("Inserted %d documents into collection '%s'", len(inserted_ids), collection)
            return {"success": True, "inserted_ids": inserted_ids}
        except Exception as e:
            logger.error("Error inserting multiple documents into collection '%s': %s", collection, e)
            raise
