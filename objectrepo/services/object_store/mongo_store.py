import asyncio

from bson.objectid import ObjectId
from pymongo import ASCENDING, MongoClient

from objectrepo.config import logger, settings
from objectrepo.models.conditions import DNF, is_collection
from objectrepo.services.object_store.object_store import ObjectStoreInterface, Page

# Filter that no document satisfies, used for an empty disjunction.
MATCH_NOTHING = {"_id": {"$in": []}}


def to_mongo_filter(query: DNF) -> dict:
    """
    Compile a DNF into a MongoDB filter document.

    Scalars become `$eq` tests, so mappings are compared literally and never read
    as operators. Collections become `$in` tests and several condition maps are
    joined with `$or`.
    """
    clauses = [
        {
            field: {"$in": list(value)} if is_collection(value) else {"$eq": value}
            for field, value in conditions.items()
        }
        for conditions in query
    ]
    if not clauses:
        return MATCH_NOTHING
    if len(clauses) == 1:
        return clauses[0]
    return {"$or": clauses}


def _read_page(collection, mongo_filter: dict, after, limit: int) -> list[dict]:
    if after is not None:
        mongo_filter = {"$and": [mongo_filter, {"_id": {"$gt": after}}]}
    cursor = collection.find(mongo_filter).sort("_id", ASCENDING).limit(limit)
    try:
        return list(cursor)
    finally:
        cursor.close()


class MongoStore(ObjectStoreInterface):
    def __init__(self, collection: str, client: MongoClient = None, db_name: str = None):
        try:
            logger.info("Initializing MongoStore")
            self.client = client or MongoClient(settings.MONGO_DB_URI.format(
                MONGO_DB_USER=settings.MONGO_DB_USER,
                MONGO_DB_PASSWORD=settings.MONGO_DB_PASSWORD
            ))
            self.db = self.client[db_name or settings.MONGO_DB_NAME]
            self.collection = collection

            logger.info("MongoStore initialized successfully")
        except Exception as e:
            logger.error("Error initializing MongoStore: %s", e)
            raise

    async def find(self, query: DNF, collection: str = None, after=None, limit: int = 100) -> Page:
        collection = collection or self.collection
        mongo_filter = to_mongo_filter(query)
        logger.debug("Finding documents in collection '%s' with filter: %s after: %s", collection, mongo_filter, after)
        try:
            results = await asyncio.to_thread(_read_page, self.db[collection], mongo_filter, after, limit)
        except Exception as e:
            logger.error("Error finding documents in collection '%s': %s", collection, e)
            raise
        next_after = results[-1]["_id"] if len(results) == limit else None
        for result in results:
            result["_id"] = str(result["_id"])
        logger.info("Found %d documents in collection '%s'", len(results), collection)
        return Page(results, next_after)

    async def find_one(self, query: DNF, collection: str = None) -> dict:
        collection = collection or self.collection
        mongo_filter = to_mongo_filter(query)
        logger.debug("Finding one document in collection '%s' with filter: %s", collection, mongo_filter)
        try:
            result = await asyncio.to_thread(self.db[collection].find_one, mongo_filter)
            if result:
                result["_id"] = str(result["_id"])
                logger.info("Document found in collection '%s': %s", collection, result["_id"])
            else:
                logger.info("No document found in collection '%s' with filter: %s", collection, mongo_filter)
            return result
        except Exception as e:
            logger.error("Error finding document in collection '%s': %s", collection, e)
            raise

    async def count(self, query: DNF, collection: str = None) -> int:
        collection = collection or self.collection
        mongo_filter = to_mongo_filter(query)
        logger.debug("Counting documents in collection '%s' with filter: %s", collection, mongo_filter)
        try:
            result = await asyncio.to_thread(self.db[collection].count_documents, mongo_filter)
            logger.info("Counted %d documents in collection '%s'", result, collection)
            return result
        except Exception as e:
            logger.error("Error counting documents in collection '%s': %s", collection, e)
            raise

    async def delete(self, query: DNF, collection: str = None) -> int:
        collection = collection or self.collection
        mongo_filter = to_mongo_filter(query)
        logger.debug("Deleting documents from collection '%s' with filter: %s", collection, mongo_filter)
        try:
            result = await asyncio.to_thread(self.db[collection].delete_many, mongo_filter)
            if result.deleted_count > 0:
                logger.info("Deleted %d documents from collection '%s'", result.deleted_count, collection)
            else:
                logger.warning("No document matched filter %s in collection '%s'", mongo_filter, collection)
            return result.deleted_count
        except Exception as e:
            logger.error("Error deleting documents from collection '%s': %s", collection, e)
            raise

    async def insert(self, document: dict, collection: str = None) -> dict:
        logger.debug("Inserting document into collection '%s': %s", collection, document)
        collection = collection or self.collection
        try:
            result = await asyncio.to_thread(self.db[collection].insert_one, dict(document))
            logger.info("Document inserted into collection '%s' with ID: %s", collection, result.inserted_id)
            return {"success": True, "document_id": str(result.inserted_id)}
        except Exception as e:
            logger.error("Error inserting document into collection '%s': %s", collection, e)
            raise

    async def insert_many(self, documents: list[dict], collection: str = None) -> dict:
        logger.debug("Inserting multiple documents into collection '%s': %s", collection, documents)
        collection = collection or self.collection
        try:
            result = await asyncio.to_thread(
                self.db[collection].insert_many, [dict(document) for document in documents]
            )
            logger.info("Inserted %d documents into collection '%s'", len(result.inserted_ids), collection)
            return {"success": True, "inserted_ids": [str(_id) for _id in result.inserted_ids]}
        except Exception as e:
            logger.error("Error inserting multiple documents into collection '%s': %s", collection, e)
            raise

    @staticmethod
    def object_id(document_id: str) -> ObjectId:
        """Convert a stringified `_id` back into an ObjectId for use in conditions."""
        return ObjectId(document_id)
