import mongomock

from objectrepo.config import logger, settings
from objectrepo.services.object_store.mongo_store import MongoStore


class MongoLocalStore(MongoStore):
    """In-process MongoStore backed by mongomock."""

    def __init__(self, collection: str, client: mongomock.MongoClient = None):
        logger.info("Getting mongomock db connection for collection %s", collection)
        super().__init__(collection, client=client or mongomock.MongoClient(), db_name=settings.MONGOMOCK_DB_NAME)
