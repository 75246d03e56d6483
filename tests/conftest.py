import mongomock
import pytest
from pydantic import BaseModel

from objectrepo.repository import ObjectRepository
from objectrepo.services.object_store.mongo_local import MongoLocalStore

ITEMS = [
    {"id": 1, "a": "x", "b": 1},
    {"id": 2, "a": "y", "b": 1},
    {"id": 3, "a": "x", "b": 2},
]


class Item(BaseModel):
    id: int
    a: str
    b: int


class SpyStore(MongoLocalStore):
    """MongoLocalStore recording every store call and the number of open cursors."""

    def __init__(self, collection: str):
        super().__init__(collection, client=mongomock.MongoClient())
        self.calls = []
        self.active_cursors = 0

    async def find(self, query, collection=None, after=None, limit=100):
        self.calls.append(("find", query))
        self.active_cursors += 1
        try:
            return await super().find(query, collection, after=after, limit=limit)
        finally:
            self.active_cursors -= 1

    async def find_one(self, query, collection=None):
        self.calls.append(("find_one", query))
        return await super().find_one(query, collection)

    async def count(self, query, collection=None):
        self.calls.append(("count", query))
        return await super().count(query, collection)

    async def delete(self, query, collection=None):
        self.calls.append(("delete", query))
        return await super().delete(query, collection)


@pytest.fixture
def store():
    spy = SpyStore("items")
    spy.db["items"].insert_many([dict(item) for item in ITEMS])
    return spy


@pytest.fixture
def repo(store):
    return ObjectRepository(store, Item)


async def conditions_from(*groups):
    for group in groups:
        yield group
