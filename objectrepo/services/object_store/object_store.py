from abc import ABC, abstractmethod
from typing import Any, NamedTuple, Optional

from objectrepo.models.conditions import DNF


class Page(NamedTuple):
    """One bounded read of matching documents."""
    documents: list[dict]
    # Position to resume after, None once the matches are exhausted.
    next_after: Optional[Any] = None


class ObjectStoreInterface(ABC):
    """
    Asynchronous object store evaluating conditions in disjunctive normal form.

    A DNF is a tuple of condition maps OR-ed together; entries of one map are AND-ed.
    Scalar values are equality targets, collection values are membership targets.
    """

    @abstractmethod
    async def find(self, query: DNF, collection: str = None, after: Any = None, limit: int = 100) -> Page:
        """
        Read up to `limit` documents matching the query, in identity order, starting after the `after` position.
        Every store resource acquired for the read is released before returning.
        """

    @abstractmethod
    async def find_one(self, query: DNF, collection: str = None) -> dict:
        """Find a single document matching the query, or None."""

    @abstractmethod
    async def count(self, query: DNF, collection: str = None) -> int:
        """Count the documents matching the query."""

    @abstractmethod
    async def delete(self, query: DNF, collection: str = None) -> int:
        """Delete every document matching the query and return how many were removed."""

    @abstractmethod
    async def insert(self, document: dict, collection: str = None) -> dict:
        """Insert a single document into the collection."""

    @abstractmethod
    async def insert_many(self, documents: list[dict], collection: str = None) -> dict:
        """Insert multiple documents into the collection."""
