"""
Generic repository exposing find, find one, delete, count and exists operations
parameterized by conditions.

Every operation accepts the same condition shapes:
- `repo.find("status", "open")`: single-field equality.
- `repo.find("status", ["open", "new"])`: single-field membership.
- `repo.find({"status": "open", "owner": "ana"})`: conjunction (AND).
- `repo.find([{"status": "open"}, {"owner": "ana"}])`: disjunction (OR) of conjunctions.
- `repo.find(async_iterable_of_maps)`: condition stream, drained before the store is queried.

Arguments are validated synchronously, before any store interaction, and invalid ones
raise `InvalidArgumentError`. The returned handles are lazy: nothing reaches the store
until a `ResultStream` is iterated or a `Deferred` awaited. Store failures are raised as
`StoreError` and condition stream failures as `ConditionStreamError` from the handle.
Documents that do not fit the entity model raise pydantic's `ValidationError` from
`find` and `find_one` alike.

`find` reads the store in bounded pages, so leaving an `async for` early, with `break`
or through cancellation, leaves no store cursor open.

`find_one` returns the first document in the store's delivery order. When several
condition maps match different entities, which one is returned is not deterministic.
"""
from collections.abc import AsyncIterator
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

from objectrepo.config import logger, settings
from objectrepo.errors import InvalidArgumentError, StoreError
from objectrepo.models.conditions import DNF, UNSET, Condition, Stream, drop_unsatisfiable, to_condition
from objectrepo.models.results import Deferred, ResultStream
from objectrepo.services.object_store.object_store import ObjectStoreInterface

T = TypeVar("T", bound=BaseModel)
ID = TypeVar("ID")


class ObjectRepository(Generic[T, ID]):
    def __init__(self, store: ObjectStoreInterface, model: type[T], collection: str = None):
        self.store = store
        self.model = model
        self.collection = collection

    def find(self, condition: Any, value: Any = UNSET) -> ResultStream[T]:
        """
        Find entities matching the condition.

        Returns:
            ResultStream: Lazy sequence of entities, empty if none match. Each iteration re-runs the query.
        Raises:
            InvalidArgumentError: If the condition is missing or malformed.
        """
        parsed = self._parse(condition, value)
        return ResultStream(lambda: self._find(parsed))

    def find_one(self, condition: Any, value: Any = UNSET) -> Deferred[Optional[T]]:
        """
        Find the first entity matching the condition.

        Returns:
            Deferred: Resolves to the entity, or None if nothing matches.
        """
        parsed = self._parse(condition, value)
        return Deferred(lambda: self._find_one(parsed))

    def delete(self, condition: Any, value: Any = UNSET) -> Deferred[None]:
        """
        Delete every entity matching the condition.

        Returns:
            Deferred: Resolves once the store has removed the entities, or immediately if nothing matched.
        """
        parsed = self._parse(condition, value)
        return Deferred(lambda: self._delete(parsed))

    def count(self, condition: Any, value: Any = UNSET) -> Deferred[int]:
        """Count the entities matching the condition."""
        parsed = self._parse(condition, value)
        return Deferred(lambda: self._count(parsed))

    def exists(self, condition: Any, value: Any = UNSET) -> Deferred[bool]:
        """Check whether at least one entity matches the condition."""
        parsed = self._parse(condition, value)
        return Deferred(lambda: self._exists(parsed))

    @staticmethod
    def _parse(condition: Any, value: Any) -> Condition:
        try:
            return to_condition(condition, value)
        except InvalidArgumentError as e:
            logger.warning("Rejected condition %r: %s", condition, e)
            raise

    @staticmethod
    async def _resolve(condition: Condition) -> DNF:
        if isinstance(condition, Stream):
            query = await condition.drain()
        else:
            query = condition.to_dnf()
        return drop_unsatisfiable(query)

    async def _find(self, condition: Condition) -> AsyncIterator[T]:
        # Pages are read whole, so no store cursor stays open while an entity is handed out.
        query = await self._resolve(condition)
        if not query:
            return
        after = None
        while True:
            try:
                page = await self.store.find(query, self.collection, after=after, limit=settings.FETCH_BATCH_SIZE)
            except Exception as e:
                raise StoreError(f"find failed for {query}: {e}") from e
            for document in page.documents:
                yield self.model.model_validate(document)
            if page.next_after is None:
                return
            after = page.next_after

    async def _find_one(self, condition: Condition) -> Optional[T]:
        query = await self._resolve(condition)
        if not query:
            return None
        try:
            document = await self.store.find_one(query, self.collection)
        except Exception as e:
            raise StoreError(f"find_one failed for {query}: {e}") from e
        if document is None:
            return None
        return self.model.model_validate(document)

    async def _delete(self, condition: Condition) -> None:
        query = await self._resolve(condition)
        if not query:
            logger.debug("Empty condition, nothing to delete")
            return
        try:
            deleted = await self.store.delete(query, self.collection)
        except Exception as e:
            raise StoreError(f"delete failed for {query}: {e}") from e
        logger.debug("Delete for %s removed %d entities", query, deleted)

    async def _count(self, condition: Condition) -> int:
        query = await self._resolve(condition)
        if not query:
            return 0
        try:
            return await self.store.count(query, self.collection)
        except Exception as e:
            raise StoreError(f"count failed for {query}: {e}") from e

    async def _exists(self, condition: Condition) -> bool:
        return await self._count(condition) > 0
