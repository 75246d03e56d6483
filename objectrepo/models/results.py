"""
Lazy result handles returned by repository operations.

No store work happens when a handle is created. A `ResultStream` runs its
query each time it is iterated, a `Deferred` each time it is awaited.
A `ResultStream` may be abandoned mid-iteration, the producer holds no store
resource between items.
"""
from collections.abc import AsyncIterator, Awaitable, Callable, Generator
from contextlib import aclosing
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class ResultStream(Generic[T]):
    """Lazy sequence of entities, consumed with `async for`."""

    def __init__(self, factory: Callable[[], AsyncIterator[T]]):
        self._factory = factory

    def __aiter__(self) -> AsyncIterator[T]:
        return self._factory()

    async def collect(self) -> list[T]:
        """Run the query and materialize every result."""
        async with aclosing(self._factory()) as items:
            return [item async for item in items]

    async def first(self) -> Optional[T]:
        """Run the query and return the first result, releasing the rest."""
        async with aclosing(self._factory()) as items:
            async for item in items:
                return item
        return None


class Deferred(Generic[R]):
    """Single-value result, evaluated on every `await`."""

    def __init__(self, factory: Callable[[], Awaitable[R]]):
        self._factory = factory

    def __await__(self) -> Generator[Any, None, R]:
        return self._factory().__await__()
