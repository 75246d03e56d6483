"""
Condition model for repository queries.

A condition is normalized into disjunctive normal form (DNF): a tuple of
condition maps OR-ed with each other, where the entries of each map are
AND-ed. A scalar value is an equality target, a collection value is a
membership target.

Property names must be non-empty and must not start with `$`, so no shape
can smuggle a store operator in place of a field name.
"""
from collections.abc import Iterable, Mapping
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from objectrepo.config import logger
from objectrepo.errors import ConditionStreamError, InvalidArgumentError

DNF = tuple[dict[str, Any], ...]

UNSET: Any = object()

_SCALAR_TYPES = (str, bytes, bytearray)
_COLLECTION_TYPES = (list, tuple, set, frozenset)


def is_collection(value: Any) -> bool:
    """Return True if the value is a membership target rather than an equality target."""
    return isinstance(value, _COLLECTION_TYPES) and not isinstance(value, _SCALAR_TYPES)


def check_property(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise ValueError("property must be a non-empty string")
    if name.startswith("$"):
        raise ValueError(f"property '{name}' must not start with '$'")
    return name


def drop_unsatisfiable(query: DNF) -> DNF:
    """Remove the condition maps holding an empty membership target, they cannot match anything."""
    return tuple(
        conditions for conditions in query
        if not any(is_collection(value) and len(value) == 0 for value in conditions.values())
    )


class Single(BaseModel):
    """
    Single-field equality or membership test.
    """
    property: str = Field(..., min_length=1, description="Name of the entity field to test.")
    value: Any = Field(..., description="Scalar to compare with, or collection to test membership in.")

    @field_validator("property")
    @classmethod
    def check_name(cls, name):
        return check_property(name)

    def to_dnf(self) -> DNF:
        return ({self.property: self.value},)


class Conjunction(BaseModel):
    """
    Multi-field test, the entries are in conjunctive relation (AND). An empty map matches every entity.
    """
    conditions: dict[str, Any] = Field(..., description="Field name to value mapping.")

    @field_validator("conditions")
    @classmethod
    def check_names(cls, conditions):
        for name in conditions:
            check_property(name)
        return conditions

    def to_dnf(self) -> DNF:
        return (dict(self.conditions),)


class Disjunction(BaseModel):
    """
    OR of condition maps, each map being an AND of its entries. An empty group matches nothing.
    """
    groups: list[dict[str, Any]] = Field(..., description="Condition maps in disjunctive relation.")

    @field_validator("groups")
    @classmethod
    def check_names(cls, groups):
        for group in groups:
            for name in group:
                check_property(name)
        return groups

    def to_dnf(self) -> DNF:
        return tuple(dict(group) for group in self.groups)


class Stream(BaseModel):
    """
    Condition maps delivered by an asynchronous source, semantically a Disjunction
    assembled incrementally. An empty stream is legal and matches nothing.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    source: Any = Field(..., description="Async iterable of condition maps.")

    @field_validator("source")
    @classmethod
    def check_source(cls, source):
        if not hasattr(source, "__aiter__"):
            raise ValueError("condition stream must be an async iterable")
        return source

    async def drain(self) -> DNF:
        """
        Consume the whole source and return the accumulated DNF.

        Raises:
            ConditionStreamError: If the producer fails or emits something other than a valid condition map.
        """
        groups = []
        try:
            async for item in self.source:
                if not isinstance(item, Mapping):
                    raise ConditionStreamError(
                        f"condition stream emitted {type(item).__name__}, expected a mapping"
                    )
                for name in item:
                    try:
                        check_property(name)
                    except ValueError as e:
                        raise ConditionStreamError(f"condition stream emitted an invalid map: {e}") from e
                groups.append(dict(item))
        except ConditionStreamError:
            raise
        except Exception as e:
            logger.error("Condition stream failed after %d condition maps: %s", len(groups), e)
            raise ConditionStreamError(f"condition stream failed: {e}") from e
        logger.debug("Condition stream completed with %d condition maps", len(groups))
        return tuple(groups)


Condition = Union[Single, Conjunction, Disjunction, Stream]


def to_condition(condition: Any, value: Any = UNSET) -> Condition:
    """
    Turn a raw condition argument into its tagged variant.

    Accepted shapes:
    - `(property, value)`: single-field test.
    - mapping: conjunctive test.
    - iterable of mappings: disjunction of conjunctive tests.
    - async iterable of mappings: condition stream.
    - an already built `Single`, `Conjunction`, `Disjunction` or `Stream`.

    Raises:
        InvalidArgumentError: If the argument is missing or malformed. Raised synchronously.
    """
    try:
        if value is not UNSET:
            if not isinstance(condition, str) or not condition:
                raise InvalidArgumentError("property must be a non-empty string")
            return Single(property=condition, value=value)
        if isinstance(condition, (Single, Conjunction, Disjunction, Stream)):
            return condition
        if condition is None:
            raise InvalidArgumentError("condition must not be None")
        if isinstance(condition, str):
            raise InvalidArgumentError(f"no value given for property '{condition}'")
        if isinstance(condition, Mapping):
            return Conjunction(conditions=condition)
        if hasattr(condition, "__aiter__"):
            return Stream(source=condition)
        if isinstance(condition, Iterable):
            groups = list(condition)
            for group in groups:
                if not isinstance(group, Mapping):
                    raise InvalidArgumentError(
                        f"condition group members must be mappings, got {type(group).__name__}"
                    )
            return Disjunction(groups=groups)
    except ValidationError as e:
        raise InvalidArgumentError(str(e)) from e
    raise InvalidArgumentError(f"unsupported condition type: {type(condition).__name__}")
