from .errors import ConditionStreamError, InvalidArgumentError, RepositoryError, StoreError
from .models.conditions import Conjunction, Disjunction, Single, Stream
from .models.results import Deferred, ResultStream
from .repository import ObjectRepository

__all__ = [
    "ObjectRepository",
    "ResultStream",
    "Deferred",
    "Single",
    "Conjunction",
    "Disjunction",
    "Stream",
    "RepositoryError",
    "InvalidArgumentError",
    "StoreError",
    "ConditionStreamError",
]
