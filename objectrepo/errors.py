class RepositoryError(Exception):
    """Base class for every error raised by the repository layer."""


class InvalidArgumentError(RepositoryError, ValueError):
    """A condition argument failed validation before any store interaction."""


class StoreError(RepositoryError):
    """The underlying object store failed while evaluating a condition."""


class ConditionStreamError(RepositoryError):
    """The producer of a condition stream failed or emitted an invalid item."""
