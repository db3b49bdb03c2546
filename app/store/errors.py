"""Error taxonomy raised by the counter store."""

from __future__ import annotations


class CounterStoreError(Exception):
    """Base class for every failure reported by the counter store."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInputError(CounterStoreError, ValueError):
    """A name or count supplied by the caller is blank, malformed, or out of range."""

    status_code = 400


class NotFoundError(CounterStoreError, LookupError):
    """A lookup by normalized name matched nothing."""

    status_code = 404


class NoActiveBossError(CounterStoreError):
    """An implicit-target boss operation found no unbeaten boss in the channel."""

    status_code = 400


class PersistenceError(CounterStoreError):
    """The snapshot could not be read from or written to durable storage."""

    status_code = 500
