"""Error taxonomy shared by the stores, the session register and the API."""

from __future__ import annotations


class StreamlistError(Exception):
    """Base class for every expected failure surfaced to callers."""

    default_message = "Something went wrong"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class DuplicateKeyError(StreamlistError):
    """An insert would violate a store's uniqueness invariant."""

    default_message = "Entry already exists"

    def __init__(self, message: str | None = None, *, key: object = None):
        super().__init__(message)
        self.key = key


class EmailTakenError(DuplicateKeyError):
    default_message = "User with this email already exists"


class NotFoundError(StreamlistError):
    default_message = "Entry not found"


class NotAuthenticatedError(StreamlistError):
    default_message = "Not authenticated"


class InvalidCredentialsError(StreamlistError):
    # Unknown email and wrong password deliberately share one message.
    default_message = "Invalid email or password"


class ValidationFailedError(StreamlistError):
    default_message = "Please fill in all fields"


class PersistenceError(StreamlistError):
    """The key-value substrate refused a read or write."""

    default_message = "Storage is unavailable"


class PersistenceCorruptError(PersistenceError):
    """A persisted blob could not be deserialized."""

    default_message = "Stored data is corrupt"


class TransitionInProgressError(StreamlistError):
    """A sign-in, sign-up or sign-out is already running."""

    default_message = "Another account action is already in progress"
