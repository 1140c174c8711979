"""User directory and the current-session pointer built on top of it."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, Mapping

from pydantic import ValidationError

from ..errors import (
    DuplicateKeyError,
    EmailTakenError,
    InvalidCredentialsError,
    NotAuthenticatedError,
    PersistenceError,
    ValidationFailedError,
)
from ..models import SessionPointer, UserRecord
from ..storage import KeyValueStore
from ..utils import dump_json, normalize_email
from ..validation import validate_email, validate_name
from .credentials import AcceptAnyPassword, CredentialVerifier
from .entity_store import ChangeListener, EntityStore, StoreResult

logger = logging.getLogger(__name__)

AUTH_KEY = "streaming_auth"
USERS_KEY = "streaming_users"

PROFILE_FIELDS: dict[str, str] = {
    "name": "display_name",
    "displayName": "display_name",
    "display_name": "display_name",
    "email": "email",
    "avatar": "avatar_ref",
    "avatarRef": "avatar_ref",
    "avatar_ref": "avatar_ref",
}
IMMUTABLE_FIELDS = frozenset({"id", "createdAt", "created_at"})


def _email_key(record: UserRecord) -> str:
    return normalize_email(record.email)


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class UserDirectory:
    """Registered accounts, unique by email."""

    def __init__(self, substrate: KeyValueStore):
        self._store: EntityStore[UserRecord] = EntityStore(
            substrate,
            USERS_KEY,
            UserRecord,
            key=lambda record: record.id,
            order="append",
        )

    @property
    def store(self) -> EntityStore[UserRecord]:
        return self._store

    def all(self) -> list[UserRecord]:
        return self._store.load_all()

    def get(self, user_id: str) -> UserRecord | None:
        return self._store.find(user_id)

    def find_by_email(self, email: str) -> UserRecord | None:
        wanted = normalize_email(email)
        for record in self._store.load_all():
            if _email_key(record) == wanted:
                return record
        return None

    def register(self, record: UserRecord) -> StoreResult[UserRecord]:
        result = self._store.insert_unique(record, unique_key=_email_key)
        if isinstance(result.error, DuplicateKeyError):
            return StoreResult.failure(EmailTakenError(key=record.email))
        return result

    def update(self, record: UserRecord) -> StoreResult[UserRecord]:
        """Replace the stored record with the same id, keeping emails unique."""

        wanted = _email_key(record)
        for other in self._store.load_all():
            if other.id != record.id and _email_key(other) == wanted:
                return StoreResult.failure(EmailTakenError(key=record.email))
        return self._store.replace(record.id, record)

    def remove(self, user_id: str) -> StoreResult[bool]:
        return self._store.remove_by_key(user_id)

    def count(self) -> int:
        return self._store.count()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        return self._store.subscribe(listener)


class SessionRegister:
    """At most one signed-in user per storage scope.

    Callers are expected to keep one transition in flight at a time; two
    concurrent sign-ups for the same email are not serialized here.
    """

    def __init__(
        self,
        substrate: KeyValueStore,
        directory: UserDirectory | None = None,
        *,
        credentials: CredentialVerifier | None = None,
        latency_seconds: float = 0.0,
    ):
        self._substrate = substrate
        self._directory = directory or UserDirectory(substrate)
        self._credentials = credentials or AcceptAnyPassword()
        self._latency_seconds = latency_seconds
        self._pending = 0
        self._listeners: list[Callable[[], None]] = []

    @property
    def directory(self) -> UserDirectory:
        return self._directory

    @property
    def state(self) -> SessionState:
        if self._pending:
            return SessionState.AUTHENTICATING
        if self.current_user() is not None:
            return SessionState.AUTHENTICATED
        return SessionState.UNAUTHENTICATED

    def current_user(self) -> UserRecord | None:
        """Resolve the pointer; a dangling or unreadable one counts as signed out."""

        pointer = self._read_pointer()
        if pointer is None:
            return None
        user = self._directory.get(pointer.user_id)
        if user is None:
            logger.info("Session points at unknown user %s; treating as signed out", pointer.user_id)
        return user

    def is_authenticated(self) -> bool:
        return self.current_user() is not None

    async def sign_up(self, email: str, password: str, display_name: str) -> UserRecord:
        """Register a new account and sign it in."""

        with self._transition():
            await self._simulate_latency()
            record = UserRecord.create(email, display_name)
            result = self._directory.register(record)
            if not result.ok and result.error is not None:
                raise result.error
            try:
                self._credentials.enroll(record.id, password)
                self._write_pointer(record.id)
            except Exception:
                logger.exception("Sign-up for %s could not be completed; rolling back", record.email)
                self._credentials.forget(record.id)
                self._directory.remove(record.id)
                raise
        logger.info("Registered user %s", record.id)
        self._notify()
        return record

    async def sign_in(self, email: str, password: str) -> UserRecord:
        """Point the session at the account registered under ``email``."""

        with self._transition():
            await self._simulate_latency()
            if not password:
                raise InvalidCredentialsError()
            user = self._directory.find_by_email(email)
            if user is None or not self._credentials.verify(user.id, password):
                raise InvalidCredentialsError()
            self._write_pointer(user.id)
        logger.info("User %s signed in", user.id)
        self._notify()
        return user

    async def sign_out(self) -> None:
        """Clear the pointer; the account stays in the directory."""

        with self._transition():
            try:
                self._substrate.delete(AUTH_KEY)
            except PersistenceError:
                logger.exception("Failed to clear the session pointer")
                raise
        logger.info("Signed out")
        self._notify()

    def update_profile(self, changes: Mapping[str, object]) -> UserRecord:
        """Shallow-merge ``changes`` into the signed-in user's record."""

        current = self.current_user()
        if current is None:
            raise NotAuthenticatedError()

        immutable = IMMUTABLE_FIELDS.intersection(changes)
        if immutable:
            raise ValidationFailedError(
                f"Cannot change {', '.join(sorted(immutable))}"
            )

        update: dict[str, object] = {}
        for name, value in changes.items():
            target = PROFILE_FIELDS.get(name)
            if target is None:
                raise ValidationFailedError(f"Unknown profile field: {name}")
            update[target] = value.strip() if isinstance(value, str) else value

        if "display_name" in update:
            outcome = validate_name(str(update["display_name"] or ""))
            if not outcome.is_valid:
                raise ValidationFailedError(outcome.message)
        if "email" in update and not validate_email(str(update["email"] or "")):
            raise ValidationFailedError("Please enter a valid email address")

        try:
            merged = UserRecord.model_validate({**current.model_dump(), **update})
        except ValidationError as exc:
            raise ValidationFailedError("Invalid profile update") from exc

        result = self._directory.update(merged)
        if not result.ok and result.error is not None:
            raise result.error
        logger.info("Updated profile for user %s", merged.id)
        self._notify()
        return merged

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call ``listener`` whenever the signed-in user changes."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @contextmanager
    def _transition(self) -> Iterator[None]:
        self._pending += 1
        try:
            yield
        finally:
            self._pending -= 1

    async def _simulate_latency(self) -> None:
        if self._latency_seconds > 0:
            await asyncio.sleep(self._latency_seconds)

    def _read_pointer(self) -> SessionPointer | None:
        try:
            raw = self._substrate.get(AUTH_KEY)
        except PersistenceError:
            logger.exception("Failed to read the session pointer")
            return None
        if raw is None:
            return None
        try:
            return SessionPointer.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            logger.warning("Session pointer is corrupt; treating as signed out")
            return None

    def _write_pointer(self, user_id: str) -> None:
        pointer = SessionPointer(user_id=user_id)
        self._substrate.set(AUTH_KEY, dump_json(pointer.model_dump(by_alias=True)))

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:  # pragma: no cover - listener safety net
                logger.exception("Session listener failed")
