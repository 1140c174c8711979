"""Password checks applied by the session register on sign-in."""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from werkzeug.security import check_password_hash, generate_password_hash

from ..storage import KeyValueStore
from .entity_store import EntityStore

logger = logging.getLogger(__name__)

CREDENTIALS_KEY = "streaming_credentials"


class CredentialVerifier(Protocol):
    def enroll(self, user_id: str, password: str) -> None: ...

    def verify(self, user_id: str, password: str) -> bool: ...

    def forget(self, user_id: str) -> None: ...


class AcceptAnyPassword:
    """Reference behaviour: any non-empty password signs the user in."""

    def enroll(self, user_id: str, password: str) -> None:
        return None

    def verify(self, user_id: str, password: str) -> bool:
        return bool(password)

    def forget(self, user_id: str) -> None:
        return None


class CredentialRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(
        validation_alias=AliasChoices("userId", "user_id"),
        serialization_alias="userId",
    )
    password_hash: str = Field(
        validation_alias=AliasChoices("passwordHash", "password_hash"),
        serialization_alias="passwordHash",
    )


class HashedCredentials:
    """Werkzeug password hashes kept in their own blob, apart from user records."""

    def __init__(self, substrate: KeyValueStore, *, iterations: int = 260_000):
        self._method = f"pbkdf2:sha256:{iterations}"
        self._store: EntityStore[CredentialRecord] = EntityStore(
            substrate,
            CREDENTIALS_KEY,
            CredentialRecord,
            key=lambda record: record.user_id,
        )

    def enroll(self, user_id: str, password: str) -> None:
        """Store a fresh hash for ``user_id``; raises ``PersistenceError``."""

        record = CredentialRecord(
            user_id=user_id,
            password_hash=generate_password_hash(password, method=self._method),
        )
        self._store.remove_by_key(user_id)
        result = self._store.insert_unique(record)
        if not result.ok and result.error is not None:
            raise result.error

    def verify(self, user_id: str, password: str) -> bool:
        if not password:
            return False
        record = self._store.find(user_id)
        if record is None:
            logger.info("No stored credential for user %s", user_id)
            return False
        try:
            return check_password_hash(record.password_hash, password)
        except ValueError:
            logger.warning("Unreadable password hash for user %s", user_id)
            return False

    def forget(self, user_id: str) -> None:
        self._store.remove_by_key(user_id)
