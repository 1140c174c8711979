"""Key-value persistence substrates backing the entity stores."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterator, Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .database import Database
from .db_models import KeyValueEntry
from .errors import PersistenceError

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """String-to-string storage with local-storage semantics."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> Iterator[str]: ...


class MemoryKeyValueStore:
    """Process-local substrate, optionally bounded by a byte quota."""

    def __init__(
        self,
        initial: dict[str, str] | None = None,
        *,
        quota_bytes: int | None = None,
    ):
        self._data: dict[str, str] = dict(initial or {})
        self._quota_bytes = quota_bytes

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self._quota_bytes is not None:
            projected = self._used_bytes(exclude=key) + _size_of(key, value)
            if projected > self._quota_bytes:
                raise PersistenceError("Storage quota exceeded")
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        return iter(list(self._data))

    def _used_bytes(self, *, exclude: str | None = None) -> int:
        return sum(
            _size_of(key, value)
            for key, value in self._data.items()
            if key != exclude
        )

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"MemoryKeyValueStore(keys={sorted(self._data)!r})"


class SqlKeyValueStore:
    """Substrate persisting each blob as a row in ``kv_entries``.

    Every call opens its own session, so a write is visible to the next read
    from any store sharing the database.
    """

    def __init__(self, database: Database):
        self._database = database

    @property
    def database(self) -> Database:
        return self._database

    def get(self, key: str) -> str | None:
        try:
            with self._database.session() as session:
                entry = session.get(KeyValueEntry, key)
                return entry.value if entry is not None else None
        except (SQLAlchemyError, UnicodeError) as exc:
            raise PersistenceError(f"Unable to read {key}") from exc

    def set(self, key: str, value: str) -> None:
        try:
            with self._database.session() as session:
                entry = session.get(KeyValueEntry, key)
                if entry is None:
                    session.add(KeyValueEntry(key=key, value=value))
                else:
                    entry.value = value
                session.commit()
        except (SQLAlchemyError, UnicodeError) as exc:
            raise PersistenceError(f"Unable to write {key}") from exc

    def delete(self, key: str) -> None:
        try:
            with self._database.session() as session:
                entry = session.get(KeyValueEntry, key)
                if entry is not None:
                    session.delete(entry)
                    session.commit()
        except (SQLAlchemyError, UnicodeError) as exc:
            raise PersistenceError(f"Unable to delete {key}") from exc

    def keys(self) -> Iterator[str]:
        try:
            with self._database.session() as session:
                result = session.execute(select(KeyValueEntry.key))
                return iter([row[0] for row in result.all()])
        except (SQLAlchemyError, UnicodeError) as exc:
            raise PersistenceError("Unable to list storage keys") from exc


def _size_of(key: str, value: str) -> int:
    try:
        return len(key.encode("utf-8")) + len(value.encode("utf-8"))
    except UnicodeEncodeError as exc:
        raise PersistenceError("Value cannot be stored as UTF-8") from exc


def build_key_value_store(settings: "Settings") -> KeyValueStore:
    """Return the substrate selected by ``STORAGE_BACKEND``."""

    if settings.storage_backend == "memory":
        logger.info("Using in-memory storage; data will not survive restarts")
        return MemoryKeyValueStore(quota_bytes=settings.storage_quota_bytes)

    database = Database(settings.database_url)
    database.create_all()
    logger.info("Using SQLite storage at %s", settings.database_url)
    return SqlKeyValueStore(database)
