"""Uniquely keyed collections persisted as a single blob."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Literal, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import (
    DuplicateKeyError,
    NotFoundError,
    PersistenceCorruptError,
    PersistenceError,
    StreamlistError,
)
from ..storage import KeyValueStore
from ..utils import dump_json

logger = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", bound=BaseModel)
ValueT = TypeVar("ValueT")

InsertOrder = Literal["append", "prepend"]
ChangeKind = Literal["insert", "remove", "replace", "clear"]
ChangeListener = Callable[[ChangeKind], None]


@dataclass(slots=True)
class StoreResult(Generic[ValueT]):
    """Outcome of a store mutation; expected failures never raise."""

    ok: bool
    value: ValueT | None = None
    error: StreamlistError | None = None

    @classmethod
    def success(cls, value: ValueT | None = None) -> "StoreResult[ValueT]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: StreamlistError) -> "StoreResult[ValueT]":
        return cls(ok=False, error=error)


class EntityStore(Generic[EntityT]):
    """A collection read and written as a whole under one substrate key.

    Every mutation is read-all, modify, write-all. Two instances sharing a
    substrate and key do not coordinate: the last write wins.
    """

    def __init__(
        self,
        substrate: KeyValueStore,
        blob_key: str,
        model: type[EntityT],
        *,
        key: Callable[[EntityT], Hashable],
        order: InsertOrder = "append",
    ):
        self._substrate = substrate
        self._blob_key = blob_key
        self._model = model
        self._key = key
        self._order = order
        self._listeners: list[ChangeListener] = []

    @property
    def blob_key(self) -> str:
        return self._blob_key

    def key_of(self, entity: EntityT) -> Hashable:
        return self._key(entity)

    def load_all(self) -> list[EntityT]:
        """Return the persisted collection, or an empty list if unreadable."""

        try:
            return self._read()
        except PersistenceError:
            logger.exception("Failed to read %s", self._blob_key)
            return []

    def insert_unique(
        self,
        entity: EntityT,
        unique_key: Callable[[EntityT], Hashable] | None = None,
    ) -> StoreResult[EntityT]:
        """Insert ``entity`` unless another entry shares its unique key."""

        key_fn = unique_key or self._key
        candidate = key_fn(entity)
        try:
            entities = self._read()
            if any(key_fn(existing) == candidate for existing in entities):
                logger.debug("Rejected duplicate %r in %s", candidate, self._blob_key)
                return StoreResult.failure(DuplicateKeyError(key=candidate))
            if self._order == "prepend":
                updated = [entity, *entities]
            else:
                updated = [*entities, entity]
            self._write(updated)
        except PersistenceError as exc:
            logger.exception("Failed to insert into %s", self._blob_key)
            return StoreResult.failure(exc)
        self._notify("insert")
        return StoreResult.success(entity)

    def remove_by_key(self, key: Hashable) -> StoreResult[bool]:
        """Drop entries matching ``key``; ``value`` reports whether any did."""

        try:
            entities = self._read()
            remaining = [entity for entity in entities if self._key(entity) != key]
            if len(remaining) == len(entities):
                return StoreResult.success(False)
            self._write(remaining)
        except PersistenceError as exc:
            logger.exception("Failed to remove %r from %s", key, self._blob_key)
            return StoreResult.failure(exc)
        self._notify("remove")
        return StoreResult.success(True)

    def replace(self, key: Hashable, entity: EntityT) -> StoreResult[EntityT]:
        """Swap the entry stored under ``key`` for ``entity``."""

        try:
            entities = self._read()
            index = next(
                (i for i, existing in enumerate(entities) if self._key(existing) == key),
                None,
            )
            if index is None:
                return StoreResult.failure(NotFoundError(f"No entry for {key!r}"))
            entities[index] = entity
            self._write(entities)
        except PersistenceError as exc:
            logger.exception("Failed to update %r in %s", key, self._blob_key)
            return StoreResult.failure(exc)
        self._notify("replace")
        return StoreResult.success(entity)

    def find(self, key: Hashable) -> EntityT | None:
        for entity in self.load_all():
            if self._key(entity) == key:
                return entity
        return None

    def contains(self, key: Hashable) -> bool:
        return self.find(key) is not None

    def clear(self) -> StoreResult[None]:
        """Delete the blob; the next read returns an empty collection."""

        try:
            self._substrate.delete(self._blob_key)
        except PersistenceError as exc:
            logger.exception("Failed to clear %s", self._blob_key)
            return StoreResult.failure(exc)
        self._notify("clear")
        return StoreResult.success()

    def count(self) -> int:
        return len(self.load_all())

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Call ``listener`` after every successful mutation.

        Returns a callable that removes the subscription.
        """

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _read(self) -> list[EntityT]:
        raw = self._substrate.get(self._blob_key)
        if raw is None:
            return []
        try:
            return self._decode(raw)
        except PersistenceCorruptError as exc:
            logger.warning("%s; treating as empty", exc.message)
            return []

    def _decode(self, raw: str) -> list[EntityT]:
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise PersistenceCorruptError(f"Blob {self._blob_key} is not valid JSON") from exc
        if not isinstance(payload, list):
            raise PersistenceCorruptError(f"Blob {self._blob_key} is not a list")
        try:
            return [self._model.model_validate(item) for item in payload]
        except ValidationError as exc:
            raise PersistenceCorruptError(
                f"Blob {self._blob_key} holds invalid entries"
            ) from exc

    def _write(self, entities: list[EntityT]) -> None:
        payload = [entity.model_dump(mode="json", by_alias=True) for entity in entities]
        self._substrate.set(self._blob_key, dump_json(payload))

    def _notify(self, change: ChangeKind) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:  # pragma: no cover - listener safety net
                logger.exception("Change listener for %s failed", self._blob_key)
