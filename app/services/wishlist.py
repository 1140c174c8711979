"""Catalog items saved for later, one entry per item id."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Literal

from ..models import CatalogItem, ContentKind, WishlistEntry
from ..storage import KeyValueStore
from .entity_store import ChangeListener, EntityStore

logger = logging.getLogger(__name__)

WISHLIST_KEY = "streaming_wishlist"

SortOrder = Literal["added", "title", "rating"]


class Wishlist:
    """Wishlist shared by whoever uses this storage scope.

    Entries are not tied to the signed-in account, and newest additions come
    first in ``all()``.
    """

    def __init__(self, substrate: KeyValueStore):
        self._store: EntityStore[WishlistEntry] = EntityStore(
            substrate,
            WISHLIST_KEY,
            WishlistEntry,
            key=lambda entry: entry.id,
            order="prepend",
        )

    @property
    def store(self) -> EntityStore[WishlistEntry]:
        return self._store

    def add(self, item: CatalogItem) -> bool:
        """Snapshot ``item``; ``False`` when it is already saved or storage failed."""

        entry = WishlistEntry.from_item(item)
        result = self._store.insert_unique(entry)
        if result.ok:
            logger.debug("Added %s %s to the wishlist", item.kind, item.id)
        return result.ok

    def remove(self, item_id: int) -> bool:
        result = self._store.remove_by_key(item_id)
        return bool(result.ok and result.value)

    def contains(self, item_id: int) -> bool:
        return self._store.contains(item_id)

    def get(self, item_id: int) -> WishlistEntry | None:
        return self._store.find(item_id)

    def all(self) -> list[WishlistEntry]:
        return self._store.load_all()

    def clear(self) -> None:
        self._store.clear()

    def count(self) -> int:
        return self._store.count()

    def by_kind(self, kind: ContentKind) -> list[WishlistEntry]:
        return [entry for entry in self.all() if entry.kind == kind]

    def recently_added(self, limit: int = 10) -> list[WishlistEntry]:
        return sort_entries(self.all(), "added")[: max(limit, 0)]

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        return self._store.subscribe(listener)


def sort_entries(
    entries: Iterable[WishlistEntry], order: SortOrder = "added"
) -> list[WishlistEntry]:
    """Return ``entries`` ordered for display.

    ``added`` is newest first, ``rating`` highest first, ``title`` A to Z.
    """

    if order == "added":
        return sorted(entries, key=lambda entry: entry.added_at, reverse=True)
    if order == "rating":
        return sorted(entries, key=lambda entry: entry.rating, reverse=True)
    if order == "title":
        return sorted(entries, key=lambda entry: entry.title.casefold())
    raise ValueError(f"Unknown sort order: {order}")
