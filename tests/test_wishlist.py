"""Tests for the wishlist store."""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import TypeAdapter

from app.errors import PersistenceError
from app.models import CatalogItem, WishlistEntry
from app.services.wishlist import WISHLIST_KEY, Wishlist, sort_entries
from app.storage import MemoryKeyValueStore


def make_item(item_id: int, **overrides) -> CatalogItem:
    payload = {
        "id": item_id,
        "kind": "movie",
        "title": f"Title {item_id}",
        "rating": 7.0,
        "release_date": "2020-01-02",
    }
    payload.update(overrides)
    return CatalogItem.model_validate(payload)


def test_add_then_contains(memory_store) -> None:
    wishlist = Wishlist(memory_store)

    assert wishlist.add(make_item(42, title="X")) is True

    assert wishlist.contains(42) is True
    assert wishlist.count() == 1
    entry = wishlist.all()[0]
    assert entry.title == "X"
    assert entry.added_at.tzinfo is not None


def test_remove_then_absent(memory_store) -> None:
    wishlist = Wishlist(memory_store)
    wishlist.add(make_item(42))

    assert wishlist.remove(42) is True
    assert wishlist.contains(42) is False
    assert wishlist.remove(42) is False


def test_adding_twice_keeps_one_entry(memory_store) -> None:
    wishlist = Wishlist(memory_store)

    assert wishlist.add(make_item(42, title="Original")) is True
    assert wishlist.add(make_item(42, title="Renamed")) is False

    assert wishlist.count() == 1
    assert wishlist.get(42).title == "Original"


def test_newest_entries_come_first(memory_store) -> None:
    wishlist = Wishlist(memory_store)
    for item_id in (1, 2, 3):
        wishlist.add(make_item(item_id))

    assert [entry.id for entry in wishlist.all()] == [3, 2, 1]


def test_blob_uses_iso_dates_and_camel_case(memory_store) -> None:
    wishlist = Wishlist(memory_store)
    wishlist.add(make_item(7, poster_path="/p.jpg", genre_ids=[18, 35]))

    payload = json.loads(memory_store.get(WISHLIST_KEY) or "")

    assert payload[0]["releaseDate"] == "2020-01-02"
    assert payload[0]["posterPath"] == "/p.jpg"
    assert payload[0]["genreIds"] == [18, 35]
    assert payload[0]["kind"] == "movie"
    assert TypeAdapter(datetime).validate_python(payload[0]["addedAt"]).tzinfo is not None


def test_reads_blobs_written_by_the_browser_app(memory_store) -> None:
    memory_store.set(
        WISHLIST_KEY,
        json.dumps(
            [
                {
                    "id": 7,
                    "name": "Show",
                    "first_air_date": "2020-01-01",
                    "vote_average": 8.1,
                    "poster_path": "/s.jpg",
                    "type": "tv",
                    "addedAt": "2024-01-01T00:00:00.000Z",
                },
                {
                    "id": 8,
                    "title": "Film",
                    "release_date": "",
                    "vote_average": None,
                    "type": "movie",
                    "addedAt": "2024-02-01T00:00:00.000Z",
                },
            ]
        ),
    )
    wishlist = Wishlist(memory_store)

    show, film = wishlist.all()

    assert (show.kind, show.title, show.rating) == ("series", "Show", 8.1)
    assert show.release_date == date(2020, 1, 1)
    assert show.poster_path == "/s.jpg"
    assert (film.kind, film.release_date, film.rating) == ("movie", None, 0.0)


def test_corrupt_blob_reads_empty(memory_store) -> None:
    memory_store.set(WISHLIST_KEY, "[{broken")
    wishlist = Wishlist(memory_store)

    assert wishlist.all() == []
    assert wishlist.add(make_item(1)) is True
    assert wishlist.count() == 1


def test_large_collection_survives_reload(memory_store) -> None:
    wishlist = Wishlist(memory_store)
    for item_id in range(120):
        wishlist.add(make_item(item_id, kind="series" if item_id % 2 else "movie"))
    expected = wishlist.all()

    reloaded = Wishlist(memory_store).all()

    assert reloaded == expected
    assert len({entry.id for entry in reloaded}) == 120


def test_storage_failure_reports_false_and_writes_nothing() -> None:
    substrate = MemoryKeyValueStore(quota_bytes=50)
    wishlist = Wishlist(substrate)

    assert wishlist.add(make_item(1)) is False
    assert wishlist.contains(1) is False
    assert substrate.get(WISHLIST_KEY) is None


def test_clear_empties_the_list(memory_store) -> None:
    wishlist = Wishlist(memory_store)
    wishlist.add(make_item(1))
    wishlist.add(make_item(2))

    wishlist.clear()

    assert wishlist.all() == []
    assert memory_store.get(WISHLIST_KEY) is None


def test_by_kind_filters_entries(memory_store) -> None:
    wishlist = Wishlist(memory_store)
    wishlist.add(make_item(1, kind="movie"))
    wishlist.add(make_item(2, kind="tv", title="Series"))

    assert [entry.id for entry in wishlist.by_kind("movie")] == [1]
    assert [entry.id for entry in wishlist.by_kind("series")] == [2]


def test_recently_added_uses_added_at(memory_store) -> None:
    wishlist = Wishlist(memory_store)
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    # Insert out of chronological order so position and timestamp disagree.
    for item_id, offset in ((1, 3), (2, 1), (3, 2)):
        wishlist.store.insert_unique(
            WishlistEntry.from_item(
                make_item(item_id), added_at=base + timedelta(days=offset)
            )
        )

    assert [entry.id for entry in wishlist.recently_added(2)] == [1, 3]
    assert wishlist.recently_added(0) == []


def test_sort_entries_orders() -> None:
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    entries = [
        WishlistEntry.from_item(make_item(1, title="banana", rating=5.0), added_at=base),
        WishlistEntry.from_item(
            make_item(2, title="Apple", rating=9.0), added_at=base + timedelta(hours=1)
        ),
        WishlistEntry.from_item(
            make_item(3, title="cherry", rating=7.5), added_at=base - timedelta(hours=1)
        ),
    ]

    assert [entry.id for entry in sort_entries(entries)] == [2, 1, 3]
    assert [entry.id for entry in sort_entries(entries, "title")] == [2, 1, 3]
    assert [entry.id for entry in sort_entries(entries, "rating")] == [2, 3, 1]

    with pytest.raises(ValueError):
        sort_entries(entries, "popularity")  # type: ignore[arg-type]


def test_entry_round_trips_back_to_item() -> None:
    item = make_item(5, overview="Plot", genre_ids=[1, 2])

    entry = WishlistEntry.from_item(item)

    assert entry.to_item() == item


def test_quota_bounded_store_accepts_lone_surrogates() -> None:
    substrate = MemoryKeyValueStore(quota_bytes=10_000)
    wishlist = Wishlist(substrate)

    assert wishlist.add(make_item(1, title="bad \ud800 title")) is True
    assert wishlist.get(1).title == "bad \ud800 title"

    with pytest.raises(PersistenceError):
        substrate.set("raw", "bad \ud800")
