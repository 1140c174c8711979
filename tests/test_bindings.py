"""Tests for the view-facing auth and wishlist bindings."""

from __future__ import annotations

import asyncio

import pytest

from app.errors import (
    EmailTakenError,
    TransitionInProgressError,
    ValidationFailedError,
)
from app.models import CatalogItem
from app.services.bindings import AuthBinding, AuthState, WishlistBinding
from app.services.session import AUTH_KEY, SessionRegister
from app.services.wishlist import Wishlist
from app.storage import MemoryKeyValueStore


def make_item(item_id: int) -> CatalogItem:
    return CatalogItem(id=item_id, kind="movie", title=f"Movie {item_id}")


def test_auth_binding_starts_from_persisted_session(memory_store) -> None:
    register = SessionRegister(memory_store)
    user = asyncio.run(register.sign_up("a@x.com", "secret1", "Ann"))

    binding = AuthBinding(SessionRegister(memory_store))

    assert binding.state == AuthState(user=user, is_loading=False)
    assert binding.state.is_authenticated


@pytest.mark.anyio
async def test_sign_up_publishes_loading_then_user(memory_store) -> None:
    binding = AuthBinding(SessionRegister(memory_store))
    states: list[AuthState] = []
    binding.subscribe(states.append)

    user = await binding.sign_up("Ann", " a@x.com ", "secret1", "secret1")

    assert user.email == "a@x.com"
    assert states[0].is_loading is True
    assert states[-1] == AuthState(user=user, is_loading=False)


@pytest.mark.anyio
async def test_validation_failure_sets_error_without_touching_storage(memory_store) -> None:
    binding = AuthBinding(SessionRegister(memory_store))

    with pytest.raises(ValidationFailedError, match="Passwords do not match"):
        await binding.sign_up("Ann", "a@x.com", "secret1", "secret2")
    assert binding.state.error == "Passwords do not match"
    assert binding.state.is_loading is False

    with pytest.raises(ValidationFailedError, match="valid email"):
        await binding.sign_in("not-an-email", "secret1")
    assert memory_store.get("streaming_users") is None


@pytest.mark.anyio
async def test_store_errors_surface_on_the_state(memory_store) -> None:
    binding = AuthBinding(SessionRegister(memory_store))
    await binding.sign_up("Ann", "a@x.com", "secret1")
    await binding.sign_out()

    with pytest.raises(EmailTakenError):
        await binding.sign_up("Ann", "a@x.com", "secret1")

    assert binding.state.error == "User with this email already exists"
    assert binding.state.user is None

    user = await binding.sign_in("a@x.com", "secret1")
    assert binding.state == AuthState(user=user, is_loading=False, error=None)


def test_second_transition_is_rejected_while_first_runs(memory_store) -> None:
    binding = AuthBinding(SessionRegister(memory_store, latency_seconds=0.05))

    async def runner() -> None:
        first = asyncio.create_task(binding.sign_up("Ann", "a@x.com", "secret1"))
        await asyncio.sleep(0)
        with pytest.raises(TransitionInProgressError):
            await binding.sign_in("a@x.com", "secret1")
        await first

    asyncio.run(runner())

    assert binding.state.is_authenticated
    assert binding.state.is_loading is False


class PointerWriteBreaksOnce(MemoryKeyValueStore):
    def __init__(self) -> None:
        super().__init__()
        self.broken = True

    def set(self, key: str, value: str) -> None:
        if key == AUTH_KEY and self.broken:
            self.broken = False
            raise RuntimeError("disk went away")
        super().set(key, value)


@pytest.mark.anyio
async def test_unexpected_failure_releases_the_binding() -> None:
    binding = AuthBinding(SessionRegister(PointerWriteBreaksOnce()))

    with pytest.raises(RuntimeError):
        await binding.sign_up("Ann", "a@x.com", "secret1")

    assert binding.state.is_loading is False
    assert binding.state.error == "Something went wrong"
    assert binding.state.user is None

    user = await binding.sign_up("Ann", "a@x.com", "secret1")
    assert binding.state == AuthState(user=user, is_loading=False)


def test_cancelled_sign_up_releases_the_binding(memory_store) -> None:
    binding = AuthBinding(SessionRegister(memory_store, latency_seconds=0.05))

    async def runner() -> None:
        task = asyncio.create_task(binding.sign_up("Ann", "a@x.com", "secret1"))
        await asyncio.sleep(0)
        assert binding.state.is_loading is True
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert binding.state.is_loading is False
        await binding.sign_up("Ann", "a@x.com", "secret1")

    asyncio.run(runner())

    assert binding.state.is_authenticated
    assert binding.state.error is None


@pytest.mark.anyio
async def test_profile_update_refreshes_state(memory_store) -> None:
    binding = AuthBinding(SessionRegister(memory_store))
    await binding.sign_up("Ann", "a@x.com", "secret1")

    binding.update_profile({"name": "Annie"})
    assert binding.state.user.display_name == "Annie"

    with pytest.raises(ValidationFailedError):
        binding.update_profile({"id": "someone-else"})
    assert binding.state.error == "Cannot change id"
    assert binding.state.user.display_name == "Annie"


def test_wishlist_binding_tracks_membership(memory_store) -> None:
    binding = WishlistBinding(Wishlist(memory_store))
    counts: list[int] = []
    binding.subscribe(lambda state: counts.append(state.count))

    assert binding.add(make_item(1)) is True
    assert binding.add(make_item(2)) is True
    assert binding.add(make_item(2)) is False
    assert binding.is_in_wishlist(2)
    assert binding.remove(1) is True
    assert binding.remove(1) is False

    assert binding.count == 1
    assert [entry.id for entry in binding.state.items] == [2]
    assert counts == [1, 2, 1]


def test_wishlist_binding_sees_other_writers(memory_store) -> None:
    shared = Wishlist(memory_store)
    binding = WishlistBinding(shared)

    shared.add(make_item(9))

    assert binding.is_in_wishlist(9)

    binding.clear()
    assert binding.count == 0
    assert binding.state.is_loading is False


def test_closed_binding_stops_listening(memory_store) -> None:
    shared = Wishlist(memory_store)
    binding = WishlistBinding(shared)
    binding.close()

    shared.add(make_item(3))

    assert binding.count == 0
