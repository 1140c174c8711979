"""View-facing state mirrored from the stores.

Each binding subscribes to its store, re-reads the whole collection after
every change and republishes an immutable snapshot, so a read right after a
mutation always reflects it.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Callable, Generic, Iterator, Mapping, TypeVar

from ..errors import StreamlistError, TransitionInProgressError
from ..models import CatalogItem, UserRecord, WishlistEntry
from ..validation import validate_sign_in, validate_sign_up
from .session import SessionRegister
from .wishlist import Wishlist

logger = logging.getLogger(__name__)

StateT = TypeVar("StateT")


@dataclass(frozen=True, slots=True)
class AuthState:
    user: UserRecord | None = None
    is_loading: bool = True
    error: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


@dataclass(frozen=True, slots=True)
class WishlistState:
    items: tuple[WishlistEntry, ...] = ()
    is_loading: bool = True

    @property
    def count(self) -> int:
        return len(self.items)


class StatePublisher(Generic[StateT]):
    """Holds a snapshot and notifies subscribers when it changes."""

    def __init__(self, initial: StateT):
        self._state = initial
        self._subscribers: list[Callable[[StateT], None]] = []

    @property
    def state(self) -> StateT:
        return self._state

    def subscribe(self, listener: Callable[[StateT], None]) -> Callable[[], None]:
        self._subscribers.append(listener)

        def _unsubscribe() -> None:
            if listener in self._subscribers:
                self._subscribers.remove(listener)

        return _unsubscribe

    def _publish(self, state: StateT) -> None:
        previous = self._state
        if previous is state or previous == state:
            return
        self._state = state
        for listener in list(self._subscribers):
            try:
                listener(state)
            except Exception:  # pragma: no cover - subscriber safety net
                logger.exception("State subscriber failed")


class AuthBinding(StatePublisher[AuthState]):
    """Sign-in state for the views, with one account action at a time."""

    def __init__(self, register: SessionRegister):
        super().__init__(AuthState())
        self._register = register
        self._in_flight = False
        self._disposers = [
            register.subscribe(self.refresh),
            register.directory.subscribe(lambda _change: self.refresh()),
        ]
        self.refresh()

    def refresh(self) -> None:
        self._publish(
            replace(
                self._state,
                user=self._register.current_user(),
                is_loading=self._in_flight,
            )
        )

    async def sign_in(self, email: str, password: str) -> UserRecord:
        email = email.strip()
        with self._transition():
            validate_sign_in(email, password)
            user = await self._register.sign_in(email, password)
            self._finish(user)
        return user

    async def sign_up(
        self,
        name: str,
        email: str,
        password: str,
        confirm_password: str | None = None,
    ) -> UserRecord:
        email = email.strip()
        with self._transition():
            validate_sign_up(name, email, password, confirm_password)
            user = await self._register.sign_up(email, password, name)
            self._finish(user)
        return user

    async def sign_out(self) -> None:
        with self._transition():
            await self._register.sign_out()
            self._finish(None)

    def update_profile(self, changes: Mapping[str, object]) -> UserRecord:
        try:
            user = self._register.update_profile(changes)
        except StreamlistError as exc:
            self._publish(replace(self._state, error=exc.message))
            raise
        self._publish(replace(self._state, user=user, error=None))
        return user

    def close(self) -> None:
        for dispose in self._disposers:
            dispose()
        self._disposers.clear()

    @contextmanager
    def _transition(self) -> Iterator[None]:
        if self._in_flight:
            raise TransitionInProgressError()
        self._in_flight = True
        self._publish(replace(self._state, is_loading=True, error=None))
        try:
            yield
        except StreamlistError as exc:
            self._fail(exc.message)
            raise
        except Exception:
            logger.exception("Account action failed unexpectedly")
            self._fail(StreamlistError.default_message)
            raise
        finally:
            # Cancellation skips both handlers above.
            if self._in_flight:
                self._fail(None)

    def _finish(self, user: UserRecord | None) -> None:
        self._in_flight = False
        self._publish(AuthState(user=user, is_loading=False))

    def _fail(self, message: str | None) -> None:
        self._in_flight = False
        self._publish(replace(self._state, is_loading=False, error=message))


class WishlistBinding(StatePublisher[WishlistState]):
    def __init__(self, wishlist: Wishlist):
        super().__init__(WishlistState())
        self._wishlist = wishlist
        self._unsubscribe = wishlist.subscribe(lambda _change: self.refresh())
        self.refresh()

    def refresh(self) -> None:
        self._publish(WishlistState(items=tuple(self._wishlist.all()), is_loading=False))

    @property
    def count(self) -> int:
        return self._state.count

    def is_in_wishlist(self, item_id: int) -> bool:
        return any(entry.id == item_id for entry in self._state.items)

    def add(self, item: CatalogItem) -> bool:
        return self._wishlist.add(item)

    def remove(self, item_id: int) -> bool:
        return self._wishlist.remove(item_id)

    def clear(self) -> None:
        self._wishlist.clear()
        # A failed clear leaves the blob in place; re-read rather than assume.
        self.refresh()

    def close(self) -> None:
        self._unsubscribe()
