"""Minimal observable state container with cached, equality-checked selectors.

One editing session owns one ``SelectorStore``. Mutations go through
``set_state``; a next state that is the same object as the current one is
dropped without notifying anybody, so every updater must return a new object
when content changes and the very same object when it does not.
"""

import logging
import operator
from collections.abc import Mapping
from typing import Any, Callable, Generic, List, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

S = TypeVar("S")
V = TypeVar("V")

Listener = Callable[[], None]
EqualityFn = Callable[[Any, Any], bool]


def reference_equals(a: Any, b: Any) -> bool:
    return a is b


def shallow_equal(a: Any, b: Any) -> bool:
    """Identity, or same keys/positions whose values are identical one level deep."""
    if a is b:
        return True
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if len(a) != len(b):
            return False
        for key, value in a.items():
            if key not in b or b[key] is not value:
                return False
        return True
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)) and type(a) is type(b):
        return len(a) == len(b) and all(x is y for x, y in zip(a, b))
    return False


def value_equals(a: Any, b: Any) -> bool:
    """Equality by value, for selectors that derive primitives or tuples of primitives."""
    return operator.eq(a, b)


class Selection(Generic[V]):
    """A subscribed selector that keeps the last value it handed out.

    ``value`` only changes identity when ``equality_fn`` says the freshly
    selected value differs from the previous one.
    """

    def __init__(
        self,
        store: "SelectorStore",
        selector: Callable[[Any], V],
        equality_fn: EqualityFn = reference_equals,
        on_change: Optional[Callable[[V], None]] = None,
    ):
        self._store = store
        self._selector = selector
        self._equality_fn = equality_fn
        self._on_change = on_change
        self._value: V = selector(store.get_state())
        self._unsubscribe: Optional[Callable[[], None]] = store.subscribe(self._handle_change)

    @property
    def value(self) -> V:
        return self._value

    def get(self) -> V:
        """Select again from the current state, keeping the cached reference when equal."""
        nxt = self._selector(self._store.get_state())
        if self._equality_fn(self._value, nxt):
            return self._value
        self._value = nxt
        return nxt

    def _handle_change(self) -> None:
        previous = self._value
        current = self.get()
        if current is not previous and self._on_change is not None:
            self._on_change(current)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def closed(self) -> bool:
        return self._unsubscribe is None


class SelectorStore(Generic[S]):
    """Single mutable state cell with synchronous subscriptions."""

    def __init__(self, initial_state: S):
        self._state = initial_state
        self._listeners: List[Listener] = []

    def get_state(self) -> S:
        return self._state

    def set_state(self, updater: Union[S, Callable[[S], S]]) -> bool:
        """Replace the state; returns ``False`` when the update was a no-op.

        When a callable updater raises, the previous state is kept, nobody is
        notified and the exception propagates to the caller.
        """
        if callable(updater):
            try:
                nxt = updater(self._state)
            except Exception:
                logger.warning("State updater %r failed, keeping previous state", updater, exc_info=True)
                raise
        else:
            nxt = updater

        if nxt is self._state:
            return False
        self._state = nxt
        self._notify()
        return True

    def _notify(self) -> None:
        first_error: Optional[BaseException] = None
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as exc:
                logger.exception("Store listener %r failed", listener)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a zero-argument listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def use_selector(
        self,
        selector: Callable[[S], V],
        equality_fn: EqualityFn = reference_equals,
        on_change: Optional[Callable[[V], None]] = None,
    ) -> Selection[V]:
        """Subscribe to a derived slice of the state."""
        return Selection(self, selector, equality_fn, on_change)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
