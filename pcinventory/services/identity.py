"""
Identity capability.

Authentication itself lives outside the engine; the engine only sees an
Identity value passed in explicitly, and a provider that reports transitions.
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional


@dataclass(frozen=True)
class Identity:
    uid: str
    email: Optional[str] = None


IdentityListener = Callable[[Optional[Identity], Optional[Identity]], Awaitable[None]]


class IdentityProvider:
    """
    Holds "current identity or none" and notifies listeners on every change.
    """

    def __init__(self, identity: Optional[Identity] = None):
        self._current = identity
        self._listeners: List[IdentityListener] = []

    @property
    def current(self) -> Optional[Identity]:
        return self._current

    def add_listener(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def set_identity(self, identity: Optional[Identity]) -> None:
        previous = self._current
        self._current = identity
        if previous == identity:
            return
        for listener in list(self._listeners):
            await listener(previous, identity)
