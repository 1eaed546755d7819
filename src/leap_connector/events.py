"""
Events surfaced by a transport and the registry that delivers them.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Data:
    """Raw bytes received from the peer, not split into records."""
    payload: bytes


@dataclass(frozen=True)
class Disconnect:
    """The peer closed or the link was declared dead."""


@dataclass(frozen=True)
class Error:
    """A transport level error occurred."""
    cause: BaseException


@dataclass(frozen=True)
class Timeout:
    """The idle read timer fired. Always followed by a Disconnect."""


TransportEvent = Union[Data, Disconnect, Error, Timeout]
Handler = Callable[[TransportEvent], None]


class EventSource:
    """Registry of handlers called with each event, in registration order."""

    def __init__(self):
        self._handlers: list[Handler] = []

    def __iadd__(self, handler: Handler) -> "EventSource":
        return self.add(handler)

    def __isub__(self, handler: Handler) -> "EventSource":
        return self.remove(handler)

    def add(self, handler: Handler) -> "EventSource":
        self._handlers.append(handler)
        return self

    def remove(self, handler: Handler) -> "EventSource":
        if handler in self._handlers:
            self._handlers.remove(handler)
        return self

    def subscribe(self, kind: type, handler: Callable) -> Handler:
        """Register a handler that only receives events of one class.

        Returns:
            The registered wrapper, for use with remove()
        """
        def filtered(event: TransportEvent) -> None:
            if isinstance(event, kind):
                handler(event)

        self.add(filtered)
        return filtered

    def handlers(self) -> tuple:
        return tuple(self._handlers)

    def clear(self) -> None:
        self._handlers.clear()

    def fire(self, event: TransportEvent) -> None:
        # Iterate a snapshot so handlers may unregister themselves.
        for handler in tuple(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed on %r", handler, event)
