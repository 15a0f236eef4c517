from __future__ import annotations

import itertools
import logging
import threading
import typing as t

from .models import event_type_key

_logger = logging.getLogger(__name__)

E = t.TypeVar("E")
EventHandler = t.Callable[[E], None]
Unsubscribe = t.Callable[[], None]


class EventHandlerRegistry(t.Generic[E]):
    """Ordered handler lists for one event stream.

    Handlers are either scoped to an event type or wildcard. Each registration
    gets its own token, so registering the same callable twice yields two
    independent subscriptions and unsubscribing one leaves the other in place.
    """

    def __init__(self, name: str = "event") -> None:
        self._name = name
        self._typed: t.Dict[str, t.Dict[int, EventHandler]] = {}
        self._wildcard: t.Dict[int, EventHandler] = {}
        self._tokens = itertools.count()
        self._lock = threading.Lock()

    def add(self, handler: EventHandler, event_type: t.Optional[t.Any] = None) -> Unsubscribe:
        if not callable(handler):
            raise ValueError(f"{self._name} handler must be callable, got {handler!r}")
        if event_type is not None:
            event_type = event_type_key(event_type)
        with self._lock:
            token = next(self._tokens)
            if event_type is None:
                self._wildcard[token] = handler
            else:
                self._typed.setdefault(event_type, {})[token] = handler

        def unsubscribe() -> None:
            with self._lock:
                if event_type is None:
                    self._wildcard.pop(token, None)
                    return
                scoped = self._typed.get(event_type)
                if scoped is not None:
                    scoped.pop(token, None)
                    if not scoped:
                        del self._typed[event_type]

        return unsubscribe

    def dispatch(self, event: E) -> None:
        """Call type-scoped handlers, then wildcard handlers, in registration order.

        A failing handler is logged and does not stop the remaining ones.
        """
        event_type = getattr(event, "type", None)
        with self._lock:
            # dicts keep insertion order, tokens only grow
            handlers = list(self._typed.get(event_type, {}).values()) if event_type is not None else []
            handlers.extend(self._wildcard.values())
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                _logger.exception("%s handler failed for %s", self._name, event_type)

    def clear(self) -> None:
        with self._lock:
            self._typed.clear()
            self._wildcard.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._wildcard) + sum(len(v) for v in self._typed.values())
