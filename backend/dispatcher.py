# Domain Event Dispatcher

import inspect
from collections import defaultdict
from typing import Awaitable, Callable, Dict, Iterable, List, Type, Union

from events import DomainEvent
from logging_config import logger

Handler = Callable[[DomainEvent], Union[None, Awaitable[None]]]


class EventDispatcher:
    """
    Delivers domain events to subscribed handlers, best-effort.

    A handler that raises is logged and skipped; the remaining handlers still
    run and nothing propagates back to the request that produced the event.
    Handlers may be plain functions or coroutines.
    """

    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[DomainEvent], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[Handler]:
        return list(self._handlers.get(event_type, []))

    async def dispatch(self, events: Iterable[DomainEvent]) -> int:
        """Runs every handler for every event. Returns the number of handler failures."""
        failures = 0
        for event in events:
            for handler in self.handlers_for(type(event)):
                try:
                    result = handler(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    failures += 1
                    logger.exception(
                        f"[Events] Handler {getattr(handler, '__name__', handler)!r} "
                        f"failed for {type(event).__name__}"
                    )
        return failures


class EventRecorder:
    """Mixin for services: collects events during a request, drained by the web layer."""

    def __init__(self):
        self._events: List[DomainEvent] = []

    def _emit(self, event: DomainEvent) -> None:
        self._events.append(event)

    def drain_events(self) -> List[DomainEvent]:
        events, self._events = self._events, []
        return events
