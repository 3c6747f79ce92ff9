from collections import defaultdict
from typing import Callable, DefaultDict, List, Optional, Type, TypeVar

from scanimg.domain.events import Event

E = TypeVar("E", bound=Event)
Handler = Callable[[E], None]


class EventBus:
    """Synchronous, typed dispatch of scan events to the UI and logging.

    Handlers run on the publishing thread, in subscription order. The
    orchestrator only publishes from the scheduling thread, never from probe
    workers, so handlers need no locking. Dispatch is by exact event class.
    """

    def __init__(self):
        self._handlers: DefaultDict[Type[Event], List[Callable[[Event], None]]] = defaultdict(list)

    def subscribe(self, event_type: Type[E], callback: Optional[Handler] = None):
        """Registers ``callback`` for ``event_type``; without one, acts as a decorator."""
        if callback is None:
            def decorator(func: Handler) -> Handler:
                self._handlers[event_type].append(func)
                return func
            return decorator
        self._handlers[event_type].append(callback)
        return callback

    def publish(self, event: Event) -> None:
        for handler in self._handlers.get(type(event), ()):
            handler(event)
