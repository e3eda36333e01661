"""
In-process event dispatcher.

Listeners subscribe to an event name. dispatch() calls every listener in
priority order (highest first); a listener that raises is logged and
counted, and the remaining listeners still run.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Tuple

import structlog

from hdm_boot.models.events import DomainEvent, UserWasDeleted, UserWasRegistered, UserWasUpdated

logger = structlog.get_logger(__name__)

Listener = Callable[[DomainEvent], None]


@dataclass
class DispatchResult:
    """Outcome of one dispatch call."""
    event_name: str
    listeners_called: int = 0
    successful: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class EventDispatcher:
    """Observer loop keyed by event name."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Tuple[int, int, Listener]]] = {}
        self._sequence = 0

    def add_listener(self, event_name: str, listener: Listener, priority: int = 0) -> None:
        self._sequence += 1
        entries = self._listeners.setdefault(event_name, [])
        entries.append((priority, self._sequence, listener))
        # Highest priority first, registration order within a priority
        entries.sort(key=lambda entry: (-entry[0], entry[1]))
        logger.debug(
            "event_listener_added",
            event_name=event_name,
            listener=getattr(listener, "__name__", repr(listener)),
            priority=priority,
        )

    def remove_listener(self, event_name: str, listener: Listener) -> bool:
        entries = self._listeners.get(event_name, [])
        remaining = [entry for entry in entries if entry[2] is not listener]
        removed = len(remaining) != len(entries)
        if remaining:
            self._listeners[event_name] = remaining
        else:
            self._listeners.pop(event_name, None)
        return removed

    def has_listeners(self, event_name: str) -> bool:
        return bool(self._listeners.get(event_name))

    def get_listeners(self, event_name: str) -> List[Listener]:
        return [entry[2] for entry in self._listeners.get(event_name, [])]

    def get_event_names(self) -> List[str]:
        return sorted(self._listeners)

    def clear_listeners(self, event_name: str) -> None:
        self._listeners.pop(event_name, None)

    def clear_all_listeners(self) -> None:
        self._listeners.clear()

    def dispatch(self, event: DomainEvent) -> DispatchResult:
        """
        Deliver an event to its listeners.

        Args:
            event: Event to deliver; its event_name selects the listeners

        Returns:
            DispatchResult with success and error counts
        """
        result = DispatchResult(event_name=event.event_name)

        for listener in self.get_listeners(event.event_name):
            result.listeners_called += 1
            try:
                listener(event)
                result.successful += 1
            except Exception as e:
                result.errors.append(str(e))
                logger.error(
                    "event_listener_failed",
                    event_name=event.event_name,
                    event_id=event.event_id,
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(e),
                    exc_info=True,
                )

        logger.debug(
            "event_dispatched",
            event_name=event.event_name,
            event_id=event.event_id,
            listeners=result.listeners_called,
            errors=len(result.errors),
        )
        return result


def log_user_event(event: DomainEvent) -> None:
    """Default listener writing user lifecycle events to the log."""
    logger.info("user_event", **event.to_log_dict())


def register_default_listeners(dispatcher: EventDispatcher) -> None:
    for event_type in (UserWasRegistered, UserWasUpdated, UserWasDeleted):
        dispatcher.add_listener(event_type.event_name, log_user_event, priority=-100)
