"""
Event Bus - Write Notifications
Services emit an event after every store write; the CLI (or anything else)
subscribes to report progress without the services knowing about it.

Handlers receive one dict argument. A failing handler never fails the write
that emitted the event.
"""

from typing import Callable, Dict, List, Any
import logging

logger = logging.getLogger(__name__)


def _handler_name(handler: Callable) -> str:
    return getattr(handler, '__name__', repr(handler))


class EventBus:
    """Named events -> ordered list of handlers."""

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, handler: Callable):
        """Subscribe handler(event_data) to event_name."""
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"Registered handler for event '{event_name}': {_handler_name(handler)}")

    def off(self, event_name: str, handler: Callable):
        """Unsubscribe; a handler that was never registered is ignored."""
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_name: str, event_data: Dict[str, Any] = None):
        """Call every handler of event_name; errors are logged and skipped."""
        event_data = event_data or {}
        logger.debug(f"Emitting event '{event_name}' with data: {event_data}")

        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(event_data)
            except Exception as e:
                logger.error(f"Error in handler {_handler_name(handler)} for event '{event_name}': {e}")

    def clear(self):
        """Drop every subscription."""
        self._handlers.clear()


bus = EventBus()


# =============================================================================
# STANDARD EVENTS
# =============================================================================

# Submission lifecycle: created -> linked -> (link_unconfirmed)
EVENT_SUBMISSION_CREATED = 'submission_created'
EVENT_SUBMISSION_LINKED = 'submission_linked'
EVENT_SUBMISSION_LINK_UNCONFIRMED = 'submission_link_unconfirmed'

# Profile and contacts
EVENT_PROFILE_SAVED = 'profile_saved'
EVENT_CONTACT_CREATED = 'contact_created'
EVENT_CONTACT_UPDATED = 'contact_updated'
EVENT_CONTACT_UNLINKED = 'contact_unlinked'
