import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from event_store import Event, EventStore, new_event
from intent_resolver import AddEventData, DeleteEventData, Intent, IntentAction

logger = logging.getLogger(__name__)

DELETED_MESSAGE = "Event deleted successfully"

NOT_FOUND_MESSAGES = {
    "en": "I couldn't find that event.",
    "hi": "मुझे वह इवेंट नहीं मिला।",
}


@dataclass
class ActionResult:
    events: List[Event] = field(default_factory=list)
    message: str = ""
    deleted: int = 0


def matches_query(event: Event, query: str) -> bool:
    """Loose delete match: the query is a substring of the time, title or date.

    This can over-match (a query of "15" hits "15:00" as well as "2025-10-15").
    """
    query = query.lower()
    return query in event.time or query in event.title.lower() or query in event.date


class ActionExecutor:
    """Applies a resolved intent to the event store."""

    def __init__(self, store: EventStore) -> None:
        self.store = store

    def execute(self, intent: Intent) -> ActionResult:
        handlers: Dict[IntentAction, Callable[[Intent], ActionResult]] = {
            IntentAction.ADD_EVENT: self._add_event,
            IntentAction.LIST_EVENTS: self._list_events,
            IntentAction.DELETE_EVENT: self._delete_event,
        }
        return handlers[intent.action](intent)

    def _add_event(self, intent: Intent) -> ActionResult:
        data: AddEventData = intent.data
        events = self.store.load()
        event = new_event(title=data.title, date=data.date, time=data.time, language=intent.language)
        events.append(event)
        self.store.save(events)
        logger.info("Event added: %s on %s at %s", event.title, event.date, event.time)
        return ActionResult(events=events, message=intent.response)

    def _list_events(self, intent: Intent) -> ActionResult:
        events = self.store.load()
        logger.info("Listing %s events", len(events))
        return ActionResult(events=events, message=intent.response)

    def _delete_event(self, intent: Intent) -> ActionResult:
        data: DeleteEventData = intent.data
        events = self.store.load()
        remaining = [event for event in events if not matches_query(event, data.query)]
        deleted = len(events) - len(remaining)
        self.store.save(remaining)
        logger.info("Deleted %s event(s) matching %r", deleted, data.query)

        message = intent.response
        if deleted == 0:
            message = NOT_FOUND_MESSAGES.get(intent.language, NOT_FOUND_MESSAGES["en"])
        return ActionResult(events=remaining, message=message, deleted=deleted)

    def delete_by_id(self, event_id: str) -> ActionResult:
        """Remove the one event with this id. Nothing is saved when it is absent."""
        events = self.store.load()
        remaining = [event for event in events if event.id != event_id]
        if len(remaining) == len(events):
            logger.info("No event with id %s", event_id)
            return ActionResult(events=events, message=NOT_FOUND_MESSAGES["en"])
        self.store.save(remaining)
        logger.info("Event deleted: %s", event_id)
        return ActionResult(events=remaining, message=DELETED_MESSAGE, deleted=1)
