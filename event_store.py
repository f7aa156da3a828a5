import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from errors import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    id: str
    title: str
    date: str
    time: str
    language: str
    created_at: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date,
            "time": self.time,
            "language": self.language,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Event":
        return cls(
            id=str(payload["id"]),
            title=str(payload.get("title") or ""),
            date=str(payload.get("date") or ""),
            time=str(payload.get("time") or ""),
            language=str(payload.get("language") or "en"),
            created_at=str(payload.get("createdAt") or ""),
        )


def new_event(title: str, date: str, time: str, language: str) -> Event:
    """Create an event with a fresh id and creation timestamp."""
    return Event(
        id=uuid.uuid4().hex,
        title=title,
        date=date,
        time=time,
        language=language,
        created_at=datetime.utcnow().isoformat() + "Z",
    )


def sort_events(events: Iterable[Event]) -> List[Event]:
    return sorted(events, key=lambda event: (event.date, event.time))


class EventStore:
    """Whole-collection persistence for calendar events.

    Every call to `load` reads the backing storage again and every `save`
    rewrites it in full. There is no locking; the last writer wins.
    """

    def load(self) -> List[Event]:
        raise NotImplementedError

    def save(self, events: List[Event]) -> None:
        raise NotImplementedError


class JsonEventStore(EventStore):
    """Stores the collection as a JSON array in a single file."""

    def __init__(self, path: Union[str, Path] = "calendar.json") -> None:
        self.path = Path(path)

    def load(self) -> List[Event]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"Could not read events from {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise StorageError(f"Event file {self.path} is not valid JSON: {exc}") from exc

        if not isinstance(payload, list):
            raise StorageError(f"Event file {self.path} does not contain a list of events.")
        try:
            return [Event.from_dict(item) for item in payload]
        except (KeyError, TypeError, AttributeError) as exc:
            raise StorageError(f"Event file {self.path} contains a malformed event: {exc}") from exc

    def save(self, events: List[Event]) -> None:
        payload = [event.to_dict() for event in events]
        try:
            with open(self.path, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, ensure_ascii=False)
        except OSError as exc:
            raise StorageError(f"Could not write events to {self.path}: {exc}") from exc
        logger.debug("Saved %s events to %s", len(events), self.path)


def build_event_store(location: str) -> EventStore:
    """Return a SQL store for SQLAlchemy URLs, a JSON file store otherwise."""
    if "://" in location:
        from database import SqlEventStore

        return SqlEventStore(location)
    return JsonEventStore(location)
