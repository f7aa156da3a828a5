import logging
from contextlib import contextmanager
from typing import Generator, List

from sqlalchemy import Column, Integer, String, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from errors import StorageError
from event_store import Event, EventStore

logger = logging.getLogger(__name__)

Base = declarative_base()


class CalendarEventRecord(Base):
    __tablename__ = "calendar_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String, unique=True, index=True, nullable=False)
    title = Column(String, nullable=False)
    date = Column(String, nullable=False)
    time = Column(String, nullable=False)
    language = Column(String, nullable=False, default="en")
    created_at = Column(String, nullable=False)

    def to_event(self) -> Event:
        return Event(
            id=self.event_id,
            title=self.title,
            date=self.date,
            time=self.time,
            language=self.language,
            created_at=self.created_at,
        )

    @classmethod
    def from_event(cls, event: Event) -> "CalendarEventRecord":
        return cls(
            event_id=event.id,
            title=event.title,
            date=event.date,
            time=event.time,
            language=event.language,
            created_at=event.created_at,
        )


class DatabaseManager:
    """Lightweight session manager to ensure proper commit/rollback semantics."""

    def __init__(self, database_url: str) -> None:
        engine_kwargs = {}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        self.engine = create_engine(database_url, **engine_kwargs)
        self._Session = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )

    def init_database(self) -> None:
        """Create database tables if they do not exist."""
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Generator:
        session = self._Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class SqlEventStore(EventStore):
    """Event collection kept in a SQL table, replaced wholesale on save."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self.db = DatabaseManager(database_url)
        self._schema_ready = False

    def _ensure_schema(self) -> None:
        if not self._schema_ready:
            self.db.init_database()
            self._schema_ready = True

    def load(self) -> List[Event]:
        try:
            self._ensure_schema()
            with self.db.get_session() as session:
                records = session.query(CalendarEventRecord).order_by(CalendarEventRecord.id).all()
                return [record.to_event() for record in records]
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not read events from {self.database_url}: {exc}") from exc

    def save(self, events: List[Event]) -> None:
        try:
            self._ensure_schema()
            with self.db.get_session() as session:
                session.query(CalendarEventRecord).delete()
                session.add_all([CalendarEventRecord.from_event(event) for event in events])
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not write events to {self.database_url}: {exc}") from exc
        logger.debug("Saved %s events to %s", len(events), self.database_url)
