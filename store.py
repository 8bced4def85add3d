"""Reminder store: the delivery queue and the operational log.

All reads and writes of the underlying database go through ReminderStore.
Writes take the exclusive side of a reader/writer lock, reads the shared
side, and the lock is held only for the duration of the statement.

Expected failures never raise out of this module:
- a database error is logged and reported as False (or an empty list)
- a mutation that matches no row is logged with its own message and
  reported as False as well
"""

from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from config import DEFAULT_MAX_NUM_TRIES
from database import LogEntry, QueueItem, create_db_engine, utcnow
from logger_config import setup_logger
from rwlock import ReadWriteLock
from schemas import LOG_TYPE_ERROR, LOG_TYPE_INFO, LogRecord, QueueItemRecord, ensure_utc

logger = setup_logger(__name__, 'store.log')


class ReminderStore:
    """Lock-protected persistence for queue items and log lines.

    Args:
        engine: SQLAlchemy engine with the schema already created
        clock: Returns the current time; used for enqueued_on, delivered_on,
            log times and as the default "now" of deliverable_queue_items
    """

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utcnow):
        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
        )
        self._lock = ReadWriteLock()
        self._clock = clock

    @classmethod
    def open(cls, database_url: str, clock: Callable[[], datetime] = utcnow) -> "ReminderStore":
        """Open (and create if needed) the database at database_url.

        Errors propagate: a store that cannot be opened is fatal.
        """
        engine = create_db_engine(database_url)
        logger.info(f"Opened reminder database ({engine.dialect.name})")
        return cls(engine, clock=clock)

    def close(self):
        """Dispose the engine and its pooled connections."""
        self._engine.dispose()

    def now(self) -> datetime:
        """Current time from the injected clock, as aware UTC."""
        return ensure_utc(self._clock())

    # ------------------------------------------------------------------
    # Operational log
    # ------------------------------------------------------------------

    def save_log(self, typ: str, message: str) -> bool:
        """Append a log row of the given type; returns False on a database error."""
        stmt = insert(LogEntry).values(type=typ, message=message, time=self.now())
        with self._lock.write_locked():
            try:
                with self._session_factory() as session:
                    session.execute(stmt)
                    session.commit()
            except SQLAlchemyError as e:
                logger.error(f"Failed to save log into local database: {e}")
                return False
        return True

    def log(self, message: str) -> bool:
        """Append an informational log row."""
        return self.save_log(LOG_TYPE_INFO, message)

    def log_error(self, message: str) -> bool:
        """Append an error log row."""
        return self.save_log(LOG_TYPE_ERROR, message)

    def get_logs(self, latest_n: int) -> List[LogRecord]:
        """Return the latest_n most recent log lines, newest first."""
        stmt = select(LogEntry).order_by(LogEntry.id.desc()).limit(latest_n)
        with self._lock.read_locked():
            try:
                with self._session_factory() as session:
                    return [LogRecord.model_validate(row) for row in session.scalars(stmt)]
            except SQLAlchemyError as e:
                logger.error(f"Failed to select logs from local database: {e}")
                return []

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def _insert_or_ignore(self, values: dict):
        dialect = self._engine.dialect.name
        if dialect == "sqlite":
            return sqlite.insert(QueueItem).values(**values).on_conflict_do_nothing()
        if dialect == "postgresql":
            return postgresql.insert(QueueItem).values(**values).on_conflict_do_nothing()
        return None

    def enqueue(self, chat_id: int, message: str, fire_on: datetime) -> bool:
        """Store a reminder for chat_id.

        Re-submitting an identical (chat_id, message, fire_on) is silently
        ignored and still returns True. False means the database failed.
        """
        values = {
            "chat_id": chat_id,
            "message": message,
            "fire_on": ensure_utc(fire_on),
            "enqueued_on": self.now(),
            "num_tries": 0,
        }
        stmt = self._insert_or_ignore(values)

        with self._lock.write_locked():
            try:
                with self._session_factory() as session:
                    if stmt is not None:
                        session.execute(stmt)
                    else:
                        session.execute(insert(QueueItem).values(**values))
                    session.commit()
            except IntegrityError:
                # dialects without ON CONFLICT support end up here on duplicates
                logger.info(f"Ignored duplicate queue item for chat id: {chat_id}")
            except SQLAlchemyError as e:
                logger.error(f"Failed to save queue item into local database: {e}")
                return False
        return True

    def _select_items(self, stmt) -> List[QueueItemRecord]:
        with self._lock.read_locked():
            try:
                with self._session_factory() as session:
                    return [QueueItemRecord.model_validate(row) for row in session.scalars(stmt)]
            except SQLAlchemyError as e:
                logger.error(f"Failed to select queue items from local database: {e}")
                return []

    def deliverable_queue_items(
        self,
        max_num_tries: int,
        now: Optional[datetime] = None
    ) -> List[QueueItemRecord]:
        """Undelivered items that are due and still below the retry ceiling.

        Newest enqueued first. A non-positive max_num_tries falls back to
        the default ceiling.
        """
        if max_num_tries <= 0:
            max_num_tries = DEFAULT_MAX_NUM_TRIES
        now = ensure_utc(now) if now is not None else self.now()

        stmt = (
            select(QueueItem)
            .where(
                QueueItem.delivered_on.is_(None),
                QueueItem.num_tries < max_num_tries,
                QueueItem.fire_on <= now,
            )
            .order_by(QueueItem.enqueued_on.desc(), QueueItem.id.desc())
        )
        return self._select_items(stmt)

    def undelivered_queue_items(self, chat_id: int) -> List[QueueItemRecord]:
        """All undelivered items of a chat, newest enqueued first, exhausted ones included."""
        stmt = (
            select(QueueItem)
            .where(QueueItem.chat_id == chat_id, QueueItem.delivered_on.is_(None))
            .order_by(QueueItem.enqueued_on.desc(), QueueItem.id.desc())
        )
        return self._select_items(stmt)

    def queue_item(self, chat_id: int, queue_id: int) -> Optional[QueueItemRecord]:
        stmt = select(QueueItem).where(QueueItem.id == queue_id, QueueItem.chat_id == chat_id)
        items = self._select_items(stmt)
        return items[0] if items else None

    def _mutate(self, stmt, action: str, chat_id: int, queue_id: int) -> bool:
        with self._lock.write_locked():
            try:
                with self._session_factory() as session:
                    rowcount = session.execute(stmt).rowcount
                    session.commit()
            except SQLAlchemyError as e:
                logger.error(f"Failed to {action} in local database: {e}")
                return False

        if rowcount is None or rowcount <= 0:
            logger.warning(f"Failed to {action} for id: {queue_id}, chat_id: {chat_id} (no matching row)")
            return False
        return True

    def delete_queue_item(self, chat_id: int, queue_id: int) -> bool:
        stmt = (
            delete(QueueItem)
            .where(QueueItem.id == queue_id, QueueItem.chat_id == chat_id)
            .execution_options(synchronize_session=False)
        )
        return self._mutate(stmt, "delete queue item", chat_id, queue_id)

    def increase_num_tries(self, chat_id: int, queue_id: int) -> bool:
        stmt = (
            update(QueueItem)
            .where(QueueItem.id == queue_id, QueueItem.chat_id == chat_id)
            .values(num_tries=QueueItem.num_tries + 1)
            .execution_options(synchronize_session=False)
        )
        return self._mutate(stmt, "increase num_tries", chat_id, queue_id)

    def mark_delivered(self, chat_id: int, queue_id: int) -> bool:
        """Set delivered_on once; an already delivered item does not match."""
        stmt = (
            update(QueueItem)
            .where(
                QueueItem.id == queue_id,
                QueueItem.chat_id == chat_id,
                QueueItem.delivered_on.is_(None),
            )
            .values(delivered_on=self.now())
            .execution_options(synchronize_session=False)
        )
        return self._mutate(stmt, "mark delivered_on", chat_id, queue_id)
