"""Database module for the reminder bot.

This module defines the SQLAlchemy models for the delivery queue and the
operational log, and builds engines for them. There is no module-level
engine: the owner of the process opens one and hands it to the store.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, Column, DateTime, Index, Integer, String, Text, UniqueConstraint, create_engine
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

# SQLAlchemy Base
Base = declarative_base()


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class QueueItem(Base):
    """A reminder waiting for (or done with) delivery.

    Only delivered_on and num_tries ever change after insertion.
    """

    __tablename__ = "queue"

    id = Column(Integer, primary_key=True, autoincrement=True, doc="Queue item id, never reused")
    chat_id = Column(BigInteger, nullable=False, doc="Telegram chat that receives the reminder")
    message = Column(Text, nullable=False, doc="Reminder text")
    enqueued_on = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    fire_on = Column(DateTime(timezone=True), nullable=False, doc="When the reminder is due")
    delivered_on = Column(DateTime(timezone=True), nullable=True, default=None)
    num_tries = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        # insert-or-ignore relies on this constraint
        UniqueConstraint('chat_id', 'message', 'fire_on', name='uq_queue_chat_message_fire'),
        Index('idx_queue_chat_pending', 'chat_id', 'delivered_on', 'enqueued_on'),
        Index('idx_queue_deliverable', 'delivered_on', 'num_tries', 'fire_on', 'enqueued_on'),
        # ids of deleted rows must not come back
        {'sqlite_autoincrement': True},
    )

    def __repr__(self):
        return (
            f"<QueueItem(id={self.id}, chat_id={self.chat_id}, fire_on={self.fire_on}, "
            f"delivered_on={self.delivered_on}, num_tries={self.num_tries})>"
        )


class LogEntry(Base):
    """Append-only operational log line."""

    __tablename__ = "logs"
    __table_args__ = {'sqlite_autoincrement': True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(8), nullable=True, default=None, doc="'log' or 'err'")
    message = Column(Text, nullable=False)
    time = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<LogEntry(id={self.id}, type={self.type}, time={self.time})>"


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine and make sure all tables and indexes exist.

    Any error raised here is fatal for the caller: the bot cannot run
    without its queue.
    """
    connect_args = {}
    kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, connect_args=connect_args, echo=echo, **kwargs)
    Base.metadata.create_all(bind=engine)
    return engine
