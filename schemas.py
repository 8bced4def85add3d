"""Pydantic schemas for the reminder bot.

Records returned by the store are plain Pydantic models, detached from any
database session, so they can be handed to worker threads and HTTP responses
alike. Pydantic automatically parses ISO datetime strings to datetime objects.
"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator

LOG_TYPE_INFO = "log"
LOG_TYPE_ERROR = "err"


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC.

    SQLite hands back naive datetimes; everything stored is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def localize_to_utc(value: datetime, tz_name: str) -> datetime:
    """Read a naive datetime in tz_name and return it in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(tz_name))
    return value.astimezone(timezone.utc)


class QueueItemRecord(BaseModel):
    """A stored reminder as seen outside the store."""

    id: int = Field(..., description="Queue item id")
    chat_id: int = Field(..., description="Telegram chat receiving the reminder")
    message: str = Field(..., description="Reminder text")
    enqueued_on: datetime = Field(..., description="When the reminder was stored")
    fire_on: datetime = Field(..., description="When the reminder is due")
    delivered_on: Optional[datetime] = Field(None, description="When the reminder was delivered")
    num_tries: int = Field(0, ge=0, description="Delivery attempts so far")

    @field_validator("enqueued_on", "fire_on", "delivered_on")
    @classmethod
    def _as_utc(cls, value):
        return ensure_utc(value)

    class Config:
        """Pydantic configuration"""
        from_attributes = True  # Enable ORM mode for SQLAlchemy models


class LogRecord(BaseModel):
    """One line of the operational log."""

    type: Optional[str] = Field(None, description="'log' or 'err'")
    message: str
    time: datetime

    @field_validator("time")
    @classmethod
    def _as_utc(cls, value):
        return ensure_utc(value)

    class Config:
        """Pydantic configuration"""
        from_attributes = True


class ReminderCreate(BaseModel):
    """Schema for submitting a new reminder.

    The message and fire time must already be extracted from whatever the
    user typed; no natural language is interpreted here.
    """

    chat_id: int = Field(..., description="Telegram chat id", examples=[42])
    message: str = Field(
        ...,
        min_length=1,
        max_length=4096,
        description="Reminder text",
        examples=["pay rent"]
    )
    # Examples: "2025-10-26T15:00:00Z", "2025-10-26T15:00:00+09:00"
    fire_on: datetime = Field(
        ...,
        description="When to deliver the reminder (ISO 8601 format)",
        examples=["2025-10-26T15:00:00Z"]
    )
