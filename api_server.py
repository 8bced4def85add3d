"""FastAPI REST API for the reminder bot.

Intake for reminders whose message and fire time were already extracted
upstream, plus listing, cancellation and the operational log. The app is
built around an explicitly passed ReminderStore (see create_app), the same
instance the delivery scheduler uses.
"""

from typing import List

from fastapi import FastAPI, HTTPException, Query

import schemas
from config import settings
from logger_config import setup_logger
from store import ReminderStore

logger = setup_logger(__name__, 'api.log')


def create_app(store: ReminderStore) -> FastAPI:
    """Build the REST API on top of store."""
    app = FastAPI(
        title="Reminder Bot API",
        description="Intake and cancellation of Telegram reminders",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.store = store

    @app.get("/")
    def root():
        """Root endpoint - service information"""
        return {
            "service": "Reminder Bot API",
            "version": "1.0.0",
            "status": "healthy",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "reminders": "/reminders",
                "logs": "/logs"
            }
        }

    @app.get("/health")
    def health_check():
        """Health check endpoint for monitoring"""
        return {
            "status": "healthy",
            "service": "reminder_bot",
            "database": settings.DATABASE_URL.split("://")[0]
        }

    @app.post("/reminders", status_code=201)
    def create_reminder(reminder: schemas.ReminderCreate):
        """Queue a reminder.

        Request body example:
        ```json
        {"chat_id": 42, "message": "pay rent", "fire_on": "2025-10-26T15:00:00Z"}
        ```

        A fire_on without offset is read in the configured TIMEZONE.
        Submitting the same reminder twice stores it once.
        """
        fire_on = schemas.localize_to_utc(reminder.fire_on, settings.TIMEZONE)
        if fire_on < store.now():
            raise HTTPException(
                status_code=400,
                detail=f"{fire_on.isoformat()} is already in the past"
            )

        if not store.enqueue(reminder.chat_id, reminder.message, fire_on):
            raise HTTPException(status_code=500, detail="Failed to save reminder")

        logger.info(f"Queued reminder for chat {reminder.chat_id} at {fire_on.isoformat()}")
        return {
            "message": "Reminder queued",
            "chat_id": reminder.chat_id,
            "fire_on": fire_on
        }

    @app.get("/reminders", response_model=List[schemas.QueueItemRecord])
    def list_reminders(chat_id: int = Query(..., description="Telegram chat id")):
        """List undelivered reminders of a chat, newest first.

        Reminders that ran out of delivery attempts are included.
        """
        return store.undelivered_queue_items(chat_id)

    @app.get("/reminders/{reminder_id}", response_model=schemas.QueueItemRecord)
    def get_reminder(reminder_id: int, chat_id: int = Query(..., description="Telegram chat id")):
        """Get one reminder of a chat, delivered or not."""
        item = store.queue_item(chat_id, reminder_id)
        if item is None:
            raise HTTPException(status_code=404, detail="Reminder not found")
        return item

    @app.delete("/reminders/{reminder_id}", status_code=200)
    def delete_reminder(reminder_id: int, chat_id: int = Query(..., description="Telegram chat id")):
        """Cancel a reminder. Only the chat that owns it can delete it."""
        if not store.delete_queue_item(chat_id, reminder_id):
            raise HTTPException(status_code=404, detail="Reminder not found")
        return {"message": "Reminder deleted successfully", "reminder_id": reminder_id}

    @app.get("/logs", response_model=List[schemas.LogRecord])
    def recent_logs(limit: int = Query(50, ge=1, le=1000, description="Maximum number of results")):
        """Most recent operational log lines first."""
        return store.get_logs(limit)

    return app
