"""MCP server for the reminder bot.

Lets an AI agent that has already understood the user's request queue,
list and cancel Telegram reminders. The tools work on the ReminderStore
passed to create_mcp.

Transport Support:
- stdio: Standard input/output (local process communication)
- sse: Server-Sent Events over HTTP (network access)
"""

from datetime import datetime
import os
import sys

from mcp.server.fastmcp import FastMCP

from config import settings
from logger_config import setup_logger
from schemas import localize_to_utc
from store import ReminderStore

logger = setup_logger(__name__, 'mcp.log')


def parse_datetime_to_utc(datetime_str: str) -> datetime:
    """Parse an ISO datetime string and convert it to UTC.

    - "2025-11-06T15:00:00+09:00" is converted to UTC
    - "2025-11-06T15:00:00Z" is already UTC
    - "2025-11-06T15:00:00" is read in the configured TIMEZONE
    """
    dt = datetime.fromisoformat(datetime_str.replace('Z', '+00:00'))
    return localize_to_utc(dt, settings.TIMEZONE)


def create_mcp(store: ReminderStore) -> FastMCP:
    """Build the MCP tool server on top of store."""
    mcp = FastMCP(
        "ReminderBot",
        host=settings.MCP_HOST,
        port=settings.MCP_PORT
    )

    @mcp.tool()
    def create_reminder(chat_id: int, message: str, fire_on: str) -> str:
        """Queue a reminder for a Telegram chat.

        Args:
            chat_id: Telegram chat id that receives the reminder
            message: Text to send when the reminder fires
            fire_on: When to send it - ISO format (e.g., "2025-10-26T15:00:00Z")

        Returns:
            Confirmation with the UTC fire time, or an error message
        """
        try:
            fire_dt = parse_datetime_to_utc(fire_on)
        except ValueError as e:
            return f"✗ Invalid fire_on '{fire_on}': {e}"

        if fire_dt < store.now():
            return f"✗ {fire_dt.isoformat()} is already in the past"

        logger.info(f"Queueing reminder for chat {chat_id} at {fire_dt.isoformat()}")
        if not store.enqueue(chat_id, message, fire_dt):
            return "✗ Failed to save reminder"
        return (
            f"✓ Reminder queued!\n"
            f"Chat: {chat_id}\n"
            f"Message: {message}\n"
            f"Fires at: {fire_dt.isoformat()}"
        )

    @mcp.tool()
    def list_reminders(chat_id: int) -> str:
        """List reminders of a Telegram chat that have not been delivered yet.

        Args:
            chat_id: Telegram chat id

        Returns:
            Formatted list of reminders or message if none found
        """
        reminders = store.undelivered_queue_items(chat_id)
        if not reminders:
            return "No reminders scheduled."

        result = [f"Found {len(reminders)} reminder(s):"]
        for r in reminders:
            result.append(
                f"\n• {r.message}\n"
                f"  ID: {r.id}\n"
                f"  Fires at: {r.fire_on.strftime('%Y-%m-%d %H:%M %Z')}\n"
                f"  Attempts: {r.num_tries}"
            )
        return "\n".join(result)

    @mcp.tool()
    def cancel_reminder(chat_id: int, reminder_id: int) -> str:
        """Cancel a pending reminder.

        Args:
            chat_id: Telegram chat id that owns the reminder
            reminder_id: ID shown by list_reminders

        Returns:
            Success or error message
        """
        if store.delete_queue_item(chat_id, reminder_id):
            return f"✓ Reminder {reminder_id} canceled."
        return f"✗ Reminder {reminder_id} not found for chat {chat_id}."

    return mcp


if __name__ == "__main__":
    transport = os.getenv("MCP_TRANSPORT", settings.MCP_TRANSPORT).lower()

    try:
        reminder_store = ReminderStore.open(settings.DATABASE_URL)
    except Exception as e:
        logger.error(f"Failed to open database: {e}", exc_info=True)
        sys.exit(1)

    server = create_mcp(reminder_store)
    if transport == "sse":
        logger.info(f"Starting MCP server with SSE transport on {settings.MCP_HOST}:{settings.MCP_PORT}")
        server.run(transport="sse")
    else:
        logger.info("Starting MCP server with stdio transport")
        server.run(transport="stdio")
