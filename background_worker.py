"""Background delivery scheduler for the reminder bot.

The scheduler:
- Wakes up every MONITOR_INTERVAL_SECONDS on its own thread
- Asks the store for due reminders that are undelivered and below MAX_NUM_TRIES
- Hands every candidate to a thread pool, one independent task each
- Marks a reminder delivered when the notifier succeeds
- Increments num_tries after every attempt, successful or not

Nothing raised by a single delivery, or by a whole cycle, stops the loop:
the next cycle recomputes eligibility from the database.
"""

import signal
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from datetime import datetime
from typing import List, Optional, Set

from config import settings
from logger_config import setup_logger
from notifier import Notifier, TelegramNotifier
from schemas import QueueItemRecord
from store import ReminderStore
from telegram_client import TelegramClient

logger = setup_logger(__name__, 'worker.log')


class DeliveryScheduler:
    """Periodic poll-and-dispatch loop over the reminder queue.

    Args:
        store: Reminder store shared with the front ends
        notifier: Delivers a message to a chat
        max_num_tries: Retry ceiling passed to deliverable_queue_items
        interval_seconds: Pause between two cycles
        max_workers: Upper bound of deliveries running at once
    """

    def __init__(
        self,
        store: ReminderStore,
        notifier: Notifier,
        max_num_tries: int = settings.MAX_NUM_TRIES,
        interval_seconds: float = settings.MONITOR_INTERVAL_SECONDS,
        max_workers: int = settings.WORKER_MAX_CONCURRENCY,
        verbose: bool = settings.IS_VERBOSE
    ):
        self.store = store
        self.notifier = notifier
        self.max_num_tries = max_num_tries
        self.interval_seconds = interval_seconds
        self.verbose = verbose
        self.max_workers = max_workers

        self._executor: Optional[ThreadPoolExecutor] = None
        self._in_flight: Set[int] = set()
        self._in_flight_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    def process_queue(self, now: Optional[datetime] = None, wait: bool = False) -> List[Future]:
        """Run one cycle and return the futures of the dispatched deliveries.

        With wait=True the deliveries are joined before returning.
        """
        queue = self.store.deliverable_queue_items(self.max_num_tries, now)

        if self.verbose:
            logger.info(f"Checking queue: {len(queue)} items...")

        futures = []
        for item in queue:
            with self._in_flight_lock:
                if item.id in self._in_flight:
                    # previous cycle's attempt has not finished yet
                    continue
                self._in_flight.add(item.id)
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="delivery"
                )
            futures.append(self._executor.submit(self._deliver_safely, item))

        if wait:
            wait_futures(futures)
        return futures

    def _deliver_safely(self, item: QueueItemRecord) -> bool:
        try:
            return self.deliver(item)
        except Exception as e:
            logger.error(f"Unexpected error while delivering queue id {item.id}: {e}", exc_info=True)
            return False
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(item.id)

    def deliver(self, item: QueueItemRecord) -> bool:
        """Send one reminder and record the attempt. Returns whether it was sent."""
        try:
            sent = self.notifier.send(item.chat_id, item.message)
        except Exception as e:
            logger.error(f"Notifier raised for queue id {item.id}: {e}")
            sent = False

        if sent:
            if not self.store.mark_delivered(item.chat_id, item.id):
                logger.error(f"Failed to mark chat id: {item.chat_id}, queue id: {item.id}")
        else:
            logger.warning(f"Failed to send reminder (chat id: {item.chat_id}, queue id: {item.id})")
            self.store.log_error(f"failed to send reminder: chat id {item.chat_id}, queue id {item.id}")

        # counted for every attempt, delivered or not
        if not self.store.increase_num_tries(item.chat_id, item.id):
            logger.error(f"Failed to increase num tries for chat id: {item.chat_id}, queue id: {item.id}")

        return sent

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def run(self):
        """Poll loop; returns once stop() is called."""
        logger.info(f"Delivery scheduler started (interval: {self.interval_seconds}s, "
                    f"max tries: {self.max_num_tries})")

        iteration = 0
        while not self._stop_event.is_set():
            iteration += 1
            try:
                self.process_queue()
            except Exception as e:
                # Continue running even if a cycle fails
                logger.error(f"Error in scheduler iteration {iteration}: {e}", exc_info=True)

            self._stop_event.wait(self.interval_seconds)

        logger.info("Delivery scheduler stopped")

    def start(self) -> threading.Thread:
        """Run the poll loop on a daemon thread; can be called again after stop()."""
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="delivery-scheduler", daemon=True)
        self._thread.start()
        return self._thread

    def request_stop(self):
        """Ask the loop to exit after the current cycle; safe from signal handlers."""
        self._stop_event.set()

    def stop(self, timeout: Optional[float] = None):
        """Stop the loop and let in-flight deliveries finish."""
        self.request_stop()
        if self._thread is not None:
            self._thread.join(timeout)
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            # rebuilt lazily by the next cycle
            self._executor = None


def main():
    """Standalone entry point: run only the delivery scheduler."""
    logger.info("=" * 60)
    logger.info("Reminder Bot - Delivery Scheduler")
    logger.info("=" * 60)

    if not settings.WORKER_ENABLED:
        logger.warning("Worker is disabled in configuration. Exiting.")
        return

    try:
        store = ReminderStore.open(settings.DATABASE_URL)
    except Exception as e:
        logger.error(f"Failed to open database: {e}", exc_info=True)
        sys.exit(1)

    client = TelegramClient(
        settings.TELEGRAM_API_TOKEN,
        base_url=settings.TELEGRAM_API_URL,
        timeout=settings.TELEGRAM_TIMEOUT_SECONDS,
        verbose=settings.IS_VERBOSE
    )
    scheduler = DeliveryScheduler(store, TelegramNotifier(client))

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        scheduler.request_stop()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    try:
        scheduler.run()
    finally:
        scheduler.stop()
        client.close()
        store.close()

    logger.info("Background worker stopped")


if __name__ == "__main__":
    main()
