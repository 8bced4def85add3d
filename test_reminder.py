"""End-to-end tests for the delivery scheduler on top of a real store."""

import logging
import threading
from datetime import timedelta

import pytest

from background_worker import DeliveryScheduler

CEILING = 3


class FakeNotifier:
    """Records every send; outcome per chat id is configurable."""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.sent = []
        self.failing_chats = set()
        self.raising_chats = set()
        self._lock = threading.Lock()

    def send(self, destination, message):
        with self._lock:
            self.sent.append((destination, message))
        if destination in self.raising_chats:
            raise RuntimeError("connection reset")
        if destination in self.failing_chats:
            return False
        return self.succeed


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def scheduler(store, notifier):
    delivery = DeliveryScheduler(
        store, notifier, max_num_tries=CEILING, interval_seconds=0.01, max_workers=4
    )
    yield delivery
    delivery.stop(timeout=5)


def test_successful_delivery_cycle(store, clock, scheduler, notifier):
    fire_on = clock() + timedelta(hours=1)
    assert store.enqueue(42, "pay rent", fire_on)

    assert store.deliverable_queue_items(CEILING, fire_on - timedelta(seconds=1)) == []

    [candidate] = store.deliverable_queue_items(CEILING, fire_on + timedelta(seconds=1))
    assert candidate.num_tries == 0

    clock.current = fire_on + timedelta(seconds=1)
    futures = scheduler.process_queue(now=clock(), wait=True)

    assert [f.result() for f in futures] == [True]
    assert notifier.sent == [(42, "pay rent")]
    item = store.queue_item(42, candidate.id)
    assert item.delivered_on == clock()
    # tries are counted even for the successful attempt
    assert item.num_tries == 1
    assert store.deliverable_queue_items(CEILING, clock() + timedelta(seconds=1)) == []


def test_failed_deliveries_exhaust_retries(store, clock, scheduler, notifier):
    notifier.succeed = False
    store.enqueue(42, "pay rent", clock())
    [item] = store.undelivered_queue_items(42)

    for _ in range(CEILING):
        futures = scheduler.process_queue(now=clock(), wait=True)
        assert len(futures) == 1
        clock.advance(10)

    assert scheduler.process_queue(now=clock(), wait=True) == []
    assert store.deliverable_queue_items(CEILING, clock()) == []

    exhausted = store.queue_item(42, item.id)
    assert exhausted.delivered_on is None
    assert exhausted.num_tries == CEILING
    assert len(notifier.sent) == CEILING
    assert any(log.type == "err" for log in store.get_logs(10))


def test_one_failure_does_not_affect_other_candidates(store, clock, scheduler, notifier):
    notifier.raising_chats.add(1)
    notifier.failing_chats.add(2)
    for chat_id in (1, 2, 3):
        store.enqueue(chat_id, f"reminder {chat_id}", clock())

    futures = scheduler.process_queue(now=clock(), wait=True)

    assert sorted(f.result() for f in futures) == [False, False, True]
    for chat_id in (1, 2):
        [pending] = store.undelivered_queue_items(chat_id)
        assert pending.num_tries == 1
    assert store.undelivered_queue_items(3) == []


def test_reminder_deleted_during_delivery(store, clock, scheduler):
    store.enqueue(42, "pay rent", clock())
    [item] = store.undelivered_queue_items(42)

    class CancellingNotifier:
        def send(self, destination, message):
            # user cancels while the message is on its way
            store.delete_queue_item(destination, item.id)
            return True

    scheduler.notifier = CancellingNotifier()
    [future] = scheduler.process_queue(now=clock(), wait=True)

    assert future.result() is True
    assert store.queue_item(42, item.id) is None


def test_in_flight_delivery_is_not_dispatched_twice(store, clock, scheduler):
    store.enqueue(42, "pay rent", clock())
    release = threading.Event()
    calls = []

    class SlowNotifier:
        def send(self, destination, message):
            calls.append(destination)
            release.wait(5)
            return True

    scheduler.notifier = SlowNotifier()
    first = scheduler.process_queue(now=clock())
    second = scheduler.process_queue(now=clock())
    release.set()
    for future in first:
        future.result(timeout=5)

    assert len(first) == 1
    assert second == []
    assert calls == [42]


def test_loop_delivers_on_its_own_thread(store, clock, scheduler):
    delivered = threading.Event()

    class SignallingNotifier:
        def send(self, destination, message):
            delivered.set()
            return True

    scheduler.notifier = SignallingNotifier()
    store.enqueue(42, "pay rent", clock() - timedelta(seconds=1))
    [pending] = store.undelivered_queue_items(42)

    scheduler.start()
    assert delivered.wait(5)
    scheduler.stop(timeout=5)

    item = store.queue_item(42, pending.id)
    assert item.delivered_on is not None
    assert item.num_tries == 1


def test_loop_can_be_restarted_after_stop(store, clock, scheduler):
    delivered = threading.Event()

    class SignallingNotifier:
        def send(self, destination, message):
            delivered.set()
            return True

    scheduler.notifier = SignallingNotifier()
    scheduler.start()
    scheduler.stop(timeout=5)

    store.enqueue(42, "pay rent", clock() - timedelta(seconds=1))
    [pending] = store.undelivered_queue_items(42)

    scheduler.start()
    assert delivered.wait(5)
    scheduler.stop(timeout=5)

    assert store.queue_item(42, pending.id).delivered_on is not None


@pytest.mark.parametrize("verbose", [True, False])
def test_queue_scan_is_logged_only_when_verbose(store, clock, notifier, caplog, verbose):
    delivery = DeliveryScheduler(store, notifier, max_num_tries=CEILING, verbose=verbose)
    store.enqueue(42, "pay rent", clock())

    with caplog.at_level(logging.INFO, logger="background_worker"):
        delivery.process_queue(now=clock(), wait=True)
    delivery.stop()

    assert ("Checking queue: 1 items..." in caplog.text) is verbose
