import threading

import pytest

from conftest import ScriptedTransport, queue_message
from qubit.errors import (
    BeginFailed,
    ClaimFailed,
    CommitFailed,
    DeliveryCancelled,
    ItemNotFound,
    StoreError,
    TransportFailed,
)
from qubit.scheduler.context import TaskContext
from qubit.services.dispatch_service import DispatchService
from qubit.store.memory import InMemoryMessageStore


class FlakyStore(InMemoryMessageStore):
    """In-memory store that can be told to fail at one step."""

    def __init__(self, fail_on=None):
        super().__init__()
        self.fail_on = fail_on
        self.rollbacks = 0

    def begin(self):
        if self.fail_on == "begin":
            raise StoreError("database is down")
        scope = super().begin()
        store = self

        original_commit = scope.commit
        original_rollback = scope.rollback

        def commit():
            if store.fail_on == "commit":
                raise StoreError("connection lost during commit")
            original_commit()

        def rollback():
            store.rollbacks += 1
            original_rollback()

        scope.commit = commit
        scope.rollback = rollback
        return scope

    def claim_pending_batch(self, scope, limit):
        if self.fail_on == "claim":
            raise StoreError("lock wait failed")
        return super().claim_pending_batch(scope, limit)


def _pending_ids(store):
    scope = store.begin()
    ids = [m.id for m in store.claim_pending_batch(scope, 100)]
    scope.rollback()
    scope.close()
    return ids


def test_delivers_batch_and_records_references(store):
    ids = [queue_message(store, i) for i in range(3)]
    transport = ScriptedTransport(["a", "b", "c"])

    result = DispatchService(store, transport).run(batch_size=10)

    assert result.to_dict() == {"claimed": 3, "delivered": 3, "failed": 0, "skipped": 0}
    completed = store.list_completed()
    assert [m.id for m in completed] == ids
    assert [m.message_id for m in completed] == ["a", "b", "c"]
    assert all(m.processed_at is not None for m in completed)


def test_failed_delivery_does_not_roll_back_the_rest_of_the_batch(store):
    first = queue_message(store, 1, content="first")
    second = queue_message(store, 2, content="second")
    third = queue_message(store, 3, content="third")
    transport = ScriptedTransport(["ref-1", TransportFailed("recipient down"), "ref-3"])

    result = DispatchService(store, transport).run(batch_size=3)

    assert result.delivered == 2
    assert result.failed == 1
    assert transport.calls == ["first", "second", "third"]
    assert [m.id for m in store.list_completed()] == [first, third]
    assert _pending_ids(store) == [second]


def test_unexpected_transport_error_is_isolated_to_its_message(store):
    first = queue_message(store, 1, content="first")
    second = queue_message(store, 2, content="second")
    third = queue_message(store, 3, content="third")
    transport = ScriptedTransport(["ref-1", ConnectionError("socket reset"), "ref-3"])

    result = DispatchService(store, transport).run(batch_size=3)

    assert result.to_dict() == {"claimed": 3, "delivered": 2, "failed": 1, "skipped": 0}
    assert [m.id for m in store.list_completed()] == [first, third]
    assert _pending_ids(store) == [second]


def test_failed_message_is_retried_on_the_next_cycle(store):
    message_id = queue_message(store)
    transport = ScriptedTransport([TransportFailed("boom"), "ok"])
    service = DispatchService(store, transport)

    assert service.run(batch_size=1).failed == 1
    assert store.list_completed() == []

    assert service.run(batch_size=1).delivered == 1
    [completed] = store.list_completed()
    assert completed.id == message_id
    assert completed.message_id == "ok"


def test_batch_size_limits_claims_to_oldest(store):
    oldest = queue_message(store, 1)
    middle = queue_message(store, 2)
    newest = queue_message(store, 3)

    DispatchService(store, ScriptedTransport()).run(batch_size=2)

    assert [m.id for m in store.list_completed()] == [oldest, middle]
    assert _pending_ids(store) == [newest]


def test_empty_queue_is_a_successful_no_op(store):
    transport = ScriptedTransport()

    result = DispatchService(store, transport).run(batch_size=5)

    assert result.claimed == 0
    assert transport.calls == []


def test_begin_failure_raises_begin_failed():
    store = FlakyStore(fail_on="begin")
    transport = ScriptedTransport()

    with pytest.raises(BeginFailed) as excinfo:
        DispatchService(store, transport).run(batch_size=5)

    assert isinstance(excinfo.value.original, StoreError)
    assert transport.calls == []


def test_claim_failure_rolls_back_and_raises_claim_failed():
    store = FlakyStore(fail_on="claim")
    queue_message(store)

    with pytest.raises(ClaimFailed):
        DispatchService(store, ScriptedTransport()).run(batch_size=5)

    assert store.rollbacks == 1


def test_commit_failure_leaves_whole_batch_pending():
    store = FlakyStore(fail_on="commit")
    ids = [queue_message(store, i) for i in range(3)]
    transport = ScriptedTransport()

    with pytest.raises(CommitFailed) as excinfo:
        DispatchService(store, transport).run(batch_size=3)

    assert "connection lost" in str(excinfo.value)
    assert len(transport.calls) == 3
    assert store.list_completed() == []
    store.fail_on = None
    assert _pending_ids(store) == ids


def test_missing_message_aborts_the_cycle():
    class VanishingStore(FlakyStore):
        def record_outcome(self, scope, message_id, delivery_ref, processed_at):
            raise ItemNotFound(message_id)

    store = VanishingStore()
    ids = [queue_message(store, i) for i in range(2)]

    with pytest.raises(ItemNotFound):
        DispatchService(store, ScriptedTransport()).run(batch_size=2)

    assert store.rollbacks == 1
    assert _pending_ids(store) == ids


def test_cancelled_context_leaves_remaining_messages_pending(memory_store):
    ids = [queue_message(memory_store, i) for i in range(3)]
    context = TaskContext()

    class CancellingTransport(ScriptedTransport):
        def send(self, phone_number, content, ctx):
            ref = super().send(phone_number, content, ctx)
            context.cancel()
            return ref

    transport = CancellingTransport()
    result = DispatchService(memory_store, transport).run(batch_size=3, context=context)

    assert result.to_dict() == {"claimed": 3, "delivered": 1, "failed": 0, "skipped": 2}
    assert len(transport.calls) == 1
    assert [m.id for m in memory_store.list_completed()] == ids[:1]
    assert _pending_ids(memory_store) == ids[1:]


def test_cancelled_delivery_counts_as_failure(memory_store):
    message_id = queue_message(memory_store)
    transport = ScriptedTransport([DeliveryCancelled("webhook call cancelled")])

    result = DispatchService(memory_store, transport).run(batch_size=1)

    assert result.failed == 1
    assert _pending_ids(memory_store) == [message_id]


def test_two_services_on_one_store_never_send_the_same_message(memory_store):
    for i in range(20):
        queue_message(memory_store, i, content=f"m{i}")

    sent = []
    lock = threading.Lock()
    gate = threading.Barrier(2)

    class RecordingTransport(ScriptedTransport):
        def send(self, phone_number, content, ctx):
            with lock:
                sent.append(content)
            return super().send(phone_number, content, ctx)

    def instance():
        service = DispatchService(memory_store, RecordingTransport())
        gate.wait()
        for _ in range(10):
            service.run(batch_size=3)

    threads = [threading.Thread(target=instance) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(sent) == sorted(f"m{i}" for i in range(20))
    assert len(memory_store.list_completed()) == 20
