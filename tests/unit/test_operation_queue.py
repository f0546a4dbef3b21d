"""Unit tests for the durable operation queue."""

import pytest

from src.core.models import OperationKind, OperationStatus
from src.core.operation_queue import OperationQueue, QUEUE_STORAGE_KEY
from src.core.storage import StorageTier


def _enqueue_three(queue):
    return [
        queue.enqueue(OperationKind.CREATE, "customers", {"id": "c1", "full_name": "A"}),
        queue.enqueue(OperationKind.UPDATE, "equipment", {"id": "e1", "status": "rented"}),
        queue.enqueue(OperationKind.DELETE, "expenses", {"id": "x1"}),
    ]


def test_enqueue_assigns_id_and_pending_state(queue):
    operation_id = queue.enqueue(OperationKind.CREATE, "customers", {"id": "c1"})

    operation = queue.get(operation_id)
    assert operation.status is OperationStatus.PENDING
    assert operation.attempts == 0
    assert operation.resource == "customers"
    assert queue.count() == 1


def test_enqueue_accepts_kind_string(queue):
    operation_id = queue.enqueue("update", "rentals", {"id": "r1"})

    assert queue.get(operation_id).kind is OperationKind.UPDATE


def test_enqueue_with_known_id_is_not_duplicated(queue):
    queue.enqueue(OperationKind.CREATE, "customers", {"id": "c1"}, operation_id="op-1")
    queue.enqueue(OperationKind.CREATE, "customers", {"id": "c1"}, operation_id="op-1")

    assert [op.id for op in queue.list()] == ["op-1"]


def test_list_preserves_enqueue_order_across_failures(queue):
    ids = _enqueue_three(queue)

    queue.ack(ids[0], success=False, error="timeout")
    queue.ack(ids[1], success=False, error="timeout")

    assert [op.id for op in queue.list()] == ids


def test_queue_is_persisted_as_single_collection(store, queue):
    ids = _enqueue_three(queue)

    raw = store.get(StorageTier.PERSISTENT, QUEUE_STORAGE_KEY)
    assert isinstance(raw, list)
    assert [item["id"] for item in raw] == ids

    reopened = OperationQueue(store)
    assert [op.id for op in reopened.list()] == ids


def test_ack_success_removes_and_is_idempotent(queue):
    first, second, _ = _enqueue_three(queue)

    removed = queue.ack(first, success=True)
    assert removed.id == first
    assert queue.ack(first, success=True) is None

    assert [op.id for op in queue.list()][0] == second
    assert queue.count() == 2


def test_ack_failure_retries_until_max_attempts(queue):
    operation_id = queue.enqueue(OperationKind.UPDATE, "rentals", {"id": "r1"})

    queue.ack(operation_id, success=False, error="HTTP 500")
    queue.ack(operation_id, success=False, error="HTTP 500")
    operation = queue.get(operation_id)
    assert operation.attempts == 2
    assert operation.status is OperationStatus.PENDING

    queue.ack(operation_id, success=False, error="HTTP 500")
    operation = queue.get(operation_id)
    assert operation.attempts == 3
    assert operation.status is OperationStatus.FAILED
    assert operation.last_error == "HTTP 500"


def test_count_excludes_failed_operations(store):
    queue = OperationQueue(store, max_attempts=1)
    failing = queue.enqueue(OperationKind.CREATE, "customers", {"id": "c1"})
    in_flight = queue.enqueue(OperationKind.CREATE, "customers", {"id": "c2"})
    queue.enqueue(OperationKind.CREATE, "customers", {"id": "c3"})

    queue.ack(failing, success=False, error="rejected")
    queue.mark_in_flight(in_flight)

    assert queue.count() == 2
    assert [op.id for op in queue.failed()] == [failing]
    assert len(queue.list()) == 3


def test_mark_in_flight_claims_once(queue):
    operation_id = queue.enqueue(OperationKind.CREATE, "customers", {"id": "c1"})

    assert queue.mark_in_flight(operation_id) is True
    assert queue.mark_in_flight(operation_id) is False
    assert queue.get(operation_id).status is OperationStatus.IN_FLIGHT
    assert queue.pending() == []


def test_retry_moves_failed_back_to_pending(store):
    queue = OperationQueue(store, max_attempts=1)
    operation_id = queue.enqueue(OperationKind.DELETE, "expenses", {"id": "x1"})
    queue.ack(operation_id, success=False, error="gone")

    assert queue.retry(operation_id) is True

    operation = queue.get(operation_id)
    assert operation.status is OperationStatus.PENDING
    assert operation.attempts == 0
    assert operation.last_error is None
    assert queue.retry(operation_id) is False


def test_recover_in_flight_after_restart(store, queue):
    ids = _enqueue_three(queue)
    queue.mark_in_flight(ids[1])

    recovered = OperationQueue(store).recover_in_flight()

    assert recovered == 1
    assert all(op.status is OperationStatus.PENDING for op in queue.list())


def test_corrupted_queue_reads_as_empty(store, queue):
    store.set_raw(StorageTier.PERSISTENT, QUEUE_STORAGE_KEY, "[{broken")

    assert queue.list() == []
    assert queue.count() == 0


def test_malformed_entry_is_skipped(store, queue):
    operation_id = queue.enqueue(OperationKind.CREATE, "customers", {"id": "c1"})
    raw = store.get(StorageTier.PERSISTENT, QUEUE_STORAGE_KEY)
    raw.append({"kind": "create"})
    store.set(StorageTier.PERSISTENT, QUEUE_STORAGE_KEY, raw)

    assert [op.id for op in queue.list()] == [operation_id]


def test_clear_empties_queue(queue):
    _enqueue_three(queue)

    queue.clear()

    assert queue.list() == []


def test_max_attempts_must_be_positive(store):
    with pytest.raises(ValueError):
        OperationQueue(store, max_attempts=0)
