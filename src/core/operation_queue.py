"""
Durable operation queue for mutations performed while offline
The whole queue is persisted as one serialized value, so every change
is a single write replacing the previous collection
"""

import logging
from typing import Any, Dict, List, Optional

from src.core.models import QueueOperation, OperationKind, OperationStatus
from src.core.storage import DurableStore, StorageTier

logger = logging.getLogger(__name__)

QUEUE_STORAGE_KEY = "offline_queue"


class OperationQueue:
    """Ordered, durable list of pending mutations with ack-based removal"""

    def __init__(self, store: DurableStore, max_attempts: int = 3):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.store = store
        self.max_attempts = max_attempts

    def _load(self) -> List[QueueOperation]:
        raw = self.store.get(StorageTier.PERSISTENT, QUEUE_STORAGE_KEY, default=[])
        if not isinstance(raw, list):
            logger.warning("Queue record is not a list, treating it as empty")
            return []

        operations = []
        for item in raw:
            try:
                operations.append(QueueOperation.from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed queue entry: {e}")

        # Stable sort keeps arrival order for equal timestamps
        operations.sort(key=lambda op: op.enqueued_at)
        return operations

    def _save(self, operations: List[QueueOperation]):
        self.store.set(
            StorageTier.PERSISTENT,
            QUEUE_STORAGE_KEY,
            [op.to_dict() for op in operations]
        )

    def enqueue(self, kind: OperationKind, resource: str, payload: Dict[str, Any],
                operation_id: Optional[str] = None) -> str:
        """Append an operation and persist the queue"""
        if isinstance(kind, str):
            kind = OperationKind(kind)

        operation = QueueOperation(kind=kind, resource=resource, payload=payload or {})
        if operation_id:
            operation.id = operation_id

        operations = self._load()
        if any(op.id == operation.id for op in operations):
            logger.info(f"Operation {operation.id} already queued")
            return operation.id

        operations.append(operation)
        self._save(operations)

        logger.info(f"Queued {kind.value} on {resource} ({operation.id})")
        return operation.id

    def list(self) -> List[QueueOperation]:
        """All operations in FIFO order, failed ones included"""
        return self._load()

    def pending(self) -> List[QueueOperation]:
        return [op for op in self._load() if op.status is OperationStatus.PENDING]

    def failed(self) -> List[QueueOperation]:
        """Dead-letter view"""
        return [op for op in self._load() if op.status is OperationStatus.FAILED]

    def get(self, operation_id: str) -> Optional[QueueOperation]:
        for op in self._load():
            if op.id == operation_id:
                return op
        return None

    def count(self) -> int:
        """Number of non-terminal operations (pending + in-flight)"""
        return sum(1 for op in self._load() if op.status is not OperationStatus.FAILED)

    def mark_in_flight(self, operation_id: str) -> bool:
        """Claim a pending operation for delivery"""
        operations = self._load()
        for op in operations:
            if op.id == operation_id:
                if op.status is not OperationStatus.PENDING:
                    return False
                op.status = OperationStatus.IN_FLIGHT
                self._save(operations)
                return True
        return False

    def ack(self, operation_id: str, success: bool, error: Optional[str] = None) -> Optional[QueueOperation]:
        """Record a delivery outcome.

        Success removes the operation. Failure bumps ``attempts`` and puts it
        back to pending, or to failed once ``max_attempts`` is reached.
        Returns the operation as it was after the ack, or None if unknown.
        """
        operations = self._load()
        target = next((op for op in operations if op.id == operation_id), None)
        if target is None:
            logger.debug(f"Ack for unknown operation {operation_id} ignored")
            return None

        if success:
            operations.remove(target)
            self._save(operations)
            logger.info(f"Operation {operation_id} acknowledged")
            return target

        target.attempts += 1
        target.last_error = error
        if target.attempts >= self.max_attempts:
            target.status = OperationStatus.FAILED
            logger.error(
                f"Operation {operation_id} failed permanently after {target.attempts} attempts: {error}"
            )
        else:
            target.status = OperationStatus.PENDING
            logger.warning(
                f"Operation {operation_id} failed (attempt {target.attempts}/{self.max_attempts}): {error}"
            )

        self._save(operations)
        return target

    def retry(self, operation_id: str) -> bool:
        """Move a failed operation back to pending with a fresh attempt budget"""
        operations = self._load()
        for op in operations:
            if op.id == operation_id and op.status is OperationStatus.FAILED:
                op.status = OperationStatus.PENDING
                op.attempts = 0
                op.last_error = None
                self._save(operations)
                logger.info(f"Operation {operation_id} scheduled for retry")
                return True
        return False

    def recover_in_flight(self) -> int:
        """Return operations interrupted mid-delivery to pending"""
        operations = self._load()
        recovered = 0
        for op in operations:
            if op.status is OperationStatus.IN_FLIGHT:
                op.status = OperationStatus.PENDING
                recovered += 1

        if recovered:
            self._save(operations)
            logger.info(f"Recovered {recovered} interrupted operations")
        return recovered

    def clear(self):
        self.store.remove(StorageTier.PERSISTENT, QUEUE_STORAGE_KEY)
        logger.info("Operation queue cleared")
