"""
Sync engine: drains the operation queue against the backend.
One request per operation, FIFO, failures isolated per item.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from src.core.backend_client import BackendClient, BackendError
from src.core.connectivity import ConnectivityMonitor
from src.core.models import OperationStatus, SyncReport, utcnow
from src.core.operation_queue import OperationQueue

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Single-flight synchronization of queued operations.

    Triggered by reconnect events, by the heartbeat when the queue is not
    empty, and by manual requests. A request arriving while a pass is
    running is dropped and answered with a skipped report.
    """

    def __init__(self, queue: OperationQueue, backend: BackendClient,
                 monitor: Optional[ConnectivityMonitor] = None):
        self.queue = queue
        self.backend = backend
        self._busy = False
        self.last_sync_time: Optional[datetime] = None
        self.last_report: Optional[SyncReport] = None

        if monitor:
            self.attach(monitor)

    @property
    def is_syncing(self) -> bool:
        return self._busy

    def attach(self, monitor: ConnectivityMonitor):
        monitor.on_reconnect(self._on_reconnect)
        monitor.on_heartbeat(self._on_heartbeat)

    async def _on_reconnect(self):
        await self.sync()

    async def _on_heartbeat(self):
        if self.queue.count() > 0:
            await self.sync()

    async def sync(self) -> SyncReport:
        """Run one pass over the queue snapshot"""
        if self._busy:
            logger.debug("Sync already running, request dropped")
            return SyncReport(skipped=True)

        # No await between the check above and this assignment
        self._busy = True
        report = SyncReport(started_at=utcnow())

        try:
            snapshot = self.queue.pending()
            if snapshot:
                logger.info(f"Syncing {len(snapshot)} queued operations")

            for operation in snapshot:
                if not self.queue.mark_in_flight(operation.id):
                    continue

                try:
                    await self.backend.submit(operation)
                except asyncio.CancelledError:
                    # Interrupted delivery goes back to pending without spending an attempt
                    self.queue.recover_in_flight()
                    raise
                except BackendError as e:
                    self.queue.ack(operation.id, success=False, error=str(e))
                    report.failed += 1
                    continue
                except Exception as e:
                    logger.error(f"Unexpected error submitting {operation.id}: {e}", exc_info=True)
                    self.queue.ack(operation.id, success=False, error=str(e))
                    report.failed += 1
                    continue

                self.queue.ack(operation.id, success=True)
                report.synced += 1

        except Exception as e:
            logger.error(f"Sync pass aborted: {e}", exc_info=True)
        finally:
            report.finished_at = utcnow()
            self.last_sync_time = report.finished_at
            self.last_report = report
            self._busy = False

        if report.synced or report.failed:
            logger.info(
                f"Sync finished: {report.synced} synced, {report.failed} failed "
                f"in {report.duration_ms:.0f}ms"
            )
        return report

    def status(self) -> Dict[str, Any]:
        operations = self.queue.list()
        failed = sum(1 for op in operations if op.status is OperationStatus.FAILED)
        return {
            'is_syncing': self._busy,
            'pending_count': len(operations) - failed,
            'failed_count': failed,
            'last_sync_time': self.last_sync_time,
            'last_report': self.last_report.to_dict() if self.last_report else None,
        }
