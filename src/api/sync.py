"""
Sync API Router
Queue inspection, manual synchronization and connectivity signals
"""

import logging
from fastapi import APIRouter, Depends

from src.api.dependencies import verify_api_key, get_sync_engine, get_queue, get_monitor
from src.api.exceptions import handle_api_errors, OperationNotFoundError
from src.api.schemas import (
    EnqueueRequest, OperationResponse, QueueResponse, SyncReportResponse,
    SyncStatusResponse, ConnectivityRequest
)
from src.core.models import OperationKind

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/trigger", response_model=SyncReportResponse)
@handle_api_errors
async def trigger_sync(
    authenticated: bool = Depends(verify_api_key),
    engine=Depends(get_sync_engine)
):
    """Run a sync pass now; a pass already running makes this a no-op"""
    logger.info("Manual sync triggered")
    report = await engine.sync()
    return SyncReportResponse(
        synced=report.synced,
        failed=report.failed,
        skipped=report.skipped,
        started_at=report.started_at,
        finished_at=report.finished_at,
        duration_ms=report.duration_ms,
        remaining=engine.queue.count()
    )


@router.get("/status", response_model=SyncStatusResponse)
@handle_api_errors
async def get_sync_status(
    authenticated: bool = Depends(verify_api_key),
    engine=Depends(get_sync_engine),
    monitor=Depends(get_monitor)
):
    """Polled by the UI for the pending indicator"""
    return SyncStatusResponse(is_online=monitor.is_online, **engine.status())


@router.get("/queue", response_model=QueueResponse)
@handle_api_errors
async def list_queue(
    authenticated: bool = Depends(verify_api_key),
    queue=Depends(get_queue)
):
    operations = queue.list()
    return QueueResponse(
        count=queue.count(),
        operations=[OperationResponse.from_operation(op) for op in operations]
    )


@router.post("/queue", response_model=OperationResponse, status_code=201)
@handle_api_errors
async def enqueue_operation(
    request: EnqueueRequest,
    authenticated: bool = Depends(verify_api_key),
    queue=Depends(get_queue)
):
    operation_id = queue.enqueue(
        OperationKind(request.kind.value), request.resource, request.payload,
        operation_id=request.id
    )
    return OperationResponse.from_operation(queue.get(operation_id))


@router.get("/queue/failed", response_model=QueueResponse)
@handle_api_errors
async def list_failed(
    authenticated: bool = Depends(verify_api_key),
    queue=Depends(get_queue)
):
    failed = queue.failed()
    return QueueResponse(
        count=len(failed),
        operations=[OperationResponse.from_operation(op) for op in failed]
    )


@router.post("/queue/{operation_id}/retry", response_model=OperationResponse)
@handle_api_errors
async def retry_operation(
    operation_id: str,
    authenticated: bool = Depends(verify_api_key),
    queue=Depends(get_queue)
):
    if not queue.retry(operation_id):
        raise OperationNotFoundError(operation_id)
    return OperationResponse.from_operation(queue.get(operation_id))


@router.post("/connectivity", response_model=SyncStatusResponse)
@handle_api_errors
async def report_connectivity(
    request: ConnectivityRequest,
    authenticated: bool = Depends(verify_api_key),
    engine=Depends(get_sync_engine),
    monitor=Depends(get_monitor)
):
    """Online/offline signal pushed by the UI shell"""
    monitor.set_online(request.online)
    return SyncStatusResponse(is_online=monitor.is_online, **engine.status())
