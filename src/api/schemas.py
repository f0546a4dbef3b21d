"""
Pydantic schemas for API request/response models
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field
from enum import Enum

from src.core.models import QueueOperation


class OperationKindEnum(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class EnqueueRequest(BaseModel):
    kind: OperationKindEnum
    resource: str = Field(..., min_length=1, max_length=100, pattern=r'^[A-Za-z0-9_]+$')
    payload: Dict[str, Any] = Field(default_factory=dict)
    id: Optional[str] = Field(None, max_length=64)


class OperationResponse(BaseModel):
    id: str
    kind: str
    resource: str
    payload: Dict[str, Any]
    enqueued_at: datetime
    attempts: int
    status: str
    last_error: Optional[str] = None

    @classmethod
    def from_operation(cls, operation: QueueOperation) -> 'OperationResponse':
        return cls(
            id=operation.id,
            kind=operation.kind.value,
            resource=operation.resource,
            payload=operation.payload,
            enqueued_at=operation.enqueued_at,
            attempts=operation.attempts,
            status=operation.status.value,
            last_error=operation.last_error,
        )


class QueueResponse(BaseModel):
    count: int
    operations: List[OperationResponse]


class SyncReportResponse(BaseModel):
    synced: int
    failed: int
    skipped: bool
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: float = 0.0
    remaining: int


class SyncStatusResponse(BaseModel):
    is_online: bool
    is_syncing: bool
    pending_count: int
    failed_count: int
    last_sync_time: Optional[datetime] = None
    last_report: Optional[Dict[str, Any]] = None


class ConnectivityRequest(BaseModel):
    online: bool


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r'^[^@\s]+@[^@\s]+$')
    password: str = Field(..., min_length=6, max_length=100)


class BranchRequest(BaseModel):
    branch_id: str = Field(..., min_length=1, max_length=64)


class IdentityResponse(BaseModel):
    subject_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    branch_id: Optional[str] = None


class ServiceWorkerMessage(BaseModel):
    type: str
