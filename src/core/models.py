"""
Core data models for the offline-first consistency layer
SQLAlchemy tables for durable storage plus the domain dataclasses
that travel between queue, sync engine, credential store and resolver
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional
import uuid

from sqlalchemy import Column, String, DateTime, Integer, Text, LargeBinary, ForeignKey
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Timezone-aware UTC now"""
    return datetime.now(timezone.utc)


class OperationKind(Enum):
    """Mutation kinds accepted by the operation queue"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class OperationStatus(Enum):
    """Queue operation lifecycle"""
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    FAILED = "failed"


# SQLAlchemy Models
class KeyValueEntryDB(Base):
    """Persistent storage tier: one row per key"""
    __tablename__ = 'kv_store'

    tier = Column(String(20), primary_key=True)
    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<KeyValueEntryDB(tier={self.tier}, key={self.key})>"


class CacheBucketDB(Base):
    """Named, versioned asset cache bucket"""
    __tablename__ = 'cache_buckets'

    name = Column(String(100), primary_key=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class CacheEntryDB(Base):
    """Stored HTTP response keyed by request URL within a bucket"""
    __tablename__ = 'cache_entries'

    bucket = Column(String(100), ForeignKey('cache_buckets.name', ondelete='CASCADE'), primary_key=True)
    url = Column(String(2048), primary_key=True)
    status = Column(Integer, nullable=False)
    headers = Column(Text, nullable=True)  # JSON
    body = Column(LargeBinary, nullable=False)
    stored_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# Domain models
@dataclass
class QueueOperation:
    """A pending mutation awaiting backend delivery"""
    kind: OperationKind
    resource: str
    payload: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    enqueued_at: datetime = field(default_factory=utcnow)
    attempts: int = 0
    status: OperationStatus = OperationStatus.PENDING
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dict"""
        return {
            'id': self.id,
            'kind': self.kind.value,
            'resource': self.resource,
            'payload': self.payload,
            'enqueuedAt': self.enqueued_at.isoformat(),
            'attempts': self.attempts,
            'status': self.status.value,
            'lastError': self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QueueOperation':
        """Build from the persisted representation"""
        return cls(
            id=data['id'],
            kind=OperationKind(data['kind']),
            resource=data['resource'],
            payload=data.get('payload') or {},
            enqueued_at=datetime.fromisoformat(data['enqueuedAt']),
            attempts=int(data.get('attempts', 0)),
            status=OperationStatus(data.get('status', OperationStatus.PENDING.value)),
            last_error=data.get('lastError'),
        )


@dataclass
class OfflineCredentialRecord:
    """Last-known login credential, weakly encoded"""
    email: str
    hashed_secret: str
    last_login_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'email': self.email,
            'hashedPassword': self.hashed_secret,
            'lastLogin': self.last_login_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OfflineCredentialRecord':
        return cls(
            email=data['email'],
            hashed_secret=data['hashedPassword'],
            last_login_at=datetime.fromisoformat(data['lastLogin']),
        )


@dataclass
class OfflineUserProfile:
    """Last-known identity/authorization snapshot"""
    id: str
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    branch_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'id': self.id, 'email': self.email}
        for name in ('full_name', 'phone', 'role', 'branch_id'):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OfflineUserProfile':
        return cls(
            id=data['id'],
            email=data.get('email') or "",
            full_name=data.get('full_name'),
            phone=data.get('phone'),
            role=data.get('role'),
            branch_id=data.get('branch_id'),
        )


@dataclass(frozen=True)
class ResolvedIdentity:
    """Role and branch assignment resolved for the current subject"""
    role: Optional[str] = None
    branch_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.role and not self.branch_id

    @property
    def has_branch(self) -> bool:
        return bool(self.branch_id)

    def merged_with(self, other: 'ResolvedIdentity') -> 'ResolvedIdentity':
        """Fill missing fields from another partial identity"""
        return ResolvedIdentity(
            role=self.role or other.role,
            branch_id=self.branch_id or other.branch_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'role': self.role, 'branch_id': self.branch_id}


@dataclass
class SyncReport:
    """Outcome of one sync engine pass"""
    synced: int = 0
    failed: int = 0
    skipped: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def duration_ms(self) -> float:
        if not self.started_at or not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            'synced': self.synced,
            'failed': self.failed,
            'skipped': self.skipped,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration_ms': self.duration_ms,
        }
