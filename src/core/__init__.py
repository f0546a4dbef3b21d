"""
Offline Sync Core Module
Exports the core components for easy imports
"""

from .models import (
    QueueOperation,
    OperationKind,
    OperationStatus,
    OfflineCredentialRecord,
    OfflineUserProfile,
    ResolvedIdentity,
    SyncReport
)
from .storage import DurableStore, StorageTier
from .operation_queue import OperationQueue
from .offline_auth import OfflineCredentialStore, OfflineProfileStore
from .session_resolver import SessionResolver, DEFAULT_STRATEGIES
from .connectivity import ConnectivityMonitor
from .backend_client import BackendClient, BackendError
from .sync_engine import SyncEngine
from .session import SessionManager, LoginError
from .asset_cache import AssetServiceWorker, CacheStorage
from .host import HostCapability, NullHost

__all__ = [
    # Models
    'QueueOperation',
    'OperationKind',
    'OperationStatus',
    'OfflineCredentialRecord',
    'OfflineUserProfile',
    'ResolvedIdentity',
    'SyncReport',

    # Storage and queue
    'DurableStore',
    'StorageTier',
    'OperationQueue',

    # Identity
    'OfflineCredentialStore',
    'OfflineProfileStore',
    'SessionResolver',
    'DEFAULT_STRATEGIES',
    'SessionManager',
    'LoginError',

    # Sync
    'ConnectivityMonitor',
    'BackendClient',
    'BackendError',
    'SyncEngine',

    # Assets and host
    'AssetServiceWorker',
    'CacheStorage',
    'HostCapability',
    'NullHost'
]

__version__ = "1.0.0"
