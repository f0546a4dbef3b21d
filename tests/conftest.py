"""
Pytest configuration and fixtures for offline sync tests
"""

import asyncio
from typing import List, Set

import pytest

from src.core.backend_client import AuthenticationFailed, BackendRejectedError, BackendTransportError
from src.core.models import QueueOperation
from src.core.offline_auth import OfflineCredentialStore, OfflineProfileStore
from src.core.operation_queue import OperationQueue
from src.core.session_resolver import SessionResolver
from src.core.storage import DurableStore
from src.config.config_loader import default_config


class FakeBackend:
    """Backend stand-in that records submissions and yields to the loop"""

    def __init__(self):
        self.submitted: List[QueueOperation] = []
        self.reject_ids: Set[str] = set()
        self.unreachable = False
        self.users = {"admin@rentalsystem.com": "admin123"}
        self.role = {"role": "admin", "branch_id": "b1"}
        self.access_token = None
        self.delay = 0

    async def submit(self, operation: QueueOperation):
        await asyncio.sleep(self.delay)
        if self.unreachable:
            raise BackendTransportError("connection refused")
        self.submitted.append(operation)
        if operation.id in self.reject_ids:
            raise BackendRejectedError(409, "conflict")

    async def sign_in(self, email: str, password: str):
        if self.unreachable:
            raise BackendTransportError("connection refused")
        if self.users.get(email) != password:
            raise AuthenticationFailed("Invalid login credentials")
        self.access_token = "test-token"
        return {"access_token": self.access_token,
                "user": {"id": "u1", "email": email, "user_metadata": {"full_name": "Admin"}}}

    async def fetch_user_role(self, user_id: str):
        return None if self.unreachable else self.role

    async def ping(self) -> bool:
        return not self.unreachable

    def sign_out(self):
        self.access_token = None

    async def close(self):
        pass


@pytest.fixture
def store():
    durable_store = DurableStore("sqlite://")
    yield durable_store
    durable_store.close()


@pytest.fixture
def queue(store):
    return OperationQueue(store, max_attempts=3)


@pytest.fixture
def credentials(store):
    return OfflineCredentialStore(store)


@pytest.fixture
def profiles(store):
    return OfflineProfileStore(store)


@pytest.fixture
def resolver(store):
    return SessionResolver(store)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def test_config():
    """Configuration with in-memory storage and fast timers"""
    config = default_config()
    config['storage'] = {'url': 'sqlite://', 'cache_url': 'sqlite+aiosqlite://'}
    config['backend']['base_url'] = 'http://backend.test'
    config['connectivity'].update({
        'reconnect_grace_seconds': 0.05,
        'heartbeat_interval_seconds': 3600,
        'probe_enabled': False
    })
    config['cache']['origin'] = 'http://app.test'
    config['api']['api_key'] = 'test-api-key'
    config['logging']['file'] = None
    return config


# Test configuration
def pytest_configure(config):
    """Configure pytest"""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as API endpoint test"
    )
