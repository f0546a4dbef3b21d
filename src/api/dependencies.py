"""
API Dependencies for FastAPI Router Modules
Shared dependencies for authentication and access to the offline services
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Any, Optional
import logging

# Initialize security scheme
security = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)


class APIAuthenticator:
    """Centralized API authentication handler"""

    def __init__(self, api_key: str):
        self.api_key = api_key

    def verify_api_key(self, credentials: Optional[HTTPAuthorizationCredentials] = None) -> bool:
        """Verify API key from authorization header"""
        if not credentials:
            return False
        return credentials.credentials == self.api_key

    def raise_unauthorized(self):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


# Set during app initialization
_authenticator: Optional[APIAuthenticator] = None
_services: Any = None


def init_api_dependencies(api_key: str, services: Any):
    """Initialize API dependencies with configuration and the service container"""
    global _authenticator, _services
    _authenticator = APIAuthenticator(api_key)
    _services = services


async def verify_api_key(credentials: HTTPAuthorizationCredentials = Depends(security)) -> bool:
    """FastAPI dependency for API key verification"""
    if not _authenticator:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="API authentication not initialized"
        )

    if not _authenticator.verify_api_key(credentials):
        _authenticator.raise_unauthorized()

    return True


def _require_services():
    if _services is None:
        logger.error("Services not initialized - please check init_api_dependencies")
        raise RuntimeError("Offline services not available - please check initialization")
    return _services


async def get_sync_engine():
    return _require_services().sync_engine


async def get_queue():
    return _require_services().queue


async def get_monitor():
    return _require_services().monitor


async def get_session_manager():
    return _require_services().session_manager


async def get_service_worker():
    return _require_services().service_worker


async def get_fetcher():
    return _require_services().fetcher
