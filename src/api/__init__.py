"""
Offline Sync API Module
"""

from .exceptions import (
    OfflineAPIException,
    ValidationError,
    AuthenticationError,
    OperationNotFoundError,
    ServiceUnavailableError
)

__all__ = [
    'OfflineAPIException',
    'ValidationError',
    'AuthenticationError',
    'OperationNotFoundError',
    'ServiceUnavailableError'
]

__version__ = "1.0.0"
