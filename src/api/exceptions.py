"""
API error types and the decorator that maps core failures onto them.
"""

from fastapi import HTTPException, status
import logging
from functools import wraps

from src.core.asset_cache import NetworkError
from src.core.backend_client import BackendError
from src.core.session import LoginError

logger = logging.getLogger(__name__)


class OfflineAPIException(HTTPException):
    """Base for errors returned by the control API."""

    def __init__(self, status_code: int, detail: str, error_code: str = None):
        super().__init__(status_code=status_code, detail=detail)
        self.error_code = error_code or self.__class__.__name__


class ValidationError(OfflineAPIException):

    def __init__(self, detail: str, field: str = None):
        message = f"Validation error: {detail}"
        if field:
            message += f" (field: {field})"
        super().__init__(status.HTTP_400_BAD_REQUEST, message, "VALIDATION_ERROR")


class AuthenticationError(OfflineAPIException):
    """No session, or the login was refused online and offline."""

    def __init__(self, detail: str = "Not logged in"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, detail, "AUTH_ERROR")


class OperationNotFoundError(OfflineAPIException):
    """Unknown queue operation, or one that is not in the failed state."""

    def __init__(self, operation_id: str):
        super().__init__(
            status.HTTP_404_NOT_FOUND,
            f"Operation '{operation_id}' not found or not failed",
            "OPERATION_NOT_FOUND"
        )


class ServiceUnavailableError(OfflineAPIException):
    """Backend or upstream unreachable, or the service itself is unhealthy."""

    def __init__(self, detail: str):
        super().__init__(status.HTTP_503_SERVICE_UNAVAILABLE, detail, "SERVICE_UNAVAILABLE")


def handle_api_errors(func):
    """Translate core exceptions raised inside a route into API errors."""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except HTTPException:
            raise
        except LoginError as e:
            raise AuthenticationError(str(e))
        except (BackendError, NetworkError) as e:
            logger.warning(f"{func.__name__}: upstream unavailable: {e}")
            raise ServiceUnavailableError(str(e))
        except ValueError as e:
            raise ValidationError(detail=str(e))
        except KeyError as e:
            raise ValidationError(detail=f"Missing required field: {e}")
        except Exception as e:
            logger.error(f"Unexpected error in {func.__name__}: {e}", exc_info=True)
            raise OfflineAPIException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="An unexpected error occurred. Please try again later.",
                error_code="INTERNAL_ERROR"
            )

    return wrapper
