from typing import Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class NotFound(ServiceError):
    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class InvalidTransition(ServiceError):
    """Raised when a status change is not allowed from the record's current status."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            f"Cannot change status from '{current}' to '{target}'",
            status.HTTP_409_CONFLICT,
        )
        self.current = current
        self.target = target


class RateLimited(ServiceError):
    def __init__(self, retry_after: float, message: str = "Too many submissions, try again later") -> None:
        super().__init__(message, status.HTTP_429_TOO_MANY_REQUESTS)
        self.retry_after = retry_after


class StorageError(ServiceError):
    """I/O or database failure. The message shown to callers stays generic."""

    def __init__(self, message: str = "Storage failure") -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class InvalidCoordinate(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


LOCATION_ERROR_MESSAGES = {
    "permission_denied": "Location access was denied. Allow location access and try again.",
    "position_unavailable": "Location is not available.",
    "timeout": "Timed out while acquiring location.",
    "unsupported": "This device does not support location.",
}


class LocationUnavailable(ServiceError):
    """Location could not be acquired; no return attempt is made."""

    def __init__(self, reason: str, message: Optional[str] = None) -> None:
        if message is None:
            message = LOCATION_ERROR_MESSAGES.get(reason, "Failed to acquire location.")
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.reason = reason
