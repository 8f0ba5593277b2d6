"""Domain errors raised by the workflows and rendered as {"detail": ...} by the API."""

from fastapi import status


class ServiceError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationRejected(ServiceError):
    """A creation or update gate failed. Nothing was written."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(ServiceError):
    """The store refused the write (integrity violation)."""
    status_code = status.HTTP_409_CONFLICT


class RegistryUnavailable(ServiceError):
    """The tax id registry could not be consulted."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
