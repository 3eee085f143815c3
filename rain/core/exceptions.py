"""
Error taxonomy for the Rain backend

Every error raised by the ingestion and query services derives from
RainError and carries the HTTP status and the short error code used by
the exception handlers:

- ConfigurationError: startup-only, fatal
- StorageUnavailableError: the relational store cannot be reached
- StorageIOError: filesystem failure while ingesting
- BadRequestError: malformed or missing input, including corrupt archives
- NotFoundError: unknown issue, bundle or file node
"""
from fastapi import status


class RainError(Exception):
    """Base class for classified service errors"""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(RainError):
    error = "configuration_error"


class StorageUnavailableError(RainError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "storage_unavailable"


class StorageIOError(RainError):
    """
    Filesystem failure during ingestion.

    The message is shown to clients, so it must not contain server paths;
    keep the OSError as __cause__ for the logs.
    """
    error = "io_error"


class BadRequestError(RainError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "bad_request"


class NotFoundError(RainError):
    """Resource not found with standardized message"""
    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} '{resource_id}' not found")
        self.resource = resource
        self.resource_id = resource_id
