"""Custom exception classes and error handling utilities."""
from typing import Any, Dict, Optional
from fastapi import HTTPException, status
from loguru import logger


class MarketNotifyException(Exception):
    """Base exception for the application."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DatabaseError(MarketNotifyException):
    """Database operation errors."""
    pass


class ValidationError(MarketNotifyException):
    """Malformed input to registration or dispatch."""
    pass


class NotFoundError(MarketNotifyException):
    """A requested record does not exist."""
    pass


class DeliveryError(MarketNotifyException):
    """A push delivery attempt failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        super().__init__(message, details)


class TransientDeliveryError(DeliveryError):
    """Delivery failed but the endpoint may still be valid."""
    pass


class PermanentDeliveryError(DeliveryError):
    """The push service reports the endpoint as gone or expired."""
    pass


class PollError(MarketNotifyException):
    """A client watcher failed to fetch the current count."""
    pass


def handle_database_error(error: Exception) -> HTTPException:
    """Handle database errors and return appropriate HTTP response."""
    logger.error(f"Database error: {error}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Database operation failed. Please try again later."
    )


def handle_validation_error(error: ValidationError) -> HTTPException:
    """Handle validation errors."""
    logger.warning(f"Validation error: {error.message}")
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={
            "message": error.message,
            "details": error.details
        }
    )


def handle_not_found_error(error: NotFoundError) -> HTTPException:
    """Handle lookups for records that do not exist."""
    logger.info(f"Not found: {error.message}")
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=error.message
    )
