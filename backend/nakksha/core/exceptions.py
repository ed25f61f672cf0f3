# backend/nakksha/core/exceptions.py
"""
Domain-specific exceptions for the Nakksha platform.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Every exception carries a stable machine-readable ``code`` next to the
human-readable message.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    default_code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying the class status code."""
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class ValidationException(DomainException):
    """Raised when business validation fails."""

    default_code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    default_code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    default_code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    default_code = "INTERNAL_ERROR"

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class SlotAlreadyBookedException(ConflictException):
    """Raised when a booking loses the race for a slot."""

    default_code = "SLOT_ALREADY_BOOKED"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message or "Availability slot is already booked", details=details)


class PatternUpdateInProgressException(ConflictException):
    """Raised when another pattern replace for the same consultant holds the lock."""

    default_code = "PATTERN_UPDATE_IN_PROGRESS"

    def __init__(self, consultant_id: str) -> None:
        super().__init__(
            "Another pattern update operation is in progress. Please try again in a moment.",
            details={"consultant_id": consultant_id},
        )


class RepositoryException(Exception):
    """Exception raised by repository layer for data access errors."""
