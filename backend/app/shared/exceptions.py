"""
Shared Exception Classes

Domain-specific exception classes for consistent error handling across all domains.
Provides structured error reporting with appropriate HTTP status codes.
"""

# Standard library imports
from typing import Optional, Dict, Any

# Third-party imports
from fastapi import HTTPException


class DomainException(Exception):
    """
    Base exception class for all domain-specific errors.

    Provides common functionality for error reporting and logging.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)


class ListingException(DomainException):
    """Base exception for listing domain errors."""
    pass


class ListingNotFoundException(ListingException):
    """Raised when a requested listing does not exist."""

    def __init__(self, listing_id: str):
        super().__init__(
            message=f"Listing '{listing_id}' not found",
            error_code="LISTING_NOT_FOUND",
            details={"listing_id": listing_id}
        )


class ListingPermissionException(ListingException):
    """Raised when a user acts on a listing they neither own nor administer."""

    def __init__(self, listing_id: str, user_id: int):
        super().__init__(
            message="Forbidden: you are not the owner of this listing",
            error_code="LISTING_FORBIDDEN",
            details={"listing_id": listing_id, "user_id": user_id}
        )


class InvalidListingDataException(ListingException):
    """Raised when submitted listing data fails validation."""

    def __init__(self, field: str, reason: str):
        super().__init__(
            message=f"Invalid value for '{field}': {reason}",
            error_code="INVALID_LISTING_DATA",
            details={"field": field, "reason": reason}
        )


class UploadRejectedException(DomainException):
    """Raised when an uploaded file breaks the upload rules."""

    def __init__(self, filename: str, reason: str):
        super().__init__(
            message=f"Upload '{filename}' rejected: {reason}",
            error_code="UPLOAD_REJECTED",
            details={"filename": filename, "reason": reason}
        )


class ChatException(DomainException):
    """Base exception for chat errors."""
    pass


class RecipientNotFoundException(ChatException):
    """Raised when a message is addressed to a user that does not exist."""

    def __init__(self, user_id: int):
        super().__init__(
            message=f"Recipient {user_id} not found",
            error_code="RECIPIENT_NOT_FOUND",
            details={"user_id": user_id}
        )


class ConversationForbiddenException(ChatException):
    """Raised when a user reads another user's conversations."""

    def __init__(self, user_id: int, requester_id: int):
        super().__init__(
            message="Forbidden: conversations are visible to their participant only",
            error_code="CONVERSATION_FORBIDDEN",
            details={"user_id": user_id, "requester_id": requester_id}
        )


class PredictionException(DomainException):
    """Base exception for the prediction pipeline."""
    pass


class ScoringServiceException(PredictionException):
    """
    Raised when the external scoring service cannot produce a prediction.

    ``reason`` is one of ``timeout``, ``network``, ``remote_status`` or
    ``malformed_response``. Callers retry all of them the same way.
    """

    TIMEOUT = "timeout"
    NETWORK = "network"
    REMOTE_STATUS = "remote_status"
    MALFORMED_RESPONSE = "malformed_response"

    def __init__(self, reason: str, detail: str, status_code: Optional[int] = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(
            message=f"Scoring service error ({reason}): {detail}",
            error_code="SCORING_SERVICE_ERROR",
            details={"reason": reason, "detail": detail, "status_code": status_code}
        )


class QueueUnavailableException(PredictionException):
    """Raised when a prediction job cannot be handed to the queue backend."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Prediction queue unavailable: {reason}",
            error_code="QUEUE_UNAVAILABLE",
            details={"reason": reason}
        )


class AuthenticationException(DomainException):
    """Raised when a credential cannot be verified."""

    def __init__(self, reason: str = "Invalid authentication credentials"):
        super().__init__(message=reason, error_code="AUTHENTICATION_FAILED")


class IdentityProviderNotConfiguredException(DomainException):
    """Raised when external identity tokens are presented but no provider is configured."""

    def __init__(self):
        super().__init__(
            message="Identity provider not configured. Set FIREBASE_PROJECT_ID.",
            error_code="IDENTITY_PROVIDER_NOT_CONFIGURED"
        )


class ConfigurationException(DomainException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, config_item: str, reason: str):
        message = f"Configuration error for {config_item}: {reason}"
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details={"config_item": config_item, "reason": reason}
        )


def domain_exception_to_http_exception(exception: DomainException) -> HTTPException:
    """
    Convert domain exceptions to FastAPI HTTPException with appropriate status codes.

    Args:
        exception: Domain-specific exception

    Returns:
        HTTPException with appropriate status code and detail
    """
    # Map exception types to HTTP status codes
    status_code_map = {
        ListingNotFoundException: 404,
        ListingPermissionException: 403,
        InvalidListingDataException: 400,
        UploadRejectedException: 400,
        RecipientNotFoundException: 404,
        ConversationForbiddenException: 403,
        ScoringServiceException: 502,  # Bad Gateway - external service issue
        QueueUnavailableException: 503,
        AuthenticationException: 401,
        IdentityProviderNotConfiguredException: 503,
        ConfigurationException: 500,
    }

    status_code = status_code_map.get(type(exception), 500)

    detail = {
        "error": exception.message,
        "error_code": exception.error_code,
        "details": exception.details
    }

    return HTTPException(status_code=status_code, detail=detail)
